"""Tests for structlog-backed logging setup."""

from __future__ import annotations

import logging
from typing import Iterator

import pytest
import structlog

from nephro_client.config import ObservabilityConfig
from nephro_client.logging_config import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
    for name in ("nephro_client", "httpx"):
        logging.getLogger(name).setLevel(logging.NOTSET)


class TestSetupLogging:
    def test_single_structlog_handler(self) -> None:
        setup_logging(ObservabilityConfig(log_level="DEBUG", json_logs=True))
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
        assert root.level == logging.DEBUG

    def test_httpx_kept_at_warning(self) -> None:
        setup_logging(ObservabilityConfig(log_level="DEBUG", json_logs=False))
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_rendering(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(ObservabilityConfig(log_level="INFO", json_logs=True))
        logging.getLogger("nephro_client.test").info("refreshed %s", "token")
        err = capsys.readouterr().err
        assert '"event": "refreshed token"' in err
        assert '"level": "info"' in err
