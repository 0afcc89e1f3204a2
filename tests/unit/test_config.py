"""Tests for settings: defaults and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from nephro_client.config import ApiConfig, AppSettings, ObservabilityConfig, SessionConfig


class TestDefaults:
    def test_api_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NEPHRO_API_BASE_URL", raising=False)
        config = ApiConfig()
        assert config.base_url == "http://localhost:8000/api/v1"
        assert config.login_path == "/auth/login/"
        assert config.refresh_path == "/auth/refresh/"
        assert config.degrade_reads_on_auth_expired is False

    def test_app_settings_groups(self) -> None:
        settings = AppSettings()
        assert settings.cache.institutions_ttl_seconds == 600
        assert settings.audit.max_events == 1000


class TestEnvOverrides:
    def test_api_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NEPHRO_API_BASE_URL", "https://dialysis.example.org/api/v1")
        monkeypatch.setenv("NEPHRO_API_TIMEOUT", "5")
        monkeypatch.setenv("NEPHRO_API_DEGRADE_READS_ON_AUTH_EXPIRED", "true")
        config = AppSettings().api
        assert config.base_url == "https://dialysis.example.org/api/v1"
        assert config.timeout == 5.0
        assert config.degrade_reads_on_auth_expired is True

    def test_session_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("NEPHRO_SESSION_BACKEND", "file")
        monkeypatch.setenv("NEPHRO_SESSION_STORE_PATH", str(tmp_path))
        config = SessionConfig()
        assert config.backend == "file"
        assert config.store_path == tmp_path

    def test_log_level_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NEPHRO_OBSERVABILITY_LOG_LEVEL", "DEBUG")
        assert ObservabilityConfig().log_level == "DEBUG"


class TestValidation:
    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ApiConfig(timeout=0)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValidationError):
            SessionConfig(backend="redis")  # type: ignore[arg-type]
