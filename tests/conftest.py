"""Shared fixtures for nephro-client tests."""

from __future__ import annotations

import base64
import json
import time
from typing import AsyncIterator

import pytest

from nephro_client.client import NephroClient
from nephro_client.config import ApiConfig, AppSettings, AuditConfig, CacheConfig, SessionConfig
from nephro_client.session import SessionManager
from tests.fakes.fake_persistence import FakePersistenceBackend
from tests.fakes.fake_refresher import FakeTokenRefresher
from tests.fakes.mock_api import MockApi

BASE_URL = "http://testserver"


def make_jwt(exp: float) -> str:
    """Unsigned JWT carrying only ``exp``."""

    def _segment(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"{_segment({'alg': 'none'})}.{_segment({'exp': exp})}.sig"


@pytest.fixture
def backend() -> FakePersistenceBackend:
    return FakePersistenceBackend()


@pytest.fixture
def refresher() -> FakeTokenRefresher:
    return FakeTokenRefresher()


@pytest.fixture
def session(backend: FakePersistenceBackend, refresher: FakeTokenRefresher) -> SessionManager:
    return SessionManager(backend, refresher)


@pytest.fixture
def api() -> MockApi:
    return MockApi()


@pytest.fixture
def settings() -> AppSettings:
    """Settings pointing at the mock server, with memory session storage."""
    return AppSettings(
        api=ApiConfig(base_url=BASE_URL, timeout=5.0),
        session=SessionConfig(backend="memory"),
        cache=CacheConfig(enabled=True, institutions_ttl_seconds=600),
        audit=AuditConfig(enabled=True, max_events=100),
    )


@pytest.fixture
async def client(settings: AppSettings, backend: FakePersistenceBackend, api: MockApi) -> AsyncIterator[NephroClient]:
    nephro = NephroClient(settings, backend=backend, transport=api.transport)
    try:
        yield nephro
    finally:
        await nephro.aclose()


@pytest.fixture
def logged_in(client: NephroClient) -> NephroClient:
    """Client with an admin session holding access-1 / refresh-1."""
    client.session.set_session("access-1", "refresh-1", role="admin", user_id="7", related_entity_id="42")
    return client


@pytest.fixture
def future_exp() -> float:
    return time.time() + 3600
