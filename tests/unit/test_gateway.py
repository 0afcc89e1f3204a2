"""Tests for RequestGateway: bearer injection, refresh-and-replay, terminal 401."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

import httpx
import pytest

from nephro_client.exceptions import AuthenticationExpired, NetworkError, RemoteError
from nephro_client.gateway import RequestGateway
from nephro_client.pipeline import RequestDescriptor
from nephro_client.session import HttpTokenRefresher, SessionManager
from tests.conftest import BASE_URL
from tests.fakes.fake_persistence import FakePersistenceBackend
from tests.fakes.fake_refresher import FakeTokenRefresher
from tests.fakes.mock_api import MockApi


@pytest.fixture
async def http(api: MockApi) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(base_url=BASE_URL, transport=api.transport) as client:
        yield client


@pytest.fixture
def http_session(backend: FakePersistenceBackend, http: httpx.AsyncClient) -> SessionManager:
    """Session refreshing against the mock server's /auth/refresh/."""
    manager = SessionManager(backend, HttpTokenRefresher(http, "/auth/refresh/"))
    manager.set_session("access-1", "refresh-1", role="admin", user_id="7")
    return manager


@pytest.fixture
def gateway(http: httpx.AsyncClient, http_session: SessionManager) -> RequestGateway:
    return RequestGateway(http, http_session)


class TestSuccessfulCalls:
    async def test_bearer_and_json_headers(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("GET", "/patients/", 200, {"items": [], "total": 0})
        body = await gateway.get("/patients/", params={"page": 1, "page_size": 10, "search": None})
        assert body == {"items": [], "total": 0}

        request = api.requests[0]
        assert request.headers["Authorization"] == "Bearer access-1"
        assert request.headers["Content-Type"] == "application/json"
        assert dict(request.url.params) == {"page": "1", "page_size": "10"}

    async def test_json_body_is_sanitized(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("POST", "/hemodialysis-sessions/", 201, {"id": 5})
        await gateway.post("/hemodialysis-sessions/", {"pre_weight": float("nan"), "post_weight": 70.5})
        assert MockApi.body(api.requests[0]) == {"pre_weight": None, "post_weight": 70.5}

    async def test_unauthenticated_call_sends_no_bearer(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("POST", "/auth/login/", 200, {"access_token": "x"})
        await gateway.post("/auth/login/", {"email": "a@b.c"}, requires_auth=False)
        assert "Authorization" not in api.requests[0].headers

    async def test_no_token_sends_no_bearer(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        http_session.clear()
        api.add("GET", "/institutions", 200, [])
        await gateway.get("/institutions")
        assert "Authorization" not in api.requests[0].headers

    async def test_empty_body_decodes_to_none(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("DELETE", "/patients/3/", 204)
        assert await gateway.delete("/patients/3/") is None

    async def test_text_body_kept_as_text(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("GET", "/health", 200, text="ok")
        assert await gateway.get("/health") == "ok"

    async def test_multipart_upload(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("POST", "/documents/", 201, {"id": "d1"})
        await gateway.upload("/documents/", {"file": ("report.pdf", b"%PDF-1.4")}, {"category": "lab"})
        request = api.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b"report.pdf" in request.content
        assert b"category" in request.content


class TestErrors:
    async def test_remote_error_carries_status_and_message(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("GET", "/patients/9/", 404, {"detail": "Not found."})
        with pytest.raises(RemoteError) as exc_info:
            await gateway.get("/patients/9/")
        assert exc_info.value.status == 404
        assert exc_info.value.message == "Not found."
        assert exc_info.value.body == {"detail": "Not found."}

    async def test_validation_errors_are_flattened(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("POST", "/patients/", 400, {"gender": ["This field is required."]})
        with pytest.raises(RemoteError, match="gender: This field is required."):
            await gateway.post("/patients/", {})

    async def test_empty_error_body_uses_default_message(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("GET", "/patients/", 500)
        with pytest.raises(RemoteError, match="An unexpected error occurred"):
            await gateway.get("/patients/")

    async def test_transport_failure_is_network_error(self, http_session: SessionManager) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(NetworkError):
                await RequestGateway(http, http_session).get("/patients/")
        assert http_session.is_authenticated() is True

    async def test_401_on_public_call_is_remote_error(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        api.add("POST", "/auth/login/", 401, {"detail": "No active account found with the given credentials"})
        with pytest.raises(RemoteError) as exc_info:
            await gateway.post("/auth/login/", {"email": "a@b.c", "password": "x"}, requires_auth=False)
        assert exc_info.value.status == 401
        assert api.calls("POST", "/auth/refresh/") == []
        assert http_session.is_authenticated() is True


# ----------------------------------------------------------------------
# 401 handling
# ----------------------------------------------------------------------


class TestRefreshAndReplay:
    async def test_refresh_then_replay_succeeds(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        api.add("GET", "/patients/", 401, {"detail": "Token expired"})
        api.add("GET", "/patients/", 200, {"items": [{"id": 1}], "total": 1})
        api.add("POST", "/auth/refresh/", 200, {"access": "access-2"})

        body = await gateway.get("/patients/")

        assert body == {"items": [{"id": 1}], "total": 1}
        gets = api.calls("GET", "/patients/")
        assert [r.headers["Authorization"] for r in gets] == ["Bearer access-1", "Bearer access-2"]
        assert MockApi.body(api.calls("POST", "/auth/refresh/")[0]) == {"refresh": "refresh-1"}
        assert http_session.get_access_token() == "access-2"
        assert http_session.current().role == "admin"

    async def test_replayed_401_expires_session(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        api.add("GET", "/patients/", 401, {"detail": "Token expired"})
        api.add("POST", "/auth/refresh/", 200, {"access": "access-2"})

        with pytest.raises(AuthenticationExpired):
            await gateway.get("/patients/")

        assert len(api.calls("GET", "/patients/")) == 2
        assert len(api.calls("POST", "/auth/refresh/")) == 1
        assert len(api.requests) == 3
        assert http_session.is_authenticated() is False

    async def test_rejected_refresh_expires_session(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        api.add("GET", "/patients/", 401)
        api.add("POST", "/auth/refresh/", 401, {"detail": "Token is blacklisted"})

        with pytest.raises(AuthenticationExpired):
            await gateway.get("/patients/")

        assert len(api.calls("GET", "/patients/")) == 1
        assert http_session.is_authenticated() is False
        assert http_session.get_refresh_token() is None

    async def test_no_refresh_token_expires_without_refresh(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        http_session.set_session("access-1", role="patient")
        api.add("GET", "/patients/", 401)

        with pytest.raises(AuthenticationExpired):
            await gateway.get("/patients/")

        assert api.calls("POST", "/auth/refresh/") == []
        assert http_session.is_authenticated() is False

    async def test_already_retried_descriptor_is_not_refreshed(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        api.add("GET", "/patients/", 401)
        descriptor = RequestDescriptor("GET", "/patients/", retried=True)

        with pytest.raises(AuthenticationExpired):
            await gateway.execute(descriptor)

        assert len(api.requests) == 1
        assert http_session.is_authenticated() is False

    async def test_non_401_after_replay_is_remote_error(
        self, gateway: RequestGateway, http_session: SessionManager, api: MockApi
    ) -> None:
        api.add("GET", "/patients/", 401)
        api.add("GET", "/patients/", 403, {"detail": "Forbidden"})
        api.add("POST", "/auth/refresh/", 200, {"access": "access-2"})

        with pytest.raises(RemoteError) as exc_info:
            await gateway.get("/patients/")

        assert exc_info.value.status == 403
        assert http_session.get_access_token() == "access-2"

    async def test_writes_follow_the_same_flow(self, gateway: RequestGateway, api: MockApi) -> None:
        api.add("PATCH", "/patients/3/", 401)
        api.add("PATCH", "/patients/3/", 200, {"id": "3"})
        api.add("POST", "/auth/refresh/", 200, {"access": "access-2"})

        assert await gateway.patch("/patients/3/", {"gender": "female"}) == {"id": "3"}
        replayed = api.calls("PATCH", "/patients/3/")[1]
        assert MockApi.body(replayed) == {"gender": "female"}


class TestAuthExpiredListeners:
    async def test_listeners_are_told_the_reason(
        self, http: httpx.AsyncClient, http_session: SessionManager, api: MockApi
    ) -> None:
        reasons: list[str] = []

        async def async_listener(reason: str) -> None:
            reasons.append(f"async:{reason}")

        gateway = RequestGateway(http, http_session, on_auth_expired=reasons.append)
        gateway.add_auth_expired_listener(async_listener)
        http_session.set_session("access-1")
        api.add("GET", "/patients/", 401)

        with pytest.raises(AuthenticationExpired):
            await gateway.get("/patients/")

        assert reasons == ["no refresh token", "async:no refresh token"]

    async def test_failing_listener_does_not_mask_expiry(
        self, http: httpx.AsyncClient, http_session: SessionManager, api: MockApi
    ) -> None:
        def broken(reason: str) -> None:
            raise RuntimeError("listener bug")

        gateway = RequestGateway(http, http_session, on_auth_expired=broken)
        http_session.set_session("access-1")
        api.add("GET", "/patients/", 401)

        with pytest.raises(AuthenticationExpired):
            await gateway.get("/patients/")


class TestConcurrentRefresh:
    async def test_parallel_401s_share_one_refresh(self, backend: FakePersistenceBackend) -> None:
        gate = asyncio.Event()
        refresher = FakeTokenRefresher(access="access-2", gate=gate)
        session = SessionManager(backend, refresher)
        session.set_session("access-1", "refresh-1")
        rejected = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal rejected
            if request.headers.get("Authorization") == "Bearer access-2":
                return httpx.Response(200, json={"path": request.url.path})
            rejected += 1
            return httpx.Response(401)

        async def release() -> None:
            while rejected < 2:
                await asyncio.sleep(0)
            for _ in range(20):
                await asyncio.sleep(0)
            gate.set()

        async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
            gateway = RequestGateway(http, session)
            first, second, _ = await asyncio.gather(
                gateway.get("/patients/"),
                gateway.get("/laboratory-results/"),
                release(),
            )

        assert first == {"path": "/patients/"}
        assert second == {"path": "/laboratory-results/"}
        assert refresher.calls == ["refresh-1"]
        assert session.get_access_token() == "access-2"
