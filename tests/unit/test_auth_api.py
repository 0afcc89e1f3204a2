"""Tests for AuthApi: login token shapes, register payload, logout, refresh."""

from __future__ import annotations

import pytest

from nephro_client.client import NephroClient
from nephro_client.exceptions import AuthenticationExpired, LoginFailed, NotLoggedIn, RemoteError
from tests.fakes.mock_api import MockApi


class TestLogin:
    async def test_flat_login_response(self, client: NephroClient, api: MockApi) -> None:
        api.add(
            "POST",
            "/auth/login/",
            200,
            {"access_token": "T1", "refresh_token": "R1", "role": "patient", "id": "7", "relatedEntityId": "42"},
        )
        await client.auth.login("ana@example.org", "pw")

        session = client.session.current()
        assert (session.access_token, session.refresh_token, session.role, session.user_id, session.related_entity_id) == (
            "T1",
            "R1",
            "patient",
            "7",
            "42",
        )
        assert MockApi.body(api.requests[0]) == {"email": "ana@example.org", "password": "pw"}
        assert "Authorization" not in api.requests[0].headers

    async def test_nested_tokens_and_user(self, client: NephroClient, api: MockApi) -> None:
        api.add(
            "POST",
            "/auth/login/",
            200,
            {"tokens": {"access": "T2", "refresh": "R2"}, "user": {"id": 3, "role": "admin"}},
        )
        await client.auth.login("admin@example.org", "pw")
        session = client.session.current()
        assert session.access_token == "T2"
        assert session.refresh_token == "R2"
        assert session.user_id == "3"
        assert session.role == "admin"
        assert client.auth.is_admin() is True

    async def test_token_field(self, client: NephroClient, api: MockApi) -> None:
        api.add("POST", "/auth/login/", 200, {"token": "T3"})
        await client.auth.login("x@example.org", "pw")
        assert client.session.get_access_token() == "T3"
        assert client.session.get_refresh_token() is None
        assert client.session.current().role is None

    async def test_no_token_is_login_failed(self, client: NephroClient, api: MockApi) -> None:
        api.add("POST", "/auth/login/", 200, {"user": {"id": 1}})
        with pytest.raises(LoginFailed):
            await client.auth.login("x@example.org", "pw")
        assert client.auth.is_authenticated() is False

    async def test_wrong_password_is_remote_error(self, client: NephroClient, api: MockApi) -> None:
        api.add("POST", "/auth/login/", 401, {"detail": "No active account found with the given credentials"})
        with pytest.raises(RemoteError, match="No active account"):
            await client.auth.login("x@example.org", "bad")
        assert client.audit is not None
        assert client.audit.events[-1].event_type == "login_failed"
        assert client.audit.events[-1].outcome == "failure"

    async def test_login_is_audited(self, client: NephroClient, api: MockApi) -> None:
        api.add("POST", "/auth/login/", 200, {"access_token": "T1", "id": "7", "role": "patient"})
        await client.auth.login("ana@example.org", "pw")
        assert client.audit is not None
        event = client.audit.events[-1]
        assert event.event_type == "login"
        assert event.user_id == "7"


class TestRegister:
    async def test_payload_defaults_and_aliases(self, client: NephroClient, api: MockApi) -> None:
        api.add("POST", "/auth/register/", 201, {"id": 11, "email": "new@example.org"})
        created = await client.auth.register(
            {"email": "new@example.org", "password": "pw", "firstName": "Rui", "lastName": "Costa"}
        )
        assert created == {"id": 11, "email": "new@example.org"}
        assert MockApi.body(api.requests[0]) == {
            "email": "new@example.org",
            "password": "pw",
            "password_confirm": "pw",
            "first_name": "Rui",
            "last_name": "Costa",
            "phone": "",
            "role": "patient",
        }
        assert client.auth.is_authenticated() is False


class TestSessionHelpers:
    async def test_logout_clears_session(self, logged_in: NephroClient) -> None:
        await logged_in.auth.logout()
        assert logged_in.auth.is_authenticated() is False
        assert logged_in.audit is not None
        assert logged_in.audit.events[-1].event_type == "logout"
        assert logged_in.audit.events[-1].user_id == "7"

    def test_auth_status_masks_token(self, client: NephroClient) -> None:
        client.session.set_session("eyJhbGciOiJIUzI1NiJ9.payload.signature", "r", role="patient", user_id="5")
        status = client.auth.auth_status()
        assert status["token"] == "eyJhbGciOiJIUzI..."
        assert status["is_authenticated"] is True
        assert status["user_role"] == "patient"
        assert status["user_id"] == "5"

    def test_auth_status_logged_out(self, client: NephroClient) -> None:
        assert client.auth.auth_status()["token"] is None
        assert client.auth.is_admin() is False


class TestExplicitRefresh:
    async def test_refresh(self, logged_in: NephroClient, api: MockApi) -> None:
        api.add("POST", "/auth/refresh/", 200, {"access": "access-2"})
        assert await logged_in.auth.refresh() == "access-2"
        assert logged_in.session.get_access_token() == "access-2"

    async def test_refresh_rejected_ends_session(self, logged_in: NephroClient, api: MockApi) -> None:
        api.add("POST", "/auth/refresh/", 401, {"detail": "Token is blacklisted"})
        with pytest.raises(AuthenticationExpired):
            await logged_in.auth.refresh()
        assert logged_in.auth.is_authenticated() is False

    async def test_refresh_without_token(self, client: NephroClient) -> None:
        with pytest.raises(NotLoggedIn):
            await client.auth.refresh()
