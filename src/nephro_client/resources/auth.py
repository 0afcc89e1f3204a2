"""Login, registration, logout and explicit token refresh."""

from __future__ import annotations

import logging
from typing import Any, Optional

from nephro_client.audit import AuditTrail
from nephro_client.cache import MemoryCache
from nephro_client.config import ApiConfig
from nephro_client.exceptions import (
    AuthenticationExpired,
    LoginFailed,
    NephroError,
    NotLoggedIn,
    RefreshFailed,
)
from nephro_client.gateway import RequestGateway
from nephro_client.resources.base import ResourceApi
from nephro_client.session import SessionManager

log = logging.getLogger(__name__)


def _first(*values: Any) -> Optional[str]:
    for value in values:
        if value is not None and value != "":
            return str(value)
    return None


class AuthApi(ResourceApi):
    """Authentication endpoints; the only writer of a fresh session."""

    def __init__(
        self,
        gateway: RequestGateway,
        session: SessionManager,
        config: Optional[ApiConfig] = None,
        *,
        audit: Optional[AuditTrail] = None,
        cache: Optional[MemoryCache] = None,
    ) -> None:
        super().__init__(gateway, audit=audit)
        self._session = session
        self._config = config or ApiConfig()
        self._cache = cache

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Authenticate and store the returned tokens and identity.

        Accepts ``access_token``/``token``/``tokens.access`` for the access
        token and reads identity fields from the top level or ``user``.
        """
        log.info("Logging in as %s", email)
        try:
            data = await self._gateway.post(
                self._config.login_path,
                {"email": email, "password": password},
                requires_auth=False,
            )
        except NephroError as e:
            self._log_security("login_failed", {"email": email, "error": str(e)}, "failure")
            raise

        data = data if isinstance(data, dict) else {}
        tokens = data.get("tokens") if isinstance(data.get("tokens"), dict) else {}
        user = data.get("user") if isinstance(data.get("user"), dict) else {}

        access = _first(data.get("access_token"), data.get("token"), tokens.get("access"))
        if access is None:
            self._log_security("login_failed", {"email": email, "error": "no token"}, "failure")
            raise LoginFailed("Authentication failed: No token received")

        role = _first(data.get("role"), user.get("role"))
        user_id = _first(data.get("id"), user.get("id"))
        self._session.set_session(
            access,
            refresh_token=_first(data.get("refresh_token"), tokens.get("refresh")),
            role=role,
            user_id=user_id,
            related_entity_id=_first(data.get("relatedEntityId"), user.get("relatedEntityId")),
        )
        await self._drop_cached_reads()
        log.info("Login successful (role=%s)", role)
        self._log_security("login", {"email": email, "role": role, "user_id": user_id})
        return data

    async def register(self, user_data: dict[str, Any]) -> Any:
        """Create an account. The backend answers with the user, not tokens."""
        payload = {
            "email": user_data.get("email"),
            "password": user_data.get("password"),
            "password_confirm": user_data.get("password_confirm") or user_data.get("password"),
            "first_name": user_data.get("first_name") or user_data.get("firstName") or "",
            "last_name": user_data.get("last_name") or user_data.get("lastName") or "",
            "phone": user_data.get("phone") or "",
            "role": user_data.get("role") or "patient",
        }
        try:
            created = await self._gateway.post(self._config.register_path, payload, requires_auth=False)
        except NephroError as e:
            self._log_security("registration_failed", {"email": payload["email"], "error": str(e)}, "failure")
            raise
        self._log_security("registration", {"email": payload["email"], "role": payload["role"]})
        return created

    async def logout(self) -> None:
        identity = self._session.current()
        self._log_security("logout", {"user_id": identity.user_id, "user_role": identity.role})
        self._session.clear()
        await self._drop_cached_reads()
        log.info("Logged out")

    def is_authenticated(self) -> bool:
        return self._session.is_authenticated()

    def is_admin(self) -> bool:
        return self._session.current().role == "admin"

    def auth_status(self) -> dict[str, Any]:
        """Session summary safe to display: the token is truncated."""
        identity = self._session.current()
        token = identity.access_token
        return {
            "is_authenticated": identity.is_authenticated,
            "token": f"{token[:15]}..." if token else None,
            "user_role": identity.role,
            "user_id": identity.user_id,
            "related_entity_id": identity.related_entity_id,
        }

    async def refresh(self) -> str:
        """Refresh the access token now; on rejection the session ends."""
        refresh_token = self._session.get_refresh_token()
        if refresh_token is None:
            raise NotLoggedIn("No refresh token available")
        try:
            token = await self._session.refresh(refresh_token)
        except RefreshFailed as e:
            self._log_security("token_refresh_failed", {"error": str(e)}, "failure")
            self._session.clear()
            await self._drop_cached_reads()
            raise AuthenticationExpired(f"Authentication required: {e}") from e
        self._log_security("token_refresh", {"user_id": self._session.current().user_id})
        return token

    async def _drop_cached_reads(self) -> None:
        # cached reads belong to the session that made them
        if self._cache is not None:
            await self._cache.clear()
