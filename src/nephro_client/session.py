"""Session/Token Manager: the single source of truth for who is logged in.

State lives in an ``IPersistenceBackend`` under the keys ``token``,
``refresh_token``, ``userRole``, ``userId`` and ``relatedEntityId``.
Nothing else writes those keys.

Refresh is single-flight: concurrent callers presenting the same refresh
token await one shared in-flight exchange instead of each hitting the
refresh endpoint.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import dataclasses
import json
import logging
import time
from typing import Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from nephro_client.exceptions import RefreshFailed
from nephro_client.persistence import IPersistenceBackend

log = logging.getLogger(__name__)

TOKEN_KEY = "token"
REFRESH_TOKEN_KEY = "refresh_token"
ROLE_KEY = "userRole"
USER_ID_KEY = "userId"
RELATED_ENTITY_KEY = "relatedEntityId"

SESSION_KEYS = (TOKEN_KEY, REFRESH_TOKEN_KEY, ROLE_KEY, USER_ID_KEY, RELATED_ENTITY_KEY)


class Session(BaseModel):
    """Snapshot of the authentication state for the current actor."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    role: Optional[str] = None
    user_id: Optional[str] = None
    related_entity_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)


@dataclasses.dataclass(frozen=True)
class TokenPair:
    """Result of a refresh exchange. ``refresh`` is set only when rotated."""

    access: str
    refresh: Optional[str] = None


@runtime_checkable
class ITokenRefresher(Protocol):
    """Exchanges a refresh token for a new access token."""

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Return the new tokens. Raises ``RefreshFailed`` on any failure."""
        ...


class HttpTokenRefresher:
    """Calls ``POST <refresh_path> {"refresh": ...}`` and reads ``access``.

    The call is made directly on the HTTP client, outside the gateway, so a
    rejected refresh can never trigger another refresh.
    """

    def __init__(self, http: httpx.AsyncClient, path: str = "/auth/refresh/") -> None:
        self._http = http
        self._path = path

    async def refresh(self, refresh_token: str) -> TokenPair:
        try:
            response = await self._http.post(
                self._path,
                json={"refresh": refresh_token},
                headers={"Content-Type": "application/json"},
            )
        except httpx.TransportError as e:
            raise RefreshFailed(f"Token refresh transport error: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise RefreshFailed(f"Token refresh rejected with HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RefreshFailed("Token refresh returned a non-JSON body") from e

        access = data.get("access") if isinstance(data, dict) else None
        if not access:
            raise RefreshFailed("Token refresh response has no access token")
        return TokenPair(access=str(access), refresh=data.get("refresh") or None)


class SessionManager:
    """Owns the bearer token, refresh token and identity fields.

    Parameters
    ----------
    backend:
        Key-value store the session fields are persisted in.
    refresher:
        Collaborator that performs the refresh exchange. Without one,
        ``refresh`` always raises ``RefreshFailed``.
    """

    def __init__(
        self,
        backend: IPersistenceBackend,
        refresher: ITokenRefresher | None = None,
    ) -> None:
        self._backend = backend
        self._refresher = refresher
        self._inflight: dict[str, asyncio.Task[TokenPair]] = {}
        # bumped by clear(); a refresh that finishes after a clear is not persisted
        self._generation = 0

    @property
    def refresher(self) -> ITokenRefresher | None:
        return self._refresher

    @refresher.setter
    def refresher(self, value: ITokenRefresher | None) -> None:
        self._refresher = value

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def set_session(
        self,
        access_token: str,
        refresh_token: str | None = None,
        role: str | None = None,
        user_id: str | None = None,
        related_entity_id: str | None = None,
    ) -> None:
        """Replace the whole session. Fields passed as ``None`` are removed."""
        values = {
            TOKEN_KEY: access_token,
            REFRESH_TOKEN_KEY: refresh_token,
            ROLE_KEY: role,
            USER_ID_KEY: user_id,
            RELATED_ENTITY_KEY: related_entity_id,
        }
        self._backend.update({key: None if value in (None, "") else str(value) for key, value in values.items()})
        log.debug("Session set (role=%s, user_id=%s)", role, user_id)

    def _get(self, key: str) -> str | None:
        try:
            value = self._backend.load(key)
        except KeyError:
            return None
        return value or None

    def get_access_token(self) -> str | None:
        return self._get(TOKEN_KEY)

    def get_refresh_token(self) -> str | None:
        return self._get(REFRESH_TOKEN_KEY)

    def current(self) -> Session:
        """Return a snapshot of every session field."""
        return Session(
            access_token=self._get(TOKEN_KEY),
            refresh_token=self._get(REFRESH_TOKEN_KEY),
            role=self._get(ROLE_KEY),
            user_id=self._get(USER_ID_KEY),
            related_entity_id=self._get(RELATED_ENTITY_KEY),
        )

    def is_authenticated(self) -> bool:
        """True iff an access token is present. Expiry is not checked."""
        return self.get_access_token() is not None

    def is_token_expired(self, leeway: float = 0.0) -> bool:
        """Best-effort JWT ``exp`` check on the stored access token.

        The signature is not verified. Missing, opaque or undecodable
        tokens count as expired.
        """
        token = self.get_access_token()
        if not token:
            return True
        exp = _jwt_expiry(token)
        if exp is None:
            return True
        return time.time() + leeway >= exp

    def clear(self) -> None:
        """Remove every session field. Safe to call repeatedly."""
        self._backend.update(dict.fromkeys(SESSION_KEYS))
        self._generation += 1

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, refresh_token: str) -> str:
        """Exchange *refresh_token* for a new access token and persist it.

        Raises ``RefreshFailed`` without touching stored state on failure.
        """
        if self._refresher is None:
            raise RefreshFailed("No token refresher configured")

        task = self._inflight.get(refresh_token)
        if task is None:
            task = asyncio.ensure_future(self._exchange(refresh_token, self._generation))
            self._inflight[refresh_token] = task
            task.add_done_callback(lambda done, key=refresh_token: self._forget(key, done))
        else:
            log.debug("Joining in-flight token refresh")

        pair = await asyncio.shield(task)
        return pair.access

    def _forget(self, key: str, task: asyncio.Task[TokenPair]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _exchange(self, refresh_token: str, generation: int) -> TokenPair:
        assert self._refresher is not None
        try:
            pair = await self._refresher.refresh(refresh_token)
        except RefreshFailed:
            log.warning("Token refresh failed")
            raise
        except Exception as e:
            log.warning("Token refresh failed: %s", e)
            raise RefreshFailed(str(e)) from e

        if generation != self._generation:
            log.info("Session cleared during token refresh; new token discarded")
            return pair

        self._backend.save(TOKEN_KEY, pair.access)
        if pair.refresh:
            self._backend.save(REFRESH_TOKEN_KEY, pair.refresh)
        log.info("Access token refreshed")
        return pair


def _jwt_expiry(token: str) -> float | None:
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment))
    except (binascii.Error, ValueError):
        return None
    exp = payload.get("exp") if isinstance(payload, dict) else None
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)
