"""Request Gateway: one logical API call with at most one silent token refresh.

Flow for ``execute(descriptor)``::

    send ──► 2xx ──────────────────────────────► body
      │  └─► 4xx/5xx (not 401) ────────────────► RemoteError
      └─► 401 ─┬─ retried or no refresh token ─► clear + AuthenticationExpired
               └─ retried=True, refresh ─┬─ ok ─► re-send (once)
                                         └─ RefreshFailed ─► clear + AuthenticationExpired

A 401 on a call made without credentials (``requires_auth=False``, e.g. a
login with a wrong password) is an ordinary ``RemoteError``.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, NoReturn, Optional, Sequence, Union

import httpx

from nephro_client.exceptions import (
    AuthenticationExpired,
    NetworkError,
    RefreshFailed,
    RemoteError,
)
from nephro_client.normalizer import extract_error_message
from nephro_client.pipeline import (
    DEFAULT_REQUEST_STAGES,
    DEFAULT_RESPONSE_STAGES,
    ApiResponse,
    RequestDescriptor,
    RequestStage,
    ResponseStage,
    bearer_auth,
    build_request,
    from_httpx,
    run_request_stages,
    run_response_stages,
)
from nephro_client.session import SessionManager

log = logging.getLogger(__name__)

AuthExpiredListener = Callable[[str], Union[None, Awaitable[None]]]


class RequestGateway:
    """Executes ``RequestDescriptor`` objects against the remote API.

    Parameters
    ----------
    http:
        ``httpx.AsyncClient`` configured with the API base URL.
    session:
        The ``SessionManager`` that owns the tokens.
    request_stages / response_stages:
        Pure transforms applied to every outbound request / inbound
        response, in order. The bearer header is applied after them.
    on_auth_expired:
        Optional listener told (with a reason string) that the session has
        ended and the user must log in again.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        session: SessionManager,
        *,
        request_stages: Sequence[RequestStage] = DEFAULT_REQUEST_STAGES,
        response_stages: Sequence[ResponseStage] = DEFAULT_RESPONSE_STAGES,
        on_auth_expired: Optional[AuthExpiredListener] = None,
    ) -> None:
        self._http = http
        self._session = session
        self._request_stages = tuple(request_stages)
        self._response_stages = tuple(response_stages)
        self._listeners: list[AuthExpiredListener] = []
        if on_auth_expired is not None:
            self._listeners.append(on_auth_expired)

    @property
    def session(self) -> SessionManager:
        return self._session

    def add_auth_expired_listener(self, listener: AuthExpiredListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, descriptor: RequestDescriptor) -> Any:
        """Run *descriptor*; return the decoded body of a 2xx response.

        Raises ``NetworkError``, ``RemoteError`` or ``AuthenticationExpired``.
        """
        response = await self._send(descriptor)

        while response.status == 401:
            if not descriptor.requires_auth:
                break

            refresh_token = self._session.get_refresh_token()
            if descriptor.retried or refresh_token is None:
                reason = "replayed request rejected" if descriptor.retried else "no refresh token"
                await self._expire(descriptor, reason)

            descriptor.retried = True
            log.info("401 on %s %s; refreshing access token", descriptor.method, descriptor.path)
            try:
                await self._session.refresh(refresh_token)
            except RefreshFailed as e:
                await self._expire(descriptor, f"token refresh failed: {e}", cause=e)

            response = await self._send(descriptor)

        if not response.ok:
            message = extract_error_message(response.body)
            log.debug("HTTP %d on %s %s: %s", response.status, descriptor.method, descriptor.path, message)
            raise RemoteError(response.status, response.body, message)

        return response.body

    async def _send(self, descriptor: RequestDescriptor) -> ApiResponse:
        request = run_request_stages(build_request(descriptor), self._request_stages)
        token = self._session.get_access_token() if descriptor.requires_auth else None
        request = bearer_auth(token)(request)

        try:
            raw = await self._http.request(
                request.method,
                request.path,
                headers=request.headers,
                json=request.json,
                params=request.params,
                data=request.data,
                files=request.files,
            )
        except httpx.TransportError as e:
            log.warning("Network error on %s %s: %s", request.method, request.path, e)
            raise NetworkError(f"{request.method} {request.path} failed: {e}") from e

        return run_response_stages(from_httpx(raw), self._response_stages)

    async def _expire(
        self,
        descriptor: RequestDescriptor,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> NoReturn:
        """Clear the session, tell listeners, raise ``AuthenticationExpired``."""
        self._session.clear()
        log.warning("Session expired on %s %s (%s)", descriptor.method, descriptor.path, reason)
        for listener in self._listeners:
            try:
                result = listener(reason)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("auth-expired listener failed")
        raise AuthenticationExpired(f"Authentication required: {reason}") from cause

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    async def get(self, path: str, params: Optional[dict[str, Any]] = None, *, requires_auth: bool = True) -> Any:
        return await self.execute(RequestDescriptor("GET", path, params=params, requires_auth=requires_auth))

    async def post(self, path: str, body: Any = None, *, requires_auth: bool = True) -> Any:
        return await self.execute(RequestDescriptor("POST", path, body=body, requires_auth=requires_auth))

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.execute(RequestDescriptor("PUT", path, body=body))

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.execute(RequestDescriptor("PATCH", path, body=body))

    async def delete(self, path: str) -> Any:
        return await self.execute(RequestDescriptor("DELETE", path))

    async def upload(self, path: str, files: dict[str, Any], data: Optional[dict[str, Any]] = None) -> Any:
        return await self.execute(RequestDescriptor("POST", path, body=data, files=files))
