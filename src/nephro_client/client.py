"""``NephroClient``: one object wiring settings, session, gateway and resource APIs."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from nephro_client.audit import AuditTrail
from nephro_client.cache import MemoryCache
from nephro_client.config import AppSettings
from nephro_client.gateway import AuthExpiredListener, RequestGateway
from nephro_client.persistence import IPersistenceBackend, create_persistence_backend
from nephro_client.resources import (
    AuthApi,
    DialysisApi,
    InstitutionsApi,
    LaboratoryApi,
    PatientsApi,
    UploadsApi,
    UsersApi,
)
from nephro_client.session import HttpTokenRefresher, SessionManager

log = logging.getLogger(__name__)


class NephroClient:
    """Async client for the dialysis-care API.

    Usage::

        async with NephroClient() as client:
            await client.auth.login("nurse@example.org", "secret")
            page = await client.patients.list()

    Parameters
    ----------
    settings:
        Application settings; read from the environment when omitted.
    backend:
        Key-value store for the session and audit trail. Defaults to the
        one selected by ``settings.session``.
    transport:
        Optional ``httpx`` transport (e.g. ``httpx.MockTransport``).
    on_auth_expired:
        Listener told that the session ended and a new login is needed.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        *,
        backend: Optional[IPersistenceBackend] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_auth_expired: Optional[AuthExpiredListener] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        api = self.settings.api

        self.backend = backend or create_persistence_backend(self.settings.session)
        self.http = httpx.AsyncClient(base_url=api.base_url, timeout=api.timeout, transport=transport)
        self.session = SessionManager(self.backend, HttpTokenRefresher(self.http, api.refresh_path))
        self.gateway = RequestGateway(self.http, self.session, on_auth_expired=on_auth_expired)

        self.cache: Optional[MemoryCache] = None
        if self.settings.cache.enabled:
            self.cache = MemoryCache(max_entries=self.settings.cache.max_entries)
        self.audit: Optional[AuditTrail] = None
        if self.settings.audit.enabled:
            self.audit = AuditTrail(self.session, self.backend, max_events=self.settings.audit.max_events)

        degrade = api.degrade_reads_on_auth_expired
        self.auth = AuthApi(self.gateway, self.session, api, audit=self.audit, cache=self.cache)
        self.patients = PatientsApi(
            self.gateway,
            audit=self.audit,
            degrade_reads=degrade,
            cache=self.cache,
            institutions_ttl_seconds=self.settings.cache.institutions_ttl_seconds,
        )
        self.dialysis = DialysisApi(self.gateway, audit=self.audit, degrade_reads=degrade)
        self.laboratory = LaboratoryApi(self.gateway, audit=self.audit, degrade_reads=degrade)
        self.institutions = InstitutionsApi(self.gateway, audit=self.audit, degrade_reads=degrade)
        self.users = UsersApi(
            self.gateway,
            self.session,
            audit=self.audit,
            degrade_reads=degrade,
            register_path=api.register_path,
        )
        self.uploads = UploadsApi(self.gateway, audit=self.audit)

        # a terminal 401 drops cached reads, like logout does
        self.gateway.add_auth_expired_listener(self._on_expired)
        log.debug("NephroClient ready (base_url=%s)", api.base_url)

    async def _on_expired(self, reason: str) -> None:
        if self.cache is not None:
            await self.cache.clear()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> NephroClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
