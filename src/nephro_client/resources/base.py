"""Shared plumbing for the per-resource API classes."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Optional, TypeVar

from nephro_client.audit import AuditTrail
from nephro_client.exceptions import AuthenticationExpired
from nephro_client.gateway import RequestGateway
from nephro_client.normalizer import NormalizedList, normalize_list

log = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceApi:
    """Base for resource APIs: gateway access, audit hooks, read degradation.

    When ``degrade_reads`` is True, list reads return an empty
    ``NormalizedList`` and detail reads return ``None`` after an
    ``AuthenticationExpired`` (the session is already cleared and listeners
    notified by then). Writes always raise.
    """

    def __init__(
        self,
        gateway: RequestGateway,
        *,
        audit: Optional[AuditTrail] = None,
        degrade_reads: bool = False,
    ) -> None:
        self._gateway = gateway
        self._audit = audit
        self._degrade_reads = degrade_reads

    async def _fetch_list(self, path: str, params: Optional[dict[str, Any]] = None) -> NormalizedList:
        return normalize_list(await self._gateway.get(path, params=params))

    async def _list(self, path: str, params: Optional[dict[str, Any]] = None) -> NormalizedList:
        return await self._read(self._fetch_list(path, params), path, NormalizedList.empty())

    async def _detail(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._read(self._gateway.get(path, params=params), path, None)

    async def _read(self, pending: Awaitable[T], path: str, fallback: T) -> T:
        """Await a read; on ``AuthenticationExpired`` return *fallback* if degrading.

        The fallback is produced here, after any caching around *pending*, so
        an anonymous empty result is never stored.
        """
        try:
            return await pending
        except AuthenticationExpired:
            if not self._degrade_reads:
                raise
            log.info("Anonymous read of %s degraded to an empty result", path)
            return fallback

    def _log_access(self, resource_type: str, resource_id: Any, action: str) -> None:
        if self._audit is not None:
            self._audit.log_access(resource_type, resource_id, action)

    def _log_security(self, event_type: str, details: dict[str, Any], outcome: str = "success") -> None:
        if self._audit is not None:
            self._audit.log_security(event_type, details, outcome)
