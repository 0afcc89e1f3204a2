"""Dialysis institutions (care providers)."""

from __future__ import annotations

from typing import Any

from nephro_client.normalizer import NormalizedList
from nephro_client.resources.base import ResourceApi

RESOURCE_TYPE = "Institution"


class InstitutionsApi(ResourceApi):
    async def list(self, page: int = 1, limit: int = 10) -> NormalizedList:
        return await self._list("/institutions", {"page": page, "limit": limit})

    async def get(self, institution_id: Any) -> Any:
        result = await self._detail(f"/institutions/{institution_id}")
        if result is not None:
            self._log_access(RESOURCE_TYPE, institution_id, "read")
        return result

    async def create(self, institution: dict[str, Any]) -> Any:
        created = await self._gateway.post("/institutions", institution)
        self._log_access(RESOURCE_TYPE, created.get("id") if isinstance(created, dict) else None, "create")
        return created

    async def update(self, institution_id: Any, institution: dict[str, Any]) -> Any:
        updated = await self._gateway.patch(f"/institutions/{institution_id}", institution)
        self._log_access(RESOURCE_TYPE, institution_id, "update")
        return updated

    async def delete(self, institution_id: Any) -> Any:
        result = await self._gateway.delete(f"/institutions/{institution_id}")
        self._log_access(RESOURCE_TYPE, institution_id, "delete")
        return result
