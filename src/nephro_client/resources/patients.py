"""Patient records, exchanged with the backend as FHIR ``Patient`` resources."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from nephro_client import fhir
from nephro_client.audit import AuditTrail
from nephro_client.cache import MemoryCache, cache_key, cached_call
from nephro_client.gateway import RequestGateway
from nephro_client.normalizer import NormalizedList, denormalize_record, normalize_record
from nephro_client.resources.base import ResourceApi

log = logging.getLogger(__name__)

INSTITUTIONS_TTL_SECONDS = 600


class PatientsApi(ResourceApi):
    """CRUD, search and bulk operations on patients.

    Reads return flat records (``first_name``, ``phone``, ``institution_id``
    ...); writes accept the same flat shape and send FHIR.
    """

    def __init__(
        self,
        gateway: RequestGateway,
        *,
        audit: Optional[AuditTrail] = None,
        degrade_reads: bool = False,
        cache: Optional[MemoryCache] = None,
        institutions_ttl_seconds: int = INSTITUTIONS_TTL_SECONDS,
    ) -> None:
        super().__init__(gateway, audit=audit, degrade_reads=degrade_reads)
        self._cache = cache
        self._institutions_ttl = institutions_ttl_seconds

    async def list(self, page: int = 1, page_size: int = 10) -> NormalizedList:
        result = await self._list("/patients/", {"page": page, "page_size": page_size})
        return _flatten(result)

    async def get(self, patient_id: Any) -> Optional[dict[str, Any]]:
        raw = await self._detail(f"/patients/{patient_id}/")
        if raw is None:
            return None
        self._log_access(fhir.PATIENT, patient_id, "read")
        return normalize_record(raw, fhir.PATIENT)

    async def create(self, patient: dict[str, Any]) -> dict[str, Any]:
        created = normalize_record(
            await self._gateway.post("/patients/", denormalize_record(patient, fhir.PATIENT)),
            fhir.PATIENT,
        )
        self._log_access(fhir.PATIENT, _id_of(created), "create")
        return created

    async def update(self, patient_id: Any, patient: dict[str, Any]) -> dict[str, Any]:
        updated = normalize_record(
            await self._gateway.patch(f"/patients/{patient_id}/", denormalize_record(patient, fhir.PATIENT)),
            fhir.PATIENT,
        )
        self._log_access(fhir.PATIENT, patient_id, "update")
        return updated

    async def delete(self, patient_id: Any) -> Any:
        result = await self._gateway.delete(f"/patients/{patient_id}/")
        self._log_access(fhir.PATIENT, patient_id, "delete")
        return result

    async def search(self, **criteria: Any) -> NormalizedList:
        """Search with FHIR parameters (``name``, ``gender``, ``birthdate`` ...).

        The server may answer with a FHIR Bundle or a paginated list.
        """
        result = await self._list("/patients/search", criteria)
        return _flatten(result)

    async def validate(self, patient: dict[str, Any]) -> Any:
        """Server-side FHIR validation; client-side problems are audited too."""
        resource = denormalize_record(patient, fhir.PATIENT)
        if self._audit is not None:
            self._audit.log_validation(fhir.PATIENT, patient.get("id"), fhir.validate_resource(resource, fhir.PATIENT))
        return await self._gateway.post("/patients/validate_fhir/", resource)

    async def bulk_import(self, patients: Iterable[dict[str, Any]]) -> Any:
        resources = [denormalize_record(p, fhir.PATIENT) for p in patients]
        log.info("Bulk importing %d patients", len(resources))
        result = await self._gateway.post("/patients/bulk_import/", resources)
        if self._audit is not None:
            self._audit.log_export(fhir.PATIENT, len(resources), "fhir-import")
        return result

    async def list_institutions(self) -> NormalizedList:
        """Organizations patients can belong to; cached per user for a few minutes."""
        user_id = self._gateway.session.current().user_id
        loaded = cached_call(
            self._cache,
            cache_key("institutions", user=user_id),
            lambda: self._fetch_list("/organizations/"),
            self._institutions_ttl,
        )
        return await self._read(loaded, "/organizations/", NormalizedList.empty())


def _flatten(result: NormalizedList) -> NormalizedList:
    return result.model_copy(update={"items": [normalize_record(item, fhir.PATIENT) for item in result.items]})


def _id_of(record: Any) -> Any:
    return record.get("id") if isinstance(record, dict) else None
