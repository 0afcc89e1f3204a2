"""Hemodialysis session records."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from nephro_client.fhir import FieldMapper, format_fhir_datetime
from nephro_client.normalizer import NormalizedList
from nephro_client.resources.base import ResourceApi

RESOURCE_TYPE = "HemodialysisSession"

SESSION_FIELDS = FieldMapper(
    {
        "session_date": "session_date",
        "duration_minutes": "duration_minutes",
        "pre_weight": "pre_weight",
        "post_weight": "post_weight",
        "blood_flow_rate": "blood_flow_rate",
        "dialysate_flow_rate": "dialysate_flow_rate",
        "complications": "complications",
        "attending_staff": "attending_staff",
        "patient_id": "patient_id",
    }
)


def session_payload(session: dict[str, Any]) -> dict[str, Any]:
    """Restrict *session* to the known fields; ``session_date`` becomes a FHIR datetime."""
    payload = SESSION_FIELDS.to_backend(session)
    if payload.get("session_date"):
        payload["session_date"] = format_fhir_datetime(payload["session_date"])
    return payload


class DialysisApi(ResourceApi):
    async def by_patient(self, patient_id: Any, page: int = 1, page_size: int = 10) -> NormalizedList:
        return await self._list(
            "/hemodialysis-sessions/",
            {"patient_id": patient_id, "page": page, "page_size": page_size},
        )

    async def get(self, session_id: Any) -> Any:
        result = await self._detail(f"/hemodialysis-sessions/{session_id}/")
        if result is not None:
            self._log_access(RESOURCE_TYPE, session_id, "read")
        return result

    async def create(self, session: dict[str, Any]) -> Any:
        created = await self._gateway.post("/hemodialysis-sessions/", session_payload(session))
        self._log_access(RESOURCE_TYPE, created.get("id") if isinstance(created, dict) else None, "create")
        return created

    async def update(self, session_id: Any, session: dict[str, Any]) -> Any:
        updated = await self._gateway.patch(f"/hemodialysis-sessions/{session_id}/", session_payload(session))
        self._log_access(RESOURCE_TYPE, session_id, "update")
        return updated

    async def delete(self, session_id: Any) -> dict[str, Any]:
        await self._gateway.delete(f"/hemodialysis-sessions/{session_id}/")
        self._log_access(RESOURCE_TYPE, session_id, "delete")
        return {"success": True, "message": "Session deleted successfully"}

    async def by_date_range(self, patient_id: Any, start: Any, end: Any) -> NormalizedList:
        """Sessions of a patient with ``start <= session_date <= end``."""
        return await self._list(
            "/hemodialysis-sessions/",
            {
                "patient_id": patient_id,
                "session_date__gte": format_fhir_datetime(start),
                "session_date__lte": format_fhir_datetime(end),
            },
        )

    async def statistics(self, patient_id: Any) -> Any:
        return await self._detail("/hemodialysis-sessions/statistics/", {"patient_id": patient_id})

    async def batch_create(self, sessions: Iterable[dict[str, Any]]) -> Any:
        return await self._gateway.post("/hemodialysis-sessions/batch/", [session_payload(s) for s in sessions])
