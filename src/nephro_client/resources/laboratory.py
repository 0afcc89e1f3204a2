"""Laboratory results, with an optional FHIR ``Observation`` view."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from nephro_client import fhir
from nephro_client.fhir import FieldMapper, format_fhir_datetime
from nephro_client.normalizer import NormalizedList, normalize_list
from nephro_client.resources.base import ResourceApi

RESOURCE_TYPE = "LaboratoryResult"

LAB_FIELDS = FieldMapper(
    {
        "date": "test_date",
        "test_date": "test_date",
        "hemodialysis_session_id": "hemodialysis_session_id",
        "patient_id": "patient_id",
        "hemoglobin": "hemoglobin",
        "hematocrit": "hematocrit",
        "potassium": "potassium",
        "creatinine": "creatinine",
        "urea": "urea",
        "phosphorus": "phosphorus",
        "calcium": "calcium",
        "albumin": "albumin",
        "kt_v": "kt_v",
    }
)


def lab_payload(result: dict[str, Any]) -> dict[str, Any]:
    payload = LAB_FIELDS.to_backend(result)
    if payload.get("test_date"):
        payload["test_date"] = format_fhir_datetime(payload["test_date"])
    return payload


def to_observation(lab: dict[str, Any], test_type: str) -> fhir.Resource:
    """One ``Observation`` for one measured value of a lab result row."""
    code, unit = fhir.LAB_TESTS[test_type]
    return {
        "resourceType": fhir.OBSERVATION,
        "status": "final",
        "code": {"coding": [{"system": fhir.LOINC_SYSTEM, "code": code, "display": test_type}]},
        "subject": {"reference": f"{fhir.PATIENT}/{lab.get('patient_id')}"},
        "effectiveDateTime": format_fhir_datetime(lab.get("test_date") or lab.get("date")),
        "valueQuantity": {"value": lab[test_type], "unit": unit, "system": fhir.UCUM_SYSTEM},
    }


class LaboratoryApi(ResourceApi):
    async def by_patient(self, patient_id: Any) -> NormalizedList:
        return await self._list("/laboratory-results/", {"patient_id": patient_id})

    async def by_session(self, session_id: Any) -> NormalizedList:
        return await self._list("/laboratory-results/", {"session_id": session_id})

    async def get(self, result_id: Any) -> Any:
        result = await self._detail(f"/laboratory-results/{result_id}/")
        if result is not None:
            self._log_access(RESOURCE_TYPE, result_id, "read")
        return result

    async def create(self, result: dict[str, Any]) -> Any:
        created = await self._gateway.post("/laboratory-results/", lab_payload(result))
        self._log_access(RESOURCE_TYPE, created.get("id") if isinstance(created, dict) else None, "create")
        return created

    async def update(self, result_id: Any, result: dict[str, Any]) -> Any:
        updated = await self._gateway.patch(f"/laboratory-results/{result_id}/", lab_payload(result))
        self._log_access(RESOURCE_TYPE, result_id, "update")
        return updated

    async def delete(self, result_id: Any) -> dict[str, Any]:
        await self._gateway.delete(f"/laboratory-results/{result_id}/")
        self._log_access(RESOURCE_TYPE, result_id, "delete")
        return {"success": True, "message": "Lab result deleted successfully"}

    async def as_fhir(self, patient_id: Any) -> Optional[fhir.Resource]:
        """A patient's results as a Bundle of Observations.

        A Bundle from the server is returned as is; a plain list is turned
        into one Observation per non-empty lab value.
        """
        raw = await self._detail("/laboratory-results/", {"patient_id": patient_id, "format": "fhir"})
        if raw is None:
            return None
        if isinstance(raw, dict) and raw.get("resourceType") == "Bundle":
            return raw

        observations = [
            to_observation(lab, test_type)
            for lab in normalize_list(raw).items
            if isinstance(lab, dict)
            for test_type in fhir.LAB_TESTS
            if lab.get(test_type)
        ]
        if self._audit is not None:
            self._audit.log_export(fhir.OBSERVATION, len(observations), "fhir")
        return {
            "resourceType": "Bundle",
            "type": "collection",
            "total": len(observations),
            "entry": [{"resource": obs} for obs in observations],
        }

    async def trends(self, patient_id: Any, test_type: str, days: int = 30) -> list[dict[str, Any]]:
        """``[{"date", "value"}]`` for *test_type* over the last *days*, oldest first."""
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=days)
        results = await self._list(
            "/laboratory-results/",
            {
                "patient_id": patient_id,
                "test_date__gte": format_fhir_datetime(start),
                "test_date__lte": format_fhir_datetime(end),
            },
        )
        points = [
            {"date": lab.get("test_date"), "value": lab[test_type]}
            for lab in results.items
            if isinstance(lab, dict) and lab.get(test_type) is not None
        ]
        return sorted(points, key=lambda p: str(p["date"] or ""))
