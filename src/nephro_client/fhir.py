"""FHIR R4 building blocks: names, contact points, bundles, dates, LOINC codes."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from nephro_client.exceptions import InvalidPayload

# Type alias for a FHIR resource dict
Resource = dict[str, Any]

PATIENT = "Patient"
ORGANIZATION = "Organization"
PRACTITIONER = "Practitioner"
OBSERVATION = "Observation"

GENDERS = ("male", "female", "other", "unknown")

LOINC_SYSTEM = "http://loinc.org"
UCUM_SYSTEM = "http://unitsofmeasure.org"

# Lab test -> (LOINC code, UCUM unit)
LAB_TESTS: dict[str, tuple[str, str]] = {
    "hemoglobin": ("718-7", "g/dL"),
    "hematocrit": ("4544-3", "%"),
    "potassium": ("2823-3", "mmol/L"),
    "creatinine": ("2160-0", "mg/dL"),
    "urea": ("3094-0", "mg/dL"),
    "phosphorus": ("2777-1", "mg/dL"),
    "calcium": ("17861-6", "mg/dL"),
    "albumin": ("1751-7", "g/dL"),
}


def loinc_code(test_type: str) -> str:
    """LOINC code for a dialysis lab test, ``"unknown"`` if unmapped."""
    entry = LAB_TESTS.get(test_type.lower())
    return entry[0] if entry else "unknown"


# ------------------------------------------------------------------
# Dates
# ------------------------------------------------------------------


def format_fhir_date(value: Any) -> Optional[str]:
    """``YYYY-MM-DD`` from a date, datetime or ISO string."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return str(value)


def format_fhir_datetime(value: Any) -> Optional[str]:
    """Full ISO-8601 datetime; date-only input becomes midnight UTC.

    Strings are expected as ``YYYY-MM-DD`` or an ISO datetime; other date
    strings raise ``InvalidPayload``.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).isoformat()
    if isinstance(value, str) and "T" not in value:
        try:
            parsed = date.fromisoformat(value)
        except ValueError as e:
            raise InvalidPayload(f"Expected a YYYY-MM-DD date, got {value!r}") from e
        return format_fhir_datetime(parsed)
    return str(value)


# ------------------------------------------------------------------
# Names and contact points
# ------------------------------------------------------------------


def extract_human_name(names: Any) -> tuple[str, str]:
    """``(first, last)`` from the first HumanName; given names joined by space."""
    if not isinstance(names, list) or not names or not isinstance(names[0], dict):
        return "", ""
    name = names[0]
    given = name.get("given")
    first = " ".join(str(g) for g in given) if isinstance(given, list) else ""
    return first, name.get("family") or ""


def build_human_name(first_name: Optional[str], last_name: Optional[str], use: str = "official") -> list[Resource]:
    return [
        {
            "use": use,
            "given": first_name.split() if first_name else [],
            "family": last_name or "",
        }
    ]


def extract_contact_point(telecom: Any, system: str) -> Optional[str]:
    """Value of the first ContactPoint with the given ``system``."""
    if not isinstance(telecom, list):
        return None
    for point in telecom:
        if isinstance(point, dict) and point.get("system") == system:
            return point.get("value")
    return None


def build_contact_point(value: str, system: str, use: str = "home") -> Resource:
    return {"system": system, "value": value, "use": use}


def extract_identifier(identifiers: Any, system: str) -> Optional[str]:
    """Value of the first Identifier whose ``system`` URI matches."""
    if not isinstance(identifiers, list):
        return None
    for ident in identifiers:
        if isinstance(ident, dict) and ident.get("system") == system:
            return ident.get("value")
    return None


# ------------------------------------------------------------------
# Bundles and validation
# ------------------------------------------------------------------


def create_bundle(resources: Iterable[Resource], bundle_type: str = "collection") -> Resource:
    """Wrap resources in a Bundle; resources without an id get a fresh UUID url."""
    resources = list(resources)
    return {
        "resourceType": "Bundle",
        "type": bundle_type,
        "total": len(resources),
        "entry": [
            {"resource": resource, "fullUrl": f"urn:uuid:{resource.get('id') or uuid.uuid4()}"}
            for resource in resources
        ],
    }


def validate_resource(resource: Resource, resource_type: str) -> list[str]:
    """Client-side sanity checks. Returns a list of problems (empty if valid)."""
    errors: list[str] = []
    if resource.get("resourceType") != resource_type:
        errors.append(f"Resource type must be '{resource_type}'")

    if resource_type == PATIENT:
        gender = resource.get("gender")
        if not gender:
            errors.append("Gender is required for Patient resource")
        elif gender not in GENDERS:
            errors.append(f"Gender must be one of: {', '.join(GENDERS)}")
    elif resource_type == ORGANIZATION:
        if not resource.get("name"):
            errors.append("Name is required for Organization resource")
    elif resource_type == OBSERVATION:
        if not resource.get("status"):
            errors.append("Status is required for Observation resource")
        if not resource.get("code"):
            errors.append("Code is required for Observation resource")

    return errors


class FieldMapper:
    """Renames fields between client-side and backend names.

    ``mappings`` is ``{client_name: backend_name}``; several client names
    may share one backend name. Missing (``None``) values are skipped.
    """

    def __init__(self, mappings: dict[str, str]) -> None:
        self._mappings = dict(mappings)

    def to_backend(self, data: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for client_key, backend_key in self._mappings.items():
            if data.get(client_key) is not None:
                result[backend_key] = data[client_key]
        return result

    def from_backend(self, data: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for client_key, backend_key in self._mappings.items():
            if data.get(backend_key) is not None:
                result[client_key] = data[backend_key]
        return result
