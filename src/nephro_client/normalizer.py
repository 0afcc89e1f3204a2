"""Response Normalizer: one list shape and one record shape for every endpoint.

List payloads are matched against an ordered chain of shape predicates;
the first match wins::

    1. {"items": [...], "total": n}          backend pagination
    2. {"resourceType": "Bundle", "entry": [...]}
    3. {"results": [...], "count": n}        DRF pagination
    4. [...]                                  bare list
    5. anything else                          a single record

Malformed payloads (e.g. a Bundle whose ``entry`` is not a list) normalize
to an empty list instead of raising, so a list view never crashes on them.

Records in FHIR resource form are flattened through a per-resource-type
``RecordMapping`` and re-expanded by ``denormalize_record``.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from nephro_client import fhir

log = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"


class NormalizedList(BaseModel):
    """Canonical paginated list. Items keep server order."""

    model_config = {"populate_by_name": True}

    items: list[Any] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=0, ge=0, alias="pageSize")

    @classmethod
    def empty(cls) -> NormalizedList:
        return cls(items=[], total=0, page=1, page_size=0)


# ── List normalization ────────────────────────────────────────────────


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _int_or(value: Any, default: int, minimum: int = 0) -> int:
    # json.loads accepts Infinity and NaN
    if _is_number(value) and math.isfinite(value):
        return max(int(value), minimum)
    if isinstance(value, str) and value.strip().isdigit():
        return max(int(value), minimum)
    return default


def normalize_list(raw: Any) -> NormalizedList:
    """Reduce any supported list payload to a ``NormalizedList``."""
    if raw is None:
        return NormalizedList.empty()

    if isinstance(raw, dict):
        # 1. {items, total}
        if "items" in raw and _is_number(raw.get("total")):
            items = raw["items"]
            if not isinstance(items, list):
                log.warning("Malformed list payload: 'items' is %s", type(items).__name__)
                return NormalizedList.empty()
            return NormalizedList(
                items=items,
                total=_int_or(raw["total"], len(items)),
                page=_int_or(raw.get("page"), 1, minimum=1),
                page_size=_int_or(raw.get("pageSize"), len(items)),
            )

        # 2. FHIR Bundle
        if raw.get("resourceType") == "Bundle":
            if "entry" not in raw or raw["entry"] is None:
                return NormalizedList(items=[], total=_int_or(raw.get("total"), 0), page=1, page_size=0)
            entries = raw["entry"]
            if not isinstance(entries, list):
                log.warning("Malformed Bundle: 'entry' is %s", type(entries).__name__)
                return NormalizedList.empty()
            resources = [e.get("resource") for e in entries if isinstance(e, dict) and "resource" in e]
            return NormalizedList(
                items=resources,
                total=_int_or(raw.get("total"), len(entries)),
                page=1,
                page_size=len(entries),
            )

        # 3. {results, count}
        if "results" in raw:
            results = raw["results"]
            if not isinstance(results, list):
                log.warning("Malformed list payload: 'results' is %s", type(results).__name__)
                return NormalizedList.empty()
            return NormalizedList(
                items=results,
                total=_int_or(raw.get("count"), len(results)),
                page=_int_or(raw.get("page"), 1, minimum=1),
                page_size=_int_or(raw.get("page_size"), len(results)),
            )

    # 4. bare list
    if isinstance(raw, list):
        return NormalizedList(items=raw, total=len(raw), page=1, page_size=len(raw))

    # 5. single record
    return NormalizedList(items=[raw], total=1, page=1, page_size=1)


# ── Record normalization ──────────────────────────────────────────────

ValueType = Literal["valueString", "valueDate", "valueInteger"]


@dataclasses.dataclass(frozen=True)
class ExtensionField:
    """Maps one extension ``url`` to a flat field of the given value type."""

    url: str
    field: str
    value_type: ValueType = "valueString"


@dataclasses.dataclass(frozen=True)
class RecordMapping:
    """How one FHIR resource type flattens into a record.

    ``scalars`` maps resource keys to flat field names; ``telecom`` and
    ``identifiers`` map flat field names to ``system`` values; ``aliases``
    are extra flat names mirroring a canonical field.
    """

    resource_type: str
    human_name: bool = True
    scalars: dict[str, str] = dataclasses.field(default_factory=dict)
    telecom: dict[str, str] = dataclasses.field(default_factory=dict)
    identifiers: dict[str, str] = dataclasses.field(default_factory=dict)
    extensions: tuple[ExtensionField, ...] = ()
    managing_organization: bool = False
    aliases: dict[str, str] = dataclasses.field(default_factory=dict)

    def structural_keys(self) -> set[str]:
        keys = {"resourceType", "telecom", "identifier", "extension", "managingOrganization"}
        keys.update(self.scalars)
        if self.human_name:
            keys.add("name")
        return keys


MRN_SYSTEM = "http://example.org/medical-record-number"

PATIENT_MAPPING = RecordMapping(
    resource_type=fhir.PATIENT,
    scalars={"id": "id", "active": "active", "gender": "gender", "birthDate": "birth_date"},
    telecom={"phone": "phone", "email": "email"},
    identifiers={"medical_record_number": MRN_SYSTEM},
    extensions=(
        ExtensionField("http://example.org/primary-diagnosis", "primary_diagnosis"),
        ExtensionField("http://example.org/dialysis-start-date", "dialysis_start_date", "valueDate"),
        ExtensionField("http://example.org/insurance-info", "insurance_info"),
        ExtensionField("http://example.org/sessions-per-week", "sessions_per_week", "valueInteger"),
    ),
    managing_organization=True,
    aliases={"date_of_birth": "birth_date", "contact_number": "phone"},
)

ORGANIZATION_MAPPING = RecordMapping(
    resource_type=fhir.ORGANIZATION,
    human_name=False,
    scalars={"id": "id", "active": "active", "name": "name"},
    telecom={"phone": "phone", "email": "email"},
)

PRACTITIONER_MAPPING = RecordMapping(
    resource_type=fhir.PRACTITIONER,
    scalars={"id": "id", "active": "active", "gender": "gender"},
    telecom={"phone": "phone", "email": "email"},
)

RECORD_MAPPINGS: dict[str, RecordMapping] = {
    m.resource_type: m for m in (PATIENT_MAPPING, ORGANIZATION_MAPPING, PRACTITIONER_MAPPING)
}


def _missing(value: Any) -> bool:
    return value is None or value == ""


def normalize_record(raw: Any, resource_type: Optional[str] = None) -> Any:
    """Flatten a FHIR resource into a flat record.

    Flat records (no known ``resourceType``) come back as a shallow copy.
    Keys outside the mapping are carried over unchanged.
    """
    if not isinstance(raw, dict):
        return raw
    rtype = raw.get("resourceType") or resource_type
    mapping = RECORD_MAPPINGS.get(rtype) if rtype else None
    if mapping is None:
        return dict(raw)

    structural = mapping.structural_keys()
    record: dict[str, Any] = {k: v for k, v in raw.items() if k not in structural}
    record["resource_type"] = mapping.resource_type

    for key, field in mapping.scalars.items():
        if key in raw:
            record[field] = raw[key]
        else:
            record.setdefault(field, None)

    if mapping.human_name:
        first, last = fhir.extract_human_name(raw.get("name"))
        # a backend-computed flat name wins over an empty structured one
        record["first_name"] = first or record.get("first_name") or None
        record["last_name"] = last or record.get("last_name") or None

    for field, system in mapping.telecom.items():
        record[field] = fhir.extract_contact_point(raw.get("telecom"), system) or record.get(field)

    for field, system in mapping.identifiers.items():
        record[field] = fhir.extract_identifier(raw.get("identifier"), system) or record.get(field)

    extensions = raw.get("extension") if isinstance(raw.get("extension"), list) else []
    by_url = {ext.get("url"): ext for ext in extensions if isinstance(ext, dict)}
    for field_def in mapping.extensions:
        ext = by_url.get(field_def.url)
        value = ext.get(field_def.value_type) if ext else None
        record[field_def.field] = value if value is not None else record.get(field_def.field)

    if mapping.managing_organization:
        record.setdefault("institution_id", None)
        record.setdefault("institution_name", None)
        org = raw.get("managingOrganization")
        if isinstance(org, dict):
            ref = org.get("reference") or ""
            kind, _, org_id = ref.partition("/")
            if kind == fhir.ORGANIZATION and org_id:
                record["institution_id"] = org_id
                record["institution_name"] = org.get("display")

    for alias, canonical in mapping.aliases.items():
        record[alias] = record.get(canonical)

    return record


def denormalize_record(record: dict[str, Any], resource_type: str) -> dict[str, Any]:
    """Rebuild the FHIR resource for a write payload.

    Inverse of ``normalize_record`` for every mapped field; unmapped keys
    are not sent. Empty values are omitted.
    """
    mapping = RECORD_MAPPINGS.get(resource_type)
    if mapping is None:
        raise ValueError(f"No record mapping for resource type {resource_type!r}")

    flat = dict(record)
    for alias, canonical in mapping.aliases.items():
        if _missing(flat.get(canonical)) and not _missing(flat.get(alias)):
            flat[canonical] = flat[alias]

    resource: dict[str, Any] = {"resourceType": mapping.resource_type}

    for key, field in mapping.scalars.items():
        if not _missing(flat.get(field)):
            resource[key] = flat[field]

    if mapping.human_name and (flat.get("first_name") or flat.get("last_name")):
        resource["name"] = fhir.build_human_name(flat.get("first_name"), flat.get("last_name"))

    telecom = [
        fhir.build_contact_point(flat[field], system)
        for field, system in mapping.telecom.items()
        if not _missing(flat.get(field))
    ]
    if telecom:
        resource["telecom"] = telecom

    identifiers = [
        {"system": system, "value": flat[field]}
        for field, system in mapping.identifiers.items()
        if not _missing(flat.get(field))
    ]
    if identifiers:
        resource["identifier"] = identifiers

    extensions = [
        {"url": field_def.url, field_def.value_type: flat[field_def.field]}
        for field_def in mapping.extensions
        if not _missing(flat.get(field_def.field))
    ]
    if extensions:
        resource["extension"] = extensions

    if mapping.managing_organization and not _missing(flat.get("institution_id")):
        resource["managingOrganization"] = {
            "reference": f"{fhir.ORGANIZATION}/{flat['institution_id']}",
            "display": flat.get("institution_name") or fhir.ORGANIZATION,
        }

    return resource


# ── Error bodies ──────────────────────────────────────────────────────


def _flatten_message(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "; ".join(_flatten_message(v) for v in value if not _missing(v))
    if isinstance(value, dict):
        return "; ".join(f"{k}: {_flatten_message(v)}" for k, v in value.items() if not _missing(v))
    return str(value)


def extract_error_message(body: Any) -> str:
    """Human-readable message from an error body, tried in a fixed order.

    ``message``, ``error``, ``detail``, ``errors``, ``non_field_errors``,
    a raw string body, then a per-field scan, then the JSON dump.
    """
    if body is None or body == "" or body == {} or body == []:
        return DEFAULT_ERROR_MESSAGE

    if isinstance(body, dict):
        for key in ("message", "error", "detail", "errors", "non_field_errors"):
            value = body.get(key)
            if not _missing(value) and value != [] and value != {}:
                text = _flatten_message(value)
                if text:
                    return text

    if isinstance(body, str):
        return body

    if isinstance(body, (dict, list)):
        text = _flatten_message(body)
        if text:
            return text

    return json.dumps(body, default=str)
