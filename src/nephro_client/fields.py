"""Coercion helpers for values that arrive in inconsistent representations.

The backend is not strict about booleans ("yes", 1, "true"), numbers
(strings, floats with representation noise) or list fields (JSON strings,
comma lists, index-keyed dicts). These helpers fold them into one form.
"""

from __future__ import annotations

import json
import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Optional

_TRUE_STRINGS = {"true", "yes", "1", "y"}
_FALSE_STRINGS = {"false", "no", "0", "n"}

ID_FIELDS = (
    "patient_id", "patientId", "user_id", "userId",
    "session_id", "sessionId", "institution_id", "institutionId",
)

BOOLEAN_FIELDS = (
    "active", "is_active", "isActive",
    "enabled", "is_enabled", "isEnabled",
    "notifications_enabled", "notificationsEnabled",
    "deceased_boolean", "deceasedBoolean",
    "multiple_birth_boolean", "multipleBirthBoolean",
)

NUMERIC_FIELDS = (
    "weight", "pre_weight", "preWeight", "post_weight", "postWeight",
    "height", "blood_flow_rate", "bloodFlowRate", "dialysate_flow_rate", "dialysateFlowRate",
    "hemoglobin", "hematocrit", "potassium", "creatinine", "urea",
    "phosphorus", "calcium", "albumin", "kt_v", "ktV",
    "duration_minutes", "durationMinutes",
)

ARRAY_FIELDS = (
    "identifier", "name", "address", "telecom", "contact", "communication",
    "general_practitioner", "generalPractitioner", "tags",
)

_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")
_SNAKE_BOUNDARY = re.compile(r"_([a-z])")


def normalize_boolean(value: Any) -> Optional[bool]:
    """Map the usual truthy/falsy spellings to a bool; ``None`` if unknown."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        return None
    if isinstance(value, (int, float)):
        return value != 0
    return None


def normalize_number(value: Any, precision: int = 10) -> Any:
    """Round to *precision* decimals; NaN and infinities become ``None``.

    Strings that do not parse as numbers are returned unchanged.
    """
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return round(value, precision)
    return value


def normalize_array(value: Any) -> list[Any]:
    """Coerce a field that should be a list into one."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            if "," in value:
                return [item.strip() for item in value.split(",")]
            return [value]
        if isinstance(parsed, list):
            return parsed
        return [value]
    if isinstance(value, dict):
        keys = list(value.keys())
        if keys and all(_is_numeric_key(k) for k in keys):
            return list(value.values())
    return [value]


def _is_numeric_key(key: Any) -> bool:
    try:
        float(key)
    except (TypeError, ValueError):
        return False
    return True


def to_snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"\1_\2", name).lower()


def to_camel_case(name: str) -> str:
    return _SNAKE_BOUNDARY.sub(lambda m: m.group(1).upper(), name)


def normalize_field_names(
    data: Any,
    *,
    add_snake_case: bool = True,
    add_camel_case: bool = True,
    fields_map: Optional[dict[str, str]] = None,
) -> Any:
    """Make a record reachable under both snake_case and camelCase keys.

    Ids become strings and known boolean, numeric and list fields are
    coerced. Existing keys are never overwritten by a derived variant.
    """
    if isinstance(data, list):
        return [
            normalize_field_names(
                item,
                add_snake_case=add_snake_case,
                add_camel_case=add_camel_case,
                fields_map=fields_map,
            )
            for item in data
        ]
    if not isinstance(data, dict):
        return data

    result = dict(data)

    if result.get("id") is not None:
        result["id"] = str(result["id"])
    for field in ID_FIELDS:
        if result.get(field) is not None:
            result[field] = str(result[field])

    for source, target in (fields_map or {}).items():
        if source in result and target not in result:
            result[target] = result[source]

    if add_snake_case:
        for key, value in list(result.items()):
            if _CAMEL_BOUNDARY.search(key):
                result.setdefault(to_snake_case(key), value)

    if add_camel_case:
        for key, value in list(result.items()):
            if "_" in key:
                result.setdefault(to_camel_case(key), value)

    for field in BOOLEAN_FIELDS:
        if field in result:
            result[field] = normalize_boolean(result[field])
    for field in NUMERIC_FIELDS:
        if field in result:
            result[field] = normalize_number(result[field])
    for field in ARRAY_FIELDS:
        if field in result:
            result[field] = normalize_array(result[field])

    return result


def sanitize_data(data: Any) -> Any:
    """Recursively replace values JSON cannot carry (NaN, inf) with ``None``."""
    if data is None:
        return None
    if isinstance(data, float):
        return None if math.isnan(data) or math.isinf(data) else data
    if isinstance(data, dict):
        return {key: sanitize_data(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [sanitize_data(item) for item in data]
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    return data


def encode_query_params(params: dict[str, Any]) -> list[tuple[str, str]]:
    """Flatten params into ``(key, value)`` pairs ready for a query string.

    ``None`` is skipped, sequences repeat the key, dates become ISO strings,
    other objects are JSON-encoded.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            pairs.extend((key, _param_str(item)) for item in _present(value))
        elif isinstance(value, (datetime, date)):
            pairs.append((key, value.isoformat()))
        elif isinstance(value, dict):
            pairs.append((key, json.dumps(value)))
        else:
            pairs.append((key, _param_str(value)))
    return pairs


def _present(values: Iterable[Any]) -> Iterable[Any]:
    return (v for v in values if v is not None)


def _param_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)
