"""
Request payload sanitizing.

Forms submit UI-only control fields next to the real ones:
``<field>_null`` forces ``<field>`` to NULL, ``<field>_type_ahead`` carries
the label typed into a type-ahead widget and ``redirect_to`` names the next
action. None of them may reach persistence.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping

NULL_SUFFIX = "_null"
TYPE_AHEAD_SUFFIX = "_type_ahead"
REDIRECT_FIELD = "redirect_to"

Payload = Dict[str, Any]


def _is_truthy(value: Any) -> bool:
    # Unchecked checkboxes post "0"
    if isinstance(value, str):
        return value.strip() not in ("", "0")
    return bool(value)


def _is_control_field(key: str) -> bool:
    return key.endswith(NULL_SUFFIX) or key.endswith(TYPE_AHEAD_SUFFIX) or key == REDIRECT_FIELD


def coerce_nulls(payload: Mapping[str, Any] | None) -> Payload:
    """Set ``<field>`` to None wherever ``<field>_null`` is truthy.

    Only mapping sections are inspected; list sections (hasMany records) are
    passed through untouched.
    """
    result: Payload = {}
    for alias, fields in (payload or {}).items():
        if not isinstance(fields, Mapping):
            result[alias] = fields
            continue
        section = dict(fields)
        for key, value in fields.items():
            if key.endswith(NULL_SUFFIX) and len(key) > len(NULL_SUFFIX) and _is_truthy(value):
                section[key[: -len(NULL_SUFFIX)]] = None
        result[alias] = section
    return result


def strip_control_fields(payload: Mapping[str, Any] | None) -> Payload:
    """Drop control fields from every mapping section."""
    result: Payload = {}
    for alias, fields in (payload or {}).items():
        if isinstance(fields, Mapping):
            result[alias] = {k: v for k, v in fields.items() if not _is_control_field(k)}
        else:
            result[alias] = fields
    return result


def sanitize(payload: Mapping[str, Any] | None) -> Payload:
    """Null coercion followed by control field stripping."""
    return strip_control_fields(coerce_nulls(payload))
