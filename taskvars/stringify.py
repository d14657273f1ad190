"""Conversion of resolved values to text for interpolation."""

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .navigation import is_xml

XML_DOCUMENT_MARKER = "[XML Document]"


def json_default(value: Any) -> Any:
    """Fallback encoder for values json cannot encode natively.

    Finite decimals are written as JSON numbers (integral ones as ints);
    everything else (dates, XML, objects) is stringified.
    """
    if isinstance(value, Decimal) and value.is_finite():
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    return stringify(value)


def to_json(value: Any) -> str:
    """Serialize a structured value as compact JSON."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=json_default)


def stringify(value: Any) -> str:
    """Convert a resolved value to its textual form.

    Args:
        value: Any value returned by navigation

    Returns:
        "" for None, compact JSON for maps and lists, a marker for XML
        documents, lowercase true/false for booleans, str() otherwise
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if is_xml(value):
        return XML_DOCUMENT_MARKER
    if isinstance(value, (Mapping, list, tuple)):
        if isinstance(value, Mapping) and not isinstance(value, dict):
            value = dict(value)
        return to_json(value)
    return str(value)
