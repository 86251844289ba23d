"""Attribute casts for entities.

Each :class:`Cast` maps a raw value (user input or a storage column) to the
attribute's Python type.  Casting never raises: anything that cannot be
interpreted degrades to ``None``.

Storage and projection go the other way: :func:`to_storage_value` prepares
a value for a DB-API parameter, :func:`to_projection_value` renders it for
``to_array()``.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, assert_never

from fieldspine.core.timestamps import format_date, format_timestamp, parse_date, parse_datetime

_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})


class Cast(str, Enum):
    """Declared attribute type."""

    INT = "int"
    FLOAT = "float"
    STRING = "string"
    BOOL = "bool"
    ARRAY = "array"
    JSON = "json"
    DATETIME = "datetime"
    DATE = "date"


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    if isinstance(value, bytes):
        return value.strip().lower().decode("utf-8", "replace") not in _FALSE_STRINGS
    return bool(value)


def _to_structured(value: Any) -> Any:
    if isinstance(value, dict | list):
        return value
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, bytes):
        value = value.decode("utf-8", "replace")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return None


def cast_value(cast: Cast, value: Any) -> Any:
    """Coerce *value* to the Python type declared by *cast*.

    ``None`` stays ``None`` for every cast.
    """
    if value is None:
        return None
    match cast:
        case Cast.INT:
            return _to_int(value)
        case Cast.FLOAT:
            return _to_float(value)
        case Cast.STRING:
            if isinstance(value, bytes):
                return value.decode("utf-8", "replace")
            if isinstance(value, Enum):
                return str(value.value)
            return str(value)
        case Cast.BOOL:
            return _to_bool(value)
        case Cast.ARRAY | Cast.JSON:
            return _to_structured(value)
        case Cast.DATETIME:
            return parse_datetime(value)
        case Cast.DATE:
            return parse_date(value)
        case _:
            assert_never(cast)


def to_storage_value(value: Any) -> Any:
    """Convert an attribute value into a DB-API parameter."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_date(value)
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return value


def to_projection_value(value: Any) -> Any:
    """Render an attribute value for an external projection."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_date(value)
    return value


def fingerprint(value: Any) -> Any:
    """Comparable, mutation-proof form of a value used for dirty tracking."""
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True, default=str)
    return to_projection_value(value)


__all__ = [
    "Cast",
    "cast_value",
    "fingerprint",
    "to_projection_value",
    "to_storage_value",
]
