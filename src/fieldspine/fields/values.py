"""Per-type value conversion for the EAV tables.

Three directions, all driven by :class:`FieldType` metadata:

- :func:`normalize` turns caller input into the native Python value of
  the field kind (``"19.99"`` → ``19.99`` for a decimal field).  Values
  that cannot be interpreted become ``None``; nothing here raises.
- :func:`to_columns` serializes one native item into a full row of the
  nine ``value_*`` columns with exactly one of them populated.
- :func:`from_row` reads the populated column back into a native item.

Multi-valued kinds are normalized to lists; storage handles one item
per position, so ``to_columns`` / ``from_row`` always see single items.
``bytes`` are opaque and always travel through ``value_blob``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime, time
from typing import Any, assert_never

from fieldspine.core.timestamps import (
    format_date,
    format_time,
    format_timestamp,
    parse_date,
    parse_datetime,
    parse_time,
)
from fieldspine.entity.casts import Cast, cast_value
from fieldspine.fields.types import FieldType, StorageColumn, ValueKind

VALUE_COLUMN_NAMES: tuple[str, ...] = tuple(column.value for column in StorageColumn)


def is_empty(value: Any) -> bool:
    """``None``, an empty or whitespace-only string, or an empty collection."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, list | tuple | set | dict):
        return len(value) == 0
    return False


def _structured(value: Any) -> Any:
    if isinstance(value, bytes):
        value = value.decode("utf-8", "replace")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    if isinstance(value, tuple):
        return list(value)
    return value


def normalize_item(kind: ValueKind, value: Any) -> Any:
    """Coerce one item to *kind*; ``None`` when it cannot be interpreted."""
    if value is None or isinstance(value, bytes):
        return value
    match kind:
        case ValueKind.STRING:
            return cast_value(Cast.STRING, value)
        case ValueKind.INT:
            return cast_value(Cast.INT, value)
        case ValueKind.FLOAT:
            return cast_value(Cast.FLOAT, value)
        case ValueKind.BOOL:
            return cast_value(Cast.BOOL, value)
        case ValueKind.DATE:
            return parse_date(value)
        case ValueKind.DATETIME:
            parsed = parse_datetime(value)
            return parsed.replace(microsecond=0) if parsed is not None else None
        case ValueKind.TIME:
            return parse_time(value)
        case ValueKind.MAPPING:
            return _structured(value)
        case ValueKind.LIST:
            return _as_list(value)
        case _:
            assert_never(kind)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list | tuple | set | frozenset):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return decoded
    if isinstance(value, Mapping):
        return list(value.values())
    return [value]


def normalize(field_type: FieldType, value: Any) -> Any:
    """Native value for *field_type*.

    Multi-valued kinds yield a list of normalized items (uninterpretable
    items dropped); ``None`` stays ``None``.
    """
    if value is None:
        return None
    if field_type.supports_multiple:
        items = (normalize_item(field_type.item_kind, item) for item in _as_list(value))
        return [item for item in items if item is not None]
    return normalize_item(field_type.item_kind, value)


def empty_row() -> dict[str, Any]:
    return dict.fromkeys(VALUE_COLUMN_NAMES)


def to_columns(column: StorageColumn, value: Any) -> dict[str, Any]:
    """Serialize one native item into the nine value columns."""
    row = empty_row()
    if value is None:
        return row
    if isinstance(value, bytes):
        row[StorageColumn.BLOB.value] = value
        return row

    match column:
        case StorageColumn.STRING:
            if isinstance(value, time):
                stored: Any = format_time(value)
            elif isinstance(value, bool):
                stored = "1" if value else "0"
            else:
                stored = str(value)
        case StorageColumn.TEXT:
            stored = str(value)
        case StorageColumn.INT:
            stored = cast_value(Cast.INT, value)
        case StorageColumn.DECIMAL:
            stored = cast_value(Cast.FLOAT, value)
        case StorageColumn.BOOLEAN:
            stored = 1 if cast_value(Cast.BOOL, value) else 0
        case StorageColumn.DATE:
            parsed_date = parse_date(value)
            stored = format_date(parsed_date) if parsed_date is not None else None
        case StorageColumn.DATETIME:
            parsed = value if isinstance(value, datetime) else parse_datetime(value)
            stored = format_timestamp(parsed) if parsed is not None else None
        case StorageColumn.JSON:
            stored = json.dumps(value, default=_json_default)
        case StorageColumn.BLOB:
            stored = value if isinstance(value, bytes) else str(value).encode("utf-8")
        case _:
            assert_never(column)
    row[column.value] = stored
    return row


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_date(value)
    if isinstance(value, time):
        return format_time(value)
    return str(value)


def from_row(field_type: FieldType, row: Mapping[str, Any]) -> Any:
    """Read one stored item back as its native value."""
    blob = row.get(StorageColumn.BLOB.value)
    if blob is not None:
        return bytes(blob)
    raw = row.get(field_type.storage_column.value)
    if raw is None:
        return None
    return normalize_item(field_type.item_kind, raw)


__all__ = [
    "VALUE_COLUMN_NAMES",
    "empty_row",
    "from_row",
    "is_empty",
    "normalize",
    "normalize_item",
    "to_columns",
]
