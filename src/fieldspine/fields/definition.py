"""
Field definitions and attachments.

Manifesto:
    A field definition is configuration, persisted like any other entity:
    a machine name, a :class:`FieldType` and opaque settings / validation
    / widget-settings blobs.  It is attached to any number of
    ``(entity_type, bundle_id)`` pairs through :class:`FieldAttachment`
    rows, and its values live in the EAV tables, never in the definition.

    - machine names are globally unique and always carry the ``field_`` prefix
    - ``cardinality`` is the maximum number of values (-1 means unlimited)
    - validation returns messages; it never raises

Examples:
    >>> price = FieldDefinition({"name": "Price", "field_type": "decimal"})
    >>> price.ensure_machine_name()
    'field_price'
    >>> price.cast_value("19.99")
    19.99
    >>> price.validate("abc")
    ['Please enter a valid number']

Tags:
    field-definition, attachment, eav, fieldspine
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from fieldspine.entity.casts import Cast
from fieldspine.entity.model import BaseEntity, Capability
from fieldspine.entity.schema import Attribute
from fieldspine.fields.types import FieldType
from fieldspine.fields.validation import ValidationResult, validate_value
from fieldspine.fields.values import normalize, normalize_item

MACHINE_NAME_PREFIX = "field_"

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lowercase ``a-z0-9`` runs joined by underscores."""
    return _SLUG_RE.sub("_", text.lower()).strip("_")


def machine_name_for(name: str | None, machine_name: str | None = None) -> str:
    """Apply the machine-name rule.

    An empty machine name is derived from *name*; the result always starts
    with ``field_``.
    """
    base = slugify(machine_name or name or "")
    if not base:
        raise ValueError("A field needs a name or machine name")
    return base if base.startswith(MACHINE_NAME_PREFIX) else f"{MACHINE_NAME_PREFIX}{base}"


class FieldDefinition(BaseEntity):
    """Persisted configuration of one dynamic field."""

    table = "field_definitions"
    entity_type = "field_definition"
    capabilities = frozenset({Capability.TIMESTAMPS})

    name = Attribute(Cast.STRING)
    machine_name = Attribute(Cast.STRING)
    field_type = Attribute(Cast.STRING, default=FieldType.STRING.value)
    description = Attribute(Cast.STRING)
    help_text = Attribute(Cast.STRING)
    widget = Attribute(Cast.STRING)
    required = Attribute(Cast.BOOL, default=False)
    multiple = Attribute(Cast.BOOL, default=False)
    cardinality = Attribute(Cast.INT, default=1)
    # JSON-encoded text so scalar defaults survive the round trip
    default_value = Attribute(Cast.STRING)
    settings = Attribute(Cast.JSON, default_factory=dict)
    validation = Attribute(Cast.JSON, default_factory=dict)
    widget_settings = Attribute(Cast.JSON, default_factory=dict)
    weight = Attribute(Cast.INT, default=0)
    searchable = Attribute(Cast.BOOL, default=False)
    translatable = Attribute(Cast.BOOL, default=False)

    @property
    def type(self) -> FieldType:
        return FieldType.parse(self.field_type)

    def ensure_machine_name(self) -> str:
        self.machine_name = machine_name_for(self.name, self.machine_name)
        return self.machine_name

    # ── Accessors ────────────────────────────────────────────────────────

    def get_widget(self) -> str:
        """Configured widget, or the field type's default."""
        return self.widget or self.type.widget

    def get_setting(self, key: str, default: Any = None) -> Any:
        return (self.settings or {}).get(key, default)

    def get_widget_settings(self) -> dict[str, Any]:
        """Settings overlaid with widget settings."""
        return {**(self.settings or {}), **(self.widget_settings or {})}

    def get_options(self) -> dict[str, str]:
        """Allowed values for selection fields as ``{value: label}``."""
        options = self.get_setting("options", {})
        if isinstance(options, Mapping):
            return {str(k): str(v) for k, v in options.items()}
        if isinstance(options, list | tuple):
            return {str(v): str(v) for v in options}
        return {}

    def get_default(self) -> Any:
        if self.default_value is None:
            return None
        try:
            return json.loads(self.default_value)
        except ValueError:
            return self.default_value

    def set_default(self, value: Any) -> None:
        self.default_value = None if value is None else json.dumps(value, default=str)

    def is_multiple(self) -> bool:
        """Explicitly multiple, or a kind that is inherently multi-valued."""
        return bool(self.multiple) or self.type.supports_multiple

    def max_values(self) -> int | None:
        """Maximum number of stored values; ``None`` means unlimited."""
        if not self.is_multiple():
            return 1
        cardinality = self.cardinality
        if cardinality is None or cardinality < 1 or (cardinality == 1 and not self.multiple):
            return None
        return cardinality

    # ── Values ───────────────────────────────────────────────────────────

    def cast_value(self, value: Any) -> Any:
        """Native value for this field (a list for multi-valued fields)."""
        if value is None:
            return None
        if self.is_multiple() and not self.type.supports_multiple:
            items = value if isinstance(value, list | tuple) else [value]
            return [v for v in (normalize_item(self.type.item_kind, item) for item in items) if v is not None]
        return normalize(self.type, value)

    def validate(self, value: Any) -> list[str]:
        """Validation messages for *value*; empty when valid."""
        return validate_value(
            self.name or self.machine_name or "Field",
            self.type,
            value,
            required=bool(self.required),
            rules=self.validation or {},
            settings=self.settings or {},
            max_values=self.max_values() if self.is_multiple() else None,
        )

    def validate_result(self, value: Any) -> ValidationResult:
        return ValidationResult.failure(self.validate(value))

    def __repr__(self) -> str:
        return f"FieldDefinition(id={self.get_id()!r}, machine_name={self.machine_name!r}, type={self.field_type!r})"


@dataclass
class FieldAttachment:
    """Link between a field and an ``(entity_type, bundle_id)`` pair.

    ``bundle_id=None`` attaches the field to every bundle of the entity type.
    """

    field_id: int
    entity_type: str
    bundle_id: int | None = None
    weight: int = 0
    settings: dict[str, Any] = field(default_factory=dict)
    id: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> FieldAttachment:
        settings = row.get("settings")
        if isinstance(settings, str | bytes):
            settings = json.loads(settings) if settings else {}
        return cls(
            field_id=int(row["field_id"]),
            entity_type=row["entity_type"],
            bundle_id=None if row.get("bundle_id") is None else int(row["bundle_id"]),
            weight=int(row.get("weight") or 0),
            settings=dict(settings or {}),
            id=row.get("id"),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "field_id": self.field_id,
            "entity_type": self.entity_type,
            "bundle_id": self.bundle_id,
            "weight": self.weight,
            "settings": json.dumps(self.settings or {}, default=str),
        }


__all__ = [
    "FieldAttachment",
    "FieldDefinition",
    "MACHINE_NAME_PREFIX",
    "machine_name_for",
    "slugify",
]
