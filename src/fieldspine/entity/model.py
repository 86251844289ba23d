"""
Generic entity base: attribute hydration, casting, dirty tracking.

Manifesto:
    An entity is a plain object with a declared schema.  It knows how to
    fill itself from untrusted input (fillable allowlist), project itself
    for callers (hidden attributes dropped) and for storage (transient
    attributes dropped), and which attributes changed since it was last
    synchronized with the database.  It knows nothing about SQL.

    Optional behaviours are capabilities, not base classes.  An entity
    declares ``capabilities = {Capability.SOFT_DELETE, ...}`` and the
    schema gains the matching attributes; the manager asks
    ``entity.supports(Capability.SOFT_DELETE)`` before acting.

Architecture:
    ::

        BaseEntity
        ├── schema          EntitySchema built once per subclass
        ├── _attributes     current values (cast on assignment)
        ├── _original       fingerprints at last hydrate/save
        ├── fields          AttributeBag for EAV values
        └── capabilities    TIMESTAMPS (default) | SOFT_DELETE | REVISIONS

        fill(data) ─▶ set() ─▶ cast
        from_storage(row) ─▶ cast ─▶ exists=True ─▶ sync_original()
        get_dirty() = {k: current} for k whose fingerprint changed

Examples:
    >>> class Node(BaseEntity):
    ...     table = "nodes"
    ...     fillable = ("title", "status")
    ...     capabilities = frozenset({Capability.TIMESTAMPS, Capability.SOFT_DELETE})
    ...     title = Attribute(Cast.STRING)
    ...     status = Attribute(Cast.STRING, default="draft")
    >>> node = Node({"title": "Hello", "id": 3, "secret": "ignored"})
    >>> node.to_array()["title"]
    'Hello'
    >>> Node.supports(Capability.SOFT_DELETE)
    True

Tags:
    entity, dirty-tracking, casting, capabilities, fieldspine
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Protocol, Self, runtime_checkable

from fieldspine.entity.bag import AttributeBag
from fieldspine.entity.casts import Cast, fingerprint, to_projection_value, to_storage_value
from fieldspine.entity.schema import Attribute, EntitySchema


class Capability(str, Enum):
    """Optional persistence behaviours an entity type may declare."""

    TIMESTAMPS = "timestamps"
    SOFT_DELETE = "soft_delete"
    REVISIONS = "revisions"


# Attributes each capability contributes to the schema
_CAPABILITY_ATTRIBUTES: dict[Capability, tuple[tuple[str, Attribute], ...]] = {
    Capability.TIMESTAMPS: (
        ("created_at", Attribute(Cast.DATETIME)),
        ("updated_at", Attribute(Cast.DATETIME)),
    ),
    Capability.SOFT_DELETE: (("deleted_at", Attribute(Cast.DATETIME)),),
    Capability.REVISIONS: (("revision_id", Attribute(Cast.INT, default=1)),),
}


@runtime_checkable
class SupportsTimestamps(Protocol):
    created_at: datetime | None
    updated_at: datetime | None


@runtime_checkable
class SupportsSoftDelete(Protocol):
    deleted_at: datetime | None

    def is_trashed(self) -> bool: ...


@runtime_checkable
class SupportsRevisions(Protocol):
    revision_id: int | None

    def increment_revision(self) -> int: ...


class BaseEntity:
    """Base class for persisted domain objects.

    Class-level configuration:

    - ``table``: backing table name
    - ``entity_type``: name used for cache keys and EAV rows (defaults to ``table``)
    - ``primary_key``: identifier attribute (default ``"id"``)
    - ``fillable``: attributes ``fill()`` may set; empty means all
    - ``hidden``: attributes excluded from ``to_array()``
    - ``transient``: attributes excluded from ``to_storage()``
    - ``capabilities``: declared :class:`Capability` set
    - ``repository_class``: repository used by ``EntityManager.get_repository``
    """

    table: ClassVar[str] = ""
    entity_type: ClassVar[str] = ""
    primary_key: ClassVar[str] = "id"
    fillable: ClassVar[tuple[str, ...]] = ()
    hidden: ClassVar[tuple[str, ...]] = ()
    transient: ClassVar[tuple[str, ...]] = ()
    capabilities: ClassVar[frozenset[Capability]] = frozenset({Capability.TIMESTAMPS})
    repository_class: ClassVar[type | None] = None
    schema: ClassVar[EntitySchema]

    id = Attribute(Cast.INT)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for capability in Capability:
            if capability not in cls.capabilities:
                continue
            for name, template in _CAPABILITY_ATTRIBUTES[capability]:
                if not isinstance(getattr(cls, name, None), Attribute):
                    attr = Attribute(template.cast, default=template.default)
                    setattr(cls, name, attr)
                    attr.__set_name__(cls, name)
        cls.schema = EntitySchema.build(cls)
        if not cls.__dict__.get("entity_type"):
            cls.entity_type = cls.table

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._attributes: dict[str, Any] = self.schema.defaults()
        self._original: dict[str, Any] = {}
        self._exists = False
        self.fields = AttributeBag()
        if data:
            self.fill(data)

    # ── Capabilities ─────────────────────────────────────────────────────

    @classmethod
    def supports(cls, capability: Capability) -> bool:
        """Runtime capability test (``Node.supports(Capability.SOFT_DELETE)``)."""
        return capability in cls.capabilities

    # ── Attribute access ─────────────────────────────────────────────────

    def get(self, name: str) -> Any:
        """Return a declared attribute's value."""
        if name not in self.schema:
            raise KeyError(f"{type(self).__name__} has no attribute {name!r}")
        return self._attributes.get(name)

    def set(self, name: str, value: Any) -> Self:
        """Cast and assign a declared attribute."""
        attr = self.schema.get(name)
        if attr is None:
            raise KeyError(f"{type(self).__name__} has no attribute {name!r}")
        self._attributes[name] = attr.cast_value(value)
        return self

    def get_id(self) -> Any:
        return self._attributes.get(self.primary_key)

    def set_id(self, value: Any) -> None:
        self.set(self.primary_key, value)

    def fill(self, data: Mapping[str, Any]) -> Self:
        """Assign allowlisted keys (plus the primary key); ignore the rest."""
        allowed = set(self.fillable) if self.fillable else set(self.schema.names())
        allowed.add(self.primary_key)
        for key, value in data.items():
            if key in allowed and key in self.schema:
                self.set(key, value)
        return self

    # ── Persistence state ────────────────────────────────────────────────

    def exists(self) -> bool:
        """Whether the entity has been hydrated from or written to storage."""
        return self._exists

    def mark_exists(self, exists: bool = True) -> None:
        self._exists = exists

    def is_trashed(self) -> bool:
        return self.supports(Capability.SOFT_DELETE) and self._attributes.get("deleted_at") is not None

    def increment_revision(self) -> int:
        current = self._attributes.get("revision_id") or 0
        self._attributes["revision_id"] = current + 1
        return current + 1

    def touch(self, now: datetime) -> None:
        """Stamp ``updated_at`` (and ``created_at`` when unset)."""
        if not self.supports(Capability.TIMESTAMPS):
            return
        if self._attributes.get("created_at") is None:
            self.set("created_at", now)
        self.set("updated_at", now)

    # ── Projections ──────────────────────────────────────────────────────

    def to_array(self) -> dict[str, Any]:
        """External projection: hidden attributes dropped, datetimes as strings."""
        return {
            name: to_projection_value(value)
            for name, value in self._attributes.items()
            if name not in self.hidden
        }

    def to_json(self) -> str:
        return json.dumps(self.to_array(), default=str)

    def to_storage(self) -> dict[str, Any]:
        """Storage projection: transient attributes and a null id dropped."""
        data = {
            name: to_storage_value(value)
            for name, value in self._attributes.items()
            if name not in self.transient
        }
        if data.get(self.primary_key) is None:
            data.pop(self.primary_key, None)
        return data

    @classmethod
    def from_storage(cls, row: Mapping[str, Any]) -> Self:
        """Hydrate an existing entity from a storage row.

        Unknown columns are ignored; missing columns keep their defaults.
        """
        entity = cls()
        for key, value in row.items():
            attr = cls.schema.get(key)
            if attr is not None:
                entity._attributes[key] = attr.cast_value(value)
        entity._exists = True
        entity.sync_original()
        return entity

    # ── Dirty tracking ───────────────────────────────────────────────────

    def sync_original(self) -> None:
        """Take the snapshot that dirty tracking compares against."""
        self._original = {name: fingerprint(value) for name, value in self._attributes.items()}

    def get_original(self, name: str | None = None) -> Any:
        if name is None:
            return dict(self._original)
        return self._original.get(name)

    def get_dirty(self) -> dict[str, Any]:
        """Changed attributes mapped to their current values."""
        return {
            name: value
            for name, value in self._attributes.items()
            if name not in self._original or fingerprint(value) != self._original[name]
        }

    def is_dirty(self, name: str | None = None) -> bool:
        dirty = self.get_dirty()
        return name in dirty if name is not None else bool(dirty)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.get_id()!r}, exists={self._exists})"


BaseEntity.schema = EntitySchema.build(BaseEntity)


__all__ = [
    "BaseEntity",
    "Capability",
    "SupportsRevisions",
    "SupportsSoftDelete",
    "SupportsTimestamps",
]
