"""
Field definition repository and attachment management.

Manifesto:
    Definitions are read far more often than they change, so lookups by
    id go through an in-process cache that every save and delete
    invalidates.  Attachments are plain rows managed here, next to the
    definitions they reference.

Architecture:
    ::

        FieldRepository(EntityRepository[FieldDefinition])
        ├── find / find_by_machine_name / find_by_ids / find_all   (cached by id)
        ├── resolve(ref)            id | machine name | definition → definition
        ├── find_by_entity_type     JOIN field_attachments, ORDER BY weight, name
        ├── save / delete           machine-name rule, cascade, cache eviction
        └── attach_to_entity / detach_from_entity / get_attachment / find_attachments

    A ``bundle_id=None`` attachment applies to every bundle of its entity
    type.  Because SQL ``UNIQUE`` treats NULLs as distinct, those rows are
    written with a null-safe update followed by an insert, in one
    transaction; bundled rows use a single upsert.

Examples:
    >>> fields = FieldRepository(manager)
    >>> title = fields.save(FieldDefinition({"name": "Title", "field_type": "string"}))
    >>> fields.attach_to_entity(title, "node", bundle_id=1, weight=0)
    >>> [f.machine_name for f in fields.find_by_entity_type("node", 1)]
    ['field_title']

Tags:
    field-repository, attachments, cache, fieldspine
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from fieldspine.core.errors import FieldNotFoundError
from fieldspine.core.logging import get_logger
from fieldspine.core.schema import FIELD_TABLES
from fieldspine.entity.repository import EntityRepository
from fieldspine.fields.definition import FieldAttachment, FieldDefinition

if TYPE_CHECKING:
    from fieldspine.entity.manager import EntityManager

logger = get_logger(__name__)

FieldRef = int | str | FieldDefinition


class FieldRepository(EntityRepository[FieldDefinition]):
    """Field definitions plus their ``(entity_type, bundle_id)`` attachments."""

    def __init__(self, manager: EntityManager) -> None:
        super().__init__(manager, FieldDefinition)
        self.db = manager.db
        self.dialect = manager.dialect
        self._cache: dict[int, FieldDefinition] = {}

    # -- Lookups -----------------------------------------------------------

    def _remember(self, definition: FieldDefinition | None) -> FieldDefinition | None:
        if definition is not None and definition.get_id() is not None:
            self._cache[definition.get_id()] = definition
        return definition

    def find(self, entity_id: Any) -> FieldDefinition | None:
        if entity_id is None:
            return None
        cached = self._cache.get(int(entity_id))
        if cached is not None:
            return cached
        return self._remember(super().find(entity_id))

    def find_or_fail(self, entity_id: Any) -> FieldDefinition:
        definition = self.find(entity_id)
        if definition is None:
            raise FieldNotFoundError(entity_id)
        return definition

    def find_by_machine_name(self, machine_name: str) -> FieldDefinition | None:
        for definition in self._cache.values():
            if definition.machine_name == machine_name:
                return definition
        return self._remember(self.find_one_by({"machine_name": machine_name}))

    def find_all(self) -> list[FieldDefinition]:
        """Every definition, by weight then name."""
        definitions = self.create_query().order_by("weight").order_by("name").get()
        for definition in definitions:
            self._remember(definition)
        return definitions

    def find_by_ids(self, ids: Iterable[Any]) -> list[FieldDefinition]:
        ids = [int(i) for i in ids]
        missing = [i for i in ids if i not in self._cache]
        if missing:
            for definition in self.manager.find_many(FieldDefinition, missing):
                self._remember(definition)
        return sorted(
            (self._cache[i] for i in dict.fromkeys(ids) if i in self._cache),
            key=lambda d: (d.weight or 0, d.name or ""),
        )

    def resolve(self, ref: FieldRef) -> FieldDefinition:
        """Definition for an id, a machine name or a definition."""
        if isinstance(ref, FieldDefinition):
            return ref
        if isinstance(ref, int):
            definition = self.find(ref)
        elif isinstance(ref, str) and ref.isdigit():
            definition = self.find(int(ref))
        else:
            definition = self.find_by_machine_name(ref)
        if definition is None:
            raise FieldNotFoundError(ref)
        return definition

    def find_by_entity_type(self, entity_type: str, bundle_id: int | None = None) -> list[FieldDefinition]:
        """Fields attached to *entity_type*, ordered by attachment weight, then name.

        With *bundle_id*, fields attached to that bundle or to every bundle
        (``bundle_id IS NULL``); without it, every attachment of the type.
        A field attached more than once is listed once, at its first position.
        """
        t = FIELD_TABLES
        ph = self.dialect.placeholder(0)
        sql = (
            f"SELECT f.* FROM {t['definitions']} f "
            f"INNER JOIN {t['attachments']} a ON f.id = a.field_id "
            f"WHERE a.entity_type = {ph}"
        )
        params: list[Any] = [entity_type]
        if bundle_id is not None:
            sql += f" AND (a.bundle_id = {ph} OR a.bundle_id IS NULL)"
            params.append(bundle_id)
        sql += " ORDER BY a.weight ASC, f.name ASC"

        seen: set[int] = set()
        definitions: list[FieldDefinition] = []
        for row in self.db.query(sql, tuple(params)):
            if row["id"] in seen:
                continue
            seen.add(row["id"])
            definitions.append(self._remember(FieldDefinition.from_storage(row)))
        return definitions

    # -- Persistence -------------------------------------------------------

    def save(self, entity: FieldDefinition) -> FieldDefinition:
        """Apply the machine-name rule, persist and refresh the cache."""
        entity.ensure_machine_name()
        self.manager.save(entity)
        self._cache.pop(entity.get_id(), None)
        self._remember(entity)
        logger.debug("field.saved", field_id=entity.get_id(), machine_name=entity.machine_name)
        return entity

    def delete(self, entity: FieldDefinition) -> None:
        """Remove a definition with its attachments, values and revisions."""
        field_id = entity.get_id()
        if field_id is None:
            return
        t = FIELD_TABLES
        ph = self.dialect.placeholder(0)
        with self.manager.atomic():
            for table in (t["revisions"], t["values"], t["attachments"]):
                self.db.execute(f"DELETE FROM {table} WHERE field_id = {ph}", (field_id,))
            self.manager.force_delete(entity)
        self._cache.pop(field_id, None)
        logger.debug("field.deleted", field_id=field_id, machine_name=entity.machine_name)

    def clear_cache(self) -> None:
        self._cache.clear()

    # -- Attachments -------------------------------------------------------

    def attach_to_entity(
        self,
        field: FieldRef,
        entity_type: str,
        bundle_id: int | None = None,
        weight: int = 0,
        settings: Mapping[str, Any] | None = None,
    ) -> FieldAttachment:
        """Attach a field to an entity type (and bundle); re-attaching updates weight and settings."""
        definition = self.resolve(field)
        attachment = FieldAttachment(
            field_id=definition.get_id(),
            entity_type=entity_type,
            bundle_id=bundle_id,
            weight=weight,
            settings=dict(settings or {}),
        )
        row = attachment.to_row()
        table = FIELD_TABLES["attachments"]
        if bundle_id is not None:
            self.db.execute(
                self.dialect.upsert(table, list(row), ["field_id", "entity_type", "bundle_id"]),
                tuple(row.values()),
            )
        else:
            ph = self.dialect.placeholder(0)
            with self.db.atomic():
                self.db.execute(
                    f"UPDATE {table} SET weight = {ph}, settings = {ph} "
                    f"WHERE field_id = {ph} AND entity_type = {ph} AND {self.dialect.null_safe_equals('bundle_id')}",
                    (row["weight"], row["settings"], row["field_id"], entity_type, None),
                )
                if self.db.conn.rowcount == 0:
                    self.db.insert(table, row)
        logger.debug(
            "field.attached", field_id=attachment.field_id, entity_type=entity_type, bundle_id=bundle_id, weight=weight
        )
        return self.get_attachment(definition, entity_type, bundle_id) or attachment

    def detach_from_entity(self, field: FieldRef, entity_type: str, bundle_id: int | None = None) -> int:
        """Remove attachments (all bundles when *bundle_id* is None) and the values they own.

        A bundle detach also removes bundle-less values of entities that hold
        values in that bundle.  Once no attachment of the field remains for
        *entity_type*, every value of the field for that type goes too.

        Returns the number of attachments removed.
        """
        definition = self.resolve(field)
        field_id = definition.get_id()
        t = FIELD_TABLES
        ph = self.dialect.placeholder(0)
        where = f"field_id = {ph} AND entity_type = {ph}"
        params: tuple[Any, ...] = (field_id, entity_type)
        if bundle_id is not None:
            where += f" AND bundle_id = {ph}"
            params += (bundle_id,)

        with self.db.atomic():
            members: list[Any] = []
            if bundle_id is not None:
                members = [
                    row["entity_id"]
                    for row in self.db.query(
                        f"SELECT DISTINCT entity_id FROM {t['values']} WHERE entity_type = {ph} AND bundle_id = {ph}",
                        (entity_type, bundle_id),
                    )
                ]
            self.db.execute(f"DELETE FROM {t['attachments']} WHERE {where}", params)
            removed = self.db.conn.rowcount
            for table in (t["revisions"], t["values"]):
                self.db.execute(f"DELETE FROM {table} WHERE {where}", params)
                if members:
                    self.db.execute(
                        f"DELETE FROM {table} WHERE field_id = {ph} AND entity_type = {ph} AND bundle_id IS NULL "
                        f"AND entity_id IN ({self.dialect.placeholders(len(members))})",
                        (field_id, entity_type, *members),
                    )
            remaining = self.db.scalar(
                f"SELECT COUNT(*) FROM {t['attachments']} WHERE field_id = {ph} AND entity_type = {ph}",
                (field_id, entity_type),
            )
            if not remaining:
                for table in (t["revisions"], t["values"]):
                    self.db.execute(
                        f"DELETE FROM {table} WHERE field_id = {ph} AND entity_type = {ph}", (field_id, entity_type)
                    )
        logger.debug("field.detached", field_id=field_id, entity_type=entity_type, bundle_id=bundle_id)
        return removed

    def get_attachment(
        self, field: FieldRef, entity_type: str, bundle_id: int | None = None
    ) -> FieldAttachment | None:
        definition = self.resolve(field)
        ph = self.dialect.placeholder(0)
        row = self.db.query_one(
            f"SELECT * FROM {FIELD_TABLES['attachments']} "
            f"WHERE field_id = {ph} AND entity_type = {ph} AND {self.dialect.null_safe_equals('bundle_id')}",
            (definition.get_id(), entity_type, bundle_id),
        )
        return FieldAttachment.from_row(row) if row else None

    def get_attachment_settings(self, field: FieldRef, entity_type: str, bundle_id: int | None = None) -> dict[str, Any]:
        """Field settings overlaid with the attachment's settings override."""
        definition = self.resolve(field)
        attachment = self.get_attachment(definition, entity_type, bundle_id)
        if attachment is None and bundle_id is not None:
            attachment = self.get_attachment(definition, entity_type, None)
        return {**(definition.settings or {}), **(attachment.settings if attachment else {})}

    def find_attachments(self, entity_type: str, bundle_id: int | None = None) -> list[FieldAttachment]:
        """Attachments of *entity_type* (and bundle, including every-bundle rows), by weight."""
        ph = self.dialect.placeholder(0)
        sql = f"SELECT * FROM {FIELD_TABLES['attachments']} WHERE entity_type = {ph}"
        params: list[Any] = [entity_type]
        if bundle_id is not None:
            sql += f" AND (bundle_id = {ph} OR bundle_id IS NULL)"
            params.append(bundle_id)
        sql += " ORDER BY weight ASC, id ASC"
        return [FieldAttachment.from_row(row) for row in self.db.query(sql, tuple(params))]


__all__ = [
    "FieldRef",
    "FieldRepository",
]
