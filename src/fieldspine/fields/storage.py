"""
EAV value storage and revisions.

Manifesto:
    Field values are rows, not columns.  Each row is keyed by
    ``(field_id, entity_type, entity_id, language_code, position)`` and
    carries exactly one populated ``value_*`` column, chosen by the field
    type.  Writing a value is a single upsert per position, never a
    read-then-write, so concurrent writers cannot create duplicates.

    - single-valued fields always live at position 0; writing replaces
    - multi-valued fields are written as a whole list: positions
      ``0..n-1`` are upserted and every higher position removed
    - writing ``None`` removes the field's rows
    - a revision is a copy of every current row of one entity, tagged
      with a revision id

Restore semantics:
    ``RestoreMode.OVERLAY`` (default) writes the snapshot rows back over
    the current rows.  Rows that exist now but are absent from the
    snapshot survive, e.g. a position appended after the revision was
    taken.  ``RestoreMode.REPLACE`` removes the entity's current rows
    first, so the entity ends up exactly as snapshotted.

Architecture:
    ::

        set_value(field, "node", 1, ["a", "b"])
          resolve field → cast → truncate to cardinality
          BEGIN
            upsert pos 0 ("a"), upsert pos 1 ("b")
            DELETE pos >= 2
          COMMIT

        create_revision("node", 1, 7)   INSERT INTO field_revisions SELECT … FROM field_values
        restore_revision("node", 1, 7)  upsert snapshot rows (after DELETE when REPLACE)

Examples:
    >>> storage.set_value("field_tags", "node", 1, ["a", "b", "c"])
    >>> storage.get_value("field_tags", "node", 1)
    ['a', 'b', 'c']
    >>> storage.create_revision("node", 1, revision_id=1)
    3

Tags:
    eav, storage, revisions, upsert, fieldspine
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from fieldspine.core.dialect import Dialect
from fieldspine.core.errors import EntityStateError
from fieldspine.core.logging import get_logger
from fieldspine.core.protocols import Connection
from fieldspine.core.repository import BaseRepository
from fieldspine.core.schema import FIELD_TABLES, VALUE_KEY_COLUMNS
from fieldspine.core.timestamps import format_timestamp, utc_now
from fieldspine.fields.definition import FieldDefinition
from fieldspine.fields.repository import FieldRef, FieldRepository
from fieldspine.fields.values import VALUE_COLUMN_NAMES, from_row, is_empty, to_columns

logger = get_logger(__name__)

_ROW_COLUMNS = ["field_id", "entity_type", "entity_id", "bundle_id", "language_code", "position", *VALUE_COLUMN_NAMES]


class RestoreMode(str, Enum):
    """How ``restore_revision`` treats rows missing from the snapshot."""

    OVERLAY = "overlay"
    REPLACE = "replace"


class FieldValueStorage(BaseRepository):
    """Reads and writes field values for any entity.

    Args:
        conn: Database connection
        dialect: SQL dialect
        fields: Repository used to resolve field ids and machine names
        default_language: Language used when none is passed
        clock: Source of revision timestamps
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        *,
        fields: FieldRepository,
        default_language: str = "en",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(conn, dialect)
        self.fields = fields
        self.default_language = default_language
        self.clock = clock

    def _language(self, language: str | None) -> str:
        return language or self.default_language

    def _upsert_sql(self, table: str) -> str:
        return self.dialect.upsert(table, _ROW_COLUMNS, VALUE_KEY_COLUMNS)

    # ── Reads ────────────────────────────────────────────────────────────

    def get_value(
        self, field: FieldRef, entity_type: str, entity_id: int, language: str | None = None
    ) -> Any:
        """Stored value: a position-ordered list for multi-valued fields
        (``[]`` when absent), otherwise the single value or ``None``.
        """
        definition = self.fields.resolve(field)
        ph = self.dialect.placeholder(0)
        rows = self.query(
            f"SELECT * FROM {FIELD_TABLES['values']} "
            f"WHERE field_id = {ph} AND entity_type = {ph} AND entity_id = {ph} AND language_code = {ph} "
            "ORDER BY position ASC",
            (definition.get_id(), entity_type, entity_id, self._language(language)),
        )
        return self._assemble(definition, rows)

    def _assemble(self, definition: FieldDefinition, rows: list[dict[str, Any]]) -> Any:
        items = [from_row(definition.type, row) for row in rows]
        if definition.is_multiple():
            return [item for item in items if item is not None]
        return items[0] if items else None

    def _group(self, rows: list[dict[str, Any]]) -> dict[str, Any]:
        by_field: dict[int, list[dict[str, Any]]] = {}
        for row in rows:
            by_field.setdefault(int(row["field_id"]), []).append(row)
        definitions = {d.get_id(): d for d in self.fields.find_by_ids(by_field)}
        result: dict[str, Any] = {}
        for field_id, field_rows in by_field.items():
            definition = definitions.get(field_id)
            if definition is None:
                logger.warning("field.values_orphaned", field_id=field_id, rows=len(field_rows))
                continue
            field_rows.sort(key=lambda r: r["position"])
            result[definition.machine_name] = self._assemble(definition, field_rows)
        return result

    def get_entity_values(self, entity_type: str, entity_id: int, language: str | None = None) -> dict[str, Any]:
        """Every stored field of one entity as ``{machine_name: value}``."""
        ph = self.dialect.placeholder(0)
        rows = self.query(
            f"SELECT * FROM {FIELD_TABLES['values']} "
            f"WHERE entity_type = {ph} AND entity_id = {ph} AND language_code = {ph} "
            "ORDER BY field_id ASC, position ASC",
            (entity_type, entity_id, self._language(language)),
        )
        return self._group(rows)

    # ── Writes ───────────────────────────────────────────────────────────

    def set_value(
        self,
        field: FieldRef,
        entity_type: str,
        entity_id: int,
        value: Any,
        language: str | None = None,
        *,
        bundle_id: int | None = None,
    ) -> None:
        """Store *value*, replacing whatever the field held for this entity and language."""
        definition = self.fields.resolve(field)
        native = None if is_empty(value) else definition.cast_value(value)
        if is_empty(native):
            self.delete_value(definition, entity_type, entity_id, language)
            return

        items = native if definition.is_multiple() else [native]
        limit = definition.max_values()
        if limit is not None and len(items) > limit:
            logger.warning(
                "field.values_truncated",
                field=definition.machine_name,
                entity_type=entity_type,
                entity_id=entity_id,
                given=len(items),
                kept=limit,
            )
            items = items[:limit]

        language = self._language(language)
        column = definition.type.storage_column
        table = FIELD_TABLES["values"]
        ph = self.dialect.placeholder(0)
        with self.atomic():
            self.execute_many(
                self._upsert_sql(table),
                [
                    (definition.get_id(), entity_type, entity_id, bundle_id, language, position,
                     *to_columns(column, item).values())
                    for position, item in enumerate(items)
                ],
            )
            self.execute(
                f"DELETE FROM {table} WHERE field_id = {ph} AND entity_type = {ph} AND entity_id = {ph} "
                f"AND language_code = {ph} AND position >= {ph}",
                (definition.get_id(), entity_type, entity_id, language, len(items)),
            )
        logger.debug(
            "field.value_set",
            field=definition.machine_name,
            entity_type=entity_type,
            entity_id=entity_id,
            positions=len(items),
        )

    def set_values(
        self,
        entity_type: str,
        entity_id: int,
        values: Mapping[FieldRef, Any],
        language: str | None = None,
        *,
        bundle_id: int | None = None,
    ) -> None:
        """Store several fields in one transaction; keys may be ids, machine names or definitions."""
        with self.atomic():
            for field, value in values.items():
                self.set_value(field, entity_type, entity_id, value, language, bundle_id=bundle_id)

    def delete_value(
        self, field: FieldRef, entity_type: str, entity_id: int, language: str | None = None
    ) -> int:
        definition = self.fields.resolve(field)
        ph = self.dialect.placeholder(0)
        self.execute(
            f"DELETE FROM {FIELD_TABLES['values']} "
            f"WHERE field_id = {ph} AND entity_type = {ph} AND entity_id = {ph} AND language_code = {ph}",
            (definition.get_id(), entity_type, entity_id, self._language(language)),
        )
        return self.conn.rowcount

    def delete_entity_values(self, entity_type: str, entity_id: int, language: str | None = None) -> int:
        """Remove an entity's current values (every language unless *language* is given)."""
        ph = self.dialect.placeholder(0)
        sql = f"DELETE FROM {FIELD_TABLES['values']} WHERE entity_type = {ph} AND entity_id = {ph}"
        params: tuple[Any, ...] = (entity_type, entity_id)
        if language is not None:
            sql += f" AND language_code = {ph}"
            params += (language,)
        self.execute(sql, params)
        return self.conn.rowcount

    def purge_entity(self, entity_type: str, entity_id: int) -> None:
        """Remove every value and revision row of an entity."""
        ph = self.dialect.placeholder(0)
        with self.atomic():
            for table in (FIELD_TABLES["revisions"], FIELD_TABLES["values"]):
                self.execute(
                    f"DELETE FROM {table} WHERE entity_type = {ph} AND entity_id = {ph}",
                    (entity_type, entity_id),
                )
        logger.debug("field.entity_purged", entity_type=entity_type, entity_id=entity_id)

    # ── Revisions ────────────────────────────────────────────────────────

    def create_revision(
        self, entity_type: str, entity_id: int, revision_id: int, author_id: int | None = None
    ) -> int:
        """Snapshot the entity's current rows as *revision_id*; returns the row count.

        Snapshots are immutable: taking an existing revision id again raises
        :class:`EntityStateError`.
        """
        revisions, values = FIELD_TABLES["revisions"], FIELD_TABLES["values"]
        ph = self.dialect.placeholder(0)
        copied = ", ".join(_ROW_COLUMNS)
        with self.atomic():
            taken = self.scalar(
                f"SELECT COUNT(*) FROM {revisions} WHERE entity_type = {ph} AND entity_id = {ph} AND revision_id = {ph}",
                (entity_type, entity_id, revision_id),
            )
            if taken:
                raise EntityStateError(
                    f"Revision {revision_id} of {entity_type} {entity_id} already exists"
                ).with_context(entity_type=entity_type, entity_id=entity_id, revision_id=revision_id)
            self.execute(
                f"INSERT INTO {revisions} (field_value_id, {copied}, revision_id, created_at, created_by) "
                f"SELECT id, {copied}, {ph}, {ph}, {ph} FROM {values} "
                f"WHERE entity_type = {ph} AND entity_id = {ph}",
                (revision_id, format_timestamp(self.clock()), author_id, entity_type, entity_id),
            )
            count = self.conn.rowcount
        logger.debug(
            "field.revision_created", entity_type=entity_type, entity_id=entity_id, revision_id=revision_id, rows=count
        )
        return count

    def _revision_rows(
        self, entity_type: str, entity_id: int, revision_id: int, language: str | None = None
    ) -> list[dict[str, Any]]:
        ph = self.dialect.placeholder(0)
        sql = (
            f"SELECT * FROM {FIELD_TABLES['revisions']} "
            f"WHERE entity_type = {ph} AND entity_id = {ph} AND revision_id = {ph}"
        )
        params: tuple[Any, ...] = (entity_type, entity_id, revision_id)
        if language is not None:
            sql += f" AND language_code = {ph}"
            params += (language,)
        return self.query(sql + " ORDER BY field_id ASC, position ASC", params)

    def get_revision_values(
        self, entity_type: str, entity_id: int, revision_id: int, language: str | None = None
    ) -> dict[str, Any]:
        """Snapshot contents as ``{machine_name: value}``."""
        return self._group(self._revision_rows(entity_type, entity_id, revision_id, self._language(language)))

    def list_revisions(self, entity_type: str, entity_id: int) -> list[dict[str, Any]]:
        """Revision ids of an entity, oldest first, with timestamp, author and row count."""
        ph = self.dialect.placeholder(0)
        return self.query(
            "SELECT revision_id, MIN(created_at) AS created_at, MIN(created_by) AS created_by, "
            "COUNT(*) AS value_count "
            f"FROM {FIELD_TABLES['revisions']} WHERE entity_type = {ph} AND entity_id = {ph} "
            "GROUP BY revision_id ORDER BY revision_id ASC",
            (entity_type, entity_id),
        )

    def restore_revision(
        self,
        entity_type: str,
        entity_id: int,
        revision_id: int,
        mode: RestoreMode = RestoreMode.OVERLAY,
    ) -> int:
        """Write a snapshot back as current values; returns the rows restored.

        A revision with no rows restores nothing and leaves current values alone.
        """
        mode = RestoreMode(mode)
        rows = self._revision_rows(entity_type, entity_id, revision_id)
        if not rows:
            logger.warning(
                "field.revision_missing", entity_type=entity_type, entity_id=entity_id, revision_id=revision_id
            )
            return 0
        with self.atomic():
            if mode is RestoreMode.REPLACE:
                self.delete_entity_values(entity_type, entity_id)
            self.execute_many(
                self._upsert_sql(FIELD_TABLES["values"]),
                [tuple(row[c] for c in _ROW_COLUMNS) for row in rows],
            )
        logger.debug(
            "field.revision_restored",
            entity_type=entity_type,
            entity_id=entity_id,
            revision_id=revision_id,
            mode=mode.value,
            rows=len(rows),
        )
        return len(rows)


__all__ = [
    "FieldValueStorage",
    "RestoreMode",
]
