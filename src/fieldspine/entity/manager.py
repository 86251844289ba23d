"""
Entity manager: CRUD orchestration, transactions, lifecycle events.

Manifesto:
    Entities never touch SQL.  The manager turns an entity's storage
    projection into INSERT / UPDATE / DELETE statements, keeps its dirty
    snapshot in sync, evicts read-cache entries on every write and
    announces each step to listeners.

    - ``save()`` dispatches to ``insert()`` or ``update()`` by ``exists()``
    - ``update()`` writes only dirty columns; a clean entity issues no SQL
    - soft delete and restore are ordinary updates of ``deleted_at``
    - revisioned entities are updated with a compare-and-swap on
      ``revision_id`` when optimistic locking is on

Architecture:
    ::

        save(entity)
          ├── insert: preSave, preInsert → touch → INSERT → id → sync → evict
          │           → postInsert, postSave
          └── update: preSave, preUpdate → dirty? ─no─▶ return
                      → touch, revision+1 → UPDATE dirty cols → sync → evict
                      → postUpdate, postSave

        delete(entity)
          preDelete → soft?  deleted_at=now → update()
                    → hard?  DELETE → evict → exists=False
          → postDelete

Examples:
    >>> manager = EntityManager(conn, dialect, cache=InMemoryCache())
    >>> node = Node({"title": "Hello"})
    >>> manager.save(node)
    >>> node.get_id()
    1
    >>> manager.transaction(lambda: manager.insert_many([Node({"title": "a"}), Node({"title": "b"})]))

Tags:
    entity-manager, crud, transactions, events, cache, fieldspine
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any, TypeVar

from fieldspine.core.cache import CacheBackend
from fieldspine.core.dialect import Dialect
from fieldspine.core.errors import (
    EntityNotFoundError,
    EntityStateError,
    InvalidQueryError,
    StaleEntityError,
    UnsupportedCapabilityError,
)
from fieldspine.core.logging import get_logger
from fieldspine.core.protocols import Connection
from fieldspine.core.repository import BaseRepository, transaction
from fieldspine.core.timestamps import utc_now
from fieldspine.entity.casts import to_storage_value
from fieldspine.entity.events import EventDispatcher, LifecycleEvent, Listener
from fieldspine.entity.model import BaseEntity, Capability
from fieldspine.entity.query import EntityQuery, check_identifier

logger = get_logger(__name__)

E = TypeVar("E", bound=BaseEntity)

_BOOKKEEPING_COLUMNS = ("updated_at", "revision_id")


def cache_key(entity_cls: type[BaseEntity], entity_id: Any) -> str:
    """Read-cache key for one entity row."""
    return f"entity:{entity_cls.table}:{entity_id}"


class EntityManager:
    """Persistence orchestrator for :class:`BaseEntity` subclasses.

    Args:
        conn: Database connection
        dialect: SQL dialect (defaults to SQLite)
        cache: Optional read-through cache for ``find``
        events: Event dispatcher (a fresh one when omitted)
        clock: Source of "now" for timestamps
        cache_ttl_seconds: TTL passed to the cache on ``set``
        empty_last_page: ``last_page`` convention for empty pagination
        optimistic_locking: Compare-and-swap on ``revision_id`` for revisioned entities
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        *,
        cache: CacheBackend | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
        cache_ttl_seconds: int | None = None,
        empty_last_page: int = 0,
        optimistic_locking: bool = True,
    ) -> None:
        self.db = BaseRepository(conn, dialect)
        self.conn = conn
        self.dialect = self.db.dialect
        self.cache = cache
        self.events = events or EventDispatcher()
        self.clock = clock
        self.cache_ttl_seconds = cache_ttl_seconds
        self.empty_last_page = empty_last_page
        self.optimistic_locking = optimistic_locking
        self._repositories: dict[type, Any] = {}

    # ── Querying ─────────────────────────────────────────────────────────

    def query(self, entity_cls: type[E]) -> EntityQuery[E]:
        """Start a query against *entity_cls*'s table."""
        return EntityQuery(self.conn, entity_cls, self.dialect, empty_last_page=self.empty_last_page)

    def find(self, entity_cls: type[E], entity_id: Any) -> E | None:
        """Load by primary key, consulting the read cache first.

        Soft-deleted rows are found too: lookups by id are explicit.
        """
        if entity_id is None:
            return None
        key = cache_key(entity_cls, entity_id)
        if self.cache is not None:
            row = self.cache.get(key)
            if row is not None:
                return entity_cls.from_storage(row)

        entity = self.query(entity_cls).with_trashed().find(entity_id)
        if entity is not None and self.cache is not None:
            self.cache.set(key, entity.to_storage(), ttl_seconds=self.cache_ttl_seconds)
        return entity

    def find_or_fail(self, entity_cls: type[E], entity_id: Any) -> E:
        entity = self.find(entity_cls, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_cls.entity_type, entity_id)
        return entity

    def find_many(self, entity_cls: type[E], ids: Iterable[Any]) -> list[E]:
        ids = list(ids)
        if not ids:
            return []
        return self.query(entity_cls).where_in(entity_cls.primary_key, ids).get()

    def all(self, entity_cls: type[E]) -> list[E]:
        return self.query(entity_cls).get()

    def _criteria_query(self, entity_cls: type[E], criteria: Mapping[str, Any]) -> EntityQuery[E]:
        query = self.query(entity_cls)
        for column, value in criteria.items():
            if isinstance(value, list | tuple | set | frozenset):
                query.where_in(column, value)
            else:
                query.where(column, value)
        return query

    def find_by(
        self,
        entity_cls: type[E],
        criteria: Mapping[str, Any],
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
    ) -> list[E]:
        """Equality match on every criterion (list values become ``IN``)."""
        query = self._criteria_query(entity_cls, criteria)
        for column, direction in (order_by or {}).items():
            query.order_by(column, direction)
        if limit is not None:
            query.limit(limit)
        return query.get()

    def find_one_by(self, entity_cls: type[E], criteria: Mapping[str, Any]) -> E | None:
        return self._criteria_query(entity_cls, criteria).first()

    # ── Writes ───────────────────────────────────────────────────────────

    def save(self, entity: BaseEntity) -> None:
        """Insert a new entity or update an existing one."""
        if entity.exists():
            self.update(entity)
        else:
            self.insert(entity)

    def insert(self, entity: BaseEntity) -> None:
        if entity.exists():
            raise EntityStateError(
                f"{type(entity).__name__} {entity.get_id()!r} is already persisted; use update()"
            )
        self.events.dispatch(LifecycleEvent.PRE_SAVE, entity)
        self.events.dispatch(LifecycleEvent.PRE_INSERT, entity)

        entity.touch(self.clock())
        data = entity.to_storage()
        new_id = self.db.insert(entity.table, data, pk=entity.primary_key)
        if new_id is None or entity.primary_key in data:
            new_id = data.get(entity.primary_key, new_id)
        entity.set_id(new_id)
        entity.mark_exists()
        entity.sync_original()
        self._evict(type(entity), new_id)
        logger.debug("entity.inserted", table=entity.table, id=new_id)

        self.events.dispatch(LifecycleEvent.POST_INSERT, entity)
        self.events.dispatch(LifecycleEvent.POST_SAVE, entity)

    def update(self, entity: BaseEntity) -> None:
        if not entity.exists():
            raise EntityStateError(f"Cannot update {type(entity).__name__}: it was never persisted")
        self.events.dispatch(LifecycleEvent.PRE_SAVE, entity)
        self.events.dispatch(LifecycleEvent.PRE_UPDATE, entity)

        storage = entity.to_storage()
        dirty = [name for name in entity.get_dirty() if name in storage and name != entity.primary_key]
        if not dirty:
            logger.debug("entity.update_skipped", table=entity.table, id=entity.get_id())
            return

        stamps = {name: entity.get(name) for name in ("created_at", "updated_at") if name in entity.schema}
        entity.touch(self.clock())
        expected_revision = None
        if entity.supports(Capability.REVISIONS):
            expected_revision = entity.get("revision_id")
            entity.increment_revision()
        storage = entity.to_storage()
        columns = dirty + [c for c in _BOOKKEEPING_COLUMNS if c in storage and c not in dirty]

        ph = self.dialect.placeholder(0)
        sql = f"UPDATE {entity.table} SET {', '.join(f'{c} = {ph}' for c in columns)} WHERE {entity.primary_key} = {ph}"
        params = [storage[c] for c in columns] + [entity.get_id()]
        check_revision = self.optimistic_locking and expected_revision is not None
        if check_revision:
            sql += f" AND revision_id = {ph}"
            params.append(expected_revision)

        self.conn.execute(sql, tuple(params))
        if check_revision and self.conn.rowcount == 0:
            # the in-memory entity goes back to the state it was loaded in
            entity.set("revision_id", expected_revision)
            for name, value in stamps.items():
                entity.set(name, value)
            raise StaleEntityError(
                f"{type(entity).__name__} {entity.get_id()!r} was modified concurrently "
                f"(expected revision {expected_revision})"
            ).with_context(entity_type=entity.entity_type, entity_id=entity.get_id())

        entity.sync_original()
        self._evict(type(entity), entity.get_id())
        logger.debug("entity.updated", table=entity.table, id=entity.get_id(), columns=columns)

        self.events.dispatch(LifecycleEvent.POST_UPDATE, entity)
        self.events.dispatch(LifecycleEvent.POST_SAVE, entity)

    def delete(self, entity: BaseEntity) -> None:
        """Soft-delete when supported, otherwise hard-delete.  No-op for unsaved entities."""
        if not entity.exists():
            return
        self.events.dispatch(LifecycleEvent.PRE_DELETE, entity)
        if entity.supports(Capability.SOFT_DELETE):
            entity.set("deleted_at", self.clock())
            self.update(entity)
            self.events.dispatch(LifecycleEvent.POST_DELETE, entity, force=False)
            return
        self._hard_delete(entity)
        self.events.dispatch(LifecycleEvent.POST_DELETE, entity, force=True)

    def force_delete(self, entity: BaseEntity) -> None:
        """Hard-delete regardless of soft-delete support."""
        if not entity.exists():
            return
        self.events.dispatch(LifecycleEvent.PRE_DELETE, entity, force=True)
        self._hard_delete(entity)
        self.events.dispatch(LifecycleEvent.POST_DELETE, entity, force=True)

    def _hard_delete(self, entity: BaseEntity) -> None:
        ph = self.dialect.placeholder(0)
        self.conn.execute(f"DELETE FROM {entity.table} WHERE {entity.primary_key} = {ph}", (entity.get_id(),))
        self._evict(type(entity), entity.get_id())
        entity.mark_exists(False)
        logger.debug("entity.deleted", table=entity.table, id=entity.get_id())

    def restore(self, entity: BaseEntity) -> None:
        """Clear ``deleted_at`` on a soft-deleted entity."""
        if not entity.supports(Capability.SOFT_DELETE):
            raise UnsupportedCapabilityError(f"{type(entity).__name__} does not support soft delete")
        entity.set("deleted_at", None)
        self.update(entity)

    # ── Bulk operations ──────────────────────────────────────────────────

    def insert_many(self, entities: Iterable[BaseEntity]) -> int:
        """Insert every entity inside one transaction."""
        count = 0
        with self.atomic():
            for entity in entities:
                self.insert(entity)
                count += 1
        return count

    def _bulk_where(self, entity_cls: type[BaseEntity], criteria: Mapping[str, Any]) -> tuple[str, list[Any]]:
        if not criteria:
            raise InvalidQueryError("Bulk operations require at least one criterion")
        return self._criteria_query(entity_cls, criteria).with_trashed()._where_clause()

    def _evict_matching(self, entity_cls: type[BaseEntity], where: str, params: list[Any]) -> None:
        if self.cache is None:
            return
        cursor = self.conn.execute(f"SELECT {entity_cls.primary_key} FROM {entity_cls.table}{where}", tuple(params))
        for row in cursor.fetchall():
            self._evict(entity_cls, row[0])

    def delete_by(self, entity_cls: type[BaseEntity], criteria: Mapping[str, Any]) -> int:
        """Hard-delete rows matching *criteria*; returns the row count."""
        where, params = self._bulk_where(entity_cls, criteria)
        self._evict_matching(entity_cls, where, params)
        self.conn.execute(f"DELETE FROM {entity_cls.table}{where}", tuple(params))
        affected = self.conn.rowcount
        logger.debug("entity.bulk_deleted", table=entity_cls.table, rows=affected)
        return affected

    def update_by(self, entity_cls: type[BaseEntity], criteria: Mapping[str, Any], data: Mapping[str, Any]) -> int:
        """Set *data* on rows matching *criteria*; returns the row count."""
        if not data:
            return 0
        where, where_params = self._bulk_where(entity_cls, criteria)
        self._evict_matching(entity_cls, where, where_params)
        ph = self.dialect.placeholder(0)
        assignments = ", ".join(f"{check_identifier(c)} = {ph}" for c in data)
        values = []
        for column, value in data.items():
            attr = entity_cls.schema.get(column)
            values.append(to_storage_value(attr.cast_value(value) if attr is not None else value))
        self.conn.execute(f"UPDATE {entity_cls.table} SET {assignments}{where}", tuple(values + where_params))
        affected = self.conn.rowcount
        logger.debug("entity.bulk_updated", table=entity_cls.table, rows=affected, columns=list(data))
        return affected

    # ── Transactions ─────────────────────────────────────────────────────

    def begin(self) -> None:
        self.conn.begin()

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()

    @contextmanager
    def atomic(self) -> Iterator[EntityManager]:
        """``with manager.atomic():`` -- commit on success, roll back and re-raise on error."""
        with transaction(self.conn):
            yield self

    def transaction(self, fn: Callable[[], Any]) -> Any:
        """Run *fn* in a transaction and return its result."""
        with self.atomic():
            return fn()

    # ── Events ───────────────────────────────────────────────────────────

    def on(self, event: str | LifecycleEvent, listener: Listener) -> None:
        """Register a lifecycle listener."""
        self.events.add_listener(event, listener)

    # ── Repositories ─────────────────────────────────────────────────────

    def get_repository(self, entity_cls: type[E]) -> Any:
        """Repository for *entity_cls* (``entity_cls.repository_class`` if set), cached."""
        if entity_cls not in self._repositories:
            from fieldspine.entity.repository import EntityRepository

            repository_cls = entity_cls.repository_class or EntityRepository
            self._repositories[entity_cls] = repository_cls(self, entity_cls)
        return self._repositories[entity_cls]

    # ── Cache ────────────────────────────────────────────────────────────

    def _evict(self, entity_cls: type[BaseEntity], entity_id: Any) -> None:
        if self.cache is not None and entity_id is not None:
            self.cache.delete(cache_key(entity_cls, entity_id))


__all__ = [
    "EntityManager",
    "cache_key",
]
