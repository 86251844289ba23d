"""
Explicit runtime handle.

Manifesto:
    There is no global connection, manager or registry.  A
    ``FieldSpineContext`` owns one connection and builds every service on
    top of it on first use; two contexts never share state, so tests can
    run any number of isolated instances side by side.

Architecture:
    ::

        FieldSpineContext
        ├── conn, info, dialect      create_connection(settings.database_url)
        ├── settings                 FieldSpineSettings
        ├── cache                    InMemoryCache | None
        ├── entities                 EntityManager      (lazy)
        ├── fields                   FieldRepository    (lazy)
        ├── storage                  FieldValueStorage  (lazy)
        └── field_manager            FieldManager       (lazy, bound to entities)

Examples:
    >>> with FieldSpineContext.from_url("sqlite:///:memory:") as ctx:
    ...     ctx.create_schema()
    ...     ctx.field_manager.define_field("summary", "text").save().machine_name
    'field_summary'

Tags:
    context, dependency-injection, lifecycle, fieldspine
"""

from __future__ import annotations

from functools import cached_property
from typing import Any

from fieldspine.core.cache import CacheBackend, InMemoryCache
from fieldspine.core.connection import ConnectionInfo, create_connection
from fieldspine.core.dialect import Dialect, get_dialect
from fieldspine.core.logging import get_logger
from fieldspine.core.protocols import Connection
from fieldspine.core.schema import create_tables, drop_tables
from fieldspine.core.settings import FieldSpineSettings, get_settings
from fieldspine.entity.manager import EntityManager
from fieldspine.fields.manager import FieldManager
from fieldspine.fields.repository import FieldRepository
from fieldspine.fields.storage import FieldValueStorage

logger = get_logger(__name__)


class FieldSpineContext:
    """One connection plus the services built on it.

    Args:
        conn: Open connection
        dialect: SQL dialect matching *conn*
        settings: Behaviour settings (defaults from the environment)
        cache: Entity read cache; built from settings when omitted
        info: Connection metadata, when created from a URL
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        *,
        settings: FieldSpineSettings | None = None,
        cache: CacheBackend | None = None,
        info: ConnectionInfo | None = None,
    ) -> None:
        self.conn = conn
        self.settings = settings or get_settings()
        self.dialect = dialect or get_dialect(info.backend if info else "sqlite")
        self.info = info
        if cache is None and self.settings.cache_enabled:
            cache = InMemoryCache(
                max_size=self.settings.cache_max_size,
                default_ttl_seconds=self.settings.cache_ttl_seconds,
            )
        self.cache = cache
        self._closed = False

    @classmethod
    def from_settings(cls, settings: FieldSpineSettings | None = None) -> FieldSpineContext:
        settings = settings or get_settings()
        conn, info = create_connection(settings.database_url)
        logger.info("context.opened", backend=info.backend, persistent=info.persistent)
        return cls(conn, get_dialect(info.backend), settings=settings, info=info)

    @classmethod
    def from_url(cls, url: str, **overrides: Any) -> FieldSpineContext:
        """Context for *url*; keyword overrides are applied to the settings."""
        settings = FieldSpineSettings(database_url=url, **overrides)
        return cls.from_settings(settings)

    # -- Services ----------------------------------------------------------

    @cached_property
    def entities(self) -> EntityManager:
        return EntityManager(
            self.conn,
            self.dialect,
            cache=self.cache,
            cache_ttl_seconds=self.settings.cache_ttl_seconds,
            empty_last_page=self.settings.empty_last_page,
            optimistic_locking=self.settings.optimistic_locking,
        )

    @cached_property
    def fields(self) -> FieldRepository:
        return FieldRepository(self.entities)

    @cached_property
    def storage(self) -> FieldValueStorage:
        return FieldValueStorage(
            self.conn,
            self.dialect,
            fields=self.fields,
            default_language=self.settings.default_language,
        )

    @cached_property
    def field_manager(self) -> FieldManager:
        manager = FieldManager(self.fields, self.storage)
        manager.bind(self.entities)
        return manager

    # -- Schema ------------------------------------------------------------

    def create_schema(self) -> None:
        """Create the field tables (idempotent)."""
        create_tables(self.conn, self.dialect)
        logger.debug("context.schema_created", dialect=self.dialect.name)

    def drop_schema(self) -> None:
        drop_tables(self.conn)

    # -- Lifecycle ---------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.cache is not None:
            self.cache.clear()
        close = getattr(self.conn, "close", None)
        if close is not None:
            close()
        logger.debug("context.closed")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> FieldSpineContext:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"FieldSpineContext(dialect={self.dialect.name!r}, info={self.info!r})"


__all__ = [
    "FieldSpineContext",
]
