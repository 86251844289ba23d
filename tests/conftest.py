"""
Shared pytest fixtures for fieldspine tests.

This module provides:
- An in-memory SQLite connection with the field tables and sample entity tables
- Entity manager, field repository, value storage and field manager wired to it
- A fixed clock for deterministic timestamps

Usage:
    def test_something(manager, storage):
        ...
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import pytest

from fieldspine.core.cache import InMemoryCache
from fieldspine.core.dialect import SQLiteDialect
from fieldspine.core.schema import create_tables
from fieldspine.core.sqlite_conn import SqliteConnection
from fieldspine.entity.manager import EntityManager
from fieldspine.fields.manager import FieldManager
from fieldspine.fields.repository import FieldRepository
from fieldspine.fields.storage import FieldValueStorage
from tests._support.entities import NODES_DDL, TAGS_DDL


class FixedClock:
    """Deterministic clock; ``advance()`` moves it forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 60) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def conn() -> Iterator[SqliteConnection]:
    """In-memory SQLite with field tables and the ``nodes`` / ``tags`` tables."""
    c = SqliteConnection(":memory:")
    create_tables(c, SQLiteDialect())
    c.execute(NODES_DDL)
    c.execute(TAGS_DDL)
    yield c
    c.close()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache(max_size=100, default_ttl_seconds=None)


@pytest.fixture
def manager(conn: SqliteConnection, cache: InMemoryCache, clock: FixedClock) -> EntityManager:
    return EntityManager(conn, SQLiteDialect(), cache=cache, clock=clock)


@pytest.fixture
def fields(manager: EntityManager) -> FieldRepository:
    return FieldRepository(manager)


@pytest.fixture
def storage(conn: SqliteConnection, fields: FieldRepository, clock: FixedClock) -> FieldValueStorage:
    return FieldValueStorage(conn, SQLiteDialect(), fields=fields, clock=clock)


@pytest.fixture
def field_manager(fields: FieldRepository, storage: FieldValueStorage, manager: EntityManager) -> FieldManager:
    fm = FieldManager(fields, storage)
    fm.bind(manager)
    return fm
