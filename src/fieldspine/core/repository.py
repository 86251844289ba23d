"""Base repository with dialect-aware database access.

Provides :class:`BaseRepository` -- a base class that pairs a
:class:`~fieldspine.core.protocols.Connection` with a
:class:`~fieldspine.core.dialect.Dialect` so that the entity manager,
field repository and value storage write portable SQL without referencing
a specific driver.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                       BaseRepository                               │
    │                                                                    │
    │   conn: Connection        ← protocol from fieldspine.core.protocols│
    │   dialect: Dialect        ← from fieldspine.core.dialect           │
    │                                                                    │
    │   execute(sql, params)     → cursor                                │
    │   query(sql, params)       → list[dict]                            │
    │   query_one(sql, params)   → dict | None                           │
    │   insert(table, data)      → generated id                          │
    │   atomic()                 → transaction context manager           │
    └────────────────────────────────────────────────────────────────────┘

Tags:
    repository, database, abstraction, portability, transactions
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fieldspine.core.dialect import Dialect, SQLiteDialect
from fieldspine.core.protocols import Connection


def rows_to_dicts(cursor: Any, rows: list[Any]) -> list[dict[str, Any]]:
    """Convert fetched rows into dicts keyed by column name.

    ``sqlite3.Row`` objects (and other mappings) convert directly; plain
    tuples are zipped with ``cursor.description``.
    """
    if not rows:
        return []
    if hasattr(rows[0], "keys"):
        return [dict(row) for row in rows]
    description = getattr(cursor, "description", None)
    if description:
        columns = [desc[0] for desc in description]
        return [dict(zip(columns, row, strict=False)) for row in rows]
    return [{i: v for i, v in enumerate(row)} for row in rows]


@contextmanager
def transaction(conn: Connection) -> Iterator[Connection]:
    """Run the enclosed block in a (possibly nested) transaction.

    Commits on success; on any exception rolls back and re-raises.
    """
    conn.begin()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


class BaseRepository:
    """Dialect-aware base class for data-access components.

    Parameters:
        conn: Any object satisfying the :class:`Connection` protocol.
        dialect: SQL dialect to use.  Defaults to :class:`SQLiteDialect`.
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()

    @classmethod
    def from_session(cls, session: Any, dialect: Dialect | None = None, **kwargs: Any) -> BaseRepository:
        """Create an instance backed by a SQLAlchemy ORM session."""
        from fieldspine.core.orm.session import SAConnectionBridge

        return cls(SAConnectionBridge(session), dialect, **kwargs)  # type: ignore[arg-type]

    # -- Convenience shortcuts ---------------------------------------------

    def ph(self, count: int) -> str:
        """Shortcut for ``self.dialect.placeholders(count)``."""
        return self.dialect.placeholders(count)

    # -- Query helpers -----------------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute a statement and return the raw cursor/result."""
        return self.conn.execute(sql, params)

    def execute_many(self, sql: str, params: list[tuple]) -> Any:
        """Execute a statement with multiple parameter sets."""
        return self.conn.executemany(sql, params)

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a SELECT and return rows as dicts."""
        cursor = self.conn.execute(sql, params)
        return rows_to_dicts(cursor, cursor.fetchall())

    def query_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a SELECT and return the first row as a dict (or None)."""
        results = self.query(sql, params)
        return results[0] if results else None

    def scalar(self, sql: str, params: tuple = ()) -> Any:
        """Execute a SELECT and return the first column of the first row."""
        cursor = self.conn.execute(sql, params)
        row = cursor.fetchone()
        if row is None:
            return None
        return row[0]

    # -- Write helpers -----------------------------------------------------

    def insert(self, table: str, data: dict[str, Any], *, pk: str = "id") -> Any:
        """Insert a single row from a dict and return the generated id."""
        columns = list(data.keys())
        if columns:
            sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({self.ph(len(columns))})"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"
        self.conn.execute(sql + self.dialect.returning(pk), tuple(data.values()))
        return self.conn.last_insert_id()

    def insert_many(self, table: str, rows: list[dict[str, Any]]) -> int:
        """Insert multiple rows from a list of dicts.

        Returns the number of rows inserted.
        """
        if not rows:
            return 0
        columns = list(rows[0].keys())
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({self.ph(len(columns))})"
        self.conn.executemany(sql, [tuple(row[col] for col in columns) for row in rows])
        return len(rows)

    # -- Transactions ------------------------------------------------------

    def atomic(self) -> Any:
        """Context manager wrapping the block in a (nested) transaction."""
        return transaction(self.conn)

    def commit(self) -> None:
        """Commit the current transaction level."""
        self.conn.commit()


__all__ = [
    "BaseRepository",
    "rows_to_dicts",
    "transaction",
]
