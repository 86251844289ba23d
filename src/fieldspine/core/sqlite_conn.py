"""SQLite connection adapter.

Wraps a raw :class:`sqlite3.Connection` to satisfy the
:class:`~fieldspine.core.protocols.Connection` protocol.

The underlying connection runs in autocommit mode (``isolation_level=None``)
so that transactions are only ever opened by :meth:`SqliteConnection.begin`.
Nested ``begin`` calls become SAVEPOINTs, which lets ``insert_many`` or
``set_values`` run inside a caller's own transaction.

Usage::

    from fieldspine.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:")
    conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
    conn.begin()
    conn.execute("INSERT INTO t (name) VALUES (?)", ("a",))
    conn.last_insert_id()   # 1
    conn.commit()
"""

from __future__ import annotations

import sqlite3
from typing import Any


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Maintains a single cursor so that ``execute`` / ``fetchone`` /
    ``fetchall`` operate on the same result set.
    """

    def __init__(
        self,
        path: str = ":memory:",
        *,
        row_factory: Any = sqlite3.Row,
        foreign_keys: bool = True,
    ) -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = row_factory
        self._cursor = self._conn.cursor()
        self._depth = 0
        if foreign_keys:
            self._conn.execute("PRAGMA foreign_keys = ON")

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        self._cursor.execute(sql, tuple(params))
        return self._cursor

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        self._cursor.executemany(sql, [tuple(p) for p in params])
        return self._cursor

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    def last_insert_id(self) -> int | None:
        return self._cursor.lastrowid

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def description(self) -> Any:
        return self._cursor.description

    # -- Transactions ------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def begin(self) -> None:
        if self._depth == 0:
            self._conn.execute("BEGIN")
        else:
            self._conn.execute(f"SAVEPOINT sp_{self._depth}")
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            # autocommit mode: nothing pending
            return
        self._depth -= 1
        if self._depth == 0:
            self._conn.execute("COMMIT")
        else:
            self._conn.execute(f"RELEASE SAVEPOINT sp_{self._depth}")

    def rollback(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._conn.execute("ROLLBACK")
        else:
            self._conn.execute(f"ROLLBACK TO SAVEPOINT sp_{self._depth}")
            self._conn.execute(f"RELEASE SAVEPOINT sp_{self._depth}")

    def close(self) -> None:
        self._conn.close()

    # -- convenience -------------------------------------------------------

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r}, depth={self._depth})"


__all__ = [
    "SqliteConnection",
]
