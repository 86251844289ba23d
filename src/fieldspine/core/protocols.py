"""
Canonical protocol definitions for fieldspine.

Every component that talks to the database depends on the ``Connection``
shape defined here, never on a concrete driver.  ``SqliteConnection`` and
``SAConnectionBridge`` are the two adapters shipped with the package.

Manifesto:
    The entity and field layers only need a narrow relational surface:
    parameterized execution, row fetching, the last generated identifier,
    the affected row count and transaction control.  Keeping that surface
    a protocol lets tests run on in-memory SQLite while production code
    runs over a SQLAlchemy session.

Architecture:
    ::

        protocols.py
        └── Connection   execute / executemany / fetchone / fetchall
                         last_insert_id / rowcount
                         begin / commit / rollback (nestable)

Tags:
    protocol, connection, database, fieldspine, contracts
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous database connection.

    ``begin`` nests: the outermost call opens a transaction, inner calls
    open savepoints.  ``commit`` and ``rollback`` close the innermost
    level only.  Outside an explicit transaction every statement is
    committed on its own.
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute a statement and return a cursor-like object."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute a statement once per parameter tuple."""
        ...

    def fetchone(self) -> Any:
        """Fetch the next row of the last result set (``None`` when exhausted)."""
        ...

    def fetchall(self) -> list[Any]:
        """Fetch the remaining rows of the last result set."""
        ...

    def last_insert_id(self) -> int | None:
        """Identifier generated by the last INSERT."""
        ...

    @property
    def rowcount(self) -> int:
        """Rows affected by the last statement (-1 when unknown)."""
        ...

    @property
    def in_transaction(self) -> bool:
        """Whether an explicit transaction is open."""
        ...

    def begin(self) -> None:
        """Open a transaction, or a savepoint when one is already open."""
        ...

    def commit(self) -> None:
        """Commit the innermost transaction level."""
        ...

    def rollback(self) -> None:
        """Roll back the innermost transaction level."""
        ...


__all__ = [
    "Connection",
]
