"""SQL dialect abstraction for database-agnostic persistence code.

Provides a ``Dialect`` protocol and concrete implementations for the
supported backends.  The entity and field layers use ``Dialect`` methods
to generate SQL fragments (placeholders, upserts, null-safe comparisons,
pagination clauses, DDL column types) without referencing any driver.

Manifesto:
    Entity and EAV code must run unchanged on SQLite (tests, embedded use)
    and on PostgreSQL or MySQL in production.  Every backend-specific bit
    of syntax lives here.

Architecture::

    ┌──────────┐ ┌──────────────┐ ┌────────────┐
    │ SQLite   │ │ PostgreSQL   │ │  MySQL     │
    │ ?, ?, ?  │ │ %s, %s, %s   │ │ %s, %s     │
    │ excluded │ │ EXCLUDED     │ │ VALUES()   │
    │ IS ?     │ │ IS NOT       │ │ <=>        │
    │          │ │ DISTINCT FROM│ │            │
    └──────────┘ └──────────────┘ └────────────┘

Examples:
    >>> from fieldspine.core.dialect import SQLiteDialect
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.limit_offset(None, 20)
    'LIMIT -1 OFFSET 20'

Tags:
    dialect, sql, abstraction, portability, database, fieldspine
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from fieldspine.core.errors import UnsupportedDatabaseError

COLUMN_KINDS = ("string", "text", "int", "decimal", "boolean", "date", "datetime", "json", "blob")


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a SQL fragment or statement valid for the target
    database.
    """

    @property
    def name(self) -> str:
        """Dialect name (e.g. ``'sqlite'``)."""
        ...

    # -- Placeholder generation --------------------------------------------

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholder list."""
        ...

    # -- DML helpers -------------------------------------------------------

    def upsert(
        self,
        table: str,
        columns: list[str],
        key_columns: list[str],
        update_columns: list[str] | None = None,
    ) -> str:
        """Single-statement ``INSERT … ON CONFLICT (keys) DO UPDATE``.

        ``update_columns`` defaults to every non-key column.
        """
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """``INSERT`` that silently skips rows violating a unique key."""
        ...

    def null_safe_equals(self, column: str) -> str:
        """Comparison of *column* with one placeholder where NULL equals NULL."""
        ...

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        """``LIMIT``/``OFFSET`` clause (empty string when both are unset)."""
        ...

    def returning(self, column: str) -> str:
        """Suffix that makes an INSERT return the generated *column*.

        Empty for drivers exposing ``cursor.lastrowid``.
        """
        ...

    # -- DDL helpers -------------------------------------------------------

    def auto_increment(self) -> str:
        """DDL fragment for an auto-incrementing primary key column."""
        ...

    def column_type(self, kind: str) -> str:
        """DDL column type for a logical *kind* (see ``COLUMN_KINDS``)."""
        ...

    def boolean_true(self) -> str:
        """Literal SQL value for boolean ``True``."""
        ...

    def boolean_false(self) -> str:
        """Literal SQL value for boolean ``False``."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


def _check_kind(kind: str, types: dict[str, str]) -> str:
    try:
        return types[kind]
    except KeyError:
        raise ValueError(f"Unknown column kind {kind!r}; expected one of {COLUMN_KINDS}") from None


class SQLiteDialect:
    """SQLite dialect -- ``?`` placeholders, ``ON CONFLICT … excluded``."""

    _TYPES = {
        "string": "VARCHAR(255)",
        "text": "TEXT",
        "int": "INTEGER",
        "decimal": "REAL",
        "boolean": "INTEGER",
        "date": "TEXT",
        "datetime": "TEXT",
        "json": "TEXT",
        "blob": "BLOB",
    }

    @property
    def name(self) -> str:
        return "sqlite"

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    # -- DML ---------------------------------------------------------------

    def upsert(
        self,
        table: str,
        columns: list[str],
        key_columns: list[str],
        update_columns: list[str] | None = None,
    ) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        keys = ", ".join(key_columns)
        if update_columns is None:
            update_columns = [c for c in columns if c not in key_columns]
        if not update_columns:
            return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT ({keys}) DO NOTHING"
        updates = ", ".join(f"{c} = excluded.{c}" for c in update_columns)
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT ({keys}) DO UPDATE SET {updates}"

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {table} ({cols}) VALUES ({ph})"

    def null_safe_equals(self, column: str) -> str:
        return f"{column} IS ?"

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        if limit is None and not offset:
            return ""
        clause = f"LIMIT {-1 if limit is None else int(limit)}"
        if offset:
            clause += f" OFFSET {int(offset)}"
        return clause

    def returning(self, column: str) -> str:  # noqa: ARG002
        return ""

    # -- DDL ---------------------------------------------------------------

    def auto_increment(self) -> str:
        return "INTEGER PRIMARY KEY AUTOINCREMENT"

    def column_type(self, kind: str) -> str:
        return _check_kind(kind, self._TYPES)

    def boolean_true(self) -> str:
        return "1"

    def boolean_false(self) -> str:
        return "0"


class PostgreSQLDialect:
    """PostgreSQL dialect -- ``%s`` placeholders (psycopg2), ``RETURNING`` ids.

    Booleans are stored as ``SMALLINT`` so that the ``1``/``0`` values
    produced by entity storage projections bind without casts.
    """

    _TYPES = {
        "string": "VARCHAR(255)",
        "text": "TEXT",
        "int": "BIGINT",
        "decimal": "DOUBLE PRECISION",
        "boolean": "SMALLINT",
        "date": "DATE",
        "datetime": "TIMESTAMP",
        "json": "JSONB",
        "blob": "BYTEA",
    }

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def upsert(
        self,
        table: str,
        columns: list[str],
        key_columns: list[str],
        update_columns: list[str] | None = None,
    ) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        keys = ", ".join(key_columns)
        if update_columns is None:
            update_columns = [c for c in columns if c not in key_columns]
        if not update_columns:
            return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT ({keys}) DO NOTHING"
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in update_columns)
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT ({keys}) DO UPDATE SET {updates}"

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT DO NOTHING"

    def null_safe_equals(self, column: str) -> str:
        return f"{column} IS NOT DISTINCT FROM %s"

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        parts = []
        if limit is not None:
            parts.append(f"LIMIT {int(limit)}")
        if offset:
            parts.append(f"OFFSET {int(offset)}")
        return " ".join(parts)

    def returning(self, column: str) -> str:
        return f" RETURNING {column}"

    def auto_increment(self) -> str:
        return "BIGSERIAL PRIMARY KEY"

    def column_type(self, kind: str) -> str:
        return _check_kind(kind, self._TYPES)

    def boolean_true(self) -> str:
        return "1"

    def boolean_false(self) -> str:
        return "0"


class MySQLDialect:
    """MySQL / MariaDB dialect -- ``%s`` placeholders, ``ON DUPLICATE KEY``."""

    _TYPES = {
        "string": "VARCHAR(255)",
        "text": "LONGTEXT",
        "int": "BIGINT",
        "decimal": "DOUBLE",
        "boolean": "TINYINT(1)",
        "date": "DATE",
        "datetime": "DATETIME",
        "json": "JSON",
        "blob": "LONGBLOB",
    }

    @property
    def name(self) -> str:
        return "mysql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def upsert(
        self,
        table: str,
        columns: list[str],
        key_columns: list[str],
        update_columns: list[str] | None = None,
    ) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        if update_columns is None:
            update_columns = [c for c in columns if c not in key_columns]
        if not update_columns:
            return f"INSERT IGNORE INTO {table} ({cols}) VALUES ({ph})"
        updates = ", ".join(f"{c} = VALUES({c})" for c in update_columns)
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON DUPLICATE KEY UPDATE {updates}"

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT IGNORE INTO {table} ({cols}) VALUES ({ph})"

    def null_safe_equals(self, column: str) -> str:
        return f"{column} <=> %s"

    def limit_offset(self, limit: int | None, offset: int | None) -> str:
        if limit is None and not offset:
            return ""
        # MySQL has no OFFSET without LIMIT
        clause = f"LIMIT {18446744073709551615 if limit is None else int(limit)}"
        if offset:
            clause += f" OFFSET {int(offset)}"
        return clause

    def returning(self, column: str) -> str:  # noqa: ARG002
        return ""

    def auto_increment(self) -> str:
        return "BIGINT PRIMARY KEY AUTO_INCREMENT"

    def column_type(self, kind: str) -> str:
        return _check_kind(kind, self._TYPES)

    def boolean_true(self) -> str:
        return "1"

    def boolean_false(self) -> str:
        return "0"


# =========================================================================
# Registry
# =========================================================================

_DIALECTS: dict[str, type] = {
    "sqlite": SQLiteDialect,
    "postgresql": PostgreSQLDialect,
    "postgres": PostgreSQLDialect,
    "mysql": MySQLDialect,
    "mariadb": MySQLDialect,
}


def get_dialect(name: str) -> Dialect:
    """Return a dialect instance by backend name.

    Raises:
        UnsupportedDatabaseError: If no dialect is registered under *name*.
    """
    key = name.lower()
    if key not in _DIALECTS:
        raise UnsupportedDatabaseError(
            f"No SQL dialect registered for {name!r}; known: {sorted(_DIALECTS)}"
        )
    return _DIALECTS[key]()


def register_dialect(name: str, dialect_cls: type) -> None:
    """Register a custom dialect class under *name*."""
    _DIALECTS[name.lower()] = dialect_cls


__all__ = [
    "COLUMN_KINDS",
    "Dialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "get_dialect",
    "register_dialect",
]
