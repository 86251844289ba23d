"""SQLAlchemy engine factory and Connection bridge.

Manifesto:
    Applications that already own a SQLAlchemy ``Session`` should be able
    to hand it to fieldspine and have entity writes and EAV writes join
    the same unit of work.  ``SAConnectionBridge`` wraps the session so it
    satisfies :class:`fieldspine.core.protocols.Connection`.

This module provides:

* ``create_fieldspine_engine``  -- Create a SA engine from a URL.
* ``fieldspine_session_factory`` -- ``sessionmaker`` with ``expire_on_commit=False``.
* ``SAConnectionBridge``        -- Wraps a SA ``Session`` as a ``Connection``.

Tags:
    fieldspine, orm, sqlalchemy, session, engine, bridge, connection
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

# ``?`` (qmark) and ``%s`` (format) positional markers outside quoted literals
_PLACEHOLDER_RE = re.compile(r"'(?:[^']|'')*'|\?|%s")


def create_fieldspine_engine(url: str = "sqlite:///:memory:", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite engines get ``check_same_thread=False`` and foreign keys
    switched on for every pooled connection.  In-memory SQLite uses a
    static pool so every session sees the same database.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            from sqlalchemy.pool import StaticPool

            kwargs.setdefault("poolclass", StaticPool)
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return _sa_create_engine(url, echo=echo, **kwargs)


def fieldspine_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a ``sessionmaker`` bound to *engine* with ``expire_on_commit=False``."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def _to_named(sql: str, parameters: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """Rewrite positional markers to ``:pN`` names for ``text()``."""
    index = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal index
        token = match.group(0)
        if token.startswith("'"):
            return token
        name = f":p{index}"
        index += 1
        return name

    rewritten = _PLACEHOLDER_RE.sub(_replace, sql)
    return rewritten, {f"p{i}": v for i, v in enumerate(parameters)}


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Session`` look like a ``Connection``.

    Result rows are buffered on execute so that statements issued outside
    an explicit transaction can be committed immediately.  The session
    auto-begins its own transaction, so the outermost :meth:`begin` only
    records depth; nested levels become SAVEPOINTs.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._rows: list[tuple[Any, ...]] = []
        self._keys: list[str] | None = None
        self._rowcount = -1
        self._last_insert_id: int | None = None
        self._depth = 0

    # --- execute / executemany ---

    def execute(self, sql: str, parameters: Sequence[Any] | None = None) -> SAConnectionBridge:
        if parameters:
            rewritten, mapping = _to_named(sql, parameters)
            result = self._session.execute(text(rewritten), mapping)
        else:
            result = self._session.execute(text(sql))

        self._last_insert_id = None
        self._rowcount = result.rowcount
        if result.returns_rows:
            self._keys = list(result.keys())
            self._rows = [tuple(r) for r in result.fetchall()]
        else:
            self._keys = None
            self._rows = []
        if sql.lstrip()[:6].upper() == "INSERT":
            if self._rows:
                self._last_insert_id = self._rows[0][0]
            else:
                self._last_insert_id = getattr(result, "lastrowid", None)

        if self._depth == 0:
            self._session.commit()
        return self

    def executemany(self, sql: str, seq_of_parameters: Sequence[Sequence[Any]]) -> None:
        for params in seq_of_parameters:
            self.execute(sql, params)

    # --- fetch ---

    def fetchone(self) -> tuple[Any, ...] | None:
        if not self._rows:
            return None
        return self._rows.pop(0)

    def fetchall(self) -> list[tuple[Any, ...]]:
        rows, self._rows = self._rows, []
        return rows

    def last_insert_id(self) -> int | None:
        return self._last_insert_id

    @property
    def rowcount(self) -> int:
        return self._rowcount

    # --- transaction ---

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def begin(self) -> None:
        if self._depth > 0:
            self._session.execute(text(f"SAVEPOINT sp_{self._depth}"))
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            self._session.commit()
            return
        self._depth -= 1
        if self._depth == 0:
            self._session.commit()
        else:
            self._session.execute(text(f"RELEASE SAVEPOINT sp_{self._depth}"))

    def rollback(self) -> None:
        if self._depth == 0:
            self._session.rollback()
            return
        self._depth -= 1
        if self._depth == 0:
            self._session.rollback()
        else:
            self._session.execute(text(f"ROLLBACK TO SAVEPOINT sp_{self._depth}"))
            self._session.execute(text(f"RELEASE SAVEPOINT sp_{self._depth}"))

    def close(self) -> None:
        self._session.close()

    # --- properties ---

    @property
    def description(self) -> list[tuple[str, ...]] | None:
        """DB-API 2.0 compatible description from the last result."""
        if self._keys is None:
            return None
        return [(k, None, None, None, None, None, None) for k in self._keys]

    @property
    def session(self) -> Session:
        """Access the underlying SA session (e.g., for ORM queries)."""
        return self._session


__all__ = [
    "SAConnectionBridge",
    "create_fieldspine_engine",
    "fieldspine_session_factory",
]
