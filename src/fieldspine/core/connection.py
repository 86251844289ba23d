"""Connection factory -- create database connections from URL strings.

Supported URL schemes
---------------------
==================  ==========================================  ============
Scheme              Example                                     Backend
==================  ==========================================  ============
``memory``          ``memory`` or ``:memory:`` or ``None``       SQLite RAM
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``(file path)``     ``./data/content.db``                        SQLite file
``postgresql``      ``postgresql://user:pw@host:port/db``        PostgreSQL
``mysql``           ``mysql+pymysql://user:pw@host/db``          MySQL
==================  ==========================================  ============

SQLite URLs get the native :class:`~fieldspine.core.sqlite_conn.SqliteConnection`;
every other scheme goes through a SQLAlchemy session wrapped in
:class:`~fieldspine.core.orm.session.SAConnectionBridge`.

Usage
-----
::

    from fieldspine.core.connection import create_connection

    conn, info = create_connection("sqlite:///content.db")
    print(info)
    # ConnectionInfo(backend='sqlite', persistent=True, path='/abs/content.db')

Connection failures are not masked: driver errors propagate to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fieldspine.core.errors import UnsupportedDatabaseError
from fieldspine.core.logging import get_logger

logger = get_logger(__name__)


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    """Backend identifier: ``"sqlite"``, ``"postgresql"`` or ``"mysql"``."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The original URL or path used to create the connection."""

    resolved_path: str | None = None
    """For file-based SQLite, the resolved absolute path."""

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"persistent={self.persistent}"]
        if self.resolved_path:
            parts.append(f"path={self.resolved_path!r}")
        else:
            parts.append(f"url={self.url!r}")
        return f"ConnectionInfo({', '.join(parts)})"

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"


# ── Backend factories ────────────────────────────────────────────────────


def _create_sqlite_memory() -> tuple[Any, ConnectionInfo]:
    from fieldspine.core.sqlite_conn import SqliteConnection

    return SqliteConnection(":memory:"), ConnectionInfo(backend="sqlite", persistent=False, url=":memory:")


def _create_sqlite_file(path_str: str) -> tuple[Any, ConnectionInfo]:
    from fieldspine.core.sqlite_conn import SqliteConnection

    path = Path(path_str)
    path.parent.mkdir(parents=True, exist_ok=True)
    resolved = str(path.resolve())
    conn = SqliteConnection(resolved)
    return conn, ConnectionInfo(backend="sqlite", persistent=True, url=path_str, resolved_path=resolved)


def _create_sqlalchemy(url: str, backend: str) -> tuple[Any, ConnectionInfo]:
    from fieldspine.core.orm.session import (
        SAConnectionBridge,
        create_fieldspine_engine,
        fieldspine_session_factory,
    )

    engine = create_fieldspine_engine(url)
    session = fieldspine_session_factory(engine)()
    return SAConnectionBridge(session), ConnectionInfo(backend=backend, persistent=True, url=url)


# ── URL parsing ──────────────────────────────────────────────────────────

_SA_SCHEMES = {
    "postgresql": "postgresql",
    "postgres": "postgresql",
    "mysql": "mysql",
    "mariadb": "mysql",
}


def _parse_url(db: str | None) -> tuple[str, str]:
    """Parse a database URL into ``(backend, target)``.

    ``backend`` is ``"memory"``, ``"sqlite"``, ``"postgresql"`` or
    ``"mysql"``.  Bare paths are treated as SQLite files.
    """
    if db is None or db in ("", "memory", ":memory:", "sqlite://", "sqlite:///:memory:"):
        return "memory", ":memory:"
    if db.startswith("sqlite:///"):
        return "sqlite", db[len("sqlite:///"):]
    if "://" in db:
        scheme = db.split("://", 1)[0].split("+", 1)[0].lower()
        if scheme in _SA_SCHEMES:
            return _SA_SCHEMES[scheme], db
        raise UnsupportedDatabaseError(f"Unsupported database URL scheme {scheme!r}")
    return "sqlite", db


def create_connection(db: str | None = None) -> tuple[Any, ConnectionInfo]:
    """Create a database connection from a URL or file path.

    Returns:
        ``(conn, info)`` where ``conn`` satisfies the ``Connection`` protocol.

    Raises:
        UnsupportedDatabaseError: For URL schemes without a backend.
    """
    backend, target = _parse_url(db)
    if backend == "memory":
        conn, info = _create_sqlite_memory()
    elif backend == "sqlite":
        conn, info = _create_sqlite_file(target)
    else:
        conn, info = _create_sqlalchemy(target, backend)
    logger.debug("connection.created", backend=info.backend, persistent=info.persistent)
    return conn, info


__all__ = [
    "ConnectionInfo",
    "create_connection",
]
