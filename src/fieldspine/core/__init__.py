"""fieldspine.core -- database-facing primitives shared by the entity and field layers.

Architecture::

    Layer 1 -- Contracts & Errors
        protocols.py       Connection protocol
        errors.py          Error hierarchy (FieldSpineError and families)
        timestamps.py      UTC helpers and storage timestamp format

    Layer 2 -- Database Access
        dialect.py         SQL dialects (SQLite, PostgreSQL, MySQL)
        sqlite_conn.py     SqliteConnection adapter (nested transactions)
        orm/               SQLAlchemy engine + session bridge
        connection.py      create_connection(url)
        repository.py      BaseRepository, transaction()
        schema.py          DDL for the field tables

    Layer 3 -- Ambient Services
        cache.py           CacheBackend protocol, InMemoryCache
        logging.py         structlog configuration
        settings.py        pydantic-settings configuration
"""

from fieldspine.core.cache import CacheBackend, InMemoryCache
from fieldspine.core.connection import ConnectionInfo, create_connection
from fieldspine.core.dialect import Dialect, MySQLDialect, PostgreSQLDialect, SQLiteDialect, get_dialect
from fieldspine.core.protocols import Connection
from fieldspine.core.repository import BaseRepository, transaction
from fieldspine.core.sqlite_conn import SqliteConnection

__all__ = [
    "BaseRepository",
    "CacheBackend",
    "Connection",
    "ConnectionInfo",
    "Dialect",
    "InMemoryCache",
    "MySQLDialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "SqliteConnection",
    "create_connection",
    "get_dialect",
    "transaction",
]
