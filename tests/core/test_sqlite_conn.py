"""Tests for the SqliteConnection adapter and the transaction() helper."""

from __future__ import annotations

import pytest

from fieldspine.core.protocols import Connection
from fieldspine.core.repository import BaseRepository, transaction
from fieldspine.core.sqlite_conn import SqliteConnection


@pytest.fixture
def db():
    conn = SqliteConnection(":memory:")
    conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE)")
    yield conn
    conn.close()


def _names(conn: SqliteConnection) -> list[str]:
    return [row[0] for row in conn.execute("SELECT name FROM items ORDER BY id").fetchall()]


class TestAdapter:
    def test_satisfies_protocol(self, db) -> None:
        assert isinstance(db, Connection)

    def test_insert_and_last_id(self, db) -> None:
        db.execute("INSERT INTO items (name) VALUES (?)", ("a",))
        assert db.last_insert_id() == 1
        assert db.rowcount == 1

    def test_executemany(self, db) -> None:
        db.executemany("INSERT INTO items (name) VALUES (?)", [("a",), ("b",)])
        assert _names(db) == ["a", "b"]

    def test_rows_are_mappings(self, db) -> None:
        db.execute("INSERT INTO items (name) VALUES (?)", ("a",))
        row = db.execute("SELECT * FROM items").fetchone()
        assert dict(row) == {"id": 1, "name": "a"}


class TestTransactions:
    def test_commit(self, db) -> None:
        with transaction(db):
            db.execute("INSERT INTO items (name) VALUES (?)", ("a",))
        assert _names(db) == ["a"]
        assert not db.in_transaction

    def test_rollback_reraises(self, db) -> None:
        with pytest.raises(RuntimeError), transaction(db):
            db.execute("INSERT INTO items (name) VALUES (?)", ("a",))
            raise RuntimeError("abort")
        assert _names(db) == []
        assert not db.in_transaction

    def test_nested_rollback_keeps_outer_work(self, db) -> None:
        with transaction(db):
            db.execute("INSERT INTO items (name) VALUES (?)", ("outer",))
            with pytest.raises(RuntimeError), transaction(db):
                db.execute("INSERT INTO items (name) VALUES (?)", ("inner",))
                raise RuntimeError("inner failed")
        assert _names(db) == ["outer"]

    def test_commit_and_rollback_outside_transaction_are_noops(self, db) -> None:
        db.commit()
        db.rollback()
        assert not db.in_transaction

    def test_driver_errors_propagate_unwrapped(self, db) -> None:
        import sqlite3

        repo = BaseRepository(db)
        repo.insert("items", {"name": "dup"})
        with pytest.raises(sqlite3.IntegrityError), repo.atomic():
            repo.insert("items", {"name": "dup"})
        assert _names(db) == ["dup"]


class TestBaseRepository:
    def test_query_helpers(self, db) -> None:
        repo = BaseRepository(db)
        repo.insert_many("items", [{"name": "a"}, {"name": "b"}])
        assert repo.query("SELECT name FROM items ORDER BY id") == [{"name": "a"}, {"name": "b"}]
        assert repo.query_one("SELECT name FROM items WHERE name = ?", ("b",)) == {"name": "b"}
        assert repo.query_one("SELECT name FROM items WHERE name = ?", ("z",)) is None
        assert repo.scalar("SELECT COUNT(*) FROM items") == 2

    def test_insert_returns_id(self, db) -> None:
        repo = BaseRepository(db)
        assert repo.insert("items", {"name": "a"}) == 1
        assert repo.insert("items", {"name": "b"}) == 2

    def test_insert_many_empty(self, db) -> None:
        assert BaseRepository(db).insert_many("items", []) == 0
