"""Tests for EntityQuery: SQL compilation, predicate precedence, pagination."""

from __future__ import annotations

import pytest

from fieldspine.core.dialect import PostgreSQLDialect
from fieldspine.core.errors import EntityNotFoundError, InvalidQueryError
from fieldspine.entity.query import EntityQuery, Page, check_identifier, last_page_for
from tests._support.entities import Node, Tag


@pytest.fixture
def seeded(manager):
    """Ten nodes: views 0..9, even ones published, titles n0..n9."""
    for i in range(10):
        manager.save(Node({"title": f"n{i}", "views": i, "status": "published" if i % 2 == 0 else "draft"}))
    return manager


def titles(nodes) -> list[str]:
    return [n.title for n in nodes]


# =========================================================================
# Compilation
# =========================================================================


class TestCompilation:
    def test_soft_delete_filter_wraps_user_expression(self, manager) -> None:
        sql, params = manager.query(Node).where("status", "published").or_where("views", ">", 10).to_sql()
        assert sql == "SELECT * FROM nodes WHERE (status = ? OR views > ?) AND deleted_at IS NULL"
        assert params == ["published", 10]

    def test_no_soft_delete_filter_for_plain_entities(self, manager) -> None:
        sql, _ = manager.query(Tag).to_sql()
        assert sql == "SELECT * FROM tags"

    def test_precedence_is_left_to_right(self, manager) -> None:
        sql, _ = (
            manager.query(Tag).where("a", 1).where("b", 2).or_where("c", 3).where("weight", 4).to_sql()
        )
        assert sql == "SELECT * FROM tags WHERE (a = ? AND b = ? OR c = ?) AND weight = ?"

    def test_where_group(self, manager) -> None:
        sql, params = (
            manager.query(Tag).where("name", "x").where_group(lambda q: q.where("weight", 1).or_where("weight", 2))
        ).to_sql()
        assert sql == "SELECT * FROM tags WHERE name = ? AND (weight = ? OR weight = ?)"
        assert params == ["x", 1, 2]

    def test_mapping_where(self, manager) -> None:
        sql, _ = manager.query(Tag).where({"name": "x", "weight": 1}).to_sql()
        assert sql == "SELECT * FROM tags WHERE (name = ? AND weight = ?)"

    def test_none_becomes_is_null(self, manager) -> None:
        sql, params = manager.query(Tag).where("name", None).where("weight", "!=", None).to_sql()
        assert sql == "SELECT * FROM tags WHERE name IS NULL AND weight IS NOT NULL"
        assert params == []

    def test_empty_in_matches_nothing(self, manager) -> None:
        sql, _ = manager.query(Tag).where_in("id", []).to_sql()
        assert sql == "SELECT * FROM tags WHERE 1 = 0"

    def test_order_limit_offset(self, manager) -> None:
        sql, _ = manager.query(Tag).order_by("weight", "desc").order_by("name").limit(5).offset(10).to_sql()
        assert sql == "SELECT * FROM tags ORDER BY weight DESC, name ASC LIMIT 5 OFFSET 10"

    def test_raw_bindings_follow_dialect(self, conn) -> None:
        query = EntityQuery(conn, Tag, PostgreSQLDialect()).where_raw("weight > ? AND weight < ?", [1, 5])
        sql, params = query.to_sql()
        assert sql == "SELECT * FROM tags WHERE (weight > %s AND weight < %s)"
        assert params == [1, 5]

    def test_booleans_bind_as_integers(self, manager) -> None:
        _, params = manager.query(Tag).where("weight", True).to_sql()
        assert params == [1]


class TestIdentifierValidation:
    @pytest.mark.parametrize("bad", ["name; DROP TABLE tags", "1abc", "a b", "", "a.b.c"])
    def test_rejects_unsafe_identifiers(self, bad: str) -> None:
        with pytest.raises(InvalidQueryError):
            check_identifier(bad)

    def test_accepts_qualified_name(self) -> None:
        assert check_identifier("f.name") == "f.name"

    def test_rejects_operator(self, manager) -> None:
        with pytest.raises(InvalidQueryError, match="operator"):
            manager.query(Tag).where("weight", "===", 1)

    def test_rejects_direction(self, manager) -> None:
        with pytest.raises(InvalidQueryError):
            manager.query(Tag).order_by("weight", "sideways")


# =========================================================================
# Execution
# =========================================================================


class TestExecution:
    def test_precedence_results(self, seeded) -> None:
        # (published AND views >= 6) OR views = 1, then AND views < 9
        nodes = (
            seeded.query(Node)
            .where("status", "published")
            .where("views", ">=", 6)
            .or_where("views", 1)
            .where("views", "<", 9)
            .order_by("views")
            .get()
        )
        assert titles(nodes) == ["n1", "n6", "n8"]

    def test_where_in_and_between(self, seeded) -> None:
        assert titles(seeded.query(Node).where_in("views", [2, 4]).order_by("views").get()) == ["n2", "n4"]
        assert seeded.query(Node).where_between("views", 3, 5).count() == 3
        assert seeded.query(Node).where_not_between("views", 3, 5).count() == 7

    def test_like(self, seeded) -> None:
        assert seeded.query(Node).where_like("title", "n1%").count() == 1

    def test_first_and_find(self, seeded) -> None:
        assert seeded.query(Node).order_by_desc("views").first().title == "n9"
        assert seeded.query(Node).find(3).title == "n2"
        assert seeded.query(Node).where("views", 100).first() is None

    def test_first_or_fail(self, seeded) -> None:
        with pytest.raises(EntityNotFoundError):
            seeded.query(Node).where("views", 100).first_or_fail()
        with pytest.raises(EntityNotFoundError, match="999"):
            seeded.query(Node).find_or_fail(999)

    def test_aggregates(self, seeded) -> None:
        query = seeded.query(Node)
        assert query.sum("views") == 45
        assert query.avg("views") == 4.5
        assert query.max("views") == 9
        assert query.min("views") == 0
        assert seeded.query(Node).where("views", 100).sum("views") == 0

    def test_exists(self, seeded) -> None:
        assert seeded.query(Node).where("views", 9).exists()
        assert not seeded.query(Node).where("views", 90).exists()

    def test_pluck(self, seeded) -> None:
        assert seeded.query(Node).where("views", "<", 3).order_by("views").pluck("title") == ["n0", "n1", "n2"]
        assert seeded.query(Node).where("views", "<", 2).pluck("title", "id") == {1: "n0", 2: "n1"}

    def test_select(self, seeded) -> None:
        rows = seeded.query(Node).select("id", "title").where("views", 0).rows()
        assert rows == [{"id": 1, "title": "n0"}]

    def test_chunk(self, seeded) -> None:
        sizes: list[int] = []
        assert seeded.query(Node).order_by("id").chunk(4, lambda batch: sizes.append(len(batch)))
        assert sizes == [4, 4, 2]

    def test_chunk_stops_on_false(self, seeded) -> None:
        seen: list[int] = []

        def stop_after_first(batch) -> bool:
            seen.append(len(batch))
            return False

        assert seeded.query(Node).chunk(3, stop_after_first) is False
        assert seen == [3]

    def test_clone_is_independent(self, seeded) -> None:
        base = seeded.query(Node).where("status", "published")
        narrowed = base.clone().where("views", ">", 4)
        assert base.count() == 5
        assert narrowed.count() == 2


class TestSoftDeleteScoping:
    def test_trashed_rows_excluded_by_default(self, seeded) -> None:
        seeded.delete(seeded.find(Node, 1))
        assert seeded.query(Node).count() == 9
        assert seeded.query(Node).with_trashed().count() == 10
        assert titles(seeded.query(Node).only_trashed().get()) == ["n0"]

    def test_or_where_cannot_leak_trashed_rows(self, seeded) -> None:
        seeded.delete(seeded.find(Node, 1))
        nodes = seeded.query(Node).where("views", 5).or_where("views", 0).get()
        assert titles(nodes) == ["n5"]


# =========================================================================
# Pagination
# =========================================================================


class TestPagination:
    def test_last_page_for(self) -> None:
        assert last_page_for(47, 10) == 5
        assert last_page_for(50, 10) == 5
        assert last_page_for(0, 10) == 0
        assert last_page_for(0, 10, empty_last_page=1) == 1

    def test_paginate(self, manager) -> None:
        manager.insert_many(Tag({"name": f"t{i}", "weight": i}) for i in range(47))
        page = manager.query(Tag).order_by("weight").paginate(per_page=10, page=5)
        assert isinstance(page, Page)
        assert page.total == 47
        assert page.last_page == 5
        assert [t.name for t in page.data] == ["t40", "t41", "t42", "t43", "t44", "t45", "t46"]
        assert not page.has_more

    def test_page_past_the_end_is_empty(self, manager) -> None:
        manager.insert_many(Tag({"name": f"t{i}"}) for i in range(3))
        page = manager.query(Tag).paginate(per_page=2, page=9)
        assert page.data == []
        assert page.total == 3
        assert page.last_page == 2

    def test_empty_result_default(self, manager) -> None:
        page = manager.query(Tag).paginate(per_page=10)
        assert (page.total, page.last_page, page.data) == (0, 0, [])

    def test_empty_result_configured(self, conn) -> None:
        from fieldspine.entity.manager import EntityManager

        manager = EntityManager(conn, empty_last_page=1)
        assert manager.query(Tag).paginate(per_page=10).last_page == 1
        assert manager.query(Tag).paginate(per_page=10, empty_last_page=0).last_page == 0

    def test_paging_ignores_existing_limit_for_total(self, manager) -> None:
        manager.insert_many(Tag({"name": f"t{i}"}) for i in range(12))
        page = manager.query(Tag).limit(3).paginate(per_page=5, page=2)
        assert page.total == 12
        assert len(page.data) == 5

    def test_to_dict(self, manager) -> None:
        manager.save(Tag({"name": "only"}))
        data = manager.query(Tag).paginate(per_page=10).to_dict()
        assert data["total"] == 1
        assert data["data"][0]["name"] == "only"
