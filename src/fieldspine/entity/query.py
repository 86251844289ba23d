"""
Fluent, parameterized query builder for one entity table.

Manifesto:
    Callers compose predicates, ordering and paging without writing SQL,
    and every value travels as a bound parameter.  Column names and
    operators are validated against a fixed grammar, so the only way to
    put caller text into the statement is ``where_raw``, which still binds
    its values.

Predicate precedence:
    Predicates accumulate left to right.  ``where`` ANDs the new predicate
    onto the whole expression built so far; ``or_where`` ORs it on::

        where(a).where(b).or_where(c).where(d)   →   ((a AND b) OR c) AND d

    Use ``where_group`` / ``or_where_group`` for any other grouping::

        where(a).where_group(lambda q: q.where(b).or_where(c))   →   a AND (b OR c)

    For soft-deletable entities ``deleted_at IS NULL`` is ANDed around the
    complete user expression unless ``with_trashed()`` / ``only_trashed()``
    is used.

Examples:
    >>> q = manager.query(Node).where("status", "published").where("views", ">", 10)
    >>> q.order_by("created_at", "desc").limit(5).to_sql()
    ('SELECT * FROM nodes WHERE (status = ? AND views > ?) AND deleted_at IS NULL
      ORDER BY created_at DESC LIMIT 5', ['published', 10])
    >>> page = q.paginate(per_page=10, page=2)
    >>> page.last_page

Tags:
    query-builder, sql, pagination, fieldspine
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from fieldspine.core.dialect import Dialect, SQLiteDialect
from fieldspine.core.errors import EntityNotFoundError, InvalidQueryError
from fieldspine.core.protocols import Connection
from fieldspine.core.repository import rows_to_dicts
from fieldspine.entity.casts import to_storage_value
from fieldspine.entity.model import Capability

if TYPE_CHECKING:
    from fieldspine.entity.model import BaseEntity

E = TypeVar("E", bound="BaseEntity")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

OPERATORS = frozenset({"=", "!=", "<>", "<", "<=", ">", ">=", "like", "not like"})

_MISSING: Any = object()


def check_identifier(name: str) -> str:
    """Return *name* if it is a plain or table-qualified column name."""
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise InvalidQueryError(f"Invalid column identifier {name!r}")
    return name


@dataclass
class Page(Generic[E]):
    """One page of results.

    Attributes:
        data: Entities on this page
        total: Matching rows before paging
        page: 1-based page number
        per_page: Page size
        last_page: ``ceil(total / per_page)``; for ``total == 0`` the
            configured empty-result convention (0 by default)
    """

    data: list[E] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 15
    last_page: int = 0

    @property
    def has_more(self) -> bool:
        return self.page < self.last_page

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [item.to_array() for item in self.data],
            "total": self.total,
            "page": self.page,
            "per_page": self.per_page,
            "last_page": self.last_page,
        }


def last_page_for(total: int, per_page: int, empty_last_page: int = 0) -> int:
    """``ceil(total / per_page)``, or *empty_last_page* when nothing matched."""
    if total <= 0:
        return empty_last_page
    return math.ceil(total / per_page)


class EntityQuery(Generic[E]):
    """Query builder bound to one entity class.

    Args:
        conn: Database connection
        entity_cls: Entity class whose table is queried and which rows hydrate into
        dialect: SQL dialect (defaults to SQLite)
        empty_last_page: ``last_page`` reported by :meth:`paginate` for empty results
    """

    def __init__(
        self,
        conn: Connection,
        entity_cls: type[E],
        dialect: Dialect | None = None,
        *,
        empty_last_page: int = 0,
    ) -> None:
        self.conn = conn
        self.entity_cls = entity_cls
        self.dialect: Dialect = dialect or SQLiteDialect()
        self.empty_last_page = empty_last_page
        self._columns: list[str] = []
        self._wheres: list[tuple[str, str, list[Any]]] = []
        self._orders: list[tuple[str, str]] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._trashed = "exclude"

    @property
    def table(self) -> str:
        return self.entity_cls.table

    def clone(self) -> EntityQuery[E]:
        copy = EntityQuery(self.conn, self.entity_cls, self.dialect, empty_last_page=self.empty_last_page)
        copy._columns = list(self._columns)
        copy._wheres = [(b, sql, list(params)) for b, sql, params in self._wheres]
        copy._orders = list(self._orders)
        copy._limit = self._limit
        copy._offset = self._offset
        copy._trashed = self._trashed
        return copy

    def _sub(self) -> EntityQuery[E]:
        return EntityQuery(self.conn, self.entity_cls, self.dialect)

    # ── Selection ────────────────────────────────────────────────────────

    def select(self, *columns: str) -> EntityQuery[E]:
        self._columns = [c if c == "*" else check_identifier(c) for c in columns]
        return self

    def add_select(self, *columns: str) -> EntityQuery[E]:
        self._columns.extend(check_identifier(c) for c in columns)
        return self

    # ── Predicates ───────────────────────────────────────────────────────

    def _add(self, boolean: str, sql: str, params: Iterable[Any] = ()) -> EntityQuery[E]:
        self._wheres.append((boolean, sql, [to_storage_value(p) for p in params]))
        return self

    def _comparison(self, boolean: str, column: Any, operator: Any, value: Any) -> EntityQuery[E]:
        if callable(column):
            return self._group(boolean, column)
        if isinstance(column, Mapping):
            sub = self._sub()
            for key, val in column.items():
                sub.where(key, val)
            return self._nest(boolean, sub)
        if value is _MISSING:
            operator, value = "=", operator
        check_identifier(column)
        op = str(operator).lower()
        if op not in OPERATORS:
            raise InvalidQueryError(f"Unsupported operator {operator!r}")
        if value is None and op in ("=", "!=", "<>"):
            return self._add(boolean, f"{column} IS NULL" if op == "=" else f"{column} IS NOT NULL")
        return self._add(boolean, f"{column} {op.upper()} {self.dialect.placeholder(0)}", [value])

    def where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> EntityQuery[E]:
        """AND a predicate.

        ``where("status", "draft")`` tests equality, ``where("views", ">", 10)``
        uses an operator, ``where({"a": 1, "b": 2})`` ANDs several
        equalities as one group and ``where(callable)`` nests a group.
        """
        return self._comparison("AND", column, operator, value)

    def or_where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> EntityQuery[E]:
        """OR a predicate onto the accumulated expression."""
        return self._comparison("OR", column, operator, value)

    def _nest(self, boolean: str, sub: EntityQuery[E]) -> EntityQuery[E]:
        sql, params = sub._render_where()
        if not sql:
            return self
        return self._add(boolean, f"({sql})", params)

    def _group(self, boolean: str, build: Callable[[EntityQuery[E]], Any]) -> EntityQuery[E]:
        sub = self._sub()
        build(sub)
        return self._nest(boolean, sub)

    def where_group(self, build: Callable[[EntityQuery[E]], Any]) -> EntityQuery[E]:
        """AND a parenthesised group built by *build(query)*."""
        return self._group("AND", build)

    def or_where_group(self, build: Callable[[EntityQuery[E]], Any]) -> EntityQuery[E]:
        """OR a parenthesised group built by *build(query)*."""
        return self._group("OR", build)

    def _in(self, boolean: str, column: str, values: Iterable[Any], negate: bool) -> EntityQuery[E]:
        check_identifier(column)
        values = list(values)
        if not values:
            # IN () is invalid SQL; an empty set matches nothing
            return self._add(boolean, "1 = 1" if negate else "1 = 0")
        keyword = "NOT IN" if negate else "IN"
        return self._add(boolean, f"{column} {keyword} ({self.dialect.placeholders(len(values))})", values)

    def where_in(self, column: str, values: Iterable[Any]) -> EntityQuery[E]:
        return self._in("AND", column, values, negate=False)

    def or_where_in(self, column: str, values: Iterable[Any]) -> EntityQuery[E]:
        return self._in("OR", column, values, negate=False)

    def where_not_in(self, column: str, values: Iterable[Any]) -> EntityQuery[E]:
        return self._in("AND", column, values, negate=True)

    def where_null(self, column: str) -> EntityQuery[E]:
        return self._add("AND", f"{check_identifier(column)} IS NULL")

    def or_where_null(self, column: str) -> EntityQuery[E]:
        return self._add("OR", f"{check_identifier(column)} IS NULL")

    def where_not_null(self, column: str) -> EntityQuery[E]:
        return self._add("AND", f"{check_identifier(column)} IS NOT NULL")

    def where_between(self, column: str, low: Any, high: Any) -> EntityQuery[E]:
        ph = self.dialect.placeholder(0)
        return self._add("AND", f"{check_identifier(column)} BETWEEN {ph} AND {ph}", [low, high])

    def where_not_between(self, column: str, low: Any, high: Any) -> EntityQuery[E]:
        ph = self.dialect.placeholder(0)
        return self._add("AND", f"{check_identifier(column)} NOT BETWEEN {ph} AND {ph}", [low, high])

    def where_like(self, column: str, pattern: str) -> EntityQuery[E]:
        return self._add("AND", f"{check_identifier(column)} LIKE {self.dialect.placeholder(0)}", [pattern])

    def or_where_like(self, column: str, pattern: str) -> EntityQuery[E]:
        return self._add("OR", f"{check_identifier(column)} LIKE {self.dialect.placeholder(0)}", [pattern])

    def _raw(self, boolean: str, sql: str, bindings: Iterable[Any]) -> EntityQuery[E]:
        parts = sql.split("?")
        rendered = parts[0] + "".join(
            self.dialect.placeholder(i) + part for i, part in enumerate(parts[1:])
        )
        return self._add(boolean, f"({rendered})", bindings)

    def where_raw(self, sql: str, bindings: Iterable[Any] = ()) -> EntityQuery[E]:
        """AND a raw SQL fragment; ``?`` markers bind *bindings* in order."""
        return self._raw("AND", sql, bindings)

    def or_where_raw(self, sql: str, bindings: Iterable[Any] = ()) -> EntityQuery[E]:
        return self._raw("OR", sql, bindings)

    # ── Soft deletes ─────────────────────────────────────────────────────

    def with_trashed(self) -> EntityQuery[E]:
        """Include soft-deleted rows."""
        self._trashed = "with"
        return self

    def only_trashed(self) -> EntityQuery[E]:
        """Return only soft-deleted rows."""
        self._trashed = "only"
        return self

    # ── Ordering & paging ────────────────────────────────────────────────

    def order_by(self, column: str, direction: str = "asc") -> EntityQuery[E]:
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise InvalidQueryError(f"Invalid sort direction {direction!r}")
        self._orders.append((check_identifier(column), direction.upper()))
        return self

    def order_by_desc(self, column: str) -> EntityQuery[E]:
        return self.order_by(column, "desc")

    def latest(self, column: str = "created_at") -> EntityQuery[E]:
        return self.order_by(column, "desc")

    def oldest(self, column: str = "created_at") -> EntityQuery[E]:
        return self.order_by(column, "asc")

    def limit(self, count: int) -> EntityQuery[E]:
        self._limit = max(0, int(count))
        return self

    def take(self, count: int) -> EntityQuery[E]:
        return self.limit(count)

    def offset(self, count: int) -> EntityQuery[E]:
        self._offset = max(0, int(count))
        return self

    def skip(self, count: int) -> EntityQuery[E]:
        return self.offset(count)

    def for_page(self, page: int, per_page: int = 15) -> EntityQuery[E]:
        """Limit to one page: ``offset = (page - 1) * per_page``."""
        page = max(1, int(page))
        return self.offset((page - 1) * per_page).limit(per_page)

    # ── Compilation ──────────────────────────────────────────────────────

    def _render_where(self) -> tuple[str, list[Any]]:
        sql = ""
        params: list[Any] = []
        pending_or = False
        for boolean, fragment, values in self._wheres:
            if not sql:
                sql = fragment
            elif boolean == "OR":
                sql = f"{sql} OR {fragment}"
                pending_or = True
            elif pending_or:
                sql = f"({sql}) AND {fragment}"
                pending_or = False
            else:
                sql = f"{sql} AND {fragment}"
            params.extend(values)
        return sql, params

    def _where_clause(self) -> tuple[str, list[Any]]:
        sql, params = self._render_where()
        trashed = ""
        if self.entity_cls.supports(Capability.SOFT_DELETE):
            if self._trashed == "exclude":
                trashed = "deleted_at IS NULL"
            elif self._trashed == "only":
                trashed = "deleted_at IS NOT NULL"
        if sql and trashed:
            sql = f"({sql}) AND {trashed}"
        elif trashed:
            sql = trashed
        return (f" WHERE {sql}" if sql else ""), params

    def _compile(self, select: str, *, ordered: bool = True, paged: bool = True) -> tuple[str, list[Any]]:
        where, params = self._where_clause()
        sql = f"SELECT {select} FROM {self.table}{where}"
        if ordered and self._orders:
            sql += " ORDER BY " + ", ".join(f"{c} {d}" for c, d in self._orders)
        if paged:
            clause = self.dialect.limit_offset(self._limit, self._offset)
            if clause:
                sql += f" {clause}"
        return sql, params

    def to_sql(self) -> tuple[str, list[Any]]:
        """The SELECT statement and its bound parameters."""
        return self._compile(", ".join(self._columns) or "*")

    def _fetch(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        cursor = self.conn.execute(sql, tuple(params))
        return rows_to_dicts(cursor, cursor.fetchall())

    def _scalar(self, sql: str, params: list[Any]) -> Any:
        cursor = self.conn.execute(sql, tuple(params))
        row = cursor.fetchone()
        return None if row is None else row[0]

    # ── Terminal operations ──────────────────────────────────────────────

    def get(self) -> list[E]:
        """Execute and hydrate every matching row."""
        sql, params = self.to_sql()
        return [self.entity_cls.from_storage(row) for row in self._fetch(sql, params)]

    def rows(self) -> list[dict[str, Any]]:
        """Execute and return raw row dicts."""
        sql, params = self.to_sql()
        return self._fetch(sql, params)

    def first(self) -> E | None:
        results = self.clone().limit(1).get()
        return results[0] if results else None

    def first_or_fail(self) -> E:
        entity = self.first()
        if entity is None:
            raise EntityNotFoundError(self.entity_cls.entity_type)
        return entity

    def find(self, entity_id: Any) -> E | None:
        return self.clone().where(self.entity_cls.primary_key, entity_id).first()

    def find_or_fail(self, entity_id: Any) -> E:
        entity = self.find(entity_id)
        if entity is None:
            raise EntityNotFoundError(self.entity_cls.entity_type, entity_id)
        return entity

    def count(self) -> int:
        """Matching rows, ignoring ordering and paging."""
        sql, params = self._compile("COUNT(*) AS aggregate", ordered=False, paged=False)
        return int(self._scalar(sql, params) or 0)

    def exists(self) -> bool:
        where, params = self._where_clause()
        sql = f"SELECT 1 FROM {self.table}{where} {self.dialect.limit_offset(1, None)}"
        return self._scalar(sql, params) is not None

    def _aggregate(self, function: str, column: str) -> Any:
        sql, params = self._compile(f"{function}({check_identifier(column)}) AS aggregate", ordered=False, paged=False)
        return self._scalar(sql, params)

    def sum(self, column: str) -> int | float:
        return self._aggregate("SUM", column) or 0

    def avg(self, column: str) -> float | None:
        value = self._aggregate("AVG", column)
        return None if value is None else float(value)

    def max(self, column: str) -> Any:
        return self._aggregate("MAX", column)

    def min(self, column: str) -> Any:
        return self._aggregate("MIN", column)

    def pluck(self, column: str, key: str | None = None) -> list[Any] | dict[Any, Any]:
        """Values of one column, cast by the entity schema; keyed by *key* if given."""
        columns = [check_identifier(column)] + ([check_identifier(key)] if key else [])
        sql, params = self._compile(", ".join(columns))
        rows = self._fetch(sql, params)
        value_attr = self.entity_cls.schema.get(column)

        def _cast(attr: Any, raw: Any) -> Any:
            return attr.cast_value(raw) if attr is not None else raw

        if key is None:
            return [_cast(value_attr, row[column]) for row in rows]
        key_attr = self.entity_cls.schema.get(key)
        return {_cast(key_attr, row[key]): _cast(value_attr, row[column]) for row in rows}

    def paginate(self, per_page: int = 15, page: int = 1, *, empty_last_page: int | None = None) -> Page[E]:
        """Count all matches, then fetch one page."""
        per_page = max(1, int(per_page))
        page = max(1, int(page))
        total = self.count()
        data = self.clone().for_page(page, per_page).get() if total else []
        convention = self.empty_last_page if empty_last_page is None else empty_last_page
        return Page(
            data=data,
            total=total,
            page=page,
            per_page=per_page,
            last_page=last_page_for(total, per_page, convention),
        )

    def chunk(self, size: int, callback: Callable[[list[E]], Any]) -> bool:
        """Feed results to *callback* in batches of *size*.

        Stops early (returning False) when the callback returns ``False``.
        """
        page = 1
        while True:
            batch = self.clone().for_page(page, size).get()
            if not batch:
                return True
            if callback(batch) is False:
                return False
            if len(batch) < size:
                return True
            page += 1

    def __repr__(self) -> str:
        sql, params = self.to_sql()
        return f"EntityQuery({sql!r}, {params!r})"


__all__ = [
    "EntityQuery",
    "OPERATORS",
    "Page",
    "check_identifier",
    "last_page_for",
]
