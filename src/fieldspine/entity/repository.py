"""
Typed repositories over the entity manager.

A repository binds one entity class to an :class:`EntityManager` and
exposes the finder vocabulary callers actually use (``find_by``,
``paginate``, ``latest`` ...) without repeating the class everywhere.

Subclass :class:`ScopedRepository` to name reusable query fragments::

    class NodeRepository(ScopedRepository[Node]):
        def scopes(self):
            return {
                "published": lambda q: q.where("status", "published"),
                "by_author": lambda q, author_id: q.where("author_id", author_id),
            }

    repo.with_scope("by_author", 7).latest().get()

Set ``Node.repository_class = NodeRepository`` and
``manager.get_repository(Node)`` returns it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from fieldspine.core.errors import UnknownScopeError
from fieldspine.entity.model import BaseEntity
from fieldspine.entity.query import EntityQuery, Page

if TYPE_CHECKING:
    from fieldspine.entity.manager import EntityManager

E = TypeVar("E", bound=BaseEntity)

Scope = Callable[..., Any]


class EntityRepository(Generic[E]):
    """Finder and persistence shortcuts for one entity class."""

    def __init__(self, manager: EntityManager, entity_cls: type[E]) -> None:
        self.manager = manager
        self.entity_cls = entity_cls

    def create_query(self) -> EntityQuery[E]:
        return self.manager.query(self.entity_cls)

    # -- Finders -----------------------------------------------------------

    def find(self, entity_id: Any) -> E | None:
        return self.manager.find(self.entity_cls, entity_id)

    def find_or_fail(self, entity_id: Any) -> E:
        return self.manager.find_or_fail(self.entity_cls, entity_id)

    def find_by_ids(self, ids: Iterable[Any]) -> list[E]:
        return self.manager.find_many(self.entity_cls, ids)

    def all(self) -> list[E]:
        return self.manager.all(self.entity_cls)

    def find_by(
        self,
        criteria: Mapping[str, Any],
        order_by: Mapping[str, str] | None = None,
        limit: int | None = None,
    ) -> list[E]:
        return self.manager.find_by(self.entity_cls, criteria, order_by, limit)

    def find_one_by(self, criteria: Mapping[str, Any]) -> E | None:
        return self.manager.find_one_by(self.entity_cls, criteria)

    def first(self) -> E | None:
        return self.create_query().first()

    def latest(self, column: str = "created_at") -> EntityQuery[E]:
        return self.create_query().latest(column)

    def oldest(self, column: str = "created_at") -> EntityQuery[E]:
        return self.create_query().oldest(column)

    def count(self, criteria: Mapping[str, Any] | None = None) -> int:
        return self.create_query().where(dict(criteria)).count() if criteria else self.create_query().count()

    def exists(self, criteria: Mapping[str, Any] | None = None) -> bool:
        return self.create_query().where(dict(criteria)).exists() if criteria else self.create_query().exists()

    def paginate(
        self,
        page: int = 1,
        per_page: int = 15,
        criteria: Mapping[str, Any] | None = None,
        order_by: Mapping[str, str] | None = None,
    ) -> Page[E]:
        query = self.create_query()
        if criteria:
            query.where(dict(criteria))
        for column, direction in (order_by or {}).items():
            query.order_by(column, direction)
        return query.paginate(per_page=per_page, page=page)

    # -- Persistence -------------------------------------------------------

    def create(self, data: Mapping[str, Any] | None = None) -> E:
        """Build an unsaved entity filled from *data*."""
        return self.entity_cls(data)

    def create_and_save(self, data: Mapping[str, Any] | None = None) -> E:
        entity = self.create(data)
        self.manager.save(entity)
        return entity

    def save(self, entity: E) -> E:
        self.manager.save(entity)
        return entity

    def update(self, entity_id: Any, data: Mapping[str, Any]) -> E:
        """Fill an existing entity with *data* and save it."""
        entity = self.find_or_fail(entity_id)
        entity.fill(data)
        self.manager.save(entity)
        return entity

    def delete(self, entity: E) -> None:
        self.manager.delete(entity)

    def delete_by_id(self, entity_id: Any) -> bool:
        """Delete by id; False when nothing was found."""
        entity = self.find(entity_id)
        if entity is None:
            return False
        self.manager.delete(entity)
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.entity_cls.__name__})"


class ScopedRepository(EntityRepository[E]):
    """Repository with named, reusable query scopes."""

    def scopes(self) -> dict[str, Scope]:
        """Scope name → ``fn(query, *args)``.  Override in subclasses."""
        return {}

    def scope(self, name: str, query: EntityQuery[E] | None = None, *args: Any) -> EntityQuery[E]:
        """Apply scope *name* to *query* (a fresh query when omitted)."""
        scopes = self.scopes()
        if name not in scopes:
            raise UnknownScopeError(
                f"Unknown scope {name!r} on {type(self).__name__}; available: {', '.join(sorted(scopes)) or 'none'}"
            )
        query = query if query is not None else self.create_query()
        result = scopes[name](query, *args)
        return result if isinstance(result, EntityQuery) else query

    def with_scope(self, name: str, *args: Any) -> EntityQuery[E]:
        return self.scope(name, None, *args)


__all__ = [
    "EntityRepository",
    "Scope",
    "ScopedRepository",
]
