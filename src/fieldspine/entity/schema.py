"""Declared attribute schema for entity classes.

Entity attributes are declared as :class:`Attribute` descriptors in the
class body.  When a subclass is created, :meth:`EntitySchema.build` walks
the MRO once and records every descriptor in declaration order; nothing is
discovered by introspecting instances later.

Example::

    class Article(BaseEntity):
        table = "articles"
        fillable = ("title", "body", "published")

        title = Attribute(Cast.STRING)
        body = Attribute(Cast.STRING)
        published = Attribute(Cast.BOOL, default=False)
        meta = Attribute(Cast.JSON, default_factory=dict)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

from fieldspine.entity.casts import Cast, cast_value

_MISSING: Any = object()


class Attribute:
    """Typed entity attribute (data descriptor).

    Reading returns the stored value; assigning applies the declared
    :class:`Cast` first, so ``entity.count = "3"`` stores ``3``.
    """

    __slots__ = ("cast", "default", "default_factory", "name")

    def __init__(
        self,
        cast: Cast = Cast.STRING,
        *,
        default: Any = None,
        default_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.cast = cast
        self.default = default
        self.default_factory = default_factory
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def initial(self) -> Any:
        """Fresh default value for a new instance."""
        if self.default_factory is not None:
            return self.default_factory()
        return self.default

    def cast_value(self, value: Any) -> Any:
        return cast_value(self.cast, value)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return instance._attributes.get(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance._attributes[self.name] = self.cast_value(value)

    def __repr__(self) -> str:
        return f"Attribute({self.name!r}, {self.cast.value})"


class EntitySchema:
    """Ordered, immutable map of attribute name → :class:`Attribute`."""

    def __init__(self, attributes: list[Attribute]) -> None:
        self._attributes: dict[str, Attribute] = {a.name: a for a in attributes}

    @classmethod
    def build(cls, entity_cls: type) -> EntitySchema:
        """Collect descriptors from *entity_cls* and its bases, bases first."""
        collected: dict[str, Attribute] = {}
        for klass in reversed(entity_cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, Attribute):
                    collected[name] = value
        return cls(list(collected.values()))

    def names(self) -> list[str]:
        return list(self._attributes)

    def get(self, name: str) -> Attribute | None:
        return self._attributes.get(name)

    def __getitem__(self, name: str) -> Attribute:
        return self._attributes[name]

    def __contains__(self, name: object) -> bool:
        return name in self._attributes

    def __iter__(self) -> Iterator[Attribute]:
        return iter(self._attributes.values())

    def __len__(self) -> int:
        return len(self._attributes)

    def defaults(self) -> dict[str, Any]:
        return {name: attr.initial() for name, attr in self._attributes.items()}

    def __repr__(self) -> str:
        return f"EntitySchema({self.names()})"


__all__ = [
    "Attribute",
    "EntitySchema",
]
