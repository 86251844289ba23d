"""Entity lifecycle events.

The entity manager announces every write through a synchronous
:class:`EventDispatcher`.  Listeners run in registration order on the
caller's thread; a listener that raises aborts the operation and the
exception reaches the caller unchanged (inside ``transaction()`` this
also rolls the transaction back).

Usage::

    from fieldspine.entity.events import LifecycleEvent

    def stamp_slug(event: EntityEvent) -> None:
        event.entity.slug = slugify(event.entity.title)

    manager.on(LifecycleEvent.PRE_SAVE, stamp_slug)

Listeners may also subscribe to ``"*"`` to receive every event.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

WILDCARD = "*"


class LifecycleEvent(str, Enum):
    """Names of the events fired by :class:`~fieldspine.entity.manager.EntityManager`."""

    PRE_SAVE = "preSave"
    PRE_INSERT = "preInsert"
    POST_INSERT = "postInsert"
    PRE_UPDATE = "preUpdate"
    POST_UPDATE = "postUpdate"
    POST_SAVE = "postSave"
    PRE_DELETE = "preDelete"
    POST_DELETE = "postDelete"


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class EntityEvent:
    """A lifecycle notification.

    Attributes:
        name: Event name (a :class:`LifecycleEvent` value or a custom name)
        entity: The entity the event is about
        data: Extra payload (e.g. ``{"force": True}`` for hard deletes)
    """

    name: str
    entity: Any
    data: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[EntityEvent], None]


def _key(name: str | LifecycleEvent) -> str:
    return name.value if isinstance(name, LifecycleEvent) else name


# ── Dispatcher ───────────────────────────────────────────────────────────


class EventDispatcher:
    """Synchronous, ordered listener registry."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def add_listener(self, name: str | LifecycleEvent, listener: Listener) -> None:
        self._listeners.setdefault(_key(name), []).append(listener)

    def remove_listener(self, name: str | LifecycleEvent, listener: Listener) -> None:
        listeners = self._listeners.get(_key(name), [])
        if listener in listeners:
            listeners.remove(listener)

    def remove_listeners(self, name: str | LifecycleEvent | None = None) -> None:
        """Drop every listener for *name*, or all listeners when *name* is None."""
        if name is None:
            self._listeners.clear()
        else:
            self._listeners.pop(_key(name), None)

    def listeners(self, name: str | LifecycleEvent) -> list[Listener]:
        return list(self._listeners.get(_key(name), []))

    def has_listeners(self, name: str | LifecycleEvent) -> bool:
        return bool(self._listeners.get(_key(name))) or bool(self._listeners.get(WILDCARD))

    def dispatch(self, name: str | LifecycleEvent, entity: Any, **data: Any) -> EntityEvent:
        """Deliver an event to its listeners, then to wildcard listeners."""
        event = EntityEvent(_key(name), entity, data)
        for listener in [*self._listeners.get(event.name, []), *self._listeners.get(WILDCARD, [])]:
            listener(event)
        return event


__all__ = [
    "EntityEvent",
    "EventDispatcher",
    "LifecycleEvent",
    "Listener",
    "WILDCARD",
]
