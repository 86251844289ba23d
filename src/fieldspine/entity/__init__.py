"""fieldspine.entity -- declared-schema entities and their persistence.

Architecture::

    casts.py        Cast enum, cast_value / storage conversion
    schema.py       Attribute descriptor, EntitySchema
    bag.py          AttributeBag for EAV-sourced values
    model.py        BaseEntity, Capability
    events.py       LifecycleEvent, EventDispatcher
    query.py        EntityQuery, Page
    manager.py      EntityManager (CRUD, transactions, cache, events)
    repository.py   EntityRepository, ScopedRepository
"""

from fieldspine.entity.bag import AttributeBag
from fieldspine.entity.casts import Cast, cast_value
from fieldspine.entity.events import EntityEvent, EventDispatcher, LifecycleEvent
from fieldspine.entity.manager import EntityManager
from fieldspine.entity.model import BaseEntity, Capability
from fieldspine.entity.query import EntityQuery, Page
from fieldspine.entity.repository import EntityRepository, ScopedRepository
from fieldspine.entity.schema import Attribute, EntitySchema

__all__ = [
    "Attribute",
    "AttributeBag",
    "BaseEntity",
    "Capability",
    "Cast",
    "EntityEvent",
    "EntityManager",
    "EntityQuery",
    "EntityRepository",
    "EntitySchema",
    "EventDispatcher",
    "LifecycleEvent",
    "Page",
    "ScopedRepository",
    "cast_value",
]
