"""FieldSpine -- entity persistence and dynamic-field (EAV) storage.

Manifesto:
    Content types, block types and vocabularies all need ad-hoc typed
    fields without a schema migration per field.  FieldSpine pairs a small
    entity layer (hydration, casting, dirty tracking, lifecycle events)
    with an EAV value store keyed by field, entity, language and position,
    so runtime-defined fields live next to statically declared columns.

Architecture::

    fieldspine.core      Connection protocol, dialects, errors, logging,
                         settings, cache, DDL for the field tables
    fieldspine.entity    BaseEntity, EntityQuery, EntityManager,
                         EntityRepository
    fieldspine.fields    FieldType registry, FieldDefinition,
                         FieldRepository, FieldValueStorage, FieldManager
    fieldspine.context   FieldSpineContext (explicit handle, no globals)

Examples:
    >>> from fieldspine import FieldSpineContext, FieldType
    >>> with FieldSpineContext.from_url("sqlite:///:memory:") as ctx:
    ...     ctx.create_schema()
    ...     price = ctx.field_manager.define_field("field_price", FieldType.DECIMAL).save()
    ...     ctx.storage.set_value(price, "node", 1, "19.99")
    ...     ctx.storage.get_value(price, "node", 1)
    19.99

Tags:
    fieldspine, eav, entity, persistence, dynamic-fields
"""

from fieldspine.context import FieldSpineContext
from fieldspine.entity.casts import Cast
from fieldspine.entity.manager import EntityManager
from fieldspine.entity.model import BaseEntity, Capability
from fieldspine.entity.repository import EntityRepository, ScopedRepository
from fieldspine.entity.schema import Attribute
from fieldspine.fields.definition import FieldAttachment, FieldDefinition
from fieldspine.fields.manager import FieldManager
from fieldspine.fields.repository import FieldRepository
from fieldspine.fields.storage import FieldValueStorage, RestoreMode
from fieldspine.fields.types import FieldType

__version__ = "0.1.0"

__all__ = [
    "Attribute",
    "BaseEntity",
    "Capability",
    "Cast",
    "EntityManager",
    "EntityRepository",
    "FieldAttachment",
    "FieldDefinition",
    "FieldManager",
    "FieldRepository",
    "FieldSpineContext",
    "FieldType",
    "FieldValueStorage",
    "RestoreMode",
    "ScopedRepository",
    "__version__",
]
