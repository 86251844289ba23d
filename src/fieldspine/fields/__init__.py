"""fieldspine.fields -- runtime-defined fields stored as EAV rows.

Architecture::

    types.py        FieldType registry (storage column, widget, kind, category)
    values.py       normalize / to_columns / from_row per field type
    validation.py   validate_value, ValidationResult
    definition.py   FieldDefinition entity, FieldAttachment
    repository.py   FieldRepository (definitions + attachments, id cache)
    storage.py      FieldValueStorage (values + revisions), RestoreMode
    manager.py      FieldManager facade, FieldDefinitionBuilder
"""

from fieldspine.fields.definition import FieldAttachment, FieldDefinition
from fieldspine.fields.manager import FieldDefinitionBuilder, FieldManager
from fieldspine.fields.repository import FieldRepository
from fieldspine.fields.storage import FieldValueStorage, RestoreMode
from fieldspine.fields.types import FieldCategory, FieldType, FieldTypeInfo, StorageColumn, ValueKind
from fieldspine.fields.validation import ValidationResult

__all__ = [
    "FieldAttachment",
    "FieldCategory",
    "FieldDefinition",
    "FieldDefinitionBuilder",
    "FieldManager",
    "FieldRepository",
    "FieldType",
    "FieldTypeInfo",
    "FieldValueStorage",
    "RestoreMode",
    "StorageColumn",
    "ValidationResult",
    "ValueKind",
]
