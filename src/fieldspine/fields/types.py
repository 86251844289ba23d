"""
Field type registry.

Manifesto:
    The set of field kinds is closed.  Every behaviour that depends on the
    kind (storage column, widget, native value kind, category, label) is
    an exhaustive ``match`` ending in ``assert_never``, so a new member
    that some dispatch forgets is a type-checker error, and the registry
    below evaluates every dispatch for every member at import time, so it
    is also an ``ImportError`` in tests.

Architecture:
    ::

        FieldType (str enum, 34 members)
          ├── storage_column  → StorageColumn   (one value_* column per item)
          ├── value_kind      → ValueKind       (native Python shape)
          ├── item_kind       → ValueKind       (per position, for multi-valued kinds)
          ├── widget          → default editing widget id
          ├── category        → FieldCategory   (grouping for tooling)
          ├── label / description
          └── supports_multiple

        _REGISTRY: dict[FieldType, FieldTypeInfo]   built once at import

Examples:
    >>> FieldType.DECIMAL.storage_column
    <StorageColumn.DECIMAL: 'value_decimal'>
    >>> FieldType("gallery").supports_multiple
    True
    >>> [t.value for t in FieldType.grouped()[FieldCategory.NUMBER]]
    ['integer', 'float', 'decimal']

Tags:
    field-types, registry, eav, exhaustive-dispatch, fieldspine
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from fieldspine.core.errors import UnknownFieldTypeError


class StorageColumn(str, Enum):
    """Typed value columns of ``field_values`` / ``field_revisions``."""

    STRING = "value_string"
    TEXT = "value_text"
    INT = "value_int"
    DECIMAL = "value_decimal"
    BOOLEAN = "value_boolean"
    DATE = "value_date"
    DATETIME = "value_datetime"
    JSON = "value_json"
    BLOB = "value_blob"


class ValueKind(str, Enum):
    """Native Python shape of a normalized field value."""

    STRING = "str"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    LIST = "list"
    MAPPING = "mapping"


class FieldCategory(str, Enum):
    TEXT = "Text"
    NUMBER = "Number"
    DATE_TIME = "Date/Time"
    SELECTION = "Selection"
    MEDIA = "Media"
    REFERENCE = "Reference"
    SPECIAL = "Special"


class FieldType(str, Enum):
    """Closed set of field kinds."""

    # Text
    STRING = "string"
    TEXT = "text"
    TEXTAREA = "textarea"
    HTML = "html"
    MARKDOWN = "markdown"

    # Number
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"

    BOOLEAN = "boolean"

    # Date/time
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"

    # Selection
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    MULTISELECT = "multiselect"

    # Media (stored as media ids)
    IMAGE = "image"
    FILE = "file"
    GALLERY = "gallery"
    VIDEO = "video"

    # References
    ENTITY_REFERENCE = "entity_reference"
    TAXONOMY_REFERENCE = "taxonomy_reference"
    USER_REFERENCE = "user_reference"
    BLOCK_REFERENCE = "block_reference"

    # Special
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    COLOR = "color"
    SLUG = "slug"
    JSON = "json"
    CODE = "code"
    LINK = "link"
    ADDRESS = "address"
    GEOLOCATION = "geolocation"

    @property
    def info(self) -> FieldTypeInfo:
        return _REGISTRY[self]

    @property
    def label(self) -> str:
        return _REGISTRY[self].label

    @property
    def description(self) -> str:
        return _REGISTRY[self].description

    @property
    def widget(self) -> str:
        return _REGISTRY[self].widget

    @property
    def storage_column(self) -> StorageColumn:
        return _REGISTRY[self].storage_column

    @property
    def value_kind(self) -> ValueKind:
        return _REGISTRY[self].value_kind

    @property
    def item_kind(self) -> ValueKind:
        return _REGISTRY[self].item_kind

    @property
    def category(self) -> FieldCategory:
        return _REGISTRY[self].category

    @property
    def supports_multiple(self) -> bool:
        return _REGISTRY[self].supports_multiple

    @classmethod
    def parse(cls, value: FieldType | str) -> FieldType:
        """Member for *value*; unknown names raise :class:`UnknownFieldTypeError`."""
        try:
            return cls(value)
        except ValueError as e:
            raise UnknownFieldTypeError(value, cause=e) from e

    @classmethod
    def grouped(cls) -> dict[FieldCategory, list[FieldType]]:
        """Members by category, categories and members in declaration order."""
        groups: dict[FieldCategory, list[FieldType]] = {category: [] for category in FieldCategory}
        for field_type in cls:
            groups[field_type.category].append(field_type)
        return groups

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        """``(value, label)`` pairs for select lists."""
        return [(field_type.value, field_type.label) for field_type in cls]


@dataclass(frozen=True)
class FieldTypeInfo:
    """Fixed metadata of one :class:`FieldType`."""

    field_type: FieldType
    label: str
    description: str
    widget: str
    storage_column: StorageColumn
    value_kind: ValueKind
    item_kind: ValueKind
    category: FieldCategory
    supports_multiple: bool


# ── Exhaustive dispatch ──────────────────────────────────────────────────


def _storage_column(field_type: FieldType) -> StorageColumn:
    match field_type:
        case (
            FieldType.STRING
            | FieldType.EMAIL
            | FieldType.URL
            | FieldType.PHONE
            | FieldType.SLUG
            | FieldType.COLOR
            | FieldType.SELECT
            | FieldType.RADIO
            | FieldType.CHECKBOX
            | FieldType.MULTISELECT
            | FieldType.TIME
        ):
            return StorageColumn.STRING
        case FieldType.TEXT | FieldType.TEXTAREA | FieldType.HTML | FieldType.MARKDOWN | FieldType.CODE:
            return StorageColumn.TEXT
        case (
            FieldType.INTEGER
            | FieldType.IMAGE
            | FieldType.FILE
            | FieldType.VIDEO
            | FieldType.GALLERY
            | FieldType.ENTITY_REFERENCE
            | FieldType.TAXONOMY_REFERENCE
            | FieldType.USER_REFERENCE
            | FieldType.BLOCK_REFERENCE
        ):
            return StorageColumn.INT
        case FieldType.FLOAT | FieldType.DECIMAL:
            return StorageColumn.DECIMAL
        case FieldType.BOOLEAN:
            return StorageColumn.BOOLEAN
        case FieldType.DATE:
            return StorageColumn.DATE
        case FieldType.DATETIME:
            return StorageColumn.DATETIME
        case FieldType.JSON | FieldType.LINK | FieldType.ADDRESS | FieldType.GEOLOCATION:
            return StorageColumn.JSON
        case _:
            assert_never(field_type)


def _widget(field_type: FieldType) -> str:
    match field_type:
        case FieldType.STRING | FieldType.EMAIL | FieldType.URL | FieldType.PHONE | FieldType.SLUG:
            return "textfield"
        case FieldType.TEXT | FieldType.TEXTAREA:
            return "textarea"
        case FieldType.HTML:
            return "wysiwyg"
        case FieldType.MARKDOWN:
            return "markdown_editor"
        case FieldType.CODE:
            return "code_editor"
        case FieldType.INTEGER | FieldType.FLOAT | FieldType.DECIMAL:
            return "number"
        case FieldType.BOOLEAN:
            return "checkbox"
        case FieldType.DATE:
            return "datepicker"
        case FieldType.DATETIME:
            return "datetimepicker"
        case FieldType.TIME:
            return "timepicker"
        case FieldType.SELECT:
            return "select"
        case FieldType.RADIO:
            return "radios"
        case FieldType.CHECKBOX:
            return "checkboxes"
        case FieldType.MULTISELECT:
            return "multiselect"
        case FieldType.IMAGE:
            return "image_upload"
        case FieldType.FILE:
            return "file_upload"
        case FieldType.GALLERY:
            return "gallery_upload"
        case FieldType.VIDEO:
            return "video_upload"
        case FieldType.ENTITY_REFERENCE:
            return "entity_autocomplete"
        case FieldType.TAXONOMY_REFERENCE:
            return "taxonomy_select"
        case FieldType.USER_REFERENCE:
            return "user_autocomplete"
        case FieldType.BLOCK_REFERENCE:
            return "block_select"
        case FieldType.COLOR:
            return "colorpicker"
        case FieldType.JSON:
            return "json_editor"
        case FieldType.LINK:
            return "link_field"
        case FieldType.ADDRESS:
            return "address_field"
        case FieldType.GEOLOCATION:
            return "map_field"
        case _:
            assert_never(field_type)


def _item_kind(field_type: FieldType) -> ValueKind:
    match field_type:
        case (
            FieldType.STRING
            | FieldType.TEXT
            | FieldType.TEXTAREA
            | FieldType.HTML
            | FieldType.MARKDOWN
            | FieldType.CODE
            | FieldType.EMAIL
            | FieldType.URL
            | FieldType.PHONE
            | FieldType.COLOR
            | FieldType.SLUG
            | FieldType.SELECT
            | FieldType.RADIO
            | FieldType.CHECKBOX
            | FieldType.MULTISELECT
        ):
            return ValueKind.STRING
        case (
            FieldType.INTEGER
            | FieldType.IMAGE
            | FieldType.FILE
            | FieldType.VIDEO
            | FieldType.GALLERY
            | FieldType.ENTITY_REFERENCE
            | FieldType.TAXONOMY_REFERENCE
            | FieldType.USER_REFERENCE
            | FieldType.BLOCK_REFERENCE
        ):
            return ValueKind.INT
        case FieldType.FLOAT | FieldType.DECIMAL:
            return ValueKind.FLOAT
        case FieldType.BOOLEAN:
            return ValueKind.BOOL
        case FieldType.DATE:
            return ValueKind.DATE
        case FieldType.DATETIME:
            return ValueKind.DATETIME
        case FieldType.TIME:
            return ValueKind.TIME
        case FieldType.JSON | FieldType.LINK | FieldType.ADDRESS | FieldType.GEOLOCATION:
            return ValueKind.MAPPING
        case _:
            assert_never(field_type)


def _supports_multiple(field_type: FieldType) -> bool:
    return field_type in (FieldType.CHECKBOX, FieldType.MULTISELECT, FieldType.GALLERY)


def _category(field_type: FieldType) -> FieldCategory:
    match field_type:
        case FieldType.STRING | FieldType.TEXT | FieldType.TEXTAREA | FieldType.HTML | FieldType.MARKDOWN:
            return FieldCategory.TEXT
        case FieldType.INTEGER | FieldType.FLOAT | FieldType.DECIMAL:
            return FieldCategory.NUMBER
        case FieldType.DATE | FieldType.DATETIME | FieldType.TIME:
            return FieldCategory.DATE_TIME
        case FieldType.BOOLEAN | FieldType.SELECT | FieldType.RADIO | FieldType.CHECKBOX | FieldType.MULTISELECT:
            return FieldCategory.SELECTION
        case FieldType.IMAGE | FieldType.FILE | FieldType.GALLERY | FieldType.VIDEO:
            return FieldCategory.MEDIA
        case (
            FieldType.ENTITY_REFERENCE
            | FieldType.TAXONOMY_REFERENCE
            | FieldType.USER_REFERENCE
            | FieldType.BLOCK_REFERENCE
        ):
            return FieldCategory.REFERENCE
        case (
            FieldType.EMAIL
            | FieldType.URL
            | FieldType.PHONE
            | FieldType.COLOR
            | FieldType.SLUG
            | FieldType.CODE
            | FieldType.JSON
            | FieldType.LINK
            | FieldType.ADDRESS
            | FieldType.GEOLOCATION
        ):
            return FieldCategory.SPECIAL
        case _:
            assert_never(field_type)


def _label(field_type: FieldType) -> tuple[str, str]:
    """``(label, description)``."""
    match field_type:
        case FieldType.STRING:
            return "Text (single line)", "A simple single-line text field"
        case FieldType.TEXT:
            return "Text (plain)", "A multi-line text area"
        case FieldType.TEXTAREA:
            return "Text (multiline)", "A multi-line text area"
        case FieldType.HTML:
            return "HTML (formatted)", "Rich text editor with HTML support"
        case FieldType.MARKDOWN:
            return "Markdown", "Markdown editor with preview"
        case FieldType.INTEGER:
            return "Integer", "Whole number input"
        case FieldType.FLOAT:
            return "Decimal", "Decimal number input"
        case FieldType.DECIMAL:
            return "Decimal (precise)", "Decimal number input"
        case FieldType.BOOLEAN:
            return "Boolean (Yes/No)", "True/False toggle or checkbox"
        case FieldType.DATE:
            return "Date", "Date picker"
        case FieldType.DATETIME:
            return "Date and Time", "Date and time picker"
        case FieldType.TIME:
            return "Time", "Time picker"
        case FieldType.SELECT:
            return "Select list", "Dropdown select list"
        case FieldType.RADIO:
            return "Radio buttons", "Radio button group"
        case FieldType.CHECKBOX:
            return "Checkboxes", "Checkboxes for multiple selections"
        case FieldType.MULTISELECT:
            return "Multi-select", "Multi-select dropdown"
        case FieldType.IMAGE:
            return "Image", "Image upload"
        case FieldType.FILE:
            return "File", "File upload"
        case FieldType.GALLERY:
            return "Image Gallery", "Multiple image gallery"
        case FieldType.VIDEO:
            return "Video", "Video upload or embed"
        case FieldType.ENTITY_REFERENCE:
            return "Content Reference", "Link to other content items"
        case FieldType.TAXONOMY_REFERENCE:
            return "Taxonomy Term", "Tag content with taxonomy terms"
        case FieldType.USER_REFERENCE:
            return "User Reference", "Link to a user account"
        case FieldType.BLOCK_REFERENCE:
            return "Block Reference", "Embed a reusable block"
        case FieldType.EMAIL:
            return "Email", "Email address with validation"
        case FieldType.URL:
            return "URL", "Website URL with validation"
        case FieldType.PHONE:
            return "Phone", "Phone number"
        case FieldType.COLOR:
            return "Color", "Color picker"
        case FieldType.SLUG:
            return "URL Slug", "URL-friendly identifier"
        case FieldType.JSON:
            return "JSON", "Raw JSON data editor"
        case FieldType.CODE:
            return "Code", "Code editor with syntax highlighting"
        case FieldType.LINK:
            return "Link", "Link with title and target"
        case FieldType.ADDRESS:
            return "Address", "Physical address fields"
        case FieldType.GEOLOCATION:
            return "Geolocation", "Map coordinates"
        case _:
            assert_never(field_type)


def _describe(field_type: FieldType) -> FieldTypeInfo:
    label, description = _label(field_type)
    multiple = _supports_multiple(field_type)
    item_kind = _item_kind(field_type)
    return FieldTypeInfo(
        field_type=field_type,
        label=label,
        description=description,
        widget=_widget(field_type),
        storage_column=_storage_column(field_type),
        value_kind=ValueKind.LIST if multiple else item_kind,
        item_kind=item_kind,
        category=_category(field_type),
        supports_multiple=multiple,
    )


_REGISTRY: dict[FieldType, FieldTypeInfo] = {field_type: _describe(field_type) for field_type in FieldType}


__all__ = [
    "FieldCategory",
    "FieldType",
    "FieldTypeInfo",
    "StorageColumn",
    "ValueKind",
]
