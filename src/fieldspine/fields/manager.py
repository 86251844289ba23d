"""
Field manager: the facade over definitions, values and validation.

Manifesto:
    Callers should not have to juggle three collaborators to work with
    dynamic fields.  ``FieldManager`` defines fields through a fluent
    builder, delegates value reads and writes to storage, validates
    payloads, and moves values between storage and an entity's
    :class:`~fieldspine.entity.bag.AttributeBag`.

Examples:
    >>> price = (
    ...     field_manager.define_field("price", FieldType.DECIMAL)
    ...     .name("Price")
    ...     .required()
    ...     .settings({"min": 0})
    ...     .save()
    ... )
    >>> price.machine_name
    'field_price'
    >>> field_manager.validate_field(price, -5).errors
    ('Value must be at least 0',)

    >>> field_manager.load_fields(node)
    >>> node.fields["field_price"] = "19.99"
    >>> field_manager.save_fields(node)
    ['field_price']

Tags:
    field-manager, builder, facade, eav, fieldspine
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from fieldspine.core.errors import EntityStateError
from fieldspine.core.logging import get_logger
from fieldspine.entity.events import EntityEvent, LifecycleEvent
from fieldspine.entity.model import BaseEntity
from fieldspine.fields.definition import FieldDefinition
from fieldspine.fields.repository import FieldRef, FieldRepository
from fieldspine.fields.storage import FieldValueStorage
from fieldspine.fields.types import FieldType
from fieldspine.fields.validation import ValidationResult

if TYPE_CHECKING:
    from fieldspine.entity.manager import EntityManager

logger = get_logger(__name__)


class FieldManager:
    """Facade over :class:`FieldRepository` and :class:`FieldValueStorage`."""

    def __init__(self, fields: FieldRepository, storage: FieldValueStorage) -> None:
        self.fields = fields
        self.storage = storage

    # -- Definitions -------------------------------------------------------

    def define_field(self, machine_name: str, field_type: FieldType | str) -> FieldDefinitionBuilder:
        return FieldDefinitionBuilder(self, machine_name, field_type)

    def get_field(self, field_id: int) -> FieldDefinition | None:
        return self.fields.find(field_id)

    def get_field_by_name(self, machine_name: str) -> FieldDefinition | None:
        return self.fields.find_by_machine_name(machine_name)

    def get_all_fields(self) -> list[FieldDefinition]:
        return self.fields.find_all()

    def get_fields_for_entity(self, entity_type: str, bundle_id: int | None = None) -> list[FieldDefinition]:
        return self.fields.find_by_entity_type(entity_type, bundle_id)

    def save_field(self, field: FieldDefinition) -> FieldDefinition:
        return self.fields.save(field)

    def delete_field(self, field: FieldRef) -> None:
        self.fields.delete(self.fields.resolve(field))

    # -- Values ------------------------------------------------------------

    def get_value(self, field: FieldRef, entity_type: str, entity_id: int, language: str | None = None) -> Any:
        return self.storage.get_value(field, entity_type, entity_id, language)

    def get_entity_values(self, entity_type: str, entity_id: int, language: str | None = None) -> dict[str, Any]:
        return self.storage.get_entity_values(entity_type, entity_id, language)

    def set_value(
        self,
        field: FieldRef,
        entity_type: str,
        entity_id: int,
        value: Any,
        language: str | None = None,
        *,
        bundle_id: int | None = None,
    ) -> None:
        self.storage.set_value(field, entity_type, entity_id, value, language, bundle_id=bundle_id)

    def set_values(
        self,
        entity_type: str,
        entity_id: int,
        values: Mapping[FieldRef, Any],
        language: str | None = None,
        *,
        bundle_id: int | None = None,
    ) -> None:
        self.storage.set_values(entity_type, entity_id, values, language, bundle_id=bundle_id)

    def delete_value(self, field: FieldRef, entity_type: str, entity_id: int, language: str | None = None) -> None:
        self.storage.delete_value(field, entity_type, entity_id, language)

    def prepare_value(self, field: FieldRef, value: Any) -> Any:
        """Native value for *field* (what storage would persist)."""
        return self.fields.resolve(field).cast_value(value)

    # -- Validation --------------------------------------------------------

    def validate_field(self, field: FieldRef, value: Any) -> ValidationResult:
        return self.fields.resolve(field).validate_result(value)

    def validate_values(
        self, fields: Iterable[FieldDefinition], values: Mapping[str, Any]
    ) -> dict[str, ValidationResult]:
        """Failed results keyed by machine name; missing values validate as ``None``."""
        failures: dict[str, ValidationResult] = {}
        for definition in fields:
            result = definition.validate_result(values.get(definition.machine_name))
            if not result.is_valid:
                failures[definition.machine_name] = result
        return failures

    def validate_entity_values(
        self, entity_type: str, values: Mapping[str, Any], bundle_id: int | None = None
    ) -> dict[str, ValidationResult]:
        return self.validate_values(self.get_fields_for_entity(entity_type, bundle_id), values)

    def is_valid(self, fields: Iterable[FieldDefinition], values: Mapping[str, Any]) -> bool:
        return not self.validate_values(fields, values)

    # -- Entity integration ------------------------------------------------

    def load_fields(
        self, entity: BaseEntity, bundle_id: int | None = None, language: str | None = None
    ) -> dict[str, Any]:
        """Fill ``entity.fields`` with the values of every attached field.

        Attached fields without stored values load as ``[]`` (multi-valued)
        or ``None``.  Later assignments to the bag are cast by field type.
        """
        definitions = {d.machine_name: d for d in self.get_fields_for_entity(entity.entity_type, bundle_id)}
        stored = self.storage.get_entity_values(entity.entity_type, entity.get_id(), language) if entity.exists() else {}
        values = {
            name: stored.get(name, [] if definition.is_multiple() else None)
            for name, definition in definitions.items()
        }

        def _normalize(name: str, value: Any) -> Any:
            definition = definitions.get(name)
            return definition.cast_value(value) if definition is not None else value

        entity.fields.bind(_normalize)
        entity.fields.load(values)
        entity.fields.bundle_id = bundle_id
        return values

    def save_fields(self, entity: BaseEntity, language: str | None = None, *, bundle_id: int | None = None) -> list[str]:
        """Persist the bag entries changed since load; returns their machine names.

        Values are written under *bundle_id*, or the bundle the bag was
        loaded for.
        """
        if entity.get_id() is None:
            raise EntityStateError(f"Cannot save fields of an unsaved {type(entity).__name__}")
        if bundle_id is None:
            bundle_id = entity.fields.bundle_id
        changed = entity.fields.changed()
        if changed:
            self.storage.set_values(entity.entity_type, entity.get_id(), changed, language, bundle_id=bundle_id)
        entity.fields.mark_clean()
        logger.debug("field.entity_saved", entity_type=entity.entity_type, entity_id=entity.get_id(), fields=list(changed))
        return list(changed)

    def bind(self, entity_manager: EntityManager) -> None:
        """Purge an entity's field values and revisions when it is hard-deleted."""

        def _purge(event: EntityEvent) -> None:
            if event.data.get("force") and event.entity.get_id() is not None:
                self.storage.purge_entity(event.entity.entity_type, event.entity.get_id())

        entity_manager.on(LifecycleEvent.POST_DELETE, _purge)


class FieldDefinitionBuilder:
    """Fluent builder returned by :meth:`FieldManager.define_field`."""

    def __init__(self, manager: FieldManager, machine_name: str, field_type: FieldType | str) -> None:
        self._manager = manager
        self._definition = FieldDefinition()
        self._definition.field_type = FieldType.parse(field_type)
        self._definition.machine_name = machine_name
        self._definition.name = machine_name

    def name(self, name: str) -> FieldDefinitionBuilder:
        self._definition.name = name
        return self

    def description(self, description: str) -> FieldDefinitionBuilder:
        self._definition.description = description
        return self

    def help_text(self, help_text: str) -> FieldDefinitionBuilder:
        self._definition.help_text = help_text
        return self

    def required(self, required: bool = True) -> FieldDefinitionBuilder:
        self._definition.required = required
        return self

    def multiple(self, multiple: bool = True, cardinality: int = -1) -> FieldDefinitionBuilder:
        self._definition.multiple = multiple
        self._definition.cardinality = cardinality if multiple else 1
        return self

    def widget(self, widget: str) -> FieldDefinitionBuilder:
        self._definition.widget = widget
        return self

    def widget_settings(self, settings: Mapping[str, Any]) -> FieldDefinitionBuilder:
        self._definition.widget_settings = dict(settings)
        return self

    def settings(self, settings: Mapping[str, Any]) -> FieldDefinitionBuilder:
        self._definition.settings = dict(settings)
        return self

    def default(self, value: Any) -> FieldDefinitionBuilder:
        self._definition.set_default(value)
        return self

    def searchable(self, searchable: bool = True) -> FieldDefinitionBuilder:
        self._definition.searchable = searchable
        return self

    def translatable(self, translatable: bool = True) -> FieldDefinitionBuilder:
        self._definition.translatable = translatable
        return self

    def validation(self, rules: Mapping[str, Any]) -> FieldDefinitionBuilder:
        self._definition.validation = dict(rules)
        return self

    def weight(self, weight: int) -> FieldDefinitionBuilder:
        self._definition.weight = weight
        return self

    def build(self) -> FieldDefinition:
        """The unsaved definition (machine-name rule applied)."""
        self._definition.ensure_machine_name()
        return self._definition

    def save(self) -> FieldDefinition:
        return self._manager.save_field(self.build())


__all__ = [
    "FieldDefinitionBuilder",
    "FieldManager",
]
