"""Tests for FieldManager and the definition builder."""

from __future__ import annotations

import pytest

from fieldspine.core.errors import EntityStateError, FieldNotFoundError, UnknownFieldTypeError
from fieldspine.core.schema import FIELD_TABLES
from fieldspine.fields.types import FieldType
from fieldspine.fields.validation import ValidationResult
from tests._support.entities import Node


def saved_node(manager, title: str) -> Node:
    node = Node({"title": title})
    manager.save(node)
    return node


@pytest.fixture
def price(field_manager):
    return (
        field_manager.define_field("price", FieldType.DECIMAL)
        .name("Price")
        .required()
        .settings({"min": 0})
        .save()
    )


@pytest.fixture
def article_fields(field_manager, fields):
    """Title (required string), email and tags attached to every node bundle."""
    title = field_manager.define_field("title", "string").name("Title").required().weight(0).save()
    email = field_manager.define_field("contact", "email").name("Contact").save()
    tags = field_manager.define_field("tags", "checkbox").name("Tags").save()
    for weight, definition in enumerate((title, email, tags)):
        fields.attach_to_entity(definition, "node", weight=weight)
    return title, email, tags


class TestBuilder:
    def test_save(self, price) -> None:
        assert price.get_id() is not None
        assert price.machine_name == "field_price"
        assert price.name == "Price"
        assert price.type is FieldType.DECIMAL
        assert price.required is True

    def test_build_is_unsaved(self, field_manager) -> None:
        definition = field_manager.define_field("Hero Image", "image").help_text("Shown on top").build()
        assert not definition.exists()
        assert definition.machine_name == "field_hero_image"
        assert definition.help_text == "Shown on top"

    def test_multiple(self, field_manager) -> None:
        limited = field_manager.define_field("authors", "string").multiple(cardinality=3).build()
        assert limited.max_values() == 3
        unlimited = field_manager.define_field("links", "url").multiple().build()
        assert unlimited.max_values() is None
        single = field_manager.define_field("one", "url").multiple(False, cardinality=9).build()
        assert single.max_values() == 1

    def test_presentation_options(self, field_manager) -> None:
        definition = (
            field_manager.define_field("body", FieldType.HTML)
            .description("Main copy")
            .widget("textarea")
            .widget_settings({"rows": 8})
            .searchable()
            .translatable()
            .default("<p></p>")
            .validation({"maxLength": 5000})
            .save()
        )
        reloaded = field_manager.get_field(definition.get_id())
        assert reloaded.get_widget() == "textarea"
        assert reloaded.get_widget_settings() == {"rows": 8}
        assert reloaded.searchable and reloaded.translatable
        assert reloaded.get_default() == "<p></p>"
        assert reloaded.validation == {"maxLength": 5000}

    def test_unknown_type(self, field_manager) -> None:
        with pytest.raises(UnknownFieldTypeError):
            field_manager.define_field("x", "hologram")


class TestDefinitions:
    def test_lookups(self, field_manager, price) -> None:
        assert field_manager.get_field(price.get_id()) is price
        assert field_manager.get_field_by_name("field_price") is price
        assert [f.machine_name for f in field_manager.get_all_fields()] == ["field_price"]

    def test_fields_for_entity(self, field_manager, article_fields) -> None:
        names = [f.machine_name for f in field_manager.get_fields_for_entity("node", 7)]
        assert names == ["field_title", "field_contact", "field_tags"]

    def test_delete_field(self, field_manager, price) -> None:
        field_manager.set_value(price, "node", 1, 3)
        field_manager.delete_field("field_price")
        assert field_manager.get_field_by_name("field_price") is None
        assert field_manager.get_entity_values("node", 1) == {}

    def test_delete_missing_field(self, field_manager) -> None:
        with pytest.raises(FieldNotFoundError):
            field_manager.delete_field("field_nope")


class TestValues:
    def test_set_and_get(self, field_manager, price) -> None:
        field_manager.set_value("field_price", "node", 1, "19.99")
        assert field_manager.get_value(price, "node", 1) == 19.99

    def test_set_values(self, field_manager, article_fields) -> None:
        field_manager.set_values("node", 1, {"field_title": "Hi", "field_tags": ["a"]})
        assert field_manager.get_entity_values("node", 1) == {"field_title": "Hi", "field_tags": ["a"]}

    def test_delete_value(self, field_manager, price) -> None:
        field_manager.set_value(price, "node", 1, 1)
        field_manager.delete_value(price, "node", 1)
        assert field_manager.get_value(price, "node", 1) is None

    def test_set_value_in_bundle(self, field_manager, fields, price) -> None:
        fields.attach_to_entity(price, "node", bundle_id=4)
        field_manager.set_value(price, "node", 1, 3, bundle_id=4)
        field_manager.set_values("node", 2, {"field_price": 5}, bundle_id=4)
        fields.detach_from_entity(price, "node", bundle_id=4)
        assert field_manager.get_value(price, "node", 1) is None
        assert field_manager.get_value(price, "node", 2) is None

    def test_prepare_value(self, field_manager, price, article_fields) -> None:
        assert field_manager.prepare_value(price, "2.50") == 2.5
        assert field_manager.prepare_value("field_tags", "solo") == ["solo"]


class TestValidation:
    def test_validate_field(self, field_manager, price) -> None:
        result = field_manager.validate_field(price, -5)
        assert isinstance(result, ValidationResult)
        assert result.errors == ("Value must be at least 0",)
        assert field_manager.validate_field("field_price", 5).is_valid

    def test_validate_values_reports_failures_only(self, field_manager, article_fields) -> None:
        failures = field_manager.validate_values(article_fields, {"field_contact": "not-an-email"})
        assert set(failures) == {"field_title", "field_contact"}
        assert failures["field_title"].errors == ("Title is required",)
        assert failures["field_contact"].errors == ("Please enter a valid email address",)

    def test_valid_payload(self, field_manager, article_fields) -> None:
        values = {"field_title": "Hello", "field_contact": "ada@example.com", "field_tags": ["x"]}
        assert field_manager.validate_values(article_fields, values) == {}
        assert field_manager.is_valid(article_fields, values)

    def test_validate_entity_values(self, field_manager, article_fields) -> None:
        failures = field_manager.validate_entity_values("node", {}, bundle_id=1)
        assert list(failures) == ["field_title"]
        assert field_manager.validate_entity_values("block", {}) == {}


# =========================================================================
# Entity integration
# =========================================================================


class TestEntityIntegration:
    def test_load_fields(self, field_manager, manager, article_fields) -> None:
        node = saved_node(manager, "n")
        field_manager.set_value("field_title", "node", node.get_id(), "Stored")
        values = field_manager.load_fields(node)
        assert values == {"field_title": "Stored", "field_contact": None, "field_tags": []}
        assert node.fields["field_title"] == "Stored"
        assert not node.fields.is_changed()

    def test_load_fields_of_unsaved_entity(self, field_manager, article_fields) -> None:
        node = Node({"title": "draft"})
        assert field_manager.load_fields(node)["field_tags"] == []

    def test_assignments_are_cast(self, field_manager, manager, article_fields) -> None:
        node = saved_node(manager, "n")
        field_manager.load_fields(node)
        node.fields["field_tags"] = "solo"
        node.fields["unattached"] = "raw"
        assert node.fields["field_tags"] == ["solo"]
        assert node.fields["unattached"] == "raw"

    def test_save_fields_writes_changes_only(self, field_manager, manager, article_fields) -> None:
        node = saved_node(manager, "n")
        field_manager.set_value("field_contact", "node", node.get_id(), "old@example.com")
        field_manager.load_fields(node)
        node.fields["field_title"] = "Fresh"

        assert field_manager.save_fields(node) == ["field_title"]
        assert field_manager.get_entity_values("node", node.get_id()) == {
            "field_title": "Fresh",
            "field_contact": "old@example.com",
        }
        assert not node.fields.is_changed()
        assert field_manager.save_fields(node) == []

    def test_save_fields_clears_removed_value(self, field_manager, manager, article_fields) -> None:
        node = saved_node(manager, "n")
        field_manager.set_value("field_tags", "node", node.get_id(), ["a", "b"])
        field_manager.load_fields(node)
        node.fields["field_tags"] = []
        field_manager.save_fields(node)
        assert field_manager.get_value("field_tags", "node", node.get_id()) == []

    def test_save_fields_keeps_loaded_bundle(self, field_manager, manager, fields, price) -> None:
        fields.attach_to_entity(price, "node", bundle_id=3)
        node = saved_node(manager, "n")
        field_manager.load_fields(node, bundle_id=3)
        node.fields["field_price"] = "7.5"
        field_manager.save_fields(node)
        rows = fields.db.query(f"SELECT bundle_id FROM {FIELD_TABLES['values']}")
        assert rows == [{"bundle_id": 3}]

        fields.detach_from_entity(price, "node", bundle_id=3)
        assert field_manager.get_value(price, "node", node.get_id()) is None

    def test_save_fields_of_unsaved_entity(self, field_manager) -> None:
        with pytest.raises(EntityStateError):
            field_manager.save_fields(Node({"title": "draft"}))


class TestDeletePurge:
    def test_hard_delete_purges_values_and_revisions(self, field_manager, manager, storage, price) -> None:
        node = saved_node(manager, "n")
        field_manager.set_value(price, "node", node.get_id(), 4)
        storage.create_revision("node", node.get_id(), revision_id=1)

        manager.force_delete(node)

        assert field_manager.get_entity_values("node", node.get_id()) == {}
        assert storage.list_revisions("node", node.get_id()) == []

    def test_soft_delete_keeps_values(self, field_manager, manager, price) -> None:
        node = saved_node(manager, "n")
        field_manager.set_value(price, "node", node.get_id(), 4)
        manager.delete(node)
        assert field_manager.get_value(price, "node", node.get_id()) == 4.0

    def test_other_entities_untouched(self, field_manager, manager, price) -> None:
        first = saved_node(manager, "a")
        second = saved_node(manager, "b")
        field_manager.set_value(price, "node", second.get_id(), 1)
        manager.force_delete(first)
        assert field_manager.get_value(price, "node", second.get_id()) == 1.0
