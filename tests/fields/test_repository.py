"""Tests for FieldRepository: definitions, cache and attachments."""

from __future__ import annotations

import pytest

from fieldspine.core.errors import FieldNotFoundError
from fieldspine.core.schema import FIELD_TABLES
from fieldspine.fields.definition import FieldDefinition
from fieldspine.fields.repository import FieldRepository


def make(fields: FieldRepository, name: str, field_type: str = "string", **attrs) -> FieldDefinition:
    return fields.save(FieldDefinition({"name": name, "field_type": field_type, **attrs}))


def attachment_rows(fields: FieldRepository) -> list[dict]:
    return fields.db.query(f"SELECT * FROM {FIELD_TABLES['attachments']} ORDER BY id")


# =========================================================================
# Definitions
# =========================================================================


class TestDefinitions:
    def test_save_applies_machine_name_rule(self, fields) -> None:
        title = make(fields, "Title")
        assert title.get_id() == 1
        assert title.machine_name == "field_title"

    def test_find_is_cached(self, fields) -> None:
        title = make(fields, "Title")
        assert fields.find(title.get_id()) is title
        fields.clear_cache()
        reloaded = fields.find(title.get_id())
        assert reloaded is not title
        assert reloaded.machine_name == "field_title"

    def test_find_missing(self, fields) -> None:
        assert fields.find(99) is None
        assert fields.find(None) is None
        with pytest.raises(FieldNotFoundError):
            fields.find_or_fail(99)

    def test_find_by_machine_name(self, fields) -> None:
        make(fields, "Body", "text")
        fields.clear_cache()
        assert fields.find_by_machine_name("field_body").type.value == "text"
        assert fields.find_by_machine_name("field_nope") is None

    def test_find_all_orders_by_weight_then_name(self, fields) -> None:
        make(fields, "Zeta", weight=0)
        make(fields, "Alpha", weight=1)
        make(fields, "Beta", weight=0)
        assert [f.name for f in fields.find_all()] == ["Beta", "Zeta", "Alpha"]

    def test_find_by_ids(self, fields) -> None:
        a, b = make(fields, "A"), make(fields, "B")
        fields.clear_cache()
        assert [f.name for f in fields.find_by_ids([b.get_id(), a.get_id(), 99])] == ["A", "B"]

    @pytest.mark.parametrize("ref", [1, "1", "field_title"])
    def test_resolve(self, fields, ref) -> None:
        make(fields, "Title")
        assert fields.resolve(ref).machine_name == "field_title"

    def test_resolve_definition_passes_through(self, fields) -> None:
        unsaved = FieldDefinition({"name": "Loose"})
        assert fields.resolve(unsaved) is unsaved

    def test_resolve_missing(self, fields) -> None:
        with pytest.raises(FieldNotFoundError, match="field_nope"):
            fields.resolve("field_nope")

    def test_update_refreshes_cache(self, fields) -> None:
        title = make(fields, "Title")
        title.required = True
        fields.save(title)
        fields.clear_cache()
        assert fields.find(title.get_id()).required is True


# =========================================================================
# Attachments
# =========================================================================


class TestAttachments:
    def test_fields_in_attachment_weight_order(self, fields) -> None:
        body = make(fields, "Body", "text")
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=1, weight=0)
        fields.attach_to_entity(body, "node", bundle_id=1, weight=1)
        assert [f.machine_name for f in fields.find_by_entity_type("node", 1)] == ["field_title", "field_body"]

    def test_every_bundle_attachment(self, fields) -> None:
        title, summary = make(fields, "Title"), make(fields, "Summary", "text")
        fields.attach_to_entity(title, "node", bundle_id=1)
        fields.attach_to_entity(summary, "node", weight=5)
        assert [f.name for f in fields.find_by_entity_type("node", 1)] == ["Title", "Summary"]
        assert [f.name for f in fields.find_by_entity_type("node", 2)] == ["Summary"]
        assert [f.name for f in fields.find_by_entity_type("node")] == ["Title", "Summary"]
        assert fields.find_by_entity_type("block") == []

    def test_field_attached_twice_listed_once(self, fields) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=1)
        fields.attach_to_entity(title, "node", bundle_id=2)
        assert len(fields.find_by_entity_type("node")) == 1

    def test_reattach_bundle_updates(self, fields) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=1, weight=0)
        attachment = fields.attach_to_entity(title, "node", bundle_id=1, weight=7, settings={"x": 1})
        assert len(attachment_rows(fields)) == 1
        assert (attachment.weight, attachment.settings) == (7, {"x": 1})
        assert attachment.id is not None

    def test_reattach_every_bundle_updates(self, fields) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", weight=0)
        fields.attach_to_entity(title, "node", weight=3)
        rows = attachment_rows(fields)
        assert len(rows) == 1
        assert rows[0]["bundle_id"] is None
        assert rows[0]["weight"] == 3

    def test_get_attachment(self, fields) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=4, weight=2)
        assert fields.get_attachment("field_title", "node", 4).weight == 2
        assert fields.get_attachment("field_title", "node") is None
        assert fields.get_attachment("field_title", "block", 4) is None

    def test_attachment_settings_override(self, fields) -> None:
        title = make(fields, "Title", settings={"max_length": 10, "placeholder": "x"})
        fields.attach_to_entity(title, "node", bundle_id=1, settings={"max_length": 5})
        fields.attach_to_entity(title, "node", settings={"placeholder": "y"})
        assert fields.get_attachment_settings(title, "node", 1) == {"max_length": 5, "placeholder": "x"}
        assert fields.get_attachment_settings(title, "node", 3) == {"max_length": 10, "placeholder": "y"}
        assert fields.get_attachment_settings(title, "block") == {"max_length": 10, "placeholder": "x"}

    def test_find_attachments(self, fields) -> None:
        title, body = make(fields, "Title"), make(fields, "Body")
        fields.attach_to_entity(body, "node", bundle_id=1, weight=2)
        fields.attach_to_entity(title, "node", weight=1)
        fields.attach_to_entity(title, "node", bundle_id=9, weight=0)
        assert [a.field_id for a in fields.find_attachments("node", 1)] == [title.get_id(), body.get_id()]
        assert len(fields.find_attachments("node")) == 3

    def test_detach_bundle(self, fields, storage) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=1)
        fields.attach_to_entity(title, "node", bundle_id=2)
        assert fields.detach_from_entity(title, "node", bundle_id=1) == 1
        assert [a.bundle_id for a in fields.find_attachments("node")] == [2]

    def test_detach_bundle_removes_its_values(self, fields, storage) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=1)
        fields.attach_to_entity(title, "node", bundle_id=2)
        storage.set_value(title, "node", 1, "in one", bundle_id=1)
        storage.set_value(title, "node", 2, "in two", bundle_id=2)
        fields.detach_from_entity(title, "node", bundle_id=1)
        assert storage.get_value(title, "node", 1) is None
        assert storage.get_value(title, "node", 2) == "in two"

    def test_detach_last_bundle_removes_bundleless_values(self, fields, storage) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=1)
        storage.set_value(title, "node", 5, "hello")
        fields.detach_from_entity(title, "node", bundle_id=1)
        assert storage.get_value(title, "node", 5) is None

    def test_detach_bundle_removes_bundleless_values_of_members(self, fields, storage) -> None:
        title, body = make(fields, "Title"), make(fields, "Body")
        fields.attach_to_entity(title, "node", bundle_id=1)
        fields.attach_to_entity(title, "node", bundle_id=2)
        storage.set_value(body, "node", 1, "marks bundle one", bundle_id=1)
        storage.set_value(title, "node", 1, "member")
        storage.set_value(title, "node", 2, "elsewhere")
        fields.detach_from_entity(title, "node", bundle_id=1)
        assert storage.get_value(title, "node", 1) is None
        assert storage.get_value(title, "node", 2) == "elsewhere"
        assert storage.get_value(body, "node", 1) == "marks bundle one"

    def test_detach_all_removes_values(self, fields, storage) -> None:
        title = make(fields, "Title")
        fields.attach_to_entity(title, "node", bundle_id=1)
        fields.attach_to_entity(title, "node")
        storage.set_value(title, "node", 1, "hello")
        assert fields.detach_from_entity("field_title", "node") == 2
        assert fields.find_attachments("node") == []
        assert storage.get_value(title, "node", 1) is None


class TestDelete:
    def test_delete_cascades(self, fields, storage) -> None:
        title, body = make(fields, "Title"), make(fields, "Body")
        fields.attach_to_entity(title, "node")
        storage.set_value(title, "node", 1, "hello")
        storage.set_value(body, "node", 1, "kept")
        storage.create_revision("node", 1, revision_id=1)

        fields.delete(title)

        assert fields.find(title.get_id()) is None
        assert fields.find_attachments("node") == []
        assert storage.get_entity_values("node", 1) == {"field_body": "kept"}
        assert storage.get_revision_values("node", 1, 1) == {"field_body": "kept"}

    def test_delete_unsaved_is_noop(self, fields) -> None:
        fields.delete(FieldDefinition({"name": "Loose"}))
        assert fields.find_all() == []
