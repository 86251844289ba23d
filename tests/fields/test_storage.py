"""Tests for FieldValueStorage: EAV reads and writes, revisions."""

from __future__ import annotations

from datetime import UTC, date, datetime, time

import pytest
from structlog.testing import capture_logs

from fieldspine.core.errors import EntityStateError, FieldNotFoundError
from fieldspine.core.schema import FIELD_TABLES
from fieldspine.fields.definition import FieldDefinition
from fieldspine.fields.storage import FieldValueStorage, RestoreMode
from fieldspine.fields.types import FieldType, ValueKind


@pytest.fixture
def defs(fields):
    """A handful of saved definitions keyed by short name."""
    specs = {
        "title": {"name": "Title", "field_type": "string"},
        "price": {"name": "Price", "field_type": "decimal"},
        "opens": {"name": "Opens", "field_type": "time"},
        "featured": {"name": "Featured", "field_type": "boolean"},
        "location": {"name": "Location", "field_type": "geolocation"},
        "tags": {"name": "Tags", "field_type": "checkbox"},
        "authors": {"name": "Authors", "field_type": "string", "multiple": True, "cardinality": 2},
    }
    return {key: fields.save(FieldDefinition(attrs)) for key, attrs in specs.items()}


def stored_rows(storage: FieldValueStorage, table: str = "values") -> list[dict]:
    return storage.query(f"SELECT * FROM {FIELD_TABLES[table]} ORDER BY field_id, position")


# =========================================================================
# Single values
# =========================================================================


class TestSingleValues:
    def test_set_and_get(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "Hello")
        assert storage.get_value(defs["title"], "node", 1) == "Hello"

    def test_decimal_string_reads_back_as_number(self, storage, defs) -> None:
        storage.set_value("field_price", "node", 1, "19.99")
        assert storage.get_value("field_price", "node", 1) == 19.99
        assert stored_rows(storage)[0]["value_decimal"] == 19.99

    def test_time_stored_as_text(self, storage, defs) -> None:
        storage.set_value(defs["opens"], "node", 1, "14:30")
        assert stored_rows(storage)[0]["value_string"] == "14:30:00"
        assert storage.get_value(defs["opens"], "node", 1) == time(14, 30)

    def test_false_is_a_value(self, storage, defs) -> None:
        storage.set_value(defs["featured"], "node", 1, False)
        assert storage.get_value(defs["featured"], "node", 1) is False

    def test_structured_value(self, storage, defs) -> None:
        storage.set_value(defs["location"], "node", 1, {"lat": 59.9, "lng": 10.7})
        assert storage.get_value(defs["location"], "node", 1) == {"lat": 59.9, "lng": 10.7}

    def test_bytes_use_blob_column(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, b"\x00raw")
        row = stored_rows(storage)[0]
        assert row["value_string"] is None
        assert storage.get_value(defs["title"], "node", 1) == b"\x00raw"

    def test_overwrite_keeps_one_row(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "first")
        storage.set_value(defs["title"], "node", 1, "second")
        assert storage.get_value(defs["title"], "node", 1) == "second"
        assert len(stored_rows(storage)) == 1

    def test_missing_value(self, storage, defs) -> None:
        assert storage.get_value(defs["title"], "node", 1) is None

    @pytest.mark.parametrize("empty", [None, "", []])
    def test_empty_value_deletes(self, storage, defs, empty) -> None:
        storage.set_value(defs["title"], "node", 1, "x")
        storage.set_value(defs["title"], "node", 1, empty)
        assert stored_rows(storage) == []

    def test_languages_are_separate(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "Hello")
        storage.set_value(defs["title"], "node", 1, "Bonjour", "fr")
        assert storage.get_value(defs["title"], "node", 1) == "Hello"
        assert storage.get_value(defs["title"], "node", 1, "fr") == "Bonjour"

    def test_entities_are_separate(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "node one")
        storage.set_value(defs["title"], "block", 1, "block one")
        assert storage.get_value(defs["title"], "node", 1) == "node one"
        assert storage.get_value(defs["title"], "node", 2) is None

    def test_bundle_recorded(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "x", bundle_id=3)
        assert stored_rows(storage)[0]["bundle_id"] == 3


SAMPLE_ITEMS = {
    ValueKind.STRING: ["first", "second"],
    ValueKind.INT: [42, 7],
    ValueKind.FLOAT: [19.5, 0.25],
    ValueKind.BOOL: [True, False],
    ValueKind.DATE: [date(2024, 2, 29), date(2024, 3, 1)],
    ValueKind.DATETIME: [datetime(2024, 1, 15, 12, 30, 45, tzinfo=UTC), datetime(2024, 1, 16, tzinfo=UTC)],
    ValueKind.TIME: [time(9, 5), time(17, 45, 30)],
    ValueKind.MAPPING: [{"label": "Home", "parts": [1, 2]}, {"lat": 59.9}],
}


class TestEveryFieldType:
    @pytest.mark.parametrize("field_type", list(FieldType))
    def test_round_trip(self, storage, fields, field_type: FieldType) -> None:
        definition = fields.save(FieldDefinition({"name": f"Sample {field_type.value}", "field_type": field_type.value}))
        items = SAMPLE_ITEMS[field_type.item_kind]
        value = list(items) if field_type.supports_multiple else items[0]
        storage.set_value(definition, "node", 1, value)
        assert storage.get_value(definition, "node", 1) == value


# =========================================================================
# Multiple values
# =========================================================================


class TestMultipleValues:
    def test_positions_follow_list_order(self, storage, defs) -> None:
        storage.set_value(defs["tags"], "node", 1, ["c", "a", "b"])
        assert storage.get_value(defs["tags"], "node", 1) == ["c", "a", "b"]
        assert [r["position"] for r in stored_rows(storage)] == [0, 1, 2]

    def test_shorter_list_removes_higher_positions(self, storage, defs) -> None:
        storage.set_value(defs["tags"], "node", 1, ["a", "b", "c"])
        storage.set_value(defs["tags"], "node", 1, ["x"])
        assert storage.get_value(defs["tags"], "node", 1) == ["x"]
        assert len(stored_rows(storage)) == 1

    def test_scalar_becomes_single_item(self, storage, defs) -> None:
        storage.set_value(defs["tags"], "node", 1, "solo")
        assert storage.get_value(defs["tags"], "node", 1) == ["solo"]

    def test_missing_is_empty_list(self, storage, defs) -> None:
        assert storage.get_value(defs["tags"], "node", 1) == []

    def test_truncated_to_cardinality_with_warning(self, storage, defs) -> None:
        with capture_logs() as logs:
            storage.set_value(defs["authors"], "node", 1, ["ann", "bob", "cy"])
        assert storage.get_value(defs["authors"], "node", 1) == ["ann", "bob"]
        warnings = [entry for entry in logs if entry["event"] == "field.values_truncated"]
        assert len(warnings) == 1
        assert warnings[0]["log_level"] == "warning"
        assert (warnings[0]["given"], warnings[0]["kept"]) == (3, 2)


# =========================================================================
# Entity-wide operations
# =========================================================================


class TestEntityValues:
    def test_get_entity_values(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "Hello")
        storage.set_value(defs["tags"], "node", 1, ["a", "b"])
        storage.set_value(defs["title"], "node", 2, "Other")
        assert storage.get_entity_values("node", 1) == {"field_title": "Hello", "field_tags": ["a", "b"]}

    def test_set_values_mixed_refs(self, storage, defs) -> None:
        storage.set_values("node", 1, {"field_title": "T", defs["price"].get_id(): "5", defs["tags"]: ["x"]})
        assert storage.get_entity_values("node", 1) == {"field_title": "T", "field_price": 5.0, "field_tags": ["x"]}

    def test_set_values_is_atomic(self, storage, defs) -> None:
        with pytest.raises(FieldNotFoundError):
            storage.set_values("node", 1, {"field_title": "T", "field_missing": "x"})
        assert storage.get_entity_values("node", 1) == {}

    def test_orphaned_rows_are_skipped(self, storage, defs, fields) -> None:
        storage.set_value(defs["title"], "node", 1, "Hello")
        storage.execute("PRAGMA foreign_keys = OFF")
        storage.execute(f"DELETE FROM {FIELD_TABLES['definitions']} WHERE id = ?", (defs["title"].get_id(),))
        fields.clear_cache()
        with capture_logs() as logs:
            assert storage.get_entity_values("node", 1) == {}
        assert [e["log_level"] for e in logs if e["event"] == "field.values_orphaned"] == ["warning"]

    def test_delete_value(self, storage, defs) -> None:
        storage.set_value(defs["tags"], "node", 1, ["a", "b"])
        assert storage.delete_value(defs["tags"], "node", 1) == 2

    def test_delete_entity_values(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "Hello")
        storage.set_value(defs["title"], "node", 1, "Bonjour", "fr")
        assert storage.delete_entity_values("node", 1, "fr") == 1
        assert storage.delete_entity_values("node", 1) == 1
        assert stored_rows(storage) == []

    def test_purge_entity(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "Hello")
        storage.set_value(defs["title"], "node", 2, "Kept")
        storage.create_revision("node", 1, revision_id=1)
        storage.purge_entity("node", 1)
        assert stored_rows(storage, "revisions") == []
        assert [r["entity_id"] for r in stored_rows(storage)] == [2]


# =========================================================================
# Revisions
# =========================================================================


class TestRevisions:
    def test_create_revision_copies_rows(self, storage, defs) -> None:
        storage.set_values("node", 1, {"field_title": "v1", "field_tags": ["a", "b"]})
        assert storage.create_revision("node", 1, revision_id=1, author_id=9) == 3
        storage.set_value(defs["title"], "node", 1, "v2")
        assert storage.get_revision_values("node", 1, 1) == {"field_title": "v1", "field_tags": ["a", "b"]}
        assert storage.get_value(defs["title"], "node", 1) == "v2"

    def test_snapshot_of_nothing(self, storage, defs) -> None:
        assert storage.create_revision("node", 1, revision_id=1) == 0

    def test_existing_revision_is_never_overwritten(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "v1")
        storage.create_revision("node", 1, revision_id=1)
        storage.set_value(defs["title"], "node", 1, "v2")
        with pytest.raises(EntityStateError) as excinfo:
            storage.create_revision("node", 1, revision_id=1)
        assert excinfo.value.context.metadata == {"revision_id": 1}
        assert storage.get_revision_values("node", 1, 1) == {"field_title": "v1"}

    def test_revision_ids_are_per_entity(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "one")
        storage.set_value(defs["title"], "node", 2, "two")
        storage.create_revision("node", 1, revision_id=1)
        assert storage.create_revision("node", 2, revision_id=1) == 1
        assert storage.get_revision_values("node", 2, 1) == {"field_title": "two"}

    def test_list_revisions(self, storage, defs, clock) -> None:
        storage.set_value(defs["title"], "node", 1, "v1")
        storage.create_revision("node", 1, revision_id=1, author_id=5)
        clock.advance()
        storage.set_value(defs["tags"], "node", 1, ["a", "b"])
        storage.create_revision("node", 1, revision_id=2)
        revisions = storage.list_revisions("node", 1)
        assert [(r["revision_id"], r["value_count"]) for r in revisions] == [(1, 1), (2, 3)]
        assert revisions[0]["created_at"] == "2024-01-15 12:00:00"
        assert revisions[0]["created_by"] == 5
        assert revisions[1]["created_at"] == "2024-01-15 12:01:00"

    def test_restore_overlay_keeps_newer_rows(self, storage, defs) -> None:
        storage.set_value(defs["tags"], "node", 1, ["a"])
        storage.create_revision("node", 1, revision_id=1)
        storage.set_value(defs["tags"], "node", 1, ["b", "c"])
        storage.set_value(defs["title"], "node", 1, "added later")

        assert storage.restore_revision("node", 1, 1) == 1
        assert storage.get_entity_values("node", 1) == {"field_title": "added later", "field_tags": ["a", "c"]}

    def test_restore_replace_matches_snapshot(self, storage, defs) -> None:
        storage.set_value(defs["tags"], "node", 1, ["a"])
        storage.create_revision("node", 1, revision_id=1)
        storage.set_value(defs["tags"], "node", 1, ["b", "c"])
        storage.set_value(defs["title"], "node", 1, "added later")

        assert storage.restore_revision("node", 1, 1, RestoreMode.REPLACE) == 1
        assert storage.get_entity_values("node", 1) == {"field_tags": ["a"]}

    def test_restore_mode_by_value(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "v1")
        storage.create_revision("node", 1, revision_id=1)
        storage.set_value(defs["price"], "node", 1, 3)
        storage.restore_revision("node", 1, 1, "replace")
        assert storage.get_entity_values("node", 1) == {"field_title": "v1"}

    def test_restore_missing_revision_is_noop(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "current")
        with capture_logs() as logs:
            assert storage.restore_revision("node", 1, 99, RestoreMode.REPLACE) == 0
        assert storage.get_value(defs["title"], "node", 1) == "current"
        assert [e["log_level"] for e in logs if e["event"] == "field.revision_missing"] == ["warning"]

    def test_restore_every_language(self, storage, defs) -> None:
        storage.set_value(defs["title"], "node", 1, "Hello")
        storage.set_value(defs["title"], "node", 1, "Bonjour", "fr")
        storage.create_revision("node", 1, revision_id=1)
        storage.delete_entity_values("node", 1)
        assert storage.restore_revision("node", 1, 1) == 2
        assert storage.get_value(defs["title"], "node", 1, "fr") == "Bonjour"
        assert storage.get_revision_values("node", 1, 1, "fr") == {"field_title": "Bonjour"}
