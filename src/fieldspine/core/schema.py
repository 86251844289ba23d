"""
Field storage tables.

Defines table names and dialect-aware DDL for the four tables behind the
dynamic-field engine: definitions, entity attachments, current values and
value revisions.  Entity tables themselves belong to the application.

Architecture:
    ::

        FIELD_TABLES
        ├── definitions  → field_definitions   machine_name UNIQUE
        ├── attachments  → field_attachments   UNIQUE(field_id, entity_type, bundle_id)
        ├── values       → field_values        UNIQUE(field_id, entity_type, entity_id,
        │                                             language_code, position)
        └── revisions    → field_revisions     UNIQUE(... , revision_id)

        field_values / field_revisions typed columns (exactly one populated):
            value_string  value_text  value_int  value_decimal  value_boolean
            value_date    value_datetime  value_json  value_blob

Examples:
    >>> from fieldspine.core.schema import create_tables
    >>> create_tables(conn, dialect)

Tags:
    schema, ddl, eav, tables, fieldspine
"""

from __future__ import annotations

from fieldspine.core.dialect import Dialect, SQLiteDialect
from fieldspine.core.protocols import Connection

# =============================================================================
# TABLE NAMES
# =============================================================================

FIELD_TABLES = {
    "definitions": "field_definitions",
    "attachments": "field_attachments",
    "values": "field_values",
    "revisions": "field_revisions",
}

VALUE_COLUMNS: dict[str, str] = {
    "value_string": "string",
    "value_text": "text",
    "value_int": "int",
    "value_decimal": "decimal",
    "value_boolean": "boolean",
    "value_date": "date",
    "value_datetime": "datetime",
    "value_json": "json",
    "value_blob": "blob",
}

VALUE_KEY_COLUMNS = ["field_id", "entity_type", "entity_id", "language_code", "position"]


# =============================================================================
# DDL
# =============================================================================


def _value_columns(d: Dialect) -> str:
    return ",\n    ".join(f"{name} {d.column_type(kind)} NULL" for name, kind in VALUE_COLUMNS.items())


def field_ddl(dialect: Dialect | None = None) -> dict[str, str]:
    """Return ``{name: statement}`` for every field table and index."""
    d = dialect or SQLiteDialect()
    t = FIELD_TABLES
    s, txt, i, b, j, dt = (
        d.column_type("string"),
        d.column_type("text"),
        d.column_type("int"),
        d.column_type("boolean"),
        d.column_type("json"),
        d.column_type("datetime"),
    )
    return {
        "definitions": f"""
CREATE TABLE IF NOT EXISTS {t["definitions"]} (
    id {d.auto_increment()},
    name {s} NOT NULL,
    machine_name {s} NOT NULL UNIQUE,
    field_type {s} NOT NULL,
    description {txt} NULL,
    help_text {txt} NULL,
    widget {s} NULL,
    required {b} NOT NULL DEFAULT 0,
    multiple {b} NOT NULL DEFAULT 0,
    cardinality {i} NOT NULL DEFAULT 1,
    default_value {j} NULL,
    settings {j} NULL,
    validation {j} NULL,
    widget_settings {j} NULL,
    weight {i} NOT NULL DEFAULT 0,
    searchable {b} NOT NULL DEFAULT 0,
    translatable {b} NOT NULL DEFAULT 0,
    created_at {dt} NULL,
    updated_at {dt} NULL
)""",
        "attachments": f"""
CREATE TABLE IF NOT EXISTS {t["attachments"]} (
    id {d.auto_increment()},
    field_id {i} NOT NULL REFERENCES {t["definitions"]}(id) ON DELETE CASCADE,
    entity_type {s} NOT NULL,
    bundle_id {i} NULL,
    weight {i} NOT NULL DEFAULT 0,
    settings {j} NULL,
    UNIQUE (field_id, entity_type, bundle_id)
)""",
        "values": f"""
CREATE TABLE IF NOT EXISTS {t["values"]} (
    id {d.auto_increment()},
    field_id {i} NOT NULL REFERENCES {t["definitions"]}(id) ON DELETE CASCADE,
    entity_type {s} NOT NULL,
    entity_id {i} NOT NULL,
    bundle_id {i} NULL,
    language_code {s} NOT NULL,
    position {i} NOT NULL DEFAULT 0,
    {_value_columns(d)},
    UNIQUE ({", ".join(VALUE_KEY_COLUMNS)})
)""",
        "values_idx_entity": f"""
CREATE INDEX IF NOT EXISTS idx_field_values_entity
ON {t["values"]}(entity_type, entity_id)""",
        "revisions": f"""
CREATE TABLE IF NOT EXISTS {t["revisions"]} (
    id {d.auto_increment()},
    field_value_id {i} NULL,
    field_id {i} NOT NULL REFERENCES {t["definitions"]}(id) ON DELETE CASCADE,
    entity_type {s} NOT NULL,
    entity_id {i} NOT NULL,
    bundle_id {i} NULL,
    language_code {s} NOT NULL,
    position {i} NOT NULL DEFAULT 0,
    {_value_columns(d)},
    revision_id {i} NOT NULL,
    created_at {dt} NULL,
    created_by {i} NULL,
    UNIQUE ({", ".join(VALUE_KEY_COLUMNS)}, revision_id)
)""",
        "revisions_idx_entity": f"""
CREATE INDEX IF NOT EXISTS idx_field_revisions_entity
ON {t["revisions"]}(entity_type, entity_id, revision_id)""",
    }


def create_tables(conn: Connection, dialect: Dialect | None = None) -> None:
    """Create all field tables.  Safe to call repeatedly (IF NOT EXISTS)."""
    for _name, ddl in field_ddl(dialect).items():
        conn.execute(ddl)
    conn.commit()


def drop_tables(conn: Connection) -> None:
    """Drop all field tables, children first."""
    for key in ("revisions", "values", "attachments", "definitions"):
        conn.execute(f"DROP TABLE IF EXISTS {FIELD_TABLES[key]}")
    conn.commit()


__all__ = [
    "FIELD_TABLES",
    "VALUE_COLUMNS",
    "VALUE_KEY_COLUMNS",
    "create_tables",
    "drop_tables",
    "field_ddl",
]
