"""Catalog schema definitions: entity types, table names and ledger DDL."""

from typing import Dict, List

# Entity types tracked by the import ledger, in parent -> child order.
# Restores walk this list forwards (parents first), deletes walk it
# backwards (children first) so foreign keys stay satisfied.
PART = "part"
VEHICLE_APPLICATION = "vehicle_application"
CROSS_REFERENCE = "cross_reference"

ENTITY_TYPES: List[str] = [
    PART,
    VEHICLE_APPLICATION,
    CROSS_REFERENCE,
]

# Entity type -> Postgres table
ENTITY_TABLES: Dict[str, str] = {
    PART: "parts",
    VEHICLE_APPLICATION: "vehicle_applications",
    CROSS_REFERENCE: "cross_references",
}

# Entity type -> key used in operator-facing restored counts
RESTORED_COUNT_KEYS: Dict[str, str] = {
    PART: "parts",
    VEHICLE_APPLICATION: "vehicleApplications",
    CROSS_REFERENCE: "crossReferences",
}

# Write origins recorded in updated_by
ORIGIN_IMPORT = "import"
ORIGIN_MANUAL = "manual"

LEDGER_TABLE = "import_history"

STATUS_ACTIVE = "active"
STATUS_ROLLED_BACK = "rolled_back"


def table_for(entity_type: str) -> str:
    """
    Resolve the table backing an entity type.

    Raises:
        ValueError: If the entity type is unknown
    """
    try:
        return ENTITY_TABLES[entity_type]
    except KeyError:
        raise ValueError(
            f"Unknown entity type: {entity_type!r}. "
            f"Expected one of: {', '.join(ENTITY_TYPES)}"
        ) from None


_ENTITY_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    id UUID PRIMARY KEY,
    data JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
    updated_by TEXT NOT NULL DEFAULT 'manual'
);

CREATE INDEX IF NOT EXISTS idx_{table}_updated_at ON {table} (updated_at DESC);

DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table};
CREATE TRIGGER trg_{table}_updated_at
    BEFORE UPDATE ON {table}
    FOR EACH ROW
    EXECUTE FUNCTION catalogkit_touch_updated_at();
"""

# Writers that leave updated_at alone are plain edits: they get the wall
# clock (clock_timestamp(), not the transaction start NOW()) and, unless
# they set updated_by themselves, the manual origin. Imports stamp both
# columns explicitly, and a restore writes back the original pair, so
# neither is touched here.
_TOUCH_FUNCTION_DDL = """
CREATE OR REPLACE FUNCTION catalogkit_touch_updated_at()
RETURNS TRIGGER AS $$
BEGIN
    IF NEW.updated_at IS NOT DISTINCT FROM OLD.updated_at THEN
        NEW.updated_at = clock_timestamp();
        IF NEW.updated_by IS NOT DISTINCT FROM OLD.updated_by THEN
            NEW.updated_by = 'manual';
        END IF;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS import_history (
    id UUID PRIMARY KEY,
    sequence BIGSERIAL UNIQUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    file_name TEXT NOT NULL,
    file_size_bytes INTEGER,
    imported_by TEXT,
    rows_imported INTEGER NOT NULL DEFAULT 0,
    import_summary JSONB NOT NULL,
    reverse_payload JSONB NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    rolled_back_at TIMESTAMPTZ,
    rolled_back_by TEXT,

    CONSTRAINT valid_status CHECK (status IN ('active', 'rolled_back')),
    CONSTRAINT valid_rollback_fields CHECK (
        (status = 'active' AND rolled_back_at IS NULL AND rolled_back_by IS NULL)
        OR (status = 'rolled_back' AND rolled_back_at IS NOT NULL)
    ),
    CONSTRAINT valid_import_summary CHECK (
        import_summary ? 'adds' AND
        import_summary ? 'updates' AND
        import_summary ? 'deletes'
    ),
    CONSTRAINT valid_reverse_payload CHECK (
        reverse_payload ? 'added' AND
        reverse_payload ? 'updated_before' AND
        reverse_payload ? 'deleted_rows'
    )
);

CREATE INDEX IF NOT EXISTS idx_import_history_created
    ON import_history (created_at DESC, sequence DESC);

CREATE INDEX IF NOT EXISTS idx_import_history_active
    ON import_history (created_at DESC, sequence DESC)
    WHERE status = 'active';

CREATE OR REPLACE FUNCTION catalogkit_guard_import_history()
RETURNS TRIGGER AS $$
BEGIN
    IF NEW.id <> OLD.id
        OR NEW.sequence <> OLD.sequence
        OR NEW.created_at <> OLD.created_at
        OR NEW.file_name <> OLD.file_name
        OR NEW.imported_by IS DISTINCT FROM OLD.imported_by
        OR NEW.import_summary <> OLD.import_summary
        OR NEW.reverse_payload <> OLD.reverse_payload THEN
        RAISE EXCEPTION 'import_history rows are immutable except for rollback status';
    END IF;
    IF OLD.status = 'rolled_back' THEN
        RAISE EXCEPTION 'import % is already rolled back', OLD.id;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_import_history_guard ON import_history;
CREATE TRIGGER trg_import_history_guard
    BEFORE UPDATE ON import_history
    FOR EACH ROW
    EXECUTE FUNCTION catalogkit_guard_import_history();
"""


def build_schema_sql() -> str:
    """
    Build the full DDL for the catalog entity tables and the import ledger.

    The statements are idempotent (safe to re-run).
    """
    parts = [_TOUCH_FUNCTION_DDL]
    for entity_type in ENTITY_TYPES:
        parts.append(_ENTITY_TABLE_DDL.format(table=ENTITY_TABLES[entity_type]))
    parts.append(_LEDGER_DDL)
    return "\n".join(parts)


SCHEMA_SQL = build_schema_sql()
