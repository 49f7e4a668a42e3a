"""
Unit tests for the Snapshot Recorder.

These tests verify that:
1. A snapshot captures complete before-values for every touched row
2. Snapshot and mutations commit together, or neither does
3. Missing before-values abort the whole import
4. Snapshots are appended in order and never backdated
"""

import pytest
from uuid import uuid4

from catalogkit.ledger import EntityKey, ImportContext, RowMutation, SnapshotStatus
from catalogkit.rollback import SnapshotCaptureError, apply_import, capture_snapshot, run_import
from catalogkit.schema import ORIGIN_IMPORT


# =============================================================================
# CAPTURE
# =============================================================================

class TestCaptureSnapshot:
    """Tests for capturing the reverse payload."""

    def test_captures_all_three_sets(self, db, database, seed):
        """Adds keep inserted data; updates and deletes keep full copies."""
        part_id = seed("part", {"sku": "BRK-100", "price": 10})
        ref_id = seed("cross_reference", {"oem": "OEM-9"})
        new_id = uuid4()

        context = ImportContext(
            file_name="catalog.xlsx",
            imported_by="ops@example.com",
            adds=[RowMutation("vehicle_application", new_id, {"make": "Ford"})],
            updates=[RowMutation("part", part_id, {"sku": "BRK-100", "price": 12})],
            deletes=[EntityKey("cross_reference", ref_id)],
        )

        snapshot = run_import(db, context)
        payload = snapshot.reverse_payload

        assert payload.added == {EntityKey("vehicle_application", new_id): {"make": "Ford"}}
        assert payload.updated_before[EntityKey("part", part_id)].data == {"sku": "BRK-100", "price": 10}
        assert payload.deleted_rows[EntityKey("cross_reference", ref_id)].data == {"oem": "OEM-9"}
        assert snapshot.import_summary.to_dict() == {"adds": 1, "updates": 1, "deletes": 1}
        assert snapshot.status is SnapshotStatus.ACTIVE
        assert snapshot.file_name == "catalog.xlsx"
        assert snapshot.imported_by == "ops@example.com"

    def test_rows_imported_defaults_to_mutation_count(self, db, seed):
        part_id = seed("part", {"sku": "A"})
        context = ImportContext(
            file_name="a.csv",
            adds=[RowMutation("part", uuid4(), {"sku": "B"})],
            updates=[RowMutation("part", part_id, {"sku": "A2"})],
        )
        assert run_import(db, context).rows_imported == 2

    def test_rows_imported_from_pipeline(self, db):
        context = ImportContext(
            file_name="a.csv",
            adds=[RowMutation("part", uuid4(), {"sku": "B"})],
            rows_imported=40,
            file_size_bytes=2048,
        )
        snapshot = run_import(db, context)

        assert snapshot.rows_imported == 40
        assert snapshot.file_size_bytes == 2048

    def test_requires_open_transaction(self, db):
        with pytest.raises(SnapshotCaptureError):
            capture_snapshot(db, ImportContext(file_name="a.csv"))

    def test_missing_update_target_aborts_import(self, db, database):
        """A before-value that cannot be read fails the whole import."""
        context = ImportContext(
            file_name="a.csv",
            adds=[RowMutation("part", uuid4(), {"sku": "NEW"})],
            updates=[RowMutation("part", uuid4(), {"sku": "GHOST"})],
        )

        with pytest.raises(SnapshotCaptureError):
            run_import(db, context)

        assert database.snapshots == {}
        assert database.tables["part"] == {}
        assert not db.in_transaction()

    def test_missing_delete_target_aborts_import(self, db, database):
        context = ImportContext(file_name="a.csv", deletes=[EntityKey("part", uuid4())])

        with pytest.raises(SnapshotCaptureError):
            run_import(db, context)

        assert database.snapshots == {}

    def test_existing_add_target_aborts_import(self, db, seed):
        part_id = seed("part", {"sku": "A"})
        context = ImportContext(file_name="a.csv", adds=[RowMutation("part", part_id, {"sku": "B"})])

        with pytest.raises(SnapshotCaptureError):
            run_import(db, context)

    def test_row_touched_twice_rejected(self, db, seed):
        part_id = seed("part", {"sku": "A"})
        context = ImportContext(
            file_name="a.csv",
            updates=[RowMutation("part", part_id, {"sku": "B"})],
            deletes=[EntityKey("part", part_id)],
        )

        with pytest.raises(SnapshotCaptureError):
            run_import(db, context)

    def test_file_name_required(self, db):
        with pytest.raises(SnapshotCaptureError):
            run_import(db, ImportContext(file_name=""))


# =============================================================================
# ATOMICITY WITH THE IMPORT
# =============================================================================

class TestImportAtomicity:
    """Snapshot and import mutations share one transaction."""

    def test_failed_write_discards_snapshot(self, database, seed):
        """If the import's own writes fail, no snapshot survives."""
        part_id = seed("part", {"sku": "A"})

        def fail_on_update(operation):
            if operation == "update_row":
                raise RuntimeError("connection reset")

        session = database.session(failure_hook=fail_on_update)
        context = ImportContext(
            file_name="a.csv",
            updates=[RowMutation("part", part_id, {"sku": "B"})],
        )

        with pytest.raises(RuntimeError):
            run_import(session, context)

        assert database.snapshots == {}
        assert database.tables["part"][part_id].data == {"sku": "A"}

    def test_pipeline_driven_transaction(self, db, database):
        """Pipelines may capture and write inside their own transaction."""
        new_id = uuid4()
        context = ImportContext(file_name="a.csv", adds=[RowMutation("part", new_id, {"sku": "N"})])

        db.begin_transaction()
        snapshot = capture_snapshot(db, context)
        apply_import(db, context)
        db.commit_transaction()

        row = database.tables["part"][new_id]
        assert row.updated_by == ORIGIN_IMPORT
        assert row.updated_at == snapshot.created_at
        assert snapshot.id in database.snapshots


# =============================================================================
# LEDGER ORDER
# =============================================================================

class TestLedgerOrder:
    """Snapshots are appended in strict order."""

    def test_sequence_and_created_at_increase(self, do_import):
        first = do_import(adds=[RowMutation("part", uuid4(), {"sku": "1"})])
        second = do_import(adds=[RowMutation("part", uuid4(), {"sku": "2"})])

        assert second.created_at > first.created_at
        assert second.sequence > first.sequence

    def test_backdated_snapshot_refused(self, database, do_import):
        """A transaction that started before the newest snapshot cannot append."""
        do_import(adds=[RowMutation("part", uuid4(), {"sku": "1"})])
        newest = max(s.created_at for s in database.snapshots.values())

        session = database.session()
        session.begin_transaction()
        # Simulate a transaction whose timestamp predates the ledger head
        session._timestamp = newest.replace(year=newest.year - 1)

        with pytest.raises(SnapshotCaptureError):
            capture_snapshot(session, ImportContext(file_name="late.csv"))

        session.rollback_transaction()
        assert len(database.snapshots) == 1


# =============================================================================
# LEDGER ISOLATION
# =============================================================================

class TestLedgerIsolation:
    """Snapshots handed to callers are copies of the ledger row."""

    def test_mutating_returned_snapshot_leaves_ledger_intact(self, database, do_import, seed):
        part_id = seed("part", {"sku": "BRK-100", "price": 10})
        new_id = uuid4()
        snapshot = do_import(
            adds=[RowMutation("part", new_id, {"sku": "NEW"})],
            updates=[RowMutation("part", part_id, {"sku": "BRK-100", "price": 12})],
        )

        snapshot.reverse_payload.added[EntityKey("part", new_id)]["sku"] = "TAMPERED"
        snapshot.reverse_payload.updated_before[EntityKey("part", part_id)].data["price"] = 999
        snapshot.reverse_payload.deleted_rows.clear()

        stored = database.snapshots[snapshot.id].reverse_payload
        assert stored.added[EntityKey("part", new_id)] == {"sku": "NEW"}
        assert stored.updated_before[EntityKey("part", part_id)].data["price"] == 10

    def test_get_snapshot_returns_copy(self, database, do_import):
        new_id = uuid4()
        snapshot = do_import(adds=[RowMutation("part", new_id, {"sku": "NEW"})])

        session = database.session()
        session.begin_transaction()
        loaded = session.get_snapshot(snapshot.id)
        loaded.reverse_payload.added.clear()
        reloaded = session.get_snapshot(snapshot.id)
        session.rollback_transaction()

        assert EntityKey("part", new_id) in reloaded.reverse_payload.added
        assert EntityKey("part", new_id) in database.snapshots[snapshot.id].reverse_payload.added
