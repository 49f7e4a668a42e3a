"""
Unit tests for the History service.

These tests verify that:
1. Listings are newest first, limited, and never expose reverse payloads
2. Rollback outcomes become the response bodies the admin UI renders
3. Each outcome maps to its HTTP status
"""

import pytest
from uuid import uuid4

from catalogkit.config import Settings
from catalogkit.history import HistoryService, status_code_for
from catalogkit.ledger import RowMutation

OPERATOR = "admin@example.com"


def import_parts(do_import, count: int):
    """Run count single-row imports, oldest first."""
    return [
        do_import(adds=[RowMutation("part", uuid4(), {"sku": f"P-{i}"})], file_name=f"batch-{i}.csv")
        for i in range(count)
    ]


# =============================================================================
# LISTING
# =============================================================================

class TestListSnapshots:
    """Tests for the history read model."""

    def test_newest_first(self, db, do_import):
        snapshots = import_parts(do_import, 3)

        listed = HistoryService(db).list_snapshots()

        assert [s.id for s in listed] == [s.id for s in reversed(snapshots)]

    def test_default_limit(self, db, do_import):
        import_parts(do_import, 12)
        assert len(HistoryService(db).list_snapshots()) == 10

    def test_limit_capped(self, db, do_import):
        import_parts(do_import, 4)
        service = HistoryService(db, settings=Settings(history_max_limit=3))

        assert len(service.list_snapshots(limit=50)) == 3

    def test_summary_fields(self, db, do_import):
        snapshot = import_parts(do_import, 1)[0]

        row = HistoryService(db).list_snapshots()[0].to_dict()

        assert row["id"] == str(snapshot.id)
        assert row["file_name"] == "batch-0.csv"
        assert row["imported_by"] == "importer@example.com"
        assert row["import_summary"] == {"adds": 1, "updates": 0, "deletes": 0}
        assert row["status"] == "active"
        assert row["rolled_back_at"] is None
        assert "reverse_payload" not in row

    def test_rolled_back_fields(self, db, do_import):
        snapshot = import_parts(do_import, 1)[0]
        service = HistoryService(db)
        service.request_rollback(snapshot.id, OPERATOR)

        row = service.list_snapshots()[0]

        assert row.status == "rolled_back"
        assert row.rolled_back_by == OPERATOR
        assert row.rolled_back_at is not None


# =============================================================================
# ROLLBACK REQUESTS
# =============================================================================

class TestRequestRollback:
    """Tests for rollback response bodies."""

    def test_success_body(self, db, do_import):
        snapshot = import_parts(do_import, 1)[0]

        body = HistoryService(db).request_rollback(snapshot.id, OPERATOR)

        assert body["success"] is True
        assert body["importId"] == str(snapshot.id)
        assert body["restoredCounts"] == {"parts": 1, "vehicleApplications": 0, "crossReferences": 0}
        assert body["executionTimeMs"] >= 0
        assert status_code_for(body) == 200

    def test_sequential_body(self, db, do_import):
        older, newer = import_parts(do_import, 2)

        body = HistoryService(db).request_rollback(older.id, OPERATOR)

        assert body["success"] is False
        assert body["error"] == "SequentialRollbackError"
        assert body["message"] == "Sequential rollback enforced. Must rollback newest import first."
        assert body["newestImportId"] == str(newer.id)
        assert status_code_for(body) == 409

    def test_conflict_body(self, db, do_import, manual_edit):
        new_id = uuid4()
        snapshot = do_import(adds=[RowMutation("part", new_id, {"sku": "N"})])
        manual_edit("part", new_id, {"sku": "N", "price": 5})

        body = HistoryService(db).request_rollback(snapshot.id, OPERATOR)

        assert body["error"] == "RollbackConflictError"
        assert body["conflictCount"] == 1
        assert body["conflictingIds"] == [str(new_id)]
        assert "1 record(s) were manually edited" in body["message"]
        assert status_code_for(body) == 409

    def test_already_rolled_back_body(self, db, do_import):
        snapshot = import_parts(do_import, 1)[0]
        service = HistoryService(db)
        service.request_rollback(snapshot.id, OPERATOR)

        body = service.request_rollback(snapshot.id, OPERATOR)

        assert body["error"] == "AlreadyRolledBackError"
        assert status_code_for(body) == 409

    def test_not_found_body(self, db):
        body = HistoryService(db).request_rollback(uuid4(), OPERATOR)

        assert body["error"] == "NotFoundError"
        assert status_code_for(body) == 404

    def test_failed_body(self, database, do_import):
        snapshot = import_parts(do_import, 1)[0]

        def fail(operation):
            raise RuntimeError("store unavailable")

        body = HistoryService(database.session(failure_hook=fail)).request_rollback(snapshot.id, OPERATOR)

        assert body["error"] == "RollbackFailedError"
        assert status_code_for(body) == 500

    @pytest.mark.parametrize("error_code", ["SomethingUnexpected", None])
    def test_unknown_error_maps_to_500(self, error_code):
        assert status_code_for({"success": False, "error": error_code}) == 500
