"""
Snapshot Recorder: captures what is needed to undo a catalog import.

The recorder runs inside the import's own write transaction, so either the
snapshot and the catalog mutations commit together or neither does. The
ledger therefore never references an import that did not happen.

Captured per import:
- added: keys the import creates, with the data it inserts
- updated_before: full pre-import copies of rows it modifies
- deleted_rows: full copies of rows it removes

CRITICAL: a missing before-value is fatal. A partial snapshot cannot be
rolled back safely, so the whole import must abort instead.
"""

import logging
from collections import defaultdict
from typing import Dict, List
from uuid import UUID, uuid4

from ..ledger.client import LedgerClient
from ..ledger.models import (
    CatalogRow,
    EntityKey,
    ImportContext,
    ImportSnapshot,
    ReversePayload,
)
from ..schema import ENTITY_TYPES, ORIGIN_IMPORT
from .errors import SnapshotCaptureError

logger = logging.getLogger(__name__)


def _group_ids(keys: List[EntityKey]) -> Dict[str, List[UUID]]:
    grouped = defaultdict(list)
    for key in keys:
        grouped[key.entity_type].append(key.id)
    return grouped


def _fetch_locked(db: LedgerClient, keys: List[EntityKey]) -> Dict[EntityKey, CatalogRow]:
    """Fetch current rows for keys, row-locked until the transaction ends."""
    found = {}
    for entity_type, ids in _group_ids(keys).items():
        for row in db.get_rows(entity_type, ids, for_update=True).values():
            found[row.key] = row
    return found


def _validate_context(context: ImportContext) -> None:
    """
    Reject contexts that cannot produce an unambiguous reverse payload.

    Raises:
        SnapshotCaptureError: If file_name is missing or a key repeats
    """
    if not context.file_name:
        raise SnapshotCaptureError("Import context requires a file_name")

    seen = {}
    labelled = (
        [(m.key, "add") for m in context.adds]
        + [(m.key, "update") for m in context.updates]
        + [(key, "delete") for key in context.deletes]
    )
    for key, operation in labelled:
        if key in seen:
            raise SnapshotCaptureError(
                f"Row {key} appears more than once in the import "
                f"({seen[key]} and {operation}); each row may be touched once"
            )
        seen[key] = operation


def capture_snapshot(
    db: LedgerClient,
    context: ImportContext,
    debug: bool = False
) -> ImportSnapshot:
    """
    Capture the reverse payload for an import and append it to the ledger.

    Must be called inside the import's open transaction, BEFORE the import
    writes its mutations (before-values are read from the current rows).

    Steps:
    1. Take the ledger lock (serializes with rollbacks and other captures)
    2. Refuse backdating: the new snapshot must not predate the newest one
    3. Verify adds are new and updates/deletes exist, locking those rows
    4. Append an active snapshot with the full reverse payload

    Args:
        db: Ledger client with an open transaction
        context: Mutations and provenance from the import pipeline
        debug: Enable debug logging

    Returns:
        The persisted, active ImportSnapshot

    Raises:
        SnapshotCaptureError: If no transaction is open on db or any
            before-value cannot be captured
    """
    if not db.in_transaction():
        raise SnapshotCaptureError(
            "capture_snapshot() must run inside the import transaction. "
            "Call begin_transaction() first."
        )

    _validate_context(context)

    db.acquire_ledger_lock()

    # ========================================================================
    # STEP 1: Ordering
    # ========================================================================
    # The ledger order is the sole basis for sequential rollback, so a
    # snapshot may never be inserted behind an existing one.
    created_at = db.transaction_timestamp()
    latest = db.get_latest_snapshot_created_at()
    if latest is not None and created_at < latest:
        raise SnapshotCaptureError(
            f"Import transaction started at {created_at.isoformat()} but the ledger "
            f"already holds a snapshot from {latest.isoformat()}; retry the import"
        )

    # ========================================================================
    # STEP 2: Capture before-values
    # ========================================================================
    add_keys = [m.key for m in context.adds]
    existing_adds = _fetch_locked(db, add_keys)
    if existing_adds:
        clashing = ", ".join(str(key) for key in existing_adds)
        raise SnapshotCaptureError(f"Rows to add already exist: {clashing}")

    update_keys = [m.key for m in context.updates]
    before_rows = _fetch_locked(db, update_keys)
    missing = [key for key in update_keys if key not in before_rows]
    if missing:
        raise SnapshotCaptureError(
            f"Cannot capture before-value for {len(missing)} updated row(s): "
            f"{', '.join(str(key) for key in missing)}"
        )

    delete_keys = list(context.deletes)
    deleted_rows = _fetch_locked(db, delete_keys)
    missing = [key for key in delete_keys if key not in deleted_rows]
    if missing:
        raise SnapshotCaptureError(
            f"Cannot capture {len(missing)} deleted row(s): "
            f"{', '.join(str(key) for key in missing)}"
        )

    payload = ReversePayload(
        added={m.key: m.data for m in context.adds},
        updated_before={key: before_rows[key] for key in update_keys},
        deleted_rows={key: deleted_rows[key] for key in delete_keys},
    )

    # ========================================================================
    # STEP 3: Append to the ledger
    # ========================================================================
    summary = payload.summary()
    rows_imported = context.rows_imported
    if rows_imported is None:
        rows_imported = summary.total

    snapshot = db.insert_snapshot(
        snapshot_id=uuid4(),
        file_name=context.file_name,
        imported_by=context.imported_by,
        rows_imported=rows_imported,
        import_summary=summary,
        reverse_payload=payload,
        file_size_bytes=context.file_size_bytes,
    )

    if debug:
        logger.info(
            f"Snapshot captured: {snapshot.id} for '{context.file_name}' "
            f"(adds: {summary.adds}, updates: {summary.updates}, deletes: {summary.deletes})"
        )

    return snapshot


def apply_import(db: LedgerClient, context: ImportContext) -> None:
    """
    Write an import's mutations to the Entity Store.

    Rows are tagged updated_by="import". Deletes walk entity types child-first
    and inserts/updates parent-first so foreign keys stay satisfied.
    """
    for entity_type in reversed(ENTITY_TYPES):
        for key in context.deletes:
            if key.entity_type == entity_type:
                db.delete_row(entity_type, key.id)

    for entity_type in ENTITY_TYPES:
        for mutation in context.adds:
            if mutation.entity_type == entity_type:
                db.insert_row(entity_type, mutation.id, mutation.data, ORIGIN_IMPORT)
        for mutation in context.updates:
            if mutation.entity_type == entity_type:
                if not db.update_row(entity_type, mutation.id, mutation.data, ORIGIN_IMPORT):
                    raise SnapshotCaptureError(f"Row {mutation.key} vanished during import")


def run_import(
    db: LedgerClient,
    context: ImportContext,
    debug: bool = False
) -> ImportSnapshot:
    """
    Capture a snapshot and apply an import in one transaction.

    Convenience wrapper for pipelines that do not manage their own
    transaction. Pipelines that do should call capture_snapshot() and
    then write their own mutations before committing.

    Args:
        db: Ledger client (no transaction open)
        context: Mutations and provenance
        debug: Enable debug logging

    Returns:
        The committed ImportSnapshot

    Raises:
        SnapshotCaptureError: If the snapshot cannot be captured
        Exception: If database operations fail (transaction will be rolled back)
    """
    db.begin_transaction()

    try:
        snapshot = capture_snapshot(db, context, debug=debug)
        apply_import(db, context)
        db.commit_transaction()

        if debug:
            logger.info(f"Import committed: snapshot {snapshot.id}")

        return snapshot

    except Exception as e:
        # Rollback on any error
        db.rollback_transaction()
        logger.error(f"Import of '{context.file_name}' failed: {e}", exc_info=True)
        raise
