"""
Rollback Coordinator: reverses one import, atomically and in LIFO order.

State machine per rollback request:

    LOAD -> SEQUENTIAL CHECK -> CONFLICT SCAN -> APPLY -> REPORT

Everything from LOAD to APPLY runs in one transaction under the ledger lock,
so two simultaneous requests cannot both pass the sequential check against
a stale view. The loser of a race sees AlreadyRolledBackError or
SequentialRollbackError, never a partial state.

Why LIFO: an older import may have been relied upon by changes made after
it. Undoing it out of order would need general diff/merge logic, which this
engine deliberately does not have.
"""

import logging
import time
from typing import Optional
from uuid import UUID

from ..ledger.client import LedgerClient
from ..ledger.models import ImportSnapshot, ReversePayload, RestoredCounts
from ..schema import ENTITY_TYPES
from .conflicts import conflicting_ids, find_conflicts
from .errors import (
    AlreadyRolledBackError,
    NotFoundError,
    RollbackConflictError,
    RollbackError,
    RollbackFailedError,
    SequentialRollbackError,
)

logger = logging.getLogger(__name__)


class RollbackCoordinator:
    """
    Executes rollbacks against one ledger client (one database session).

    Args:
        db: Ledger client; must not have a transaction open
        origin_aware: Forwarded to the Conflict Detector
        debug: Enable debug logging of each step
    """

    def __init__(
        self,
        db: LedgerClient,
        origin_aware: bool = False,
        debug: bool = False
    ):
        self.db = db
        self.origin_aware = origin_aware
        self.debug = debug

    def rollback(self, snapshot_id: UUID, operator_id: str) -> RestoredCounts:
        """
        Roll back one import snapshot.

        Args:
            snapshot_id: Snapshot to reverse
            operator_id: Operator identity recorded as rolled_back_by

        Returns:
            RestoredCounts per entity type

        Raises:
            NotFoundError: Unknown snapshot id
            AlreadyRolledBackError: Snapshot already reversed
            SequentialRollbackError: A newer active snapshot exists
            RollbackConflictError: Referenced rows were edited after the import
            RollbackFailedError: The transaction failed; nothing was changed
        """
        if not operator_id:
            raise ValueError("operator_id is required to roll back an import")

        start = time.monotonic()

        try:
            self.db.begin_transaction()
            self.db.acquire_ledger_lock()

            # ================================================================
            # STEP 1: Load
            # ================================================================
            snapshot = self._load(snapshot_id)

            # ================================================================
            # STEP 2: Sequential check
            # ================================================================
            newest_id = self.db.get_newest_active_snapshot_id()
            if newest_id != snapshot.id:
                raise SequentialRollbackError(newest_id, snapshot.id)

            # ================================================================
            # STEP 3: Conflict scan (read-only, completes before any write)
            # ================================================================
            conflicts = find_conflicts(
                self.db,
                snapshot,
                origin_aware=self.origin_aware,
                debug=self.debug,
            )
            if conflicts:
                raise RollbackConflictError(conflicting_ids(conflicts), conflicts)

            # ================================================================
            # STEP 4: Apply
            # ================================================================
            self._apply(snapshot.reverse_payload)

            rolled_back_at = self.db.mark_rolled_back(snapshot.id, operator_id)
            if rolled_back_at is None:
                # Cannot happen under the ledger lock; kept as the CAS guard
                raise AlreadyRolledBackError(snapshot.id)

            self.db.commit_transaction()

        except RollbackError as e:
            if self.db.in_transaction():
                self.db.rollback_transaction()
            logger.warning(f"Rollback of import {snapshot_id} refused: {e}")
            raise

        except Exception as e:
            # Store or transport failure: nothing was committed
            if self.db.in_transaction():
                self.db.rollback_transaction()
            logger.error(f"Rollback of import {snapshot_id} failed: {e}", exc_info=True)
            raise RollbackFailedError(snapshot_id, str(e)) from e

        # ====================================================================
        # STEP 5: Report
        # ====================================================================
        counts = RestoredCounts.from_payload(snapshot.reverse_payload)

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            f"Import {snapshot.id} ('{snapshot.file_name}') rolled back by {operator_id} "
            f"in {elapsed_ms:.0f}ms: {counts.parts} parts, "
            f"{counts.vehicle_applications} vehicle applications, "
            f"{counts.cross_references} cross references"
        )

        return counts

    def _load(self, snapshot_id: UUID) -> ImportSnapshot:
        snapshot: Optional[ImportSnapshot] = self.db.get_snapshot(snapshot_id, for_update=True)
        if snapshot is None:
            raise NotFoundError(snapshot_id)
        if not snapshot.is_active:
            raise AlreadyRolledBackError(snapshot_id)
        if snapshot.reverse_payload is None:
            logger.error(f"Import {snapshot_id} has no reverse payload")
            raise RollbackFailedError(snapshot_id, "snapshot has no reverse payload")

        if self.debug:
            summary = snapshot.import_summary
            logger.info(
                f"Loaded import {snapshot.id}: '{snapshot.file_name}' created "
                f"{snapshot.created_at.isoformat()} (adds: {summary.adds}, "
                f"updates: {summary.updates}, deletes: {summary.deletes})"
            )

        return snapshot

    def _apply(self, payload: ReversePayload) -> None:
        """
        Write the inverse of an import inside the open transaction.

        Added rows are deleted child-first; updated and deleted rows are
        written back verbatim parent-first, original updated_at included, so
        conflict checks against older snapshots still see true history.
        """
        for entity_type in reversed(ENTITY_TYPES):
            for key in payload.added:
                if key.entity_type == entity_type:
                    self.db.delete_row(entity_type, key.id)

        for entity_type in ENTITY_TYPES:
            for key, before_row in payload.updated_before.items():
                if key.entity_type == entity_type:
                    self.db.restore_row(before_row)
            for key, deleted_row in payload.deleted_rows.items():
                if key.entity_type == entity_type:
                    self.db.restore_row(deleted_row)

        if self.debug:
            logger.info(
                f"Applied inverse: {len(payload.added)} deleted, "
                f"{len(payload.updated_before)} restored, "
                f"{len(payload.deleted_rows)} reinserted"
            )


def rollback_import(
    db: LedgerClient,
    snapshot_id: UUID,
    operator_id: str,
    debug: bool = False
) -> RestoredCounts:
    """Roll back one snapshot with a throwaway coordinator."""
    return RollbackCoordinator(db, debug=debug).rollback(snapshot_id, operator_id)
