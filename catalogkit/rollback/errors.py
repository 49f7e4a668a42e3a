"""
Error taxonomy for snapshot capture and rollback.

Every rollback failure maps to exactly one of these types so the calling UI
can show a distinct, actionable message:

- NotFoundError: unknown snapshot id
- AlreadyRolledBackError: nothing to do, refresh the list
- SequentialRollbackError: roll back the newer import first
- RollbackConflictError: manual edits would be lost, a human must decide
- RollbackFailedError: store/transport failure, safe to retry as-is
"""

from typing import Any, Dict, List, Optional
from uuid import UUID


class RollbackError(Exception):
    """Base class for errors surfaced by the History API."""

    error_code = "RollbackError"
    retryable = False

    def to_dict(self) -> Dict[str, Any]:
        """Response body fragment for the History API."""
        return {
            "success": False,
            "error": self.error_code,
            "message": str(self),
        }


class NotFoundError(RollbackError):
    error_code = "NotFoundError"

    def __init__(self, snapshot_id: UUID):
        super().__init__(f"Import {snapshot_id} not found")
        self.snapshot_id = snapshot_id


class AlreadyRolledBackError(RollbackError):
    """The target was already reversed; a no-op from the caller's perspective."""

    error_code = "AlreadyRolledBackError"

    def __init__(self, snapshot_id: UUID):
        super().__init__(f"Import {snapshot_id} has already been rolled back")
        self.snapshot_id = snapshot_id


class SequentialRollbackError(RollbackError):
    """Only the newest active import may be rolled back."""

    error_code = "SequentialRollbackError"

    def __init__(self, newest_id: Optional[UUID], requested_id: UUID):
        super().__init__(
            "Sequential rollback enforced. Must rollback newest import first."
        )
        self.newest_id = newest_id
        self.requested_id = requested_id

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["newestImportId"] = str(self.newest_id) if self.newest_id else None
        body["requestedImportId"] = str(self.requested_id)
        return body


class RollbackConflictError(RollbackError):
    """
    Rows referenced by the import were edited after it ran.

    There is no force path: overriding would silently discard those edits.
    """

    error_code = "RollbackConflictError"

    def __init__(self, conflicting_ids: List[str], conflicts: Optional[List[Any]] = None):
        self.conflict_count = len(conflicting_ids)
        self.conflicting_ids = conflicting_ids
        self.conflicts = conflicts or []
        super().__init__(
            f"Cannot rollback: {self.conflict_count} record(s) were manually edited "
            f"after this import. Rollback would cause data loss."
        )

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["conflictCount"] = self.conflict_count
        body["conflictingIds"] = list(self.conflicting_ids)
        return body


class RollbackFailedError(RollbackError):
    """The rollback transaction failed and was rolled back. Safe to retry."""

    error_code = "RollbackFailedError"
    retryable = True

    def __init__(self, snapshot_id: UUID, reason: str):
        # reason is for logs only; driver text never reaches the response body
        super().__init__(
            f"Rollback of import {snapshot_id} failed. No changes were applied; "
            f"it is safe to retry."
        )
        self.snapshot_id = snapshot_id
        self.reason = reason


class SnapshotCaptureError(Exception):
    """
    The recorder could not capture a complete reverse payload.

    Fatal to the enclosing import transaction: a partial snapshot could not be
    rolled back safely later.
    """
