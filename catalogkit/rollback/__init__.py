"""Snapshot capture, conflict detection and LIFO rollback of catalog imports."""

from .errors import (
    AlreadyRolledBackError,
    NotFoundError,
    RollbackConflictError,
    RollbackError,
    RollbackFailedError,
    SequentialRollbackError,
    SnapshotCaptureError,
)
from .recorder import apply_import, capture_snapshot, run_import
from .conflicts import (
    ADDED_ROW_EDITED,
    DELETED_ROW_RECREATED,
    UPDATED_ROW_EDITED,
    Conflict,
    conflicting_ids,
    find_conflicts,
)
from .coordinator import RollbackCoordinator, rollback_import

__all__ = [
    "AlreadyRolledBackError",
    "NotFoundError",
    "RollbackConflictError",
    "RollbackError",
    "RollbackFailedError",
    "SequentialRollbackError",
    "SnapshotCaptureError",
    "apply_import",
    "capture_snapshot",
    "run_import",
    "ADDED_ROW_EDITED",
    "DELETED_ROW_RECREATED",
    "UPDATED_ROW_EDITED",
    "Conflict",
    "conflicting_ids",
    "find_conflicts",
    "RollbackCoordinator",
    "rollback_import",
]
