"""
History service: the operator-facing view of the import ledger.

Lists snapshots without their reverse payloads and turns rollback outcomes
into the response bodies the calling UI understands. Transport details
(HTTP status codes, headers) live in catalogkit.history.api.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from ..config import Settings
from ..ledger.client import LedgerClient
from ..ledger.models import ImportSnapshot, ImportSummary
from ..rollback.coordinator import RollbackCoordinator
from ..rollback.errors import (
    AlreadyRolledBackError,
    NotFoundError,
    RollbackConflictError,
    RollbackError,
    RollbackFailedError,
    SequentialRollbackError,
)

logger = logging.getLogger(__name__)

# HTTP status for each rollback outcome
ERROR_STATUS_CODES = {
    NotFoundError.error_code: 404,
    AlreadyRolledBackError.error_code: 409,
    SequentialRollbackError.error_code: 409,
    RollbackConflictError.error_code: 409,
    RollbackFailedError.error_code: 500,
}


@dataclass(frozen=True)
class SnapshotSummary:
    """One history row as shown to operators. Never carries the reverse payload."""
    id: UUID
    created_at: datetime
    file_name: str
    rows_imported: int
    import_summary: ImportSummary
    imported_by: Optional[str]
    status: str
    rolled_back_at: Optional[datetime] = None
    rolled_back_by: Optional[str] = None
    file_size_bytes: Optional[int] = None

    @classmethod
    def from_snapshot(cls, snapshot: ImportSnapshot) -> "SnapshotSummary":
        return cls(
            id=snapshot.id,
            created_at=snapshot.created_at,
            file_name=snapshot.file_name,
            rows_imported=snapshot.rows_imported,
            import_summary=snapshot.import_summary,
            imported_by=snapshot.imported_by,
            status=snapshot.status.value,
            rolled_back_at=snapshot.rolled_back_at,
            rolled_back_by=snapshot.rolled_back_by,
            file_size_bytes=snapshot.file_size_bytes,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "created_at": self.created_at.isoformat(),
            "file_name": self.file_name,
            "rows_imported": self.rows_imported,
            "import_summary": self.import_summary.to_dict(),
            "imported_by": self.imported_by,
            "status": self.status,
            "rolled_back_at": self.rolled_back_at.isoformat() if self.rolled_back_at else None,
            "rolled_back_by": self.rolled_back_by,
            "file_size_bytes": self.file_size_bytes,
        }


class HistoryService:
    """
    List import snapshots and request rollbacks.

    Args:
        db: Ledger client (one session; the service opens its own transactions)
        settings: Settings for listing limits (defaults apply if None)
        origin_aware: Forwarded to the Rollback Coordinator
        debug: Enable debug logging
    """

    def __init__(
        self,
        db: LedgerClient,
        settings: Optional[Settings] = None,
        origin_aware: bool = False,
        debug: bool = False
    ):
        self.db = db
        self.settings = settings or Settings()
        self.coordinator = RollbackCoordinator(db, origin_aware=origin_aware, debug=debug)
        self.debug = debug

    def list_snapshots(self, limit: Optional[int] = None) -> List[SnapshotSummary]:
        """
        Newest snapshots first.

        Args:
            limit: Maximum rows; None or <= 0 means the configured default,
                   values above the configured maximum are capped

        Returns:
            SnapshotSummary list ordered by (created_at, sequence) descending
        """
        effective = self.settings.clamp_history_limit(limit)
        snapshots = self.db.list_snapshots(limit=effective)

        if self.debug:
            logger.info(f"Listed {len(snapshots)} import snapshot(s) (limit {effective})")

        return [SnapshotSummary.from_snapshot(snapshot) for snapshot in snapshots]

    def request_rollback(self, snapshot_id: UUID, operator_id: str) -> Dict[str, Any]:
        """
        Roll back one import and describe the outcome.

        Returns:
            {success: True, importId, restoredCounts, executionTimeMs} on
            success, otherwise the error's to_dict() body
        """
        start = time.monotonic()
        try:
            counts = self.coordinator.rollback(snapshot_id, operator_id)
        except RollbackError as e:
            return e.to_dict()

        return {
            "success": True,
            "importId": str(snapshot_id),
            "restoredCounts": counts.to_dict(),
            "executionTimeMs": int((time.monotonic() - start) * 1000),
        }


def status_code_for(body: Dict[str, Any]) -> int:
    """HTTP status for a request_rollback() response body."""
    if body.get("success"):
        return 200
    return ERROR_STATUS_CODES.get(body.get("error"), 500)


def rollback_response(
    service: HistoryService,
    snapshot_id: UUID,
    operator_id: str
) -> Tuple[int, Dict[str, Any]]:
    """request_rollback() paired with its HTTP status."""
    body = service.request_rollback(snapshot_id, operator_id)
    return status_code_for(body), body
