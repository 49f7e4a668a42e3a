"""Import History: listing, rollback requests, HTTP boundary and audit export."""

from .service import (
    ERROR_STATUS_CODES,
    HistoryService,
    SnapshotSummary,
    rollback_response,
    status_code_for,
)
from .export import export_history

# NOTE: the FastAPI app is NOT re-exported here; import it from
# catalogkit.history.api so the service layer does not require FastAPI.

__all__ = [
    "ERROR_STATUS_CODES",
    "HistoryService",
    "SnapshotSummary",
    "rollback_response",
    "status_code_for",
    "export_history",
]
