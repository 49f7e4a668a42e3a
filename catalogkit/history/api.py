"""
Import History API Endpoints

Provides REST API for:
- Listing import snapshots (newest first, no reverse payloads)
- Requesting the rollback of one import

The operator identity travels in the X-Operator-Id header. Authentication
itself happens upstream; this layer only refuses requests without one.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import Settings, configure_logging, load_settings
from ..ledger.client import LedgerClient
from .service import HistoryService, rollback_response

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], LedgerClient]

router = APIRouter(prefix="/import-history", tags=["Import History"])


# ═══════════════════════════════════════════════════════════════════════════════
# RESPONSE MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class ImportSummaryResponse(BaseModel):
    """Mutation counts of one import."""
    adds: int
    updates: int
    deletes: int


class SnapshotResponse(BaseModel):
    """One history row."""
    id: UUID
    created_at: datetime
    file_name: str
    rows_imported: int
    import_summary: ImportSummaryResponse
    imported_by: Optional[str]
    status: str = Field(..., description="active or rolled_back")
    rolled_back_at: Optional[datetime]
    rolled_back_by: Optional[str]
    file_size_bytes: Optional[int]


class HistoryListResponse(BaseModel):
    """History listing."""
    data: List[SnapshotResponse]
    count: int


# ═══════════════════════════════════════════════════════════════════════════════
# DEPENDENCIES
# ═══════════════════════════════════════════════════════════════════════════════

def get_history_service(request: Request) -> Iterator[HistoryService]:
    """
    One ledger client per request, closed when the request ends.
    """
    state = request.app.state
    db = state.client_factory()
    try:
        yield HistoryService(db, settings=state.settings)
    finally:
        db.close()


# ═══════════════════════════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("", response_model=HistoryListResponse)
def list_import_history(
    limit: Optional[int] = Query(None, description="Maximum rows (default 10, capped at 100)"),
    service: HistoryService = Depends(get_history_service)
):
    """List import snapshots, newest first."""
    summaries = service.list_snapshots(limit=limit)

    return HistoryListResponse(
        data=[
            SnapshotResponse(
                id=s.id,
                created_at=s.created_at,
                file_name=s.file_name,
                rows_imported=s.rows_imported,
                import_summary=ImportSummaryResponse(**s.import_summary.to_dict()),
                imported_by=s.imported_by,
                status=s.status,
                rolled_back_at=s.rolled_back_at,
                rolled_back_by=s.rolled_back_by,
                file_size_bytes=s.file_size_bytes,
            )
            for s in summaries
        ],
        count=len(summaries),
    )


@router.post("/{snapshot_id}/rollback")
def rollback_import_snapshot(
    snapshot_id: UUID,
    x_operator_id: Optional[str] = Header(None, alias="X-Operator-Id"),
    service: HistoryService = Depends(get_history_service)
):
    """
    Roll back one import.

    Only the newest active import may be rolled back, and only if none of
    its rows were edited since. Responses:
    - 200: rolled back, restoredCounts per entity type
    - 401: no operator identity
    - 404: unknown import
    - 409: not the newest, already rolled back, or conflicting edits
    - 500: store failure, nothing changed, safe to retry
    """
    operator_id = (x_operator_id or "").strip()
    if not operator_id:
        raise HTTPException(status_code=401, detail="X-Operator-Id header is required")

    status_code, body = rollback_response(service, snapshot_id, operator_id)
    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════════
# APP FACTORY
# ═══════════════════════════════════════════════════════════════════════════════

def _postgres_client_factory(settings: Settings) -> ClientFactory:
    """
    Per-request SupabaseClient sessions sharing one lazily created pool.

    Sync endpoints run in the server threadpool, so the shared pool must be
    a ThreadedConnectionPool.
    """
    from psycopg2 import pool as pg_pool

    from ..ledger.supabase_client import SupabaseClient

    if not settings.db_url:
        raise ValueError(
            "No database configured. Set SUPABASE_DB_URL or the SUPABASE_DB_* variables."
        )

    shared: Dict[str, "pg_pool.ThreadedConnectionPool"] = {}
    lock = threading.Lock()

    def factory() -> LedgerClient:
        with lock:
            if "pool" not in shared:
                shared["pool"] = pg_pool.ThreadedConnectionPool(
                    settings.pool_min,
                    settings.pool_max,
                    dsn=settings.db_url
                )
        return SupabaseClient(pool=shared["pool"], settings=settings)

    return factory


def create_app(
    client_factory: Optional[ClientFactory] = None,
    settings: Optional[Settings] = None
) -> FastAPI:
    """
    Build the History API application.

    Args:
        client_factory: Returns a fresh LedgerClient per request. Defaults to
                        Supabase Postgres sessions from settings.
        settings: Settings; loaded from the environment if None

    Returns:
        FastAPI app with the /import-history routes
    """
    if settings is None:
        settings = load_settings()
        configure_logging(settings)

    if client_factory is None:
        client_factory = _postgres_client_factory(settings)

    app = FastAPI(title="catalogkit Import History")
    app.state.settings = settings
    app.state.client_factory = client_factory
    app.include_router(router)

    logger.info("Import History API ready")
    return app
