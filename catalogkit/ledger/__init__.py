"""Import ledger: snapshot data model and store clients."""

from .models import (
    CatalogRow,
    EntityKey,
    ImportContext,
    ImportSnapshot,
    ImportSummary,
    InvalidStatusTransition,
    RestoredCounts,
    ReversePayload,
    RowMutation,
    SnapshotStatus,
    data_checksum,
    same_data,
)
from .client import LedgerClient
from .memory_client import MemoryClient, MemoryDatabase

# NOTE: SupabaseClient is NOT re-exported here so that importing the ledger
# model does not require psycopg2. Import it from the module instead:
#   from catalogkit.ledger.supabase_client import SupabaseClient

__all__ = [
    "CatalogRow",
    "EntityKey",
    "ImportContext",
    "ImportSnapshot",
    "ImportSummary",
    "InvalidStatusTransition",
    "RestoredCounts",
    "ReversePayload",
    "RowMutation",
    "SnapshotStatus",
    "data_checksum",
    "same_data",
    "LedgerClient",
    "MemoryClient",
    "MemoryDatabase",
]
