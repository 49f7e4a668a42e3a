from .ledger import ImportContext, ImportSnapshot, MemoryClient, MemoryDatabase, RowMutation, EntityKey, RestoredCounts
from .rollback import RollbackCoordinator, capture_snapshot, run_import, find_conflicts, rollback_import
from .history import HistoryService, export_history
from .config import Settings, load_settings

__all__ = [
    "ImportContext", "ImportSnapshot", "MemoryClient", "MemoryDatabase", "RowMutation", "EntityKey", "RestoredCounts",
    "RollbackCoordinator", "capture_snapshot", "run_import", "find_conflicts", "rollback_import",
    "HistoryService", "export_history", "Settings", "load_settings",
]
