"""
In-memory ledger client.

Implements LedgerClient over plain dictionaries for tests and local
development. A MemoryDatabase is the shared store; each MemoryClient is one
session on it.

Transactions are fully serialized: begin_transaction() takes the database
mutex and works on a private copy of the state, commit_transaction() swaps
the copy in, rollback_transaction() discards it. This gives the same
all-or-nothing and ledger-lock guarantees the Postgres client gets from
real transactions, within a single process only.
"""

import copy
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from ..schema import ENTITY_TYPES, table_for
from .client import LedgerClient
from .models import (
    CatalogRow,
    ImportSnapshot,
    ImportSummary,
    ReversePayload,
    SnapshotStatus,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryDatabase:
    """
    Shared in-memory state: catalog tables plus the import ledger.

    Args:
        clock: Callable returning the current time. Transaction timestamps
               are forced to be strictly increasing even if the clock is not.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utc_now
        self.tables: Dict[str, Dict[UUID, CatalogRow]] = {
            entity_type: {} for entity_type in ENTITY_TYPES
        }
        self.snapshots: Dict[UUID, ImportSnapshot] = {}
        self.next_sequence = 1
        self.mutex = threading.Lock()
        self._last_timestamp: Optional[datetime] = None

    def next_timestamp(self) -> datetime:
        now = self.clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def session(self, **kwargs) -> "MemoryClient":
        """Open a new client session on this database."""
        return MemoryClient(self, **kwargs)

    def all_rows(self) -> Dict[str, Dict[UUID, CatalogRow]]:
        """Copy of every committed catalog row, keyed by entity type then id."""
        return {entity_type: dict(rows) for entity_type, rows in self.tables.items()}

    def seed_rows(self, rows: List[CatalogRow]) -> None:
        """Load committed rows directly, bypassing transactions (test setup only)."""
        with self.mutex:
            tables = copy.deepcopy(self.tables)
            for row in rows:
                table_for(row.entity_type)
                tables[row.entity_type][row.id] = row
            self.tables = tables


class MemoryClient(LedgerClient):
    """
    One session on a MemoryDatabase.

    Args:
        database: Shared MemoryDatabase
        failure_hook: Called with the operation name before every write;
                      raise from it to simulate a store failure mid-transaction.
    """

    def __init__(
        self,
        database: MemoryDatabase,
        failure_hook: Optional[Callable[[str], None]] = None
    ):
        self.database = database
        self.failure_hook = failure_hook
        self._tables: Optional[Dict[str, Dict[UUID, CatalogRow]]] = None
        self._snapshots: Optional[Dict[UUID, ImportSnapshot]] = None
        self._next_sequence = 0
        self._timestamp: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin_transaction(self) -> None:
        if self._tables is not None:
            raise RuntimeError("Transaction already in progress")

        self.database.mutex.acquire()
        self._tables = copy.deepcopy(self.database.tables)
        self._snapshots = dict(self.database.snapshots)
        self._next_sequence = self.database.next_sequence
        self._timestamp = self.database.next_timestamp()

    def commit_transaction(self) -> None:
        self._require_transaction()
        try:
            self.database.tables = self._tables
            self.database.snapshots = self._snapshots
            self.database.next_sequence = self._next_sequence
        finally:
            self._end_transaction()

    def rollback_transaction(self) -> None:
        self._require_transaction()
        self._end_transaction()

    def in_transaction(self) -> bool:
        return self._tables is not None

    def _end_transaction(self) -> None:
        self._tables = None
        self._snapshots = None
        self._timestamp = None
        self.database.mutex.release()

    def _require_transaction(self) -> None:
        if self._tables is None:
            raise RuntimeError("No transaction in progress. Call begin_transaction() first.")

    def _before_write(self, operation: str) -> None:
        self._require_transaction()
        if self.failure_hook is not None:
            self.failure_hook(operation)

    def acquire_ledger_lock(self) -> None:
        # The database mutex taken in begin_transaction already serializes
        # every transaction, ledger included.
        self._require_transaction()

    def transaction_timestamp(self) -> datetime:
        self._require_transaction()
        return self._timestamp

    # ------------------------------------------------------------------
    # Entity Store
    # ------------------------------------------------------------------

    def get_rows(
        self,
        entity_type: str,
        row_ids: List[UUID],
        for_update: bool = False
    ) -> Dict[UUID, CatalogRow]:
        self._require_transaction()
        table_for(entity_type)
        table = self._tables[entity_type]
        return {row_id: table[row_id] for row_id in row_ids if row_id in table}

    def insert_row(
        self,
        entity_type: str,
        row_id: UUID,
        data: Dict[str, Any],
        updated_by: str
    ) -> None:
        self._before_write("insert_row")
        table = self._tables[entity_type]
        if row_id in table:
            raise ValueError(f"Duplicate key: {entity_type}:{row_id} already exists")
        table[row_id] = CatalogRow(
            entity_type=entity_type,
            id=row_id,
            data=copy.deepcopy(data),
            updated_at=self._timestamp,
            updated_by=updated_by,
        )

    def update_row(
        self,
        entity_type: str,
        row_id: UUID,
        data: Dict[str, Any],
        updated_by: str
    ) -> bool:
        self._before_write("update_row")
        table = self._tables[entity_type]
        if row_id not in table:
            return False
        table[row_id] = CatalogRow(
            entity_type=entity_type,
            id=row_id,
            data=copy.deepcopy(data),
            updated_at=self._timestamp,
            updated_by=updated_by,
        )
        return True

    def restore_row(self, row: CatalogRow) -> None:
        self._before_write("restore_row")
        self._tables[row.entity_type][row.id] = copy.deepcopy(row)

    def delete_row(self, entity_type: str, row_id: UUID) -> bool:
        self._before_write("delete_row")
        return self._tables[entity_type].pop(row_id, None) is not None

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def insert_snapshot(
        self,
        snapshot_id: UUID,
        file_name: str,
        imported_by: Optional[str],
        rows_imported: int,
        import_summary: ImportSummary,
        reverse_payload: ReversePayload,
        file_size_bytes: Optional[int] = None
    ) -> ImportSnapshot:
        self._before_write("insert_snapshot")
        if snapshot_id in self._snapshots:
            raise ValueError(f"Snapshot id {snapshot_id} already exists")

        # Stored serialized, the way a JSONB column would hold it
        stored_payload = ReversePayload.from_dict(copy.deepcopy(reverse_payload.to_dict()))
        snapshot = ImportSnapshot(
            id=snapshot_id,
            created_at=self._timestamp,
            file_name=file_name,
            imported_by=imported_by,
            rows_imported=rows_imported,
            import_summary=import_summary,
            reverse_payload=stored_payload,
            status=SnapshotStatus.ACTIVE,
            file_size_bytes=file_size_bytes,
            sequence=self._next_sequence,
        )
        self._next_sequence += 1
        self._snapshots[snapshot_id] = snapshot
        # Callers get their own copy; the ledger row only changes via mark_rolled_back
        return copy.deepcopy(snapshot)

    def get_snapshot(
        self,
        snapshot_id: UUID,
        for_update: bool = False
    ) -> Optional[ImportSnapshot]:
        self._require_transaction()
        snapshot = self._snapshots.get(snapshot_id)
        return copy.deepcopy(snapshot) if snapshot is not None else None

    def get_newest_active_snapshot_id(self) -> Optional[UUID]:
        self._require_transaction()
        active = [s for s in self._snapshots.values() if s.is_active]
        if not active:
            return None
        return max(active, key=lambda s: (s.created_at, s.sequence)).id

    def get_latest_snapshot_created_at(self) -> Optional[datetime]:
        self._require_transaction()
        if not self._snapshots:
            return None
        return max(s.created_at for s in self._snapshots.values())

    def mark_rolled_back(
        self,
        snapshot_id: UUID,
        operator_id: str
    ) -> Optional[datetime]:
        self._before_write("mark_rolled_back")
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None or not snapshot.is_active:
            return None

        self._snapshots[snapshot_id] = replace(
            snapshot,
            status=snapshot.status.transition_to(SnapshotStatus.ROLLED_BACK),
            rolled_back_at=self._timestamp,
            rolled_back_by=operator_id,
        )
        return self._timestamp

    def list_snapshots(self, limit: Optional[int] = None) -> List[ImportSnapshot]:
        """Committed snapshots newest first, reverse payloads stripped."""
        snapshots = sorted(
            self.database.snapshots.values(),
            key=lambda s: (s.created_at, s.sequence),
            reverse=True,
        )
        if limit is not None:
            snapshots = snapshots[:limit]
        return [replace(s, reverse_payload=None) for s in snapshots]

    def close(self) -> None:
        if self._tables is not None:
            self.rollback_transaction()
