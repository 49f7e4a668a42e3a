"""
Abstract ledger client interface.

One client instance represents one database session: it holds at most one
open transaction at a time and is not shared between concurrent requests.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from .models import CatalogRow, ImportSnapshot, ImportSummary, ReversePayload


class LedgerClient:
    """
    Abstract database client for the Entity Store and the import ledger.

    Implement this interface with your actual database client (e.g., psycopg2).
    Every read or write except list_snapshots() happens inside a transaction
    started with begin_transaction().
    """

    def begin_transaction(self) -> None:
        """Begin a database transaction."""
        raise NotImplementedError

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    def rollback_transaction(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError

    def in_transaction(self) -> bool:
        """Return True while a transaction is open on this client."""
        raise NotImplementedError

    def acquire_ledger_lock(self) -> None:
        """
        Serialize against every other capture or rollback on the ledger.

        The lock is held until the current transaction commits or rolls back.
        """
        raise NotImplementedError

    def transaction_timestamp(self) -> datetime:
        """
        Timestamp of the current transaction.

        Every write in the transaction stamps rows with this value, and a
        snapshot created in it gets this value as created_at.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Entity Store
    # ------------------------------------------------------------------

    def get_rows(
        self,
        entity_type: str,
        row_ids: List[UUID],
        for_update: bool = False
    ) -> Dict[UUID, CatalogRow]:
        """
        Fetch current rows by id.

        Args:
            entity_type: Entity type (part, vehicle_application, cross_reference)
            row_ids: Row ids to fetch
            for_update: Lock the fetched rows until the transaction ends

        Returns:
            Dictionary mapping id -> CatalogRow for the rows that exist
        """
        raise NotImplementedError

    def insert_row(
        self,
        entity_type: str,
        row_id: UUID,
        data: Dict[str, Any],
        updated_by: str
    ) -> None:
        """Insert a new row stamped with the transaction timestamp."""
        raise NotImplementedError

    def update_row(
        self,
        entity_type: str,
        row_id: UUID,
        data: Dict[str, Any],
        updated_by: str
    ) -> bool:
        """
        Overwrite a row's data and bump updated_at to the transaction timestamp.

        Returns:
            True if the row existed
        """
        raise NotImplementedError

    def restore_row(self, row: CatalogRow) -> None:
        """
        Write a row back exactly as captured (data, updated_at, updated_by).

        Inserts the row if it is missing, overwrites it otherwise.
        """
        raise NotImplementedError

    def delete_row(self, entity_type: str, row_id: UUID) -> bool:
        """
        Delete a row.

        Returns:
            True if a row was deleted
        """
        raise NotImplementedError

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
        """
        Append an active snapshot to the ledger.

        created_at and sequence are assigned by the store.

        Returns:
            The persisted snapshot
        """
        raise NotImplementedError

    def get_snapshot(
        self,
        snapshot_id: UUID,
        for_update: bool = False
    ) -> Optional[ImportSnapshot]:
        """Load a snapshot with its reverse payload, or None if unknown."""
        raise NotImplementedError

    def get_newest_active_snapshot_id(self) -> Optional[UUID]:
        """Id of the active snapshot with the greatest (created_at, sequence)."""
        raise NotImplementedError

    def get_latest_snapshot_created_at(self) -> Optional[datetime]:
        """created_at of the newest snapshot regardless of status."""
        raise NotImplementedError

    def mark_rolled_back(
        self,
        snapshot_id: UUID,
        operator_id: str
    ) -> Optional[datetime]:
        """
        Compare-and-swap the snapshot from active to rolled_back.

        Returns:
            rolled_back_at if this call performed the transition,
            None if the snapshot was not active
        """
        raise NotImplementedError

    def list_snapshots(self, limit: Optional[int] = None) -> List[ImportSnapshot]:
        """
        List snapshots newest first, without reverse payloads.

        Does NOT require a transaction.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release any held resources."""
