"""
Conflict Detector: finds edits made after an import that a rollback would lose.

The rule is a timestamp heuristic. Any write bumps updated_at regardless of
its source, so "edited after the import" means

    current.updated_at > snapshot.created_at

A conflict exists only when, in addition, the row's current data differs
from what the rollback would write (or, for added rows, from what the import
inserted). A restore that would be a no-op is never a conflict, which keeps
retries idempotent.

Optionally the updated_by origin tag narrows the check to manual edits
(origin_aware=True). The timestamp rule stays the default because nothing
guarantees every write path sets the tag.

This module performs no writes.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from ..ledger.client import LedgerClient
from ..ledger.models import CatalogRow, EntityKey, ImportSnapshot, same_data
from ..schema import ENTITY_TYPES, ORIGIN_IMPORT

logger = logging.getLogger(__name__)

ADDED_ROW_EDITED = "added_row_edited"
UPDATED_ROW_EDITED = "updated_row_edited"
DELETED_ROW_RECREATED = "deleted_row_recreated"


@dataclass(frozen=True)
class Conflict:
    """A row whose post-import edits would be destroyed by the rollback."""
    key: EntityKey
    kind: str
    updated_at: datetime
    updated_by: Optional[str]

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "entityType": self.key.entity_type,
            "id": str(self.key.id),
            "kind": self.kind,
            "modifiedAt": self.updated_at.isoformat(),
            "modifiedBy": self.updated_by,
        }


def _load_current_rows(
    db: LedgerClient,
    keys: List[EntityKey]
) -> Dict[EntityKey, CatalogRow]:
    grouped = defaultdict(list)
    for key in keys:
        grouped[key.entity_type].append(key.id)

    current = {}
    for entity_type in ENTITY_TYPES:
        ids = grouped.get(entity_type)
        if not ids:
            continue
        for row in db.get_rows(entity_type, ids).values():
            current[row.key] = row
    return current


def _edited_after(
    row: CatalogRow,
    snapshot: ImportSnapshot,
    origin_aware: bool
) -> bool:
    if row.updated_at <= snapshot.created_at:
        return False
    if origin_aware and row.updated_by == ORIGIN_IMPORT:
        return False
    return True


def find_conflicts(
    db: LedgerClient,
    snapshot: ImportSnapshot,
    origin_aware: bool = False,
    debug: bool = False
) -> List[Conflict]:
    """
    Scan every row referenced by a snapshot for post-import edits.

    Referenced rows are added ∪ updated_before ∪ deleted_rows. For each one
    that still exists (or exists again):
    - added: conflict if edited after the import and its data differs from
      what the import inserted (deleting it would destroy the enrichment)
    - updated: conflict if edited after the import and its data differs
      from the pre-import copy the rollback would restore
    - deleted: conflict if re-created after the import with data that
      differs from the copy the rollback would reinsert

    Args:
        db: Ledger client with an open transaction
        snapshot: Snapshot loaded with its reverse payload
        origin_aware: Ignore rows whose last write was tagged "import"
        debug: Enable debug logging

    Returns:
        Conflicts in entity-type order, empty if the rollback is safe
    """
    payload = snapshot.reverse_payload
    if payload is None:
        raise ValueError(f"Snapshot {snapshot.id} was loaded without its reverse payload")

    current = _load_current_rows(db, payload.referenced_keys())
    conflicts = []

    for key, inserted_data in payload.added.items():
        row = current.get(key)
        if row is None:
            # Already gone; deleting it is a no-op
            continue
        if _edited_after(row, snapshot, origin_aware) and not same_data(row.data, inserted_data):
            conflicts.append(Conflict(key, ADDED_ROW_EDITED, row.updated_at, row.updated_by))

    for key, before_row in payload.updated_before.items():
        row = current.get(key)
        if row is None:
            # Deleted after the import: the restore would re-create it.
            # Nothing of the later state would be lost.
            continue
        if _edited_after(row, snapshot, origin_aware) and not same_data(row.data, before_row.data):
            conflicts.append(Conflict(key, UPDATED_ROW_EDITED, row.updated_at, row.updated_by))

    for key, deleted_row in payload.deleted_rows.items():
        row = current.get(key)
        if row is None:
            continue
        if _edited_after(row, snapshot, origin_aware) and not same_data(row.data, deleted_row.data):
            conflicts.append(Conflict(key, DELETED_ROW_RECREATED, row.updated_at, row.updated_by))

    if debug:
        logger.info(
            f"Conflict scan for snapshot {snapshot.id}: "
            f"{len(current)} referenced rows present, {len(conflicts)} conflict(s)"
        )

    return conflicts


def conflicting_ids(conflicts: List[Conflict]) -> List[str]:
    """Flatten conflicts to the string ids shown to the operator."""
    return [str(conflict.key.id) for conflict in conflicts]
