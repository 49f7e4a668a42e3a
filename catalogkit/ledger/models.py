"""
Data model for the catalog import ledger.

An import snapshot records everything needed to reverse one bulk catalog
import:
- added: rows the import created (and the data it inserted)
- updated_before: full pre-import copies of rows the import modified
- deleted_rows: full copies of rows the import removed

Key principles:
- Snapshots are append-only and totally ordered by (created_at, sequence)
- The reverse payload is immutable once written
- Status moves active -> rolled_back exactly once, never back
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from ..schema import (
    ENTITY_TYPES,
    RESTORED_COUNT_KEYS,
    STATUS_ACTIVE,
    STATUS_ROLLED_BACK,
    table_for,
)


class InvalidStatusTransition(ValueError):
    """Raised when a snapshot status change is not active -> rolled_back."""


class SnapshotStatus(Enum):
    """
    Two-state snapshot lifecycle.

    The only legal transition is ACTIVE -> ROLLED_BACK. Stores implement it as
    a compare-and-swap on the status column; this enum is the in-process guard.
    """
    ACTIVE = STATUS_ACTIVE
    ROLLED_BACK = STATUS_ROLLED_BACK

    def transition_to(self, target: "SnapshotStatus") -> "SnapshotStatus":
        """
        Validate a status transition and return the new status.

        Raises:
            InvalidStatusTransition: For anything other than ACTIVE -> ROLLED_BACK
        """
        if self is SnapshotStatus.ACTIVE and target is SnapshotStatus.ROLLED_BACK:
            return target
        raise InvalidStatusTransition(
            f"Illegal snapshot status transition: {self.value} -> {target.value}"
        )


@dataclass(frozen=True)
class EntityKey:
    """Identity of one catalog row: (entity_type, id)."""
    entity_type: str
    id: UUID

    def __post_init__(self):
        # Validates the entity type
        table_for(self.entity_type)
        if not isinstance(self.id, UUID):
            object.__setattr__(self, "id", UUID(str(self.id)))

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.id}"


@dataclass(frozen=True)
class CatalogRow:
    """
    A catalog row as persisted in the Entity Store.

    updated_at is bumped by every write path (import or manual edit);
    updated_by records which path wrote last ("import" or "manual").
    """
    entity_type: str
    id: UUID
    data: Dict[str, Any]
    updated_at: datetime
    updated_by: Optional[str] = None

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.entity_type, self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "id": str(self.id),
            "data": self.data,
            "updated_at": self.updated_at.isoformat(),
            "updated_by": self.updated_by,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CatalogRow":
        updated_at = raw["updated_at"]
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return cls(
            entity_type=raw["entity_type"],
            id=UUID(str(raw["id"])),
            data=raw.get("data") or {},
            updated_at=updated_at,
            updated_by=raw.get("updated_by"),
        )


def data_checksum(data: Dict[str, Any]) -> str:
    """
    Compute a deterministic checksum of a row's data payload.

    Keys are sorted so checksums are stable regardless of insertion order
    or the JSONB round-trip.

    Returns:
        SHA256 hex digest
    """
    json_str = json.dumps(data or {}, sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode("utf-8")).hexdigest()


def same_data(a: Optional[Dict[str, Any]], b: Optional[Dict[str, Any]]) -> bool:
    """Return True if two data payloads are identical after canonicalization."""
    return data_checksum(a or {}) == data_checksum(b or {})


@dataclass(frozen=True)
class RowMutation:
    """One row written by an import: an add or an update with its new data."""
    entity_type: str
    id: UUID
    data: Dict[str, Any]

    def __post_init__(self):
        table_for(self.entity_type)
        if not isinstance(self.id, UUID):
            object.__setattr__(self, "id", UUID(str(self.id)))

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.entity_type, self.id)


@dataclass
class ImportContext:
    """
    Everything the import pipeline hands to the Snapshot Recorder.

    The pipeline computes the mutations; the recorder captures the state
    needed to undo them and (via apply_import) writes them.
    """
    file_name: str
    imported_by: Optional[str] = None
    adds: List[RowMutation] = field(default_factory=list)
    updates: List[RowMutation] = field(default_factory=list)
    deletes: List[EntityKey] = field(default_factory=list)
    rows_imported: Optional[int] = None
    file_size_bytes: Optional[int] = None

    def total_mutations(self) -> int:
        return len(self.adds) + len(self.updates) + len(self.deletes)


@dataclass(frozen=True)
class ImportSummary:
    """Counts only; the reversible data lives in ReversePayload."""
    adds: int = 0
    updates: int = 0
    deletes: int = 0

    @property
    def total(self) -> int:
        return self.adds + self.updates + self.deletes

    def to_dict(self) -> Dict[str, int]:
        return {"adds": self.adds, "updates": self.updates, "deletes": self.deletes}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "ImportSummary":
        raw = raw or {}
        return cls(
            adds=int(raw.get("adds", 0)),
            updates=int(raw.get("updates", 0)),
            deletes=int(raw.get("deletes", 0)),
        )


@dataclass(frozen=True)
class ReversePayload:
    """
    What is needed to undo one import.

    added maps each created key to the data the import inserted, so the
    Conflict Detector can tell whether an added row was edited afterwards.
    """
    added: Dict[EntityKey, Dict[str, Any]] = field(default_factory=dict)
    updated_before: Dict[EntityKey, CatalogRow] = field(default_factory=dict)
    deleted_rows: Dict[EntityKey, CatalogRow] = field(default_factory=dict)

    @property
    def added_ids(self) -> List[EntityKey]:
        return list(self.added.keys())

    def referenced_keys(self) -> List[EntityKey]:
        """All keys touched by the import: added ∪ updated ∪ deleted."""
        seen = {}
        for key in list(self.added) + list(self.updated_before) + list(self.deleted_rows):
            seen.setdefault(key, None)
        return list(seen)

    def summary(self) -> ImportSummary:
        return ImportSummary(
            adds=len(self.added),
            updates=len(self.updated_before),
            deletes=len(self.deleted_rows),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": [
                {"entity_type": key.entity_type, "id": str(key.id), "data": data}
                for key, data in self.added.items()
            ],
            "updated_before": [row.to_dict() for row in self.updated_before.values()],
            "deleted_rows": [row.to_dict() for row in self.deleted_rows.values()],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ReversePayload":
        added = {}
        for item in raw.get("added") or []:
            added[EntityKey(item["entity_type"], UUID(str(item["id"])))] = item.get("data") or {}

        updated_before = {}
        for item in raw.get("updated_before") or []:
            row = CatalogRow.from_dict(item)
            updated_before[row.key] = row

        deleted_rows = {}
        for item in raw.get("deleted_rows") or []:
            row = CatalogRow.from_dict(item)
            deleted_rows[row.key] = row

        return cls(added=added, updated_before=updated_before, deleted_rows=deleted_rows)


@dataclass(frozen=True)
class ImportSnapshot:
    """
    One entry in the import ledger.

    reverse_payload is None when the snapshot was loaded for listing only;
    the History API never exposes it.
    """
    id: UUID
    created_at: datetime
    file_name: str
    imported_by: Optional[str]
    rows_imported: int
    import_summary: ImportSummary
    reverse_payload: Optional[ReversePayload]
    status: SnapshotStatus = SnapshotStatus.ACTIVE
    rolled_back_at: Optional[datetime] = None
    rolled_back_by: Optional[str] = None
    file_size_bytes: Optional[int] = None
    sequence: int = 0

    @property
    def is_active(self) -> bool:
        return self.status is SnapshotStatus.ACTIVE


@dataclass(frozen=True)
class RestoredCounts:
    """Rows restored per entity type, for operator-facing confirmation."""
    parts: int = 0
    vehicle_applications: int = 0
    cross_references: int = 0

    @property
    def total(self) -> int:
        return self.parts + self.vehicle_applications + self.cross_references

    @classmethod
    def from_payload(cls, payload: ReversePayload) -> "RestoredCounts":
        counts = {entity_type: 0 for entity_type in ENTITY_TYPES}
        for key in payload.added:
            counts[key.entity_type] += 1
        for key in payload.updated_before:
            counts[key.entity_type] += 1
        for key in payload.deleted_rows:
            counts[key.entity_type] += 1
        return cls(
            parts=counts["part"],
            vehicle_applications=counts["vehicle_application"],
            cross_references=counts["cross_reference"],
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            RESTORED_COUNT_KEYS["part"]: self.parts,
            RESTORED_COUNT_KEYS["vehicle_application"]: self.vehicle_applications,
            RESTORED_COUNT_KEYS["cross_reference"]: self.cross_references,
        }
