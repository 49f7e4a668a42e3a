"""
Pytest fixtures for the catalogkit test suite.

Every test runs against a fresh MemoryDatabase driven by a ticking fake
clock, so transaction timestamps are deterministic and strictly increasing.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import pytest

from catalogkit.ledger import CatalogRow, EntityKey, ImportContext, MemoryDatabase, RowMutation
from catalogkit.rollback import run_import
from catalogkit.schema import ORIGIN_MANUAL

# Rows seeded before the first import carry this timestamp
SEED_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TickingClock:
    """Fake clock: each call returns a time one second after the previous one."""

    def __init__(self, start: datetime = SEED_TIME + timedelta(days=1)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def database(clock):
    return MemoryDatabase(clock=clock)


@pytest.fixture
def db(database):
    """One session on the shared database, closed after the test."""
    client = database.session()
    yield client
    client.close()


# =============================================================================
# ROW HELPERS
# =============================================================================

@pytest.fixture
def seed(database):
    """
    Seed committed rows.

    Usage: part_id = seed("part", {"sku": "A-1"})
    """
    def _seed(
        entity_type: str,
        data: Dict[str, Any],
        row_id: Optional[UUID] = None,
        updated_at: datetime = SEED_TIME,
        updated_by: str = ORIGIN_MANUAL
    ) -> UUID:
        row_id = row_id or uuid4()
        database.seed_rows([
            CatalogRow(
                entity_type=entity_type,
                id=row_id,
                data=data,
                updated_at=updated_at,
                updated_by=updated_by,
            )
        ])
        return row_id

    return _seed


@pytest.fixture
def manual_edit(database):
    """
    Apply a manual edit in its own committed transaction.

    Usage: manual_edit("part", part_id, {"sku": "A-1", "price": 9})
    Passing data=None deletes the row instead.
    """
    def _edit(entity_type: str, row_id: UUID, data: Optional[Dict[str, Any]]) -> None:
        session = database.session()
        session.begin_transaction()
        if data is None:
            session.delete_row(entity_type, row_id)
        elif not session.update_row(entity_type, row_id, data, ORIGIN_MANUAL):
            session.insert_row(entity_type, row_id, data, ORIGIN_MANUAL)
        session.commit_transaction()

    return _edit


@pytest.fixture
def do_import(database):
    """
    Run one committed import and return its snapshot.

    Usage: snapshot = do_import(adds=[...], updates=[...], deletes=[...])
    """
    def _import(
        adds: List[RowMutation] = None,
        updates: List[RowMutation] = None,
        deletes: List[EntityKey] = None,
        file_name: str = "catalog.xlsx",
        imported_by: str = "importer@example.com"
    ):
        session = database.session()
        context = ImportContext(
            file_name=file_name,
            imported_by=imported_by,
            adds=adds or [],
            updates=updates or [],
            deletes=deletes or [],
        )
        return run_import(session, context)

    return _import


def current_data(database: MemoryDatabase, entity_type: str, row_id: UUID) -> Optional[Dict[str, Any]]:
    """Committed data of a row, or None if it does not exist."""
    row = database.tables[entity_type].get(row_id)
    return row.data if row else None


@pytest.fixture
def data_of(database):
    """Shortcut for current_data bound to the test database."""
    def _data(entity_type: str, row_id: UUID) -> Optional[Dict[str, Any]]:
        return current_data(database, entity_type, row_id)

    return _data
