#!/usr/bin/env python3
"""Example: import, inspect and roll back catalog imports with catalogkit.

Runs entirely in memory. Point create_app() at Postgres (SUPABASE_DB_URL)
to serve the same flow over HTTP.
"""

import logging
from uuid import uuid4

from catalogkit import HistoryService, ImportContext, MemoryDatabase, RowMutation, run_import
from catalogkit.ledger import CatalogRow, EntityKey
from catalogkit.ledger.memory_client import utc_now
from catalogkit.schema import ORIGIN_MANUAL


def seed_catalog(database: MemoryDatabase):
    """Load a tiny starting catalog: one part and its cross reference."""
    part_id, ref_id = uuid4(), uuid4()
    now = utc_now()
    database.seed_rows([
        CatalogRow("part", part_id, {"sku": "BRK-100", "price": 49.0}, now, ORIGIN_MANUAL),
        CatalogRow("cross_reference", ref_id, {"part": str(part_id), "oem": "OEM-9"}, now, ORIGIN_MANUAL),
    ])
    return part_id, ref_id


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    database = MemoryDatabase()
    part_id, ref_id = seed_catalog(database)

    # Import 1: reprice the part, add a vehicle application, drop the old cross reference
    first = run_import(database.session(), ImportContext(
        file_name="spring-pricing.xlsx",
        imported_by="ops@example.com",
        adds=[RowMutation("vehicle_application", uuid4(), {"part": str(part_id), "make": "Ford"})],
        updates=[RowMutation("part", part_id, {"sku": "BRK-100", "price": 52.5})],
        deletes=[EntityKey("cross_reference", ref_id)],
    ), debug=True)

    # Import 2: add a new part
    second = run_import(database.session(), ImportContext(
        file_name="new-parts.csv",
        imported_by="ops@example.com",
        adds=[RowMutation("part", uuid4(), {"sku": "BRK-200", "price": 61.0})],
    ), debug=True)

    service = HistoryService(database.session())

    print("\nImport history:")
    for summary in service.list_snapshots():
        counts = summary.import_summary
        print(f"  {summary.file_name:<22} {summary.status:<12} "
              f"+{counts.adds} ~{counts.updates} -{counts.deletes}")

    # Out of order: refused, the newer import must go first
    print("\nRolling back the older import first:")
    print(f"  {service.request_rollback(first.id, 'admin@example.com')['message']}")

    print("\nRolling back newest first:")
    for snapshot in (second, first):
        result = service.request_rollback(snapshot.id, "admin@example.com")
        print(f"  {snapshot.file_name}: restored {result['restoredCounts']}")

    part = database.tables["part"][part_id]
    print(f"\nPart price back to {part.data['price']}, "
          f"cross reference restored: {ref_id in database.tables['cross_reference']}")


if __name__ == "__main__":
    main()
