"""
Audit export of the import history listing.

Writes SnapshotSummary rows to CSV, Excel or JSON so the ledger can be
archived or reviewed outside the application.
"""

import csv
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import openpyxl

from .service import SnapshotSummary

EXPORT_HEADERS = [
    "id",
    "created_at",
    "file_name",
    "file_size_bytes",
    "imported_by",
    "rows_imported",
    "adds",
    "updates",
    "deletes",
    "status",
    "rolled_back_at",
    "rolled_back_by",
]


def _flatten(summary: SnapshotSummary) -> Dict[str, Any]:
    """One export row; import_summary counts become their own columns."""
    row = summary.to_dict()
    counts = row.pop("import_summary")
    row.update(counts)
    return row


def export_history(
    summaries: List[SnapshotSummary],
    output_path: Union[str, Path],
    format: Optional[str] = None
) -> str:
    """Export history rows to a file.

    Args:
        summaries: Rows from HistoryService.list_snapshots()
        output_path: Path where the exported file should be saved
        format: Output format ('csv', 'excel', 'json', or None to detect
                from the extension; unknown extensions fall back to CSV)

    Returns:
        Path to the exported file

    Raises:
        ValueError: If format is not supported
    """
    output_path = Path(output_path)

    if format is None:
        suffix = output_path.suffix.lower()
        if suffix in ['.csv', '.tsv']:
            format = 'csv'
        elif suffix in ['.xlsx', '.xls']:
            format = 'excel'
        elif suffix == '.json':
            format = 'json'
        else:
            format = 'csv'
            output_path = output_path.with_suffix('.csv')

    format = format.lower()
    rows = [_flatten(summary) for summary in summaries]

    if format == 'csv':
        delimiter = '\t' if output_path.suffix.lower() == '.tsv' else ','
        _export_csv(rows, output_path, delimiter=delimiter)
    elif format == 'excel':
        _export_excel(rows, output_path)
    elif format == 'json':
        _export_json([summary.to_dict() for summary in summaries], output_path)
    else:
        raise ValueError(f"Unsupported export format: {format}. Supported formats: csv, excel, json")

    return str(output_path)


def _export_csv(rows: List[Dict[str, Any]], output_path: Path, delimiter: str = ',') -> None:
    with open(output_path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=EXPORT_HEADERS, extrasaction='ignore', delimiter=delimiter)
        writer.writeheader()
        for row in rows:
            writer.writerow({header: _cell(row.get(header)) for header in EXPORT_HEADERS})


def _export_excel(rows: List[Dict[str, Any]], output_path: Path) -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Import History"

    for col_idx, header in enumerate(EXPORT_HEADERS, start=1):
        ws.cell(row=1, column=col_idx, value=header)

    for row_idx, row in enumerate(rows, start=2):
        for col_idx, header in enumerate(EXPORT_HEADERS, start=1):
            ws.cell(row=row_idx, column=col_idx, value=_cell(row.get(header)))

    wb.save(output_path)


def _export_json(data: List[Dict[str, Any]], output_path: Path) -> None:
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _cell(value: Any) -> Any:
    # Blank rather than "None" in spreadsheets
    return '' if value is None else value
