"""
Tests for the import history audit export.
"""

import csv
import json

import openpyxl
import pytest
from uuid import uuid4

from catalogkit.history import HistoryService, export_history
from catalogkit.ledger import RowMutation


@pytest.fixture
def summaries(db, do_import):
    """Two history rows, the newer one rolled back."""
    do_import(adds=[RowMutation("part", uuid4(), {"sku": "1"})], file_name="first.csv")
    newer = do_import(adds=[RowMutation("part", uuid4(), {"sku": "2"})], file_name="second.csv")

    service = HistoryService(db)
    service.request_rollback(newer.id, "admin@example.com")
    return service.list_snapshots()


class TestExportHistory:
    """Tests for CSV, Excel and JSON output."""

    def test_csv(self, summaries, tmp_path):
        output = export_history(summaries, tmp_path / "history.csv")

        with open(output, newline='', encoding='utf-8') as f:
            rows = list(csv.DictReader(f))

        assert [row["file_name"] for row in rows] == ["second.csv", "first.csv"]
        assert rows[0]["status"] == "rolled_back"
        assert rows[0]["adds"] == "1"
        assert rows[1]["rolled_back_by"] == ""

    def test_tsv_is_tab_separated(self, summaries, tmp_path):
        output = export_history(summaries, tmp_path / "history.tsv")

        with open(output, newline='', encoding='utf-8') as f:
            header_line = f.readline()
            f.seek(0)
            rows = list(csv.DictReader(f, delimiter='\t'))

        assert header_line.startswith("id\tcreated_at\tfile_name")
        assert "," not in header_line
        assert [row["file_name"] for row in rows] == ["second.csv", "first.csv"]
        assert rows[0]["status"] == "rolled_back"

    def test_excel(self, summaries, tmp_path):
        output = export_history(summaries, tmp_path / "history.xlsx")

        ws = openpyxl.load_workbook(output).active
        headers = [cell.value for cell in ws[1]]

        assert ws.title == "Import History"
        assert headers[:3] == ["id", "created_at", "file_name"]
        assert ws.max_row == 3
        assert ws.cell(row=2, column=headers.index("file_name") + 1).value == "second.csv"

    def test_json_keeps_nested_summary(self, summaries, tmp_path):
        output = export_history(summaries, tmp_path / "history.json")

        with open(output, encoding='utf-8') as f:
            data = json.load(f)

        assert data[0]["import_summary"] == {"adds": 1, "updates": 0, "deletes": 0}
        assert data[1]["status"] == "active"

    def test_unknown_extension_falls_back_to_csv(self, summaries, tmp_path):
        output = export_history(summaries, tmp_path / "history.dat")
        assert output.endswith("history.csv")

    def test_explicit_format_overrides_extension(self, summaries, tmp_path):
        output = export_history(summaries, tmp_path / "history.txt", format="json")

        with open(output, encoding='utf-8') as f:
            assert len(json.load(f)) == 2

    def test_unsupported_format(self, summaries, tmp_path):
        with pytest.raises(ValueError):
            export_history(summaries, tmp_path / "history.xml", format="xml")
