"""Source adapters: CSV, JSON / JSON Lines, XLSX."""

import json
from datetime import datetime

import openpyxl
import pytest

from inventory_ingestion.adapters import (
    CsvSourceAdapter,
    JsonSourceAdapter,
    SourceAdapter,
    XlsxSourceAdapter,
)


class TestCsvAdapter:
    def test_reads_rows_and_strips_headers(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text(" item ,quantity\nRice,5\n,\nBeans,2\n", encoding="utf-8")
        rows = list(CsvSourceAdapter().read(path, {}))
        assert rows == [{"item": "Rice", "quantity": "5"}, {"item": "Beans", "quantity": "2"}]

    def test_bom_and_banner_rows(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_bytes("\ufeffMaster Inventory\nitem;quantity\nSoap;3\n".encode("utf-8"))
        rows = list(CsvSourceAdapter().read(path, {"skip_rows": 1, "delimiter": ";"}))
        assert rows == [{"item": "Soap", "quantity": "3"}]

    def test_surplus_cells_dropped(self, tmp_path):
        path = tmp_path / "ragged.csv"
        path.write_text("item,quantity\nSoap,3,extra\n", encoding="utf-8")
        assert list(CsvSourceAdapter().read(path, {})) == [{"item": "Soap", "quantity": "3"}]

    def test_source_summary(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text("item,quantity\n" + "".join(f"I{i},{i}\n" for i in range(8)), encoding="utf-8")
        summary = CsvSourceAdapter().probe(path, {})
        assert summary.row_count == 8
        assert summary.columns == ("item", "quantity")
        assert len(summary.sample_rows) == 5
        assert summary.detected_delimiter == ","


class TestJsonAdapter:
    def test_array_with_path_and_key_normalization(self, tmp_path):
        path = tmp_path / "export.json"
        path.write_text(json.dumps({"data": {"records": [{" Item ": "Rice", "QUANTITY": 4}, "junk"]}}))
        rows = list(JsonSourceAdapter().read(path, {"json_path": "data.records"}))
        assert rows == [{"item": "Rice", "quantity": 4}]

    def test_jsonl(self, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text('{"item": "Rice"}\n\n{"item": "Beans"}\n')
        rows = list(JsonSourceAdapter().read(path, {"format": "jsonl"}))
        assert [r["item"] for r in rows] == ["Rice", "Beans"]

    def test_non_array_root(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text('{"item": "Rice"}')
        with pytest.raises(ValueError, match="expected a JSON array"):
            list(JsonSourceAdapter().read(path, {}))

    def test_source_columns(self, tmp_path):
        path = tmp_path / "events.json"
        path.write_text(json.dumps([{"item": "Rice"}, {"quantity": 1}]))
        summary = JsonSourceAdapter().probe(path, {})
        assert summary.row_count == 2
        assert summary.columns == ("item", "quantity")


def _workbook(path, rows, title="Inventory"):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    wb.save(path)


class TestXlsxAdapter:
    def test_auto_detects_header_below_banner(self, tmp_path):
        path = tmp_path / "master.xlsx"
        _workbook(
            path,
            [
                ["Relief Center Master Inventory"],
                [],
                ["Item Name", "Category", "Quantity"],
                ["  Rice ", "Food", 12.0],
                [None, None, None],
                ["Soap", "Care", 2.5],
            ],
        )
        rows = list(XlsxSourceAdapter().read(path, {}))
        assert rows == [
            {"Item Name": "Rice", "Category": "Food", "Quantity": 12},
            {"Item Name": "Soap", "Category": "Care", "Quantity": 2.5},
        ]

    def test_explicit_header_row_and_sheet_name(self, tmp_path):
        path = tmp_path / "log.xlsx"
        _workbook(path, [["x", "y"], ["a", "b"], ["1", "2"]], title="Log")
        rows = list(
            XlsxSourceAdapter().read(path, {"sheet": "Log", "auto_detect_header": False, "header_row": 1})
        )
        assert rows == [{"a": "1", "b": "2"}]

    def test_dates_preserved_and_duplicate_headers(self, tmp_path):
        path = tmp_path / "dated.xlsx"
        _workbook(path, [["item", "date", "date"], ["Rice", datetime(2024, 11, 4), "x"]])
        row = next(iter(XlsxSourceAdapter().read(path, {})))
        assert row["date"] == datetime(2024, 11, 4)
        assert row["date_1"] == "x"

    def test_source_summary(self, tmp_path):
        path = tmp_path / "master.xlsx"
        _workbook(path, [["item", "quantity"], ["Rice", 1], ["Soap", 2]])
        summary = XlsxSourceAdapter().probe(path, {})
        assert summary.row_count == 2
        assert summary.columns == ("item", "quantity")


def test_adapters_satisfy_protocol():
    for adapter in (CsvSourceAdapter(), JsonSourceAdapter(), XlsxSourceAdapter()):
        assert isinstance(adapter, SourceAdapter)
