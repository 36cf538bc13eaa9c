"""Source adapters for historical imports (file I/O only, no DB)."""

from inventory_ingestion.adapters.base import SourceAdapter, SourceProbe
from inventory_ingestion.adapters.csv_adapter import CsvSourceAdapter
from inventory_ingestion.adapters.json_adapter import JsonSourceAdapter
from inventory_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter

__all__ = [
    "SourceAdapter",
    "SourceProbe",
    "CsvSourceAdapter",
    "JsonSourceAdapter",
    "XlsxSourceAdapter",
]
