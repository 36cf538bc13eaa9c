"""
inventory_ingestion -- historical imports from spreadsheets and exports.

Adapters stream records out of CSV, JSON and XLSX files, the mapping engine
turns them into CandidateEvents, and ImportService hands those to the
ledger's duplicate-safe import.
"""

from inventory_ingestion.services.import_service import ImportService

__all__ = ["ImportService"]
