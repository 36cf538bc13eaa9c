"""
Mapping engine and mapping definitions.

Pure: raw record dicts in, CandidateEvents and ImportIssues out.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

import pytest

from inventory_ingestion.domain.types import FieldMapping, FieldType
from inventory_ingestion.mapping import (
    BUILTIN_MAPPINGS,
    apply_mapping,
    apply_transform,
    coerce_value,
    compile_mapping,
    load_mapping_file,
    parse_kind,
    to_candidates,
)
from inventory_kernel.domain.dtos import EventKind


class TestCoerceValue:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1,250.50", Decimal("1250.50")), (3, Decimal("3")), (2.5, Decimal("2.5"))],
    )
    def test_decimal(self, raw, expected):
        assert coerce_value(raw, FieldType.DECIMAL).value == expected

    @pytest.mark.parametrize("raw", ["lots", True, "NaN", "inf", "-Infinity", float("nan")])
    def test_bad_decimal(self, raw):
        result = coerce_value(raw, FieldType.DECIMAL)
        assert not result.success
        assert result.code == "INVALID_DECIMAL"

    @pytest.mark.parametrize("raw", ["2024-11-04", "11/04/2024", datetime(2024, 11, 4, 15, 0)])
    def test_date(self, raw):
        assert coerce_value(raw, FieldType.DATE).value == date(2024, 11, 4)

    def test_date_with_format(self):
        assert coerce_value("04.11.2024", FieldType.DATE, "%d.%m.%Y").value == date(2024, 11, 4)

    def test_bad_date(self):
        assert coerce_value("someday", FieldType.DATE).code == "INVALID_DATE_FORMAT"

    def test_datetime_iso_and_zulu(self):
        value = coerce_value("2024-11-04T15:30:00Z", FieldType.DATETIME).value
        assert value.utcoffset().total_seconds() == 0
        assert value.hour == 15

    def test_datetime_from_date_is_midnight(self):
        assert coerce_value("11/04/2024", FieldType.DATETIME).value == datetime(2024, 11, 4)

    def test_bad_datetime(self):
        assert coerce_value("never", FieldType.DATETIME).code == "INVALID_DATETIME_FORMAT"

    def test_uuid(self):
        raw = "12345678-1234-5678-1234-567812345678"
        assert coerce_value(raw, FieldType.UUID).value == UUID(raw)
        assert coerce_value("nope", FieldType.UUID).code == "INVALID_UUID_FORMAT"


class TestTransformsAndKinds:
    @pytest.mark.parametrize(
        ("transform", "expected"),
        [("strip", "rice bag"), ("upper", " RICE BAG "), ("title", "Rice Bag"), (None, " rice bag ")],
    )
    def test_transforms(self, transform, expected):
        assert apply_transform(" rice bag ", transform) == expected

    def test_non_strings_pass_through(self):
        assert apply_transform(5, "upper") == 5

    @pytest.mark.parametrize(
        ("raw", "kind"),
        [("Collected", EventKind.COLLECTED), ("IN", EventKind.COLLECTED), ("distributed", EventKind.WITHDRAWN)],
    )
    def test_parse_kind(self, raw, kind):
        assert parse_kind(raw) is kind

    def test_unknown_kind(self):
        assert parse_kind("lost") is None


class TestApplyMapping:
    FIELDS = (
        FieldMapping("Item", "item_name", required=True, transform="strip"),
        FieldMapping("Qty", "quantity", FieldType.DECIMAL, required=True),
        FieldMapping("Notes", "notes", default="imported"),
    )

    def test_maps_and_defaults(self):
        result = apply_mapping({"Item": " Rice ", "Qty": "4"}, self.FIELDS, source_row=3)
        assert result.success
        assert result.mapped_data == {"item_name": "Rice", "quantity": Decimal("4"), "notes": "imported"}

    def test_missing_required(self):
        result = apply_mapping({"Item": "  ", "Qty": "4"}, self.FIELDS, source_row=3)
        assert not result.success
        assert result.errors[0].code == "MISSING_REQUIRED_FIELD"
        assert result.errors[0].source_row == 3

    def test_coercion_error_names_column(self):
        result = apply_mapping({"Item": "Rice", "Qty": "many"}, self.FIELDS)
        assert result.errors[0].code == "INVALID_DECIMAL"
        assert result.errors[0].message.startswith("Qty:")


class TestToCandidates:
    def test_long_layout_with_kind_column(self):
        mapping = BUILTIN_MAPPINGS["events_csv"]
        found, issues = to_candidates(
            {"item": "Rice", "quantity": "5", "type": "out", "date": "2024-11-04", "recipient": "Shelter"},
            mapping,
            source_row=1,
        )
        assert issues == []
        event = found[0]
        assert event.kind is EventKind.WITHDRAWN
        assert event.occurred_at == datetime(2024, 11, 4)
        assert event.event_date == date(2024, 11, 4)
        assert event.recipient == "Shelter"
        assert event.source_row == 1

    def test_invalid_kind(self):
        _, issues = to_candidates(
            {"item": "Rice", "quantity": "5", "type": "lost"}, BUILTIN_MAPPINGS["events_csv"], 2
        )
        assert issues[0].code == "INVALID_KIND"

    def test_fixed_kind_mapping(self):
        found, _ = to_candidates(
            {"item": "Rice", "quantity": "5", "occurred_at": "2024-11-04T09:00:00"},
            BUILTIN_MAPPINGS["collections_csv"],
        )
        assert found[0].kind is EventKind.COLLECTED
        assert found[0].occurred_at == datetime(2024, 11, 4, 9, 0)

    def test_wide_layout(self):
        mapping = compile_mapping(
            {
                "name": "master_sheet",
                "kind": "withdrawn",
                "fields": [{"source": "Item", "target": "item_name", "required": True}],
                "columns": [
                    {"column": "Out Nov 4", "occurred_at": "2024-11-04", "reason": "Packed out"},
                    {"column": "Out Nov 5", "occurred_at": date(2024, 11, 5)},
                    {"column": "Out Nov 6", "occurred_at": "2024-11-06T14:00:00"},
                ],
            }
        )
        found, issues = to_candidates(
            {"Item": "Rice", "Out Nov 4": "3", "Out Nov 5": "", "Out Nov 6": "0"}, mapping, 4
        )
        assert issues == []
        assert [(c.occurred_at, c.quantity, c.reason) for c in found] == [
            (datetime(2024, 11, 4), Decimal("3"), "Packed out")
        ]

    @pytest.mark.parametrize("cell", ["a few", "NaN", "Infinity"])
    def test_wide_layout_bad_cell(self, cell):
        mapping = compile_mapping(
            {
                "kind": "collected",
                "fields": [{"source": "Item", "target": "item_name"}],
                "columns": [{"column": "In", "occurred_at": "2024-11-04"}],
            }
        )
        found, issues = to_candidates({"Item": "Rice", "In": cell}, mapping, 9)
        assert found == []
        assert issues[0].code == "INVALID_QUANTITY"


class TestCompileMapping:
    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({"source_format": "xml", "kind": "in"}, "unsupported source_format"),
            ({"kind": "lost"}, "unknown kind"),
            ({"kind": "in", "fields": [{"source": "a", "target": "price"}]}, "unknown target"),
            ({"kind": "in", "fields": [{"source": "a", "target": "quantity", "type": "money"}]}, "unknown type"),
            ({"kind": "in", "fields": [{"source": "a", "target": "quantity", "colour": "red"}]}, "unknown keys"),
            ({"fields": [{"source": "a", "target": "quantity"}]}, "map a 'kind' field"),
            ({"kind": "in", "fields": [{"source": "a", "target": "item_name"}]}, "'quantity' field"),
        ],
    )
    def test_rejects_bad_definitions(self, data, message):
        with pytest.raises(ValueError, match=message):
            compile_mapping(data)

    def test_default_types_by_target(self):
        mapping = compile_mapping(
            {
                "kind": "in",
                "fields": [
                    {"source": "q", "target": "quantity"},
                    {"source": "d", "target": "event_date"},
                    {"source": "i", "target": "item_id"},
                ],
            }
        )
        assert [f.field_type for f in mapping.field_mappings] == [
            FieldType.DECIMAL,
            FieldType.DATE,
            FieldType.UUID,
        ]

    def test_load_mapping_file(self, tmp_path):
        path = tmp_path / "delivery_log.yaml"
        path.write_text(
            "source_format: xlsx\n"
            "kind: collected\n"
            "source_options: {sheet: Deliveries}\n"
            "fields:\n"
            "  - {source: Item, target: item_name, required: true, transform: strip}\n"
            "  - {source: Qty, target: quantity}\n"
            "  - {source: Date, target: event_date, format: '%d/%m/%Y'}\n"
        )
        mapping = load_mapping_file(path)
        assert mapping.name == "delivery_log"
        assert mapping.source_format == "xlsx"
        assert mapping.kind is EventKind.COLLECTED
        assert mapping.source_options == {"sheet": "Deliveries"}
        assert mapping.field_mappings[2].format == "%d/%m/%Y"

    def test_load_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="expected a mapping definition"):
            load_mapping_file(path)

    def test_builtin_mappings(self):
        assert set(BUILTIN_MAPPINGS) == {"events_csv", "events_json", "collections_csv", "withdrawals_csv"}
        assert BUILTIN_MAPPINGS["withdrawals_csv"].kind is EventKind.WITHDRAWN
        assert BUILTIN_MAPPINGS["events_json"].source_format == "json"
