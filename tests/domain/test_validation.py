"""
Batch validation: the pure checks that run before any write.

A batch is rejected as a whole on its first invalid line.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import CatalogEntry, EventKind, ItemQuantity
from inventory_kernel.domain.validation import (
    check_stock_sufficiency,
    expand_kit,
    validate_batch,
    validate_line,
    validate_lines,
)
from inventory_kernel.exceptions import (
    DuplicateItemInBatchError,
    EmptyBatchError,
    InactiveItemError,
    InsufficientStockError,
    InvalidKitCountError,
    NonPositiveQuantityError,
    UnknownItemError,
)

WIDGET = uuid4()
GADGET = uuid4()
RETIRED = uuid4()

CATALOG = {
    WIDGET: CatalogEntry(WIDGET, "Widget", True),
    GADGET: CatalogEntry(GADGET, "Gadget", True),
    RETIRED: CatalogEntry(RETIRED, "Retired", False),
}


def line(item_id, quantity):
    return ItemQuantity(item_id, Decimal(quantity))


class TestValidateLine:
    def test_quantizes(self):
        assert validate_line(line(WIDGET, "1.005"), CATALOG).quantity == Decimal("1.01")

    @pytest.mark.parametrize("quantity", ["0", "-1", "0.001"])
    def test_non_positive_rejected(self, quantity):
        with pytest.raises(NonPositiveQuantityError):
            validate_line(line(WIDGET, quantity), CATALOG)

    def test_unknown_item(self):
        with pytest.raises(UnknownItemError):
            validate_line(line(uuid4(), "1"), CATALOG)

    def test_inactive_item(self):
        with pytest.raises(InactiveItemError) as info:
            validate_line(line(RETIRED, "1"), CATALOG)
        assert info.value.item_name == "Retired"

    def test_inactive_item_allowed_for_imports(self):
        assert validate_line(line(RETIRED, "1"), CATALOG, require_active=False).item_id == RETIRED


class TestValidateBatch:
    def test_valid_batch(self):
        lines = validate_batch(EventKind.COLLECTED, [line(WIDGET, "5"), line(GADGET, "2")], CATALOG)
        assert [l.item_id for l in lines] == [WIDGET, GADGET]

    def test_empty_batch(self):
        with pytest.raises(EmptyBatchError) as info:
            validate_batch(EventKind.WITHDRAWN, [], CATALOG)
        assert "withdrawal" in str(info.value)

    def test_duplicate_item(self):
        with pytest.raises(DuplicateItemInBatchError):
            validate_batch(EventKind.COLLECTED, [line(WIDGET, "1"), line(WIDGET, "2")], CATALOG)

    def test_one_bad_line_rejects_batch(self):
        with pytest.raises(NonPositiveQuantityError):
            validate_batch(EventKind.COLLECTED, [line(WIDGET, "1"), line(GADGET, "0")], CATALOG)


class TestStockSufficiency:
    def test_exact_stock_passes(self):
        check_stock_sufficiency([line(WIDGET, "100")], {WIDGET: Decimal("100")}, CATALOG)

    def test_one_cent_over_fails(self):
        with pytest.raises(InsufficientStockError) as info:
            check_stock_sufficiency([line(WIDGET, "100.01")], {WIDGET: Decimal("100")}, CATALOG)
        assert info.value.shortfall == Decimal("0.01")

    def test_missing_stock_counts_as_zero(self):
        with pytest.raises(InsufficientStockError) as info:
            check_stock_sufficiency([line(GADGET, "1")], {}, CATALOG)
        assert info.value.available == Decimal("0")

    def test_reports_first_offending_line(self):
        with pytest.raises(InsufficientStockError) as info:
            check_stock_sufficiency(
                [line(WIDGET, "1"), line(GADGET, "5")],
                {WIDGET: Decimal("10"), GADGET: Decimal("4")},
                CATALOG,
            )
        assert info.value.item_id == GADGET


class TestKits:
    def test_validate_lines_names_the_thing_built(self):
        with pytest.raises(EmptyBatchError) as info:
            validate_lines("kit template", [], CATALOG)
        assert "kit template" in str(info.value)

    def test_expand_multiplies_each_line(self):
        kit = (line(WIDGET, "2"), line(GADGET, "0.5"))
        assert expand_kit(uuid4(), kit, 3) == (line(WIDGET, "6"), line(GADGET, "1.5"))

    @pytest.mark.parametrize("kits", [0, -2, 2.0, True, None])
    def test_expand_rejects_bad_counts(self, kits):
        kit_id = uuid4()
        with pytest.raises(InvalidKitCountError) as info:
            expand_kit(kit_id, (line(WIDGET, "1"),), kits)
        assert info.value.kit_template_id == kit_id
