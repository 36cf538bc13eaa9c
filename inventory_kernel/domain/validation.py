"""
Batch validation -- pure checks run before anything is written.

Responsibility:
    Validates a requested batch in memory: non-empty, every quantity a
    finite number > 0, every item known and active, no item twice.  For
    withdrawals, checks every requested quantity against current stock.
    Expands a kit template into the lines of a kit withdrawal.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Callers pass in the
    catalog entries and stock figures they read.

Invariants enforced:
    - The whole batch is rejected on the first invalid line (no partial write).
    - Stock sufficiency compares requested <= available exactly; a request
      equal to stock passes and drives stock to zero.
"""

from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from inventory_kernel.db.types import round_quantity, to_quantity
from inventory_kernel.domain.dtos import CatalogEntry, EventKind, ItemQuantity
from inventory_kernel.exceptions import (
    DuplicateItemInBatchError,
    EmptyBatchError,
    InactiveItemError,
    InsufficientStockError,
    InvalidKitCountError,
    InvalidQuantityError,
    NonPositiveQuantityError,
    UnknownItemError,
)


def validate_line(
    line: ItemQuantity,
    catalog: Mapping[UUID, CatalogEntry],
    require_active: bool = True,
) -> ItemQuantity:
    """Validate one line and return it with its quantity quantized."""
    try:
        requested = to_quantity(line.quantity)
    except ValueError as exc:
        raise InvalidQuantityError(line.item_id, line.quantity) from exc
    if requested <= 0:
        raise NonPositiveQuantityError(line.item_id, requested)
    quantity = round_quantity(requested)
    if quantity <= 0:
        # Positive but below the stored precision (e.g. 0.001)
        raise NonPositiveQuantityError(line.item_id, line.quantity)
    entry = catalog.get(line.item_id)
    if entry is None:
        raise UnknownItemError(line.item_id)
    if require_active and not entry.is_active:
        raise InactiveItemError(entry.item_id, entry.name)
    return ItemQuantity(item_id=line.item_id, quantity=quantity)


def validate_lines(
    label: str,
    lines: Iterable[ItemQuantity],
    catalog: Mapping[UUID, CatalogEntry],
    require_active: bool = True,
) -> tuple[ItemQuantity, ...]:
    """
    Validate a non-empty set of item lines, one line per item.

    ``label`` names the thing being built ("withdrawal", "kit template")
    in the EmptyBatchError message.

    Raises:
        EmptyBatchError, NonPositiveQuantityError, InvalidQuantityError,
        UnknownItemError, InactiveItemError, DuplicateItemInBatchError.
    """
    validated: list[ItemQuantity] = []
    seen: set[UUID] = set()
    for line in lines:
        if line.item_id in seen:
            raise DuplicateItemInBatchError(line.item_id)
        seen.add(line.item_id)
        validated.append(validate_line(line, catalog, require_active))
    if not validated:
        raise EmptyBatchError(label)
    return tuple(validated)


def validate_batch(
    kind: EventKind,
    lines: Iterable[ItemQuantity],
    catalog: Mapping[UUID, CatalogEntry],
    require_active: bool = True,
) -> tuple[ItemQuantity, ...]:
    """
    Validate every line of a batch.

    Historical imports pass ``require_active=False``: an item deactivated
    today still had events in the past.
    """
    return validate_lines(kind.batch_name, lines, catalog, require_active)


def check_stock_sufficiency(
    lines: Iterable[ItemQuantity],
    available: Mapping[UUID, Decimal],
    catalog: Mapping[UUID, CatalogEntry],
) -> None:
    """
    Reject a withdrawal if any line asks for more than the item's stock.

    Raises:
        InsufficientStockError: for the first offending line, carrying the
            item, both figures and the shortfall.
    """
    for line in lines:
        stock = available.get(line.item_id, Decimal("0"))
        if line.quantity > stock:
            entry = catalog[line.item_id]
            raise InsufficientStockError(
                item_id=line.item_id,
                item_name=entry.name,
                available=stock,
                requested=line.quantity,
            )


def expand_kit(
    kit_template_id: UUID,
    kit_lines: Iterable[ItemQuantity],
    kits: int,
) -> tuple[ItemQuantity, ...]:
    """
    Withdrawal lines for ``kits`` copies of a kit: each per-kit quantity
    times the kit count.

    Raises:
        InvalidKitCountError: If ``kits`` is not an int > 0.
    """
    if isinstance(kits, bool) or not isinstance(kits, int) or kits <= 0:
        raise InvalidKitCountError(kit_template_id, kits)
    return tuple(ItemQuantity(line.item_id, line.quantity * kits) for line in kit_lines)
