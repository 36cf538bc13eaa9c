"""
Module: inventory_kernel.db.types
Responsibility: Column types and conversion helpers for quantities and
    instants.  Centralizes precision and timezone normalization so that every
    model, selector and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by every kernel layer.
    MUST NOT import from any of them.

Invariants enforced:
    - Quantities are Decimal with QUANTITY_DECIMAL_PLACES places.  Floats are
      accepted only at the boundary (to_quantity) and converted via str().
    - Instants are stored as UTC.  Naive datetimes read back from backends
      without timezone support (SQLite) are re-tagged as UTC.

Failure modes:
    - ValueError from to_quantity() on a non-numeric or non-finite value.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import DateTime, Numeric
from sqlalchemy.types import TypeDecorator

QUANTITY_DECIMAL_PLACES = 2
QUANTITY_PRECISION = 12
ZERO = Decimal("0.00")

_QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)


def round_quantity(value: Decimal) -> Decimal:
    """Quantize a quantity to QUANTITY_DECIMAL_PLACES using ROUND_HALF_UP."""
    return value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def to_quantity(value: Any) -> Decimal:
    """
    Coerce a boundary value (Decimal, int, float, str) to a Decimal quantity.

    Floats go through str() so that 0.1 becomes Decimal("0.1"), never
    Decimal(0.1000000000000000055511151231257827...).

    Raises:
        ValueError: If the value is not numeric, or is NaN or infinite.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a quantity: {value!r}")
    if isinstance(value, Decimal):
        quantity = value
    else:
        try:
            quantity = Decimal(str(value).strip())
        except (InvalidOperation, AttributeError) as exc:
            raise ValueError(f"Not a quantity: {value!r}") from exc
    if not quantity.is_finite():
        raise ValueError(f"Not a finite quantity: {value!r}")
    return quantity


def ensure_utc(value: datetime, default_tz=timezone.utc) -> datetime:
    """
    Return an aware UTC datetime.

    Naive values are interpreted in ``default_tz`` before conversion.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=default_tz)
    return value.astimezone(timezone.utc)


class QuantityType(TypeDecorator):
    """Numeric(12, 2) that always binds and returns quantized Decimals."""

    impl = Numeric(QUANTITY_PRECISION, QUANTITY_DECIMAL_PLACES)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return round_quantity(to_quantity(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return round_quantity(to_quantity(value))


class UTCDateTime(TypeDecorator):
    """DateTime(timezone=True) normalized to UTC on the way in and out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return ensure_utc(value)
