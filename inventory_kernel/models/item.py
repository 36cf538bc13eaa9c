"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for the item catalog -- the static reference
    data every ledger line points at.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Item names are unique.
    - Items are soft-deactivated (is_active=False), never hard-deleted while
      referenced: ledger lines reference items with ON DELETE RESTRICT.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, TrackedBase, UUIDString
from inventory_kernel.db.types import QuantityType, UTCDateTime
from inventory_kernel.domain.dtos import UNCATEGORIZED

DEFAULT_UNIT_TYPE = "units"
DEFAULT_LOW_STOCK_THRESHOLD = Decimal("10")


class ItemCategory(Base):
    """Grouping used by snapshots and category trends."""

    __tablename__ = "item_categories"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Presentation order; ties broken by name
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ItemCategory {self.name}>"


class Item(TrackedBase):
    """
    Catalog item.

    Contract:
        Identity (id, name) is immutable.  Threshold, unit, category and the
        active flag are managed by catalog administrators.
    """

    __tablename__ = "items"

    __table_args__ = (
        Index("idx_items_active", "is_active"),
        Index("idx_items_category", "category_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("item_categories.id"),
        nullable=True,
    )

    unit_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DEFAULT_UNIT_TYPE,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    low_stock_threshold: Mapped[Decimal] = mapped_column(
        QuantityType(),
        nullable=False,
        default=DEFAULT_LOW_STOCK_THRESHOLD,
    )

    category: Mapped[ItemCategory | None] = relationship(lazy="joined")

    @property
    def category_name(self) -> str:
        return self.category.name if self.category is not None else UNCATEGORIZED

    def __repr__(self) -> str:
        return f"<Item {self.name} active={self.is_active}>"
