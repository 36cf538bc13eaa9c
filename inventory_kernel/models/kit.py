"""
Module: inventory_kernel.models.kit
Responsibility: ORM persistence for kit templates -- named bundles of items
    (a food care bag, a hygiene kit) that prefill a withdrawal.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Kit names are unique.
    - quantity > 0 per kit line; at most one line per item per kit.
    - A kit is never a ledger event: only the withdrawal it prefills moves
      stock.  Kits are soft-deactivated, never deleted once referenced.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base, TrackedBase, UUIDString
from inventory_kernel.db.types import QuantityType


class KitTemplate(TrackedBase):
    """A named bundle of per-kit item quantities."""

    __tablename__ = "kit_templates"

    __table_args__ = (Index("idx_kit_templates_active", "is_active"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    lines: Mapped[list["KitTemplateLine"]] = relationship(
        back_populates="kit",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<KitTemplate {self.name} active={self.is_active}>"


class KitTemplateLine(Base):
    """Quantity of one item in a single kit."""

    __tablename__ = "kit_template_lines"

    __table_args__ = (
        UniqueConstraint("kit_template_id", "item_id", name="uq_kit_template_line_item"),
        CheckConstraint("quantity > 0", name="ck_kit_template_line_quantity_positive"),
    )

    kit_template_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("kit_templates.id", ondelete="CASCADE"),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("items.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(QuantityType(), nullable=False)

    kit: Mapped[KitTemplate] = relationship(back_populates="lines")
