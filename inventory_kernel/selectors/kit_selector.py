"""
Module: inventory_kernel.selectors.kit_selector
Responsibility: Read-only kit template queries: the active kits with their
    per-kit item quantities, and lookup of one kit by id.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Inactive kits are invisible to get() and to the default listing; a
      withdrawal can never be prefilled from one.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import UNCATEGORIZED, ItemQuantity
from inventory_kernel.exceptions import KitTemplateNotFoundError
from inventory_kernel.models.item import Item
from inventory_kernel.models.kit import KitTemplate
from inventory_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class KitLineView:
    item_id: UUID
    item_name: str
    unit_type: str
    category_name: str
    quantity: Decimal


@dataclass(frozen=True)
class KitTemplateView:
    """A kit template and its lines, ordered by item name."""

    kit_template_id: UUID
    name: str
    description: str | None
    is_active: bool
    lines: tuple[KitLineView, ...]

    def item_quantities(self) -> tuple[ItemQuantity, ...]:
        return tuple(ItemQuantity(line.item_id, line.quantity) for line in self.lines)


class KitSelector(BaseSelector[KitTemplate]):
    """Selector for kit templates."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _to_view(self, kit: KitTemplate) -> KitTemplateView:
        items = {
            item.id: item
            for item in self.session.execute(
                select(Item).where(Item.id.in_([ln.item_id for ln in kit.lines]))
            )
            .unique()
            .scalars()
        }
        lines = []
        for ln in kit.lines:
            item = items[ln.item_id]
            lines.append(
                KitLineView(
                    item_id=ln.item_id,
                    item_name=item.name,
                    unit_type=item.unit_type,
                    category_name=item.category.name if item.category else UNCATEGORIZED,
                    quantity=ln.quantity,
                )
            )
        lines.sort(key=lambda line: line.item_name)
        return KitTemplateView(
            kit_template_id=kit.id,
            name=kit.name,
            description=kit.description,
            is_active=kit.is_active,
            lines=tuple(lines),
        )

    def list_kits(self, active_only: bool = True) -> list[KitTemplateView]:
        """Kit templates ordered by name."""
        stmt = select(KitTemplate).order_by(KitTemplate.name)
        if active_only:
            stmt = stmt.where(KitTemplate.is_active.is_(True))
        return [self._to_view(kit) for kit in self.session.execute(stmt).scalars()]

    def get(self, kit_template_id: UUID) -> KitTemplateView:
        """
        Raises:
            KitTemplateNotFoundError: If no active kit has this id.
        """
        kit = self.session.get(KitTemplate, kit_template_id)
        if kit is None or not kit.is_active:
            raise KitTemplateNotFoundError(kit_template_id)
        return self._to_view(kit)

    def by_name(self, name: str) -> KitTemplateView | None:
        stmt = select(KitTemplate).where(func.lower(KitTemplate.name) == name.strip().lower())
        kit = self.session.execute(stmt).scalar_one_or_none()
        return self._to_view(kit) if kit is not None else None
