"""
Module: inventory_kernel.selectors.item_selector
Responsibility: Read-only catalog queries: item lookup by id or name, item
    listings, categories, and the catalog slices that validation and the
    report selectors need.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import UNCATEGORIZED, CatalogEntry, ItemRef
from inventory_kernel.exceptions import UnknownItemError
from inventory_kernel.models.item import Item, ItemCategory
from inventory_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class CategoryView:
    category_id: UUID
    name: str
    order_index: int


@dataclass(frozen=True)
class ItemView:
    """Read model of a catalog item."""

    item_id: UUID
    name: str
    description: str | None
    category_id: UUID | None
    category_name: str
    category_order: int | None
    unit_type: str
    low_stock_threshold: Decimal
    is_active: bool

    def to_ref(self) -> ItemRef:
        return ItemRef(
            item_id=self.item_id,
            name=self.name,
            category_name=self.category_name,
            category_order=self.category_order,
        )

    def to_catalog_entry(self) -> CatalogEntry:
        return CatalogEntry(item_id=self.item_id, name=self.name, is_active=self.is_active)


def _to_view(item: Item) -> ItemView:
    category = item.category
    return ItemView(
        item_id=item.id,
        name=item.name,
        description=item.description,
        category_id=item.category_id,
        category_name=category.name if category is not None else UNCATEGORIZED,
        category_order=category.order_index if category is not None else None,
        unit_type=item.unit_type,
        low_stock_threshold=item.low_stock_threshold,
        is_active=item.is_active,
    )


class ItemSelector(BaseSelector[Item]):
    """Selector for the item catalog."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, item_id: UUID) -> ItemView | None:
        item = self.session.get(Item, item_id)
        return _to_view(item) if item is not None else None

    def require(self, item_id: UUID) -> ItemView:
        """
        Get an item or fail.

        Raises:
            UnknownItemError: If no item has this id.
        """
        view = self.get(item_id)
        if view is None:
            raise UnknownItemError(item_id)
        return view

    def by_name(self, name: str) -> ItemView | None:
        """Case-insensitive lookup by display name."""
        stmt = select(Item).where(func.lower(Item.name) == name.strip().lower())
        item = self.session.execute(stmt).unique().scalar_one_or_none()
        return _to_view(item) if item is not None else None

    def list_items(self, active_only: bool = False) -> list[ItemView]:
        """All items ordered by name."""
        stmt = select(Item).order_by(Item.name)
        if active_only:
            stmt = stmt.where(Item.is_active.is_(True))
        return [_to_view(i) for i in self.session.execute(stmt).unique().scalars()]

    def categories(self) -> list[CategoryView]:
        """Categories in presentation order (order_index, then name)."""
        stmt = select(ItemCategory).order_by(ItemCategory.order_index, ItemCategory.name)
        return [
            CategoryView(category_id=c.id, name=c.name, order_index=c.order_index)
            for c in self.session.execute(stmt).scalars()
        ]

    def category_order(self) -> dict[str, int]:
        """Category name -> order_index, for grouping report rows."""
        return {c.name: c.order_index for c in self.categories()}

    def catalog_entries(self, item_ids: Iterable[UUID]) -> dict[UUID, CatalogEntry]:
        """Validation view of the given items; unknown ids are simply absent."""
        ids = list(set(item_ids))
        if not ids:
            return {}
        stmt = select(Item.id, Item.name, Item.is_active).where(Item.id.in_(ids))
        return {
            row.id: CatalogEntry(item_id=row.id, name=row.name, is_active=row.is_active)
            for row in self.session.execute(stmt)
        }

    def item_refs(self, item_id: UUID | None = None, active_only: bool = True) -> list[ItemRef]:
        """
        Report item set: one item (active or not) or all items.

        Raises:
            UnknownItemError: If ``item_id`` is given and does not exist.
        """
        if item_id is not None:
            return [self.require(item_id).to_ref()]
        return [v.to_ref() for v in self.list_items(active_only=active_only)]
