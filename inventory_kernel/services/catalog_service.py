"""
Service layer for the item catalog.

Creates categories and items, updates the mutable item fields, and toggles
the active flag.  Items are never hard-deleted: ledger lines reference them.

Returns ItemView / CategoryView DTOs instead of ORM entities.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_kernel.db.types import to_quantity
from inventory_kernel.exceptions import CatalogConflictError, UnknownItemError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    DEFAULT_UNIT_TYPE,
    Item,
    ItemCategory,
)
from inventory_kernel.selectors.item_selector import CategoryView, ItemSelector, ItemView
from inventory_kernel.services.base import BaseService

logger = get_logger("services.catalog")

_UNSET = object()


class CatalogService(BaseService[Item]):
    """Write side of the item catalog."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._selector = ItemSelector(session)

    def _get_item(self, item_id: UUID) -> Item:
        item = self.session.get(Item, item_id)
        if item is None:
            raise UnknownItemError(item_id)
        return item

    def _category_by_name(self, name: str) -> ItemCategory | None:
        stmt = select(ItemCategory).where(func.lower(ItemCategory.name) == name.lower())
        return self.session.execute(stmt).scalar_one_or_none()

    def create_category(self, name: str, order_index: int = 0) -> CategoryView:
        """
        Raises:
            CatalogConflictError: If a category with this name exists.
        """
        name = name.strip()
        if self._category_by_name(name) is not None:
            raise CatalogConflictError("Category", name)
        category = ItemCategory(name=name, order_index=order_index)
        self.session.add(category)
        self.session.flush()
        logger.info(
            "category_created",
            extra={"category_id": category.id, "category_name": name},
        )
        return CategoryView(
            category_id=category.id, name=category.name, order_index=category.order_index
        )

    def get_or_create_category(self, name: str, order_index: int = 0) -> CategoryView:
        existing = self._category_by_name(name.strip())
        if existing is not None:
            return CategoryView(
                category_id=existing.id, name=existing.name, order_index=existing.order_index
            )
        return self.create_category(name, order_index)

    def create_item(
        self,
        name: str,
        actor_id: UUID,
        category_id: UUID | None = None,
        unit_type: str = DEFAULT_UNIT_TYPE,
        low_stock_threshold: Decimal | int | str = DEFAULT_LOW_STOCK_THRESHOLD,
        description: str | None = None,
        is_active: bool = True,
    ) -> ItemView:
        """
        Add an item to the catalog.

        Raises:
            CatalogConflictError: If an item with this name exists
                (case-insensitive).
        """
        name = name.strip()
        if self._selector.by_name(name) is not None:
            raise CatalogConflictError("Item", name)
        item = Item(
            name=name,
            description=description,
            category_id=category_id,
            unit_type=unit_type,
            low_stock_threshold=to_quantity(low_stock_threshold),
            is_active=is_active,
            created_by_id=actor_id,
        )
        self.session.add(item)
        self.session.flush()
        logger.info(
            "item_created",
            extra={"item_id": item.id, "item_name": name, "actor_id": actor_id},
        )
        return self._selector.require(item.id)

    def update_item(
        self,
        item_id: UUID,
        actor_id: UUID,
        *,
        low_stock_threshold=_UNSET,
        unit_type=_UNSET,
        category_id=_UNSET,
        description=_UNSET,
    ) -> ItemView:
        """
        Update the mutable fields of an item.  Identity (id, name) is fixed.

        Raises:
            UnknownItemError: If the item does not exist.
        """
        item = self._get_item(item_id)
        changed = []
        if low_stock_threshold is not _UNSET:
            item.low_stock_threshold = to_quantity(low_stock_threshold)
            changed.append("low_stock_threshold")
        if unit_type is not _UNSET:
            item.unit_type = unit_type
            changed.append("unit_type")
        if category_id is not _UNSET:
            item.category_id = category_id
            changed.append("category_id")
        if description is not _UNSET:
            item.description = description
            changed.append("description")
        item.updated_by_id = actor_id
        self.session.flush()
        # Reload the joined category after a category change
        self.session.expire(item, ["category"])
        logger.info(
            "item_updated",
            extra={"item_id": item_id, "fields": changed, "actor_id": actor_id},
        )
        return self._selector.require(item_id)

    def set_active(self, item_id: UUID, is_active: bool, actor_id: UUID) -> ItemView:
        """
        Activate or soft-deactivate an item.  Its events stay untouched.

        Raises:
            UnknownItemError: If the item does not exist.
        """
        item = self._get_item(item_id)
        item.is_active = is_active
        item.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "item_activated" if is_active else "item_deactivated",
            extra={"item_id": item_id, "actor_id": actor_id},
        )
        return self._selector.require(item_id)
