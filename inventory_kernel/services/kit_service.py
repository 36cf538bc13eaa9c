"""
Service layer for kit templates.

A kit template is a named bundle of items (one food care bag: 2 rice,
1 beans, ...) used to prefill withdrawals.  Creating or retiring a kit never
touches the ledger.

Returns KitTemplateView DTOs instead of ORM entities.
"""

from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import ItemQuantity
from inventory_kernel.domain.validation import validate_lines
from inventory_kernel.exceptions import CatalogConflictError, KitTemplateNotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.kit import KitTemplate, KitTemplateLine
from inventory_kernel.selectors.item_selector import ItemSelector
from inventory_kernel.selectors.kit_selector import KitSelector, KitTemplateView
from inventory_kernel.services.base import BaseService

logger = get_logger("services.kits")


class KitService(BaseService[KitTemplate]):
    """Write side of kit templates."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._items = ItemSelector(session)
        self._kits = KitSelector(session)

    def create_kit(
        self,
        name: str,
        actor_id: UUID,
        items: Iterable[ItemQuantity | Mapping[str, Any]],
        description: str | None = None,
    ) -> KitTemplateView:
        """
        Add a kit template.

        Raises:
            CatalogConflictError: If a kit with this name exists.
            LedgerValidationError subclasses for the per-kit lines (empty,
            unknown or inactive item, bad quantity, item twice).
        """
        name = name.strip()
        if self._kits.by_name(name) is not None:
            raise CatalogConflictError("Kit template", name)
        requested = [ItemQuantity.coerce(i) for i in items]
        lines = validate_lines(
            "kit template",
            requested,
            self._items.catalog_entries(line.item_id for line in requested),
        )

        kit = KitTemplate(name=name, description=description, created_by_id=actor_id)
        kit.lines = [KitTemplateLine(item_id=ln.item_id, quantity=ln.quantity) for ln in lines]
        self.session.add(kit)
        self.session.flush()
        logger.info(
            "kit_template_created",
            extra={"kit_template_id": kit.id, "kit_name": name, "line_count": len(lines)},
        )
        return self._kits.get(kit.id)

    def set_active(self, kit_template_id: UUID, is_active: bool, actor_id: UUID) -> None:
        """
        Retire or restore a kit.  Past withdrawals keep their reference.

        Raises:
            KitTemplateNotFoundError: If the kit does not exist.
        """
        kit = self.session.get(KitTemplate, kit_template_id)
        if kit is None:
            raise KitTemplateNotFoundError(kit_template_id)
        kit.is_active = is_active
        kit.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "kit_template_activated" if is_active else "kit_template_deactivated",
            extra={"kit_template_id": kit_template_id, "actor_id": actor_id},
        )
