"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (UI actions, import jobs, operator scripts) must be able
to tell a bad request apart from a storage outage and from an integrity
problem without parsing message strings.  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (item ids, quantities, shortfall)
  4. A RETRYABLE flag (storage failures may be retried, business errors not)

Example - RIGHT way:
    try:
        service.submit_withdrawal(actor_id, items)
    except InsufficientStockError as e:
        api_response(code=e.code, item=e.item_name, shortfall=e.shortfall)
    except StorageError as e:
        if e.retryable:
            schedule_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- LedgerValidationError
    |   +-- NonPositiveQuantityError
    |   +-- InvalidQuantityError
    |   +-- UnknownItemError
    |   +-- InactiveItemError
    |   +-- DuplicateItemInBatchError
    |   +-- EmptyBatchError
    |   +-- InvalidDateRangeError
    |   +-- DateOutOfRangeError
    |   +-- SnapshotNavigationError
    |   +-- CatalogConflictError
    |   +-- InvalidKitCountError
    |
    +-- InsufficientStockError
    |
    +-- CommitError
    |   +-- PartialWriteError
    |   +-- OrphanedHeaderError
    |
    +-- ReconciliationError
    |   +-- DuplicateEventError
    |
    +-- AggregateStalenessError
    |
    +-- BatchNotFoundError
    |
    +-- KitTemplateNotFoundError
    |
    +-- StorageError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                     | When Raised
----------------|--------------------------|--------------------------------------
Validation      | NON_POSITIVE_QUANTITY    | Line quantity is zero or negative
                | INVALID_QUANTITY         | Quantity not a finite number
                | UNKNOWN_ITEM             | Item id does not exist in the catalog
                | INACTIVE_ITEM            | Item is soft-deactivated
                | DUPLICATE_ITEM_IN_BATCH  | Same item twice in one batch
                | EMPTY_BATCH              | Batch submitted without lines
                | INVALID_DATE_RANGE       | start > end, or range too long
                | DATE_OUT_OF_RANGE        | Snapshot date in the future
                | SNAPSHOT_NAVIGATION      | prev/next day outside the data
                | CATALOG_CONFLICT         | Item or category name already taken
                | INVALID_KIT_COUNT        | Kit withdrawal count not a positive int
----------------|--------------------------|--------------------------------------
Stock           | INSUFFICIENT_STOCK       | Withdrawal exceeds current stock
----------------|--------------------------|--------------------------------------
Commit          | PARTIAL_WRITE            | Lines failed, header rolled back
                | ORPHANED_HEADER          | Lines failed AND header rollback failed
----------------|--------------------------|--------------------------------------
Reconciliation  | DUPLICATE_EVENT          | Imported event collides on its key
----------------|--------------------------|--------------------------------------
Aggregate       | AGGREGATE_STALE          | Cached stock is dirty (strict readers)
----------------|--------------------------|--------------------------------------
Lookup          | BATCH_NOT_FOUND          | Header id does not exist
                | KIT_TEMPLATE_NOT_FOUND   | Kit id unknown or kit inactive
----------------|--------------------------|--------------------------------------
Storage         | STORAGE_ERROR            | Backing store failure (retryable)

===============================================================================
PROPAGATION POLICY
===============================================================================

- Validation and stock errors are caller-facing business errors.  They are
  raised before anything is written, so nothing is ever partially applied.
- StorageError is caller-facing and marked retryable.
- PartialWriteError is raised only AFTER the compensating rollback ran.
  OrphanedHeaderError means the rollback itself failed and an operator must
  run the integrity repair (IntegrityService).
- DuplicateEventError is never raised out of an import; it is collected in
  the ImportResult and counted.
- AggregateStalenessError is never raised to end callers of the service
  facade; rebuild_aggregates() resolves the underlying condition.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"
    retryable: bool = False


# Validation exceptions


class LedgerValidationError(InventoryKernelError):
    """Base exception for rejected input.  Nothing has been written."""

    code: str = "VALIDATION_ERROR"


class NonPositiveQuantityError(LedgerValidationError):
    """A line quantity is zero or negative."""

    code: str = "NON_POSITIVE_QUANTITY"

    def __init__(self, item_id: UUID, quantity: Decimal):
        self.item_id = item_id
        self.quantity = quantity
        super().__init__(
            f"Quantity must be greater than 0 for item {item_id}: got {quantity}"
        )


class InvalidQuantityError(LedgerValidationError):
    """A line quantity is missing, not a number, NaN or infinite."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, item_id: UUID | str | None, quantity: object):
        self.item_id = item_id
        self.quantity = quantity
        super().__init__(f"Invalid quantity for item {item_id}: {quantity!r}")


class UnknownItemError(LedgerValidationError):
    """Item id does not exist in the catalog."""

    code: str = "UNKNOWN_ITEM"

    def __init__(self, item_id: UUID | str):
        self.item_id = item_id
        super().__init__(f"Unknown item: {item_id}")


class InactiveItemError(LedgerValidationError):
    """Item exists but has been deactivated."""

    code: str = "INACTIVE_ITEM"

    def __init__(self, item_id: UUID, item_name: str):
        self.item_id = item_id
        self.item_name = item_name
        super().__init__(f"Item '{item_name}' ({item_id}) is inactive")


class DuplicateItemInBatchError(LedgerValidationError):
    """The same item appears more than once in a single batch."""

    code: str = "DUPLICATE_ITEM_IN_BATCH"

    def __init__(self, item_id: UUID):
        self.item_id = item_id
        super().__init__(f"Item {item_id} appears more than once in the batch")


class EmptyBatchError(LedgerValidationError):
    """A batch was submitted without any line."""

    code: str = "EMPTY_BATCH"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"At least one item is required for a {kind}")


class InvalidDateRangeError(LedgerValidationError):
    """Report date range is malformed."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date: date, end_date: date, reason: str):
        self.start_date = start_date
        self.end_date = end_date
        self.reason = reason
        super().__init__(
            f"Invalid date range {start_date} .. {end_date}: {reason}"
        )


class DateOutOfRangeError(LedgerValidationError):
    """Requested date lies outside the reportable window."""

    code: str = "DATE_OUT_OF_RANGE"

    def __init__(self, requested: date, reason: str):
        self.requested = requested
        self.reason = reason
        super().__init__(f"Date {requested} is out of range: {reason}")


class SnapshotNavigationError(LedgerValidationError):
    """Previous/next day navigation would leave the available data."""

    code: str = "SNAPSHOT_NAVIGATION"

    def __init__(self, current: date, direction: str, reason: str):
        self.current = current
        self.direction = direction
        self.reason = reason
        super().__init__(
            f"Cannot navigate {direction} from {current}: {reason}"
        )


class CatalogConflictError(LedgerValidationError):
    """An item or category with this name already exists."""

    code: str = "CATALOG_CONFLICT"

    def __init__(self, entity: str, name: str):
        self.entity = entity
        self.name = name
        super().__init__(f"{entity} named '{name}' already exists")


class InvalidKitCountError(LedgerValidationError):
    """Number of kits on a kit withdrawal is not a positive whole number."""

    code: str = "INVALID_KIT_COUNT"

    def __init__(self, kit_template_id: UUID, kits: object):
        self.kit_template_id = kit_template_id
        self.kits = kits
        super().__init__(
            f"Kit count must be a whole number > 0 for kit {kit_template_id}: {kits!r}"
        )


# Stock exceptions


class InsufficientStockError(InventoryKernelError):
    """A withdrawal would drive an item's stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: UUID,
        item_name: str,
        available: Decimal,
        requested: Decimal,
    ):
        self.item_id = item_id
        self.item_name = item_name
        self.available = available
        self.requested = requested
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient stock for {item_name}. "
            f"Available: {available}, Requested: {requested}"
        )


# Commit protocol exceptions


class CommitError(InventoryKernelError):
    """Base exception for header-then-lines write failures."""

    code: str = "COMMIT_ERROR"


class PartialWriteError(CommitError):
    """
    Line insert failed after the header was written.

    Raised only after the compensating rollback removed the header, so the
    ledger is unchanged.  ``retryable`` is False when the line failure was a
    constraint violation: resubmitting the same batch fails the same way.
    """

    code: str = "PARTIAL_WRITE"
    retryable = True

    def __init__(self, kind: str, batch_id: UUID, cause: str, retryable: bool = True):
        self.kind = kind
        self.batch_id = batch_id
        self.cause = cause
        self.retryable = retryable
        super().__init__(
            f"Writing lines for {kind} {batch_id} failed and the header was "
            f"rolled back: {cause}"
        )


class OrphanedHeaderError(CommitError):
    """
    Line insert failed AND the compensating header delete failed.

    The header may remain without lines.  Requires operator repair through
    the integrity check.
    """

    code: str = "ORPHANED_HEADER"

    def __init__(self, kind: str, batch_id: UUID, cause: str, rollback_error: str):
        self.kind = kind
        self.batch_id = batch_id
        self.cause = cause
        self.rollback_error = rollback_error
        super().__init__(
            f"{kind} header {batch_id} may be orphaned: line insert failed "
            f"({cause}) and rollback failed ({rollback_error})"
        )


# Reconciliation exceptions


class ReconciliationError(InventoryKernelError):
    """Base exception for historical import reconciliation."""

    code: str = "RECONCILIATION_ERROR"


class DuplicateEventError(ReconciliationError):
    """Imported event collides with an existing or earlier candidate event."""

    code: str = "DUPLICATE_EVENT"

    def __init__(self, kind: str, item_id: UUID, occurred_at: str, existing: str):
        self.kind = kind
        self.item_id = item_id
        self.occurred_at = occurred_at
        self.existing = existing
        super().__init__(
            f"Duplicate {kind} event for item {item_id} at {occurred_at} "
            f"(already present as {existing})"
        )


# Aggregate exceptions


class AggregateStalenessError(InventoryKernelError):
    """The cached stock aggregate is not clean."""

    code: str = "AGGREGATE_STALE"

    def __init__(self, status: str, last_error: str | None = None):
        self.status = status
        self.last_error = last_error
        super().__init__(
            f"Stock aggregate is {status}; run rebuild_aggregates()"
            + (f" (last error: {last_error})" if last_error else "")
        )


# Lookup exceptions


class BatchNotFoundError(InventoryKernelError):
    """Collection or withdrawal header does not exist."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, kind: str, batch_id: UUID):
        self.kind = kind
        self.batch_id = batch_id
        super().__init__(f"{kind} not found: {batch_id}")


class KitTemplateNotFoundError(InventoryKernelError):
    """Kit template does not exist or is no longer active."""

    code: str = "KIT_TEMPLATE_NOT_FOUND"

    def __init__(self, kit_template_id: UUID):
        self.kit_template_id = kit_template_id
        super().__init__(f"Kit template not found: {kit_template_id}")


# Storage exceptions


class StorageError(InventoryKernelError):
    """The backing store failed.  Safe to retry the whole operation."""

    code: str = "STORAGE_ERROR"
    retryable = True

    def __init__(self, operation: str, cause: str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage failure during {operation}: {cause}")
