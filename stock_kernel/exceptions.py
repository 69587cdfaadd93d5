"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A rejected stock movement must tell the caller exactly why it was rejected.
Generic exceptions force callers to parse messages, which breaks as soon as
wording changes. Every error here therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (batch ids, quantities, skus)

Example - RIGHT way to handle a booking conflict:
    try:
        transfers.book(plan_id)
    except InsufficientStock as e:
        notify_planner(f"only {e.available} units now available")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- InvalidMovement
    |   +-- BatchNotFoundError
    |   +-- LocationNotFoundError
    |
    +-- InsufficientStock
    |
    +-- MergeError
    |   +-- EmptyMergeSet
    |   +-- MixedProduct
    |
    +-- TransferPlanError
    |   +-- TransferPlanNotFoundError
    |   +-- TransferPlanStateError
    |
    +-- ConsumptionEventError
    |   +-- ConsumptionEventNotFoundError
    |   +-- ConsumptionEventConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Movement        | INVALID_MOVEMENT            | Zero quantity, sign/type mismatch
                |                             | Inbound above original_quantity
                | BATCH_NOT_FOUND             | Referenced batch does not exist
                | LOCATION_NOT_FOUND          | Location missing or inactive
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Outbound would go negative, booking
                |                             | re-check failed, split too large
                |                             | Split or merge touches reserved units
----------------|-----------------------------|-----------------------------------------
Merge           | EMPTY_MERGE_SET             | Fewer than two batches given
                | MIXED_PRODUCT               | Batches belong to different SKUs
----------------|-----------------------------|-----------------------------------------
Transfer        | TRANSFER_PLAN_NOT_FOUND     | Plan id does not exist
                | TRANSFER_PLAN_STATE         | Operation not allowed in plan status
----------------|-----------------------------|-----------------------------------------
Consumption     | CONSUMPTION_EVENT_CONFLICT  | Same external_ref, different payload
                | CONSUMPTION_EVENT_NOT_FOUND | Event id does not exist
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only row

===============================================================================
PROPAGATION
===============================================================================

InvalidMovement, MergeError and ImmutabilityError are input or programming
errors: they abort the enclosing transaction and are never retried.
InsufficientStock at booking time is an expected outcome and should reach
the planner as an actionable message. A FIFO shortfall is NOT an exception:
see stock_kernel.domain.dtos.UnattributedShortfall.

===============================================================================
"""


class StockLedgerError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_LEDGER_ERROR"


# Movement-related exceptions


class InvalidMovement(StockLedgerError):
    """A ledger movement is structurally invalid."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, reason: str, **context: object):
        self.reason = reason
        self.context = context
        super().__init__(f"Invalid movement: {reason}")


class BatchNotFoundError(InvalidMovement):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"batch not found: {batch_id}", batch_id=batch_id)


class LocationNotFoundError(InvalidMovement):
    """Location with given ID was not found or is inactive."""

    code: str = "LOCATION_NOT_FOUND"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(
            f"location not found or inactive: {location_id}",
            location_id=location_id,
        )


# Stock-level exceptions


class InsufficientStock(StockLedgerError):
    """
    Requested quantity exceeds what the position can supply.

    Raised by outbound appends, split, merge, and by transfer booking
    when the commit-time re-check fails.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        batch_id: str,
        location_id: str | None,
        requested: int,
        available: int,
    ):
        self.batch_id = batch_id
        self.location_id = location_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for batch {batch_id}"
            + (f" at location {location_id}" if location_id else "")
            + f": requested {requested}, only {available} units now available"
        )


# Merge-related exceptions


class MergeError(StockLedgerError):
    """Base exception for merge precondition failures."""

    code: str = "MERGE_ERROR"


class EmptyMergeSet(MergeError):
    """Fewer than two distinct batches were supplied to merge."""

    code: str = "EMPTY_MERGE_SET"

    def __init__(self, batch_count: int):
        self.batch_count = batch_count
        super().__init__(
            f"Merge requires at least two distinct batches, got {batch_count}"
        )


class MixedProduct(MergeError):
    """Batches supplied to merge belong to different SKUs."""

    code: str = "MIXED_PRODUCT"

    def __init__(self, skus: list[str]):
        self.skus = sorted(set(skus))
        super().__init__(
            f"Cannot merge batches of different SKUs: {', '.join(self.skus)}"
        )


# Transfer-plan exceptions


class TransferPlanError(StockLedgerError):
    """Base exception for transfer plan errors."""

    code: str = "TRANSFER_PLAN_ERROR"


class TransferPlanNotFoundError(TransferPlanError):
    """Transfer plan with given ID was not found."""

    code: str = "TRANSFER_PLAN_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Transfer plan not found: {plan_id}")


class TransferPlanStateError(TransferPlanError):
    """Operation is not allowed in the plan's current status."""

    code: str = "TRANSFER_PLAN_STATE"

    def __init__(self, plan_id: str, status: str, operation: str):
        self.plan_id = plan_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} transfer plan {plan_id} in status '{status}'"
        )


# Consumption-event exceptions


class ConsumptionEventError(StockLedgerError):
    """Base exception for consumption event errors."""

    code: str = "CONSUMPTION_EVENT_ERROR"


class ConsumptionEventNotFoundError(ConsumptionEventError):
    """Consumption event with given ID was not found."""

    code: str = "CONSUMPTION_EVENT_NOT_FOUND"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Consumption event not found: {event_id}")


class ConsumptionEventConflictError(ConsumptionEventError):
    """
    An external reference was re-submitted with a different payload.

    Re-running the same event is idempotent; changing it is not allowed.
    """

    code: str = "CONSUMPTION_EVENT_CONFLICT"

    def __init__(self, external_ref: str, field: str):
        self.external_ref = external_ref
        self.field = field
        super().__init__(
            f"Consumption event {external_ref} already recorded with a different {field}"
        )


# Immutability-related exceptions


class ImmutabilityError(StockLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
