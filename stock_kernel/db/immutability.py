"""
ORM-level immutability enforcement for the stock ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

Every quantity and every COGS figure is a sum over ledger rows.  If a row
could be edited after the fact, positions, reservations and attributed cost
would silently change underneath the reports that already used them.
Corrections are therefore made by appending offsetting entries, never by
rewriting history.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable                 | Mutable fields
--------------------|--------------------------------|--------------------------
StockLedgerEntry    | ALWAYS                         | none
AttributionDraw     | ALWAYS                         | none
BatchStageHistory   | ALWAYS                         | none
Batch               | Identity/cost fields ALWAYS    | stage, notes
ConsumptionEvent    | After processed_at is set      | none once processed

Bulk UPDATE/DELETE statements bypass mapper events.  Services never issue
them against these tables.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to bypass enforcement call unregister_immutability_listeners()
and re-register afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Batch columns that define cost provenance and FIFO position.
BATCH_FROZEN_FIELDS = frozenset({
    "batch_number",
    "sku",
    "product_name",
    "original_quantity",
    "unit_cost",
    "received_date",
    "parent_batch_ids",
})


def _violation(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(target.id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]


def _check_ledger_entry_update(mapper, connection, target):
    """Ledger entries are append-only."""
    raise _violation(
        "StockLedgerEntry", target, "UPDATE",
        "Ledger entries are append-only; post an offsetting entry instead",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    raise _violation(
        "StockLedgerEntry", target, "DELETE",
        "Ledger entries cannot be deleted",
    )


def _check_draw_update(mapper, connection, target):
    raise _violation(
        "AttributionDraw", target, "UPDATE",
        "Attribution draws are immutable once recorded",
    )


def _check_draw_delete(mapper, connection, target):
    raise _violation(
        "AttributionDraw", target, "DELETE",
        "Attribution draws cannot be deleted",
    )


def _check_stage_history_update(mapper, connection, target):
    raise _violation(
        "BatchStageHistory", target, "UPDATE",
        "Stage history is append-only",
    )


def _check_stage_history_delete(mapper, connection, target):
    raise _violation(
        "BatchStageHistory", target, "DELETE",
        "Stage history cannot be deleted",
    )


def _check_batch_update(mapper, connection, target):
    """
    Block changes to a batch's identity and cost fields.

    Stage and notes may change.  Split and merge create new batches rather
    than editing unit_cost or original_quantity.
    """
    for field in _changed_fields(target):
        if field in BATCH_FROZEN_FIELDS:
            raise _violation(
                "Batch", target, "UPDATE",
                f"Cannot modify field '{field}' on a batch; split or merge instead",
                field=field,
            )


def _check_batch_delete(mapper, connection, target):
    raise _violation(
        "Batch", target, "DELETE",
        "Batches cannot be deleted; their ledger history references them",
    )


def _check_consumption_event_update(mapper, connection, target):
    """
    Allow the single unprocessed -> processed write; block everything after.
    """
    processed_history = get_history(target, "processed_at")
    if processed_history.deleted:
        was_processed = processed_history.deleted[0] is not None
    elif processed_history.added:
        was_processed = False
    else:
        was_processed = target.processed_at is not None

    if was_processed:
        changed = _changed_fields(target)
        if changed:
            raise _violation(
                "ConsumptionEvent", target, "UPDATE",
                f"Cannot modify field '{changed[0]}' on a processed consumption event",
                field=changed[0],
            )


def _check_consumption_event_delete(mapper, connection, target):
    if target.processed_at is not None:
        raise _violation(
            "ConsumptionEvent", target, "DELETE",
            "Processed consumption events cannot be deleted",
        )


def _listener_table():
    from stock_kernel.models.attribution import AttributionDraw, ConsumptionEvent
    from stock_kernel.models.batch import Batch, BatchStageHistory
    from stock_kernel.models.ledger import StockLedgerEntry

    return [
        (StockLedgerEntry, "before_update", _check_ledger_entry_update),
        (StockLedgerEntry, "before_delete", _check_ledger_entry_delete),
        (AttributionDraw, "before_update", _check_draw_update),
        (AttributionDraw, "before_delete", _check_draw_delete),
        (BatchStageHistory, "before_update", _check_stage_history_update),
        (BatchStageHistory, "before_delete", _check_stage_history_delete),
        (Batch, "before_update", _check_batch_update),
        (Batch, "before_delete", _check_batch_delete),
        (ConsumptionEvent, "before_update", _check_consumption_event_update),
        (ConsumptionEvent, "before_delete", _check_consumption_event_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
