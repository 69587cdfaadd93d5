"""
Kernel Invariants Contract.

These invariants are structural law for the stock ledger. No configuration
may switch them off. This module declares them; enforcement is distributed
across LedgerService, BatchService, TransferService, AttributionService and
the ORM immutability listeners.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the stock kernel."""

    APPEND_ONLY = "append_only"
    """Ledger entries, attribution draws and stage history rows are never
    updated or deleted. Enforced by stock_kernel.db.immutability."""

    NON_NEGATIVE_POSITION = "non_negative_position"
    """No (batch, location) position may go below zero. Enforced by
    LedgerService.append under a batch row lock."""

    CONSERVATION = "conservation"
    """Split and merge move quantity between batches without creating or
    destroying units. Enforced by BatchService inside one savepoint."""

    COST_PROVENANCE = "cost_provenance"
    """Split preserves unit cost exactly; merge derives the
    quantity-weighted average. Batch cost fields are immutable."""

    DERIVED_POSITIONS = "derived_positions"
    """Positions and reservations are computed from rows, never stored."""

    IDEMPOTENT_ATTRIBUTION = "idempotent_attribution"
    """A processed consumption event never draws again. Enforced by the
    unique external_ref and the processed marker."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "stock_engines",
    "stock_services",
    "stock_config",
    "scripts",
)
