"""
Costing -- pure cost arithmetic shared by batch operations and positions.

Responsibility:
    Quantity-weighted average unit cost for merges and for the cost basis
    of a derived stock position.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Exact Decimal arithmetic; the only rounding is the final round_cost().
"""

from decimal import Decimal
from typing import Iterable

from stock_kernel.db.types import COST_DECIMAL_PLACES, round_cost


def weighted_average_cost(
    layers: Iterable[tuple[int, Decimal]],
    decimal_places: int = COST_DECIMAL_PLACES,
) -> Decimal:
    """
    Quantity-weighted average of (quantity, unit_cost) layers.

    Preconditions: at least one layer, every quantity > 0.
    Postconditions: returns sum(q * c) / sum(q) rounded half-up to
        ``decimal_places``.

    Raises:
        ValueError: if no layers are given or the total quantity is not positive.
    """
    total_quantity = 0
    total_value = Decimal("0")
    for quantity, unit_cost in layers:
        if quantity <= 0:
            raise ValueError(f"Layer quantity must be positive, got {quantity}")
        total_quantity += quantity
        total_value += Decimal(quantity) * Decimal(unit_cost)

    if total_quantity <= 0:
        raise ValueError("Weighted average needs at least one layer")

    return round_cost(total_value / Decimal(total_quantity), decimal_places)


def extend_cost(quantity: int, unit_cost: Decimal) -> Decimal:
    """Total cost of ``quantity`` units; sign follows quantity."""
    return Decimal(quantity) * Decimal(unit_cost)
