"""
stock_engines.fifo -- pure FIFO draw planning.

Responsibility:
    Given the on-hand positions of one SKU and a quantity to consume, decide
    which (batch, location) positions supply it, oldest first, and at what
    cost.  No database access: the caller persists the plan.

Architecture position:
    Engines -- pure calculation, zero I/O.  May import stock_kernel.domain
    and stock_kernel.logging_config only.

Invariants enforced:
    - Oldest first: candidates are consumed in (received_date,
      first_received_at, first_entry_id) order.
    - Each draw takes min(remaining, candidate.available); no candidate is
      overdrawn.
    - sum(draw quantities) + shortfall == requested quantity.
    - cogs == quantity * unit_cost, exact Decimal.

Failure modes:
    - ValueError if the requested quantity is not a positive whole number.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from stock_engines.tracer import traced_engine
from stock_kernel.domain.costing import extend_cost
from stock_kernel.domain.dtos import StockPosition


@dataclass(frozen=True)
class DrawCandidate:
    """An on-hand position that may supply units, with its batch cost."""

    batch_id: UUID
    location_id: UUID
    available: int
    unit_cost: Decimal
    received_date: date
    first_received_at: datetime
    first_entry_id: int

    @property
    def fifo_key(self) -> tuple[date, datetime, int]:
        return (self.received_date, self.first_received_at, self.first_entry_id)

    @classmethod
    def from_position(cls, position: StockPosition, unit_cost: Decimal | None = None) -> DrawCandidate:
        """
        Candidate from a derived position.  unit_cost overrides the
        position's weighted cost (callers pass the batch unit cost).
        """
        return cls(
            batch_id=position.batch_id,
            location_id=position.location_id,
            available=position.quantity,
            unit_cost=unit_cost if unit_cost is not None else position.unit_cost,
            received_date=position.received_date,
            first_received_at=position.first_received_at,
            first_entry_id=position.first_entry_id,
        )


@dataclass(frozen=True)
class PlannedDraw:
    batch_id: UUID
    location_id: UUID
    quantity: int
    unit_cost: Decimal

    @property
    def cogs(self) -> Decimal:
        return extend_cost(self.quantity, self.unit_cost)


@dataclass(frozen=True)
class DrawPlan:
    """Result of planning: the draws plus whatever could not be covered."""

    requested: int
    draws: tuple[PlannedDraw, ...]

    @property
    def attributed(self) -> int:
        return sum(d.quantity for d in self.draws)

    @property
    def shortfall(self) -> int:
        return self.requested - self.attributed

    @property
    def total_cogs(self) -> Decimal:
        return sum((d.cogs for d in self.draws), Decimal("0"))


@traced_engine("fifo", "1.0", fingerprint_fields=("quantity",))
def plan_draws(candidates: Iterable[DrawCandidate], quantity: int) -> DrawPlan:
    """
    Plan FIFO draws of ``quantity`` units across ``candidates``.

    Candidates with nothing available are ignored.  When the candidates
    cannot cover the quantity the plan draws everything it can and reports
    the remainder as shortfall.

    Raises:
        ValueError: If quantity is not a positive whole number.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"Quantity to attribute must be a positive whole number, got {quantity!r}")

    ordered = sorted((c for c in candidates if c.available > 0), key=lambda c: c.fifo_key)

    draws: list[PlannedDraw] = []
    remaining = quantity
    for candidate in ordered:
        if remaining == 0:
            break
        take = min(remaining, candidate.available)
        draws.append(
            PlannedDraw(
                batch_id=candidate.batch_id,
                location_id=candidate.location_id,
                quantity=take,
                unit_cost=candidate.unit_cost,
            )
        )
        remaining -= take

    return DrawPlan(requested=quantity, draws=tuple(draws))
