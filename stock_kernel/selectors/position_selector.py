"""
Module: stock_kernel.selectors.position_selector
Responsibility: Derive stock positions -- net quantity and cost basis per
    (batch, location) -- from ledger entries at query time.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/dtos.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - No stored balances.  Every position is a GROUP BY over
      stock_ledger_entries joined to batches and locations.
    - Read-only.  Never flushes or writes.

Failure modes:
    - Returns an empty list when no entries match the filter.

Audit relevance:
    positions_for() is the read path that every availability figure, FIFO
    walk and inventory summary starts from.  Its unit_cost is the
    quantity-weighted cost of what actually flowed into the position.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from stock_kernel.db.types import round_cost
from stock_kernel.domain.dtos import PositionFilter, StockPosition
from stock_kernel.models.batch import Batch
from stock_kernel.models.ledger import StockLedgerEntry
from stock_kernel.models.location import Location
from stock_kernel.selectors.base import BaseSelector


class PositionSelector(BaseSelector[StockLedgerEntry]):
    """
    Selector for derived (batch, location) stock positions.

    Contract:
        positions_for() returns positions ordered oldest-first by
        (batch received_date, first inbound movement, first entry id), which
        is also the FIFO draw order.

    Guarantees:
        - quantity == total_in - total_out for every returned position.
        - Positions with quantity <= 0 are omitted unless include_depleted.
    """

    def _aggregate_query(self):
        entry = StockLedgerEntry
        inbound_qty = case((entry.quantity > 0, entry.quantity), else_=0)
        outbound_qty = case((entry.quantity < 0, -entry.quantity), else_=0)
        inbound_value = case((entry.quantity > 0, entry.total_cost), else_=0)
        inbound_at = case((entry.quantity > 0, entry.created_at), else_=None)

        net = func.sum(entry.quantity).label("net")
        first_inbound = func.min(inbound_at).label("first_received_at")
        first_entry = func.min(entry.id).label("first_entry_id")

        stmt = (
            select(
                entry.batch_id,
                entry.location_id,
                func.sum(inbound_qty).label("total_in"),
                func.sum(outbound_qty).label("total_out"),
                net,
                func.sum(inbound_value).label("inbound_value"),
                first_inbound,
                func.min(entry.created_at).label("first_movement_at"),
                func.max(entry.created_at).label("last_movement_at"),
                first_entry,
                Batch.batch_number,
                Batch.sku,
                Batch.product_name,
                Batch.received_date,
                Batch.stage,
                Batch.unit_cost.label("batch_unit_cost"),
                Location.code,
                Location.name,
                Location.location_type,
            )
            .join(Batch, Batch.id == entry.batch_id)
            .join(Location, Location.id == entry.location_id)
            .group_by(
                entry.batch_id,
                entry.location_id,
                Batch.batch_number,
                Batch.sku,
                Batch.product_name,
                Batch.received_date,
                Batch.stage,
                Batch.unit_cost,
                Location.code,
                Location.name,
                Location.location_type,
            )
        )
        return stmt, net

    def positions_for(self, position_filter: PositionFilter | None = None) -> list[StockPosition]:
        """
        Positions matching the filter, oldest first.

        Args:
            position_filter: batch/location/sku criteria.  None means all
                positions with stock on hand.
        """
        position_filter = position_filter or PositionFilter()
        stmt, net = self._aggregate_query()

        if position_filter.batch_id is not None:
            stmt = stmt.where(StockLedgerEntry.batch_id == position_filter.batch_id)
        if position_filter.location_id is not None:
            stmt = stmt.where(StockLedgerEntry.location_id == position_filter.location_id)
        if position_filter.sku is not None:
            stmt = stmt.where(Batch.sku == position_filter.sku)
        if not position_filter.include_depleted:
            stmt = stmt.having(net > 0)

        positions = [self._to_position(row) for row in self.session.execute(stmt)]
        positions.sort(key=lambda p: p.fifo_key)
        return positions

    def net_position(self, batch_id: UUID, location_id: UUID | None = None) -> int:
        """
        Net on-hand quantity of a batch, at one location or over all of them.
        """
        stmt = select(func.coalesce(func.sum(StockLedgerEntry.quantity), 0)).where(
            StockLedgerEntry.batch_id == batch_id
        )
        if location_id is not None:
            stmt = stmt.where(StockLedgerEntry.location_id == location_id)
        return int(self.session.scalar(stmt) or 0)

    def net_by_location(self, batch_id: UUID) -> dict[UUID, int]:
        """Net quantity per location for one batch, including zeros."""
        stmt = (
            select(StockLedgerEntry.location_id, func.sum(StockLedgerEntry.quantity))
            .where(StockLedgerEntry.batch_id == batch_id)
            .group_by(StockLedgerEntry.location_id)
        )
        return {location_id: int(qty) for location_id, qty in self.session.execute(stmt)}

    @staticmethod
    def _to_position(row) -> StockPosition:
        total_in = int(row.total_in or 0)
        quantity = int(row.net or 0)
        if total_in > 0:
            unit_cost = round_cost(Decimal(row.inbound_value or 0) / Decimal(total_in))
        else:
            unit_cost = round_cost(Decimal(row.batch_unit_cost))

        return StockPosition(
            batch_id=row.batch_id,
            batch_number=row.batch_number,
            sku=row.sku,
            product_name=row.product_name,
            location_id=row.location_id,
            location_code=row.code,
            location_name=row.name,
            location_type=str(row.location_type),
            total_in=total_in,
            total_out=int(row.total_out or 0),
            quantity=quantity,
            unit_cost=unit_cost,
            total_value=Decimal(quantity) * unit_cost,
            first_received_at=row.first_received_at or row.first_movement_at,
            last_movement_at=row.last_movement_at,
            first_entry_id=int(row.first_entry_id),
            received_date=row.received_date,
            stage=str(row.stage),
        )
