"""
Module: stock_kernel.selectors.report_selector
Responsibility: Inventory and cost-of-goods reports derived from the ledger,
    positions, reservations and attribution draws.
Architecture position: Kernel > Selectors.

Reports:
    batch_fifo_report    -- per-batch depletion: sold, lost, remaining, COGS,
                            first/last sale, days to deplete.
    unattributed_events  -- processed consumption events with a shortfall.
    stock_by_product     -- on-hand, reserved and available per SKU.
    stock_by_location    -- on-hand, reserved and available per location.
    inventory_summary    -- totals over both groupings.
    cogs_by_movement     -- outbound value per movement type over a period.
    product_cogs         -- attributed COGS per SKU over a period, sales and
                            losses apart.

Invariants enforced:
    - All figures derive from ledger/draw rows at query time.
    - Money totals are summed as Decimal in Python, never as floats.
"""

from collections import defaultdict
from datetime import date, datetime, time, timezone
from decimal import Decimal

from sqlalchemy import func, select

from stock_kernel.db.types import round_cost
from stock_kernel.domain.dtos import (
    BatchFifoReportRow,
    CogsMovementRow,
    InventorySummary,
    LocationStock,
    PositionFilter,
    ProductCogsRow,
    ProductStock,
    UnattributedEventRow,
    UnattributedReport,
)
from stock_kernel.models.attribution import AttributionDraw, ConsumptionEvent, ConsumptionType
from stock_kernel.models.batch import Batch
from stock_kernel.models.ledger import COGS_MOVEMENT_TYPES, StockLedgerEntry
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.position_selector import PositionSelector
from stock_kernel.selectors.reservation_selector import ReservationSelector


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class ReportSelector(BaseSelector[StockLedgerEntry]):
    """Read-only inventory and COGS reports."""

    def batch_fifo_report(self, sku: str | None = None) -> list[BatchFifoReportRow]:
        """
        FIFO depletion profile of every batch, oldest first.

        Sold and lost quantities come from attribution draws.  Remaining is
        the batch's net ledger quantity over all locations.
        """
        batch_stmt = select(Batch).order_by(Batch.received_date, Batch.batch_number)
        if sku is not None:
            batch_stmt = batch_stmt.where(Batch.sku == sku)
        batches = list(self.session.scalars(batch_stmt))
        if not batches:
            return []

        batch_ids = [b.id for b in batches]

        net_stmt = (
            select(StockLedgerEntry.batch_id, func.sum(StockLedgerEntry.quantity))
            .where(StockLedgerEntry.batch_id.in_(batch_ids))
            .group_by(StockLedgerEntry.batch_id)
        )
        net_by_batch = {bid: int(qty) for bid, qty in self.session.execute(net_stmt)}

        draw_stmt = (
            select(
                AttributionDraw.batch_id,
                AttributionDraw.event_type,
                AttributionDraw.quantity,
                AttributionDraw.cogs,
                AttributionDraw.event_date,
            )
            .where(AttributionDraw.batch_id.in_(batch_ids))
        )
        sold: dict = defaultdict(int)
        lost: dict = defaultdict(int)
        cogs: dict = defaultdict(lambda: Decimal("0"))
        sale_dates: dict = defaultdict(list)
        for batch_id, event_type, quantity, draw_cogs, event_date in self.session.execute(draw_stmt):
            cogs[batch_id] += Decimal(draw_cogs)
            if event_type == ConsumptionType.LOSS:
                lost[batch_id] += quantity
            else:
                sold[batch_id] += quantity
                sale_dates[batch_id].append(event_date)

        rows = []
        for batch in batches:
            remaining = net_by_batch.get(batch.id, 0)
            dates = sale_dates.get(batch.id, [])
            first_sale = min(dates) if dates else None
            last_sale = max(dates) if dates else None
            days_to_deplete = None
            if remaining == 0 and last_sale is not None:
                days_to_deplete = (last_sale - batch.received_date).days

            rows.append(
                BatchFifoReportRow(
                    batch_id=batch.id,
                    batch_number=batch.batch_number,
                    sku=batch.sku,
                    product_name=batch.product_name,
                    received_date=batch.received_date,
                    stage=str(batch.stage),
                    original_quantity=batch.original_quantity,
                    unit_cost=round_cost(Decimal(batch.unit_cost)),
                    quantity_sold=sold.get(batch.id, 0),
                    quantity_lost=lost.get(batch.id, 0),
                    quantity_remaining=remaining,
                    cogs_recognized=round_cost(cogs.get(batch.id, Decimal("0"))),
                    first_sale_date=first_sale,
                    last_sale_date=last_sale,
                    days_to_deplete=days_to_deplete,
                )
            )
        return rows

    def unattributed_events(self) -> UnattributedReport:
        """Processed events that could not be fully attributed."""
        stmt = (
            select(ConsumptionEvent)
            .where(
                ConsumptionEvent.processed_at.is_not(None),
                ConsumptionEvent.unattributed_quantity > 0,
            )
            .order_by(ConsumptionEvent.event_date, ConsumptionEvent.external_ref)
        )
        return UnattributedReport(
            events=tuple(
                UnattributedEventRow(
                    event_id=e.id,
                    external_ref=e.external_ref,
                    sku=e.sku,
                    event_type=str(e.event_type),
                    event_date=e.event_date,
                    quantity=e.quantity,
                    unattributed_quantity=e.unattributed_quantity,
                )
                for e in self.session.scalars(stmt)
            )
        )

    def stock_by_product(self) -> list[ProductStock]:
        positions = PositionSelector(self.session).positions_for(PositionFilter())
        reserved = ReservationSelector(self.session).reservation_map()

        groups: dict[str, list] = defaultdict(list)
        for p in positions:
            groups[p.sku].append(p)

        result = []
        for sku in sorted(groups):
            group = groups[sku]
            qty = sum(p.quantity for p in group)
            res = sum(reserved.get((p.batch_id, p.location_id), 0) for p in group)
            avail = sum(
                max(0, p.quantity - reserved.get((p.batch_id, p.location_id), 0)) for p in group
            )
            result.append(
                ProductStock(
                    sku=sku,
                    product_name=group[0].product_name,
                    total_quantity=qty,
                    reserved_quantity=res,
                    available_quantity=avail,
                    total_value=sum((p.total_value for p in group), Decimal("0")),
                    batch_count=len({p.batch_id for p in group}),
                    location_count=len({p.location_id for p in group}),
                )
            )
        return result

    def stock_by_location(self) -> list[LocationStock]:
        positions = PositionSelector(self.session).positions_for(PositionFilter())
        reserved = ReservationSelector(self.session).reservation_map()

        groups: dict = defaultdict(list)
        for p in positions:
            groups[p.location_id].append(p)

        result = []
        for group in groups.values():
            head = group[0]
            result.append(
                LocationStock(
                    location_id=head.location_id,
                    location_code=head.location_code,
                    location_name=head.location_name,
                    location_type=head.location_type,
                    total_quantity=sum(p.quantity for p in group),
                    reserved_quantity=sum(
                        reserved.get((p.batch_id, p.location_id), 0) for p in group
                    ),
                    available_quantity=sum(
                        max(0, p.quantity - reserved.get((p.batch_id, p.location_id), 0))
                        for p in group
                    ),
                    total_value=sum((p.total_value for p in group), Decimal("0")),
                    product_count=len({p.sku for p in group}),
                )
            )
        result.sort(key=lambda loc: loc.location_code)
        return result

    def inventory_summary(self) -> InventorySummary:
        by_product = self.stock_by_product()
        by_location = self.stock_by_location()
        return InventorySummary(
            total_units=sum(p.total_quantity for p in by_product),
            total_value=sum((p.total_value for p in by_product), Decimal("0")),
            unique_products=len(by_product),
            unique_locations=len(by_location),
            by_product=tuple(by_product),
            by_location=tuple(by_location),
        )

    def cogs_by_movement(
        self,
        start: date | datetime,
        end: date | datetime,
    ) -> list[CogsMovementRow]:
        """
        Outbound value per COGS movement type with start <= created_at < end.

        Only removals count; a positive reconciliation (found stock) is not
        cost of goods.
        """
        types = sorted(m.value for m in COGS_MOVEMENT_TYPES)
        stmt = (
            select(
                StockLedgerEntry.movement_type,
                StockLedgerEntry.quantity,
                StockLedgerEntry.total_cost,
            )
            .where(
                StockLedgerEntry.movement_type.in_(types),
                StockLedgerEntry.quantity < 0,
                StockLedgerEntry.created_at >= _as_datetime(start),
                StockLedgerEntry.created_at < _as_datetime(end),
            )
        )

        quantity: dict[str, int] = defaultdict(int)
        value: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        count: dict[str, int] = defaultdict(int)
        for movement_type, qty, total_cost in self.session.execute(stmt):
            key = str(movement_type)
            quantity[key] += -qty
            value[key] += -Decimal(total_cost)
            count[key] += 1

        return [
            CogsMovementRow(
                movement_type=t,
                quantity=quantity.get(t, 0),
                value=round_cost(value.get(t, Decimal("0"))),
                entry_count=count.get(t, 0),
            )
            for t in types
        ]

    def product_cogs(
        self,
        start: date,
        end: date,
        sku: str | None = None,
    ) -> list[ProductCogsRow]:
        """
        Attributed COGS per SKU for events with start <= event_date < end.

        Figures come from attribution draws, so a unit is costed at the batch
        it was actually drawn from.  SKUs without draws in the period are
        omitted.
        """
        stmt = (
            select(
                Batch.sku,
                Batch.product_name,
                AttributionDraw.event_type,
                AttributionDraw.quantity,
                AttributionDraw.cogs,
            )
            .join(Batch, Batch.id == AttributionDraw.batch_id)
            .where(
                AttributionDraw.event_date >= start,
                AttributionDraw.event_date < end,
            )
        )
        if sku is not None:
            stmt = stmt.where(Batch.sku == sku)

        names: dict[str, str] = {}
        sold: dict[str, int] = defaultdict(int)
        lost: dict[str, int] = defaultdict(int)
        sold_cost: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        lost_cost: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for row_sku, product_name, event_type, quantity, cogs in self.session.execute(stmt):
            names.setdefault(row_sku, product_name)
            if event_type == ConsumptionType.LOSS:
                lost[row_sku] += quantity
                lost_cost[row_sku] += Decimal(cogs)
            else:
                sold[row_sku] += quantity
                sold_cost[row_sku] += Decimal(cogs)

        rows = []
        for row_sku in sorted(names):
            units_sold = sold.get(row_sku, 0)
            total = sold_cost.get(row_sku, Decimal("0")) + lost_cost.get(row_sku, Decimal("0"))
            rows.append(
                ProductCogsRow(
                    sku=row_sku,
                    product_name=names[row_sku],
                    period_start=start,
                    period_end=end,
                    units_sold=units_sold,
                    product_cost=round_cost(sold_cost.get(row_sku, Decimal("0"))),
                    units_lost=lost.get(row_sku, 0),
                    inventory_losses=round_cost(lost_cost.get(row_sku, Decimal("0"))),
                    total_cogs=round_cost(total),
                    avg_cogs_per_unit=round_cost(total / units_sold) if units_sold else Decimal("0"),
                )
            )
        return rows
