"""
Module: stock_kernel.selectors.ledger_selector
Responsibility: Read-only access to raw ledger entries in commit order.
Architecture position: Kernel > Selectors.
"""

from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import LedgerEntryRecord
from stock_kernel.models.ledger import StockLedgerEntry
from stock_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[StockLedgerEntry]):
    """
    Selector over StockLedgerEntry rows.

    Guarantees:
        - Results are ordered by entry id, which is commit order.
    """

    def entries_for_batch(self, batch_id: UUID) -> list[LedgerEntryRecord]:
        """All movements of a batch, oldest first."""
        stmt = (
            select(StockLedgerEntry)
            .where(StockLedgerEntry.batch_id == batch_id)
            .order_by(StockLedgerEntry.id)
        )
        return [LedgerEntryRecord.from_model(e) for e in self.session.scalars(stmt)]

    def entries_for_location(self, location_id: UUID) -> list[LedgerEntryRecord]:
        stmt = (
            select(StockLedgerEntry)
            .where(StockLedgerEntry.location_id == location_id)
            .order_by(StockLedgerEntry.id)
        )
        return [LedgerEntryRecord.from_model(e) for e in self.session.scalars(stmt)]

    def entries_for_consumption_event(self, event_id: UUID) -> list[LedgerEntryRecord]:
        stmt = (
            select(StockLedgerEntry)
            .where(StockLedgerEntry.consumption_event_id == event_id)
            .order_by(StockLedgerEntry.id)
        )
        return [LedgerEntryRecord.from_model(e) for e in self.session.scalars(stmt)]

    def entries_between(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        movement_types: Iterable[str] | None = None,
    ) -> list[LedgerEntryRecord]:
        """
        Entries with start <= created_at < end, optionally restricted to
        the given movement types.
        """
        stmt = select(StockLedgerEntry)
        if start is not None:
            stmt = stmt.where(StockLedgerEntry.created_at >= start)
        if end is not None:
            stmt = stmt.where(StockLedgerEntry.created_at < end)
        if movement_types is not None:
            stmt = stmt.where(
                StockLedgerEntry.movement_type.in_([str(getattr(m, "value", m)) for m in movement_types])
            )
        stmt = stmt.order_by(StockLedgerEntry.id)
        return [LedgerEntryRecord.from_model(e) for e in self.session.scalars(stmt)]

    def entry_count(self) -> int:
        return self.session.scalar(select(func.count(StockLedgerEntry.id))) or 0
