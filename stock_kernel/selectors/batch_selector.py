"""
Module: stock_kernel.selectors.batch_selector
Responsibility: Read-only batch lookups and stage history.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import StageHistoryRecord
from stock_kernel.models.batch import Batch, BatchStageHistory
from stock_kernel.selectors.base import BaseSelector


class BatchSelector(BaseSelector[Batch]):
    def stage_history(self, batch_id: UUID) -> list[StageHistoryRecord]:
        """Stage transitions of a batch in the order they were recorded."""
        stmt = (
            select(BatchStageHistory)
            .where(BatchStageHistory.batch_id == batch_id)
            .order_by(BatchStageHistory.id)
        )
        return [StageHistoryRecord.from_model(h) for h in self.session.scalars(stmt)]

    def batch_ids_for_sku(self, sku: str) -> list[UUID]:
        stmt = (
            select(Batch.id)
            .where(Batch.sku == sku)
            .order_by(Batch.received_date, Batch.batch_number)
        )
        return list(self.session.scalars(stmt))

    def parents_of(self, batch_id: UUID) -> list[UUID]:
        """Batches this one was split from or merged out of."""
        batch = self.session.get(Batch, batch_id)
        if batch is None or not batch.parent_batch_ids:
            return []
        return [UUID(str(p)) for p in batch.parent_batch_ids]
