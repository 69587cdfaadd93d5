"""
Module: stock_kernel.selectors.transfer_selector
Responsibility: Read-only access to transfer plans and their lines.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import TransferPlanInfo
from stock_kernel.exceptions import TransferPlanNotFoundError
from stock_kernel.models.transfer import TransferPlan, TransferStatus
from stock_kernel.selectors.base import BaseSelector


class TransferSelector(BaseSelector[TransferPlan]):
    def get_plan(self, plan_id: UUID) -> TransferPlanInfo:
        """
        Raises:
            TransferPlanNotFoundError: If no plan has this id.
        """
        plan = self.session.get(TransferPlan, plan_id)
        if plan is None:
            raise TransferPlanNotFoundError(str(plan_id))
        return TransferPlanInfo.from_model(plan)

    def plans(
        self,
        status: TransferStatus | str | None = None,
        source_location_id: UUID | None = None,
    ) -> list[TransferPlanInfo]:
        stmt = select(TransferPlan)
        if status is not None:
            stmt = stmt.where(TransferPlan.status == TransferStatus(status).value)
        if source_location_id is not None:
            stmt = stmt.where(TransferPlan.source_location_id == source_location_id)
        stmt = stmt.order_by(TransferPlan.created_at, TransferPlan.id)
        return [TransferPlanInfo.from_model(p) for p in self.session.scalars(stmt)]
