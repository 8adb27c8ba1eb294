"""Application numbering and carry-forward baseline."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.calculators.types import CarryForward
from progress_billing.models import PaymentApplication, Subcontract
from progress_billing.services.result import ErrorCode, ServiceResult


class PaymentApplicationSequencer:
    """Assigns the next application number for a subcontract.

    Always queries; the most recent application is never cached, so
    concurrent writers cannot hand out a stale baseline. The number is taken
    over every row for the subcontract (soft-deleted ones included) because
    the (subcontract_id, application_number) unique index covers them too.
    The carry-forward comes from the latest live application.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_for(
        self,
        subcontract_id: UUID,
        tenant_id: UUID | None = None,
    ) -> ServiceResult[CarryForward]:
        """Return the next number and carry-forward baseline."""
        exists_query = select(Subcontract.subcontract_id).where(
            Subcontract.subcontract_id == subcontract_id,
            Subcontract.is_deleted.is_(False),
        )
        if tenant_id is not None:
            exists_query = exists_query.where(Subcontract.tenant_id == tenant_id)
        if await self.session.scalar(exists_query) is None:
            return ServiceResult.failure(
                ErrorCode.SUBCONTRACT_NOT_FOUND, "Subcontract not found"
            )

        max_number = await self.session.scalar(
            select(func.max(PaymentApplication.application_number)).where(
                PaymentApplication.subcontract_id == subcontract_id
            )
        )
        prior = await self.latest_application(subcontract_id)

        if prior is None:
            return ServiceResult.success(
                CarryForward(application_number=(max_number or 0) + 1)
            )

        return ServiceResult.success(
            CarryForward(
                application_number=(max_number or 0) + 1,
                work_completed_previous=prior.work_completed_to_date,
                retainage_previous=prior.total_retainage,
                less_previous_certificates=prior.total_earned_less_retainage,
                previous_period_end=prior.period_end,
            )
        )

    async def latest_application(self, subcontract_id: UUID) -> PaymentApplication | None:
        """Live application with the highest number, if any."""
        result = await self.session.execute(
            select(PaymentApplication)
            .where(
                PaymentApplication.subcontract_id == subcontract_id,
                PaymentApplication.is_deleted.is_(False),
            )
            .order_by(PaymentApplication.application_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
