"""Payment application service - create, revise and pay progress billings."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.calculators.retainage import RetainageCalculator
from progress_billing.database import lock_subcontract
from progress_billing.models import PaymentApplication, Subcontract
from progress_billing.models.base import utcnow
from progress_billing.services.base import BaseService
from progress_billing.services.result import ErrorCode, Page, ServiceResult
from progress_billing.services.sequencer import PaymentApplicationSequencer
from progress_billing.services.state_machine import (
    ApplicationSnapshot,
    ApplicationStatusWorkflow,
    InvalidTransitionError,
    PaymentApplicationStatus,
)

ENTITY = "payment_application"


def _ledger_totals(subcontract: Subcontract) -> dict[str, Decimal]:
    return {
        "billed_to_date": subcontract.billed_to_date,
        "paid_to_date": subcontract.paid_to_date,
        "retainage_held": subcontract.retainage_held,
    }


class PaymentApplicationService(BaseService):
    """Service for the payment application lifecycle.

    Operations:
    - create_payment_application: number, carry forward and derive a new draft
    - update_payment_application: recompute amounts, move status, post to ledger
    - get_payment_application / list_payment_applications
    - delete_payment_application: soft delete of the latest draft

    Every write runs as one unit of work on the session; the parent
    subcontract row is locked before numbering or ledger postings.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        actor: str | None = None,
        correlation_id: str | None = None,
        workflow: ApplicationStatusWorkflow | None = None,
    ):
        super().__init__(session, tenant_id, actor, correlation_id)
        self.sequencer = PaymentApplicationSequencer(session)
        self.workflow = workflow or ApplicationStatusWorkflow()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_payment_application(
        self,
        subcontract_id: UUID,
        period_start: date,
        period_end: date,
        work_completed_this_period: Decimal,
        stored_materials: Decimal,
        invoice_number: str | None = None,
        notes: str | None = None,
    ) -> ServiceResult[PaymentApplication]:
        """Create the next draft application for a subcontract."""
        return await self._run(
            "create_payment_application",
            self._create(
                subcontract_id,
                period_start,
                period_end,
                Decimal(work_completed_this_period),
                Decimal(stored_materials),
                invoice_number,
                notes,
            ),
            integrity_message=(
                "Application number was assigned concurrently; retry the request"
            ),
        )

    async def _create(
        self,
        subcontract_id: UUID,
        period_start: date,
        period_end: date,
        work_completed_this_period: Decimal,
        stored_materials: Decimal,
        invoice_number: str | None,
        notes: str | None,
    ) -> ServiceResult[PaymentApplication]:
        if period_end < period_start:
            return ServiceResult.failure(
                ErrorCode.INVALID_PERIOD, "Period end cannot be before period start"
            )

        subcontract = await lock_subcontract(self.session, subcontract_id, self.tenant_id)
        if subcontract is None:
            return ServiceResult.failure(
                ErrorCode.SUBCONTRACT_NOT_FOUND, "Subcontract not found"
            )

        sequenced = await self.sequencer.next_for(subcontract_id, self.tenant_id)
        if not sequenced.is_success:
            return ServiceResult.failure(sequenced.error_code, sequenced.error)
        carry_forward = sequenced.unwrap()

        if (
            carry_forward.previous_period_end is not None
            and period_end < carry_forward.previous_period_end
        ):
            return ServiceResult.failure(
                ErrorCode.PERIOD_OUT_OF_ORDER,
                "Period end is earlier than the previous application's period end",
            )

        breakdown = RetainageCalculator.compute(
            work_completed_this_period=work_completed_this_period,
            stored_materials=stored_materials,
            retainage_percent=subcontract.retainage_percent,
            carry_forward=carry_forward,
        )

        application = PaymentApplication(
            payment_application_id=uuid4(),
            tenant_id=self.tenant_id,
            subcontract_id=subcontract_id,
            application_number=carry_forward.application_number,
            period_start=period_start,
            period_end=period_end,
            scheduled_value=subcontract.current_value,
            status=PaymentApplicationStatus.DRAFT.value,
            invoice_number=invoice_number,
            notes=notes,
            **breakdown.as_fields(),
        )
        self.session.add(application)

        self._record_audit(
            ENTITY,
            application.payment_application_id,
            "created",
            after={
                "application_number": application.application_number,
                "subcontract_id": subcontract_id,
                "current_payment_due": application.current_payment_due,
            },
        )
        return ServiceResult.success(application)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_payment_application(
        self,
        application_id: UUID,
        work_completed_this_period: Decimal,
        stored_materials: Decimal,
        status: str,
        approved_by: str | None = None,
        approved_amount: Decimal | None = None,
        invoice_number: str | None = None,
        check_number: str | None = None,
        notes: str | None = None,
        expected_revision: int | None = None,
    ) -> ServiceResult[PaymentApplication]:
        """Revise an application's amounts and/or move it through the workflow.

        Optional fields left as None keep their current value. When
        `expected_revision` is given and the stored revision differs, the
        update fails with CONFLICT. Period amounts can only be revised on the
        subcontract's latest live application (NOT_LATEST_APPLICATION).
        """
        return await self._run(
            "update_payment_application",
            self._update(
                application_id,
                Decimal(work_completed_this_period),
                Decimal(stored_materials),
                status,
                approved_by,
                Decimal(approved_amount) if approved_amount is not None else None,
                invoice_number,
                check_number,
                notes,
                expected_revision,
            ),
        )

    async def _update(
        self,
        application_id: UUID,
        work_completed_this_period: Decimal,
        stored_materials: Decimal,
        status: str,
        approved_by: str | None,
        approved_amount: Decimal | None,
        invoice_number: str | None,
        check_number: str | None,
        notes: str | None,
        expected_revision: int | None,
    ) -> ServiceResult[PaymentApplication]:
        application = await self._load(application_id)
        if application is None:
            return ServiceResult.failure(
                ErrorCode.NOT_FOUND, "Payment application not found"
            )

        if expected_revision is not None and expected_revision != application.revision:
            return ServiceResult.failure(
                ErrorCode.CONFLICT,
                "The payment application was modified by someone else; reload and retry",
            )

        if approved_amount is not None and approved_amount < 0:
            return ServiceResult.failure(
                ErrorCode.INVALID_AMOUNT, "Approved amount cannot be negative"
            )

        subcontract = await lock_subcontract(
            self.session, application.subcontract_id, self.tenant_id
        )
        if subcontract is None:
            return ServiceResult.failure(
                ErrorCode.SUBCONTRACT_NOT_FOUND, "Subcontract not found"
            )

        try:
            self.workflow.validate_transition(application.status, status)
        except InvalidTransitionError as exc:
            return ServiceResult.failure(ErrorCode.INVALID_STATUS_TRANSITION, str(exc))

        amounts_changed = (
            application.work_completed_this_period != work_completed_this_period
            or application.stored_materials != stored_materials
        )
        if amounts_changed:
            # A later application carries this one's totals forward
            latest = await self.sequencer.latest_application(application.subcontract_id)
            if latest is not None and latest.payment_application_id != application_id:
                return ServiceResult.failure(
                    ErrorCode.NOT_LATEST_APPLICATION,
                    f"Application #{application.application_number} has a later "
                    f"application (#{latest.application_number}); only the most "
                    "recent application's period amounts can be revised",
                )

        # Taken before any recompute: reconciliation diffs against these values
        snapshot = ApplicationSnapshot.of(application)
        ledger_before = _ledger_totals(subcontract)

        if amounts_changed:
            RetainageCalculator.recompute(
                application, work_completed_this_period, stored_materials
            )

        if approved_amount is not None:
            application.approved_amount = RetainageCalculator.round_to_cents(
                approved_amount
            )
        if approved_by is not None:
            application.approved_by = approved_by
        elif application.approved_by is None and status in (
            PaymentApplicationStatus.APPROVED,
            PaymentApplicationStatus.PARTIALLY_APPROVED,
            PaymentApplicationStatus.PAID,
        ):
            application.approved_by = self.actor
        if invoice_number is not None:
            application.invoice_number = invoice_number
        if check_number is not None:
            application.check_number = check_number
        if notes is not None:
            application.notes = notes

        outcome = self.workflow.apply(
            application,
            subcontract,
            status,
            snapshot,
            now=utcnow(),
            correlation_id=self.correlation_id,
        )

        if outcome.status_changed:
            self._record_audit(
                ENTITY,
                application.payment_application_id,
                f"status_change:{outcome.from_status}:{outcome.to_status}",
                before={"status": outcome.from_status},
                after={"status": outcome.to_status, "stamped": list(outcome.stamped)},
            )

        if outcome.posting is not None and (
            outcome.posting.kind == "apply_paid" or not outcome.posting.is_noop
        ):
            self._record_audit(
                "subcontract",
                subcontract.subcontract_id,
                f"ledger:{outcome.posting.kind}",
                before=ledger_before,
                after={
                    **_ledger_totals(subcontract),
                    **outcome.posting.to_audit(),
                    "payment_application_id": application.payment_application_id,
                },
            )

        return ServiceResult.success(application)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_payment_application(
        self, application_id: UUID
    ) -> ServiceResult[PaymentApplication]:
        """Get a live payment application by ID."""
        return await self._read("get_payment_application", self._get(application_id))

    async def _get(self, application_id: UUID) -> ServiceResult[PaymentApplication]:
        application = await self._load(application_id)
        if application is None:
            return ServiceResult.failure(
                ErrorCode.NOT_FOUND, "Payment application not found"
            )
        return ServiceResult.success(application)

    async def list_payment_applications(
        self,
        subcontract_id: UUID | None = None,
        status: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> ServiceResult[Page[PaymentApplication]]:
        """List live applications, highest application number first."""
        return await self._read(
            "list_payment_applications",
            self._list(subcontract_id, status, page, page_size),
        )

    async def _list(
        self,
        subcontract_id: UUID | None,
        status: str | None,
        page: int,
        page_size: int | None,
    ) -> ServiceResult[Page[PaymentApplication]]:
        page, page_size = self._page_bounds(page, page_size)
        query = select(PaymentApplication).where(
            PaymentApplication.tenant_id == self.tenant_id,
            PaymentApplication.is_deleted.is_(False),
        )
        if subcontract_id is not None:
            query = query.where(PaymentApplication.subcontract_id == subcontract_id)
        if status:
            query = query.where(PaymentApplication.status == status)

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.session.scalar(count_query) or 0

        query = (
            query.order_by(
                PaymentApplication.application_number.desc(),
                PaymentApplication.created_at.desc(),
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(query)
        return ServiceResult.success(
            Page(
                items=list(result.scalars().all()),
                total=total,
                page=page,
                page_size=page_size,
            )
        )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_payment_application(
        self, application_id: UUID
    ) -> ServiceResult[PaymentApplication]:
        """Soft delete a draft application.

        Only the subcontract's latest live application may be deleted, so no
        remaining application carries forward from a deleted one.
        """
        return await self._run(
            "delete_payment_application", self._delete(application_id)
        )

    async def _delete(self, application_id: UUID) -> ServiceResult[PaymentApplication]:
        application = await self._load(application_id)
        if application is None:
            return ServiceResult.failure(
                ErrorCode.NOT_FOUND, "Payment application not found"
            )

        if application.status != PaymentApplicationStatus.DRAFT:
            return ServiceResult.failure(
                ErrorCode.NOT_DELETABLE, "Only draft payment applications can be deleted"
            )

        latest = await self.sequencer.latest_application(application.subcontract_id)
        if latest is not None and latest.payment_application_id != application_id:
            return ServiceResult.failure(
                ErrorCode.NOT_DELETABLE,
                "Only the most recent payment application can be deleted",
            )

        application.is_deleted = True
        application.deleted_at = utcnow()
        self._record_audit(
            ENTITY,
            application.payment_application_id,
            "deleted",
            before={"application_number": application.application_number},
        )
        return ServiceResult.success(application)

    async def _load(self, application_id: UUID) -> PaymentApplication | None:
        result = await self.session.execute(
            select(PaymentApplication).where(
                PaymentApplication.payment_application_id == application_id,
                PaymentApplication.tenant_id == self.tenant_id,
                PaymentApplication.is_deleted.is_(False),
            )
        )
        return result.scalar_one_or_none()
