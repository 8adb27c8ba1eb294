"""Change order service - CRUD whose status changes drive contract value."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.database import lock_subcontract
from progress_billing.models import ChangeOrder
from progress_billing.models.base import utcnow
from progress_billing.services.base import BaseService
from progress_billing.services.result import ErrorCode, Page, ServiceResult
from progress_billing.services.subcontract_ledger import ChangeOrderStatus, SubcontractLedger

ENTITY = "change_order"
DUPLICATE_MESSAGE = "Change order number already exists for this subcontract"


class ChangeOrderService(BaseService):
    """Service for subcontract change orders.

    New change orders start pending. Whenever an update moves a change order
    into or out of approved, or edits an approved amount, the parent
    subcontract's current value is recomputed in the same unit of work.
    """

    commit_integrity_code = ErrorCode.DUPLICATE_CO_NUMBER
    commit_integrity_message = DUPLICATE_MESSAGE

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        actor: str | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(session, tenant_id, actor, correlation_id)
        self.ledger = SubcontractLedger(session)

    async def create_change_order(
        self,
        subcontract_id: UUID,
        change_order_number: str,
        title: str,
        description: str,
        amount: Decimal,
        reason: str | None = None,
        days_extension: int | None = None,
        reference_number: str | None = None,
    ) -> ServiceResult[ChangeOrder]:
        """Create a pending change order on a subcontract."""
        return await self._run(
            "create_change_order",
            self._create(
                subcontract_id,
                change_order_number,
                title,
                description,
                Decimal(amount),
                reason,
                days_extension,
                reference_number,
            ),
            integrity_code=ErrorCode.DUPLICATE_CO_NUMBER,
            integrity_message=DUPLICATE_MESSAGE,
        )

    async def _create(
        self,
        subcontract_id: UUID,
        change_order_number: str,
        title: str,
        description: str,
        amount: Decimal,
        reason: str | None,
        days_extension: int | None,
        reference_number: str | None,
    ) -> ServiceResult[ChangeOrder]:
        subcontract = await lock_subcontract(self.session, subcontract_id, self.tenant_id)
        if subcontract is None:
            return ServiceResult.failure(
                ErrorCode.SUBCONTRACT_NOT_FOUND, "Subcontract not found"
            )

        if await self._number_taken(subcontract_id, change_order_number):
            return ServiceResult.failure(ErrorCode.DUPLICATE_CO_NUMBER, DUPLICATE_MESSAGE)

        change_order = ChangeOrder(
            change_order_id=uuid4(),
            tenant_id=self.tenant_id,
            subcontract_id=subcontract_id,
            change_order_number=change_order_number,
            title=title,
            description=description,
            reason=reason,
            amount=amount,
            days_extension=days_extension,
            reference_number=reference_number,
            status=ChangeOrderStatus.PENDING.value,
            submitted_date=utcnow(),
        )
        self.session.add(change_order)
        self._record_audit(
            ENTITY,
            change_order.change_order_id,
            "created",
            after={"change_order_number": change_order_number, "amount": amount},
        )
        return ServiceResult.success(change_order)

    async def update_change_order(
        self,
        change_order_id: UUID,
        change_order_number: str,
        title: str,
        description: str,
        amount: Decimal,
        status: str,
        reason: str | None = None,
        days_extension: int | None = None,
        reference_number: str | None = None,
        rejection_reason: str | None = None,
        expected_revision: int | None = None,
    ) -> ServiceResult[ChangeOrder]:
        """Replace a change order's fields; status changes feed current value."""
        return await self._run(
            "update_change_order",
            self._update(
                change_order_id,
                change_order_number,
                title,
                description,
                Decimal(amount),
                status,
                reason,
                days_extension,
                reference_number,
                rejection_reason,
                expected_revision,
            ),
            integrity_code=ErrorCode.DUPLICATE_CO_NUMBER,
            integrity_message=DUPLICATE_MESSAGE,
        )

    async def _update(
        self,
        change_order_id: UUID,
        change_order_number: str,
        title: str,
        description: str,
        amount: Decimal,
        status: str,
        reason: str | None,
        days_extension: int | None,
        reference_number: str | None,
        rejection_reason: str | None,
        expected_revision: int | None,
    ) -> ServiceResult[ChangeOrder]:
        change_order = await self._load(change_order_id)
        if change_order is None:
            return ServiceResult.failure(ErrorCode.NOT_FOUND, "Change order not found")

        if expected_revision is not None and expected_revision != change_order.revision:
            return ServiceResult.failure(
                ErrorCode.CONFLICT,
                "The change order was modified by someone else; reload and retry",
            )

        try:
            new_status = ChangeOrderStatus(status)
        except ValueError:
            return ServiceResult.failure(
                ErrorCode.INVALID_STATUS_TRANSITION, f"Unknown change order status: {status}"
            )

        if change_order.change_order_number != change_order_number and await self._number_taken(
            change_order.subcontract_id, change_order_number, exclude_id=change_order_id
        ):
            return ServiceResult.failure(ErrorCode.DUPLICATE_CO_NUMBER, DUPLICATE_MESSAGE)

        old_status = change_order.status
        old_amount = change_order.amount

        change_order.change_order_number = change_order_number
        change_order.title = title
        change_order.description = description
        change_order.reason = reason
        change_order.amount = amount
        change_order.days_extension = days_extension
        change_order.reference_number = reference_number
        change_order.status = new_status.value

        # Set approval/rejection stamps on status change
        if old_status != new_status:
            now = utcnow()
            if new_status == ChangeOrderStatus.APPROVED and change_order.approved_date is None:
                change_order.approved_date = now
                change_order.approved_by = self.actor
            elif new_status == ChangeOrderStatus.REJECTED and change_order.rejected_date is None:
                change_order.rejected_date = now
                change_order.rejected_by = self.actor
                change_order.rejection_reason = rejection_reason

            self._record_audit(
                ENTITY,
                change_order.change_order_id,
                f"status_change:{old_status}:{new_status.value}",
                before={"status": old_status},
                after={"status": new_status.value},
            )

        if SubcontractLedger.affects_current_value(old_status, new_status, old_amount, amount):
            subcontract = await lock_subcontract(
                self.session, change_order.subcontract_id, self.tenant_id
            )
            if subcontract is None:
                return ServiceResult.failure(
                    ErrorCode.SUBCONTRACT_NOT_FOUND, "Subcontract not found"
                )
            change = await self.ledger.recompute_current_value(
                subcontract, correlation_id=self.correlation_id
            )
            if change.changed:
                self._record_audit(
                    "subcontract",
                    subcontract.subcontract_id,
                    "current_value_recomputed",
                    before={"current_value": change.old_value},
                    after={
                        "current_value": change.new_value,
                        "change_order_id": change_order.change_order_id,
                    },
                )

        return ServiceResult.success(change_order)

    async def get_change_order(self, change_order_id: UUID) -> ServiceResult[ChangeOrder]:
        """Get a live change order by ID."""
        return await self._read("get_change_order", self._get(change_order_id))

    async def _get(self, change_order_id: UUID) -> ServiceResult[ChangeOrder]:
        change_order = await self._load(change_order_id)
        if change_order is None:
            return ServiceResult.failure(ErrorCode.NOT_FOUND, "Change order not found")
        return ServiceResult.success(change_order)

    async def list_change_orders(
        self,
        subcontract_id: UUID | None = None,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> ServiceResult[Page[ChangeOrder]]:
        """List live change orders, newest first."""
        return await self._read(
            "list_change_orders",
            self._list(subcontract_id, status, search, page, page_size),
        )

    async def _list(
        self,
        subcontract_id: UUID | None,
        status: str | None,
        search: str | None,
        page: int,
        page_size: int | None,
    ) -> ServiceResult[Page[ChangeOrder]]:
        page, page_size = self._page_bounds(page, page_size)
        query = select(ChangeOrder).where(
            ChangeOrder.tenant_id == self.tenant_id,
            ChangeOrder.is_deleted.is_(False),
        )
        if subcontract_id is not None:
            query = query.where(ChangeOrder.subcontract_id == subcontract_id)
        if status:
            query = query.where(ChangeOrder.status == status)
        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(ChangeOrder.title).like(pattern),
                    func.lower(ChangeOrder.change_order_number).like(pattern),
                )
            )

        total = await self.session.scalar(
            select(func.count()).select_from(query.subquery())
        ) or 0
        result = await self.session.execute(
            query.order_by(ChangeOrder.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return ServiceResult.success(
            Page(
                items=list(result.scalars().all()),
                total=total,
                page=page,
                page_size=page_size,
            )
        )

    async def _number_taken(
        self,
        subcontract_id: UUID,
        change_order_number: str,
        exclude_id: UUID | None = None,
    ) -> bool:
        query = select(ChangeOrder.change_order_id).where(
            ChangeOrder.subcontract_id == subcontract_id,
            ChangeOrder.change_order_number == change_order_number,
        )
        if exclude_id is not None:
            query = query.where(ChangeOrder.change_order_id != exclude_id)
        return await self.session.scalar(query.limit(1)) is not None

    async def _load(self, change_order_id: UUID) -> ChangeOrder | None:
        result = await self.session.execute(
            select(ChangeOrder).where(
                ChangeOrder.change_order_id == change_order_id,
                ChangeOrder.tenant_id == self.tenant_id,
                ChangeOrder.is_deleted.is_(False),
            )
        )
        return result.scalar_one_or_none()
