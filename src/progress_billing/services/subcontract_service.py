"""Subcontract service - contract records and their descriptive fields."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.config import get_settings
from progress_billing.database import lock_subcontract
from progress_billing.models import Subcontract
from progress_billing.services.base import BaseService
from progress_billing.services.result import ErrorCode, Page, ServiceResult
from progress_billing.services.subcontract_ledger import SubcontractLedger

ENTITY = "subcontract"
DUPLICATE_MESSAGE = "Subcontract number already exists for this project"

# Fields update_subcontract may overwrite. The ledger totals are not here.
DESCRIPTIVE_FIELDS = (
    "subcontractor_name",
    "subcontractor_contact",
    "subcontractor_email",
    "subcontractor_phone",
    "subcontractor_address",
    "scope_of_work",
    "trade_code",
    "execution_date",
    "start_date",
    "completion_date",
    "actual_completion_date",
    "insurance_expiration_date",
    "insurance_current",
    "license_number",
    "notes",
)


class SubcontractStatus(str, Enum):
    """Subcontract status values."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    ISSUED = "issued"
    EXECUTED = "executed"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    CLOSED_OUT = "closed_out"
    TERMINATED = "terminated"
    ON_HOLD = "on_hold"


class SubcontractService(BaseService):
    """Service for subcontracts.

    billed_to_date, paid_to_date and retainage_held are never written here;
    they move only through payment application postings.
    """

    commit_integrity_code = ErrorCode.DUPLICATE_NUMBER
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

    async def create_subcontract(
        self,
        project_id: UUID,
        subcontract_number: str,
        subcontractor_name: str,
        scope_of_work: str,
        original_value: Decimal,
        retainage_percent: Decimal | None = None,
        status: str = SubcontractStatus.DRAFT.value,
        **details: Any,
    ) -> ServiceResult[Subcontract]:
        """Create a subcontract whose current value starts at its original value.

        `details` takes any of the optional descriptive fields (contact,
        dates, insurance, notes).
        """
        return await self._run(
            "create_subcontract",
            self._create(
                project_id,
                subcontract_number,
                subcontractor_name,
                scope_of_work,
                Decimal(original_value),
                retainage_percent,
                status,
                details,
            ),
            integrity_code=ErrorCode.DUPLICATE_NUMBER,
            integrity_message=DUPLICATE_MESSAGE,
        )

    async def _create(
        self,
        project_id: UUID,
        subcontract_number: str,
        subcontractor_name: str,
        scope_of_work: str,
        original_value: Decimal,
        retainage_percent: Decimal | None,
        status: str,
        details: dict[str, Any],
    ) -> ServiceResult[Subcontract]:
        invalid = self._validate(original_value, retainage_percent, status, details)
        if invalid is not None:
            return invalid

        if await self._number_taken(project_id, subcontract_number):
            return ServiceResult.failure(ErrorCode.DUPLICATE_NUMBER, DUPLICATE_MESSAGE)

        if retainage_percent is None:
            retainage_percent = get_settings().default_retainage_percent

        subcontract = Subcontract(
            subcontract_id=uuid4(),
            tenant_id=self.tenant_id,
            project_id=project_id,
            subcontract_number=subcontract_number,
            subcontractor_name=subcontractor_name,
            scope_of_work=scope_of_work,
            original_value=original_value,
            current_value=original_value,
            billed_to_date=Decimal("0"),
            paid_to_date=Decimal("0"),
            retainage_held=Decimal("0"),
            retainage_percent=Decimal(retainage_percent),
            status=SubcontractStatus(status).value,
            insurance_current=bool(details.pop("insurance_current", False)),
            **details,
        )
        self.session.add(subcontract)
        self._record_audit(
            ENTITY,
            subcontract.subcontract_id,
            "created",
            after={
                "subcontract_number": subcontract_number,
                "original_value": original_value,
                "retainage_percent": subcontract.retainage_percent,
            },
        )
        return ServiceResult.success(subcontract)

    async def update_subcontract(
        self,
        subcontract_id: UUID,
        original_value: Decimal | None = None,
        retainage_percent: Decimal | None = None,
        status: str | None = None,
        expected_revision: int | None = None,
        **details: Any,
    ) -> ServiceResult[Subcontract]:
        """Update descriptive fields, contract value, retainage or status.

        Arguments left as None keep their current value. Changing the
        original value re-derives current_value from the approved change
        orders.
        """
        return await self._run(
            "update_subcontract",
            self._update(
                subcontract_id,
                Decimal(original_value) if original_value is not None else None,
                retainage_percent,
                status,
                expected_revision,
                details,
            ),
        )

    async def _update(
        self,
        subcontract_id: UUID,
        original_value: Decimal | None,
        retainage_percent: Decimal | None,
        status: str | None,
        expected_revision: int | None,
        details: dict[str, Any],
    ) -> ServiceResult[Subcontract]:
        subcontract = await lock_subcontract(self.session, subcontract_id, self.tenant_id)
        if subcontract is None:
            return ServiceResult.failure(ErrorCode.NOT_FOUND, "Subcontract not found")

        if expected_revision is not None and expected_revision != subcontract.revision:
            return ServiceResult.failure(
                ErrorCode.CONFLICT,
                "The subcontract was modified by someone else; reload and retry",
            )

        invalid = self._validate(original_value, retainage_percent, status, details)
        if invalid is not None:
            return invalid

        for field, value in details.items():
            if value is not None:
                setattr(subcontract, field, value)
        if retainage_percent is not None:
            subcontract.retainage_percent = Decimal(retainage_percent)

        if status is not None and status != subcontract.status:
            old_status = subcontract.status
            subcontract.status = SubcontractStatus(status).value
            self._record_audit(
                ENTITY,
                subcontract.subcontract_id,
                f"status_change:{old_status}:{subcontract.status}",
                before={"status": old_status},
                after={"status": subcontract.status},
            )

        if original_value is not None and original_value != subcontract.original_value:
            subcontract.original_value = original_value
            change = await self.ledger.recompute_current_value(
                subcontract, correlation_id=self.correlation_id
            )
            if change.changed:
                self._record_audit(
                    ENTITY,
                    subcontract.subcontract_id,
                    "current_value_recomputed",
                    before={"current_value": change.old_value},
                    after={
                        "current_value": change.new_value,
                        "original_value": original_value,
                    },
                )

        return ServiceResult.success(subcontract)

    async def get_subcontract(self, subcontract_id: UUID) -> ServiceResult[Subcontract]:
        """Get a live subcontract by ID."""
        return await self._read("get_subcontract", self._get(subcontract_id))

    async def _get(self, subcontract_id: UUID) -> ServiceResult[Subcontract]:
        result = await self.session.execute(
            select(Subcontract).where(
                Subcontract.subcontract_id == subcontract_id,
                Subcontract.tenant_id == self.tenant_id,
                Subcontract.is_deleted.is_(False),
            )
        )
        subcontract = result.scalar_one_or_none()
        if subcontract is None:
            return ServiceResult.failure(ErrorCode.NOT_FOUND, "Subcontract not found")
        return ServiceResult.success(subcontract)

    async def list_subcontracts(
        self,
        project_id: UUID | None = None,
        status: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> ServiceResult[Page[Subcontract]]:
        """List live subcontracts ordered by number."""
        return await self._read(
            "list_subcontracts", self._list(project_id, status, page, page_size)
        )

    async def _list(
        self,
        project_id: UUID | None,
        status: str | None,
        page: int,
        page_size: int | None,
    ) -> ServiceResult[Page[Subcontract]]:
        page, page_size = self._page_bounds(page, page_size)
        query = select(Subcontract).where(
            Subcontract.tenant_id == self.tenant_id,
            Subcontract.is_deleted.is_(False),
        )
        if project_id is not None:
            query = query.where(Subcontract.project_id == project_id)
        if status:
            query = query.where(Subcontract.status == status)

        total = await self.session.scalar(
            select(func.count()).select_from(query.subquery())
        ) or 0
        result = await self.session.execute(
            query.order_by(Subcontract.subcontract_number)
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

    @staticmethod
    def _validate(
        original_value: Decimal | None,
        retainage_percent: Decimal | None,
        status: str | None,
        details: dict[str, Any],
    ) -> ServiceResult[Subcontract] | None:
        unknown = set(details) - set(DESCRIPTIVE_FIELDS)
        if unknown:
            raise TypeError(f"Unexpected subcontract fields: {', '.join(sorted(unknown))}")
        if original_value is not None and original_value < 0:
            return ServiceResult.failure(
                ErrorCode.INVALID_AMOUNT, "Original value cannot be negative"
            )
        if retainage_percent is not None and not (
            Decimal("0") <= Decimal(retainage_percent) <= Decimal("100")
        ):
            return ServiceResult.failure(
                ErrorCode.INVALID_AMOUNT, "Retainage percent must be between 0 and 100"
            )
        if status is not None and status not in {s.value for s in SubcontractStatus}:
            return ServiceResult.failure(
                ErrorCode.INVALID_STATUS_TRANSITION, f"Unknown subcontract status: {status}"
            )
        return None

    async def _number_taken(self, project_id: UUID, subcontract_number: str) -> bool:
        return (
            await self.session.scalar(
                select(Subcontract.subcontract_id)
                .where(
                    Subcontract.tenant_id == self.tenant_id,
                    Subcontract.project_id == project_id,
                    Subcontract.subcontract_number == subcontract_number,
                )
                .limit(1)
            )
            is not None
        )
