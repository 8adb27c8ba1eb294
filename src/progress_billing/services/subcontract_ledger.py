"""Subcontract contract value maintenance from change orders."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.models import ChangeOrder, Subcontract

logger = logging.getLogger(__name__)


class ChangeOrderStatus(str, Enum):
    """Change order status values."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    VOID = "void"


def compute_current_value(
    original_value: Decimal,
    change_orders: Iterable[tuple[str, Decimal]],
) -> Decimal:
    """Original value plus the signed amounts of approved change orders.

    `change_orders` yields (status, amount) pairs.
    """
    total = Decimal(original_value)
    for status, amount in change_orders:
        if status == ChangeOrderStatus.APPROVED:
            total += amount
    return total


@dataclass(frozen=True)
class ValueChange:
    """Result of a current value recompute."""

    old_value: Decimal
    new_value: Decimal

    @property
    def changed(self) -> bool:
        return self.old_value != self.new_value


class SubcontractLedger:
    """Keeps Subcontract.current_value = original_value + Σ approved change orders.

    The value is always recomputed from the change orders currently in the
    approved status, so a change order leaving approved (void, withdrawn,
    rejected) drops out of the total, and an approved amount edit is picked up.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def affects_current_value(
        old_status: str,
        new_status: str,
        old_amount: Decimal,
        new_amount: Decimal,
    ) -> bool:
        """Whether a change order update requires a recompute."""
        was_approved = old_status == ChangeOrderStatus.APPROVED
        is_approved = new_status == ChangeOrderStatus.APPROVED
        if was_approved != is_approved:
            return True
        return is_approved and old_amount != new_amount

    async def recompute_current_value(
        self,
        subcontract: Subcontract,
        correlation_id: str | None = None,
    ) -> ValueChange:
        """Recompute and assign current_value from the approved change orders.

        Pending change order writes are flushed first so the sum sees them.
        """
        await self.session.flush()

        old_value = subcontract.current_value
        rows = await self.session.execute(
            select(ChangeOrder.status, ChangeOrder.amount).where(
                ChangeOrder.subcontract_id == subcontract.subcontract_id,
                ChangeOrder.is_deleted.is_(False),
            )
        )
        new_value = compute_current_value(
            subcontract.original_value, rows.tuples().all()
        ).quantize(Decimal("0.01"))
        if new_value != old_value:
            subcontract.current_value = new_value
            logger.info(
                "Subcontract %s current value %s -> %s",
                subcontract.subcontract_id,
                old_value,
                new_value,
                extra={"correlation_id": correlation_id},
            )
        return ValueChange(old_value=old_value, new_value=new_value)
