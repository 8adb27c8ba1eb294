"""Propagates payment application amounts into subcontract running totals."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from progress_billing.models import PaymentApplication, Subcontract

logger = logging.getLogger(__name__)


def paid_amount(approved_amount: Decimal | None, current_payment_due: Decimal) -> Decimal:
    """Amount posted as paid: the approved amount when set, else the amount due."""
    return approved_amount if approved_amount is not None else current_payment_due


@dataclass(frozen=True)
class LedgerPosting:
    """Effect of one synchronization on a subcontract."""

    kind: str  # 'apply_paid' or 'reconcile'
    billed_delta: Decimal
    paid_delta: Decimal
    retainage_held: Decimal

    @property
    def is_noop(self) -> bool:
        return self.billed_delta == 0 and self.paid_delta == 0

    def to_audit(self) -> dict[str, str]:
        return {
            "kind": self.kind,
            "billed_delta": str(self.billed_delta),
            "paid_delta": str(self.paid_delta),
            "retainage_held": str(self.retainage_held),
        }


class LedgerSynchronizer:
    """The only writer of Subcontract.billed_to_date, paid_to_date and retainage_held.

    apply_paid posts an application's full amounts the first time it is paid.
    reconcile_delta posts only the difference between an already-paid
    application's previous and current amounts, so repeated edits never
    double-count. retainage_held is always assigned from the application's
    cumulative total_retainage, never accumulated.
    """

    def apply_paid(
        self,
        subcontract: Subcontract,
        application: PaymentApplication,
        correlation_id: str | None = None,
    ) -> LedgerPosting:
        """Post a newly paid application onto its subcontract."""
        billed = application.current_payment_due
        paid = paid_amount(application.approved_amount, application.current_payment_due)

        subcontract.billed_to_date = subcontract.billed_to_date + billed
        subcontract.paid_to_date = subcontract.paid_to_date + paid
        subcontract.retainage_held = application.total_retainage

        posting = LedgerPosting(
            kind="apply_paid",
            billed_delta=billed,
            paid_delta=paid,
            retainage_held=application.total_retainage,
        )
        logger.info(
            "Applied paid application %s #%s to subcontract %s: billed +%s, paid +%s",
            application.payment_application_id,
            application.application_number,
            subcontract.subcontract_id,
            billed,
            paid,
            extra={"correlation_id": correlation_id},
        )
        return posting

    def reconcile_delta(
        self,
        subcontract: Subcontract,
        application: PaymentApplication,
        old_current_payment_due: Decimal,
        old_approved_amount: Decimal | None,
        correlation_id: str | None = None,
    ) -> LedgerPosting:
        """Post the change in an already-paid application's amounts.

        The old values must be the same application's previously persisted
        figures, not aggregate history.
        """
        billed_delta = application.current_payment_due - old_current_payment_due
        paid_delta = paid_amount(
            application.approved_amount, application.current_payment_due
        ) - paid_amount(old_approved_amount, old_current_payment_due)

        if billed_delta != 0:
            subcontract.billed_to_date = subcontract.billed_to_date + billed_delta
        if paid_delta != 0:
            subcontract.paid_to_date = subcontract.paid_to_date + paid_delta
        subcontract.retainage_held = application.total_retainage

        posting = LedgerPosting(
            kind="reconcile",
            billed_delta=billed_delta,
            paid_delta=paid_delta,
            retainage_held=application.total_retainage,
        )
        if not posting.is_noop:
            logger.info(
                "Reconciled paid application %s on subcontract %s: billed delta %s, paid delta %s",
                application.payment_application_id,
                subcontract.subcontract_id,
                billed_delta,
                paid_delta,
                extra={"correlation_id": correlation_id},
            )
        return posting
