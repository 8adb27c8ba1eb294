"""Progress billing and retainage arithmetic."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from progress_billing.calculators.types import CarryForward, RetainageBreakdown

if TYPE_CHECKING:
    from progress_billing.models import PaymentApplication

HUNDRED = Decimal("100")


class RetainageCalculator:
    """Computes the derived fields of a payment application.

    Equations (all amounts in cents precision):
    - work_completed_to_date = work_completed_previous + work_completed_this_period
    - total_completed_and_stored = work_completed_to_date + stored_materials
    - retainage_this_period = work_completed_this_period * retainage_percent / 100
    - total_retainage = retainage_previous + retainage_this_period
    - total_earned_less_retainage = total_completed_and_stored - total_retainage
    - current_payment_due = total_earned_less_retainage - less_previous_certificates

    Rounding:
    - ROUND_HALF_UP (half away from zero) to 2 decimals
    - Only the retainage product can produce sub-cent values; every sum is
      taken over already-rounded terms so the equations hold exactly
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return Decimal(amount).quantize(
            RetainageCalculator.OUTPUT_PRECISION, rounding=ROUND_HALF_UP
        )

    @staticmethod
    def compute(
        work_completed_this_period: Decimal,
        stored_materials: Decimal,
        retainage_percent: Decimal,
        carry_forward: CarryForward,
    ) -> RetainageBreakdown:
        """Derive all money fields for one billing period."""
        cents = RetainageCalculator.round_to_cents

        this_period = cents(work_completed_this_period)
        stored = cents(stored_materials)
        previous = cents(carry_forward.work_completed_previous)
        retainage_previous = cents(carry_forward.retainage_previous)
        less_previous = cents(carry_forward.less_previous_certificates)

        to_date = previous + this_period
        completed_and_stored = to_date + stored

        retainage_this_period = cents(this_period * Decimal(retainage_percent) / HUNDRED)
        total_retainage = retainage_previous + retainage_this_period

        earned_less_retainage = completed_and_stored - total_retainage
        payment_due = earned_less_retainage - less_previous

        return RetainageBreakdown(
            work_completed_previous=previous,
            work_completed_this_period=this_period,
            work_completed_to_date=to_date,
            stored_materials=stored,
            total_completed_and_stored=completed_and_stored,
            retainage_percent=Decimal(retainage_percent),
            retainage_this_period=retainage_this_period,
            retainage_previous=retainage_previous,
            total_retainage=total_retainage,
            total_earned_less_retainage=earned_less_retainage,
            less_previous_certificates=less_previous,
            current_payment_due=payment_due,
        )

    @staticmethod
    def recompute(
        application: PaymentApplication,
        work_completed_this_period: Decimal,
        stored_materials: Decimal,
    ) -> RetainageBreakdown:
        """Recompute an existing application in place.

        The carry-forward values and retainage percent captured at creation
        are kept; only the period amounts change.
        """
        breakdown = RetainageCalculator.compute(
            work_completed_this_period=work_completed_this_period,
            stored_materials=stored_materials,
            retainage_percent=application.retainage_percent,
            carry_forward=CarryForward(
                application_number=application.application_number,
                work_completed_previous=application.work_completed_previous,
                retainage_previous=application.retainage_previous,
                less_previous_certificates=application.less_previous_certificates,
            ),
        )
        for name, value in breakdown.as_fields().items():
            setattr(application, name, value)
        return breakdown
