"""Type definitions for the retainage calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

ZERO = Decimal("0")


@dataclass(frozen=True)
class CarryForward:
    """Baseline carried from the prior payment application.

    A subcontract's first application uses the all-zero baseline.
    """

    application_number: int = 1
    work_completed_previous: Decimal = ZERO
    retainage_previous: Decimal = ZERO
    less_previous_certificates: Decimal = ZERO
    previous_period_end: date | None = None


@dataclass(frozen=True)
class RetainageBreakdown:
    """Derived money fields for one billing period, all rounded to cents."""

    work_completed_previous: Decimal
    work_completed_this_period: Decimal
    work_completed_to_date: Decimal
    stored_materials: Decimal
    total_completed_and_stored: Decimal
    retainage_percent: Decimal
    retainage_this_period: Decimal
    retainage_previous: Decimal
    total_retainage: Decimal
    total_earned_less_retainage: Decimal
    less_previous_certificates: Decimal
    current_payment_due: Decimal

    def as_fields(self) -> dict[str, Any]:
        """Column name -> value mapping for PaymentApplication."""
        return {
            "work_completed_previous": self.work_completed_previous,
            "work_completed_this_period": self.work_completed_this_period,
            "work_completed_to_date": self.work_completed_to_date,
            "stored_materials": self.stored_materials,
            "total_completed_and_stored": self.total_completed_and_stored,
            "retainage_percent": self.retainage_percent,
            "retainage_this_period": self.retainage_this_period,
            "retainage_previous": self.retainage_previous,
            "total_retainage": self.total_retainage,
            "total_earned_less_retainage": self.total_earned_less_retainage,
            "less_previous_certificates": self.less_previous_certificates,
            "current_payment_due": self.current_payment_due,
        }
