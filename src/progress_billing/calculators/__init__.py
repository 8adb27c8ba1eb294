"""Progress billing calculations."""

from progress_billing.calculators.retainage import RetainageCalculator
from progress_billing.calculators.types import CarryForward, RetainageBreakdown

__all__ = [
    "CarryForward",
    "RetainageBreakdown",
    "RetainageCalculator",
]
