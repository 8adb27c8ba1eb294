"""ORM models."""

from progress_billing.models.audit import AuditEvent
from progress_billing.models.base import Base, SoftDeleteMixin, TimestampMixin
from progress_billing.models.contracts import ChangeOrder, PaymentApplication, Subcontract

__all__ = [
    "AuditEvent",
    "Base",
    "ChangeOrder",
    "PaymentApplication",
    "SoftDeleteMixin",
    "Subcontract",
    "TimestampMixin",
]
