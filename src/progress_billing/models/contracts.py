"""Subcontract, change order and payment application models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from progress_billing.models.base import (
    Base,
    Money,
    Percent,
    SoftDeleteMixin,
    TimestampMixin,
)


class Subcontract(Base, TimestampMixin, SoftDeleteMixin):
    """Subcontract agreement with a subcontractor on a project.

    The running totals (billed_to_date, paid_to_date, retainage_held) are only
    written by LedgerSynchronizer; current_value only by SubcontractLedger.
    """

    __tablename__ = "subcontract"

    subcontract_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    project_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    subcontract_number: Mapped[str] = mapped_column(String(50), nullable=False)

    # Subcontractor info
    subcontractor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    subcontractor_contact: Mapped[str | None] = mapped_column(String(200))
    subcontractor_email: Mapped[str | None] = mapped_column(String(200))
    subcontractor_phone: Mapped[str | None] = mapped_column(String(50))
    subcontractor_address: Mapped[str | None] = mapped_column(String(500))

    # Scope
    scope_of_work: Mapped[str] = mapped_column(Text, nullable=False)
    trade_code: Mapped[str | None] = mapped_column(String(100))

    # Contract values
    original_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    current_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    billed_to_date: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    paid_to_date: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    retainage_percent: Mapped[Decimal] = mapped_column(
        Percent, nullable=False, default=Decimal("10")
    )
    retainage_held: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )

    # Dates
    execution_date: Mapped[date | None] = mapped_column(Date)
    start_date: Mapped[date | None] = mapped_column(Date)
    completion_date: Mapped[date | None] = mapped_column(Date)
    actual_completion_date: Mapped[date | None] = mapped_column(Date)

    # Insurance / compliance
    insurance_expiration_date: Mapped[date | None] = mapped_column(Date)
    insurance_current: Mapped[bool] = mapped_column(default=False, nullable=False)
    license_number: Mapped[str | None] = mapped_column(String(100))

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    notes: Mapped[str | None] = mapped_column(Text)

    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": revision}

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "project_id", "subcontract_number",
            name="subcontract_number_per_project",
        ),
        CheckConstraint(
            "status IN ('draft', 'pending_approval', 'issued', 'executed', "
            "'in_progress', 'complete', 'closed_out', 'terminated', 'on_hold')",
            name="subcontract_status_check",
        ),
        CheckConstraint(
            "retainage_percent >= 0 AND retainage_percent <= 100",
            name="subcontract_retainage_percent_check",
        ),
    )


class ChangeOrder(Base, TimestampMixin, SoftDeleteMixin):
    """Signed modification to a subcontract's value."""

    __tablename__ = "change_order"

    change_order_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    subcontract_id: Mapped[UUID] = mapped_column(
        ForeignKey("subcontract.subcontract_id", ondelete="CASCADE"),
        nullable=False,
    )
    change_order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(500))
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    days_extension: Mapped[int | None] = mapped_column(Integer)
    reference_number: Mapped[str | None] = mapped_column(String(100))

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    submitted_date: Mapped[datetime | None] = mapped_column()
    approved_date: Mapped[datetime | None] = mapped_column()
    rejected_date: Mapped[datetime | None] = mapped_column()
    approved_by: Mapped[str | None] = mapped_column(String(200))
    rejected_by: Mapped[str | None] = mapped_column(String(200))
    rejection_reason: Mapped[str | None] = mapped_column(String(1000))

    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": revision}

    __table_args__ = (
        UniqueConstraint(
            "subcontract_id", "change_order_number", name="change_order_number_unique"
        ),
        CheckConstraint(
            "status IN ('pending', 'under_review', 'approved', 'rejected', "
            "'withdrawn', 'void')",
            name="change_order_status_check",
        ),
        Index("ix_change_order_status", "status"),
    )


class PaymentApplication(Base, TimestampMixin, SoftDeleteMixin):
    """Periodic subcontractor billing (pay app) against a subcontract.

    Derived money fields are produced by RetainageCalculator and must satisfy
    the progress-billing equations for every persisted row.
    """

    __tablename__ = "payment_application"

    payment_application_id: Mapped[UUID] = mapped_column(
        primary_key=True, default=uuid4
    )
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    subcontract_id: Mapped[UUID] = mapped_column(
        ForeignKey("subcontract.subcontract_id", ondelete="CASCADE"),
        nullable=False,
    )
    application_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Billing period
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Amounts
    scheduled_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    work_completed_previous: Mapped[Decimal] = mapped_column(Money, nullable=False)
    work_completed_this_period: Mapped[Decimal] = mapped_column(Money, nullable=False)
    work_completed_to_date: Mapped[Decimal] = mapped_column(Money, nullable=False)
    stored_materials: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_completed_and_stored: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Retainage
    retainage_percent: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    retainage_this_period: Mapped[Decimal] = mapped_column(Money, nullable=False)
    retainage_previous: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_retainage: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Net amounts
    total_earned_less_retainage: Mapped[Decimal] = mapped_column(Money, nullable=False)
    less_previous_certificates: Mapped[Decimal] = mapped_column(Money, nullable=False)
    current_payment_due: Mapped[Decimal] = mapped_column(Money, nullable=False)

    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")

    submitted_date: Mapped[datetime | None] = mapped_column()
    reviewed_date: Mapped[datetime | None] = mapped_column()
    approved_date: Mapped[datetime | None] = mapped_column()
    paid_date: Mapped[datetime | None] = mapped_column()

    approved_by: Mapped[str | None] = mapped_column(String(200))
    approved_amount: Mapped[Decimal | None] = mapped_column(Money)
    notes: Mapped[str | None] = mapped_column(Text)
    invoice_number: Mapped[str | None] = mapped_column(String(100))
    check_number: Mapped[str | None] = mapped_column(String(100))

    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": revision}

    __table_args__ = (
        UniqueConstraint(
            "subcontract_id",
            "application_number",
            name="payment_application_number_unique",
        ),
        CheckConstraint(
            "status IN ('draft', 'submitted', 'under_review', 'approved', "
            "'partially_approved', 'rejected', 'paid', 'void')",
            name="payment_application_status_check",
        ),
        CheckConstraint(
            "period_end >= period_start", name="payment_application_period_check"
        ),
        CheckConstraint(
            "approved_amount IS NULL OR approved_amount >= 0",
            name="payment_application_approved_amount_check",
        ),
        Index("ix_payment_application_status", "status"),
        Index("ix_payment_application_period_end", "period_end"),
    )
