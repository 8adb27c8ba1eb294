"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from progress_billing.services.state_machine import PaymentApplicationStatus
from progress_billing.services.subcontract_ledger import ChangeOrderStatus
from progress_billing.services.subcontract_service import SubcontractStatus


# ============================================================================
# Subcontract schemas
# ============================================================================


class SubcontractDetails(BaseModel):
    """Optional descriptive subcontract fields."""

    subcontractor_contact: str | None = Field(default=None, max_length=200)
    subcontractor_email: str | None = Field(default=None, max_length=200)
    subcontractor_phone: str | None = Field(default=None, max_length=50)
    subcontractor_address: str | None = Field(default=None, max_length=500)
    trade_code: str | None = Field(default=None, max_length=100)
    execution_date: date | None = None
    start_date: date | None = None
    completion_date: date | None = None
    actual_completion_date: date | None = None
    insurance_expiration_date: date | None = None
    insurance_current: bool | None = None
    license_number: str | None = Field(default=None, max_length=100)
    notes: str | None = None


class SubcontractCreate(SubcontractDetails):
    """Schema for creating a subcontract."""

    project_id: UUID
    subcontract_number: str = Field(min_length=1, max_length=50)
    subcontractor_name: str = Field(min_length=1, max_length=200)
    scope_of_work: str = Field(min_length=1)
    original_value: Decimal = Field(ge=0, decimal_places=2)
    retainage_percent: Decimal | None = Field(default=None, ge=0, le=100)
    status: SubcontractStatus = SubcontractStatus.DRAFT


class SubcontractUpdate(SubcontractDetails):
    """Schema for updating a subcontract. Omitted fields are left unchanged."""

    subcontractor_name: str | None = Field(default=None, min_length=1, max_length=200)
    scope_of_work: str | None = Field(default=None, min_length=1)
    original_value: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    retainage_percent: Decimal | None = Field(default=None, ge=0, le=100)
    status: SubcontractStatus | None = None
    expected_revision: int | None = None


class SubcontractResponse(BaseModel):
    """Schema for subcontract response."""

    model_config = ConfigDict(from_attributes=True)

    subcontract_id: UUID
    tenant_id: UUID
    project_id: UUID
    subcontract_number: str
    subcontractor_name: str
    subcontractor_contact: str | None = None
    subcontractor_email: str | None = None
    scope_of_work: str
    trade_code: str | None = None
    original_value: Decimal
    current_value: Decimal
    billed_to_date: Decimal
    paid_to_date: Decimal
    retainage_percent: Decimal
    retainage_held: Decimal
    start_date: date | None = None
    completion_date: date | None = None
    insurance_current: bool
    status: str
    notes: str | None = None
    revision: int
    created_at: datetime
    updated_at: datetime


class SubcontractListResponse(BaseModel):
    """Schema for listing subcontracts."""

    items: list[SubcontractResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Change order schemas
# ============================================================================


class ChangeOrderCreate(BaseModel):
    """Schema for creating a change order. Amount is signed."""

    subcontract_id: UUID
    change_order_number: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    amount: Decimal = Field(decimal_places=2)
    reason: str | None = Field(default=None, max_length=500)
    days_extension: int | None = None
    reference_number: str | None = Field(default=None, max_length=100)


class ChangeOrderUpdate(BaseModel):
    """Schema for updating a change order."""

    change_order_number: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    amount: Decimal = Field(decimal_places=2)
    status: ChangeOrderStatus
    reason: str | None = Field(default=None, max_length=500)
    days_extension: int | None = None
    reference_number: str | None = Field(default=None, max_length=100)
    rejection_reason: str | None = Field(default=None, max_length=1000)
    expected_revision: int | None = None


class ChangeOrderResponse(BaseModel):
    """Schema for change order response."""

    model_config = ConfigDict(from_attributes=True)

    change_order_id: UUID
    subcontract_id: UUID
    change_order_number: str
    title: str
    description: str
    reason: str | None = None
    amount: Decimal
    days_extension: int | None = None
    reference_number: str | None = None
    status: str
    submitted_date: datetime | None = None
    approved_date: datetime | None = None
    approved_by: str | None = None
    rejected_date: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    revision: int
    created_at: datetime


class ChangeOrderListResponse(BaseModel):
    """Schema for listing change orders."""

    items: list[ChangeOrderResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Payment application schemas
# ============================================================================


class PaymentApplicationCreate(BaseModel):
    """Schema for creating a payment application."""

    subcontract_id: UUID
    period_start: date
    period_end: date
    work_completed_this_period: Decimal = Field(ge=0, decimal_places=2)
    stored_materials: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    invoice_number: str | None = Field(default=None, max_length=100)
    notes: str | None = None

    @model_validator(mode="after")
    def check_period(self) -> "PaymentApplicationCreate":
        if self.period_end < self.period_start:
            raise ValueError("period_end must be on or after period_start")
        return self


class PaymentApplicationUpdate(BaseModel):
    """Schema for updating a payment application.

    Optional fields left out keep their stored value.
    """

    work_completed_this_period: Decimal = Field(ge=0, decimal_places=2)
    stored_materials: Decimal = Field(ge=0, decimal_places=2)
    status: PaymentApplicationStatus
    approved_by: str | None = Field(default=None, max_length=200)
    approved_amount: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    invoice_number: str | None = Field(default=None, max_length=100)
    check_number: str | None = Field(default=None, max_length=100)
    notes: str | None = None
    expected_revision: int | None = None


class PaymentApplicationResponse(BaseModel):
    """Schema for payment application response."""

    model_config = ConfigDict(from_attributes=True)

    payment_application_id: UUID
    subcontract_id: UUID
    application_number: int
    period_start: date
    period_end: date
    scheduled_value: Decimal
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
    status: str
    submitted_date: datetime | None = None
    reviewed_date: datetime | None = None
    approved_date: datetime | None = None
    paid_date: datetime | None = None
    approved_by: str | None = None
    approved_amount: Decimal | None = None
    invoice_number: str | None = None
    check_number: str | None = None
    notes: str | None = None
    revision: int
    created_at: datetime


class PaymentApplicationListResponse(BaseModel):
    """Schema for listing payment applications."""

    items: list[PaymentApplicationResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
