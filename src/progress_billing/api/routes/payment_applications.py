"""Payment application API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from progress_billing.api.dependencies import Actor, CorrelationId, DbSession, TenantId
from progress_billing.api.errors import unwrap_or_raise
from progress_billing.api.schemas import (
    ErrorResponse,
    PaymentApplicationCreate,
    PaymentApplicationListResponse,
    PaymentApplicationResponse,
    PaymentApplicationUpdate,
)
from progress_billing.services.payment_application_service import (
    PaymentApplicationService,
)

router = APIRouter(prefix="/payment-applications", tags=["payment-applications"])


@router.post(
    "",
    response_model=PaymentApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_payment_application(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    correlation_id: CorrelationId,
    payload: PaymentApplicationCreate,
) -> PaymentApplicationResponse:
    """Create the next draft payment application for a subcontract.

    On 409 the application number was taken concurrently; retrying is safe.
    """
    service = PaymentApplicationService(db, tenant_id, actor, correlation_id)
    application = unwrap_or_raise(
        await service.create_payment_application(
            subcontract_id=payload.subcontract_id,
            period_start=payload.period_start,
            period_end=payload.period_end,
            work_completed_this_period=payload.work_completed_this_period,
            stored_materials=payload.stored_materials,
            invoice_number=payload.invoice_number,
            notes=payload.notes,
        )
    )
    unwrap_or_raise(await service.commit("create_payment_application"))
    await db.refresh(application)
    return PaymentApplicationResponse.model_validate(application)


@router.get(
    "",
    response_model=PaymentApplicationListResponse,
)
async def list_payment_applications(
    db: DbSession,
    tenant_id: TenantId,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(ge=1)] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    subcontract_id: UUID | None = None,
) -> PaymentApplicationListResponse:
    """List payment applications, highest application number first."""
    service = PaymentApplicationService(db, tenant_id)
    result = unwrap_or_raise(
        await service.list_payment_applications(
            subcontract_id=subcontract_id,
            status=status_filter,
            page=page,
            page_size=page_size,
        )
    )
    return PaymentApplicationListResponse(
        items=[PaymentApplicationResponse.model_validate(a) for a in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get(
    "/{application_id}",
    response_model=PaymentApplicationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payment_application(
    db: DbSession,
    tenant_id: TenantId,
    application_id: Annotated[UUID, Path()],
) -> PaymentApplicationResponse:
    """Get a specific payment application by ID."""
    service = PaymentApplicationService(db, tenant_id)
    application = unwrap_or_raise(await service.get_payment_application(application_id))
    return PaymentApplicationResponse.model_validate(application)


@router.put(
    "/{application_id}",
    response_model=PaymentApplicationResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_payment_application(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    correlation_id: CorrelationId,
    application_id: Annotated[UUID, Path()],
    payload: PaymentApplicationUpdate,
) -> PaymentApplicationResponse:
    """Revise amounts and/or move the application through its workflow."""
    service = PaymentApplicationService(db, tenant_id, actor, correlation_id)
    application = unwrap_or_raise(
        await service.update_payment_application(
            application_id,
            work_completed_this_period=payload.work_completed_this_period,
            stored_materials=payload.stored_materials,
            status=payload.status.value,
            approved_by=payload.approved_by,
            approved_amount=payload.approved_amount,
            invoice_number=payload.invoice_number,
            check_number=payload.check_number,
            notes=payload.notes,
            expected_revision=payload.expected_revision,
        )
    )
    unwrap_or_raise(await service.commit("update_payment_application"))
    await db.refresh(application)
    return PaymentApplicationResponse.model_validate(application)


@router.delete(
    "/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_payment_application(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    correlation_id: CorrelationId,
    application_id: Annotated[UUID, Path()],
) -> Response:
    """Delete the latest draft payment application of a subcontract."""
    service = PaymentApplicationService(db, tenant_id, actor, correlation_id)
    unwrap_or_raise(await service.delete_payment_application(application_id))
    unwrap_or_raise(await service.commit("delete_payment_application"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
