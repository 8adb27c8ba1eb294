"""Subcontract API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from progress_billing.api.dependencies import Actor, CorrelationId, DbSession, TenantId
from progress_billing.api.errors import unwrap_or_raise
from progress_billing.api.schemas import (
    ErrorResponse,
    SubcontractCreate,
    SubcontractListResponse,
    SubcontractResponse,
    SubcontractUpdate,
)
from progress_billing.services.subcontract_service import SubcontractService

router = APIRouter(prefix="/subcontracts", tags=["subcontracts"])


@router.post(
    "",
    response_model=SubcontractResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_subcontract(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    correlation_id: CorrelationId,
    payload: SubcontractCreate,
) -> SubcontractResponse:
    """Create a subcontract. Current value starts at the original value."""
    service = SubcontractService(db, tenant_id, actor, correlation_id)
    details = payload.model_dump(
        exclude={
            "project_id",
            "subcontract_number",
            "subcontractor_name",
            "scope_of_work",
            "original_value",
            "retainage_percent",
            "status",
        }
    )
    subcontract = unwrap_or_raise(
        await service.create_subcontract(
            project_id=payload.project_id,
            subcontract_number=payload.subcontract_number,
            subcontractor_name=payload.subcontractor_name,
            scope_of_work=payload.scope_of_work,
            original_value=payload.original_value,
            retainage_percent=payload.retainage_percent,
            status=payload.status.value,
            **details,
        )
    )
    unwrap_or_raise(await service.commit("create_subcontract"))
    await db.refresh(subcontract)
    return SubcontractResponse.model_validate(subcontract)


@router.get(
    "",
    response_model=SubcontractListResponse,
)
async def list_subcontracts(
    db: DbSession,
    tenant_id: TenantId,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(ge=1)] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    project_id: UUID | None = None,
) -> SubcontractListResponse:
    """List subcontracts for a tenant with optional filters."""
    service = SubcontractService(db, tenant_id)
    result = unwrap_or_raise(
        await service.list_subcontracts(
            project_id=project_id, status=status_filter, page=page, page_size=page_size
        )
    )
    return SubcontractListResponse(
        items=[SubcontractResponse.model_validate(s) for s in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get(
    "/{subcontract_id}",
    response_model=SubcontractResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_subcontract(
    db: DbSession,
    tenant_id: TenantId,
    subcontract_id: Annotated[UUID, Path()],
) -> SubcontractResponse:
    """Get a subcontract with its running totals."""
    service = SubcontractService(db, tenant_id)
    subcontract = unwrap_or_raise(await service.get_subcontract(subcontract_id))
    return SubcontractResponse.model_validate(subcontract)


@router.patch(
    "/{subcontract_id}",
    response_model=SubcontractResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_subcontract(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    correlation_id: CorrelationId,
    subcontract_id: Annotated[UUID, Path()],
    payload: SubcontractUpdate,
) -> SubcontractResponse:
    """Update a subcontract. Billed, paid and retainage totals are read-only."""
    service = SubcontractService(db, tenant_id, actor, correlation_id)
    details = payload.model_dump(
        exclude_unset=True,
        exclude={"original_value", "retainage_percent", "status", "expected_revision"},
    )
    subcontract = unwrap_or_raise(
        await service.update_subcontract(
            subcontract_id,
            original_value=payload.original_value,
            retainage_percent=payload.retainage_percent,
            status=payload.status.value if payload.status else None,
            expected_revision=payload.expected_revision,
            **details,
        )
    )
    unwrap_or_raise(await service.commit("update_subcontract"))
    await db.refresh(subcontract)
    return SubcontractResponse.model_validate(subcontract)
