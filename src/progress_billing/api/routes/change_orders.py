"""Change order API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from progress_billing.api.dependencies import Actor, CorrelationId, DbSession, TenantId
from progress_billing.api.errors import unwrap_or_raise
from progress_billing.api.schemas import (
    ChangeOrderCreate,
    ChangeOrderListResponse,
    ChangeOrderResponse,
    ChangeOrderUpdate,
    ErrorResponse,
)
from progress_billing.services.change_order_service import ChangeOrderService

router = APIRouter(prefix="/change-orders", tags=["change-orders"])


@router.post(
    "",
    response_model=ChangeOrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_change_order(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    correlation_id: CorrelationId,
    payload: ChangeOrderCreate,
) -> ChangeOrderResponse:
    """Create a pending change order."""
    service = ChangeOrderService(db, tenant_id, actor, correlation_id)
    change_order = unwrap_or_raise(
        await service.create_change_order(**payload.model_dump())
    )
    unwrap_or_raise(await service.commit("create_change_order"))
    await db.refresh(change_order)
    return ChangeOrderResponse.model_validate(change_order)


@router.get(
    "",
    response_model=ChangeOrderListResponse,
)
async def list_change_orders(
    db: DbSession,
    tenant_id: TenantId,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(ge=1)] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    subcontract_id: UUID | None = None,
    search: str | None = None,
) -> ChangeOrderListResponse:
    """List change orders, newest first. `search` matches title or number."""
    service = ChangeOrderService(db, tenant_id)
    result = unwrap_or_raise(
        await service.list_change_orders(
            subcontract_id=subcontract_id,
            status=status_filter,
            search=search,
            page=page,
            page_size=page_size,
        )
    )
    return ChangeOrderListResponse(
        items=[ChangeOrderResponse.model_validate(co) for co in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get(
    "/{change_order_id}",
    response_model=ChangeOrderResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_change_order(
    db: DbSession,
    tenant_id: TenantId,
    change_order_id: Annotated[UUID, Path()],
) -> ChangeOrderResponse:
    """Get a specific change order by ID."""
    service = ChangeOrderService(db, tenant_id)
    change_order = unwrap_or_raise(await service.get_change_order(change_order_id))
    return ChangeOrderResponse.model_validate(change_order)


@router.put(
    "/{change_order_id}",
    response_model=ChangeOrderResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_change_order(
    db: DbSession,
    tenant_id: TenantId,
    actor: Actor,
    correlation_id: CorrelationId,
    change_order_id: Annotated[UUID, Path()],
    payload: ChangeOrderUpdate,
) -> ChangeOrderResponse:
    """Update a change order. Approving or un-approving it moves contract value."""
    service = ChangeOrderService(db, tenant_id, actor, correlation_id)
    fields = payload.model_dump()
    fields["status"] = payload.status.value
    change_order = unwrap_or_raise(
        await service.update_change_order(change_order_id, **fields)
    )
    unwrap_or_raise(await service.commit("update_change_order"))
    await db.refresh(change_order)
    return ChangeOrderResponse.model_validate(change_order)
