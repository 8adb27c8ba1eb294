"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID, uuid4

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from progress_billing.database import init_db


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Routes commit explicitly after a successful service call; anything left
    uncommitted when the request ends is rolled back.
    """
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


async def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract tenant ID from header."""
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Tenant-ID format",
        )


async def get_actor(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    """Acting user, recorded on approvals and audit events."""
    return x_user_id or None


async def get_correlation_id(
    x_correlation_id: Annotated[str | None, Header()] = None
) -> str:
    """Correlation ID from the caller, or a fresh one."""
    return x_correlation_id or str(uuid4())


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
TenantId = Annotated[UUID, Depends(get_tenant_id)]
Actor = Annotated[str | None, Depends(get_actor)]
CorrelationId = Annotated[str, Depends(get_correlation_id)]
