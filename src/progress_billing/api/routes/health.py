"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

from progress_billing.api.dependencies import DbSession
from progress_billing.config import settings
from progress_billing.models import AuditEvent, ChangeOrder, PaymentApplication, Subcontract

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Tables the billing operations cannot run without
BILLING_TABLES = (Subcontract, ChangeOrder, PaymentApplication, AuditEvent)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness response listing billing tables that could not be read."""

    status: str
    missing_tables: list[str]


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Check API and database health."""
    db_status = "unhealthy"
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        version=settings.engine_version,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(db: DbSession):
    """Ready once every billing table can be queried."""
    missing: list[str] = []
    for model in BILLING_TABLES:
        try:
            await db.execute(select(model).limit(1))
        except SQLAlchemyError:
            logger.warning("Billing table %s is not readable", model.__tablename__)
            await db.rollback()
            missing.append(model.__tablename__)

    body = ReadinessResponse(
        status="not_ready" if missing else "ready", missing_tables=missing
    )
    if missing:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body.model_dump()
        )
    return body


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
