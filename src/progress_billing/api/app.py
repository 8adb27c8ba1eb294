"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from progress_billing.api.errors import ServiceFailure, service_failure_handler
from progress_billing.api.routes import (
    change_orders_router,
    health_router,
    payment_applications_router,
    subcontracts_router,
)
from progress_billing.config import settings
from progress_billing.database import init_db
from progress_billing.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging(settings.log_level)
    engine, _ = init_db()
    logger.info("Progress billing API %s starting", settings.engine_version)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Progress Billing API",
        description="Subcontract payment applications, retainage and change orders",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceFailure, service_failure_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(
            "Unhandled error on %s %s",
            request.method,
            request.url.path,
            extra={"correlation_id": request.headers.get("x-correlation-id")},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(subcontracts_router, prefix="/api/v1")
    app.include_router(payment_applications_router, prefix="/api/v1")
    app.include_router(change_orders_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
