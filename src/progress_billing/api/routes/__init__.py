"""API routes."""

from progress_billing.api.routes.change_orders import router as change_orders_router
from progress_billing.api.routes.health import router as health_router
from progress_billing.api.routes.payment_applications import (
    router as payment_applications_router,
)
from progress_billing.api.routes.subcontracts import router as subcontracts_router

__all__ = [
    "change_orders_router",
    "health_router",
    "payment_applications_router",
    "subcontracts_router",
]
