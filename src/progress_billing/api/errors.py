"""Translation of service failures into HTTP error responses."""

from typing import TypeVar

from fastapi import Request, status
from fastapi.responses import JSONResponse

from progress_billing.services.result import ErrorCategory, ErrorCode, ServiceResult

T = TypeVar("T")

STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.PERSISTENCE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ServiceFailure(Exception):
    """Raised by routes when a service operation returns a failure."""

    def __init__(self, error_code: ErrorCode, detail: str):
        self.error_code = error_code
        self.detail = detail
        super().__init__(detail)

    @property
    def status_code(self) -> int:
        return STATUS_BY_CATEGORY[self.error_code.category]


def unwrap_or_raise(result: ServiceResult[T]) -> T:
    """Return a successful result's value, or raise ServiceFailure."""
    if not result.is_success:
        raise ServiceFailure(result.error_code, result.error or "")
    return result.value  # type: ignore[return-value]


async def service_failure_handler(request: Request, exc: ServiceFailure) -> JSONResponse:
    """Render a ServiceFailure as {"detail", "code"}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.error_code.value},
    )
