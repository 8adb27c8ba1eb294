"""Typed operation results and the error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorCategory(str, Enum):
    """Broad failure classes callers branch on."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"


class ErrorCode(str, Enum):
    """Stable machine-readable failure codes."""

    NOT_FOUND = "NOT_FOUND"
    SUBCONTRACT_NOT_FOUND = "SUBCONTRACT_NOT_FOUND"
    CONFLICT = "CONFLICT"
    DUPLICATE_CO_NUMBER = "DUPLICATE_CO_NUMBER"
    DUPLICATE_NUMBER = "DUPLICATE_NUMBER"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    PERIOD_OUT_OF_ORDER = "PERIOD_OUT_OF_ORDER"
    INVALID_PERIOD = "INVALID_PERIOD"
    NOT_DELETABLE = "NOT_DELETABLE"
    NOT_LATEST_APPLICATION = "NOT_LATEST_APPLICATION"
    DATABASE_ERROR = "DATABASE_ERROR"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]


_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.SUBCONTRACT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.CONFLICT: ErrorCategory.CONFLICT,
    ErrorCode.DUPLICATE_CO_NUMBER: ErrorCategory.VALIDATION,
    ErrorCode.DUPLICATE_NUMBER: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_STATUS_TRANSITION: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_AMOUNT: ErrorCategory.VALIDATION,
    ErrorCode.PERIOD_OUT_OF_ORDER: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_PERIOD: ErrorCategory.VALIDATION,
    ErrorCode.NOT_DELETABLE: ErrorCategory.VALIDATION,
    ErrorCode.NOT_LATEST_APPLICATION: ErrorCategory.VALIDATION,
    ErrorCode.DATABASE_ERROR: ErrorCategory.PERSISTENCE,
}


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Result of a service operation.

    Business failures are returned, not raised. Check `is_success` before
    reading `value`; on failure `error_code` and `error` are set.
    """

    value: T | None = None
    error: str | None = None
    error_code: ErrorCode | None = None

    @property
    def is_success(self) -> bool:
        return self.error_code is None

    @property
    def category(self) -> ErrorCategory | None:
        return self.error_code.category if self.error_code else None

    @classmethod
    def success(cls, value: T) -> ServiceResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error_code: ErrorCode, error: str) -> ServiceResult[T]:
        return cls(error=error, error_code=error_code)

    def unwrap(self) -> T:
        """Return the value, raising if this is a failure."""
        if not self.is_success:
            raise ValueError(f"{self.error_code.value}: {self.error}")
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing."""

    items: list[T]
    total: int
    page: int
    page_size: int
