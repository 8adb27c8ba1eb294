"""Shared plumbing for the service layer: unit of work, errors, audit."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from progress_billing.config import get_settings
from progress_billing.models import AuditEvent
from progress_billing.services.result import ErrorCode, ServiceResult

T = TypeVar("T")

logger = logging.getLogger(__name__)


def jsonable(data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Convert a payload to JSON-safe primitives for the audit trail."""
    if data is None:
        return None
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, (Decimal, UUID, date, datetime)):
            value = str(value)
        out[key] = value
    return out


class BaseService:
    """Base for services operating on one AsyncSession as one unit of work.

    Write operations run through `_run`: on success pending changes are
    flushed (which is where version conflicts and unique violations
    surface); on any failure the session is rolled back so no partial
    mutation becomes visible. Callers end the unit of work with `commit`.
    """

    commit_integrity_code = ErrorCode.CONFLICT
    commit_integrity_message = "The record was modified concurrently; reload and retry"

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: UUID,
        actor: str | None = None,
        correlation_id: str | None = None,
    ):
        self.session = session
        self.tenant_id = tenant_id
        self.actor = actor
        self.correlation_id = correlation_id

    @property
    def _log_extra(self) -> dict[str, Any]:
        return {"correlation_id": self.correlation_id}

    async def _run(
        self,
        operation: str,
        work: Awaitable[ServiceResult[T]],
        integrity_code: ErrorCode = ErrorCode.CONFLICT,
        integrity_message: str = "The record was modified concurrently; reload and retry",
    ) -> ServiceResult[T]:
        """Execute a write operation and normalize storage failures."""
        try:
            result = await work
            if result.is_success:
                await self.session.flush()
            else:
                await self.session.rollback()
                logger.warning(
                    "%s rejected: %s (%s)",
                    operation,
                    result.error,
                    result.error_code.value if result.error_code else None,
                    extra=self._log_extra,
                )
            return result
        except SQLAlchemyError as exc:
            return await self._storage_failure(
                operation, exc, integrity_code, integrity_message
            )

    async def commit(self, operation: str) -> ServiceResult[None]:
        """Commit the unit of work, normalizing failures the same way as `_run`.

        Unique violations surfacing at commit map to the service's
        `commit_integrity_code`.
        """
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            return await self._storage_failure(
                f"{operation} commit",
                exc,
                self.commit_integrity_code,
                self.commit_integrity_message,
            )
        return ServiceResult.success(None)

    async def _storage_failure(
        self,
        operation: str,
        exc: SQLAlchemyError,
        integrity_code: ErrorCode,
        integrity_message: str,
    ) -> ServiceResult[Any]:
        await self.session.rollback()
        if isinstance(exc, StaleDataError):
            logger.warning("%s hit a stale revision", operation, extra=self._log_extra)
            return ServiceResult.failure(
                ErrorCode.CONFLICT,
                "The record was modified by someone else; reload and retry",
            )
        if isinstance(exc, IntegrityError):
            logger.warning(
                "%s violated a uniqueness constraint", operation, extra=self._log_extra
            )
            return ServiceResult.failure(integrity_code, integrity_message)
        logger.exception("%s failed in storage", operation, extra=self._log_extra)
        return ServiceResult.failure(
            ErrorCode.DATABASE_ERROR, "A database error occurred"
        )

    async def _read(
        self, operation: str, work: Awaitable[ServiceResult[T]]
    ) -> ServiceResult[T]:
        """Execute a read operation and normalize storage failures."""
        try:
            return await work
        except SQLAlchemyError:
            logger.exception("%s failed in storage", operation, extra=self._log_extra)
            return ServiceResult.failure(
                ErrorCode.DATABASE_ERROR, "A database error occurred"
            )

    def _record_audit(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record an audit event in the current unit of work."""
        event = AuditEvent(
            tenant_id=self.tenant_id,
            actor=self.actor,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            before_json=jsonable(before),
            after_json=jsonable(after),
            correlation_id=self.correlation_id,
        )
        self.session.add(event)
        return event

    @staticmethod
    def _page_bounds(page: int, page_size: int | None) -> tuple[int, int]:
        """Clamp paging input to the configured page size limits."""
        settings = get_settings()
        if page_size is None:
            page_size = settings.default_page_size
        return max(page, 1), min(max(page_size, 1), settings.max_page_size)
