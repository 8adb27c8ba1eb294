"""Database connection and session management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from progress_billing.config import get_settings
from progress_billing.models import Base, Subcontract

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

__all__ = [
    "Base",
    "get_engine",
    "init_db",
    "get_session",
    "create_schema",
    "lock_subcontract",
]


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db(
    database_url: str | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None or _session_factory is None:
        _engine = get_engine(database_url)
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables (development and tests; production uses migrations)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def lock_subcontract(
    session: AsyncSession,
    subcontract_id: UUID,
    tenant_id: UUID | None = None,
) -> Subcontract | None:
    """Load a subcontract with a row lock held until the transaction ends.

    Sequencing and Paid postings for one subcontract serialize on this lock.
    Dialects without FOR UPDATE support (SQLite) ignore the clause.
    """
    query = select(Subcontract).where(
        Subcontract.subcontract_id == subcontract_id,
        Subcontract.is_deleted.is_(False),
    )
    if tenant_id is not None:
        query = query.where(Subcontract.tenant_id == tenant_id)
    result = await session.execute(query.with_for_update())
    return result.scalar_one_or_none()
