"""Pytest fixtures for progress billing tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from progress_billing.models import Base, PaymentApplication, Subcontract
from progress_billing.services.payment_application_service import (
    PaymentApplicationService,
)

# In-memory SQLite shared across sessions of one test through StaticPool
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_ID = UUID("00000000-0000-0000-0000-000000000001")
OTHER_TENANT_ID = UUID("00000000-0000-0000-0000-000000000002")
PROJECT_ID = UUID("00000000-0000-0000-0000-0000000000a1")
ACTOR = "pm@example.com"


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def tenant_id() -> UUID:
    return TENANT_ID


@pytest.fixture
def other_tenant_id() -> UUID:
    return OTHER_TENANT_ID


@pytest.fixture
def project_id() -> UUID:
    return PROJECT_ID


@pytest.fixture
def actor() -> str:
    return ACTOR


@pytest.fixture
async def subcontract(session: AsyncSession) -> Subcontract:
    """Committed subcontract worth 100,000.00 with 10% retainage."""
    subcontract = Subcontract(
        tenant_id=TENANT_ID,
        project_id=PROJECT_ID,
        subcontract_number="SC-001",
        subcontractor_name="Acme Framing LLC",
        scope_of_work="Structural framing, levels 1-4",
        original_value=Decimal("100000.00"),
        current_value=Decimal("100000.00"),
        billed_to_date=Decimal("0.00"),
        paid_to_date=Decimal("0.00"),
        retainage_percent=Decimal("10.00"),
        retainage_held=Decimal("0.00"),
        status="executed",
    )
    session.add(subcontract)
    await session.commit()
    return subcontract


@pytest.fixture
def pay_app_service(session: AsyncSession) -> PaymentApplicationService:
    return PaymentApplicationService(
        session, TENANT_ID, actor=ACTOR, correlation_id="test-correlation"
    )


@pytest.fixture
def create_application(session: AsyncSession, pay_app_service: PaymentApplicationService):
    """Create and commit a payment application for a monthly period."""

    async def _create(
        subcontract: Subcontract,
        work: str,
        month: int = 1,
        stored: str = "0",
    ) -> PaymentApplication:
        result = await pay_app_service.create_payment_application(
            subcontract_id=subcontract.subcontract_id,
            period_start=date(2024, month, 1),
            period_end=date(2024, month, 28),
            work_completed_this_period=Decimal(work),
            stored_materials=Decimal(stored),
        )
        assert result.is_success, result.error
        await session.commit()
        return result.value

    return _create


@pytest.fixture
def move_application(session: AsyncSession, pay_app_service: PaymentApplicationService):
    """Walk a payment application through statuses, committing each step."""

    async def _move(
        application: PaymentApplication,
        *statuses: str,
        **fields,
    ) -> PaymentApplication:
        for status in statuses:
            result = await pay_app_service.update_payment_application(
                application.payment_application_id,
                work_completed_this_period=fields.pop(
                    "work", application.work_completed_this_period
                ),
                stored_materials=fields.pop("stored", application.stored_materials),
                status=status,
                **fields,
            )
            assert result.is_success, result.error
            fields = {}
            await session.commit()
            application = result.value
        return application

    return _move
