"""Tests for engine setup and the session context manager."""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from progress_billing import database
from progress_billing.models import Subcontract

TENANT_ID = UUID("00000000-0000-0000-0000-000000000001")
PROJECT_ID = UUID("00000000-0000-0000-0000-0000000000a1")


def make_subcontract(number: str) -> Subcontract:
    return Subcontract(
        subcontract_id=uuid4(),
        tenant_id=TENANT_ID,
        project_id=PROJECT_ID,
        subcontract_number=number,
        subcontractor_name="Granite Masonry Co",
        scope_of_work="CMU walls",
        original_value=Decimal("50000.00"),
        current_value=Decimal("50000.00"),
        retainage_percent=Decimal("5.00"),
    )


@pytest.fixture
async def file_db(tmp_path, monkeypatch):
    """Point the module-level engine at a throwaway SQLite file."""
    monkeypatch.setattr(database, "_engine", None)
    monkeypatch.setattr(database, "_session_factory", None)
    engine, factory = database.init_db(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    await database.create_schema(engine)
    yield factory
    await engine.dispose()


class TestGetSession:
    async def test_commits_on_success(self, file_db):
        subcontract = make_subcontract("SC-900")
        async with database.get_session() as session:
            session.add(subcontract)

        async with file_db() as session:
            found = await database.lock_subcontract(
                session, subcontract.subcontract_id, TENANT_ID
            )
            assert found is not None
            assert found.subcontract_number == "SC-900"

    async def test_rolls_back_on_error(self, file_db):
        subcontract = make_subcontract("SC-901")
        with pytest.raises(RuntimeError):
            async with database.get_session() as session:
                session.add(subcontract)
                await session.flush()
                raise RuntimeError("boom")

        async with file_db() as session:
            found = await database.lock_subcontract(session, subcontract.subcontract_id)
            assert found is None

    async def test_init_db_is_cached(self, file_db):
        assert database.init_db()[1] is file_db


class TestLockSubcontract:
    async def test_other_tenant_is_not_loaded(self, session, subcontract, other_tenant_id):
        found = await database.lock_subcontract(
            session, subcontract.subcontract_id, other_tenant_id
        )

        assert found is None
