"""Shared fixtures: a throwaway SQLite database per test and small seed helpers."""
from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./compliance-test.db")
os.environ.setdefault("HUD_API_KEY", "test-key")

from collections.abc import AsyncIterator, Iterable
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from compliance.db.session import init_models
from compliance.models import (
    DocumentStatus,
    DocumentType,
    IncomeDocument,
    IncomeVerification,
    Lease,
    Property,
    Resident,
    Unit,
    VerificationStatus,
)
from compliance.services.locks import PropertyLockRegistry


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'compliance.db'}")
    await init_models(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def locks() -> PropertyLockRegistry:
    return PropertyLockRegistry()


async def create_property(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    unit_numbers: Iterable[str] = ("101",),
    property_id: str = "prop-1",
    **fields,
) -> str:
    async with session_factory() as session:
        async with session.begin():
            session.add(
                Property(
                    id=property_id,
                    name=fields.pop("name", "Maple Court"),
                    county=fields.pop("county", "Travis"),
                    state=fields.pop("state", "TX"),
                    **fields,
                )
            )
            for number in unit_numbers:
                session.add(Unit(id=f"{property_id}-unit-{number}", property_id=property_id, unit_number=number))
    return property_id


async def create_future_lease(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    unit_id: str,
    residents: dict[str, Decimal],
    finalized: bool = True,
    lease_id: str = "future-lease",
    start: date | None = None,
    end: date | None = None,
    with_document: bool = False,
) -> str:
    """Manually created future lease whose residents carry verified income."""

    async with session_factory() as session:
        async with session.begin():
            session.add(
                Lease(id=lease_id, unit_id=unit_id, name="Future Lease", lease_start_date=start, lease_end_date=end)
            )
            verification = IncomeVerification(
                id=f"{lease_id}-verification",
                lease_id=lease_id,
                status=VerificationStatus.FINALIZED if finalized else VerificationStatus.IN_PROGRESS,
            )
            session.add(verification)
            for index, (name, income) in enumerate(residents.items()):
                resident_id = f"{lease_id}-resident-{index}"
                session.add(
                    Resident(
                        id=resident_id,
                        lease_id=lease_id,
                        name=name,
                        calculated_annualized_income=income,
                        # Stale flag on purpose: finalization is read from the verification.
                        income_finalized=False,
                    )
                )
                if with_document:
                    session.add(
                        IncomeDocument(
                            resident_id=resident_id,
                            verification_id=verification.id,
                            document_type=DocumentType.W2,
                            status=DocumentStatus.COMPLETED,
                            file_path=f"uploads/{resident_id}-w2.pdf",
                            box1_wages=income,
                            tax_year=2024,
                        )
                    )
    return lease_id


@pytest.fixture
def make_property(session_factory):
    async def _make(**kwargs) -> str:
        return await create_property(session_factory, **kwargs)

    return _make


@pytest.fixture
def make_future_lease(session_factory):
    async def _make(**kwargs) -> str:
        return await create_future_lease(session_factory, **kwargs)

    return _make
