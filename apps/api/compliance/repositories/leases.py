"""Lease repository helpers."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.lease import Lease
from ..models.resident import Resident
from ..models.unit import Unit


def _aggregate_options():
    return (
        selectinload(Lease.unit),
        selectinload(Lease.tenancies),
        selectinload(Lease.income_verifications),
        selectinload(Lease.residents).selectinload(Resident.income_documents),
    )


async def get_aggregate(session: AsyncSession, lease_id: str) -> Lease | None:
    """Return a lease with its unit, tenancies, residents, documents and verifications loaded."""

    stmt = (
        select(Lease)
        .where(Lease.id == lease_id)
        .options(*_aggregate_options())
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_for_property(session: AsyncSession, *, property_id: str) -> list[Lease]:
    """Return every lease aggregate on the property's units, oldest first."""

    stmt = (
        select(Lease)
        .join(Unit, Lease.unit_id == Unit.id)
        .where(Unit.property_id == property_id)
        .options(*_aggregate_options())
        .execution_options(populate_existing=True)
        .order_by(Lease.created_at.asc(), Lease.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().unique().all())


async def list_for_unit(session: AsyncSession, *, unit_id: str) -> list[Lease]:
    stmt = (
        select(Lease)
        .where(Lease.unit_id == unit_id)
        .options(*_aggregate_options())
        .execution_options(populate_existing=True)
        .order_by(Lease.created_at.asc(), Lease.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().unique().all())

