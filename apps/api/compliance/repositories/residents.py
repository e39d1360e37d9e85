"""Resident repository helpers."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.lease import Lease
from ..models.resident import Resident
from ..models.unit import Unit


async def get_with_documents(session: AsyncSession, resident_id: str) -> Resident | None:
    """Return a resident with its documents and lease loaded."""

    stmt = (
        select(Resident)
        .where(Resident.id == resident_id)
        .options(
            selectinload(Resident.income_documents),
            selectinload(Resident.lease).selectinload(Lease.residents),
        )
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()



async def get_property_id(session: AsyncSession, resident_id: str) -> str | None:
    """Return the id of the property whose unit holds the resident's lease."""

    stmt = (
        select(Unit.property_id)
        .join(Lease, Lease.unit_id == Unit.id)
        .join(Resident, Resident.lease_id == Lease.id)
        .where(Resident.id == resident_id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
