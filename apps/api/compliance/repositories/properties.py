"""Property and unit repository helpers."""
from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.property import Property
from ..models.unit import Unit


async def get_by_id(session: AsyncSession, property_id: str, *, for_update: bool = False) -> Property | None:
    """Return a property by identifier, optionally row-locking it."""

    stmt: Select[tuple[Property]] = select(Property).where(Property.id == property_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_units(session: AsyncSession, *, property_id: str) -> list[Unit]:
    """Return every unit of a property ordered by unit number."""

    stmt = select(Unit).where(Unit.property_id == property_id).order_by(Unit.unit_number.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_unit(session: AsyncSession, unit_id: str) -> Unit | None:
    stmt = select(Unit).where(Unit.id == unit_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
