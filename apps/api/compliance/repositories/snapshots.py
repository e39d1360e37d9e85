"""Snapshot and rent-roll repository helpers."""
from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.snapshot import RentRoll, RentRollSnapshot


async def get_active_snapshot(session: AsyncSession, *, property_id: str) -> RentRollSnapshot | None:
    """Return the active snapshot for a property, newest first if the invariant ever broke."""

    stmt = (
        select(RentRollSnapshot)
        .where(RentRollSnapshot.property_id == property_id, RentRollSnapshot.is_active.is_(True))
        .order_by(RentRollSnapshot.created_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_snapshot(session: AsyncSession, snapshot_id: str) -> RentRollSnapshot | None:
    stmt = select(RentRollSnapshot).where(RentRollSnapshot.id == snapshot_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_rent_roll(session: AsyncSession, *, property_id: str) -> RentRoll | None:
    """Return the rent roll belonging to the property's active snapshot."""

    stmt = (
        select(RentRoll)
        .join(RentRollSnapshot, RentRoll.snapshot_id == RentRollSnapshot.id)
        .where(RentRollSnapshot.property_id == property_id, RentRollSnapshot.is_active.is_(True))
        .order_by(RentRoll.created_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def deactivate_others(session: AsyncSession, *, property_id: str, keep_snapshot_id: str) -> None:
    """Flip every other snapshot of the property to inactive."""

    stmt = (
        update(RentRollSnapshot)
        .where(RentRollSnapshot.property_id == property_id, RentRollSnapshot.id != keep_snapshot_id)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)


async def count_active(session: AsyncSession, *, property_id: str) -> int:
    stmt = select(func.count(RentRollSnapshot.id)).where(
        RentRollSnapshot.property_id == property_id, RentRollSnapshot.is_active.is_(True)
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())

