"""Income verification repository helpers."""
from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.verification import IncomeVerification, VerificationStatus


async def get_latest(session: AsyncSession, *, lease_id: str) -> IncomeVerification | None:
    """Return the authoritative (most recently created) verification for a lease."""

    stmt = (
        select(IncomeVerification)
        .where(IncomeVerification.lease_id == lease_id)
        .order_by(IncomeVerification.created_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def reopen_for_lease(session: AsyncSession, *, lease_id: str) -> None:
    """Move every verification of the lease back to IN_PROGRESS."""

    stmt = (
        update(IncomeVerification)
        .where(IncomeVerification.lease_id == lease_id)
        .values(status=VerificationStatus.IN_PROGRESS, finalized_at=None)
        .execution_options(synchronize_session="fetch")
    )
    await session.execute(stmt)
