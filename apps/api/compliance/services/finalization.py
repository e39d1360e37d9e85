"""Resident and lease finalization workflow.

These are the only writers of ``calculated_annualized_income`` and ``income_finalized``;
the declared ``annualized_income`` from the rent roll is never touched here.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import IncompleteVerificationError, NotFoundError
from ..models.resident import Resident
from ..models.verification import IncomeVerification, VerificationStatus
from ..repositories import leases as leases_repo
from ..repositories import residents as residents_repo
from ..repositories import verifications as verifications_repo
from .income import annualize_documents, to_money
from .verification import is_resident_finalized

logger = logging.getLogger(__name__)


async def _load_resident(session: AsyncSession, resident_id: str) -> Resident:
    resident = await residents_repo.get_with_documents(session, resident_id)
    if resident is None:
        raise NotFoundError("Resident not found")
    return resident


async def finalize_resident(
    session: AsyncSession, resident_id: str, *, verified_income: Decimal | None = None
) -> Resident:
    """Lock in a resident's verified income.

    Without an explicit figure the income is derived from the resident's completed
    documents; ``IncomeAnalysisError`` propagates so the caller can ask for more.
    """

    resident = await _load_resident(session, resident_id)
    amount = to_money(verified_income) if verified_income is not None else annualize_documents(resident.income_documents)
    resident.calculated_annualized_income = amount
    resident.income_finalized = True
    resident.has_no_income = False
    resident.finalized_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("Finalized resident %s at %s", resident.id, amount)
    return resident


async def mark_resident_no_income(session: AsyncSession, resident_id: str) -> Resident:
    resident = await _load_resident(session, resident_id)
    resident.has_no_income = True
    resident.income_finalized = False
    resident.calculated_annualized_income = Decimal("0.00")
    resident.finalized_at = datetime.now(timezone.utc)
    await session.flush()
    return resident


async def unfinalize_resident(session: AsyncSession, resident_id: str) -> Resident:
    resident = await _load_resident(session, resident_id)
    resident.income_finalized = False
    resident.has_no_income = False
    resident.finalized_at = None
    await session.flush()
    return resident


async def finalize_verification(session: AsyncSession, lease_id: str) -> IncomeVerification:
    """Close out the lease's latest verification once every resident is finalized."""

    lease = await leases_repo.get_aggregate(session, lease_id)
    if lease is None:
        raise NotFoundError("Lease not found")
    pending = [resident.name for resident in lease.residents if not is_resident_finalized(resident)]
    if pending or not lease.residents:
        raise IncompleteVerificationError(f"Residents not finalized: {', '.join(pending) or 'none on lease'}")

    verification = await verifications_repo.get_latest(session, lease_id=lease_id)
    if verification is None:
        verification = IncomeVerification(lease_id=lease_id)
        session.add(verification)

    total = sum(
        (
            to_money(resident.calculated_annualized_income)
            for resident in lease.residents
            if resident.income_finalized
        ),
        Decimal("0.00"),
    )
    verification.status = VerificationStatus.FINALIZED
    verification.calculated_verified_income = total
    verification.finalized_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("Verification %s for lease %s finalized at %s", verification.id, lease_id, total)
    return verification
