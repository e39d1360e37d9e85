"""Read-only verification status endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import verification as verification_schema
from ..services import verification as verification_service

router = APIRouter()


@router.get(
    "/properties/{property_id}/verification-status",
    response_model=verification_schema.PropertyVerificationStatusResponse,
)
async def property_verification_status(
    property_id: str,
    session: AsyncSession = Depends(get_session),
) -> verification_schema.PropertyVerificationStatusResponse:
    """Status of every unit plus per-status counts."""

    return await verification_service.property_status_report(session, property_id)


@router.get(
    "/leases/{lease_id}/verification-status",
    response_model=verification_schema.LeaseVerificationStatusResponse,
)
async def lease_verification_status(
    lease_id: str,
    session: AsyncSession = Depends(get_session),
) -> verification_schema.LeaseVerificationStatusResponse:
    return await verification_service.lease_status_report(session, lease_id)


@router.get(
    "/units/{unit_id}/verification-status",
    response_model=verification_schema.UnitVerificationStatusResponse,
)
async def unit_verification_status(
    unit_id: str,
    session: AsyncSession = Depends(get_session),
) -> verification_schema.UnitVerificationStatusResponse:
    return await verification_service.unit_status_report(session, unit_id)
