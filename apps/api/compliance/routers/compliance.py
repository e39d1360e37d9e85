"""Rent-roll finalize and reconciliation endpoints."""
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import compliance as compliance_schema
from ..services import ami as ami_service
from ..services import compliance as compliance_service
from ..services import reconciliation as reconciliation_service
from ..services.hud import HudIncomeLimitsClient, get_hud_client

router = APIRouter()


@router.post(
    "/properties/{property_id}/update-compliance/finalize",
    response_model=compliance_schema.FinalizeResponse,
)
async def finalize_compliance_upload(
    property_id: str,
    payload: compliance_schema.FinalizeRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    hud_client: HudIncomeLimitsClient = Depends(get_hud_client),
) -> compliance_schema.FinalizeResponse:
    """Snapshot the property and ingest a new rent roll."""

    result = await compliance_service.finalize_compliance_upload(session, property_id, payload)
    background_tasks.add_task(ami_service.capture_snapshot_income_limits, result.snapshot_id, client=hud_client)
    return result


@router.post(
    "/properties/{property_id}/future-lease-inheritance",
    response_model=compliance_schema.InheritanceDecisionResponse,
)
async def future_lease_inheritance(
    property_id: str,
    payload: compliance_schema.InheritanceDecisionRequest,
    session: AsyncSession = Depends(get_session),
) -> compliance_schema.InheritanceDecisionResponse:
    """Apply the user's inherit / keep-separate choice per unit."""

    return await reconciliation_service.apply_inheritance_decisions(
        session, property_id, payload.choices, new_lease_ids=payload.new_lease_ids
    )


@router.post(
    "/properties/{property_id}/resolve-income-discrepancy",
    response_model=compliance_schema.ResolveDiscrepancyResponse,
)
async def resolve_income_discrepancy(
    property_id: str,
    payload: compliance_schema.ResolveDiscrepancyRequest,
    session: AsyncSession = Depends(get_session),
) -> compliance_schema.ResolveDiscrepancyResponse:
    return await reconciliation_service.resolve_income_discrepancy(
        session, property_id, payload.discrepancy, payload.resolution
    )
