"""Income analysis and AMI bucket endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..schemas import income as income_schema
from ..services import ami as ami_service
from ..services import income as income_service
from ..services.hud import HudIncomeLimitsClient, get_hud_client

router = APIRouter()


@router.post("/income/analyze", response_model=income_schema.AnalyzePaystubsResponse)
async def analyze_paystubs(payload: income_schema.AnalyzePaystubsRequest) -> income_schema.AnalyzePaystubsResponse:
    """Annualize paystubs; unusable input answers 422 with the reason."""

    analysis = income_service.analyze_paystubs(
        income_service.Paystub(
            pay_period_start_date=stub.pay_period_start_date,
            pay_period_end_date=stub.pay_period_end_date,
            gross_pay_amount=stub.gross_pay_amount,
        )
        for stub in payload.paystubs
    )
    return income_schema.AnalyzePaystubsResponse(
        annualized_income=analysis.annualized_income,
        pay_frequency=analysis.pay_frequency.value,
        average_gross_pay=analysis.average_gross_pay,
        stubs_used=analysis.stubs_used,
    )


@router.get("/properties/{property_id}/ami-buckets", response_model=income_schema.PropertyBucketsResponse)
async def property_ami_buckets(
    property_id: str,
    year: int | None = Query(default=None, ge=2000, le=2100),
    session: AsyncSession = Depends(get_session),
    hud_client: HudIncomeLimitsClient = Depends(get_hud_client),
) -> income_schema.PropertyBucketsResponse:
    """Best-effort buckets; HUD outages come back as sentinel labels, not errors."""

    return await ami_service.compute_property_buckets(session, property_id, hud_client, year=year)
