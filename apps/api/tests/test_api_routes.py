from __future__ import annotations

from collections.abc import AsyncIterator
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from compliance.core.errors import HudServiceError
from compliance.db.session import get_session
from compliance.main import app
from compliance.models import Resident
from compliance.services import ami as ami_service
from compliance.services.hud import get_hud_client


class FailingHudClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int]] = []

    async def get_income_limits(self, county, state, year, *, placed_in_service_date=None):
        self.calls.append((county, state, year))
        raise HudServiceError("HUD request timed out")

    async def get_fair_market_rents(self, county, state, year):
        raise HudServiceError("HUD request timed out")


@pytest.fixture
def hud_client() -> FailingHudClient:
    return FailingHudClient()


@pytest.fixture
def capture(monkeypatch) -> AsyncMock:
    mock = AsyncMock()
    monkeypatch.setattr(ami_service, "capture_snapshot_income_limits", mock)
    return mock


@pytest_asyncio.fixture
async def client(session_factory, hud_client, capture) -> AsyncIterator[AsyncClient]:
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_hud_client] = lambda: hud_client
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http:
            yield http
    finally:
        app.dependency_overrides.clear()


def upload(unit_groups: dict) -> dict:
    return {"rent_roll_date": "2025-06-15", "filename": "June rent roll.xlsx", "unit_groups": unit_groups}


JANE_ROW = {
    "lease_start_date": "2025-06-01",
    "lease_end_date": "2026-05-31",
    "lease_rent": "1150.00",
    "residents": [{"name": "Jane Doe", "annualized_income": "$31,500.00"}],
}


@pytest.mark.asyncio
async def test_finalize_route_ingests_and_schedules_limit_capture(client, make_property, capture, hud_client) -> None:
    property_id = await make_property(unit_numbers=("101", "102"), property_id="prop-api-finalize")

    response = await client.post(
        f"/api/properties/{property_id}/update-compliance/finalize", json=upload({"101": [JANE_ROW]})
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["leases_created"], body["tenancies_created"], body["residents_created"]) == (1, 1, 1)
    assert body["future_lease_matches"] == []
    capture.assert_awaited_once_with(body["snapshot_id"], client=hud_client)


@pytest.mark.asyncio
async def test_finalize_route_rejects_unknown_units(client, make_property, capture) -> None:
    property_id = await make_property(unit_numbers=("101",), property_id="prop-api-invalid")

    response = await client.post(
        f"/api/properties/{property_id}/update-compliance/finalize",
        json=upload({"101": [JANE_ROW], "999": [JANE_ROW]}),
    )

    assert response.status_code == 422
    assert response.json()["unit_numbers"] == ["999"]
    capture.assert_not_awaited()


@pytest.mark.asyncio
async def test_finalize_route_unknown_property(client) -> None:
    response = await client.post(
        "/api/properties/nowhere/update-compliance/finalize", json=upload({"101": [JANE_ROW]})
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "Property not found"}


@pytest.mark.asyncio
async def test_verification_status_routes(client, make_property) -> None:
    property_id = await make_property(unit_numbers=("101", "102"), property_id="prop-api-status")
    await client.post(f"/api/properties/{property_id}/update-compliance/finalize", json=upload({"101": [JANE_ROW]}))

    report = (await client.get(f"/api/properties/{property_id}/verification-status")).json()

    units = {unit["unit_number"]: unit for unit in report["units"]}
    assert units["102"]["status"] == "Vacant"
    assert units["102"]["lease_id"] is None
    assert units["101"]["status"] != "Vacant"
    assert sum(report["counts"].values()) == 2

    lease = (await client.get(f"/api/leases/{units['101']['lease_id']}/verification-status")).json()
    unit = (await client.get(f"/api/units/{units['101']['unit_id']}/verification-status")).json()
    assert lease["status"] == unit["status"] == units["101"]["status"]
    assert [resident["name"] for resident in lease["residents"]] == ["Jane Doe"]
    assert Decimal(lease["declared_income"]) == Decimal("31500.00")

    missing = await client.get("/api/leases/missing/verification-status")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_ami_buckets_fall_back_to_sentinel(client, session_factory, make_property, hud_client) -> None:
    property_id = await make_property(unit_numbers=("101", "102"), property_id="prop-api-ami")
    await client.post(f"/api/properties/{property_id}/update-compliance/finalize", json=upload({"101": [JANE_ROW]}))
    async with session_factory() as session:
        async with session.begin():
            resident = (await session.execute(select(Resident))).scalar_one()
            resident.calculated_annualized_income = Decimal("31500")
            resident.income_finalized = True

    response = await client.get(f"/api/properties/{property_id}/ami-buckets", params={"year": 2025})

    assert response.status_code == 200
    body = response.json()
    buckets = {unit["unit_number"]: unit["bucket"] for unit in body["units"]}
    assert buckets == {"101": ami_service.HUD_API_UNAVAILABLE, "102": ami_service.VACANT}
    assert body["max_rents"] == {}
    assert body["fair_market_rents"] == {}
    assert [call[2] for call in hud_client.calls] == [2025, 2024]


@pytest.mark.asyncio
async def test_analyze_paystubs_route(client) -> None:
    stubs = [
        {"pay_period_start_date": start, "pay_period_end_date": end, "gross_pay_amount": "1000.00"}
        for start, end in [
            ("2025-05-01", "2025-05-14"),
            ("2025-05-15", "2025-05-28"),
            ("2025-05-29", "2025-06-11"),
        ]
    ]

    ok = await client.post("/api/income/analyze", json={"paystubs": stubs})
    short = await client.post("/api/income/analyze", json={"paystubs": stubs[:1]})

    assert ok.status_code == 200
    assert ok.json()["pay_frequency"] == "BI_WEEKLY"
    assert Decimal(ok.json()["annualized_income"]) == Decimal("26000.00")
    assert short.status_code == 422
    assert "detail" in short.json()


@pytest.mark.asyncio
async def test_resolve_discrepancy_validates_resolution(client) -> None:
    discrepancy = {
        "unit_number": "101",
        "resident_name": "Jane Doe",
        "verified_income": "30000",
        "new_rent_roll_income": "31500",
        "discrepancy": "1500",
        "existing_lease_id": "a",
        "new_lease_id": "b",
        "existing_resident_id": "c",
        "new_resident_id": "d",
    }

    response = await client.post(
        "/api/properties/prop-1/resolve-income-discrepancy",
        json={"discrepancy": discrepancy, "resolution": "split-the-difference"},
    )

    assert response.status_code == 422
