from __future__ import annotations

from datetime import date

import httpx
import pytest

from compliance.core.errors import HudServiceError
from compliance.services.hud import HudIncomeLimitsClient, LimitRegime, requested_regime, state_abbreviation
from compliance.services.limits_cache import LimitsCache

COUNTIES = {
    "data": [
        {"county_name": "Tarrant County", "fips_code": "4843999999"},
        {"cntyname": "Travis County", "fips_code": "4845399999"},
    ]
}
STANDARD_50 = {f"il50_p{size}": 40000 + size * 1000 for size in range(1, 9)}
HERA_50 = {f"il50_p{size}": 45000 + size * 1000 for size in range(1, 9)}


def _limits_payload(*, hera: bool) -> dict:
    data = {
        "year": 2024,
        "50percent": STANDARD_50,
        "60percent": {f"il60_p{size}": 48000 + size * 1000 for size in range(1, 9)},
    }
    if hera:
        data["hera_special"] = {"50percent": HERA_50}
    return {"data": data}


def _client(handler, **kwargs) -> HudIncomeLimitsClient:
    return HudIncomeLimitsClient(
        api_key=kwargs.pop("api_key", "secret"),
        base_url="https://hud.test/hudapi/public",
        transport=httpx.MockTransport(handler),
        cache=LimitsCache(ttl_seconds=60),
        **kwargs,
    )


class RecordingHandler:
    def __init__(self, *, hera: bool = False) -> None:
        self.requests: list[httpx.Request] = []
        self.hera = hera

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/fmr/listCounties/TX"):
            return httpx.Response(200, json=COUNTIES)
        if request.url.path.endswith("/mtspil/data/4845399999"):
            return httpx.Response(200, json=_limits_payload(hera=self.hera))
        return httpx.Response(404, json={"error": "not found"})


@pytest.mark.asyncio
async def test_resolves_county_then_fetches_limits() -> None:
    handler = RecordingHandler()
    client = _client(handler)

    limits = await client.get_income_limits("travis", "Texas", 2024)

    assert limits.fips_code == "4845399999"
    assert limits.regime is LimitRegime.STANDARD
    assert limits.tables["50percent"] == STANDARD_50
    assert [request.url.path for request in handler.requests] == [
        "/hudapi/public/fmr/listCounties/TX",
        "/hudapi/public/mtspil/data/4845399999",
    ]
    assert all(request.headers["Authorization"] == "Bearer secret" for request in handler.requests)
    assert all(request.url.params["year"] == "2024" for request in handler.requests)


@pytest.mark.asyncio
async def test_second_lookup_is_served_from_cache() -> None:
    handler = RecordingHandler()
    client = _client(handler)

    first = await client.get_income_limits("Travis", "TX", 2024)
    second = await client.get_income_limits("travis ", "tx", 2024)

    assert second is first
    assert len(handler.requests) == 2


@pytest.mark.asyncio
async def test_hera_special_replaces_published_tables_for_pre_2009_properties() -> None:
    client = _client(RecordingHandler(hera=True))

    limits = await client.get_income_limits("Travis", "TX", 2024, placed_in_service_date=date(2005, 5, 1))

    assert limits.regime is LimitRegime.HERA_SPECIAL
    assert limits.tables["50percent"] == HERA_50
    assert limits.tables["60percent"]["il60_p1"] == 49000


@pytest.mark.asyncio
async def test_pre_2009_property_without_hera_data_uses_standard_limits() -> None:
    client = _client(RecordingHandler(hera=False))

    limits = await client.get_income_limits("Travis", "TX", 2024, placed_in_service_date=date(2005, 5, 1))

    assert limits.regime is LimitRegime.STANDARD
    assert limits.tables["50percent"] == STANDARD_50


@pytest.mark.asyncio
async def test_post_2008_property_keeps_upstream_hold_harmless_tables() -> None:
    client = _client(RecordingHandler(hera=True))

    limits = await client.get_income_limits("Travis", "TX", 2024, placed_in_service_date=date(2015, 1, 1))

    assert limits.regime is LimitRegime.HOLD_HARMLESS
    assert limits.tables["50percent"] == STANDARD_50


def test_regime_boundaries() -> None:
    assert requested_regime(None) is LimitRegime.STANDARD
    assert requested_regime(date(2008, 12, 31)) is LimitRegime.HERA_SPECIAL
    assert requested_regime(date(2009, 1, 1)) is LimitRegime.HOLD_HARMLESS


def test_state_abbreviation() -> None:
    assert state_abbreviation(" new york ") == "NY"
    assert state_abbreviation("tx") == "TX"
    assert state_abbreviation("Narnia") is None


@pytest.mark.asyncio
async def test_unknown_county_raises() -> None:
    client = _client(RecordingHandler())

    with pytest.raises(HudServiceError, match="County 'Nowhere' not found"):
        await client.get_income_limits("Nowhere", "TX", 2024)


@pytest.mark.asyncio
async def test_non_2xx_raises_service_error() -> None:
    client = _client(lambda request: httpx.Response(503, text="maintenance"))

    with pytest.raises(HudServiceError, match="503"):
        await client.get_income_limits("Travis", "TX", 2024)


@pytest.mark.asyncio
async def test_timeout_raises_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow upstream", request=request)

    client = _client(handler)

    with pytest.raises(HudServiceError, match="timed out"):
        await client.get_income_limits("Travis", "TX", 2024)


@pytest.mark.asyncio
async def test_missing_key_or_state_fails_before_any_request() -> None:
    handler = RecordingHandler()

    with pytest.raises(HudServiceError, match="HUD_API_KEY"):
        await _client(handler, api_key="").get_income_limits("Travis", "TX", 2024)
    with pytest.raises(HudServiceError, match="State not found"):
        await _client(handler).get_income_limits("Travis", "Atlantis", 2024)
    assert handler.requests == []


@pytest.mark.asyncio
async def test_malformed_payload_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "listCounties" in request.url.path:
            return httpx.Response(200, json=COUNTIES)
        return httpx.Response(200, json={"data": ["unexpected"]})

    with pytest.raises(HudServiceError, match="Unexpected income limits payload"):
        await _client(handler).get_income_limits("Travis", "TX", 2024)


FMR_PAYLOAD = {
    "data": {
        "county_name": "Travis County",
        "year": "2024",
        "basicdata": {
            "Efficiency": 1331,
            "One-Bedroom": 1468,
            "Two-Bedroom": 1744,
            "Three-Bedroom": 2207,
            "Four-Bedroom": 2657,
            "year": "2024",
        },
    }
}


class FairMarketRentHandler(RecordingHandler):
    def __init__(self, payload: dict) -> None:
        super().__init__()
        self.payload = payload

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/fmr/data/4845399999"):
            self.requests.append(request)
            return httpx.Response(200, json=self.payload)
        return super().__call__(request)


@pytest.mark.asyncio
async def test_fair_market_rents_by_bedroom_and_cached() -> None:
    handler = FairMarketRentHandler(FMR_PAYLOAD)
    client = _client(handler)

    rents = await client.get_fair_market_rents("Travis", "Texas", 2024)
    again = await client.get_fair_market_rents("travis", "tx", 2024)

    assert rents.fips_code == "4845399999"
    assert rents.rents == {"studio": 1331, "1br": 1468, "2br": 1744, "3br": 2207, "4br": 2657}
    assert again is rents
    assert [request.url.path for request in handler.requests] == [
        "/hudapi/public/fmr/listCounties/TX",
        "/hudapi/public/fmr/data/4845399999",
    ]


@pytest.mark.asyncio
async def test_small_area_fair_market_rents_use_msa_row() -> None:
    payload = {
        "data": {
            "basicdata": [
                {"zip_code": "78701", "Efficiency": 1800, "One-Bedroom": 2000},
                {"zip_code": "MSA level", "Efficiency": 1331, "One-Bedroom": 1468},
            ]
        }
    }

    rents = await _client(FairMarketRentHandler(payload)).get_fair_market_rents("Travis", "TX", 2024)

    assert rents.rents == {"studio": 1331, "1br": 1468}


@pytest.mark.asyncio
async def test_fair_market_rent_failures_raise_service_error() -> None:
    with pytest.raises(HudServiceError, match="Unexpected Fair Market Rent payload"):
        await _client(FairMarketRentHandler({"data": {}})).get_fair_market_rents("Travis", "TX", 2024)
    with pytest.raises(HudServiceError, match="404"):
        await _client(RecordingHandler()).get_fair_market_rents("Travis", "TX", 2024)
