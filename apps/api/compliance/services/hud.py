"""HUD User income-limit client.

Two chained calls resolve a property's county to MTSP income limits: the state's
county list gives the FIPS code, then ``/mtspil/data/{fips}`` returns the tables keyed
``"50percent"``, ``"60percent"`` and so on, each holding ``il50_p1`` .. ``il50_p8``.
Fair Market Rents come from ``/fmr/data/{fips}`` through the same county lookup.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings
from ..core.errors import HudServiceError
from .limits_cache import LimitsCache

logger = logging.getLogger(__name__)

HERA_CUTOFF = date(2009, 1, 1)
HERA_TABLES = ("50percent", "60percent", "80percent")
# HUD FMR column names to the bedroom keys used for LIHTC max rents.
FMR_BEDROOMS: Dict[str, str] = {
    "Efficiency": "studio",
    "One-Bedroom": "1br",
    "Two-Bedroom": "2br",
    "Three-Bedroom": "3br",
    "Four-Bedroom": "4br",
}

STATE_ABBREVIATIONS: Dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "florida": "FL", "georgia": "GA",
    "hawaii": "HI", "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS", "missouri": "MO",
    "montana": "MT", "nebraska": "NE", "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ",
    "new mexico": "NM", "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT",
    "virginia": "VA", "washington": "WA", "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
    "district of columbia": "DC",
}


class LimitRegime(str, enum.Enum):
    STANDARD = "STANDARD"
    HERA_SPECIAL = "HERA_SPECIAL"
    HOLD_HARMLESS = "HOLD_HARMLESS"


@dataclass(slots=True)
class HudIncomeLimits:
    year: int
    fips_code: str
    regime: LimitRegime
    tables: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def as_json(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "fips_code": self.fips_code,
            "regime": self.regime.value,
            "tables": self.tables,
        }


@dataclass(slots=True)
class FairMarketRents:
    year: int
    fips_code: str
    rents: Dict[str, int] = field(default_factory=dict)


def state_abbreviation(state: str) -> str | None:
    """Normalise a state name or USPS code to the USPS code."""

    cleaned = state.strip().lower()
    if len(cleaned) == 2 and cleaned.upper() in STATE_ABBREVIATIONS.values():
        return cleaned.upper()
    return STATE_ABBREVIATIONS.get(cleaned)


def requested_regime(placed_in_service_date: date | None) -> LimitRegime:
    if placed_in_service_date is None:
        return LimitRegime.STANDARD
    if placed_in_service_date < HERA_CUTOFF:
        return LimitRegime.HERA_SPECIAL
    return LimitRegime.HOLD_HARMLESS


class HudIncomeLimitsClient:
    """Fetches and caches MTSP income limits and Fair Market Rents for a county."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://www.huduser.gov/hudapi/public",
        timeout_seconds: float = 10.0,
        cache: LimitsCache[Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._cache = cache if cache is not None else LimitsCache(ttl_seconds=settings.hud_cache_ttl_seconds)
        self._transport = transport

    @property
    def cache(self) -> LimitsCache[Any]:
        return self._cache

    async def get_income_limits(
        self,
        county: str,
        state: str,
        year: int,
        *,
        placed_in_service_date: date | None = None,
    ) -> HudIncomeLimits:
        """Return the income-limit tables that apply to a property.

        Raises ``HudServiceError`` on any upstream failure; callers degrade to sentinels.
        """

        regime = requested_regime(placed_in_service_date)
        key = (county.strip().lower(), state.strip().lower(), year, regime)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("HUD limits cache hit for %s", key)
            return cached
        logger.debug("HUD limits cache miss for %s", key)

        state_code = self._check_request(state)
        async with self._http() as client:
            fips_code = await self._lookup_fips(client, county, state_code, year)
            payload = await self._get_json(client, f"/mtspil/data/{fips_code}", year)

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise HudServiceError(f"Unexpected income limits payload for FIPS {fips_code}")

        if regime is LimitRegime.HERA_SPECIAL and not _has_hera_tables(data):
            regime = LimitRegime.STANDARD
        limits = HudIncomeLimits(
            year=year,
            fips_code=str(fips_code),
            regime=regime,
            tables=_apply_regime(data, regime),
        )
        self._cache.set(key, limits)
        return limits

    async def get_fair_market_rents(self, county: str, state: str, year: int) -> FairMarketRents:
        """Return the county's Fair Market Rents per bedroom count.

        Raises ``HudServiceError`` like ``get_income_limits``; the figures are for comparison only.
        """

        key = ("fmr", county.strip().lower(), state.strip().lower(), year)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("HUD FMR cache hit for %s", key)
            return cached
        logger.debug("HUD FMR cache miss for %s", key)

        state_code = self._check_request(state)
        async with self._http() as client:
            fips_code = await self._lookup_fips(client, county, state_code, year)
            payload = await self._get_json(client, f"/fmr/data/{fips_code}", year)

        data = payload.get("data") if isinstance(payload, dict) else None
        basic = data.get("basicdata") if isinstance(data, dict) else None
        if isinstance(basic, list):
            # Small-area FMR counties list one row per ZIP code plus an MSA-level row.
            rows = [row for row in basic if isinstance(row, dict)]
            msa = [row for row in rows if str(row.get("zip_code", "")).lower() == "msa level"]
            basic = (msa or rows or [None])[0]
        if not isinstance(basic, dict):
            raise HudServiceError(f"Unexpected Fair Market Rent payload for FIPS {fips_code}")

        rents = {
            bedroom: int(basic[column])
            for column, bedroom in FMR_BEDROOMS.items()
            if isinstance(basic.get(column), (int, float))
        }
        result = FairMarketRents(year=year, fips_code=str(fips_code), rents=rents)
        self._cache.set(key, result)
        return result

    def _check_request(self, state: str) -> str:
        if not self._api_key.strip():
            raise HudServiceError("HUD_API_KEY is not configured")
        state_code = state_abbreviation(state)
        if state_code is None:
            raise HudServiceError(f"State not found: {state}")
        return state_code

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"Authorization": f"Bearer {self._api_key}"},
            transport=self._transport,
        )

    async def _lookup_fips(self, client: httpx.AsyncClient, county: str, state_code: str, year: int) -> str:
        payload = await self._get_json(client, f"/fmr/listCounties/{state_code}", year)
        counties = payload.get("data", payload) if isinstance(payload, dict) else payload
        if not isinstance(counties, list):
            raise HudServiceError("Unexpected county list payload from HUD")

        needle = county.strip().lower()
        for entry in counties:
            if not isinstance(entry, dict):
                continue
            name = entry.get("county_name") or entry.get("cntyname")
            if isinstance(name, str) and name.lower().startswith(needle) and entry.get("fips_code"):
                return str(entry["fips_code"])
        raise HudServiceError(f"County '{county}' not found in {state_code}")

    async def _get_json(self, client: httpx.AsyncClient, path: str, year: int) -> Any:
        try:
            response = await client.get(path, params={"year": year})
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            raise HudServiceError(f"HUD request timed out: {path}") from exc
        except httpx.HTTPStatusError as exc:
            raise HudServiceError(
                f"HUD request failed with {exc.response.status_code}: {path}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise HudServiceError(f"HUD request failed: {path}: {exc}") from exc


def _has_hera_tables(data: Dict[str, Any]) -> bool:
    hera = data.get("hera_special")
    return isinstance(hera, dict) and any(isinstance(hera.get(name), dict) for name in HERA_TABLES)


def _apply_regime(data: Dict[str, Any], regime: LimitRegime) -> Dict[str, Dict[str, Any]]:
    """Pick the tables for the regime; HERA substitutes only the tables it publishes."""

    tables = {key: dict(value) for key, value in data.items() if key.endswith("percent") and isinstance(value, dict)}
    if regime is LimitRegime.HERA_SPECIAL and _has_hera_tables(data):
        for name in HERA_TABLES:
            special = data["hera_special"].get(name)
            if isinstance(special, dict):
                tables[name] = dict(special)
    return tables


@lru_cache
def get_hud_client() -> HudIncomeLimitsClient:
    """Return the process-wide client; used as a FastAPI dependency."""

    return HudIncomeLimitsClient(
        api_key=settings.hud_api_key,
        base_url=settings.hud_api_base_url,
        timeout_seconds=settings.hud_timeout_seconds,
    )


def default_year(year: Optional[int] = None) -> int:
    if year is not None:
        return year
    return settings.hud_default_year or date.today().year
