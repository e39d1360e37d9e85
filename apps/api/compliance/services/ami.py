"""AMI bucket assignment against HUD income limits.

Buckets are computed outside the finalize transaction, best effort: a HUD failure
degrades to a sentinel label rather than an exception.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import logging
import math
import re
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.errors import HudServiceError, NotFoundError
from ..db.session import SessionLocal
from ..repositories import leases as leases_repo
from ..repositories import properties as properties_repo
from ..repositories import snapshots as snapshots_repo
from ..schemas import income as schemas
from .hud import HudIncomeLimits, HudIncomeLimitsClient, default_year, get_hud_client
from .verification import pick_current_lease, summarize_lease_income

logger = logging.getLogger(__name__)

VACANT = "Vacant"
NO_INCOME_INFORMATION = "No Income Information"
HUD_API_UNAVAILABLE = "HUD API Unavailable"
ERROR_LOADING_AMI_DATA = "Error loading AMI data"
MARKET = "Market"

MAX_FAMILY_SIZE = 8
RENT_SHARE = Decimal("0.30")

# HUD family-size conventions for rent limits by bedroom count.
BEDROOM_FAMILY_SIZES: dict[str, float] = {
    "studio": 1.0,
    "1br": 1.5,
    "2br": 3.0,
    "3br": 4.5,
    "4br": 6.0,
    "5br": 8.0,
}

_OPTION_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*at\s*(\d+(?:\.\d+)?)\s*%\s*(?:of\s+)?AMI", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class SetAside:
    set_aside_pct: Decimal
    ami_pct: Decimal

    @property
    def label(self) -> str:
        return f"{_pct_text(self.ami_pct)}% AMI"


def _pct_text(value: Decimal) -> str:
    return str(int(value)) if value == value.to_integral_value() else str(value.normalize())


def parse_compliance_option(text: str | None) -> list[SetAside]:
    """Parse ``"20% at 50% AMI, 55% at 80% AMI"`` into set-asides, lowest AMI first."""

    if text is None or not text.strip():
        text = settings.default_compliance_option
    found: dict[Decimal, SetAside] = {}
    for set_aside, ami in _OPTION_PATTERN.findall(text):
        ami_pct = Decimal(ami)
        if ami_pct not in found:
            found[ami_pct] = SetAside(set_aside_pct=Decimal(set_aside), ami_pct=ami_pct)
    return [found[key] for key in sorted(found)]


def _tables(hud_limits: HudIncomeLimits | Mapping[str, Any]) -> Mapping[str, Any]:
    return hud_limits.tables if isinstance(hud_limits, HudIncomeLimits) else hud_limits


def _whole_size_limit(tables: Mapping[str, Any], ami_pct: Decimal, size: int) -> Optional[Decimal]:
    name = _pct_text(ami_pct)
    table = tables.get(f"{name}percent")
    if isinstance(table, Mapping):
        raw = table.get(f"il{name}_p{size}")
        if raw not in (None, ""):
            return Decimal(str(raw))
        return None
    if ami_pct == 50:
        return None
    base = _whole_size_limit(tables, Decimal(50), size)
    if base is None:
        return None
    return (base * ami_pct / Decimal(50)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def income_limit_for(
    hud_limits: HudIncomeLimits | Mapping[str, Any], ami_pct: Decimal | int, family_size: float
) -> Optional[Decimal]:
    """Income limit for a household size, interpolating fractional sizes."""

    tables = _tables(hud_limits)
    ami_pct = Decimal(str(ami_pct))
    size = min(max(float(family_size), 1.0), float(MAX_FAMILY_SIZE))
    lower, upper = math.floor(size), math.ceil(size)
    low_limit = _whole_size_limit(tables, ami_pct, lower)
    if lower == upper or low_limit is None:
        return low_limit
    high_limit = _whole_size_limit(tables, ami_pct, upper)
    if high_limit is None:
        return None
    fraction = Decimal(str(size - lower))
    return low_limit + (high_limit - low_limit) * fraction


def get_actual_ami_bucket(
    total_income: Decimal | float | int | None,
    household_size: int,
    hud_limits: HudIncomeLimits | Mapping[str, Any] | None,
    compliance_option: str | None,
) -> str:
    """Assign a household to the lowest AMI threshold its income qualifies for."""

    if household_size <= 0:
        return VACANT
    income = Decimal(str(total_income)) if total_income is not None else Decimal("0")
    if income <= 0:
        return NO_INCOME_INFORMATION
    if hud_limits is None:
        return HUD_API_UNAVAILABLE

    size = min(household_size, MAX_FAMILY_SIZE)
    saw_limit = False
    for set_aside in parse_compliance_option(compliance_option):
        limit = income_limit_for(hud_limits, set_aside.ami_pct, size)
        if limit is None:
            continue
        saw_limit = True
        if income <= limit:
            return set_aside.label
    if not saw_limit and parse_compliance_option(compliance_option):
        return ERROR_LOADING_AMI_DATA
    return MARKET


def calculate_lihtc_max_rents(hud_limits: HudIncomeLimits | Mapping[str, Any]) -> dict[str, dict[str, int]]:
    """Max monthly rent per AMI table and bedroom count: 30% of the limit over 12."""

    tables = _tables(hud_limits)
    rents: dict[str, dict[str, int]] = {}
    for table_name in sorted(tables):
        match = re.fullmatch(r"(\d+)percent", table_name)
        if not match:
            continue
        ami_pct = Decimal(match.group(1))
        by_bedroom: dict[str, int] = {}
        for bedroom, family_size in BEDROOM_FAMILY_SIZES.items():
            limit = income_limit_for(tables, ami_pct, family_size)
            if limit is not None:
                by_bedroom[bedroom] = int((limit * RENT_SHARE / 12).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if by_bedroom:
            rents[table_name] = by_bedroom
    return rents


async def fetch_limits_with_fallback(
    client: HudIncomeLimitsClient, prop: Any, year: int | None = None
) -> HudIncomeLimits:
    """Fetch limits for ``year``, retrying ``year - 1`` before giving up."""

    year = default_year(year)
    try:
        return await client.get_income_limits(
            prop.county, prop.state, year, placed_in_service_date=prop.placed_in_service_date
        )
    except HudServiceError as exc:
        logger.warning("HUD limits for %s %s unavailable (%s); trying %s", prop.county, year, exc.message, year - 1)
    return await client.get_income_limits(
        prop.county, prop.state, year - 1, placed_in_service_date=prop.placed_in_service_date
    )


async def compute_property_buckets(
    session: AsyncSession,
    property_id: str,
    client: HudIncomeLimitsClient,
    *,
    year: int | None = None,
) -> schemas.PropertyBucketsResponse:
    """Bucket every unit's current lease by verified household income."""

    prop = await properties_repo.get_by_id(session, property_id)
    if prop is None:
        raise NotFoundError("Property not found")

    limits: HudIncomeLimits | None
    try:
        limits = await fetch_limits_with_fallback(client, prop, year)
    except HudServiceError as exc:
        logger.warning("Using %r buckets for property %s: %s", HUD_API_UNAVAILABLE, property_id, exc.message)
        limits = None

    fair_market_rents: dict[str, int] = {}
    try:
        fmr_year = limits.year if limits else default_year(year)
        fmr = await client.get_fair_market_rents(prop.county, prop.state, fmr_year)
        fair_market_rents = fmr.rents
    except HudServiceError as exc:
        logger.warning("Fair Market Rents for property %s unavailable: %s", property_id, exc.message)

    active_rent_roll = await snapshots_repo.get_active_rent_roll(session, property_id=property_id)
    units = await properties_repo.list_units(session, property_id=property_id)
    leases_by_unit: dict[str, list[Any]] = {}
    for lease in await leases_repo.list_for_property(session, property_id=property_id):
        leases_by_unit.setdefault(lease.unit_id, []).append(lease)

    rows: list[schemas.UnitBucketOut] = []
    for unit in units:
        lease = pick_current_lease(leases_by_unit.get(unit.id, []), active_rent_roll)
        residents: Sequence[Any] = list(lease.residents) if lease is not None else []
        verified = summarize_lease_income(residents).verified_income
        rows.append(
            schemas.UnitBucketOut(
                unit_id=unit.id,
                unit_number=unit.unit_number,
                lease_id=lease.id if lease is not None else None,
                household_size=len(residents),
                verified_income=verified,
                bucket=get_actual_ami_bucket(verified, len(residents), limits, prop.compliance_option),
            )
        )

    return schemas.PropertyBucketsResponse(
        property_id=property_id,
        hud_data_year=limits.year if limits else None,
        regime=limits.regime.value if limits else None,
        compliance_option=prop.compliance_option,
        units=rows,
        max_rents=calculate_lihtc_max_rents(limits) if limits else {},
        fair_market_rents=fair_market_rents,
    )


async def capture_snapshot_income_limits(
    snapshot_id: str,
    *,
    client: HudIncomeLimitsClient | None = None,
    session_factory: async_sessionmaker[AsyncSession] | Callable[[], Any] = SessionLocal,
) -> None:
    """Record the HUD limits in force for a snapshot. Runs after the finalize commit."""

    client = client or get_hud_client()
    try:
        async with session_factory() as session:
            snapshot = await snapshots_repo.get_snapshot(session, snapshot_id)
            if snapshot is None:
                logger.warning("Snapshot %s vanished before limits capture", snapshot_id)
                return
            prop = await properties_repo.get_by_id(session, snapshot.property_id)
            year = snapshot.upload_date.year

        # No transaction is held open across the HUD round trip.
        limits = await fetch_limits_with_fallback(client, prop, year)

        async with session_factory() as session:
            async with session.begin():
                snapshot = await snapshots_repo.get_snapshot(session, snapshot_id)
                if snapshot is None:
                    return
                snapshot.hud_income_limits = limits.as_json()
                snapshot.hud_data_year = limits.year
        logger.info("Captured %s HUD limits for snapshot %s", limits.year, snapshot_id)
    except HudServiceError as exc:
        logger.warning("HUD limits not captured for snapshot %s: %s", snapshot_id, exc.message)
    except SQLAlchemyError:
        logger.exception("Failed to store HUD limits for snapshot %s", snapshot_id)
