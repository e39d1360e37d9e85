"""Lease and unit verification status.

The status is always re-derived from resident flags, document statuses and income
figures; it is never stored. The order of the checks in ``derive_lease_status`` is
significant: a document awaiting admin review blocks every later state.
"""
from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
import enum
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import NotFoundError
from ..models.document import DocumentStatus
from ..repositories import leases as leases_repo
from ..repositories import properties as properties_repo
from ..repositories import snapshots as snapshots_repo
from ..schemas import verification as schemas
from .lease_classification import LeaseKind, classify_lease

logger = logging.getLogger(__name__)

INCOME_TOLERANCE = Decimal("1.00")


class LeaseStatus(str, enum.Enum):
    VACANT = "Vacant"
    VERIFIED = "Verified"
    NEEDS_INVESTIGATION = "Needs Investigation"
    OUT_OF_DATE_INCOME_DOCUMENTS = "Out of Date Income Documents"
    IN_PROGRESS = "In Progress - Finalize to Process"
    WAITING_FOR_ADMIN_REVIEW = "Waiting for Admin Review"
    NEEDS_INCOME_DOCUMENTATION = "Needs Income Documentation"


@dataclass(slots=True)
class LeaseIncomeSummary:
    declared_income: Decimal
    verified_income: Decimal
    resident_count: int
    finalized_count: int

    @property
    def difference(self) -> Decimal:
        return abs(self.declared_income - self.verified_income)


def _money(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def is_resident_finalized(resident: Any) -> bool:
    return bool(resident.income_finalized or resident.has_no_income)


def exceeds_tolerance(first: Any, second: Any) -> bool:
    """True when two incomes differ by strictly more than one dollar."""

    return abs(_money(first) - _money(second)) > INCOME_TOLERANCE


def summarize_lease_income(residents: Sequence[Any]) -> LeaseIncomeSummary:
    """Declared (rent roll) versus verified (finalized documents) household income."""

    declared = sum((_money(resident.annualized_income) for resident in residents), Decimal("0"))
    verified = sum(
        (
            _money(resident.calculated_annualized_income)
            for resident in residents
            if resident.income_finalized
        ),
        Decimal("0"),
    )
    return LeaseIncomeSummary(
        declared_income=declared,
        verified_income=verified,
        resident_count=len(residents),
        finalized_count=sum(1 for resident in residents if is_resident_finalized(resident)),
    )


def derive_lease_status(residents: Sequence[Any], documents: Iterable[Any] | None = None) -> LeaseStatus:
    """Derive a lease's verification status; the first matching rule wins.

    ``documents`` defaults to the documents attached to the residents.
    """

    if not residents:
        return LeaseStatus.VACANT

    if documents is None:
        documents = [doc for resident in residents for doc in (resident.income_documents or [])]
    documents = list(documents)

    if any(doc.status == DocumentStatus.NEEDS_REVIEW for doc in documents):
        return LeaseStatus.WAITING_FOR_ADMIN_REVIEW

    summary = summarize_lease_income(residents)
    if 0 < summary.finalized_count < summary.resident_count:
        return LeaseStatus.IN_PROGRESS
    if summary.finalized_count == 0:
        if documents:
            return LeaseStatus.IN_PROGRESS
        return LeaseStatus.OUT_OF_DATE_INCOME_DOCUMENTS

    if all(resident.has_no_income for resident in residents):
        return LeaseStatus.NEEDS_INCOME_DOCUMENTATION

    if summary.declared_income > 0 and summary.difference > INCOME_TOLERANCE:
        return LeaseStatus.NEEDS_INVESTIGATION
    return LeaseStatus.VERIFIED


def get_lease_verification_status(lease: Any) -> LeaseStatus:
    """Status of a lease aggregate (residents with documents loaded)."""

    return derive_lease_status(list(lease.residents))


def pick_current_lease(leases: Iterable[Any], active_rent_roll: Any | None) -> Any | None:
    current = [lease for lease in leases if classify_lease(lease, active_rent_roll) is LeaseKind.CURRENT]
    if not current:
        return None
    if len(current) > 1:
        logger.warning("Unit %s has %d current leases; using the newest", current[0].unit_id, len(current))
    return max(current, key=lambda lease: (lease.created_at, lease.id))


def get_unit_verification_status(
    unit: Any, active_rent_roll: Any | None, leases: Iterable[Any] | None = None
) -> LeaseStatus:
    """Status of the unit's current lease; a unit with no current lease is vacant."""

    lease = pick_current_lease(unit.leases if leases is None else leases, active_rent_roll)
    if lease is None:
        return LeaseStatus.VACANT
    return get_lease_verification_status(lease)


def summarize_property(
    units: Iterable[Any], active_rent_roll: Any | None, leases_by_unit: dict[str, list[Any]]
) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for unit in units:
        status = get_unit_verification_status(unit, active_rent_roll, leases_by_unit.get(unit.id, []))
        counts[status.value] += 1
    return dict(counts)


async def lease_status_report(session: AsyncSession, lease_id: str) -> schemas.LeaseVerificationStatusResponse:
    lease = await leases_repo.get_aggregate(session, lease_id)
    if lease is None:
        raise NotFoundError("Lease not found")
    active_rent_roll = await snapshots_repo.get_active_rent_roll(session, property_id=lease.unit.property_id)
    summary = summarize_lease_income(lease.residents)
    return schemas.LeaseVerificationStatusResponse(
        lease_id=lease.id,
        unit_id=lease.unit_id,
        lease_name=lease.name,
        kind=classify_lease(lease, active_rent_roll).value,
        status=get_lease_verification_status(lease).value,
        declared_income=summary.declared_income,
        verified_income=summary.verified_income,
        residents=[schemas.ResidentIncomeOut.model_validate(resident) for resident in lease.residents],
    )


async def unit_status_report(session: AsyncSession, unit_id: str) -> schemas.UnitVerificationStatusResponse:
    unit = await properties_repo.get_unit(session, unit_id)
    if unit is None:
        raise NotFoundError("Unit not found")
    active_rent_roll = await snapshots_repo.get_active_rent_roll(session, property_id=unit.property_id)
    leases = await leases_repo.list_for_unit(session, unit_id=unit.id)
    return _unit_report(unit, active_rent_roll, leases)


async def property_status_report(
    session: AsyncSession, property_id: str
) -> schemas.PropertyVerificationStatusResponse:
    prop = await properties_repo.get_by_id(session, property_id)
    if prop is None:
        raise NotFoundError("Property not found")
    snapshot = await snapshots_repo.get_active_snapshot(session, property_id=property_id)
    active_rent_roll = await snapshots_repo.get_active_rent_roll(session, property_id=property_id)
    units = await properties_repo.list_units(session, property_id=property_id)
    leases_by_unit: dict[str, list[Any]] = {}
    for lease in await leases_repo.list_for_property(session, property_id=property_id):
        leases_by_unit.setdefault(lease.unit_id, []).append(lease)

    reports = [_unit_report(unit, active_rent_roll, leases_by_unit.get(unit.id, [])) for unit in units]
    return schemas.PropertyVerificationStatusResponse(
        property_id=property_id,
        snapshot_id=snapshot.id if snapshot else None,
        counts=summarize_property(units, active_rent_roll, leases_by_unit),
        units=reports,
    )


def _unit_report(unit: Any, active_rent_roll: Any | None, leases: list[Any]) -> schemas.UnitVerificationStatusResponse:
    lease = pick_current_lease(leases, active_rent_roll)
    status = get_lease_verification_status(lease) if lease is not None else LeaseStatus.VACANT
    return schemas.UnitVerificationStatusResponse(
        unit_id=unit.id,
        unit_number=unit.unit_number,
        status=status.value,
        lease_id=lease.id if lease is not None else None,
    )
