"""Apply the decisions a person makes after a finalize.

Finalize only reports inheritance candidates and income discrepancies; nothing is
resolved until one of these functions is called.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import NotFoundError, UnknownResolutionError
from ..models.base import new_id
from ..models.lease import PROCESSED_PREFIX, Lease
from ..models.resident import Resident
from ..models.verification import IncomeVerification, VerificationStatus
from ..repositories import leases as leases_repo
from ..repositories import properties as properties_repo
from ..repositories import residents as residents_repo
from ..repositories import snapshots as snapshots_repo
from ..repositories import verifications as verifications_repo
from ..schemas import compliance as schemas
from .compliance import copy_document, has_finalized_verification, normalize_name
from .finalization import finalize_resident, unfinalize_resident
from .income import to_money
from .lease_classification import LeaseKind, classify_lease
from .locks import PropertyLockRegistry, property_locks
from .verification import pick_current_lease

logger = logging.getLogger(__name__)


RESOLUTIONS = ("accept-verified", "accept-rentroll")


def _inheritance_target(
    unit_leases: List[Lease],
    active_rent_roll: Any,
    active_snapshot_id: str | None,
    future_lease: Lease,
) -> Lease | None:
    """The lease the latest finalize created on the unit, current before future.

    Without one, the unit's current lease, else its newest unverified future lease.
    """

    created = [
        lease
        for lease in unit_leases
        if active_snapshot_id is not None
        and lease.snapshot_id == active_snapshot_id
        and lease.copied_from_lease_id is None
        and lease.id != future_lease.id
        and not lease.is_processed
    ]
    if created:
        current_created = [
            lease for lease in created if classify_lease(lease, active_rent_roll) is LeaseKind.CURRENT
        ]
        return (current_created or created)[-1]

    current = pick_current_lease(unit_leases, active_rent_roll)
    if current is not None:
        return current
    candidates = [
        lease
        for lease in unit_leases
        if lease.id != future_lease.id
        and classify_lease(lease, active_rent_roll) is LeaseKind.FUTURE
        and not has_finalized_verification(lease)
    ]
    return candidates[-1] if candidates else None


def _requested_target(unit_leases: List[Lease], lease_id: str | None, future_lease: Lease) -> Lease | None:
    if lease_id is None:
        return None
    for lease in unit_leases:
        if lease.id == lease_id and lease.id != future_lease.id and not lease.is_processed:
            return lease
    raise NotFoundError(f"Lease {lease_id} is not an open lease on this unit")


def _inherit(
    session: AsyncSession, unit_number: str, future_lease: Lease, target: Lease
) -> schemas.InheritanceDecisionOutcome:
    now = datetime.now(timezone.utc)
    outcome = schemas.InheritanceDecisionOutcome(
        unit_number=unit_number, future_lease_id=future_lease.id, inherited=True, target_lease_id=target.id
    )
    verification = IncomeVerification(
        id=new_id(),
        lease_id=target.id,
        status=VerificationStatus.FINALIZED,
        reason="Inherited from future lease",
        finalized_at=now,
    )
    rows: list[Any] = [verification]
    by_name: Dict[str, Resident] = {normalize_name(resident.name): resident for resident in target.residents}
    household: list[Resident] = list(target.residents)

    for source in future_lease.residents:
        match = by_name.get(normalize_name(source.name))
        if match is None:
            match = Resident(id=new_id(), lease_id=target.id, name=source.name, annualized_income=None)
            by_name[normalize_name(source.name)] = match
            household.append(match)
            rows.append(match)
            outcome.residents_added += 1
        else:
            outcome.residents_updated += 1
        match.calculated_annualized_income = source.calculated_annualized_income
        match.income_finalized = source.income_finalized or not source.has_no_income
        match.has_no_income = source.has_no_income
        match.finalized_at = source.finalized_at or now
        for document in source.income_documents:
            rows.append(copy_document(document, resident_id=match.id, verification_id=verification.id))
            outcome.documents_linked += 1

    verification.calculated_verified_income = sum(
        (to_money(resident.calculated_annualized_income) for resident in household if resident.income_finalized),
        Decimal("0.00"),
    )
    session.add_all(rows)
    return outcome


async def apply_inheritance_decisions(
    session: AsyncSession,
    property_id: str,
    choices: Dict[str, bool],
    *,
    new_lease_ids: Dict[str, str] | None = None,
    locks: PropertyLockRegistry = property_locks,
) -> schemas.InheritanceDecisionResponse:
    """Resolve the future-lease matches reported by a finalize, one unit at a time.

    ``new_lease_ids`` names, per unit number, the lease a match was raised for; it is
    inherited into when given.
    """

    requested = {number.strip(): lease_id for number, lease_id in (new_lease_ids or {}).items()}

    response = schemas.InheritanceDecisionResponse()
    async with locks.hold(property_id, timeout=settings.finalize_lock_timeout_seconds):
        async with session.begin():
            prop = await properties_repo.get_by_id(session, property_id, for_update=True)
            if prop is None:
                raise NotFoundError("Property not found")
            active_snapshot = await snapshots_repo.get_active_snapshot(session, property_id=property_id)
            active_rent_roll = await snapshots_repo.get_active_rent_roll(session, property_id=property_id)
            units = {unit.unit_number.strip(): unit for unit in await properties_repo.list_units(session, property_id=property_id)}
            leases_by_unit: Dict[str, List[Lease]] = {}
            for lease in await leases_repo.list_for_property(session, property_id=property_id):
                leases_by_unit.setdefault(lease.unit_id, []).append(lease)

            for unit_number, inherit in choices.items():
                unit = units.get(unit_number.strip())
                if unit is None:
                    raise NotFoundError(f"Unit {unit_number} not found")
                unit_leases = leases_by_unit.get(unit.id, [])
                futures = [
                    lease
                    for lease in unit_leases
                    if classify_lease(lease, active_rent_roll) is LeaseKind.FUTURE and has_finalized_verification(lease)
                ]
                if not futures:
                    raise NotFoundError(f"No preserved future lease for unit {unit_number}")

                for future_lease in futures:
                    if inherit:
                        target = _requested_target(unit_leases, requested.get(unit_number.strip()), future_lease)
                        if target is None:
                            target = _inheritance_target(
                                unit_leases,
                                active_rent_roll,
                                active_snapshot.id if active_snapshot else None,
                                future_lease,
                            )
                        if target is None:
                            raise NotFoundError(f"Unit {unit_number} has no lease to inherit into")
                        outcome = _inherit(session, unit_number, future_lease, target)
                    else:
                        outcome = schemas.InheritanceDecisionOutcome(
                            unit_number=unit_number, future_lease_id=future_lease.id, inherited=False
                        )
                    future_lease.name = f"{PROCESSED_PREFIX} {future_lease.name}"
                    response.outcomes.append(outcome)
                    logger.info(
                        "Unit %s: future lease %s %s",
                        unit_number,
                        future_lease.id,
                        "inherited" if inherit else "kept separate",
                    )
            await session.flush()
    return response


async def resolve_income_discrepancy(
    session: AsyncSession,
    property_id: str,
    discrepancy: schemas.IncomeDiscrepancy,
    resolution: str,
    *,
    locks: PropertyLockRegistry = property_locks,
) -> schemas.ResolveDiscrepancyResponse:
    """Settle one discrepancy.

    ``accept-verified`` carries the verified figure onto the new resident; the declared
    rent-roll income stays as uploaded. ``accept-rentroll`` reopens the earlier
    verification so the income can be verified again. Both residents must live on the
    property.
    """

    if resolution not in RESOLUTIONS:
        raise UnknownResolutionError(f"Unknown resolution {resolution!r}")

    async with locks.hold(property_id, timeout=settings.finalize_lock_timeout_seconds):
        async with session.begin():
            for resident_id in (discrepancy.existing_resident_id, discrepancy.new_resident_id):
                if await residents_repo.get_property_id(session, resident_id) != property_id:
                    raise NotFoundError("Discrepancy residents not found")
            existing = await residents_repo.get_with_documents(session, discrepancy.existing_resident_id)
            new_resident = await residents_repo.get_with_documents(session, discrepancy.new_resident_id)

            if resolution == "accept-verified":
                resident = await finalize_resident(
                    session, new_resident.id, verified_income=existing.calculated_annualized_income
                )
            else:
                resident = await unfinalize_resident(session, existing.id)
                await verifications_repo.reopen_for_lease(session, lease_id=existing.lease_id)

    logger.info("Discrepancy for %s in unit %s resolved: %s", discrepancy.resident_name, discrepancy.unit_number, resolution)
    return schemas.ResolveDiscrepancyResponse(
        resolution=resolution,
        resident_id=resident.id,
        lease_id=resident.lease_id,
        calculated_annualized_income=resident.calculated_annualized_income,
        income_finalized=resident.income_finalized,
    )
