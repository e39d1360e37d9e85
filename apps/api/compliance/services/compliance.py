"""Rent-roll finalize: snapshot, future-lease continuity and ingestion.

One finalize call runs as a single transaction per property:

1. the property's future leases (never on a rent roll, not ``[PROCESSED]``) are found;
2. a new active snapshot and rent roll are created and every other snapshot is
   deactivated;
3. each future lease is deep-copied into the new snapshot and the original is marked
   ``[PROCESSED]``;
4. the upload rows are ingested, reusing the prior current lease when its dates match
   exactly, so re-running an unchanged upload creates nothing new;
5. inheritance candidates and income discrepancies are reported for a person to decide.

AMI buckets and HUD limits are computed afterwards, outside this transaction.
"""
from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import (
    ComplianceError,
    ConcurrencyConflictError,
    FinalizeTimeoutError,
    NotFoundError,
    UploadValidationError,
)
from ..models.base import new_id
from ..models.document import IncomeDocument
from ..models.lease import PROCESSED_PREFIX, Lease
from ..models.resident import Resident
from ..models.snapshot import RentRoll, RentRollSnapshot, Tenancy
from ..models.unit import Unit
from ..models.verification import IncomeVerification, VerificationStatus
from ..repositories import leases as leases_repo
from ..repositories import properties as properties_repo
from ..repositories import snapshots as snapshots_repo
from ..schemas import compliance as schemas
from .income import to_money
from .lease_classification import LeaseKind, classify_lease, is_current_row
from .locks import PropertyLockRegistry, property_locks
from .verification import exceeds_tolerance, pick_current_lease

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = (
    "document_type",
    "status",
    "file_path",
    "document_date",
    "upload_date",
    "employee_name",
    "employer_name",
    "tax_year",
    "box1_wages",
    "box3_ss_wages",
    "box5_med_wages",
    "gross_pay_amount",
    "pay_frequency",
    "pay_period_start_date",
    "pay_period_end_date",
    "calculated_annualized_income",
)


@dataclass(slots=True)
class LeaseGraphRemap:
    """Old-to-new identifiers produced by copying one lease forward."""

    source_lease_id: str
    lease: Lease
    finalized: bool
    residents: Dict[str, Resident] = field(default_factory=dict)
    verifications: Dict[str, str] = field(default_factory=dict)
    documents: List[IncomeDocument] = field(default_factory=list)

    @property
    def lease_ids(self) -> Dict[str, str]:
        return {self.source_lease_id: self.lease.id}


@dataclass(slots=True)
class _IngestedLease:
    unit_number: str
    lease: Lease
    is_current: bool
    is_new: bool
    new_residents: List[Resident] = field(default_factory=list)


@dataclass(slots=True)
class _VerifiedResident:
    lease_id: str
    resident: Resident


def normalize_name(name: str | None) -> str:
    return (name or "").strip().lower()


def lease_display_name(unit_number: str, start: date | None, end: date | None) -> str:
    start_text = start.isoformat() if start else "No Start Date"
    end_text = end.isoformat() if end else "No End Date"
    return f"{unit_number} - {start_text} to {end_text}"


def has_finalized_verification(lease: Any) -> bool:
    return any(v.status == VerificationStatus.FINALIZED for v in lease.income_verifications)


def copy_document(document: Any, *, resident_id: str, verification_id: str | None) -> IncomeDocument:
    """New document row pointing at the same stored file."""

    values = {name: getattr(document, name) for name in DOCUMENT_FIELDS}
    return IncomeDocument(id=new_id(), resident_id=resident_id, verification_id=verification_id, **values)


def clone_lease_graph(session: AsyncSession, lease: Lease, *, snapshot_id: str | None) -> LeaseGraphRemap:
    """Copy a lease with its verifications, residents and document references.

    Creation timestamps are carried over. A resident copy is finalized whenever any
    verification on the lease is FINALIZED, whatever the stored resident flag says.
    The lease must be loaded with ``leases_repo.get_aggregate`` style eager loading.
    """

    now = datetime.now(timezone.utc)
    finalized = has_finalized_verification(lease)
    copy = Lease(
        id=new_id(),
        unit_id=lease.unit_id,
        snapshot_id=snapshot_id,
        copied_from_lease_id=lease.id,
        name=lease.name,
        lease_start_date=lease.lease_start_date,
        lease_end_date=lease.lease_end_date,
        lease_rent=lease.lease_rent,
        created_at=lease.created_at,
        updated_at=now,
    )
    remap = LeaseGraphRemap(source_lease_id=lease.id, lease=copy, finalized=finalized)
    rows: list[Any] = [copy]

    for verification in lease.income_verifications:
        verification_copy = IncomeVerification(
            id=new_id(),
            lease_id=copy.id,
            status=verification.status,
            reason=verification.reason,
            calculated_verified_income=verification.calculated_verified_income,
            finalized_at=verification.finalized_at,
            created_at=verification.created_at,
        )
        remap.verifications[verification.id] = verification_copy.id
        rows.append(verification_copy)

    for resident in lease.residents:
        income_finalized = resident.income_finalized or (finalized and not resident.has_no_income)
        finalized_at = resident.finalized_at
        if finalized_at is None and (income_finalized or resident.has_no_income):
            finalized_at = now
        resident_copy = Resident(
            id=new_id(),
            lease_id=copy.id,
            name=resident.name,
            annualized_income=resident.annualized_income,
            calculated_annualized_income=resident.calculated_annualized_income,
            income_finalized=income_finalized,
            has_no_income=resident.has_no_income,
            finalized_at=finalized_at,
            created_at=resident.created_at,
        )
        remap.residents[resident.id] = resident_copy
        rows.append(resident_copy)
        for document in resident.income_documents:
            document_copy = copy_document(
                document,
                resident_id=resident_copy.id,
                verification_id=remap.verifications.get(document.verification_id),
            )
            remap.documents.append(document_copy)
            rows.append(document_copy)

    session.add_all(rows)
    return remap


def _validate_upload(request: schemas.FinalizeRequest, unit_by_number: Dict[str, Unit]) -> None:
    """Reject the upload before any write."""

    problems: list[str] = []
    bad_units: set[str] = set()

    if not request.unit_groups:
        raise UploadValidationError("Upload contains no units")

    if unit_by_number:
        missing = [number for number in request.unit_groups if number.strip() not in unit_by_number]
        if missing:
            problems.append(f"Unit numbers not found in property: {', '.join(sorted(missing))}")
            bad_units.update(missing)

    for unit_number, rows in request.unit_groups.items():
        if not unit_number.strip():
            problems.append("Blank unit number")
            bad_units.add(unit_number)
        for row in rows:
            if row.lease_start_date and row.lease_end_date and row.lease_end_date < row.lease_start_date:
                problems.append(f"Unit {unit_number}: lease ends before it starts")
                bad_units.add(unit_number)
            if row.lease_start_date is None and row.lease_end_date is not None:
                problems.append(f"Unit {unit_number}: lease end date without a start date")
                bad_units.add(unit_number)
            if any(not resident.name for resident in row.residents):
                problems.append(f"Unit {unit_number}: resident without a name")
                bad_units.add(unit_number)

    if problems:
        raise UploadValidationError(
            "Rent roll upload rejected: " + "; ".join(problems),
            unit_numbers=bad_units,
            problems=problems,
        )


def _new_resident(lease_id: str, row: schemas.ResidentRow, *, is_current: bool) -> Resident:
    # A future lease has no rent-roll baseline; only verified income counts for it.
    declared = to_money(row.annualized_income) if is_current and row.annualized_income is not None else None
    return Resident(id=new_id(), lease_id=lease_id, name=row.name, annualized_income=declared)


def _add_missing_residents(
    lease_id: str,
    known_names: set[str],
    rows: Iterable[schemas.ResidentRow],
    *,
    is_current: bool,
) -> list[Resident]:
    added: list[Resident] = []
    for row in rows:
        key = normalize_name(row.name)
        if key in known_names:
            continue
        known_names.add(key)
        added.append(_new_resident(lease_id, row, is_current=is_current))
    return added


def _future_lease_match(
    unit_number: str, row: schemas.LeaseRow, new_lease: Lease, remap: LeaseGraphRemap
) -> schemas.FutureLeaseMatch:
    return schemas.FutureLeaseMatch(
        unit_number=unit_number,
        new_lease_id=new_lease.id,
        new_lease_start_date=row.lease_start_date,
        new_lease_end_date=row.lease_end_date,
        existing_future_lease=schemas.ExistingFutureLeaseOut(
            id=remap.lease.id,
            name=remap.lease.name,
            residents=[
                schemas.FutureLeaseResidentOut(
                    id=resident.id,
                    name=resident.name,
                    verified_income=resident.calculated_annualized_income,
                )
                for resident in remap.residents.values()
            ],
        ),
    )


def _find_discrepancies(
    ingested: Iterable[_IngestedLease],
    verified_by_unit: Dict[str, List[_VerifiedResident]],
) -> list[schemas.IncomeDiscrepancy]:
    """Compare new rent-roll income against verified income on earlier leases of the unit."""

    found: list[schemas.IncomeDiscrepancy] = []
    for entry in ingested:
        if not (entry.is_new and entry.is_current):
            continue
        verified = [item for item in verified_by_unit.get(entry.lease.unit_id, []) if item.lease_id != entry.lease.id]
        for new_resident in entry.new_residents:
            matches = [item for item in verified if normalize_name(item.resident.name) == normalize_name(new_resident.name)]
            if not matches:
                continue
            # Candidates are ordered oldest first, so the last match is the latest work.
            latest = matches[-1]
            verified_income = to_money(latest.resident.calculated_annualized_income)
            new_income = to_money(new_resident.annualized_income)
            if not exceeds_tolerance(verified_income, new_income):
                continue
            found.append(
                schemas.IncomeDiscrepancy(
                    unit_number=entry.unit_number,
                    resident_name=new_resident.name,
                    verified_income=verified_income,
                    new_rent_roll_income=new_income,
                    discrepancy=abs(verified_income - new_income),
                    existing_lease_id=latest.lease_id,
                    new_lease_id=entry.lease.id,
                    existing_resident_id=latest.resident.id,
                    new_resident_id=new_resident.id,
                )
            )
    return found


def _verified_residents_by_unit(
    existing_leases: Iterable[Lease], preserved: Dict[str, List[LeaseGraphRemap]], future_ids: set[str]
) -> Dict[str, List[_VerifiedResident]]:
    by_unit: Dict[str, List[_VerifiedResident]] = {}
    for lease in existing_leases:
        if lease.id in future_ids or lease.name.startswith(PROCESSED_PREFIX):
            continue
        for resident in lease.residents:
            if resident.income_finalized and resident.calculated_annualized_income is not None:
                by_unit.setdefault(lease.unit_id, []).append(_VerifiedResident(lease.id, resident))
    for unit_id, remaps in preserved.items():
        for remap in remaps:
            for resident in remap.residents.values():
                if resident.income_finalized and resident.calculated_annualized_income is not None:
                    by_unit.setdefault(unit_id, []).append(_VerifiedResident(remap.lease.id, resident))
    return by_unit


async def _finalize(
    session: AsyncSession, property_id: str, request: schemas.FinalizeRequest
) -> schemas.FinalizeResponse:
    prop = await properties_repo.get_by_id(session, property_id, for_update=True)
    if prop is None:
        raise NotFoundError("Property not found")

    units = await properties_repo.list_units(session, property_id=property_id)
    unit_by_number = {unit.unit_number.strip(): unit for unit in units}
    _validate_upload(request, unit_by_number)

    prior_rent_roll = await snapshots_repo.get_active_rent_roll(session, property_id=property_id)
    existing_leases = await leases_repo.list_for_property(session, property_id=property_id)
    leases_by_unit: Dict[str, List[Lease]] = {}
    for lease in existing_leases:
        leases_by_unit.setdefault(lease.unit_id, []).append(lease)
    prior_current = {
        unit_id: pick_current_lease(unit_leases, prior_rent_roll) for unit_id, unit_leases in leases_by_unit.items()
    }
    futures = [lease for lease in existing_leases if classify_lease(lease, prior_rent_roll) is LeaseKind.FUTURE]

    snapshot = RentRollSnapshot(
        id=new_id(),
        property_id=property_id,
        filename=request.filename,
        upload_date=request.rent_roll_date,
        is_active=True,
    )
    rent_roll = RentRoll(
        id=new_id(),
        property_id=property_id,
        snapshot_id=snapshot.id,
        filename=request.filename,
        upload_date=request.rent_roll_date,
    )
    session.add_all([snapshot, rent_roll])
    await session.flush()
    await snapshots_repo.deactivate_others(session, property_id=property_id, keep_snapshot_id=snapshot.id)

    preserved: Dict[str, List[LeaseGraphRemap]] = {}
    for lease in futures:
        remap = clone_lease_graph(session, lease, snapshot_id=snapshot.id)
        lease.name = f"{PROCESSED_PREFIX} {lease.name}"
        preserved.setdefault(lease.unit_id, []).append(remap)

    response = schemas.FinalizeResponse(
        snapshot_id=snapshot.id,
        rent_roll_id=rent_roll.id,
        future_leases_preserved=len(futures),
    )
    ingested: list[_IngestedLease] = []
    reused_ids: set[str] = set()
    seen_matches: set[tuple[str, str]] = set()
    pending: list[Any] = []

    for unit_number, rows in request.unit_groups.items():
        number = unit_number.strip()
        unit = unit_by_number.get(number)
        if unit is None:
            unit = Unit(id=new_id(), property_id=property_id, unit_number=number)
            unit_by_number[number] = unit
            pending.append(unit)

        continuing = prior_current.get(unit.id)
        prior_dates = (
            (continuing.lease_start_date, continuing.lease_end_date) if continuing is not None else (None, None)
        )
        unit_futures = preserved.get(unit.id, [])

        for row in rows:
            row_dates = (row.lease_start_date, row.lease_end_date)
            is_current = is_current_row(row.lease_start_date, request.rent_roll_date)
            entry: Optional[_IngestedLease] = None

            if is_current and continuing is not None and row_dates == prior_dates and continuing.id not in reused_ids:
                known = {normalize_name(resident.name) for resident in continuing.residents}
                entry = _IngestedLease(number, continuing, is_current=True, is_new=False)
                entry.new_residents = _add_missing_residents(continuing.id, known, row.residents, is_current=True)
            elif not is_current and row.lease_start_date and row.lease_end_date:
                for remap in unit_futures:
                    same_dates = (remap.lease.lease_start_date, remap.lease.lease_end_date) == row_dates
                    if same_dates and remap.lease.id not in reused_ids:
                        known = {normalize_name(resident.name) for resident in remap.residents.values()}
                        entry = _IngestedLease(number, remap.lease, is_current=False, is_new=False)
                        entry.new_residents = _add_missing_residents(
                            remap.lease.id, known, row.residents, is_current=False
                        )
                        break

            if entry is None:
                lease = Lease(
                    id=new_id(),
                    unit_id=unit.id,
                    snapshot_id=snapshot.id,
                    name=lease_display_name(number, row.lease_start_date, row.lease_end_date),
                    lease_start_date=row.lease_start_date,
                    lease_end_date=row.lease_end_date,
                    lease_rent=row.lease_rent,
                )
                pending.append(lease)
                entry = _IngestedLease(number, lease, is_current=is_current, is_new=True)
                entry.new_residents = _add_missing_residents(lease.id, set(), row.residents, is_current=is_current)
                response.leases_created += 1
            else:
                reused_ids.add(entry.lease.id)

            if is_current:
                pending.append(Tenancy(id=new_id(), lease_id=entry.lease.id, rent_roll_id=rent_roll.id))
                response.tenancies_created += 1
            pending.extend(entry.new_residents)
            response.residents_created += len(entry.new_residents)
            ingested.append(entry)

            if row_dates == prior_dates:
                continue
            for remap in unit_futures:
                key = (number, remap.lease.id)
                if not remap.finalized or remap.lease.id == entry.lease.id or key in seen_matches:
                    continue
                seen_matches.add(key)
                match = _future_lease_match(number, row, entry.lease, remap)
                response.future_lease_matches.append(match)
                logger.info(
                    "Unit %s: new lease %s..%s may inherit future lease %s",
                    number,
                    row.lease_start_date,
                    row.lease_end_date,
                    remap.lease.id,
                )

    session.add_all(pending)
    await session.flush()

    verified_by_unit = _verified_residents_by_unit(existing_leases, preserved, {lease.id for lease in futures})
    response.income_discrepancies = _find_discrepancies(ingested, verified_by_unit)
    for item in response.income_discrepancies:
        logger.info(
            "Unit %s: %s verified %s vs rent roll %s",
            item.unit_number,
            item.resident_name,
            item.verified_income,
            item.new_rent_roll_income,
        )

    active = await snapshots_repo.count_active(session, property_id=property_id)
    if active != 1:
        raise ConcurrencyConflictError(f"Expected one active snapshot for property {property_id}, found {active}")
    return response


async def finalize_compliance_upload(
    session: AsyncSession,
    property_id: str,
    request: schemas.FinalizeRequest,
    *,
    locks: PropertyLockRegistry = property_locks,
) -> schemas.FinalizeResponse:
    """Run one rent-roll finalize for a property as a single transaction.

    Calls for the same property are serialised; a call that cannot get the lock in
    time fails with ``ConcurrencyConflictError``. Any failure rolls everything back.
    """

    logger.info(
        "Finalizing compliance upload for property %s as of %s (%d units)",
        property_id,
        request.rent_roll_date,
        len(request.unit_groups),
    )
    try:
        async with locks.hold(property_id, timeout=settings.finalize_lock_timeout_seconds):
            async with session.begin():
                response = await asyncio.wait_for(
                    _finalize(session, property_id, request),
                    timeout=settings.finalize_timeout_seconds,
                )
    except asyncio.TimeoutError as exc:
        raise FinalizeTimeoutError(f"Compliance update for property {property_id} timed out") from exc
    except IntegrityError as exc:
        raise ConcurrencyConflictError(f"Conflicting write while finalizing property {property_id}") from exc
    except ComplianceError:
        raise
    except Exception:
        logger.exception("Unexpected failure finalizing property %s", property_id)
        raise

    logger.info(
        "Snapshot %s: %d leases, %d tenancies, %d residents created; %d future leases preserved; "
        "%d inheritance matches, %d discrepancies",
        response.snapshot_id,
        response.leases_created,
        response.tenancies_created,
        response.residents_created,
        response.future_leases_preserved,
        len(response.future_lease_matches),
        len(response.income_discrepancies),
    )
    return response
