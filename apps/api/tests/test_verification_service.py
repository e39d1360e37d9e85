from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from compliance.models.document import DocumentStatus
from compliance.services import verification as verification_service
from compliance.services.lease_classification import LeaseKind, classify_lease, is_current_row
from compliance.services.verification import LeaseStatus


def resident(
    name: str = "Jane Doe",
    *,
    declared: str | None = None,
    verified: str | None = None,
    finalized: bool = False,
    no_income: bool = False,
    documents: list | None = None,
):
    return SimpleNamespace(
        name=name,
        annualized_income=Decimal(declared) if declared is not None else None,
        calculated_annualized_income=Decimal(verified) if verified is not None else None,
        income_finalized=finalized,
        has_no_income=no_income,
        income_documents=documents or [],
    )


def document(status: DocumentStatus = DocumentStatus.COMPLETED):
    return SimpleNamespace(status=status)


def test_no_residents_is_vacant() -> None:
    assert verification_service.derive_lease_status([]) is LeaseStatus.VACANT


def test_review_blocks_even_when_another_resident_is_finalized() -> None:
    residents = [
        resident("A", declared="20000", documents=[document(DocumentStatus.NEEDS_REVIEW)]),
        resident("B", declared="10000", verified="10000", finalized=True),
    ]

    assert verification_service.derive_lease_status(residents) is LeaseStatus.WAITING_FOR_ADMIN_REVIEW


def test_review_blocks_fully_finalized_lease() -> None:
    residents = [resident(declared="1", verified="1", finalized=True, documents=[document(DocumentStatus.NEEDS_REVIEW)])]

    assert verification_service.derive_lease_status(residents) is LeaseStatus.WAITING_FOR_ADMIN_REVIEW


def test_partially_finalized_is_in_progress() -> None:
    residents = [resident("A", verified="1", finalized=True), resident("B")]

    assert verification_service.derive_lease_status(residents) is LeaseStatus.IN_PROGRESS


def test_nothing_finalized_with_documents_is_in_progress() -> None:
    residents = [resident("A"), resident("B", documents=[document(DocumentStatus.PROCESSING)])]

    assert verification_service.derive_lease_status(residents) is LeaseStatus.IN_PROGRESS


def test_nothing_finalized_and_no_documents_is_out_of_date() -> None:
    assert verification_service.derive_lease_status([resident(declared="30000")]) is LeaseStatus.OUT_OF_DATE_INCOME_DOCUMENTS


def test_explicit_documents_override_resident_documents() -> None:
    assert (
        verification_service.derive_lease_status([resident()], documents=[document()])
        is LeaseStatus.IN_PROGRESS
    )


def test_everyone_without_income_needs_documentation() -> None:
    residents = [resident("A", no_income=True), resident("B", no_income=True)]

    assert verification_service.derive_lease_status(residents) is LeaseStatus.NEEDS_INCOME_DOCUMENTATION


def test_one_no_income_resident_does_not_block_verification() -> None:
    residents = [resident("A", no_income=True), resident("B", declared="30000", verified="30000", finalized=True)]

    assert verification_service.derive_lease_status(residents) is LeaseStatus.VERIFIED


@pytest.mark.parametrize(
    ("declared", "verified", "expected"),
    [
        ("30000", "30500", LeaseStatus.NEEDS_INVESTIGATION),
        ("30000", "30001.00", LeaseStatus.VERIFIED),
        ("30000", "30001.01", LeaseStatus.NEEDS_INVESTIGATION),
        ("30000", "29999.00", LeaseStatus.VERIFIED),
        ("0", "42000", LeaseStatus.VERIFIED),
        (None, "42000", LeaseStatus.VERIFIED),
    ],
)
def test_declared_versus_verified_income(declared, verified, expected) -> None:
    residents = [resident(declared=declared, verified=verified, finalized=True)]

    assert verification_service.derive_lease_status(residents) is expected


def test_summary_ignores_unfinalized_calculations() -> None:
    summary = verification_service.summarize_lease_income(
        [
            resident("A", declared="10000", verified="10000", finalized=True),
            resident("B", declared="5000", verified="7000"),
            resident("C", no_income=True),
        ]
    )

    assert summary.declared_income == Decimal("15000")
    assert summary.verified_income == Decimal("10000")
    assert summary.finalized_count == 2
    assert summary.difference == Decimal("5000")


def test_exceeds_tolerance_is_strict() -> None:
    assert not verification_service.exceeds_tolerance(Decimal("100.00"), Decimal("101.00"))
    assert verification_service.exceeds_tolerance(Decimal("100.00"), Decimal("101.01"))
    assert verification_service.exceeds_tolerance(None, Decimal("1.01"))


def _lease(lease_id: str, *, rolls: tuple[str, ...] = (), start: date | None = None, name: str = "101 - lease"):
    return SimpleNamespace(
        id=lease_id,
        unit_id="unit-101",
        name=name,
        lease_start_date=start,
        tenancies=[SimpleNamespace(rent_roll_id=roll) for roll in rolls],
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        residents=[resident(declared="30000", verified="30000", finalized=True)],
    )


def test_lease_classification() -> None:
    active = SimpleNamespace(id="rr-2", upload_date=date(2024, 2, 1))

    assert classify_lease(_lease("a", rolls=("rr-2",), start=date(2024, 1, 1)), active) is LeaseKind.CURRENT
    assert classify_lease(_lease("b", rolls=("rr-2",)), active) is LeaseKind.CURRENT
    assert classify_lease(_lease("c", rolls=("rr-2",), start=date(2024, 3, 1)), active) is LeaseKind.HISTORICAL
    assert classify_lease(_lease("d", rolls=("rr-1",)), active) is LeaseKind.HISTORICAL
    assert classify_lease(_lease("e"), active) is LeaseKind.FUTURE
    assert classify_lease(_lease("f", name="[PROCESSED] 101 - lease"), active) is LeaseKind.HISTORICAL
    assert classify_lease(_lease("g"), None) is LeaseKind.FUTURE


def test_is_current_row() -> None:
    assert is_current_row(None, date(2024, 1, 15))
    assert is_current_row(date(2024, 1, 15), date(2024, 1, 15))
    assert not is_current_row(date(2024, 1, 16), date(2024, 1, 15))


def test_unit_status_uses_current_lease_only() -> None:
    active = SimpleNamespace(id="rr-2", upload_date=date(2024, 2, 1))
    unit = SimpleNamespace(
        id="unit-101",
        leases=[_lease("old", rolls=("rr-1",)), _lease("future"), _lease("now", rolls=("rr-2",))],
    )
    unit.leases[2].residents = [resident(declared="30000", verified="30500", finalized=True)]

    assert verification_service.get_unit_verification_status(unit, active) is LeaseStatus.NEEDS_INVESTIGATION
    assert verification_service.get_unit_verification_status(unit, None) is LeaseStatus.VACANT


def test_summarize_property_counts_each_status() -> None:
    active = SimpleNamespace(id="rr-1", upload_date=date(2024, 2, 1))
    units = [SimpleNamespace(id="u1"), SimpleNamespace(id="u2"), SimpleNamespace(id="u3")]
    leases = {
        "u1": [_lease("l1", rolls=("rr-1",))],
        "u2": [_lease("l2", rolls=("rr-1",))],
    }

    counts = verification_service.summarize_property(units, active, leases)

    assert counts == {"Verified": 2, "Vacant": 1}
