"""Income annualization from verified income documents.

Paystub analysis detects the pay frequency from the gap between the two most recent
period-end dates and averages enough stubs to cover one month of pay. Everything here is
pure; persistence is left to the callers in ``finalization``.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
import enum
import logging
import math
from typing import Any, Protocol

from ..core.errors import (
    IncomeAnalysisError,
    InsufficientDataError,
    InsufficientPeriodError,
    UnknownFrequencyError,
)
from ..models.document import DocumentStatus, DocumentType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
FREQUENCY_TOLERANCE_DAYS = 2


class PayFrequency(str, enum.Enum):
    WEEKLY = "WEEKLY"
    BI_WEEKLY = "BI_WEEKLY"
    SEMI_MONTHLY = "SEMI_MONTHLY"
    MONTHLY = "MONTHLY"


# Declaration order breaks ties between equally near periods.
PERIOD_DAYS: dict[PayFrequency, int] = {
    PayFrequency.WEEKLY: 7,
    PayFrequency.BI_WEEKLY: 14,
    PayFrequency.SEMI_MONTHLY: 15,
    PayFrequency.MONTHLY: 30,
}
ANNUAL_MULTIPLIER: dict[PayFrequency, int] = {
    PayFrequency.WEEKLY: 52,
    PayFrequency.BI_WEEKLY: 26,
    PayFrequency.SEMI_MONTHLY: 24,
    PayFrequency.MONTHLY: 12,
}


class PaystubLike(Protocol):
    pay_period_start_date: date | None
    pay_period_end_date: date | None
    gross_pay_amount: Decimal | None


@dataclass(slots=True)
class Paystub:
    """Extracted paystub facts, decoupled from the ORM row."""

    pay_period_start_date: date | None
    pay_period_end_date: date | None
    gross_pay_amount: Decimal | None


@dataclass(slots=True)
class PaystubAnalysis:
    annualized_income: Decimal
    pay_frequency: PayFrequency
    average_gross_pay: Decimal
    stubs_used: int


@dataclass(slots=True)
class IncomeRefreshResult:
    """Outcome of a batch recalculation; failures never abort the batch."""

    updated: dict[str, Decimal] = field(default_factory=dict)
    errors: dict[str, IncomeAnalysisError] = field(default_factory=dict)


def to_money(value: Any) -> Decimal:
    """Coerce a number or ``"$1,234.50"`` style string to a cent-rounded Decimal."""

    if value is None or value == "":
        return Decimal("0.00")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, str):
        amount = Decimal(value.replace("$", "").replace(",", "").strip() or "0")
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def detect_pay_frequency(gap_days: int) -> PayFrequency:
    """Return the nominal pay period nearest ``gap_days`` within the tolerance."""

    best: PayFrequency | None = None
    best_distance = FREQUENCY_TOLERANCE_DAYS + 1
    for frequency, days in PERIOD_DAYS.items():
        distance = abs(gap_days - days)
        if distance <= FREQUENCY_TOLERANCE_DAYS and distance < best_distance:
            best, best_distance = frequency, distance
    if best is None:
        raise UnknownFrequencyError(f"Cannot determine pay frequency from a {gap_days}-day gap between paystubs")
    return best


def required_stubs(frequency: PayFrequency) -> int:
    return math.ceil(30 / PERIOD_DAYS[frequency])


def analyze_paystubs(paystubs: Iterable[PaystubLike]) -> PaystubAnalysis:
    """Annualize a resident's paystubs.

    Stubs missing a period start, period end or gross pay are discarded. At least two
    usable stubs are needed to detect the frequency, and at least one month's worth to
    average over.
    """

    usable = [
        stub
        for stub in paystubs
        if stub.pay_period_start_date is not None
        and stub.pay_period_end_date is not None
        and stub.gross_pay_amount is not None
    ]
    if len(usable) < 2:
        raise InsufficientDataError(f"At least 2 complete paystubs are required, found {len(usable)}")

    usable.sort(key=lambda stub: stub.pay_period_end_date, reverse=True)
    gap_days = (usable[0].pay_period_end_date - usable[1].pay_period_end_date).days
    frequency = detect_pay_frequency(gap_days)

    needed = required_stubs(frequency)
    if len(usable) < needed:
        raise InsufficientPeriodError(
            f"{frequency.value} pay needs {needed} paystubs to cover a month, found {len(usable)}"
        )

    recent = usable[:needed]
    average = sum((to_money(stub.gross_pay_amount) for stub in recent), Decimal("0")) / needed
    annualized = (average * ANNUAL_MULTIPLIER[frequency]).quantize(CENT, rounding=ROUND_HALF_UP)
    return PaystubAnalysis(
        annualized_income=annualized,
        pay_frequency=frequency,
        average_gross_pay=average.quantize(CENT, rounding=ROUND_HALF_UP),
        stubs_used=needed,
    )


def annualize_documents(documents: Sequence[Any]) -> Decimal:
    """Derive one resident's annual income from their completed documents.

    Paystubs take precedence, then the most recent W-2 box 1 wages, then the sum of any
    per-document annualized figures (benefit letters and similar).
    """

    completed = [doc for doc in documents if doc.status == DocumentStatus.COMPLETED]
    if not completed:
        raise InsufficientDataError("No completed income documents")

    paystubs = [doc for doc in completed if doc.document_type == DocumentType.PAYSTUB]
    w2s = [doc for doc in completed if doc.document_type == DocumentType.W2 and doc.box1_wages is not None]

    if paystubs:
        try:
            return analyze_paystubs(paystubs).annualized_income
        except IncomeAnalysisError:
            if not w2s:
                raise
            logger.debug("Paystubs unusable, falling back to W-2 wages")

    if w2s:
        latest = max(w2s, key=lambda doc: (doc.tax_year or 0, doc.upload_date))
        return to_money(latest.box1_wages)

    others = [
        doc.calculated_annualized_income
        for doc in completed
        if doc.document_type not in (DocumentType.PAYSTUB, DocumentType.W2)
        and doc.calculated_annualized_income is not None
    ]
    if others:
        return sum((to_money(value) for value in others), Decimal("0.00"))

    raise InsufficientDataError("Completed documents carry no usable income figures")


def refresh_resident_incomes(residents: Iterable[Any]) -> IncomeRefreshResult:
    """Recalculate ``calculated_annualized_income`` for each resident with documents.

    Finalized residents are left alone; their figure is locked.
    """

    outcome = IncomeRefreshResult()
    for resident in residents:
        if resident.income_finalized or resident.has_no_income:
            continue
        try:
            amount = annualize_documents(resident.income_documents)
        except IncomeAnalysisError as exc:
            logger.info("Resident %s left un-annualized: %s", resident.id, exc.message)
            outcome.errors[resident.id] = exc
            continue
        resident.calculated_annualized_income = amount
        outcome.updated[resident.id] = amount
    return outcome
