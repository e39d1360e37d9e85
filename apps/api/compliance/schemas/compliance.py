"""Schemas for rent-roll finalize and reconciliation endpoints."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class ResidentRow(BaseModel):
    name: str
    annualized_income: Optional[Decimal] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("annualized_income", mode="before")
    @classmethod
    def _parse_currency(cls, value: object) -> object:
        """Accept rent-roll strings such as ``"$30,000.00"``."""

        if isinstance(value, str):
            cleaned = value.replace("$", "").replace(",", "").strip()
            return cleaned or None
        return value


class LeaseRow(BaseModel):
    lease_start_date: Optional[date] = None
    lease_end_date: Optional[date] = None
    lease_rent: Optional[Decimal] = None
    residents: List[ResidentRow] = Field(default_factory=list)


class FinalizeRequest(BaseModel):
    rent_roll_date: date
    filename: str = Field(default="Compliance Upload", min_length=1)
    unit_groups: Dict[str, List[LeaseRow]] = Field(default_factory=dict)


class FutureLeaseResidentOut(BaseModel):
    id: str
    name: str
    verified_income: Optional[Decimal] = None


class ExistingFutureLeaseOut(BaseModel):
    id: str
    name: str
    residents: List[FutureLeaseResidentOut] = Field(default_factory=list)


class FutureLeaseMatch(BaseModel):
    unit_number: str
    new_lease_id: str
    new_lease_start_date: Optional[date] = None
    new_lease_end_date: Optional[date] = None
    existing_future_lease: ExistingFutureLeaseOut


class IncomeDiscrepancy(BaseModel):
    unit_number: str
    resident_name: str
    verified_income: Decimal
    new_rent_roll_income: Decimal
    discrepancy: Decimal
    existing_lease_id: str
    new_lease_id: str
    existing_resident_id: str
    new_resident_id: str


class FinalizeResponse(BaseModel):
    snapshot_id: str
    rent_roll_id: str
    leases_created: int = 0
    tenancies_created: int = 0
    residents_created: int = 0
    future_leases_preserved: int = 0
    future_lease_matches: List[FutureLeaseMatch] = Field(default_factory=list)
    income_discrepancies: List[IncomeDiscrepancy] = Field(default_factory=list)


class InheritanceDecisionRequest(BaseModel):
    """Per unit number: ``True`` inherits the future lease's verified income."""

    choices: Dict[str, bool] = Field(default_factory=dict)
    # Unit number to the ``new_lease_id`` of the match being decided.
    new_lease_ids: Dict[str, str] = Field(default_factory=dict)


class InheritanceDecisionOutcome(BaseModel):
    unit_number: str
    future_lease_id: str
    inherited: bool
    target_lease_id: Optional[str] = None
    residents_updated: int = 0
    residents_added: int = 0
    documents_linked: int = 0


class InheritanceDecisionResponse(BaseModel):
    outcomes: List[InheritanceDecisionOutcome] = Field(default_factory=list)


class ResolveDiscrepancyRequest(BaseModel):
    discrepancy: IncomeDiscrepancy
    resolution: Literal["accept-verified", "accept-rentroll"]


class ResolveDiscrepancyResponse(BaseModel):
    resolution: str
    resident_id: str
    lease_id: str
    calculated_annualized_income: Optional[Decimal] = None
    income_finalized: bool
