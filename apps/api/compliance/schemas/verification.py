"""Schemas for verification-status projections."""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResidentIncomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    annualized_income: Optional[Decimal] = None
    calculated_annualized_income: Optional[Decimal] = None
    income_finalized: bool
    has_no_income: bool


class LeaseVerificationStatusResponse(BaseModel):
    lease_id: str
    unit_id: str
    lease_name: str
    kind: str
    status: str
    declared_income: Decimal
    verified_income: Decimal
    residents: List[ResidentIncomeOut] = Field(default_factory=list)


class UnitVerificationStatusResponse(BaseModel):
    unit_id: str
    unit_number: str
    status: str
    lease_id: Optional[str] = None


class PropertyVerificationStatusResponse(BaseModel):
    property_id: str
    snapshot_id: Optional[str] = None
    counts: Dict[str, int] = Field(default_factory=dict)
    units: List[UnitVerificationStatusResponse] = Field(default_factory=list)
