"""Schemas for paystub analysis and AMI buckets."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PaystubIn(BaseModel):
    pay_period_start_date: Optional[date] = None
    pay_period_end_date: Optional[date] = None
    gross_pay_amount: Optional[Decimal] = None


class AnalyzePaystubsRequest(BaseModel):
    paystubs: List[PaystubIn] = Field(default_factory=list)


class AnalyzePaystubsResponse(BaseModel):
    annualized_income: Decimal
    pay_frequency: str
    average_gross_pay: Decimal
    stubs_used: int


class UnitBucketOut(BaseModel):
    unit_id: str
    unit_number: str
    lease_id: Optional[str] = None
    household_size: int = 0
    verified_income: Decimal = Decimal("0")
    bucket: str


class PropertyBucketsResponse(BaseModel):
    property_id: str
    hud_data_year: Optional[int] = None
    regime: Optional[str] = None
    compliance_option: str
    units: List[UnitBucketOut] = Field(default_factory=list)
    max_rents: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    fair_market_rents: Dict[str, int] = Field(default_factory=dict)

