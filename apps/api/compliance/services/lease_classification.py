"""Derived current/future/historical classification of leases."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date
import enum
from typing import Any

from ..models.lease import PROCESSED_PREFIX


class LeaseKind(str, enum.Enum):
    CURRENT = "CURRENT"
    FUTURE = "FUTURE"
    HISTORICAL = "HISTORICAL"


def is_current_row(lease_start_date: date | None, rent_roll_date: date) -> bool:
    """A rent-roll row is current unless it starts after the as-of date."""

    return lease_start_date is None or lease_start_date <= rent_roll_date


def classify_lease(lease: Any, active_rent_roll: Any | None) -> LeaseKind:
    """Classify a lease against the property's active rent roll.

    ``lease.tenancies`` must be loaded. Nothing here is persisted.
    """

    tenancy_roll_ids = {tenancy.rent_roll_id for tenancy in lease.tenancies}
    if (
        active_rent_roll is not None
        and active_rent_roll.id in tenancy_roll_ids
        and is_current_row(lease.lease_start_date, active_rent_roll.upload_date)
    ):
        return LeaseKind.CURRENT
    if not tenancy_roll_ids and not lease.name.startswith(PROCESSED_PREFIX):
        return LeaseKind.FUTURE
    return LeaseKind.HISTORICAL


def current_leases(leases: Iterable[Any], active_rent_roll: Any | None) -> list[Any]:
    return [lease for lease in leases if classify_lease(lease, active_rent_roll) is LeaseKind.CURRENT]


def future_leases(leases: Iterable[Any]) -> list[Any]:
    return [lease for lease in leases if classify_lease(lease, None) is LeaseKind.FUTURE]
