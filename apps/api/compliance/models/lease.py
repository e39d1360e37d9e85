"""Lease model."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, Money, new_id, utcnow

if TYPE_CHECKING:
    from .resident import Resident
    from .snapshot import Tenancy
    from .unit import Unit
    from .verification import IncomeVerification

PROCESSED_PREFIX = "[PROCESSED]"


class Lease(Base):
    """A lease on one unit; current/future status is derived, never stored."""

    __tablename__ = "leases"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    unit_id: Mapped[str] = mapped_column(ForeignKey("units.id", ondelete="CASCADE"), nullable=False)
    snapshot_id: Mapped[str | None] = mapped_column(
        ForeignKey("rent_roll_snapshots.id", ondelete="SET NULL")
    )
    # Set on the copy a finalize makes of a preserved future lease.
    copied_from_lease_id: Mapped[str | None] = mapped_column(ForeignKey("leases.id", ondelete="SET NULL"))
    name: Mapped[str] = mapped_column(String, nullable=False)
    lease_start_date: Mapped[date | None] = mapped_column(Date)
    lease_end_date: Mapped[date | None] = mapped_column(Date)
    lease_rent: Mapped[Decimal | None] = mapped_column(Money)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    unit: Mapped["Unit"] = relationship("Unit", back_populates="leases")
    tenancies: Mapped[list["Tenancy"]] = relationship(
        "Tenancy", back_populates="lease", cascade="all, delete-orphan"
    )
    residents: Mapped[list["Resident"]] = relationship(
        "Resident", back_populates="lease", cascade="all, delete-orphan"
    )
    income_verifications: Mapped[list["IncomeVerification"]] = relationship(
        "IncomeVerification", back_populates="lease", cascade="all, delete-orphan"
    )

    @property
    def is_processed(self) -> bool:
        return self.name.startswith(PROCESSED_PREFIX)
