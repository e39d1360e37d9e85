"""Rent-roll snapshot, rent roll and tenancy models."""
from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, new_id, utcnow

if TYPE_CHECKING:
    from .lease import Lease
    from .property import Property


class RentRollSnapshot(Base):
    """Immutable capture of a property's state as of one compliance upload."""

    __tablename__ = "rent_roll_snapshots"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    upload_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hud_income_limits: Mapped[dict | None] = mapped_column(JSONType)
    hud_data_year: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    property: Mapped["Property"] = relationship("Property", back_populates="snapshots")
    rent_rolls: Mapped[list["RentRoll"]] = relationship(
        "RentRoll", back_populates="snapshot", cascade="all, delete-orphan"
    )


class RentRoll(Base):
    """What was true for a property as of the rent-roll date."""

    __tablename__ = "rent_rolls"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    snapshot_id: Mapped[str] = mapped_column(
        ForeignKey("rent_roll_snapshots.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(String, nullable=False)
    upload_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    snapshot: Mapped["RentRollSnapshot"] = relationship("RentRollSnapshot", back_populates="rent_rolls")
    tenancies: Mapped[list["Tenancy"]] = relationship(
        "Tenancy", back_populates="rent_roll", cascade="all, delete-orphan"
    )


class Tenancy(Base):
    """Presence of a lease on a rent roll; defines 'current as of that roll'."""

    __tablename__ = "tenancies"
    __table_args__ = (UniqueConstraint("lease_id", "rent_roll_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    lease_id: Mapped[str] = mapped_column(ForeignKey("leases.id", ondelete="CASCADE"), nullable=False)
    rent_roll_id: Mapped[str] = mapped_column(ForeignKey("rent_rolls.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    lease: Mapped["Lease"] = relationship("Lease", back_populates="tenancies")
    rent_roll: Mapped["RentRoll"] = relationship("RentRoll", back_populates="tenancies")
