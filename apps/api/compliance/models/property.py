"""Property model."""
from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.config import DEFAULT_COMPLIANCE_OPTION
from .base import Base, new_id, utcnow

if TYPE_CHECKING:
    from .snapshot import RentRollSnapshot
    from .unit import Unit


class Property(Base):
    """A LIHTC property whose units are tracked for income compliance."""

    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    county: Mapped[str] = mapped_column(String, nullable=False)
    state: Mapped[str] = mapped_column(String, nullable=False)
    compliance_option: Mapped[str] = mapped_column(
        String, default=DEFAULT_COMPLIANCE_OPTION, nullable=False
    )
    placed_in_service_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    units: Mapped[list["Unit"]] = relationship(
        "Unit", back_populates="property", cascade="all, delete-orphan"
    )
    snapshots: Mapped[list["RentRollSnapshot"]] = relationship(
        "RentRollSnapshot", back_populates="property", cascade="all, delete-orphan"
    )
