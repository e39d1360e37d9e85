"""Unit model."""
from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, new_id

if TYPE_CHECKING:
    from .lease import Lease
    from .property import Property


class Unit(Base):
    """Individual rental unit, identified within its property by a free-text unit number."""

    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("property_id", "unit_number"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    unit_number: Mapped[str] = mapped_column(String, nullable=False)
    bedroom_count: Mapped[int | None] = mapped_column(Integer)

    property: Mapped["Property"] = relationship("Property", back_populates="units")
    leases: Mapped[list["Lease"]] = relationship(
        "Lease", back_populates="unit", cascade="all, delete-orphan"
    )
