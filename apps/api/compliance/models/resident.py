"""Resident model."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, Money, new_id, utcnow

if TYPE_CHECKING:
    from .document import IncomeDocument
    from .lease import Lease


class Resident(Base):
    """Household member on a lease.

    ``annualized_income`` is what the source rent roll declared and is written once at
    ingestion. ``calculated_annualized_income`` is derived from verified documents and is
    owned by the verification workflow.
    """

    __tablename__ = "residents"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    lease_id: Mapped[str] = mapped_column(ForeignKey("leases.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    annualized_income: Mapped[Decimal | None] = mapped_column(Money)
    calculated_annualized_income: Mapped[Decimal | None] = mapped_column(Money)
    income_finalized: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_no_income: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    lease: Mapped["Lease"] = relationship("Lease", back_populates="residents")
    income_documents: Mapped[list["IncomeDocument"]] = relationship(
        "IncomeDocument", back_populates="resident", cascade="all, delete-orphan"
    )

    @property
    def is_finalized(self) -> bool:
        return self.income_finalized or self.has_no_income
