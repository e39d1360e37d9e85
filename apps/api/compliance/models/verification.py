"""Income verification workflow model."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
import enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, Money, new_id, utcnow

if TYPE_CHECKING:
    from .document import IncomeDocument
    from .lease import Lease


class VerificationStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    FINALIZED = "FINALIZED"


class IncomeVerification(Base):
    """One pass of the verification workflow for a lease; the latest by ``created_at`` wins."""

    __tablename__ = "income_verifications"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    lease_id: Mapped[str] = mapped_column(ForeignKey("leases.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus, name="verification_status"),
        default=VerificationStatus.IN_PROGRESS,
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(String)
    calculated_verified_income: Mapped[Decimal | None] = mapped_column(Money)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    lease: Mapped["Lease"] = relationship("Lease", back_populates="income_verifications")
    income_documents: Mapped[list["IncomeDocument"]] = relationship(
        "IncomeDocument", back_populates="verification"
    )
