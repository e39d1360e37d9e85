"""Income document model."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import enum
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, Money, new_id, utcnow

if TYPE_CHECKING:
    from .resident import Resident
    from .verification import IncomeVerification


class DocumentType(str, enum.Enum):
    PAYSTUB = "PAYSTUB"
    W2 = "W2"
    SOCIAL_SECURITY = "SOCIAL_SECURITY"
    SSA_1099 = "SSA_1099"
    BANK_STATEMENT = "BANK_STATEMENT"
    OFFER_LETTER = "OFFER_LETTER"
    OTHER = "OTHER"


class DocumentStatus(str, enum.Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class IncomeDocument(Base):
    """Extracted fields of one uploaded income document.

    Copies made for a new snapshot point at the same ``file_path``; the uploaded file
    itself is never duplicated.
    """

    __tablename__ = "income_documents"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    resident_id: Mapped[str] = mapped_column(ForeignKey("residents.id", ondelete="CASCADE"), nullable=False)
    verification_id: Mapped[str | None] = mapped_column(
        ForeignKey("income_verifications.id", ondelete="SET NULL")
    )
    document_type: Mapped[DocumentType] = mapped_column(Enum(DocumentType, name="document_type"), nullable=False)
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, name="document_status"), default=DocumentStatus.PROCESSING, nullable=False
    )
    file_path: Mapped[str | None] = mapped_column(String)
    document_date: Mapped[date | None] = mapped_column(Date)
    upload_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    employee_name: Mapped[str | None] = mapped_column(String)
    employer_name: Mapped[str | None] = mapped_column(String)
    tax_year: Mapped[int | None] = mapped_column(Integer)
    box1_wages: Mapped[Decimal | None] = mapped_column(Money)
    box3_ss_wages: Mapped[Decimal | None] = mapped_column(Money)
    box5_med_wages: Mapped[Decimal | None] = mapped_column(Money)

    gross_pay_amount: Mapped[Decimal | None] = mapped_column(Money)
    pay_frequency: Mapped[str | None] = mapped_column(String)
    pay_period_start_date: Mapped[date | None] = mapped_column(Date)
    pay_period_end_date: Mapped[date | None] = mapped_column(Date)
    calculated_annualized_income: Mapped[Decimal | None] = mapped_column(Money)

    resident: Mapped["Resident"] = relationship("Resident", back_populates="income_documents")
    verification: Mapped["IncomeVerification | None"] = relationship(
        "IncomeVerification", back_populates="income_documents"
    )
