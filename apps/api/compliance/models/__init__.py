"""Expose ORM models."""
from .document import DocumentStatus, DocumentType, IncomeDocument
from .lease import PROCESSED_PREFIX, Lease
from .property import Property
from .resident import Resident
from .snapshot import RentRoll, RentRollSnapshot, Tenancy
from .unit import Unit
from .verification import IncomeVerification, VerificationStatus

__all__ = [
    "DocumentStatus",
    "DocumentType",
    "IncomeDocument",
    "IncomeVerification",
    "Lease",
    "PROCESSED_PREFIX",
    "Property",
    "RentRoll",
    "RentRollSnapshot",
    "Resident",
    "Tenancy",
    "Unit",
    "VerificationStatus",
]
