"""Error taxonomy shared by the compliance services and the HTTP layer."""
from __future__ import annotations

from collections.abc import Iterable


class ComplianceError(Exception):
    """Base class for errors raised by the compliance core."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, object]:
        return {"detail": self.message}


class UploadValidationError(ComplianceError):
    """Raised before any write when a rent-roll upload cannot be ingested."""

    status_code = 422

    def __init__(
        self,
        message: str,
        *,
        unit_numbers: Iterable[str] = (),
        problems: Iterable[str] = (),
    ) -> None:
        super().__init__(message)
        self.unit_numbers = sorted(set(unit_numbers))
        self.problems = list(problems)

    def to_detail(self) -> dict[str, object]:
        return {"detail": self.message, "unit_numbers": self.unit_numbers, "problems": self.problems}


class NotFoundError(ComplianceError):
    status_code = 404


class ConcurrencyConflictError(ComplianceError):
    """Two finalize calls raced on one property, or the active-snapshot invariant broke."""

    status_code = 409


class HudServiceError(ComplianceError):
    """HUD income-limit lookup failed (timeout, non-2xx, unknown county, bad payload)."""

    status_code = 502


class IncomeAnalysisError(ComplianceError):
    """Paystub or document annualization could not produce a figure."""

    status_code = 422


class InsufficientDataError(IncomeAnalysisError):
    pass


class UnknownFrequencyError(IncomeAnalysisError):
    pass


class InsufficientPeriodError(IncomeAnalysisError):
    pass


class IncompleteVerificationError(ComplianceError):
    """A lease-level action needs every resident finalized first."""

    status_code = 409


class FinalizeTimeoutError(ComplianceError):
    status_code = 504


class UnknownResolutionError(ComplianceError):
    status_code = 422
