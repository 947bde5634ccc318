from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel

from src.befree.domain.errors import ReferralCoreError
from src.befree.domain.models.recommendation import Recommendation
from src.befree.domain.models.referral import Referral


class OperationResult(BaseModel):
    """Outcome of a core operation.

    Core operations never raise to their callers; ``success`` is the only
    safe signal. ``error_kind`` is one of "validation", "precondition",
    "not_found" or "persistence" on failure.
    """

    success: bool
    message: str
    field_errors: Optional[Dict[str, str]] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, message: str, **kwargs) -> "OperationResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def failed(cls, error: ReferralCoreError, **kwargs) -> "OperationResult":
        return cls(
            success=False,
            message=error.message,
            field_errors=error.field_errors or None,
            error_kind=error.kind,
            **kwargs,
        )


class SubmissionResult(OperationResult):
    screening_id: Optional[str] = None
    recommendation: Optional[Recommendation] = None
    referral_message: Optional[str] = None
    referral_id: Optional[str] = None
    # Echo of the created referral for immediate display to the subject.
    referral: Optional[Referral] = None


class ReferralResult(OperationResult):
    referral: Optional[Referral] = None
