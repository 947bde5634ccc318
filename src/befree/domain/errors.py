from __future__ import annotations

from typing import Dict, Optional


class ReferralCoreError(Exception):
    """Base class for failures raised inside the screening/referral core.

    ``field`` names the input field the failure is attributable to, when
    there is one, so callers can re-prompt for that field only.
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        field_errors: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.field_errors: Dict[str, str] = dict(field_errors or {})
        if field is not None and field not in self.field_errors:
            self.field_errors[field] = message


class ValidationError(ReferralCoreError):
    """Malformed or missing input fields."""

    kind = "validation"


class PreconditionError(ReferralCoreError):
    """The target exists but is not in a state that allows the operation."""

    kind = "precondition"


class NotFoundError(ReferralCoreError):
    kind = "not_found"


class PersistenceError(ReferralCoreError):
    """The document store failed, or only part of a multi-write succeeded."""

    kind = "persistence"
