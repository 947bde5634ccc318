from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.befree.domain.models.screening import ScreeningKind


class ReferralType(str, Enum):
    HIV = "HIV"
    GBV = "GBV"
    PREP = "PrEP"
    STI = "STI"

    @classmethod
    def for_kind(cls, kind: ScreeningKind) -> "ReferralType":
        return _TYPE_BY_KIND[kind]

    @property
    def screening_kind(self) -> ScreeningKind:
        return next(kind for kind, type_ in _TYPE_BY_KIND.items() if type_ is self)


_TYPE_BY_KIND = {
    ScreeningKind.HIV: ReferralType.HIV,
    ScreeningKind.GBV: ReferralType.GBV,
    ScreeningKind.PREP: ReferralType.PREP,
    ScreeningKind.STI: ReferralType.STI,
}


class ReferralStatus(str, Enum):
    PENDING_CONSENT = "Pending Consent"
    PENDING_REVIEW = "Pending Review"
    CONTACTED = "Contacted"
    FOLLOW_UP_SCHEDULED = "Follow-up Scheduled"
    CLOSED = "Closed"


# Statuses staff may move a routed referral between, in any order.
LIFECYCLE_STATUSES = frozenset(
    {
        ReferralStatus.PENDING_REVIEW,
        ReferralStatus.CONTACTED,
        ReferralStatus.FOLLOW_UP_SCHEDULED,
        ReferralStatus.CLOSED,
    }
)


class ConsentStatus(str, Enum):
    PENDING = "pending"
    AGREED = "agreed"
    # Part of the stored vocabulary but never written: a decline leaves the
    # referral pending.
    DECLINED = "declined"


class ContactMethod(str, Enum):
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class ReferralDraft(BaseModel):
    """Referral content before the store has assigned it an id."""

    patient_name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None

    type: ReferralType
    screening_id: str
    user_id: str
    referral_message: str

    consent_status: ConsentStatus = ConsentStatus.PENDING
    region: Optional[str] = None
    constituency: Optional[str] = None
    facility: Optional[str] = None
    contact_method: Optional[ContactMethod] = None

    status: ReferralStatus = ReferralStatus.PENDING_CONSENT
    notes: str = ""
    services: List[str] = Field(default_factory=list)
    appointment_date_time: Optional[datetime] = None

    referral_date: datetime

    def to_record(self) -> Dict[str, Any]:
        """Document-store representation (everything except the id)."""

        return self.model_dump(mode="json", exclude={"id"})


class Referral(ReferralDraft):
    """A referral derived from one screening.

    Created in Pending Consent. Consent moves it to Pending Review and sets
    the routing fields together; after that only staff change its status,
    notes, services and appointment.
    """

    id: str

    @property
    def is_routed(self) -> bool:
        return self.consent_status == ConsentStatus.AGREED

    @classmethod
    def from_record(cls, record_id: str, data: Dict[str, Any]) -> "Referral":
        return cls(id=record_id, **data)
