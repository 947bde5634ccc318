from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from src.befree.domain.errors import ValidationError
from src.befree.domain.models.recommendation import Recommendation
from src.befree.domain.models.referral import ReferralDraft, ReferralType
from src.befree.domain.models.screening import ScreeningAnswers, ScreeningKind

# Referral text shown on the consent page and to staff.
REFERRAL_MESSAGES: Dict[ScreeningKind, str] = {
    ScreeningKind.HIV: "Based on your HIV screening, the following guidance was provided: {guidance}",
    ScreeningKind.GBV: "{name}, based on your GBV screening, the following guidance was provided: {guidance}",
    ScreeningKind.PREP: (
        "Based on the PrEP screening, the user is likely eligible for PrEP and requires a consultation. "
        "Guidance provided: {guidance}"
    ),
    ScreeningKind.STI: "Based on your STI screening, the following guidance was provided: {guidance}",
}


class ReferralGenerator:
    """Turn a recommendation into a referral draft in its initial state."""

    def build(
        self,
        answers: ScreeningAnswers,
        recommendation: Recommendation,
        *,
        screening_id: str,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[ReferralDraft]:
        """Return a Pending Consent draft, or None when no referral is warranted."""

        if recommendation.kind != answers.kind:
            raise ValidationError(
                f"Recommendation for {recommendation.kind.value} does not match {answers.kind.value} answers."
            )
        if not recommendation.referral_warranted:
            return None

        return ReferralDraft(
            patient_name=answers.name,
            phone_number=answers.phone_number,
            email=str(answers.email) if answers.email else None,
            type=ReferralType.for_kind(answers.kind),
            screening_id=screening_id,
            user_id=user_id,
            referral_message=REFERRAL_MESSAGES[answers.kind].format(
                name=answers.name,
                guidance=recommendation.guidance,
            ),
            referral_date=now or datetime.now(timezone.utc),
        )


referral_generator = ReferralGenerator()
