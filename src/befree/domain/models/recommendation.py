from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from src.befree.domain.models.screening import ScreeningKind


class Classification(str, Enum):
    # HIV guidance is advisory only.
    INFORMATIONAL = "informational"
    # GBV
    URGENT = "urgent"
    ROUTINE = "routine"
    # PrEP
    ELIGIBLE = "eligible"
    NOT_ELIGIBLE = "not_eligible"
    # STI
    ASSESSMENT_RECOMMENDED = "assessment_recommended"
    NO_IMMEDIATE_RISK = "no_immediate_risk"


class Recommendation(BaseModel):
    """Outcome of evaluating one screening.

    ``message`` is what the subject sees right after submitting.
    ``guidance`` holds the recommendation sentences without the greeting and
    is what the referral message is rendered from. ``urgency_notes`` lists
    the escalation conditions that fired, in rule order (GBV only).
    """

    model_config = ConfigDict(frozen=True)

    kind: ScreeningKind
    classification: Classification
    message: str
    guidance: str
    referral_warranted: bool
    urgency_notes: List[str] = Field(default_factory=list)
