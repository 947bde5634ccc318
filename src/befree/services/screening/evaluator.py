from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from src.befree.domain.models.recommendation import Classification, Recommendation
from src.befree.domain.models.screening import (
    GbvScreeningAnswers,
    HivScreeningAnswers,
    PrepScreeningAnswers,
    ScreeningAnswers,
    ScreeningKind,
    SexualActivity,
    SexualViolenceTimeline,
    StiScreeningAnswers,
    TestingHistory,
    YesNo,
)

GREETINGS: Dict[ScreeningKind, str] = {
    ScreeningKind.HIV: "Dear {name}, thank you for completing the screening.",
    ScreeningKind.GBV: "Dear {name}, thank you for completing the GBV screening. Your safety and well-being are important.",
    ScreeningKind.PREP: "Dear {name}, thank you for completing the PrEP screening.",
    ScreeningKind.STI: "Dear {name}, thank you for completing the STI screening.",
}

# HIV: (sexual activity, testing history) -> guidance. Any combination not
# listed falls back to HIV_DEFAULT_GUIDANCE.
HIV_GUIDANCE: Dict[Tuple[SexualActivity, TestingHistory], str] = {
    (SexualActivity.YES, TestingHistory.NEVER_TESTED): (
        "Given your sexual activity and no prior testing, a referral for HIV testing and counseling "
        "is recommended. Please consult a healthcare professional to discuss this further. "
        "Early testing is key for your health."
    ),
    (SexualActivity.YES, TestingHistory.TESTED_POSITIVE): (
        "We acknowledge your testing history. It's important to continue with regular medical "
        "follow-ups and adhere to any prescribed treatment. If you need support or further "
        "consultation, please reach out to a healthcare provider."
    ),
    (SexualActivity.YES, TestingHistory.TESTED_NEGATIVE): (
        "It's good that you are aware of your status. Remember that regular testing is advisable "
        "if you are sexually active. Please consult a healthcare professional about appropriate "
        "testing frequency for you."
    ),
    (SexualActivity.NO, TestingHistory.NEVER_TESTED): (
        "While you are not currently sexually active, knowing your HIV status is part of staying "
        "healthy. Learn about HIV prevention, including condoms, PrEP and regular testing, and "
        "consider getting tested at a health facility when you are ready."
    ),
}

HIV_DEFAULT_GUIDANCE = (
    "Based on your answers, no immediate referral is indicated. If your circumstances change or "
    "you have questions about HIV testing or prevention, please consult a healthcare professional."
)


@dataclass(frozen=True)
class EscalationRule:
    """A GBV condition that makes the screening urgent."""

    applies: Callable[[GbvScreeningAnswers], bool]
    note: str
    guidance: str


GBV_ESCALATION_RULES: Tuple[EscalationRule, ...] = (
    EscalationRule(
        applies=lambda a: a.suicide_attempt == YesNo.YES,
        note="Suicide/self-harm thoughts indicated.",
        guidance=(
            "You mentioned thoughts of suicide or self-harm. Please reach out to a counselor or a "
            "health facility immediately; you do not have to face this alone."
        ),
    ),
    EscalationRule(
        applies=lambda a: a.serious_injury == YesNo.YES,
        note="Serious injury requires urgent medical attention.",
        guidance="You reported a serious injury. Please seek urgent medical attention at the nearest health facility.",
    ),
    EscalationRule(
        applies=lambda a: a.sexual_violence_timeline
        in (SexualViolenceTimeline.LE_72_HR, SexualViolenceTimeline.GT_72_LE_120_HR),
        note="Recent sexual violence exposure (within 5 days).",
        guidance=(
            "Because the sexual violence happened within the last 5 days, please go to a health "
            "facility as soon as possible. Post-exposure prophylaxis (PEP) and emergency "
            "contraception are most effective when started early."
        ),
    ),
)

GBV_ROUTINE_GUIDANCE = (
    "Thank you for sharing. Support services are available to help you stay safe, create a safety "
    "plan and talk to someone you can trust. We recommend connecting with a support provider."
)

PREP_GUIDANCE: Dict[Classification, str] = {
    Classification.ELIGIBLE: (
        "Based on your responses, you may be eligible for PrEP (Pre-Exposure Prophylaxis), which is "
        "a highly effective medication to prevent HIV. We strongly recommend discussing your results "
        "with a healthcare provider to determine if PrEP is the right option for you."
    ),
    Classification.NOT_ELIGIBLE: (
        "While your responses do not indicate an immediate high risk, it's important to continue "
        "practicing safer sex and consider regular HIV testing. If you have any questions about HIV "
        "prevention or PrEP in the future, please consult a healthcare provider."
    ),
}

STI_GUIDANCE: Dict[Classification, str] = {
    Classification.ASSESSMENT_RECOMMENDED: (
        "Based on your responses, we recommend a clinical STI assessment. Getting tested is a "
        "proactive step for your health and the health of your partners."
    ),
    Classification.NO_IMMEDIATE_RISK: (
        "Remember that regular STI testing can be an important part of your overall health, even "
        "without symptoms. Please consult a healthcare provider for personalized advice on testing "
        "frequency."
    ),
}


def _any_yes(answers: ScreeningAnswers, fields: Tuple[str, ...]) -> bool:
    return any(getattr(answers, name) == YesNo.YES for name in fields)


def _recommend(
    answers: ScreeningAnswers,
    classification: Classification,
    guidance: str,
    referral_warranted: bool,
    urgency_notes: Optional[List[str]] = None,
) -> Recommendation:
    greeting = GREETINGS[answers.kind].format(name=answers.name)
    return Recommendation(
        kind=answers.kind,
        classification=classification,
        message=f"{greeting} {guidance}",
        guidance=guidance,
        referral_warranted=referral_warranted,
        urgency_notes=urgency_notes or [],
    )


def evaluate_hiv(answers: HivScreeningAnswers) -> Recommendation:
    guidance = HIV_GUIDANCE.get((answers.sexual_activity, answers.testing_history), HIV_DEFAULT_GUIDANCE)
    # HIV guidance is advisory only and never opens a referral.
    return _recommend(answers, Classification.INFORMATIONAL, guidance, referral_warranted=False)


def evaluate_gbv(answers: GbvScreeningAnswers) -> Recommendation:
    fired = [rule for rule in GBV_ESCALATION_RULES if rule.applies(answers)]
    if fired:
        classification = Classification.URGENT
        guidance = " ".join(rule.guidance for rule in fired)
    else:
        classification = Classification.ROUTINE
        guidance = GBV_ROUTINE_GUIDANCE
    # Every GBV screening is referred; urgency only changes tone and notes.
    return _recommend(
        answers,
        classification,
        guidance,
        referral_warranted=True,
        urgency_notes=[rule.note for rule in fired],
    )


def evaluate_prep(answers: PrepScreeningAnswers) -> Recommendation:
    eligible = _any_yes(answers, PrepScreeningAnswers.RISK_FACTOR_FIELDS)
    classification = Classification.ELIGIBLE if eligible else Classification.NOT_ELIGIBLE
    return _recommend(answers, classification, PREP_GUIDANCE[classification], referral_warranted=eligible)


def evaluate_sti(answers: StiScreeningAnswers) -> Recommendation:
    at_risk = _any_yes(answers, StiScreeningAnswers.RISK_FACTOR_FIELDS)
    classification = Classification.ASSESSMENT_RECOMMENDED if at_risk else Classification.NO_IMMEDIATE_RISK
    return _recommend(answers, classification, STI_GUIDANCE[classification], referral_warranted=at_risk)


EVALUATORS: Dict[ScreeningKind, Callable[..., Recommendation]] = {
    ScreeningKind.HIV: evaluate_hiv,
    ScreeningKind.GBV: evaluate_gbv,
    ScreeningKind.PREP: evaluate_prep,
    ScreeningKind.STI: evaluate_sti,
}


class ScreeningEvaluator:
    """Map validated screening answers to a recommendation.

    Pure and deterministic: no I/O, no clock, no randomness. Input is assumed
    to have passed answer-model validation already.
    """

    def evaluate(self, answers: ScreeningAnswers) -> Recommendation:
        return EVALUATORS[answers.kind](answers)


screening_evaluator = ScreeningEvaluator()
