from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError


class ScreeningKind(str, Enum):
    HIV = "hiv"
    GBV = "gbv"
    PREP = "prep"
    STI = "sti"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class YesNo(str, Enum):
    YES = "yes"
    NO = "no"


class SexualActivity(str, Enum):
    YES = "yes"
    NO = "no"
    PREFER_NOT_TO_SAY = "prefer_not_to_say"


class TestingHistory(str, Enum):
    NEVER_TESTED = "never_tested"
    TESTED_NEGATIVE = "tested_negative"
    TESTED_POSITIVE = "tested_positive"
    PREFER_NOT_TO_SAY = "prefer_not_to_say"


class EmotionalViolence(str, Enum):
    MOCKED = "mocked"
    CONTROLLED = "controlled"
    NO = "no"


class PhysicalViolence(str, Enum):
    PUNCHED = "punched"
    THREATENED = "threatened"
    NO = "no"


class SexualViolence(str, Enum):
    TOUCHED = "touched"
    FORCED = "forced"
    NO = "no"


class SexualViolenceTimeline(str, Enum):
    LE_72_HR = "le_72_hr"
    GT_72_LE_120_HR = "gt_72_le_120_hr"
    GT_120_HR = "gt_120_hr"
    NO_HISTORY = "no_history"


class KnowsHivStatus(str, Enum):
    YES = "yes"
    NO = "no"
    NO_ANSWER = "no_answer"


class LastTestDate(str, Enum):
    LESS_THAN_3_MONTHS = "less_than_3_months"
    FROM_3_TO_6_MONTHS = "3_to_6_months"
    FROM_6_TO_12_MONTHS = "6_to_12_months"
    MORE_THAN_12_MONTHS = "more_than_12_months"
    NEVER_TESTED = "never_tested"


class LastTestResult(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    DONT_KNOW = "dont_know"
    REFUSED = "refused"


class TreatmentStatus(str, Enum):
    TAKING_ART = "taking_art"
    STARTED_STOPPED = "started_stopped"
    NOT_ON_ART = "not_on_art"
    DONT_KNOW = "dont_know"


class HadSex(str, Enum):
    WITHIN_6_MONTHS = "within_6_months"
    FROM_6_TO_12_MONTHS = "6_to_12_months"
    MORE_THAN_12_MONTHS = "more_than_12_months"
    NEVER = "never"
    REFUSED = "refused"


class CondomUse(str, Enum):
    YES = "yes"
    NO = "no"
    CANT_REMEMBER = "cant_remember"
    REFUSED = "refused"


class TransactionalSex(str, Enum):
    YES = "yes"
    NO = "no"
    FORCED = "forced"
    REFUSED = "refused"


class MultiplePartners(str, Enum):
    NO = "no"
    TWO = "two"
    THREE_OR_MORE = "three_or_more"
    DONT_REMEMBER = "dont_remember"
    REFUSED = "refused"


class PartnerAgeDifference(str, Enum):
    UP_TO_3 = "0-3"
    FROM_4_TO_9 = "4-9"
    TEN_OR_MORE = "10+"
    DONT_KNOW = "dont_know"


class AlcoholUse(str, Enum):
    ANY = "any"
    NONE = "none"
    CANT_REMEMBER = "cant_remember"
    REFUSED = "refused"


class AlcoholFrequency(str, Enum):
    EVERY_DAY = "every_day"
    EVERY_WEEK = "every_week"
    TWO_OR_THREE_TIMES_A_MONTH = "2_3_times_month"
    ONCE_A_MONTH = "once_month"
    SPECIAL_OCCASIONS = "special_occasions"
    NEVER = "never"


class Symptom(str, Enum):
    COUGHING = "coughing"
    WEIGHT_LOSS = "weight_loss"
    NIGHT_SWEATS = "night_sweats"
    FEVER = "fever"
    SWELLING = "swelling"
    NO = "no"


class PregnancyHistory(str, Enum):
    CURRENTLY_PREGNANT = "currently_pregnant"
    PREGNANT_IN_PAST = "pregnant_in_past"
    CHILD_PASSED_ON = "child_passed_on"
    CHILD_UNDER_2 = "child_under_2"
    CHILD_OVER_2 = "child_over_2"
    ABORTION_MISCARRIAGE = "abortion_miscarriage"
    NEVER_PREGNANT = "never_pregnant"


class AncAttendance(str, Enum):
    ATTENDING_ANC = "attending_anc"
    ATTENDING_POST_NATAL = "attending_post_natal"
    ELIGIBLE_NOT_ATTENDING = "eligible_not_attending"
    NOT_APPLICABLE = "na"


class OrphanStatus(str, Enum):
    SINGLE = "single"
    DOUBLE = "double"
    CHILD_HEADED = "child_headed"


# Checkbox value meaning "none of the above" on the GBV violence and HIV
# symptom questions.
NO_SENTINEL = "no"
NEVER_PREGNANT = PregnancyHistory.NEVER_PREGNANT.value


def _required_when(
    value: Any,
    condition: bool,
    message: str = "This question is required based on your previous answer.",
) -> Any:
    if condition and value is None:
        raise PydanticCustomError("conditional_required", message)
    return value


def _reported(codes: Optional[List[Enum]], sentinel: str = NO_SENTINEL) -> bool:
    """True when a checkbox answer lists at least one code other than the sentinel."""

    if not codes:
        return False
    return all(code.value != sentinel for code in codes)


def _check_sentinel(codes: List[Enum], sentinel: str = NO_SENTINEL, label: str = "No") -> List[Enum]:
    values = [code.value for code in codes]
    if not values:
        raise PydanticCustomError("at_least_one", "Please select at least one option.")
    if sentinel in values and len(values) > 1:
        raise PydanticCustomError(
            "exclusive_no",
            "'{sentinel}' cannot be combined with other options.",
            {"sentinel": label},
        )
    # Preserve first-seen order, drop duplicates.
    return list(dict.fromkeys(codes))


class ScreeningIdentity(BaseModel):
    """Identity fields shared by every screening questionnaire.

    Answer models forbid unknown fields so one record never carries answers
    belonging to another screening kind. They are frozen: a submitted
    screening is an audit record and is never edited afterwards.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ClassVar[ScreeningKind]

    name: str = Field(min_length=2)
    age: Optional[int] = Field(default=None, ge=14, le=120)
    gender: Optional[Gender] = None
    phone_number: Optional[str] = Field(default=None, min_length=10)
    email: Optional[EmailStr] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise PydanticCustomError("name_too_short", "Name must be at least 2 characters.")
        return value

    @field_validator("phone_number", "email", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class HivScreeningAnswers(ScreeningIdentity):
    """HIV risk questionnaire.

    ``sexual_activity`` and ``testing_history`` drive the recommendation.
    The detailed questions (A1 to A16 on the paper form) are optional, but
    once a question is answered its follow-ups become required: a previous
    test needs a result, a positive result needs a treatment status and so
    on. Fields are declared in question order so each follow-up can see
    the answer it depends on.
    """

    kind: ClassVar[ScreeningKind] = ScreeningKind.HIV

    sexual_activity: SexualActivity
    testing_history: TestingHistory

    knows_hiv_status: Optional[KnowsHivStatus] = None
    last_test_date: Optional[LastTestDate] = None
    last_test_result: Optional[LastTestResult] = Field(default=None, validate_default=True)
    treatment_status: Optional[TreatmentStatus] = Field(default=None, validate_default=True)
    had_sex: Optional[HadSex] = None
    used_condoms: Optional[CondomUse] = Field(default=None, validate_default=True)
    transactional_sex: Optional[TransactionalSex] = Field(default=None, validate_default=True)
    multiple_partners: Optional[MultiplePartners] = Field(default=None, validate_default=True)
    partner_age_difference_p1: Optional[PartnerAgeDifference] = None
    partner_age_difference_p2: Optional[PartnerAgeDifference] = None
    partner_age_difference_p3: Optional[PartnerAgeDifference] = None
    consumed_alcohol: Optional[AlcoholUse] = None
    alcohol_frequency: Optional[AlcoholFrequency] = Field(default=None, validate_default=True)
    symptoms: Optional[List[Symptom]] = None
    pregnancy_history: Optional[List[PregnancyHistory]] = None
    attending_anc: Optional[AncAttendance] = Field(default=None, validate_default=True)
    is_orphan: Optional[YesNo] = None
    orphan_status: Optional[OrphanStatus] = Field(default=None, validate_default=True)
    has_disability: Optional[YesNo] = None
    is_disability_registered: Optional[YesNo] = Field(default=None, validate_default=True)

    @field_validator("last_test_result")
    @classmethod
    def _result_required(cls, value: Optional[LastTestResult], info: ValidationInfo) -> Optional[LastTestResult]:
        last_test = info.data.get("last_test_date")
        return _required_when(
            value,
            last_test is not None and last_test != LastTestDate.NEVER_TESTED,
            "Result is required if you have been tested before.",
        )

    @field_validator("treatment_status")
    @classmethod
    def _treatment_required(cls, value: Optional[TreatmentStatus], info: ValidationInfo) -> Optional[TreatmentStatus]:
        return _required_when(
            value,
            info.data.get("last_test_result") == LastTestResult.POSITIVE,
            "Treatment status is required if you tested positive.",
        )

    @field_validator("used_condoms", "transactional_sex", "multiple_partners")
    @classmethod
    def _sexual_history_required(cls, value: Any, info: ValidationInfo) -> Any:
        had_sex = info.data.get("had_sex")
        return _required_when(value, had_sex is not None and had_sex != HadSex.NEVER, "This question is required.")

    @field_validator("alcohol_frequency")
    @classmethod
    def _frequency_required(cls, value: Optional[AlcoholFrequency], info: ValidationInfo) -> Optional[AlcoholFrequency]:
        return _required_when(
            value,
            info.data.get("consumed_alcohol") == AlcoholUse.ANY,
            "Frequency is required if you consume alcohol.",
        )

    @field_validator("symptoms")
    @classmethod
    def _exclusive_no_symptoms(cls, value: Optional[List[Symptom]]) -> Optional[List[Symptom]]:
        return None if value is None else _check_sentinel(value)

    @field_validator("pregnancy_history")
    @classmethod
    def _exclusive_never_pregnant(cls, value: Optional[List[PregnancyHistory]]) -> Optional[List[PregnancyHistory]]:
        if value is None:
            return None
        return _check_sentinel(value, NEVER_PREGNANT, "Never been pregnant")

    @field_validator("attending_anc")
    @classmethod
    def _anc_required(cls, value: Optional[AncAttendance], info: ValidationInfo) -> Optional[AncAttendance]:
        history = info.data.get("pregnancy_history")
        return _required_when(
            value,
            info.data.get("gender") == Gender.FEMALE and _reported(history, NEVER_PREGNANT),
            "This field is required based on your pregnancy history.",
        )

    @field_validator("orphan_status")
    @classmethod
    def _orphan_status_required(cls, value: Optional[OrphanStatus], info: ValidationInfo) -> Optional[OrphanStatus]:
        return _required_when(
            value,
            info.data.get("is_orphan") == YesNo.YES,
            "Orphan status is required if applicable.",
        )

    @field_validator("is_disability_registered")
    @classmethod
    def _registration_required(cls, value: Optional[YesNo], info: ValidationInfo) -> Optional[YesNo]:
        return _required_when(
            value,
            info.data.get("has_disability") == YesNo.YES,
            "Registration status is required if you have a disability.",
        )


class GbvScreeningAnswers(ScreeningIdentity):
    kind: ClassVar[ScreeningKind] = ScreeningKind.GBV

    emotional_violence: List[EmotionalViolence]
    suicide_attempt: Optional[YesNo] = Field(default=None, validate_default=True)
    physical_violence: List[PhysicalViolence]
    serious_injury: Optional[YesNo] = Field(default=None, validate_default=True)
    sexual_violence: List[SexualViolence]
    sexual_violence_timeline: Optional[SexualViolenceTimeline] = Field(default=None, validate_default=True)

    @field_validator("emotional_violence", "physical_violence", "sexual_violence")
    @classmethod
    def _exclusive_no(cls, value: List[Enum]) -> List[Enum]:
        return _check_sentinel(value)

    @field_validator("suicide_attempt")
    @classmethod
    def _suicide_attempt_required(cls, value: Optional[YesNo], info: ValidationInfo) -> Optional[YesNo]:
        return _required_when(value, _reported(info.data.get("emotional_violence")))

    @field_validator("serious_injury")
    @classmethod
    def _serious_injury_required(cls, value: Optional[YesNo], info: ValidationInfo) -> Optional[YesNo]:
        return _required_when(value, _reported(info.data.get("physical_violence")))

    @field_validator("sexual_violence_timeline")
    @classmethod
    def _timeline_consistent(
        cls, value: Optional[SexualViolenceTimeline], info: ValidationInfo
    ) -> Optional[SexualViolenceTimeline]:
        codes = info.data.get("sexual_violence")
        _required_when(value, _reported(codes))
        denied = bool(codes) and any(code.value == NO_SENTINEL for code in codes)
        if denied and value is not None and value != SexualViolenceTimeline.NO_HISTORY:
            raise PydanticCustomError(
                "timeline_without_history",
                "This should be 'No History' if you selected 'No' for sexual violence.",
            )
        return value


class PrepScreeningAnswers(ScreeningIdentity):
    kind: ClassVar[ScreeningKind] = ScreeningKind.PREP

    RISK_FACTOR_FIELDS: ClassVar[Tuple[str, ...]] = (
        "multiple_partners",
        "unprotected_sex",
        "unknown_status_partners",
        "at_risk_partners",
        "sex_under_influence",
        "new_sti_diagnosis",
        "considers_at_risk",
        "used_pep_multiple_times",
        "forced_sex",
    )

    multiple_partners: YesNo
    unprotected_sex: YesNo
    unknown_status_partners: YesNo
    at_risk_partners: YesNo
    sex_under_influence: YesNo
    new_sti_diagnosis: YesNo
    considers_at_risk: YesNo
    used_pep_multiple_times: YesNo
    forced_sex: YesNo


class StiScreeningAnswers(ScreeningIdentity):
    kind: ClassVar[ScreeningKind] = ScreeningKind.STI

    RISK_FACTOR_FIELDS: ClassVar[Tuple[str, ...]] = (
        "diagnosed_or_treated",
        "abnormal_discharge",
        "vaginal_itchiness",
        "genital_sores",
    )

    diagnosed_or_treated: YesNo
    abnormal_discharge: Optional[YesNo] = Field(default=None, validate_default=True)
    vaginal_itchiness: Optional[YesNo] = Field(default=None, validate_default=True)
    genital_sores: YesNo

    @field_validator("abnormal_discharge", "vaginal_itchiness")
    @classmethod
    def _required_for_female(cls, value: Optional[YesNo], info: ValidationInfo) -> Optional[YesNo]:
        if info.data.get("gender") == Gender.FEMALE and value is None:
            raise PydanticCustomError("conditional_required", "This question is required.")
        return value


ScreeningAnswers = Union[
    HivScreeningAnswers,
    GbvScreeningAnswers,
    PrepScreeningAnswers,
    StiScreeningAnswers,
]

ANSWER_MODELS: Dict[ScreeningKind, Type[ScreeningIdentity]] = {
    ScreeningKind.HIV: HivScreeningAnswers,
    ScreeningKind.GBV: GbvScreeningAnswers,
    ScreeningKind.PREP: PrepScreeningAnswers,
    ScreeningKind.STI: StiScreeningAnswers,
}


class ScreeningRecord(BaseModel):
    """A stored screening: the validated answers plus who submitted them and when."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ScreeningKind
    user_id: str
    submitted_at: datetime
    answers: Dict[str, Any]
