import pytest
from pydantic import ValidationError

from src.befree.domain.errors import ValidationError as ScreeningValidationError
from src.befree.domain.models.screening import (
    GbvScreeningAnswers,
    HivScreeningAnswers,
    LastTestResult,
    PhysicalViolence,
    PregnancyHistory,
    ScreeningKind,
    StiScreeningAnswers,
)
from src.befree.services.screening.service import parse_answers


def _error_fields(exc: ValidationError):
    return {error["loc"][0] for error in exc.errors()}


def test_name_is_stripped_and_blank_contacts_are_absent():
    answers = HivScreeningAnswers(
        name="  Amara ",
        phone_number="   ",
        email="",
        sexual_activity="no",
        testing_history="never_tested",
    )
    assert answers.name == "Amara"
    assert answers.phone_number is None
    assert answers.email is None


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"name": " A "}, "name"),
        ({"age": 13}, "age"),
        ({"age": 121}, "age"),
        ({"phone_number": "12345"}, "phone_number"),
        ({"email": "not-an-email"}, "email"),
        ({"sexual_activity": "sometimes"}, "sexual_activity"),
    ],
)
def test_identity_and_enum_fields_are_validated(overrides, field):
    payload = {"name": "Amara", "sexual_activity": "no", "testing_history": "never_tested", **overrides}
    with pytest.raises(ValidationError) as excinfo:
        HivScreeningAnswers(**payload)
    assert field in _error_fields(excinfo.value)


def test_answers_from_another_questionnaire_are_rejected():
    with pytest.raises(ValidationError) as excinfo:
        HivScreeningAnswers(
            name="Amara",
            sexual_activity="no",
            testing_history="never_tested",
            suicide_attempt="yes",
        )
    assert "suicide_attempt" in _error_fields(excinfo.value)


def test_gbv_no_cannot_be_combined_with_other_options(gbv_answers):
    gbv_answers["physical_violence"] = ["no", "punched"]
    with pytest.raises(ValidationError) as excinfo:
        GbvScreeningAnswers(**gbv_answers)
    assert "physical_violence" in _error_fields(excinfo.value)


def test_gbv_checkbox_answers_need_at_least_one_option(gbv_answers):
    gbv_answers["sexual_violence"] = []
    with pytest.raises(ValidationError) as excinfo:
        GbvScreeningAnswers(**gbv_answers)
    assert "sexual_violence" in _error_fields(excinfo.value)


def test_gbv_duplicates_are_dropped(gbv_answers):
    gbv_answers["physical_violence"] = ["punched", "punched", "threatened"]
    answers = GbvScreeningAnswers(**gbv_answers)
    assert answers.physical_violence == [PhysicalViolence.PUNCHED, PhysicalViolence.THREATENED]


def test_gbv_follow_up_questions_required_when_violence_reported(gbv_answers):
    gbv_answers.update(
        physical_violence=["punched"],
        serious_injury=None,
        sexual_violence=["forced"],
        sexual_violence_timeline=None,
    )
    del gbv_answers["suicide_attempt"]
    with pytest.raises(ValidationError) as excinfo:
        GbvScreeningAnswers(**gbv_answers)
    assert {"suicide_attempt", "serious_injury", "sexual_violence_timeline"} <= _error_fields(excinfo.value)


def test_gbv_follow_up_questions_optional_when_nothing_reported(gbv_answers):
    gbv_answers.update(emotional_violence=["no"], suicide_attempt=None, serious_injury=None)
    del gbv_answers["sexual_violence_timeline"]
    answers = GbvScreeningAnswers(**gbv_answers)
    assert answers.suicide_attempt is None
    assert answers.sexual_violence_timeline is None


def test_gbv_timeline_must_be_no_history_when_sexual_violence_denied(gbv_answers):
    gbv_answers["sexual_violence_timeline"] = "le_72_hr"
    with pytest.raises(ValidationError) as excinfo:
        GbvScreeningAnswers(**gbv_answers)
    assert "sexual_violence_timeline" in _error_fields(excinfo.value)


def test_sti_female_questions_required_only_for_female():
    base = {"name": "Selma", "diagnosed_or_treated": "no", "genital_sores": "no"}

    StiScreeningAnswers(**base, gender="male")
    StiScreeningAnswers(**base)

    with pytest.raises(ValidationError) as excinfo:
        StiScreeningAnswers(**base, gender="female")
    assert {"abnormal_discharge", "vaginal_itchiness"} <= _error_fields(excinfo.value)


def test_answers_are_frozen(gbv_answers):
    answers = GbvScreeningAnswers(**gbv_answers)
    with pytest.raises(ValidationError):
        answers.name = "Someone else"


def test_parse_answers_reports_field_errors():
    with pytest.raises(ScreeningValidationError) as excinfo:
        parse_answers(ScreeningKind.HIV, {"name": "Amara", "sexual_activity": "no"})
    assert excinfo.value.kind == "validation"
    assert "testing_history" in excinfo.value.field_errors


def test_parse_answers_rejects_unknown_kind():
    with pytest.raises(ScreeningValidationError) as excinfo:
        parse_answers("malaria", {"name": "Amara"})
    assert "kind" in excinfo.value.field_errors


HIV_BASE = {"name": "Amara", "gender": "female", "sexual_activity": "yes", "testing_history": "tested_negative"}


def test_hiv_detailed_questions_are_optional():
    answers = HivScreeningAnswers(**HIV_BASE)
    assert answers.last_test_date is None
    assert answers.symptoms is None


def test_hiv_detailed_answers_are_accepted():
    answers = HivScreeningAnswers(
        **HIV_BASE,
        knows_hiv_status="yes",
        last_test_date="3_to_6_months",
        last_test_result="negative",
        had_sex="within_6_months",
        used_condoms="cant_remember",
        transactional_sex="no",
        multiple_partners="two",
        partner_age_difference_p1="0-3",
        partner_age_difference_p2="10+",
        consumed_alcohol="any",
        alcohol_frequency="2_3_times_month",
        symptoms=["fever", "night_sweats"],
        pregnancy_history=["child_under_2"],
        attending_anc="attending_post_natal",
        is_orphan="yes",
        orphan_status="double",
        has_disability="no",
    )
    assert answers.last_test_result == LastTestResult.NEGATIVE
    assert answers.model_dump(mode="json")["partner_age_difference_p2"] == "10+"


@pytest.mark.parametrize(
    "answered, field",
    [
        ({"last_test_date": "less_than_3_months"}, "last_test_result"),
        ({"last_test_date": "never_tested", "last_test_result": "positive"}, "treatment_status"),
        ({"had_sex": "refused", "transactional_sex": "no", "multiple_partners": "no"}, "used_condoms"),
        ({"had_sex": "within_6_months", "used_condoms": "yes", "multiple_partners": "no"}, "transactional_sex"),
        ({"had_sex": "6_to_12_months", "used_condoms": "yes", "transactional_sex": "no"}, "multiple_partners"),
        ({"consumed_alcohol": "any"}, "alcohol_frequency"),
        ({"pregnancy_history": ["currently_pregnant"]}, "attending_anc"),
        ({"is_orphan": "yes"}, "orphan_status"),
        ({"has_disability": "yes"}, "is_disability_registered"),
    ],
)
def test_hiv_follow_up_questions_required_by_earlier_answers(answered, field):
    with pytest.raises(ValidationError) as excinfo:
        HivScreeningAnswers(**HIV_BASE, **answered)
    assert _error_fields(excinfo.value) == {field}


@pytest.mark.parametrize(
    "answered",
    [
        {"last_test_date": "never_tested"},
        {"last_test_date": "more_than_12_months", "last_test_result": "dont_know"},
        {"had_sex": "never"},
        {"consumed_alcohol": "none"},
        {"pregnancy_history": ["never_pregnant"]},
        {"is_orphan": "no", "has_disability": "no"},
    ],
)
def test_hiv_follow_up_questions_skipped_when_not_applicable(answered):
    HivScreeningAnswers(**HIV_BASE, **answered)


def test_hiv_antenatal_care_only_asked_of_women():
    answers = HivScreeningAnswers(**{**HIV_BASE, "gender": "male"}, pregnancy_history=["child_over_2"])
    assert answers.attending_anc is None


@pytest.mark.parametrize(
    "field, codes",
    [
        ("symptoms", ["no", "coughing"]),
        ("symptoms", []),
        ("pregnancy_history", ["never_pregnant", "pregnant_in_past"]),
    ],
)
def test_hiv_checkbox_answers_have_exclusive_none_option(field, codes):
    with pytest.raises(ValidationError) as excinfo:
        HivScreeningAnswers(**HIV_BASE, **{field: codes})
    assert field in _error_fields(excinfo.value)


def test_hiv_pregnancy_history_duplicates_are_dropped():
    answers = HivScreeningAnswers(
        **HIV_BASE,
        pregnancy_history=["child_under_2", "child_under_2"],
        attending_anc="na",
    )
    assert answers.pregnancy_history == [PregnancyHistory.CHILD_UNDER_2]


def test_parse_answers_reports_hiv_follow_up_message():
    with pytest.raises(ScreeningValidationError) as excinfo:
        parse_answers("hiv", {**HIV_BASE, "last_test_date": "6_to_12_months", "last_test_result": "positive"})
    assert excinfo.value.field_errors == {
        "treatment_status": "Treatment status is required if you tested positive."
    }
