import logging

from src.befree.domain.errors import PersistenceError
from src.befree.domain.models.referral import ConsentStatus, ReferralStatus, ReferralType
from src.befree.domain.models.screening import ScreeningKind
from src.befree.infra.db.inmemory import InMemoryDocumentStore
from src.befree.infra.db.repositories import REFERRALS_COLLECTION, screening_collection
from src.befree.services.screening.service import ScreeningSubmissionService, screening_submission_service


class FailingReferralStore(InMemoryDocumentStore):
    """Stores screenings fine but fails every referral write."""

    def create_record(self, collection, data):
        if collection == REFERRALS_COLLECTION:
            raise PersistenceError("referrals unavailable")
        return super().create_record(collection, data)


class UndeletableStore(FailingReferralStore):
    def delete_record(self, collection, record_id):
        raise PersistenceError("delete unavailable")


def test_hiv_submission_stores_screening_without_referral(document_store):
    result = screening_submission_service.submit_screening(
        ScreeningKind.HIV,
        {"name": "Amara", "sexual_activity": "no", "testing_history": "never_tested"},
        user_id="user-1",
    )

    assert result.success is True
    assert result.referral_id is None
    assert result.recommendation.referral_warranted is False
    assert result.referral_message == result.recommendation.message
    assert document_store.query(REFERRALS_COLLECTION) == []

    record = screening_submission_service.get_screening(ScreeningKind.HIV, result.screening_id)
    assert record is not None
    assert record.user_id == "user-1"
    assert record.answers["sexual_activity"] == "no"


def test_urgent_gbv_submission_opens_pending_referral(gbv_answers):
    result = screening_submission_service.submit_screening(ScreeningKind.GBV, gbv_answers, user_id="user-2")

    assert result.success is True
    assert result.recommendation.classification.value == "urgent"
    assert "Suicide/self-harm thoughts indicated." in result.recommendation.urgency_notes

    referral = result.referral
    assert referral.id == result.referral_id
    assert referral.type == ReferralType.GBV
    assert referral.status == ReferralStatus.PENDING_CONSENT
    assert referral.consent_status == ConsentStatus.PENDING
    assert referral.screening_id == result.screening_id
    assert referral.user_id == "user-2"
    assert referral.patient_name == "Ndapewa"
    assert referral.email is None
    assert referral.region is None and referral.facility is None
    assert referral.referral_message.startswith("Ndapewa, based on your GBV screening")


def test_eligible_prep_submission_opens_referral(prep_answers):
    result = screening_submission_service.submit_screening("prep", prep_answers, user_id="user-3")

    assert result.success is True
    assert result.recommendation.classification.value == "eligible"
    assert result.referral.type == ReferralType.PREP
    assert result.referral.email == "tomas@example.com"


def test_invalid_answers_return_field_errors_and_write_nothing(document_store, gbv_answers):
    gbv_answers["emotional_violence"] = ["no", "mocked"]
    result = screening_submission_service.submit_screening(ScreeningKind.GBV, gbv_answers, user_id="user-4")

    assert result.success is False
    assert result.error_kind == "validation"
    assert "emotional_violence" in result.field_errors
    assert document_store.query(screening_collection(ScreeningKind.GBV)) == []
    assert document_store.query(REFERRALS_COLLECTION) == []


def test_failed_referral_write_removes_the_screening(gbv_answers, caplog):
    store = FailingReferralStore()
    service = ScreeningSubmissionService(store, compensate=True)

    with caplog.at_level(logging.ERROR):
        result = service.submit_screening(ScreeningKind.GBV, gbv_answers, user_id="user-5")

    assert result.success is False
    assert result.error_kind == "persistence"
    assert result.message == "We could not save your screening. Please try again."
    assert result.screening_id is None
    assert store.query(screening_collection(ScreeningKind.GBV)) == []
    assert "Failed to create referral" in caplog.text


def test_orphan_is_logged_when_compensation_is_disabled(gbv_answers, caplog):
    store = FailingReferralStore()
    service = ScreeningSubmissionService(store, compensate=False)

    with caplog.at_level(logging.ERROR):
        result = service.submit_screening(ScreeningKind.GBV, gbv_answers, user_id="user-6")

    assert result.success is False
    assert len(store.query(screening_collection(ScreeningKind.GBV))) == 1
    assert "left without its referral" in caplog.text


def test_failed_compensation_still_reports_failure(gbv_answers, caplog):
    service = ScreeningSubmissionService(UndeletableStore(), compensate=True)

    with caplog.at_level(logging.ERROR):
        result = service.submit_screening(ScreeningKind.GBV, gbv_answers, user_id="user-7")

    assert result.success is False
    assert result.error_kind == "persistence"
    assert "Could not remove orphan screening" in caplog.text


def test_submission_is_audited_without_personal_data(gbv_answers, caplog):
    with caplog.at_level(logging.INFO, logger="audit"):
        result = screening_submission_service.submit_screening(ScreeningKind.GBV, gbv_answers, user_id="user-8")

    audit_lines = [r.getMessage() for r in caplog.records if r.name == "audit"]
    assert any(result.screening_id in line and "submit_screening" in line for line in audit_lines)
    assert not any("Ndapewa" in line or "0811234567" in line for line in audit_lines)
