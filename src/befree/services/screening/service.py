from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from src.befree.config import settings
from src.befree.domain.errors import PersistenceError, ReferralCoreError, ValidationError
from src.befree.domain.models.results import SubmissionResult
from src.befree.domain.models.screening import ANSWER_MODELS, ScreeningAnswers, ScreeningKind, ScreeningRecord
from src.befree.infra.db.inmemory import get_document_store
from src.befree.infra.db.repositories import DocumentStore, screening_collection
from src.befree.services.audit.service import audit_service
from src.befree.services.referrals.generator import ReferralGenerator, referral_generator
from src.befree.services.referrals.repository import ReferralRepository
from src.befree.services.screening.evaluator import ScreeningEvaluator, screening_evaluator

logger = logging.getLogger(__name__)

SUBMIT_FAILED_MESSAGE = "We could not save your screening. Please try again."


def field_errors_from_pydantic(exc: PydanticValidationError) -> Dict[str, str]:
    """Flatten pydantic errors into ``{field: message}``, first error per field wins."""

    errors: Dict[str, str] = {}
    for error in exc.errors():
        loc = error.get("loc") or ("__root__",)
        field = str(loc[0])
        errors.setdefault(field, error.get("msg", "Invalid value."))
    return errors


def parse_answers(kind: Union[ScreeningKind, str], payload: Mapping[str, Any]) -> ScreeningAnswers:
    """Validate a raw questionnaire payload into the answer model for ``kind``."""

    try:
        kind = ScreeningKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown screening kind: {kind}", field="kind") from None
    try:
        return ANSWER_MODELS[kind].model_validate(dict(payload))  # type: ignore[return-value]
    except PydanticValidationError as exc:
        raise ValidationError(
            "Validation failed. Please check the form for errors.",
            field_errors=field_errors_from_pydantic(exc),
        ) from exc


class ScreeningSubmissionService:
    """Submit a screening: validate, evaluate, store, and open a referral if warranted.

    The screening and its referral are two separate writes. If the referral
    write fails after the screening was stored, the screening is deleted
    again (when compensation is enabled) and the caller gets a failure; the
    orphan is logged if the compensating delete fails too.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        *,
        evaluator: Optional[ScreeningEvaluator] = None,
        generator: Optional[ReferralGenerator] = None,
        compensate: Optional[bool] = None,
    ) -> None:
        self._explicit_store = store
        self._evaluator = evaluator or screening_evaluator
        self._generator = generator or referral_generator
        self._referrals = ReferralRepository(store)
        self._compensate = compensate

    @property
    def store(self) -> DocumentStore:
        return self._explicit_store or get_document_store()

    @property
    def compensate(self) -> bool:
        if self._compensate is None:
            return settings.compensate_orphan_screenings
        return self._compensate

    def submit_screening(
        self,
        kind: Union[ScreeningKind, str],
        answers: Union[ScreeningAnswers, Mapping[str, Any]],
        *,
        user_id: str,
    ) -> SubmissionResult:
        try:
            if isinstance(answers, Mapping):
                answers = parse_answers(kind, answers)
            elif answers.kind.value != str(getattr(kind, "value", kind)):
                raise ValidationError(
                    f"Answers for {answers.kind.value} submitted as {kind}.",
                    field="kind",
                )
        except ReferralCoreError as exc:
            logger.info("Screening submission rejected: %s", exc.field_errors or exc.message)
            return SubmissionResult.failed(exc)

        recommendation = self._evaluator.evaluate(answers)
        now = datetime.now(timezone.utc)
        collection = screening_collection(answers.kind)

        try:
            screening_id = self.store.create_record(
                collection,
                {
                    "kind": answers.kind.value,
                    "user_id": user_id,
                    "submitted_at": now.isoformat(),
                    "answers": answers.model_dump(mode="json"),
                },
            )
        except PersistenceError as exc:
            logger.exception("Failed to store %s screening", answers.kind.value)
            self._audit(answers.kind, None, user_id, outcome=exc.kind)
            return SubmissionResult.failed(PersistenceError(SUBMIT_FAILED_MESSAGE))

        draft = self._generator.build(
            answers,
            recommendation,
            screening_id=screening_id,
            user_id=user_id,
            now=now,
        )
        if draft is None:
            self._audit(answers.kind, screening_id, user_id, classification=recommendation.classification.value)
            return SubmissionResult.ok(
                "Screening submitted successfully.",
                screening_id=screening_id,
                recommendation=recommendation,
                referral_message=recommendation.message,
            )

        try:
            referral = self._referrals.create(draft)
        except PersistenceError as exc:
            logger.exception("Failed to create referral for %s screening %s", answers.kind.value, screening_id)
            self._compensate_screening(collection, screening_id)
            self._audit(answers.kind, screening_id, user_id, outcome=exc.kind)
            return SubmissionResult.failed(PersistenceError(SUBMIT_FAILED_MESSAGE))

        self._audit(
            answers.kind,
            screening_id,
            user_id,
            classification=recommendation.classification.value,
            referral_id=referral.id,
            urgent_notes=len(recommendation.urgency_notes),
        )
        return SubmissionResult.ok(
            "Screening submitted successfully.",
            screening_id=screening_id,
            recommendation=recommendation,
            referral_message=recommendation.message,
            referral_id=referral.id,
            referral=referral,
        )

    def get_screening(self, kind: ScreeningKind, screening_id: str) -> Optional[ScreeningRecord]:
        data = self.store.get_record(screening_collection(kind), screening_id)
        if data is None:
            return None
        return ScreeningRecord(id=screening_id, **data)

    def _compensate_screening(self, collection: str, screening_id: str) -> None:
        if not self.compensate:
            logger.error("Screening %s/%s left without its referral", collection, screening_id)
            return
        try:
            self.store.delete_record(collection, screening_id)
        except ReferralCoreError:
            logger.exception("Could not remove orphan screening %s/%s", collection, screening_id)

    def _audit(
        self,
        kind: ScreeningKind,
        screening_id: Optional[str],
        user_id: str,
        *,
        outcome: str = "success",
        **extra: Any,
    ) -> None:
        audit_service.log_event(
            action="submit_screening",
            resource_type="screening",
            resource_id=screening_id,
            subject=user_id,
            outcome=outcome,
            extra={"kind": kind.value, **extra},
        )


screening_submission_service = ScreeningSubmissionService()
