from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.befree.config import settings
from src.befree.domain.errors import NotFoundError, PreconditionError, ReferralCoreError, ValidationError
from src.befree.domain.models.referral import ConsentStatus, ContactMethod, Referral, ReferralStatus
from src.befree.domain.models.results import OperationResult, ReferralResult
from src.befree.infra.db.repositories import ConflictError, DocumentStore
from src.befree.services.audit.service import audit_service
from src.befree.services.reference.service import ReferenceDataService, reference_data_service
from src.befree.services.referrals.repository import ReferralRepository

logger = logging.getLogger(__name__)

ALREADY_RECORDED_MESSAGE = "Consent has already been recorded for this referral."
EMAIL_NOT_ON_FILE_MESSAGE = (
    "We don't have an email address for you, so we can't contact you by email. "
    "Please choose another contact method, such as WhatsApp."
)


class ConsentRequest(BaseModel):
    """Routing chosen by the subject when agreeing to a referral.

    Every field is optional here so that missing ones can be reported
    together, field by field, instead of failing on the first.
    """

    region: Optional[str] = None
    constituency: Optional[str] = None
    facility: Optional[str] = None
    contact_method: Optional[str] = None


REQUIRED_ROUTING_FIELDS = {
    "facility": "Please select a facility.",
    "region": "Please select a region.",
    "constituency": "Please select a constituency.",
    "contact_method": "Please select your preferred contact method.",
}


def _coerce_request(payload: Mapping[str, Any]) -> ConsentRequest:
    try:
        return ConsentRequest.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(
            "Validation failed.",
            field_errors={str(e["loc"][0]): e["msg"] for e in exc.errors() if e.get("loc")},
        ) from exc


def _check_structure(request: ConsentRequest) -> ContactMethod:
    errors: Dict[str, str] = {}
    for field, message in REQUIRED_ROUTING_FIELDS.items():
        value = getattr(request, field)
        if value is None or not str(value).strip():
            errors[field] = message
    if "contact_method" not in errors:
        try:
            contact_method = ContactMethod(request.contact_method)
        except ValueError:
            errors["contact_method"] = "Contact method must be 'whatsapp' or 'email'."
    if errors:
        raise ValidationError("Validation failed.", field_errors=errors)
    return contact_method


class ReferralConsentService:
    """Consent and routing state machine for a referral.

    Pending Consent --record_consent--> Pending Review (consent agreed, routed).
    A decline is not stored: the referral stays in Pending Consent.

    Recording consent is a compare-and-set on ``consent_status == pending``,
    so a repeated or concurrent second call is rejected and never leaves
    status and consent out of step.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        *,
        reference_data: Optional[ReferenceDataService] = None,
        validate_routing: Optional[bool] = None,
    ) -> None:
        self._referrals = ReferralRepository(store)
        self._reference_data = reference_data or reference_data_service
        self._validate_routing = validate_routing

    @property
    def validate_routing(self) -> bool:
        if self._validate_routing is None:
            return settings.validate_routing
        return self._validate_routing

    def get_pending_referral(self, referral_id: str, *, user_id: Optional[str] = None) -> ReferralResult:
        """Return the referral only while it is still waiting for consent."""

        try:
            referral = self._load(referral_id, user_id)
            if referral.consent_status != ConsentStatus.PENDING:
                raise NotFoundError("No pending referral found.", field="referral_id")
        except ReferralCoreError as exc:
            return ReferralResult.failed(exc)
        return ReferralResult.ok("Referral is awaiting consent.", referral=referral)

    def record_consent(
        self,
        referral_id: str,
        request: Union[ConsentRequest, Mapping[str, Any]],
        *,
        user_id: Optional[str] = None,
    ) -> ReferralResult:
        """Agree to a referral and route it.

        Checks, first failure wins: all routing fields present; referral
        exists and is still pending; email contact needs an email on file;
        the region/constituency/facility chain is valid (when enabled).
        """

        try:
            if not isinstance(request, ConsentRequest):
                request = _coerce_request(request)
            contact_method = _check_structure(request)
            referral = self._load(referral_id, user_id)
            if referral.consent_status != ConsentStatus.PENDING:
                raise PreconditionError(ALREADY_RECORDED_MESSAGE, field="consent_status")
            if contact_method == ContactMethod.EMAIL and not (referral.email or "").strip():
                raise PreconditionError(EMAIL_NOT_ON_FILE_MESSAGE, field="contact_method")
            if self.validate_routing:
                self._reference_data.validate_route(request.region, request.constituency, request.facility)

            try:
                updated = self._referrals.update(
                    referral_id,
                    {
                        "consent_status": ConsentStatus.AGREED.value,
                        "status": ReferralStatus.PENDING_REVIEW.value,
                        "region": request.region,
                        "constituency": request.constituency,
                        "facility": request.facility,
                        "contact_method": contact_method.value,
                    },
                    expected={"consent_status": ConsentStatus.PENDING.value},
                )
            except ConflictError:
                raise PreconditionError(ALREADY_RECORDED_MESSAGE, field="consent_status") from None
        except ReferralCoreError as exc:
            if exc.kind == "persistence":
                logger.exception("Failed to record consent for referral %s", referral_id)
            self._audit("record_consent", referral_id, user_id, outcome=exc.kind, fields=sorted(exc.field_errors))
            return ReferralResult.failed(exc)

        self._audit(
            "record_consent",
            referral_id,
            user_id,
            contact_method=contact_method.value,
            type=updated.type.value,
        )
        return ReferralResult.ok(
            f'Referral consent for facility "{updated.facility}" recorded successfully!',
            referral=updated,
        )

    def decline_consent(self, referral_id: str, *, user_id: Optional[str] = None) -> OperationResult:
        """Note that the subject chose not to be referred.

        Nothing is written; the referral stays in Pending Consent and can
        still be agreed to later.
        """

        try:
            referral = self._load(referral_id, user_id)
            if referral.consent_status != ConsentStatus.PENDING:
                raise PreconditionError(ALREADY_RECORDED_MESSAGE, field="consent_status")
        except ReferralCoreError as exc:
            return OperationResult.failed(exc)

        self._audit("decline_consent", referral_id, user_id)
        return OperationResult.ok(
            "Your decision has been noted. You can still agree to this referral later from your referrals page."
        )

    def _load(self, referral_id: str, user_id: Optional[str]) -> Referral:
        referral = self._referrals.require(referral_id)
        # A subject only ever sees their own referrals; treat others as absent.
        if user_id is not None and referral.user_id != user_id:
            raise NotFoundError("Referral not found.", field="referral_id")
        return referral

    def _audit(self, action: str, referral_id: str, user_id: Optional[str], *, outcome: str = "success", **extra: Any) -> None:
        audit_service.log_event(
            action=action,
            resource_type="referral",
            resource_id=referral_id,
            subject=user_id,
            outcome=outcome,
            extra=extra or None,
        )


referral_consent_service = ReferralConsentService()
