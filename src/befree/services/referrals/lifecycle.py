from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from src.befree.domain.errors import PersistenceError, PreconditionError, ReferralCoreError, ValidationError
from src.befree.domain.models.referral import LIFECYCLE_STATUSES, ConsentStatus, Referral, ReferralStatus
from src.befree.domain.models.results import OperationResult, ReferralResult
from src.befree.domain.models.screening import ScreeningRecord
from src.befree.infra.db.repositories import DocumentStore, Subscription, screening_collection
from src.befree.services.audit.service import audit_service
from src.befree.services.referrals.repository import ReferralRepository

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000
RETRY_MESSAGE = "Failed to update referral. Please try again."
ROUTED = {"consent_status": ConsentStatus.AGREED.value}


def normalize_services(services: Iterable[str]) -> List[str]:
    """Strip, drop blanks and de-duplicate service tags, keeping first-seen order."""

    cleaned = (str(service).strip() for service in services)
    return list(dict.fromkeys(service for service in cleaned if service))


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class ReferralLifecycleService:
    """Staff-side operations on referrals after they have been routed.

    Status moves freely among Pending Review, Contacted, Follow-up Scheduled
    and Closed, in any direction, including back from Closed. Nothing here
    touches the consent fields, and a referral still waiting for consent
    cannot be updated or scheduled.
    """

    def __init__(self, store: Optional[DocumentStore] = None) -> None:
        self._referrals = ReferralRepository(store)

    # Reads

    def get_referral(self, referral_id: str) -> Optional[Referral]:
        return self._referrals.get(referral_id)

    def list_routed_referrals(self) -> List[Referral]:
        return self._referrals.list_routed()

    def subscribe_routed_referrals(self, callback) -> Subscription:
        return self._referrals.subscribe_routed(callback)

    def get_screening_for_referral(self, referral_id: str) -> Optional[ScreeningRecord]:
        """Resolve the screening that produced a referral, if both still exist."""

        referral = self._referrals.get(referral_id)
        if referral is None:
            return None
        kind = referral.type.screening_kind
        data = self._referrals.store.get_record(screening_collection(kind), referral.screening_id)
        if data is None:
            return None
        return ScreeningRecord(id=referral.screening_id, **data)

    # Mutations

    def update_status(
        self,
        referral_id: str,
        status: Union[ReferralStatus, str],
        notes: Optional[str] = None,
        services: Optional[Iterable[str]] = None,
        *,
        actor_id: Optional[str] = None,
    ) -> ReferralResult:
        try:
            new_status = self._parse_status(status)
            partial: Dict[str, Any] = {"status": new_status.value}
            if notes is not None:
                if len(notes) > MAX_NOTES_LENGTH:
                    raise ValidationError(
                        f"Notes must be {MAX_NOTES_LENGTH} characters or less.",
                        field="notes",
                    )
                partial["notes"] = notes
            if services is not None:
                partial["services"] = normalize_services(services)

            self._require_routed(referral_id)
            updated = self._referrals.update(referral_id, partial, expected=ROUTED)
        except ReferralCoreError as exc:
            return self._failed("update_status", referral_id, actor_id, exc)

        self._audit("update_status", referral_id, actor_id, status=new_status.value)
        return ReferralResult.ok("Referral updated successfully.", referral=updated)

    def schedule_appointment(
        self,
        referral_id: str,
        appointment_date_time: datetime,
        *,
        actor_id: Optional[str] = None,
    ) -> ReferralResult:
        """Set or replace the appointment. Status is left as it is."""

        try:
            if not isinstance(appointment_date_time, datetime):
                raise ValidationError("Please choose a valid date and time.", field="appointment_date_time")
            moment = _as_utc(appointment_date_time)
            self._require_routed(referral_id)
            updated = self._referrals.update(
                referral_id,
                {"appointment_date_time": moment.isoformat()},
                expected=ROUTED,
            )
        except ReferralCoreError as exc:
            return self._failed("schedule_appointment", referral_id, actor_id, exc)

        self._audit("schedule_appointment", referral_id, actor_id)
        return ReferralResult.ok(
            f"An appointment for {updated.patient_name} has been scheduled.",
            referral=updated,
        )

    def delete_referral(self, referral_id: str, *, actor_id: Optional[str] = None) -> OperationResult:
        """Hard delete. The originating screening is kept."""

        try:
            self._referrals.delete(referral_id)
        except ReferralCoreError as exc:
            return self._failed("delete_referral", referral_id, actor_id, exc)

        self._audit("delete_referral", referral_id, actor_id)
        return OperationResult.ok("Referral deleted successfully.")

    def _parse_status(self, status: Union[ReferralStatus, str]) -> ReferralStatus:
        try:
            parsed = ReferralStatus(status)
        except ValueError:
            raise ValidationError("Please select a valid status.", field="status") from None
        if parsed not in LIFECYCLE_STATUSES:
            raise ValidationError(
                "A referral cannot be moved back to Pending Consent.",
                field="status",
            )
        return parsed

    def _require_routed(self, referral_id: str) -> Referral:
        referral = self._referrals.require(referral_id)
        if not referral.is_routed:
            raise PreconditionError(
                "This referral is still waiting for the patient's consent.",
                field="consent_status",
            )
        return referral

    def _failed(
        self,
        action: str,
        referral_id: str,
        actor_id: Optional[str],
        exc: ReferralCoreError,
    ) -> ReferralResult:
        if isinstance(exc, PersistenceError):
            logger.exception("%s failed for referral %s", action, referral_id)
            exc = PersistenceError(RETRY_MESSAGE)
        self._audit(action, referral_id, actor_id, outcome=exc.kind)
        return ReferralResult.failed(exc)

    def _audit(self, action: str, referral_id: str, actor_id: Optional[str], *, outcome: str = "success", **extra: Any) -> None:
        audit_service.log_event(
            action=action,
            resource_type="referral",
            resource_id=referral_id,
            subject=actor_id,
            outcome=outcome,
            extra=extra or None,
        )


referral_lifecycle_service = ReferralLifecycleService()
