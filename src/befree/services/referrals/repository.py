from __future__ import annotations

from typing import Any, Callable, List, Mapping, Optional

from src.befree.domain.errors import NotFoundError
from src.befree.domain.models.referral import ConsentStatus, Referral, ReferralDraft
from src.befree.infra.db.inmemory import get_document_store
from src.befree.infra.db.repositories import REFERRALS_COLLECTION, DocumentStore, Snapshot, Subscription


class ReferralRepository:
    """Typed access to the ``referrals`` collection of a DocumentStore.

    When no store is given, the process-wide store is resolved on each call.
    """

    def __init__(self, store: Optional[DocumentStore] = None) -> None:
        self._explicit_store = store

    @property
    def store(self) -> DocumentStore:
        return self._explicit_store or get_document_store()

    def get(self, referral_id: str) -> Optional[Referral]:
        data = self.store.get_record(REFERRALS_COLLECTION, referral_id)
        if data is None:
            return None
        return Referral.from_record(referral_id, data)

    def require(self, referral_id: str) -> Referral:
        referral = self.get(referral_id)
        if referral is None:
            raise NotFoundError("Referral not found.", field="referral_id")
        return referral

    def create(self, draft: ReferralDraft) -> Referral:
        record = draft.to_record()
        referral_id = self.store.create_record(REFERRALS_COLLECTION, record)
        return Referral.from_record(referral_id, record)

    def update(
        self,
        referral_id: str,
        partial: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Referral:
        data = self.store.update_record(REFERRALS_COLLECTION, referral_id, partial, expected=expected)
        return Referral.from_record(referral_id, data)

    def delete(self, referral_id: str) -> None:
        self.store.delete_record(REFERRALS_COLLECTION, referral_id)

    def list_routed(self) -> List[Referral]:
        """Referrals visible to staff: consent agreed, newest first."""

        return self._to_referrals(
            self.store.query(
                REFERRALS_COLLECTION,
                filters={"consent_status": ConsentStatus.AGREED.value},
                order_by="referral_date",
                descending=True,
            )
        )

    def subscribe_routed(self, callback: Callable[[List[Referral]], None]) -> Subscription:
        return self.store.subscribe(
            REFERRALS_COLLECTION,
            lambda snapshot: callback(self._to_referrals(snapshot)),
            filters={"consent_status": ConsentStatus.AGREED.value},
            order_by="referral_date",
            descending=True,
        )

    @staticmethod
    def _to_referrals(snapshot: Snapshot) -> List[Referral]:
        return [Referral.from_record(record.id, record.data) for record in snapshot]
