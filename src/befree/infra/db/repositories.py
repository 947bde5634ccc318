from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.befree.domain.errors import PreconditionError
from src.befree.domain.models.screening import ScreeningKind
from src.befree.infra.db.subscriptions import SubscriptionHub

REFERRALS_COLLECTION = "referrals"


def screening_collection(kind: ScreeningKind) -> str:
    return f"screenings_{kind.value}"


@dataclass
class StoredRecord:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


Snapshot = List[StoredRecord]
SnapshotCallback = Callable[[Snapshot], None]


class ConflictError(PreconditionError):
    """Raised by a conditional update whose ``expected`` values no longer hold."""

    def __init__(self, record_id: str, mismatched: Dict[str, Any]) -> None:
        first = next(iter(mismatched), None)
        super().__init__(f"Record {record_id} changed concurrently", field=first)
        self.record_id = record_id
        self.mismatched = mismatched


def matches(data: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    if not filters:
        return True
    return all(data.get(key) == value for key, value in filters.items())


def sort_records(records: List[StoredRecord], order_by: Optional[str], descending: bool) -> List[StoredRecord]:
    if order_by is None:
        return records
    # Records missing the sort key go last regardless of direction.
    present = [r for r in records if r.data.get(order_by) is not None]
    missing = [r for r in records if r.data.get(order_by) is None]
    present.sort(key=lambda r: r.data[order_by], reverse=descending)
    return present + missing


class Subscription:
    """Handle returned by :meth:`DocumentStore.subscribe`."""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._unsubscribe()
            self.active = False


class DocumentStore(ABC):
    """Abstract document store used by the screening and referral core.

    Records are plain JSON-compatible dicts grouped in named collections.
    Implementations raise ``NotFoundError`` for unknown ids on update/delete
    and ``PersistenceError`` when the backend itself fails. Every successful
    write is published on the store's :class:`SubscriptionHub` so live
    subscribers can re-read their view.
    """

    def __init__(self, hub: Optional[SubscriptionHub] = None) -> None:
        self.hub = hub or SubscriptionHub()

    @abstractmethod
    def create_record(self, collection: str, data: Mapping[str, Any]) -> str:
        raise NotImplementedError

    @abstractmethod
    def update_record(
        self,
        collection: str,
        record_id: str,
        partial: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Merge ``partial`` into a record and return the updated data.

        When ``expected`` is given the update is applied only if every listed
        field currently holds the listed value; otherwise ``ConflictError`` is
        raised and nothing is written. Check and write are atomic.
        """

        raise NotImplementedError

    @abstractmethod
    def get_record(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def delete_record(self, collection: str, record_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        collection: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Snapshot:
        raise NotImplementedError

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """Deliver the current snapshot now and a fresh one after every write.

        The callback receives the full result of the query, not a diff.
        """

        def _on_change() -> None:
            callback(self.query(collection, filters=filters, order_by=order_by, descending=descending))

        token = self.hub.add(collection, _on_change)
        _on_change()
        return Subscription(lambda: self.hub.remove(token))
