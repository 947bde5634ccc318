from __future__ import annotations

import copy
from threading import RLock
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from src.befree.domain.errors import NotFoundError
from src.befree.infra.db.repositories import (
    ConflictError,
    DocumentStore,
    Snapshot,
    StoredRecord,
    matches,
    sort_records,
)
from src.befree.infra.db.subscriptions import SubscriptionHub


class InMemoryDocumentStore(DocumentStore):
    """Process-local document store.

    This is the default for local development and tests. Every operation
    holds one lock, which makes conditional updates atomic; records are deep
    copied on the way in and out so callers never share state with the store.
    """

    def __init__(self, hub: Optional[SubscriptionHub] = None) -> None:
        super().__init__(hub)
        self._lock = RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def create_record(self, collection: str, data: Mapping[str, Any]) -> str:
        record_id = str(uuid4())
        with self._lock:
            self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(dict(data))
        self.hub.publish(collection)
        return record_id

    def update_record(
        self,
        collection: str,
        record_id: str,
        partial: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            current = self._collections.get(collection, {}).get(record_id)
            if current is None:
                raise NotFoundError(f"{collection}/{record_id} not found")
            if expected:
                mismatched = {k: current.get(k) for k, v in expected.items() if current.get(k) != v}
                if mismatched:
                    raise ConflictError(record_id, mismatched)
            current.update(copy.deepcopy(dict(partial)))
            updated = copy.deepcopy(current)
        self.hub.publish(collection)
        return updated

    def get_record(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            data = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(data) if data is not None else None

    def delete_record(self, collection: str, record_id: str) -> None:
        with self._lock:
            records = self._collections.get(collection, {})
            if record_id not in records:
                raise NotFoundError(f"{collection}/{record_id} not found")
            del records[record_id]
        self.hub.publish(collection)

    def query(
        self,
        collection: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Snapshot:
        with self._lock:
            records = [
                StoredRecord(id=record_id, data=copy.deepcopy(data))
                for record_id, data in self._collections.get(collection, {}).items()
                if matches(data, filters)
            ]
        return sort_records(records, order_by, descending)


_document_store: DocumentStore = InMemoryDocumentStore()


def get_document_store() -> DocumentStore:
    """Return the process-wide document store.

    Resolved on every call so that :func:`set_document_store` (used by the
    SQL bootstrap) takes effect for already-imported services.
    """

    return _document_store


def set_document_store(store: DocumentStore) -> None:
    global _document_store
    _document_store = store
