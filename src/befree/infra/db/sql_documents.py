from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from src.befree.domain.errors import NotFoundError, PersistenceError
from src.befree.infra.db.models import DocumentORM
from src.befree.infra.db.repositories import (
    ConflictError,
    DocumentStore,
    Snapshot,
    StoredRecord,
    matches,
    sort_records,
)
from src.befree.infra.db.session import SessionFactory
from src.befree.infra.db.subscriptions import SubscriptionHub

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class SqlDocumentStore(DocumentStore):
    """DocumentStore backed by a single SQLAlchemy ``documents`` table.

    Every row carries a version number and every UPDATE is conditional on
    the version that was read, so a write racing another commit matches no
    row and is retried from a fresh read. ``expected`` values are re-checked
    on that retry, which is what makes a conditional update atomic on every
    backend, SQLite included (it ignores ``FOR UPDATE``).
    """

    def __init__(self, session_factory: SessionFactory, hub: Optional[SubscriptionHub] = None) -> None:
        super().__init__(hub)
        self._session_factory = session_factory

    def create_record(self, collection: str, data: Mapping[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        orm = DocumentORM(
            id=str(uuid4()),
            collection=collection,
            data=copy.deepcopy(dict(data)),
            created_at=now,
            updated_at=now,
        )
        session = self._session_factory()
        try:
            session.add(orm)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"Could not create record in {collection}") from exc
        finally:
            session.close()
        self.hub.publish(collection)
        return orm.id

    def update_record(
        self,
        collection: str,
        record_id: str,
        partial: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        for _ in range(MAX_WRITE_ATTEMPTS):
            try:
                updated = self._update_once(collection, record_id, partial, expected)
            except StaleDataError:
                # Another writer committed between our read and our write;
                # re-read so ``expected`` is checked against the fresh row.
                logger.info("Concurrent write on %s/%s, retrying", collection, record_id)
                continue
            self.hub.publish(collection)
            return updated
        raise PersistenceError(f"Could not update {collection}/{record_id}: too many concurrent writes")

    def _update_once(
        self,
        collection: str,
        record_id: str,
        partial: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        session = self._session_factory()
        try:
            stmt = (
                select(DocumentORM)
                .where(DocumentORM.id == record_id, DocumentORM.collection == collection)
                .with_for_update()
            )
            orm = session.execute(stmt).scalar_one_or_none()
            if orm is None:
                raise NotFoundError(f"{collection}/{record_id} not found")
            current = dict(orm.data)
            if expected:
                mismatched = {k: current.get(k) for k, v in expected.items() if current.get(k) != v}
                if mismatched:
                    session.rollback()
                    raise ConflictError(record_id, mismatched)
            current.update(copy.deepcopy(dict(partial)))
            orm.data = current
            orm.updated_at = datetime.now(timezone.utc)
            session.commit()
        except StaleDataError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"Could not update {collection}/{record_id}") from exc
        finally:
            session.close()
        return copy.deepcopy(current)

    def get_record(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        session = self._session_factory()
        try:
            orm = session.get(DocumentORM, record_id)
            if orm is None or orm.collection != collection:
                return None
            return copy.deepcopy(orm.data)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read {collection}/{record_id}") from exc
        finally:
            session.close()

    def delete_record(self, collection: str, record_id: str) -> None:
        session = self._session_factory()
        try:
            orm = session.get(DocumentORM, record_id)
            if orm is None or orm.collection != collection:
                raise NotFoundError(f"{collection}/{record_id} not found")
            session.delete(orm)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"Could not delete {collection}/{record_id}") from exc
        finally:
            session.close()
        self.hub.publish(collection)

    def query(
        self,
        collection: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Snapshot:
        session = self._session_factory()
        try:
            rows = session.execute(select(DocumentORM).where(DocumentORM.collection == collection)).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not query {collection}") from exc
        finally:
            session.close()
        # Filtering and ordering on JSON fields happen in Python so the same
        # code runs on SQLite and Postgres; collections here stay small.
        records = [StoredRecord(id=row.id, data=copy.deepcopy(row.data)) for row in rows if matches(row.data, filters)]
        return sort_records(records, order_by, descending)
