from __future__ import annotations

import logging
from typing import Optional

from src.befree.config import settings
from src.befree.infra.db.inmemory import set_document_store
from src.befree.infra.db.models import Base
from src.befree.infra.db.session import create_sqlalchemy_engine, create_sqlalchemy_session_factory
from src.befree.infra.db.sql_documents import SqlDocumentStore

logger = logging.getLogger(__name__)


def init_sql_document_store(database_url: Optional[str] = None, *, force: bool = False) -> Optional[SqlDocumentStore]:
    """Optionally switch the in-memory document store to the SQL-backed one.

    Called from application startup. If USE_SQL_REPOS is not enabled (and
    ``force`` is not set) or no database URL is configured, this is a no-op
    and the in-memory store remains active.
    """

    if not (settings.use_sql_repos or force):
        return None

    db_url = database_url or settings.database_url
    if not db_url:
        # Misconfigured: requested SQL storage but no database URL. Leave the
        # in-memory store in place.
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; using in-memory store")
        return None

    engine = create_sqlalchemy_engine(db_url)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations, but this is convenient for early MVP setups.
    Base.metadata.create_all(engine)

    store = SqlDocumentStore(create_sqlalchemy_session_factory(engine))
    set_document_store(store)
    logger.info("Using SQL document store")
    return store
