from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

SessionFactory = Callable[[], Session]


def create_sqlalchemy_engine(database_url: str) -> Engine:
    return create_engine(database_url, future=True)


def create_sqlalchemy_session_factory(engine: Engine) -> SessionFactory:
    """Create a factory producing SQLAlchemy sessions bound to ``engine``.

    Sessions do not expire objects on commit, so records loaded inside a
    repository method stay readable after the session is closed.
    """

    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)

    def _factory() -> Session:  # pragma: no cover - thin wrapper
        return SessionLocal()

    return _factory
