from __future__ import annotations

from typing import Dict

from src.befree.domain.models.user import User, UserRole


class InMemoryUserService:
    """Very small in-memory user store keyed by auth subject.

    Maps the caller identity resolved by the security layer to a concrete
    User so downstream code receives an explicit user id and role instead of
    reading ambient session state.
    """

    def __init__(self) -> None:
        self._by_subject: Dict[str, User] = {}

    def upsert_user_for_subject(self, *, subject: str, role: UserRole) -> User:
        existing = self._by_subject.get(subject)
        if existing is not None and existing.role == role:
            return existing

        user = User(id=subject, role=role)
        self._by_subject[subject] = user
        return user


user_service = InMemoryUserService()
