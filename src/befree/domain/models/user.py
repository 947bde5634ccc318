from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    # Someone completing screenings and consenting to their own referrals.
    SUBJECT = "subject"
    # Staff reviewing and managing routed referrals.
    ADMIN = "admin"


class User(BaseModel):
    # Opaque subject identifier threaded into every core call.
    id: str
    role: UserRole
