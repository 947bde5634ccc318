from __future__ import annotations

import hashlib
from typing import List, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.befree.config import settings
from src.befree.domain.models.user import User, UserRole
from src.befree.services.users.service import user_service

# API key is expected in this header when ENABLE_API_AUTH is true.
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

ANONYMOUS_SUBJECT = "anonymous"


def _parse_keys(raw: Optional[str]) -> List[str]:
    """Return a comma-separated key list as a normalized list.

    Whitespace is stripped and empty entries are ignored.
    """

    if not raw:
        return []
    return [key.strip() for key in raw.split(",") if key.strip()]


def subject_for_api_key(api_key: str) -> str:
    # A stable, non-reversible identifier so audit logs never carry the raw key.
    return "api-key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]


async def get_api_key(api_key: Optional[str] = Security(_api_key_header)) -> str:
    """Check the X-API-Key header against API_KEYS and ADMIN_API_KEYS.

    Returns the key, or an empty string when ENABLE_API_AUTH is off. Also
    called directly by the referral stream, which reads the key from the
    WebSocket handshake itself.
    """

    if not settings.enable_api_auth:
        return ""

    allowed_keys = _parse_keys(settings.api_keys) + _parse_keys(settings.admin_api_keys)
    if not allowed_keys:
        # Misconfiguration: auth is enabled but no keys are configured.
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API authentication is enabled but no API keys are configured.",
        )

    if not api_key or api_key not in allowed_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key.",
        )

    return api_key


def resolve_user(api_key: str, user_id: Optional[str] = None, role: Optional[str] = None) -> User:
    """Resolve the caller into an explicit User.

    Authentication proper lives outside this service. With API auth
    disabled, the ``X-User-ID`` and ``X-Role`` headers stand in for it (an
    unauthenticated caller is the anonymous subject). With API auth enabled,
    the role comes from which key list matched and the user id defaults to a
    hash of the key.
    """

    if not settings.enable_api_auth:
        resolved = UserRole.ADMIN if (role or "").lower() == UserRole.ADMIN.value else UserRole.SUBJECT
        return user_service.upsert_user_for_subject(subject=user_id or ANONYMOUS_SUBJECT, role=resolved)

    resolved = UserRole.ADMIN if api_key in _parse_keys(settings.admin_api_keys) else UserRole.SUBJECT
    return user_service.upsert_user_for_subject(subject=user_id or subject_for_api_key(api_key), role=resolved)


async def get_current_user(
    api_key: str = Depends(get_api_key),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_role: Optional[str] = Header(None, alias="X-Role"),
) -> User:
    return resolve_user(api_key, x_user_id, x_role)


def ensure_is_admin(user: User) -> None:
    """Raise HTTP 403 if the user is not staff.

    Used for the referral management endpoints, which must never be reachable
    by the people being referred.
    """

    if user.role == UserRole.ADMIN:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Not authorized to manage referrals",
    )


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    ensure_is_admin(current_user)
    return current_user
