"""
Session token helpers.

Admin sessions carry a short-lived HS256 JWT:
  - sub:   identity uid
  - email: identity email
  - admin: bool custom claim
  - role:  custom role claim ("admin" | "superadmin" | ...), may be absent

Claims are frozen at issue time. A grant made after issue is only visible
once the token is force-refreshed (services/token_service.py).
"""
import logging
from datetime import datetime, timezone, timedelta
from fastapi import Header
from typing import Optional

import jwt

from config import settings
from domain.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise UnauthorizedError("Server auth misconfigured (JWT secret missing).")
    return settings.jwt_secret


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def decode_access_token(token: str) -> dict:
    secret = _require_secret()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
        return payload
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session token expired. Sign in again.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid session token.")


def issue_access_token(*, uid: str, email: str, admin: bool, role: Optional[str]) -> str:
    secret = _require_secret()
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": uid,
        "email": email,
        "admin": bool(admin),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm="HS256")


async def require_bearer_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """Dependency returning the raw bearer token; the admin guard resolves it."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError(
            "Authentication required. Provide Authorization: Bearer <session token>."
        )
    return token
