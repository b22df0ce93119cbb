"""
Token service — grants of record and session token issue/refresh.

identity_claims is the authority for privilege grants. Tokens snapshot the
claims at issue time, so a grant lags by up to one token lifetime unless
the holder force-refreshes.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import IdentityClaims
from domain.enums import PRIVILEGED_ROLES
from middleware.auth import decode_access_token, issue_access_token
from services.store_guard import store_call

logger = logging.getLogger(__name__)

_PRIVILEGED_ROLE_VALUES = {r.value for r in PRIVILEGED_ROLES}


@dataclass(frozen=True)
class Claims:
    admin: bool = False
    role: Optional[str] = None

    @property
    def grants_admin(self) -> bool:
        return self.admin is True or self.role in _PRIVILEGED_ROLE_VALUES

    @classmethod
    def from_payload(cls, payload: dict) -> "Claims":
        return cls(admin=payload.get("admin") is True, role=payload.get("role"))


@dataclass(frozen=True)
class TokenResult:
    token: str
    uid: str
    email: str
    claims: Claims


async def get_claims(db: AsyncSession, uid: str) -> Claims:
    res = await db.execute(select(IdentityClaims).where(IdentityClaims.uid == uid))
    row = res.scalar_one_or_none()
    if not row:
        return Claims()
    return Claims(admin=bool(row.admin), role=row.role)


async def set_custom_claims(
    db: AsyncSession,
    *,
    uid: str,
    email: str,
    admin: bool,
    role: Optional[str],
) -> Claims:
    """Replace the claims granted to uid. Existing tokens keep the old claims."""
    res = await db.execute(select(IdentityClaims).where(IdentityClaims.uid == uid))
    row = res.scalar_one_or_none()
    async with store_call(db, "set custom claims"):
        if row is None:
            row = IdentityClaims(uid=uid, email=email)
            db.add(row)
        row.email = email or row.email
        row.admin = admin
        row.role = role
        await db.commit()
    logger.info(f"Custom claims set for {uid}: admin={admin}, role={role}")
    return Claims(admin=admin, role=role)


async def sign_in(db: AsyncSession, *, uid: str, email: str) -> TokenResult:
    """Mint a session token carrying the claims currently granted to uid."""
    claims = await get_claims(db, uid)
    token = issue_access_token(uid=uid, email=email, admin=claims.admin, role=claims.role)
    return TokenResult(token=token, uid=uid, email=email, claims=claims)


def read_token(token: str) -> TokenResult:
    """Verify a token and return the claims frozen into it (possibly stale)."""
    payload = decode_access_token(token)
    return TokenResult(
        token=token,
        uid=payload["sub"],
        email=payload.get("email", ""),
        claims=Claims.from_payload(payload),
    )


async def force_refresh(db: AsyncSession, token: str) -> TokenResult:
    """
    Discard the claims cached in token and reissue it from the current grants.

    The presented token must still verify; an expired session signs in again.
    """
    current = read_token(token)
    refreshed = await sign_in(db, uid=current.uid, email=current.email)
    if refreshed.claims != current.claims:
        logger.info(
            f"Token refresh for {current.uid} picked up new claims: "
            f"{current.claims} -> {refreshed.claims}"
        )
    return refreshed
