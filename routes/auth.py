"""
Auth endpoints — session refresh and the resolved admin identity.

Flow:
  1) Client signs in with the identity provider and holds a session token
  2) POST /auth/refresh -> reissues the token from the current grants
  3) GET  /auth/me      -> runs the admin check and returns the effective role
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from deps import require_admin
from domain.actor import Actor
from domain.responses import ADMIN_ERROR_RESPONSES, success_response
from middleware.auth import require_bearer_token
from middleware.rate_limit import rate_limit
from services import token_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"], responses=ADMIN_ERROR_RESPONSES)


class RefreshResponse(BaseModel):
    uid: str
    email: str
    admin: bool
    role: str | None = None
    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field("Bearer", alias="tokenType")
    expires_in_seconds: int = Field(..., alias="expiresInSeconds")


@router.post("/refresh")
async def refresh_session(
    token: str = Depends(require_bearer_token),
    db: AsyncSession = Depends(get_db),
    _rate=Depends(rate_limit(max_requests=30, window_seconds=60)),
):
    """Force-refresh the caller's token so recent grants take effect."""
    result = await token_service.force_refresh(db, token)
    body = RefreshResponse(
        uid=result.uid,
        email=result.email,
        admin=result.claims.admin,
        role=result.claims.role,
        accessToken=result.token,
        expiresInSeconds=settings.jwt_access_ttl_minutes * 60,
    )
    return success_response(data=body.model_dump(by_alias=True))


@router.get("/me")
async def who_am_i(actor: Actor = Depends(require_admin)):
    return success_response(
        data={
            "uid": actor.uid,
            "email": actor.email,
            "role": actor.role.value,
            "claimAdmin": actor.has_claim_admin,
            "profileAdmin": actor.has_profile_admin,
        }
    )
