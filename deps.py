"""
Shared FastAPI dependencies.

Routers import the DB session, the admin guard, pagination and the
target-rank guard from here.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from domain.actor import Actor
from domain.enums import UserRole
from domain.errors import PermissionDeniedError
from middleware.auth import require_bearer_token
from services import auth_service


class CursorPage(TypedDict):
    limit: int
    start_after: str | None


def cursor_params(
    limit: int | None = Query(None, ge=1, le=200),
    start_after: str | None = Query(None, alias="startAfter"),
) -> CursorPage:
    return {"limit": limit or settings.audit_page_size, "start_after": start_after}


async def require_admin(
    request: Request,
    token: str = Depends(require_bearer_token),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """
    Resolve the caller through the dual-source authorization check.

    The returned actor carries client address / user agent for audit entries.
    """
    actor = await auth_service.resolve_actor(db, token)
    return actor.with_client(
        request.client.host if request.client else None,
        request.headers.get("User-Agent"),
    )


def ensure_can_manage(actor: Actor, target_role: str | None, new_role: UserRole | None = None) -> None:
    """
    Refuse changes to users ranked above the actor, and grants above the
    actor's own role. Peers may manage peers. The actor ranks at the higher
    of its profile role and its claims role.
    """
    try:
        target = UserRole.parse(target_role) if target_role else UserRole.USER
    except ValueError:
        target = UserRole.USER

    acting = actor.acting_role
    if target.rank > acting.rank:
        raise PermissionDeniedError(
            f"A {acting.value} cannot modify a {target.value} account.",
            details={"actorRole": acting.value, "targetRole": target.value},
        )
    if new_role is not None and new_role.rank > acting.rank:
        raise PermissionDeniedError(
            f"A {acting.value} cannot grant the {new_role.value} role.",
            details={"actorRole": acting.value, "requestedRole": new_role.value},
        )
