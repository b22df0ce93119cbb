"""
User endpoints — profile listing, statistics, role and account status.

GET /users/stream pushes the full profile list as server-sent events
whenever a profile is written.

Role and status changes pass the target-rank guard first: an admin may not
touch a superadmin's account or hand out superadmin.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import get_db, get_session_factory
from deps import ensure_can_manage, require_admin
from domain.actor import Actor
from domain.enums import UserRole, UserStatus
from domain.responses import ADMIN_ERROR_RESPONSES, success_response
from services import order_service, profile_store, user_service
from services.profile_feed import ProfileSubscription

logger = logging.getLogger(__name__)
STREAM_HEARTBEAT_SECONDS = 15.0
router = APIRouter(prefix="/users", tags=["users"], responses=ADMIN_ERROR_RESPONSES)


class RoleUpdateRequest(BaseModel):
    role: UserRole

    @field_validator("role", mode="before")
    @classmethod
    def accept_buyer_alias(cls, v):
        return UserRole.parse(v) if isinstance(v, str) else v


class StatusUpdateRequest(BaseModel):
    status: UserStatus
    reason: str | None = Field(None, max_length=500)


@router.get("")
async def list_users(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users = await user_service.list_users(db)
    return success_response(
        data=[profile_store.serialize(u) for u in users],
        meta={"total": len(users)},
    )


@router.get("/stats")
async def user_stats(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users = await user_service.list_users(db)
    return success_response(data=user_service.user_stats(users))


async def snapshot_events(
    request: Request,
    subscription: ProfileSubscription,
    *,
    heartbeat: float = STREAM_HEARTBEAT_SECONDS,
):
    """Frame snapshots as SSE until the client goes away."""
    async with subscription as sub:
        while not await request.is_disconnected():
            try:
                snapshot = await asyncio.wait_for(sub.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            except StopAsyncIteration:
                break
            yield f"data: {json.dumps(snapshot)}\n\n"
    logger.info("📡 Profile stream closed")


@router.get("/stream")
async def stream_users(
    request: Request,
    actor: Actor = Depends(require_admin),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    logger.info(f"📡 Profile stream opened by {actor.email}")
    return StreamingResponse(
        snapshot_events(request, profile_store.subscribe(session_factory)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/{uid}")
async def get_user(
    uid: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    profile = await user_service.get_user(db, uid)
    return success_response(data=profile_store.serialize(profile))


@router.get("/{uid}/orders")
async def get_user_orders(
    uid: str,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    profile = await user_service.get_user(db, uid)
    orders = []
    if profile.email:
        orders = await order_service.list_orders_for_customer(db, customer_email=profile.email)
    return success_response(
        data=[order_service.serialize(o) for o in orders],
        meta={"total": len(orders)},
    )


@router.patch("/{uid}/role")
async def set_user_role(
    uid: str,
    request: RoleUpdateRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    target = await user_service.get_user(db, uid)
    ensure_can_manage(actor, target.role, request.role)

    profile = await user_service.set_role(db, uid, request.role, actor=actor)
    return success_response(data=profile_store.serialize(profile))


@router.patch("/{uid}/status")
async def set_user_status(
    uid: str,
    request: StatusUpdateRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    target = await user_service.get_user(db, uid)
    ensure_can_manage(actor, target.role)

    profile = await user_service.set_status(db, uid, request.status, request.reason, actor=actor)
    return success_response(data=profile_store.serialize(profile))
