"""
User service — role and account status changes on profile records.

Both operations read the old value, write the new one, then emit a
best-effort audit entry. The read is not fenced against concurrent
writers, so oldValue in the audit entry may be stale.

This layer does not compare the actor's rank with the target's; the HTTP
layer decides who may manage whom (deps.ensure_can_manage).
"""
import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import UserProfile, utcnow
from domain.actor import Actor
from domain.constants import AUDIT_ACTION_UPDATE, RESOURCE_USER
from domain.enums import PRIVILEGED_ROLES, UserRole, UserStatus
from domain.errors import NotFoundError, ValidationError
from services import audit_service, profile_store

logger = logging.getLogger(__name__)

_PRIVILEGED_ROLE_VALUES = {r.value for r in PRIVILEGED_ROLES}


async def get_user(db: AsyncSession, uid: str) -> UserProfile:
    profile = await profile_store.get_profile(db, uid)
    if not profile:
        raise NotFoundError("User", uid)
    return profile


async def list_users(db: AsyncSession) -> list[UserProfile]:
    return await profile_store.load_all(db)


def user_stats(users: list[UserProfile]) -> dict:
    day_ago = utcnow() - timedelta(days=1)
    statuses = [u.status or UserStatus.ACTIVE.value for u in users]
    return {
        "totalUsers": len(users),
        "activeUsers": statuses.count(UserStatus.ACTIVE.value),
        "suspendedUsers": statuses.count(UserStatus.SUSPENDED.value),
        "bannedUsers": statuses.count(UserStatus.BANNED.value),
        "newToday": sum(1 for u in users if u.created_at and u.created_at >= day_ago),
        "admins": sum(1 for u in users if u.role in _PRIVILEGED_ROLE_VALUES),
    }


def _parse_role(value) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole.parse(value)
    except ValueError:
        raise ValidationError(f"Unknown role '{value}'", field="role")


def _parse_status(value) -> UserStatus:
    if isinstance(value, UserStatus):
        return value
    try:
        return UserStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown status '{value}'", field="status")


async def set_role(
    db: AsyncSession,
    uid: str,
    new_role,
    *,
    actor: Actor | None = None,
) -> UserProfile:
    role = _parse_role(new_role)
    profile = await get_user(db, uid)
    old_role = profile.role

    profile.role = role.value
    profile.updated_at = utcnow()
    await profile_store.save(db, profile, operation="update user role")
    logger.info(f"User {uid} role: {old_role} -> {role.value}")

    await audit_service.record(
        db,
        action=AUDIT_ACTION_UPDATE,
        actor=actor,
        resource_type=RESOURCE_USER,
        resource_id=uid,
        details={"field": "role", "oldValue": old_role, "newValue": role.value},
    )
    return profile


async def set_status(
    db: AsyncSession,
    uid: str,
    new_status,
    reason: str | None = None,
    *,
    actor: Actor | None = None,
) -> UserProfile:
    """
    Suspend, ban or reactivate.

    Suspension and ban store a reason (the configured placeholder when none
    is given) under their own keys and clear the other pair. Reactivation
    clears both.
    """
    status = _parse_status(new_status)
    profile = await get_user(db, uid)
    old_status = profile.status
    now = utcnow()
    stored_reason = (reason or "").strip() or settings.empty_reason_placeholder

    profile.status = status.value
    profile.updated_at = now
    if status is UserStatus.SUSPENDED:
        profile.suspended_reason = stored_reason
        profile.suspended_at = now
        profile.banned_reason = None
        profile.banned_at = None
    elif status is UserStatus.BANNED:
        profile.banned_reason = stored_reason
        profile.banned_at = now
        profile.suspended_reason = None
        profile.suspended_at = None
    else:
        profile.suspended_reason = None
        profile.suspended_at = None
        profile.banned_reason = None
        profile.banned_at = None

    await profile_store.save(db, profile, operation="update user status")
    logger.info(f"User {uid} status: {old_status} -> {status.value}")

    await audit_service.record(
        db,
        action=AUDIT_ACTION_UPDATE,
        actor=actor,
        resource_type=RESOURCE_USER,
        resource_id=uid,
        details={
            "field": "status",
            "oldValue": old_status,
            "newValue": status.value,
            "reason": reason,
        },
    )
    return profile
