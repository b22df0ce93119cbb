"""
Profile store — per-uid profile records plus the live feed over them.

Every committed write goes through save(), which publishes a fresh full
snapshot to the live feed. Publishing is a read after the commit; if it
fails the write still stands and listeners catch up on the next change.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db_models import UserProfile
from services.profile_feed import ProfileFeed, ProfileSubscription, Snapshot
from services.store_guard import store_call

logger = logging.getLogger(__name__)

feed = ProfileFeed()


def _ts(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize(profile: UserProfile) -> dict:
    """Wire form, with the defaults older records need."""
    return {
        "uid": profile.uid,
        "email": profile.email or "",
        "displayName": profile.display_name or "Unknown",
        "photoURL": profile.photo_url,
        "phoneNumber": profile.phone_number,
        "role": "user" if profile.role in (None, "", "buyer") else profile.role,
        "status": profile.status or "active",
        "suspendedReason": profile.suspended_reason,
        "suspendedAt": _ts(profile.suspended_at),
        "bannedReason": profile.banned_reason,
        "bannedAt": _ts(profile.banned_at),
        "createdAt": _ts(profile.created_at),
        "lastLoginAt": _ts(profile.last_login_at),
        "updatedAt": _ts(profile.updated_at),
    }


async def get_profile(db: AsyncSession, uid: str) -> Optional[UserProfile]:
    res = await db.execute(select(UserProfile).where(UserProfile.uid == uid))
    return res.scalar_one_or_none()


async def load_all(db: AsyncSession) -> list[UserProfile]:
    res = await db.execute(select(UserProfile).order_by(UserProfile.created_at.desc()))
    return list(res.scalars().all())


async def load_snapshot(db: AsyncSession) -> Snapshot:
    return [serialize(p) for p in await load_all(db)]


async def publish(db: AsyncSession) -> None:
    if not feed.subscriber_count:
        return
    try:
        snapshot = await load_snapshot(db)
    except Exception as e:
        logger.warning(f"Profile snapshot publish failed (listeners will catch up): {e}")
        return
    feed.publish(snapshot)


async def save(db: AsyncSession, profile: UserProfile, *, operation: str) -> UserProfile:
    """Commit a new or modified profile and notify live listeners."""
    async with store_call(db, operation):
        db.add(profile)
        await db.commit()
    await publish(db)
    return profile


def subscribe(session_factory: async_sessionmaker, **kwargs) -> ProfileSubscription:
    """Subscription whose first delivery is read through its own session."""

    async def _initial() -> Snapshot:
        async with session_factory() as db:
            return await load_snapshot(db)

    return feed.subscribe(initial_loader=_initial, **kwargs)
