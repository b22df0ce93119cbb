"""
Tests for the user role/status engine.

Tests: role changes (incl. buyer alias), suspension and ban reasons, the
empty-reason placeholder, reactivation clearing, stats and audit details.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import timedelta

import pytest
from sqlalchemy import select

from db_models import AuditLog, utcnow
from domain.actor import Actor
from domain.enums import UserRole, UserStatus
from domain.errors import NotFoundError, ValidationError
from services import profile_store, user_service


@pytest.fixture
def actor():
    return Actor(uid="admin-1", email="admin@example.com", role=UserRole.ADMIN, has_profile_admin=True,
                 ip_address="203.0.113.5", user_agent="pytest")


async def _last_audit(db_session, uid):
    res = await db_session.execute(
        select(AuditLog).where(AuditLog.resource_id == uid).order_by(AuditLog.created_at.desc())
    )
    return res.scalars().first()


class TestSetRole:

    @pytest.mark.asyncio
    async def test_changes_role_and_audits(self, db_session, make_profile, actor):
        await make_profile("u1", role="user")

        profile = await user_service.set_role(db_session, "u1", "creator", actor=actor)

        assert profile.role == "creator"
        entry = await _last_audit(db_session, "u1")
        assert entry.details == {"field": "role", "oldValue": "user", "newValue": "creator"}
        assert entry.user_email == "admin@example.com"
        assert entry.ip_address == "203.0.113.5"
        assert entry.user_agent == "pytest"

    @pytest.mark.asyncio
    async def test_buyer_alias_stored_as_user(self, db_session, make_profile):
        await make_profile("u2", role="creator")
        profile = await user_service.set_role(db_session, "u2", "buyer")
        assert profile.role == "user"

    @pytest.mark.asyncio
    async def test_unknown_role(self, db_session, make_profile):
        await make_profile("u3")
        with pytest.raises(ValidationError):
            await user_service.set_role(db_session, "u3", "overlord")

    @pytest.mark.asyncio
    async def test_missing_user(self, db_session):
        with pytest.raises(NotFoundError):
            await user_service.set_role(db_session, "ghost", UserRole.ADMIN)

    @pytest.mark.asyncio
    async def test_engine_allows_admin_to_demote_superadmin(self, db_session, make_profile, actor):
        """Rank checks live in the HTTP layer; the engine itself applies the change."""
        await make_profile("boss", role="superadmin")
        profile = await user_service.set_role(db_session, "boss", UserRole.USER, actor=actor)
        assert profile.role == "user"


class TestSetStatus:

    @pytest.mark.asyncio
    async def test_suspend_with_reason(self, db_session, make_profile):
        await make_profile("u4")

        profile = await user_service.set_status(db_session, "u4", "suspended", "chargebacks")

        assert profile.status == "suspended"
        assert profile.suspended_reason == "chargebacks"
        assert profile.suspended_at is not None
        assert profile.banned_reason is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reason", [None, "", "   "])
    async def test_empty_reason_uses_placeholder(self, db_session, make_profile, reason):
        await make_profile("u5")

        profile = await user_service.set_status(db_session, "u5", UserStatus.BANNED, reason)

        assert profile.banned_reason == "No reason provided"
        entry = await _last_audit(db_session, "u5")
        assert entry.details["reason"] == reason

    @pytest.mark.asyncio
    async def test_reactivation_clears_both_reasons(self, db_session, make_profile):
        now = utcnow()
        await make_profile(
            "u6", status="banned",
            suspended_reason="old", suspended_at=now, banned_reason="fraud", banned_at=now,
        )

        profile = await user_service.set_status(db_session, "u6", "active")

        assert profile.status == "active"
        assert profile.suspended_reason is None
        assert profile.suspended_at is None
        assert profile.banned_reason is None
        assert profile.banned_at is None

    @pytest.mark.asyncio
    async def test_ban_after_suspend_clears_suspension(self, db_session, make_profile):
        await make_profile("u9")

        await user_service.set_status(db_session, "u9", "suspended", "late payments")
        profile = await user_service.set_status(db_session, "u9", "banned", "fraud")

        assert profile.status == "banned"
        assert profile.banned_reason == "fraud"
        assert profile.banned_at is not None
        assert profile.suspended_reason is None
        assert profile.suspended_at is None

    @pytest.mark.asyncio
    async def test_suspend_after_ban_clears_ban(self, db_session, make_profile):
        await make_profile("u10")

        await user_service.set_status(db_session, "u10", "banned", "fraud")
        profile = await user_service.set_status(db_session, "u10", "suspended", "appeal pending")

        assert profile.status == "suspended"
        assert profile.suspended_reason == "appeal pending"
        assert profile.suspended_at is not None
        assert profile.banned_reason is None
        assert profile.banned_at is None

    @pytest.mark.asyncio
    async def test_audit_records_old_and_new(self, db_session, make_profile, actor):
        await make_profile("u7", status="active")
        await user_service.set_status(db_session, "u7", "suspended", "abuse", actor=actor)

        entry = await _last_audit(db_session, "u7")
        assert entry.details == {
            "field": "status", "oldValue": "active", "newValue": "suspended", "reason": "abuse",
        }

    @pytest.mark.asyncio
    async def test_unknown_status(self, db_session, make_profile):
        await make_profile("u8")
        with pytest.raises(ValidationError):
            await user_service.set_status(db_session, "u8", "vacation")


class TestStatsAndListing:

    @pytest.mark.asyncio
    async def test_user_stats(self, db_session, make_profile):
        await make_profile("a", role="admin")
        await make_profile("b", role="superadmin", status="suspended")
        await make_profile("c", status="banned", created_at=utcnow() - timedelta(days=3))
        await make_profile("d", role="creator")

        stats = user_service.user_stats(await user_service.list_users(db_session))

        assert stats == {
            "totalUsers": 4,
            "activeUsers": 2,
            "suspendedUsers": 1,
            "bannedUsers": 1,
            "newToday": 3,
            "admins": 2,
        }

    @pytest.mark.asyncio
    async def test_listing_newest_first(self, db_session, make_profile):
        await make_profile("old", created_at=utcnow() - timedelta(days=2))
        await make_profile("new", created_at=utcnow())

        users = await user_service.list_users(db_session)

        assert [u.uid for u in users] == ["new", "old"]

    @pytest.mark.unit
    def test_serialize_defaults(self):
        from db_models import UserProfile

        data = profile_store.serialize(UserProfile(uid="x", role="buyer"))
        assert data["displayName"] == "Unknown"
        assert data["role"] == "user"
        assert data["status"] == "active"
        assert data["email"] == ""
