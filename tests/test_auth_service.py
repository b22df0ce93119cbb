"""
Unit tests for session tokens and the dual-source authorization resolver.

Tests: token issue/decode, force refresh picking up new grants, the
claims-or-profile admin check, profile reconciliation, denial details and
the grant_admin operation.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from sqlalchemy import select

from db_models import AuditLog, UserProfile
from domain.actor import Actor
from domain.enums import UserRole
from domain.errors import NotFoundError, PermissionDeniedError, UnauthorizedError, ValidationError
from middleware.auth import decode_access_token, issue_access_token
from services import auth_service, token_service
from services.token_service import Claims


# ════════════════════════════════════════════════════════════════════
# Tokens
# ════════════════════════════════════════════════════════════════════


class TestTokens:

    @pytest.mark.unit
    def test_issue_and_decode(self):
        token = issue_access_token(uid="u1", email="u1@example.com", admin=True, role="superadmin")
        payload = decode_access_token(token)
        assert payload["sub"] == "u1"
        assert payload["admin"] is True
        assert payload["role"] == "superadmin"

    @pytest.mark.unit
    def test_role_omitted_when_absent(self):
        payload = decode_access_token(issue_access_token(uid="u1", email="", admin=False, role=None))
        assert "role" not in payload

    @pytest.mark.unit
    def test_tampered_token_rejected(self):
        token = issue_access_token(uid="u1", email="", admin=False, role=None)
        with pytest.raises(UnauthorizedError):
            decode_access_token(token[:-4] + "abcd")

    @pytest.mark.unit
    @pytest.mark.parametrize("payload,expected", [
        ({"admin": True}, True),
        ({"admin": False, "role": "admin"}, True),
        ({"role": "superadmin"}, True),
        ({"admin": "true"}, False),
        ({"role": "creator"}, False),
        ({}, False),
    ])
    def test_claims_grant_admin(self, payload, expected):
        assert Claims.from_payload(payload).grants_admin is expected

    @pytest.mark.asyncio
    async def test_force_refresh_picks_up_new_grant(self, db_session, make_token):
        stale = make_token("u2")
        assert token_service.read_token(stale).claims.grants_admin is False

        await token_service.set_custom_claims(db_session, uid="u2", email="u2@example.com", admin=True, role="admin")
        refreshed = await token_service.force_refresh(db_session, stale)

        assert refreshed.claims == Claims(admin=True, role="admin")
        assert decode_access_token(refreshed.token)["admin"] is True

    @pytest.mark.asyncio
    async def test_force_refresh_drops_revoked_grant(self, db_session, make_claims, make_token):
        await make_claims("u3", admin=True, role="admin")
        token = make_token("u3", admin=True, role="admin")

        await token_service.set_custom_claims(db_session, uid="u3", email="u3@example.com", admin=False, role=None)
        refreshed = await token_service.force_refresh(db_session, token)

        assert refreshed.claims.grants_admin is False


# ════════════════════════════════════════════════════════════════════
# Authorization resolver
# ════════════════════════════════════════════════════════════════════


class TestResolveActor:

    @pytest.mark.asyncio
    async def test_claims_and_profile_agree(self, db_session, make_profile, make_claims, make_token):
        await make_profile("a1", role="admin")
        await make_claims("a1", admin=True, role="admin")

        actor = await auth_service.resolve_actor(db_session, make_token("a1", admin=True, role="admin"))

        assert actor.role is UserRole.ADMIN
        assert actor.has_claim_admin and actor.has_profile_admin

    @pytest.mark.asyncio
    async def test_stale_token_sees_recent_grant(self, db_session, make_profile, make_claims, make_token):
        """A token minted before the grant still resolves once refreshed."""
        token = make_token("a2")
        await make_profile("a2", role="user")
        await make_claims("a2", admin=True, role="admin")

        actor = await auth_service.resolve_actor(db_session, token)

        assert actor.has_claim_admin is True
        assert actor.has_profile_admin is False
        # profile role wins when present
        assert actor.role is UserRole.USER
        assert actor.claim_role is UserRole.ADMIN
        assert actor.acting_role is UserRole.ADMIN

    @pytest.mark.asyncio
    async def test_profile_only_superadmin(self, db_session, make_profile, make_token):
        await make_profile("s1", role="superadmin")

        actor = await auth_service.resolve_actor(db_session, make_token("s1"))

        assert actor.role is UserRole.SUPERADMIN
        assert actor.has_claim_admin is False
        assert actor.has_profile_admin is True

    @pytest.mark.asyncio
    async def test_missing_profile_is_reconciled(self, db_session, make_claims, make_token):
        await make_claims("s2", admin=True, role="superadmin", email="boss@example.com")

        actor = await auth_service.resolve_actor(
            db_session, make_token("s2", admin=True, role="superadmin", email="boss@example.com")
        )

        assert actor.role is UserRole.SUPERADMIN
        res = await db_session.execute(select(UserProfile).where(UserProfile.uid == "s2"))
        profile = res.scalar_one()
        assert profile.role == "superadmin"
        assert profile.status == "active"
        assert profile.display_name == "boss"

    @pytest.mark.asyncio
    async def test_admin_flag_without_role_reconciles_as_admin(self, db_session, make_claims, make_token):
        await make_claims("a3", admin=True, role=None)
        actor = await auth_service.resolve_actor(db_session, make_token("a3"))
        assert actor.role is UserRole.ADMIN

    @pytest.mark.asyncio
    async def test_denied_with_details(self, db_session, make_profile, make_token):
        await make_profile("u9", role="creator")

        with pytest.raises(PermissionDeniedError) as exc:
            await auth_service.resolve_actor(db_session, make_token("u9", admin=True, role="admin"))

        # the stale token claimed admin, but the grants of record do not
        assert exc.value.details["claimAdmin"] is False
        assert exc.value.details["profileRole"] == "creator"
        assert exc.value.details["uid"] == "u9"
        assert "refresh" in exc.value.message

    @pytest.mark.asyncio
    async def test_invalid_token(self, db_session):
        with pytest.raises(UnauthorizedError):
            await auth_service.resolve_actor(db_session, "garbage")


# ════════════════════════════════════════════════════════════════════
# Grants
# ════════════════════════════════════════════════════════════════════


class TestGrantAdmin:

    @pytest.mark.asyncio
    async def test_grant_creates_claims_and_profile(self, db_session, make_claims):
        await make_claims("n1", admin=False, role=None, email="new@example.com")

        profile = await auth_service.grant_admin(
            db_session, role=UserRole.ADMIN, email="new@example.com", actor=Actor.system()
        )

        assert profile.uid == "n1"
        assert profile.role == "admin"
        assert (await token_service.get_claims(db_session, "n1")) == Claims(admin=True, role="admin")
        res = await db_session.execute(select(AuditLog).where(AuditLog.action == "grant"))
        entry = res.scalar_one()
        assert entry.user_id == "system"
        assert entry.details["newValue"] == "admin"

    @pytest.mark.asyncio
    async def test_grant_preserves_status_and_created_at(self, db_session, make_profile):
        existing = await make_profile("n2", role="user", status="suspended", suspended_reason="spam")
        created_at = existing.created_at

        profile = await auth_service.grant_admin(db_session, role=UserRole.SUPERADMIN, uid="n2")

        assert profile.role == "superadmin"
        assert profile.status == "suspended"
        assert profile.created_at == created_at

    @pytest.mark.asyncio
    async def test_only_privileged_roles(self, db_session):
        with pytest.raises(ValidationError):
            await auth_service.grant_admin(db_session, role=UserRole.CREATOR, uid="x")

    @pytest.mark.asyncio
    async def test_unknown_email(self, db_session):
        with pytest.raises(NotFoundError):
            await auth_service.grant_admin(db_session, role=UserRole.ADMIN, email="ghost@example.com")
