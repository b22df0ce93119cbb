"""
Authorization resolver — decides whether the session holder may act as admin.

Two sources are consulted and reconciled:
    - token claims (signed, tamper-proof, but frozen until refreshed)
    - the profile record (fast to update, but writable by any store writer)

Claims are authoritative for granting; the profile is authoritative for role
detail and bookkeeping. A holder whose claims grant admin but who has no
profile yet gets one created from the claims.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import IdentityClaims, UserProfile, utcnow
from domain.actor import Actor
from domain.constants import AUDIT_ACTION_GRANT, RESOURCE_USER
from domain.enums import PRIVILEGED_ROLES, UserRole, UserStatus
from domain.errors import NotFoundError, PermissionDeniedError, ValidationError
from services import audit_service, profile_store, token_service
from services.token_service import Claims

logger = logging.getLogger(__name__)


def role_from_claims(claims: Claims) -> UserRole:
    return UserRole.SUPERADMIN if claims.role == UserRole.SUPERADMIN.value else UserRole.ADMIN


def _profile_role(profile: UserProfile | None) -> UserRole | None:
    if profile is None or not profile.role:
        return None
    try:
        return UserRole.parse(profile.role)
    except ValueError:
        logger.warning(f"Profile {profile.uid} has unrecognised role '{profile.role}'")
        return None


def _denied(uid: str, email: str, claims: Claims, profile_role: UserRole | None) -> PermissionDeniedError:
    message = (
        "Insufficient privilege: admin access needs either an admin grant on your "
        "session token or an admin/superadmin role on your profile, and neither was found. "
        "If a grant was made recently, sign out and back in (or refresh your session) to pick "
        "up the new token claims; otherwise ask a superadmin to grant access."
    )
    return PermissionDeniedError(
        message,
        details={
            "uid": uid,
            "email": email or None,
            "claimAdmin": claims.admin,
            "claimRole": claims.role,
            "profileRole": profile_role.value if profile_role else None,
        },
    )


async def resolve_actor(db: AsyncSession, token: str) -> Actor:
    """
    Resolve the effective privilege of the token holder.

    Raises PermissionDeniedError when neither source grants admin; the
    caller is expected to end the session.
    """
    refreshed = await token_service.force_refresh(db, token)
    uid, email, claims = refreshed.uid, refreshed.email, refreshed.claims
    has_claim_admin = claims.grants_admin

    profile = await profile_store.get_profile(db, uid)
    profile_role = _profile_role(profile)
    has_profile_admin = profile_role in PRIVILEGED_ROLES

    if not (has_claim_admin or has_profile_admin):
        logger.warning(
            f"Admin access denied for {uid}: claims admin={claims.admin} role={claims.role}, "
            f"profile role={profile_role.value if profile_role else None}"
        )
        raise _denied(uid, email, claims, profile_role)

    if has_claim_admin and profile is None:
        profile = await reconcile_profile(db, uid=uid, email=email, role=role_from_claims(claims))
        profile_role = _profile_role(profile)

    effective_role = profile_role or role_from_claims(claims)
    return Actor(
        uid=uid,
        email=email,
        role=effective_role,
        has_claim_admin=has_claim_admin,
        has_profile_admin=has_profile_admin,
        claim_role=role_from_claims(claims) if has_claim_admin else None,
    )


async def reconcile_profile(db: AsyncSession, *, uid: str, email: str, role: UserRole) -> UserProfile:
    """Create the missing profile of a claims-granted admin."""
    now = utcnow()
    profile = UserProfile(
        uid=uid,
        email=email,
        display_name=email.split("@")[0] if email else "Admin User",
        role=role.value,
        status=UserStatus.ACTIVE.value,
        created_at=now,
        last_login_at=now,
        updated_at=now,
    )
    await profile_store.save(db, profile, operation="reconcile profile")
    logger.info(f"✅ Created missing profile for claims-granted {role.value} {uid}")
    return profile


async def _uid_for_email(db: AsyncSession, email: str) -> str | None:
    res = await db.execute(select(UserProfile.uid).where(UserProfile.email == email))
    uid = res.scalars().first()
    if uid:
        return uid
    res = await db.execute(select(IdentityClaims.uid).where(IdentityClaims.email == email))
    return res.scalars().first()


async def grant_admin(
    db: AsyncSession,
    *,
    role: UserRole,
    uid: str | None = None,
    email: str | None = None,
    actor: Actor | None = None,
) -> UserProfile:
    """
    Grant admin or superadmin on both sources of record.

    Claims are set first, then the profile is written (created when absent,
    status and createdAt preserved otherwise). Open sessions keep the old
    claims until they refresh.
    """
    if role not in PRIVILEGED_ROLES:
        raise ValidationError(f"Only admin or superadmin can be granted, got '{role.value}'", field="role")
    if not uid:
        if not email:
            raise ValidationError("Either uid or email is required", field="uid")
        uid = await _uid_for_email(db, email)
        if not uid:
            raise NotFoundError("User", email)

    profile = await profile_store.get_profile(db, uid)
    email = email or (profile.email if profile else "")
    claims = await token_service.set_custom_claims(db, uid=uid, email=email, admin=True, role=role.value)

    now = utcnow()
    old_role = profile.role if profile else None
    if profile is None:
        profile = UserProfile(
            uid=uid,
            email=email,
            display_name=email.split("@")[0] if email else "Admin User",
            status=UserStatus.ACTIVE.value,
            created_at=now,
        )
    profile.role = role.value
    profile.email = email or profile.email
    profile.updated_at = now
    await profile_store.save(db, profile, operation="grant admin")
    logger.info(f"✅ Granted {role.value} to {uid} ({email or 'no email'})")

    await audit_service.record(
        db,
        action=AUDIT_ACTION_GRANT,
        actor=actor,
        resource_type=RESOURCE_USER,
        resource_id=uid,
        details={
            "field": "role",
            "oldValue": old_role,
            "newValue": role.value,
            "claims": {"admin": claims.admin, "role": claims.role},
        },
    )
    return profile
