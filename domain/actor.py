"""
The authenticated caller of a privileged operation.
"""
from dataclasses import dataclass, replace

from domain.constants import SYSTEM_ACTOR, UNKNOWN_CLIENT
from domain.enums import UserRole


@dataclass(frozen=True)
class Actor:
    uid: str
    email: str
    role: UserRole
    has_claim_admin: bool = False
    has_profile_admin: bool = False
    claim_role: UserRole | None = None
    ip_address: str = UNKNOWN_CLIENT
    user_agent: str = UNKNOWN_CLIENT

    @classmethod
    def system(cls) -> "Actor":
        """Actor for CLI scripts and jobs running outside a session."""
        return cls(uid=SYSTEM_ACTOR, email=SYSTEM_ACTOR, role=UserRole.SUPERADMIN)

    @property
    def acting_role(self) -> UserRole:
        """
        Role used for rank checks: the higher of the profile role and the
        role granted by token claims. A stale profile never demotes a
        claims-granted admin.
        """
        if self.has_claim_admin and self.claim_role and self.claim_role.rank > self.role.rank:
            return self.claim_role
        return self.role

    def with_client(self, ip_address: str | None, user_agent: str | None) -> "Actor":
        return replace(
            self,
            ip_address=ip_address or UNKNOWN_CLIENT,
            user_agent=user_agent or UNKNOWN_CLIENT,
        )
