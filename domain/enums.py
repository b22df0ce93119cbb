"""
Domain enums for orders, users and the status buckets derived from them.

Persisted values are bit-exact with what checkout and older console
releases wrote, so members must never be renamed.
"""

from enum import Enum


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    CARD = "card"
    GCASH = "gcash"
    GRAB_PAY = "grab_pay"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class OrderStatus(str, Enum):
    """
    Every raw value the orderStatus field may hold.

    Two vocabularies coexist during the migration window; CANCELLED is
    shared by both.
    """

    # Legacy vocabulary
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"

    # Current vocabulary
    TO_PAY = "to_pay"
    TO_SHIP = "to_ship"
    TO_RECEIVE = "to_receive"
    COMPLETED = "completed"
    RETURNED = "returned"

    # Both
    CANCELLED = "cancelled"


class StatusBucket(str, Enum):
    """Canonical shipment/payment state shown to operators."""

    TO_PAY = "to_pay"
    TO_SHIP = "to_ship"
    TO_RECEIVE = "to_receive"
    COMPLETED = "completed"
    RETURNED = "returned"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def is_terminal(self) -> bool:
        return self in (StatusBucket.COMPLETED, StatusBucket.RETURNED, StatusBucket.CANCELLED)


class UserRole(str, Enum):
    """Roles ordered by privilege ascending (see rank)."""

    USER = "user"
    CREATOR = "creator"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @classmethod
    def parse(cls, value: str) -> "UserRole":
        """Accept the stored vocabulary, including the legacy 'buyer' alias."""
        if value == "buyer":
            return cls.USER
        return cls(value)

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


_ROLE_RANK = {
    UserRole.USER: 0,
    UserRole.CREATOR: 1,
    UserRole.ADMIN: 2,
    UserRole.SUPERADMIN: 3,
}

PRIVILEGED_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPERADMIN})


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"
