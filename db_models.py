"""
SQLAlchemy ORM models for the marketplace admin console.

Tables:
    orders           — Order Store: checkout orders (status vocabulary is mixed legacy/current)
    order_items      — line items belonging to an order
    user_profiles    — Profile Store: mutable per-uid profile records
    identity_claims  — Token Service grants of record ({admin, role} custom claims)
    audit_logs       — Log Store: append-only record of privileged mutations
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey, JSON, Index,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation every table stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


# ════════════════════════════════════════════════════════════════════
# Order Store
# ════════════════════════════════════════════════════════════════════

class Order(Base):
    """
    A checkout order. Created externally; mutated only by the order service.

    order_status holds either vocabulary (see domain.enums.OrderStatus) and is
    meaningless on its own: resolve it with services.status_resolver.
    """
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=new_id)
    order_number = Column(String(50), nullable=False, index=True)
    customer_name = Column(String(200), nullable=False, default="")
    customer_email = Column(String(320), nullable=False, default="", index=True)
    customer_phone = Column(String(50), nullable=True)
    user_id = Column(String(128), nullable=True, index=True)
    total = Column(Float, nullable=False, default=0.0)
    payment_method = Column(String(30), nullable=False, default="card")  # cash_on_delivery | card | gcash | grab_pay
    payment_status = Column(String(20), nullable=False, default="pending")  # pending | paid
    order_status = Column(String(30), nullable=False, default="pending", index=True)
    admin_done = Column(Boolean, nullable=False, default=False)  # operator review flag
    admin_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        # Bulk repair and bucket counters scan by method + status
        Index("ix_orders_method_status", "payment_method", "order_status"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_name = Column(String(200), nullable=True)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False, default=0.0)
    total_price = Column(Float, nullable=True)  # null => unit_price * quantity

    order = relationship("Order", back_populates="items")


# ════════════════════════════════════════════════════════════════════
# Profile Store
# ════════════════════════════════════════════════════════════════════

class UserProfile(Base):
    """
    Mutable profile record keyed by identity uid.

    Reason fields are populated only while status != active and are cleared
    together on reactivation.
    """
    __tablename__ = "user_profiles"

    uid = Column(String(128), primary_key=True)
    email = Column(String(320), nullable=False, default="", index=True)
    display_name = Column(String(200), nullable=True)
    photo_url = Column(Text, nullable=True)
    phone_number = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="user")  # user | creator | admin | superadmin
    status = Column(String(20), nullable=False, default="active")  # active | suspended | banned
    suspended_reason = Column(Text, nullable=True)
    suspended_at = Column(DateTime, nullable=True)
    banned_reason = Column(Text, nullable=True)
    banned_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    last_login_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)


# ════════════════════════════════════════════════════════════════════
# Token Service
# ════════════════════════════════════════════════════════════════════

class IdentityClaims(Base):
    """
    Custom claims granted to an identity. Tokens minted after a change carry
    the new claims; tokens minted before it keep the old ones until refreshed.
    """
    __tablename__ = "identity_claims"

    uid = Column(String(128), primary_key=True)
    email = Column(String(320), nullable=False, default="")
    admin = Column(Boolean, nullable=False, default=False)
    role = Column(String(20), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ════════════════════════════════════════════════════════════════════
# Log Store
# ════════════════════════════════════════════════════════════════════

class AuditLog(Base):
    """One privileged mutation. Append-only from the mutation path."""
    __tablename__ = "audit_logs"

    id = Column(String(64), primary_key=True, default=new_id)
    action = Column(String(50), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, default="system", index=True)
    user_email = Column(String(320), nullable=False, default="system")
    resource_type = Column(String(50), nullable=True, index=True)
    resource_id = Column(String(128), nullable=True)
    details = Column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=True)
    ip_address = Column(String(64), nullable=False, default="N/A")
    user_agent = Column(Text, nullable=False, default="N/A")
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
