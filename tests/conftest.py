"""
Pytest configuration and shared fixtures for admin console tests.

Provides an in-memory SQLite DB per test, an httpx client bound to the
ASGI app, and factories for orders, profiles, claims and session tokens.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
import pytest_asyncio
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db, get_session_factory

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only-not-for-production"

import db_models  # noqa: E402,F401  (register tables on Base.metadata)
from db_models import IdentityClaims, Order, OrderItem, UserProfile, utcnow  # noqa: E402
from middleware.auth import issue_access_token  # noqa: E402
from middleware.rate_limit import _limiter  # noqa: E402


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def session_maker():
    """
    In-memory SQLite engine for one test.

    Uses StaticPool so every session shares the single in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, session_maker):
    """
    httpx client bound to the app with get_db overridden to the test DB.
    """
    from main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_maker
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    _limiter.reset()
    yield
    _limiter.reset()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
def make_order(db_session: AsyncSession):
    """Factory: insert an order with the given fields and return it."""
    counter = {"n": 0}

    async def _make(
        order_status: str = "pending",
        payment_status: str = "pending",
        payment_method: str = "card",
        total: float = 100.0,
        customer_email: str = "buyer@example.com",
        items: list[dict] | None = None,
        **fields,
    ) -> Order:
        counter["n"] += 1
        order = Order(
            order_number=fields.pop("order_number", f"ORD-{counter['n']:04d}"),
            customer_name=fields.pop("customer_name", "Test Buyer"),
            customer_email=customer_email,
            total=total,
            payment_method=payment_method,
            payment_status=payment_status,
            order_status=order_status,
            **fields,
        )
        for item in items or [{"product_name": "Tee", "quantity": 1, "unit_price": total}]:
            order.items.append(OrderItem(**item))
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _make


@pytest.fixture
def make_profile(db_session: AsyncSession):
    """Factory: insert a user profile."""

    async def _make(uid: str, role: str = "user", status: str = "active", **fields) -> UserProfile:
        profile = UserProfile(
            uid=uid,
            email=fields.pop("email", f"{uid}@example.com"),
            display_name=fields.pop("display_name", uid),
            role=role,
            status=status,
            created_at=fields.pop("created_at", utcnow()),
            **fields,
        )
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture
def make_claims(db_session: AsyncSession):
    """Factory: record the custom claims granted to a uid."""

    async def _make(uid: str, admin: bool = True, role: str | None = "admin", email: str | None = None):
        row = IdentityClaims(uid=uid, email=email or f"{uid}@example.com", admin=admin, role=role)
        db_session.add(row)
        await db_session.commit()
        return row

    return _make


@pytest.fixture
def make_token():
    """Factory: mint a session token with the given (possibly stale) claims."""

    def _make(uid: str, admin: bool = False, role: str | None = None, email: str | None = None) -> str:
        return issue_access_token(uid=uid, email=email or f"{uid}@example.com", admin=admin, role=role)

    return _make


@pytest_asyncio.fixture
async def admin_headers(make_profile, make_claims, make_token) -> dict:
    """Bearer headers for an admin with both claims and profile in agreement."""
    await make_profile("admin-1", role="admin", email="admin@example.com")
    await make_claims("admin-1", admin=True, role="admin", email="admin@example.com")
    token = make_token("admin-1", admin=True, role="admin", email="admin@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def superadmin_headers(make_profile, make_claims, make_token) -> dict:
    await make_profile("root-1", role="superadmin", email="root@example.com")
    await make_claims("root-1", admin=True, role="superadmin", email="root@example.com")
    token = make_token("root-1", admin=True, role="superadmin", email="root@example.com")
    return {"Authorization": f"Bearer {token}"}
