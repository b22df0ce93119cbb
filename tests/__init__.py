"""
Pytest test suite for the marketplace admin console backend.

Test categories:
- Unit tests: status resolution, repair rules, rate limiting, token claims
- Service tests: order/user/audit services against in-memory SQLite
- API tests: full FastAPI app through httpx ASGITransport
"""
