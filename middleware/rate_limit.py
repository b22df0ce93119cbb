"""
In-memory rate limiting for expensive admin operations.

Bulk repair scans and rewrites the whole order set, and token refresh hits
the grant store on every call; both are throttled per caller.

Uses a sliding-window log per (caller, route). A caller is identified by
its bearer token subject when one is present, else by client IP.
Not shared across worker processes.
"""
import time
import logging
from collections import defaultdict, deque

from fastapi import Request

from domain.errors import RateLimitError, UnauthorizedError
from middleware.auth import decode_access_token

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter.

    Keeps the monotonic timestamps of accepted requests per key.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._requests: dict[str, deque] = defaultdict(deque)

    def _cleanup(self, key: str, window_seconds: float):
        cutoff = self._clock() - window_seconds
        stamps = self._requests[key]
        while stamps and stamps[0] <= cutoff:
            stamps.popleft()

    def check(self, key: str, max_requests: int, window_seconds: float) -> bool:
        """Record and allow a request, or return False if the window is full."""
        self._cleanup(key, window_seconds)
        if len(self._requests[key]) >= max_requests:
            return False
        self._requests[key].append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: float) -> int:
        self._cleanup(key, window_seconds)
        return max(0, max_requests - len(self._requests[key]))

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
_limiter = RateLimiter()


def _caller_key(request: Request) -> str:
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        try:
            return f"uid:{decode_access_token(authorization[7:].strip())['sub']}"
        except UnauthorizedError:
            pass
    return f"ip:{request.client.host if request.client else 'unknown'}"


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory.

    Usage:
        @router.post("/orders/repair")
        async def repair(_rate=Depends(rate_limit(6, 3600))):
            ...
    """
    async def _check_rate_limit(request: Request):
        key = f"{_caller_key(request)}:{request.url.path}"
        if not _limiter.check(key, max_requests, window_seconds):
            logger.warning(f"Rate limit exceeded: {key} ({max_requests}/{window_seconds}s)")
            raise RateLimitError(
                f"Rate limit exceeded. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                details={"limit": max_requests, "windowSeconds": window_seconds},
            )

    return _check_rate_limit
