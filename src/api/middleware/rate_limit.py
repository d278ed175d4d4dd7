"""
API rate limiting - fixed window per user (or per IP when anonymous).
"""

import time
from typing import Callable, Optional, Tuple

from fastapi import Request, Response, status
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware

from src.config import get_settings
from src.logging_config import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60


def _get_client_ip(request: Request) -> str:
    """Get client IP from request (X-Forwarded-For or direct)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _get_user_id_from_jwt(request: Request) -> Optional[str]:
    """Extract the token subject if the bearer token verifies; auth proper runs later."""
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth[7:].strip()
    if not token:
        return None
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


class InMemoryRateLimitStore:
    """Fixed-window in-memory store. Key -> (count, window_start_ts)."""

    def __init__(self):
        self._data: dict[str, Tuple[int, float]] = {}

    def check_and_incr(self, identifier: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        """
        Count one request against `identifier`.

        Returns (allowed, seconds until the window resets). A refused
        request is not counted.
        """
        now = time.monotonic()
        count, start = self._data.get(identifier, (0, now))
        if now - start >= window_seconds:
            count, start = 0, now
        reset_in = max(1, int(window_seconds - (now - start)))
        if count >= limit:
            return False, reset_in
        self._data[identifier] = (count + 1, start)
        return True, reset_in

    def cleanup_old(self, max_age_seconds: int = 3600) -> None:
        """Drop windows older than max_age_seconds to bound memory."""
        now = time.monotonic()
        stale = [k for k, (_, start) in self._data.items() if now - start > max_age_seconds]
        for key in stale:
            self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


# Single-process store; multi-worker deployments need a shared backend
_store: Optional[InMemoryRateLimitStore] = None


def get_store() -> InMemoryRateLimitStore:
    global _store
    if _store is None:
        _store = InMemoryRateLimitStore()
    return _store


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limit /api/v1 traffic to rate_limit_api_per_minute per caller."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = get_settings()
        if not settings.rate_limit_enabled:
            return await call_next(request)

        path = request.url.path or ""
        if not path.startswith(settings.api_v1_prefix):
            return await call_next(request)

        store = get_store()
        store.cleanup_old(max_age_seconds=WINDOW_SECONDS * 60)

        user_id = _get_user_id_from_jwt(request)
        identifier = f"user:{user_id}" if user_id else f"ip:{_get_client_ip(request)}"
        limit = settings.rate_limit_api_per_minute

        allowed, reset_in = store.check_and_incr(identifier, limit, WINDOW_SECONDS)
        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={"identifier": identifier, "path": path},
            )
            return Response(
                content='{"detail":"Too many requests. Please try again later."}',
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                media_type="application/json",
                headers={"Retry-After": str(reset_in)},
            )
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        return response
