"""Rate limiting middleware — in-memory with sliding window.

Protects the tracking endpoint from event floods and the admin dashboard from
expensive repeated aggregation. Uses in-memory storage (works for
single-instance). For multi-instance, swap _store for a Redis backend.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from storefront.context import get_client_ip

logger = logging.getLogger(__name__)


@dataclass
class _RateWindow:
    """Sliding window counter for a single client."""
    timestamps: list[float] = field(default_factory=list)

    def count_in_window(self, window_seconds: float) -> int:
        cutoff = time.monotonic() - window_seconds
        self.timestamps = [t for t in self.timestamps if t > cutoff]
        return len(self.timestamps)

    def record(self) -> None:
        self.timestamps.append(time.monotonic())


class RateLimitStore:
    """In-memory rate limit storage with periodic cleanup."""

    def __init__(self):
        self._windows: dict[str, _RateWindow] = defaultdict(_RateWindow)
        self._last_cleanup = time.monotonic()
        self._cleanup_interval = 300

    def check_and_record(self, key: str, limit: int, window_seconds: float) -> tuple[bool, int]:
        """Check if a request is allowed and record it if so.

        Returns (allowed, current_count).
        """
        self._maybe_cleanup()
        window = self._windows[key]
        count = window.count_in_window(window_seconds)
        if count >= limit:
            return False, count
        window.record()
        return True, count + 1

    def reset(self) -> None:
        self._windows.clear()

    def _maybe_cleanup(self) -> None:
        now = time.monotonic()
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        stale = [k for k, w in self._windows.items() if not w.timestamps]
        for k in stale:
            del self._windows[k]


_store = RateLimitStore()


def reset_store() -> None:
    """Reset rate limit state — used in tests."""
    _store.reset()


# (path_prefix, requests, window_seconds, bucket); first match wins
_RATE_LIMITS: list[tuple[str, int, int, str]] = [
    ("/api/analytics/track", 300, 60, "track"),
    ("/api/admin/", 60, 60, "admin"),
    ("/api/", 120, 60, "api"),
]

_EXEMPT = {"/health", "/metrics", "/docs", "/openapi.json"}


def find_limit(path: str) -> tuple[int, int, str] | None:
    """Most specific (limit, window, bucket) for a path, or None if exempt."""
    if path in _EXEMPT or not path.startswith("/api/"):
        return None
    for prefix, limit, window, bucket in _RATE_LIMITS:
        if path.startswith(prefix):
            return limit, window, bucket
    return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """IP-based rate limiting per endpoint group."""

    async def dispatch(self, request: Request, call_next):
        rate = find_limit(request.url.path)
        if rate is None:
            return await call_next(request)

        limit, window, bucket = rate
        client_ip = get_client_ip(request) or "unknown"
        allowed, count = _store.check_and_record(f"{client_ip}:{bucket}", limit, window)

        if not allowed:
            logger.warning("Rate limited: %s on %s (%d/%d in %ds)", client_ip, request.url.path, count, limit, window)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "rate_limited",
                    "message": "Too many requests. Please try again later.",
                    "retryAfter": window,
                },
                headers={"Retry-After": str(window)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        return response
