"""Per-request actor context derived from headers.

Handlers receive a ``RequestContext`` through ``Depends(get_request_context)``
instead of reading shared module state, so concurrent requests never see
each other's IP, session or referrer.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request


def get_client_ip(request: Request) -> Optional[str]:
    """Extract the client IP, respecting proxy headers.

    Priority: first X-Forwarded-For hop, CF-Connecting-IP, X-Real-IP, then
    the socket peer. Returns None when nothing is resolvable.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("cf-connecting-ip", "x-real-ip"):
        value = (request.headers.get(header) or "").strip()
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return None


@dataclass(frozen=True)
class RequestContext:
    """Actor fingerprint and request metadata for a single HTTP request."""
    ip: Optional[str]
    user_agent: str = ""
    referrer: str = ""
    session_id: Optional[str] = None

    def metadata(self) -> dict[str, str]:
        """Header-derived fields merged into every tracked event's metadata."""
        return {"user_agent": self.user_agent[:500], "referrer": self.referrer[:2000]}


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency building the context for the current request."""
    return RequestContext(
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent") or "",
        referrer=request.headers.get("referer") or "",
        session_id=request.headers.get("x-session-id") or None,
    )
