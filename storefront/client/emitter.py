"""Best-effort analytics emitter for storefront clients.

Keeps one session id per browsing context and posts events to the tracking
endpoint. Tracking is a side effect: network and HTTP errors are logged at
DEBUG and never raised to the caller.
"""
from __future__ import annotations

import json
import logging
import secrets
import string
import time
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

SESSION_KEY = "analytics_session_id"
TRACK_PATH = "/api/analytics/track"

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """``sess_<epoch ms>_<13 random base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(13))
    return f"sess_{int(time.time() * 1000)}_{suffix}"


class SessionStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Storage that lives as long as the process."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class FileStorage:
    """JSON file storage, so a session survives process restarts."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        try:
            return json.loads(self.path.read_text())
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("Unreadable session storage at %s, starting fresh", self.path)
            return {}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data))


def get_or_create_session_id(storage: SessionStorage) -> str:
    """Reuse the stored session id; only mint one when storage has none."""
    session_id = storage.get(SESSION_KEY)
    if not session_id:
        session_id = generate_session_id()
        storage.set(SESSION_KEY, session_id)
    return session_id


class TrackingClient:
    """Posts events to the storefront tracking endpoint."""

    def __init__(
        self,
        base_url: str,
        storage: Optional[SessionStorage] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.storage = storage or MemoryStorage()
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def session_id(self) -> str:
        return get_or_create_session_id(self.storage)

    async def track(
        self,
        event_type: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        entity_slug: Optional[str] = None,
        entity_name: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> Optional[str]:
        """Send one event. Returns the stored event id, or None if skipped or failed."""
        body: dict[str, Any] = {
            "eventType": event_type,
            "entityType": entity_type,
            "entityId": entity_id,
            "entitySlug": entity_slug,
            "entityName": entity_name,
            "sessionId": self.session_id,
            "userId": user_id,
            "metadata": {k: v for k, v in (metadata or {}).items() if v not in (None, "")},
        }
        body = {k: v for k, v in body.items() if v is not None}
        try:
            resp = await self._client.post(f"{self.base_url}{TRACK_PATH}", json=body)
            resp.raise_for_status()
            data = resp.json()
        except Exception as exc:  # tracking never raises into the caller
            logger.debug("Tracking %s failed: %s", event_type, exc)
            return None
        if not isinstance(data, dict):
            logger.debug("Tracking %s got an unexpected response body", event_type)
            return None
        return data.get("eventId")

    async def track_product_view(self, product_id: str, slug: str, name: str) -> Optional[str]:
        return await self.track("product_view", "product", product_id, slug, name)

    async def track_category_view(self, category_id: str, slug: str, name: str) -> Optional[str]:
        return await self.track("category_view", "category", category_id, slug, name)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TrackingClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


class PageViewTracker:
    """Emits one ``page_view`` per distinct navigation.

    The navigation key is ``pathname?query``; calling ``navigate`` again with
    the same key (a re-render, not a navigation) sends nothing. The event is
    keyed by pathname alone so query strings don't fragment page stats.
    """

    def __init__(self, client: TrackingClient):
        self.client = client
        self._last_key: Optional[str] = None
        self._previous_path: Optional[str] = None

    async def navigate(self, pathname: str, query: str = "", title: Optional[str] = None, referrer: str = "") -> bool:
        """Returns True if an event was sent for this navigation."""
        if not pathname:
            return False
        key = f"{pathname}?{query}" if query else pathname
        if key == self._last_key:
            return False
        self._last_key = key

        await self.client.track(
            "page_view",
            "page",
            entity_id=pathname,
            entity_slug=pathname,
            entity_name=title or pathname,
            metadata={
                "page": pathname,
                "pageQuery": query,
                "previousPage": self._previous_path,
                "referrer": referrer,
            },
        )
        self._previous_path = pathname
        return True
