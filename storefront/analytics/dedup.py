"""Dedup gate: suppress repeated view/impression events from the same actor."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from storefront.analytics.filters import EventFilter
from storefront.analytics.tables import AnalyticsEventRow
from storefront.models.analytics import EntityType, EventType, is_impression, is_view

logger = logging.getLogger(__name__)

UNKNOWN_ACTOR = "unknown"


def resolve_actor_key(session_id: Optional[str], ip: Optional[str]) -> str:
    """Session id if present, else IP, else the shared "unknown" bucket."""
    return session_id or ip or UNKNOWN_ACTOR


def dedup_window() -> timedelta:
    return timedelta(seconds=settings.ANALYTICS_DEDUP_WINDOW_SECONDS)


def dedup_applies(event_type: EventType | str, skip_dedup: bool = False) -> bool:
    """Only view and impression events are deduplicated; clicks always count."""
    if skip_dedup:
        return False
    return is_view(event_type) or is_impression(event_type)


async def find_recent_event(
    session: AsyncSession,
    *,
    event_type: EventType | str,
    entity_type: EntityType | str,
    entity_id: Optional[str],
    actor_key: str,
    now: datetime,
    window: Optional[timedelta] = None,
) -> Optional[AnalyticsEventRow]:
    """Most recent matching event inside the window, or None."""
    flt = EventFilter(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_id_is_null=entity_id is None,
        actor_key=actor_key,
        since=now - (window or dedup_window()),
    )
    stmt = flt.apply(select(AnalyticsEventRow)).order_by(AnalyticsEventRow.created_at.desc()).limit(1)
    return (await session.execute(stmt)).scalars().first()


async def is_duplicate(
    session: AsyncSession,
    *,
    event_type: EventType | str,
    entity_type: EntityType | str,
    entity_id: Optional[str],
    actor_key: str,
    now: datetime,
) -> bool:
    """True when a prior event from this actor falls inside the dedup window.

    A failed lookup is logged and treated as "no prior event" so the write
    still goes ahead.
    """
    try:
        prior = await find_recent_event(
            session,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_key=actor_key,
            now=now,
        )
    except Exception:
        logger.warning("Dedup lookup failed for %s %s/%s", event_type, entity_type, entity_id, exc_info=True)
        await session.rollback()
        return False
    return prior is not None
