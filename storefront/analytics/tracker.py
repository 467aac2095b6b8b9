"""Event store writer: dedup gate, append-only insert, then counter projection."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.analytics import counters
from storefront.analytics.dedup import dedup_applies, is_duplicate, resolve_actor_key
from storefront.analytics.tables import AnalyticsEventRow
from storefront.db.tables import utcnow
from storefront.middleware.metrics import metrics
from storefront.models.analytics import TrackEventInput

logger = logging.getLogger(__name__)


@dataclass
class TrackResult:
    event: Optional[AnalyticsEventRow] = None
    skipped: bool = False

    @property
    def event_id(self) -> Optional[str]:
        return self.event.id if self.event is not None else None


async def track_event(
    session: AsyncSession,
    data: TrackEventInput,
    *,
    background: Optional[BackgroundTasks] = None,
    now: Optional[datetime] = None,
) -> TrackResult:
    """Record one analytics event.

    A repeated view/impression from the same actor inside the dedup window is
    dropped and reported as skipped. The insert is committed before any
    counter moves; projection is scheduled on ``background`` when given,
    otherwise awaited inline, and its failures never reach the caller.
    Insert failures propagate.
    """
    now = now or utcnow()
    actor_key = resolve_actor_key(data.session_id, data.ip)
    event_type = data.event_type.value
    entity_type = data.entity_type.value

    if dedup_applies(event_type, data.skip_dedup) and await is_duplicate(
        session,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=data.entity_id,
        actor_key=actor_key,
        now=now,
    ):
        logger.debug("Skipped duplicate %s for %s/%s from %s", event_type, entity_type, data.entity_id, actor_key)
        metrics.record_tracking("deduplicated")
        return TrackResult(skipped=True)

    event = AnalyticsEventRow(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=data.entity_id,
        entity_slug=data.entity_slug,
        entity_name=data.entity_name,
        session_id=data.session_id,
        user_id=data.user_id,
        ip=data.ip,
        actor_key=actor_key,
        event_metadata=data.metadata.model_dump(exclude_none=True),
        created_at=now,
    )
    session.add(event)
    await session.commit()
    metrics.record_tracking("accepted")

    projection = (event_type, entity_type, data.entity_id, data.entity_slug, data.entity_name, now)
    if background is not None:
        background.add_task(counters.project_event, *projection)
    else:
        await counters.project_event(*projection)

    return TrackResult(event=event)
