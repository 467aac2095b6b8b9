"""Event ingestion API — /api/analytics/track (single and batch)."""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.analytics.tracker import track_event
from storefront.api.errors import ApiError
from storefront.context import RequestContext, get_request_context
from storefront.db.engine import get_session
from storefront.models.analytics import (
    BatchPayload,
    BatchTrackResponse,
    EventMetadata,
    EventPayload,
    TrackEventInput,
    TrackResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def build_input(payload: EventPayload, ctx: RequestContext, *, skip_dedup: bool = False) -> TrackEventInput:
    """Merge a client payload with the actor data derived from the request.

    The IP always comes from headers, never the body. Header-derived user
    agent and referrer only fill gaps the client left.
    """
    header_meta = {k: v for k, v in ctx.metadata().items() if v}
    metadata = EventMetadata(**{**header_meta, **payload.metadata.model_dump(exclude_none=True)})
    return TrackEventInput(
        **payload.model_dump(exclude={"metadata", "session_id"}),
        session_id=payload.session_id or ctx.session_id,
        metadata=metadata,
        ip=ctx.ip,
        skip_dedup=skip_dedup,
    )


@router.post("/track", response_model=TrackResponse, response_model_exclude_none=True)
async def track(
    payload: EventPayload,
    background: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_session),
):
    """Record one event. A repeat view inside the dedup window comes back as skipped."""
    try:
        result = await track_event(session, build_input(payload, ctx), background=background)
    except SQLAlchemyError as exc:
        logger.exception("Failed to store %s event", payload.event_type.value)
        raise ApiError(500, "Failed to track event", diagnostic=str(exc))
    if result.skipped:
        return TrackResponse(skipped=True)
    return TrackResponse(event_id=result.event_id)


@router.put("/track", response_model=BatchTrackResponse)
async def track_batch(
    payload: BatchPayload,
    background: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_session),
):
    """Record several events in order; ``count`` is how many were not deduplicated."""
    accepted = 0
    try:
        for event in payload.events:
            result = await track_event(session, build_input(event, ctx), background=background)
            if not result.skipped:
                accepted += 1
    except SQLAlchemyError as exc:
        logger.exception("Batch tracking failed after %d of %d events", accepted, len(payload.events))
        raise ApiError(500, "Failed to track events", diagnostic=str(exc))
    return BatchTrackResponse(count=accepted)
