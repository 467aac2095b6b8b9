"""Admin analytics API — /api/admin/analytics. Requires X-Admin-Key."""
from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from storefront.analytics import aggregation as agg
from storefront.analytics.dashboard import build_dashboard
from storefront.api.errors import ApiError
from storefront.db.engine import get_session
from storefront.models.analytics import (
    DashboardPeriod,
    DashboardResponse,
    EntityStats,
    EntityStatsResponse,
    EntityType,
    RollupPoint,
    ViewCounts,
    ViewCountsResponse,
)

logger = logging.getLogger(__name__)


def verify_admin(x_admin_key: str = Header(None)) -> None:
    """Verify the admin API key (timing-safe)."""
    expected = settings.ADMIN_API_KEY
    if not expected:
        raise ApiError(503, "Admin endpoints disabled")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise ApiError(403, "Invalid admin key")


router = APIRouter(prefix="/api/admin/analytics", tags=["admin"], dependencies=[Depends(verify_admin)])


@router.get("", response_model=DashboardResponse)
async def dashboard(
    period: DashboardPeriod = Query(DashboardPeriod.MONTH),
    session: AsyncSession = Depends(get_session),
):
    """Overview, top products/categories, banner and tag stats, daily trends."""
    try:
        data = await build_dashboard(session, period)
    except SQLAlchemyError as exc:
        logger.exception("Dashboard aggregation failed for period %s", period.value)
        raise ApiError(500, "Failed to load analytics", diagnostic=str(exc))
    return DashboardResponse(data=data)


@router.get("/entities/{entity_type}/{entity_id}", response_model=EntityStatsResponse)
async def entity_stats(
    entity_type: EntityType,
    entity_id: str,
    days: int = Query(30, ge=1, le=365),
    session: AsyncSession = Depends(get_session),
):
    try:
        stats = await agg.entity_stats(session, entity_type, entity_id, days)
    except SQLAlchemyError as exc:
        logger.exception("Entity stats failed for %s/%s", entity_type.value, entity_id)
        raise ApiError(500, "Failed to load entity stats", diagnostic=str(exc))
    daily = [RollupPoint(**point) for point in stats.pop("daily")]
    return EntityStatsResponse(data=EntityStats(
        entity_type=entity_type, entity_id=entity_id, days=days, daily=daily, **stats,
    ))


@router.get("/views/{entity_type}/{entity_id}", response_model=ViewCountsResponse)
async def view_counts(
    entity_type: EntityType,
    entity_id: str,
    session: AsyncSession = Depends(get_session),
):
    """Views in the last day, week, month and year."""
    try:
        counts = await agg.view_counts_by_range(session, entity_type, entity_id)
    except SQLAlchemyError as exc:
        logger.exception("View counts failed for %s/%s", entity_type.value, entity_id)
        raise ApiError(500, "Failed to load view counts", diagnostic=str(exc))
    return ViewCountsResponse(data=ViewCounts(**counts))
