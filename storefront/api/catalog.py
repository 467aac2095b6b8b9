"""Storefront catalog routes that feed or read analytics.

View and click endpoints resolve the entity first (404 when it is missing or
inactive) and then hand off to the event store writer.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.analytics.dashboard import build_trending
from storefront.analytics.tracker import track_event
from storefront.api.errors import ApiError
from storefront.context import RequestContext, get_request_context
from storefront.db import catalog
from storefront.db.engine import get_session
from storefront.models.analytics import (
    Breadcrumb,
    BreadcrumbResponse,
    EntityType,
    EventMetadata,
    EventType,
    SuccessResponse,
    TrackEventInput,
    TrendingPeriod,
    TrendingResponse,
    ViewPayload,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["catalog"])


async def _record(
    session: AsyncSession,
    background: BackgroundTasks,
    ctx: RequestContext,
    body: Optional[ViewPayload],
    **event,
) -> None:
    body = body or ViewPayload()
    data = TrackEventInput(
        **event,
        session_id=body.session_id or ctx.session_id,
        user_id=body.user_id,
        ip=ctx.ip,
        metadata=EventMetadata(**{k: v for k, v in ctx.metadata().items() if v}),
    )
    try:
        await track_event(session, data, background=background)
    except SQLAlchemyError as exc:
        logger.exception("Failed to record %s for %s", data.event_type.value, data.entity_id)
        raise ApiError(500, "Failed to record view", diagnostic=str(exc))


@router.get("/products/trending", response_model=TrendingResponse)
async def trending_products(
    period: TrendingPeriod = Query(TrendingPeriod.WEEK),
    limit: int = Query(10, ge=1, le=50),
    category: Optional[str] = Query(None, description="Category slug; includes direct subcategories"),
    session: AsyncSession = Depends(get_session),
):
    """Trending products by recent views, falling back to score, then newest."""
    category_id = None
    if category:
        row = await catalog.get_active_category_by_slug(session, category)
        if row is None:
            raise ApiError(404, "Category not found")
        category_id = row.id
    try:
        data = await build_trending(session, period, limit, category_id=category_id)
    except SQLAlchemyError as exc:
        logger.exception("Trending query failed")
        raise ApiError(500, "Failed to load trending products", diagnostic=str(exc))
    return TrendingResponse(data=data)


@router.post("/products/{slug}/view", response_model=SuccessResponse)
async def view_product(
    slug: str,
    background: BackgroundTasks,
    body: Optional[ViewPayload] = Body(None),
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_session),
):
    product = await catalog.get_active_product_by_slug(session, slug)
    if product is None:
        raise ApiError(404, "Product not found")
    await _record(
        session, background, ctx, body,
        event_type=EventType.PRODUCT_VIEW,
        entity_type=EntityType.PRODUCT,
        entity_id=product.id,
        entity_slug=product.slug,
        entity_name=product.name,
    )
    return SuccessResponse()


@router.post("/categories/{slug}/view", response_model=SuccessResponse)
async def view_category(
    slug: str,
    background: BackgroundTasks,
    body: Optional[ViewPayload] = Body(None),
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_session),
):
    category = await catalog.get_active_category_by_slug(session, slug)
    if category is None:
        raise ApiError(404, "Category not found")
    await _record(
        session, background, ctx, body,
        event_type=EventType.CATEGORY_VIEW,
        entity_type=EntityType.CATEGORY,
        entity_id=category.id,
        entity_slug=category.slug,
        entity_name=category.name,
    )
    return SuccessResponse()


@router.post("/hero-banners/{banner_id}/click", response_model=SuccessResponse)
async def click_banner(
    banner_id: str,
    background: BackgroundTasks,
    body: Optional[ViewPayload] = Body(None),
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_session),
):
    """Every click counts; banner clicks bypass the dedup gate."""
    banner = await catalog.get_banner(session, banner_id)
    if banner is None:
        raise ApiError(404, "Banner not found")
    await _record(
        session, background, ctx, body,
        event_type=EventType.BANNER_CLICK,
        entity_type=EntityType.BANNER,
        entity_id=banner.id,
        entity_name=banner.name,
        skip_dedup=True,
    )
    return SuccessResponse()


@router.get("/categories/{slug}/breadcrumbs", response_model=BreadcrumbResponse)
async def breadcrumbs(slug: str, session: AsyncSession = Depends(get_session)):
    category = await catalog.get_active_category_by_slug(session, slug)
    if category is None:
        raise ApiError(404, "Category not found")
    chain = await catalog.category_breadcrumbs(session, category.id)
    return BreadcrumbResponse(data=[Breadcrumb(id=c.id, name=c.name, slug=c.slug) for c in chain])
