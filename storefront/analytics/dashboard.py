"""Admin dashboard and trending feed, composed from aggregation queries.

Everything here is read-only. Store errors propagate to the route, which
turns them into a structured 500 instead of returning partial data.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.analytics import aggregation as agg
from storefront.analytics.filters import EventFilter
from storefront.db import catalog
from storefront.models.analytics import (
    BannerStat,
    BreakdownSlice,
    DailyTrend,
    DashboardData,
    DashboardPeriod,
    EntityType,
    EventType,
    Overview,
    TagStat,
    TopCategory,
    TopProduct,
    TrendingData,
    TrendingMeta,
    TrendingPeriod,
    TrendingProduct,
)

logger = logging.getLogger(__name__)

TOP_PRODUCTS = 5
TOP_CATEGORIES = 10
TOP_TAGS = 10


async def _top_products(session: AsyncSession, since: Optional[datetime]) -> list[TopProduct]:
    flt = EventFilter(event_type=EventType.PRODUCT_VIEW, entity_type=EntityType.PRODUCT, since=since)
    rows = await agg.top_entities(session, flt, limit=TOP_PRODUCTS)
    if not rows:
        return []
    names = await catalog.products_by_ids(session, [r.entity_id for r in rows])
    max_views = rows[0].count
    return [
        TopProduct(
            id=r.entity_id,
            name=r.entity_name or (names[r.entity_id].name if r.entity_id in names else r.entity_id),
            views=r.count,
            unique_visitors=r.unique_visitors,
            percentage=agg.percentage(r.count, max_views),
        )
        for r in rows
    ]


async def _top_categories(session: AsyncSession, since: Optional[datetime]) -> tuple[list[TopCategory], str]:
    """Categories by tracked views, or by product count when nothing was tracked."""
    flt = EventFilter(event_type=EventType.CATEGORY_VIEW, entity_type=EntityType.CATEGORY, since=since)
    views = await agg.entity_counts(session, flt)
    summaries = await catalog.active_category_summaries(session)

    if views:
        strategy = "views"
        key = lambda c: (-views.get(c["id"], 0), -c["product_count"], -c["total_product_views"], c["id"])  # noqa: E731
    else:
        strategy = "product_count"
        key = lambda c: (-c["product_count"], -c["total_product_views"], c["id"])  # noqa: E731

    ranked = sorted(summaries, key=key)[:TOP_CATEGORIES]
    return [
        TopCategory(
            id=c["id"],
            name=c["name"],
            slug=c["slug"],
            product_count=c["product_count"],
            views=views.get(c["id"], 0),
            total_product_views=c["total_product_views"],
        )
        for c in ranked
    ], strategy


async def _banner_stats(session: AsyncSession, since: Optional[datetime]) -> list[BannerStat]:
    tracked = await agg.family_counts_by_entity(session, EventFilter(entity_type=EntityType.BANNER, since=since))
    stats = []
    for banner in await catalog.active_banners(session):
        counts = tracked.get(banner.id, {})
        impressions = max(counts.get("impressions", 0), banner.impressions or 0)
        clicks = max(counts.get("clicks", 0), banner.clicks or 0)
        stats.append(BannerStat(
            id=banner.id,
            name=banner.name,
            impressions=impressions,
            clicks=clicks,
            ctr=agg.percentage(clicks, impressions),
        ))
    return stats


async def _tag_stats(session: AsyncSession, since: Optional[datetime]) -> list[TagStat]:
    flt = EventFilter(event_type=EventType.TAG_CLICK, entity_type=EntityType.TAG, since=since)
    tracked = await agg.entity_counts(session, flt)
    stats = [
        TagStat(id=tag.id, name=tag.name, slug=tag.slug, clicks=max(tracked.get(tag.id, 0), tag.clicks or 0))
        for tag in await catalog.active_tags(session)
    ]
    stats.sort(key=lambda t: (-t.clicks, t.name))
    return stats


async def build_dashboard(
    session: AsyncSession,
    period: DashboardPeriod = DashboardPeriod.MONTH,
    now: Optional[datetime] = None,
) -> DashboardData:
    """Everything the admin analytics page shows for one period."""
    since = agg.period_since(period, now)

    counts = await agg.overview_counts(session, since)
    banner_stats = await _banner_stats(session, since)
    tag_stats = await _tag_stats(session, since)
    banner_clicks = sum(b.clicks for b in banner_stats)
    tag_clicks = sum(t.clicks for t in tag_stats)
    overview = Overview(
        total_views=counts.views,
        total_clicks=max(counts.clicks, banner_clicks),
        unique_visitors=counts.unique_visitors,
        total_products=await catalog.count_products(session),
        total_users=await catalog.count_users(session),
        total_banner_clicks=banner_clicks,
        total_tag_clicks=tag_clicks,
    )

    top_categories, category_strategy = await _top_categories(session, since)
    if category_strategy == "product_count":
        logger.debug("No category views for period %s, ranking categories by product count", period.value)

    return DashboardData(
        period=period,
        overview=overview,
        top_products=await _top_products(session, since),
        top_categories=top_categories,
        category_strategy=category_strategy,
        banner_stats=banner_stats,
        tag_stats=tag_stats[:TOP_TAGS],
        daily_trends=[DailyTrend(**d) for d in await agg.daily_trends(session, since)],
        entity_breakdown=[BreakdownSlice(**b) for b in await agg.entity_breakdown(session, since)],
    )


async def build_trending(
    session: AsyncSession,
    period: TrendingPeriod = TrendingPeriod.WEEK,
    limit: int = 10,
    category_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TrendingData:
    """Trending products for the storefront.

    Ranked by tracked views and unique visitors in the period; short lists are
    topped up by stored score, and if nothing has a score, by newest first.
    """
    category_ids = await catalog.category_family_ids(session, category_id) if category_id else None
    stats = await agg.trending_products(session, period, limit, now=now, active_only=True, category_ids=category_ids)
    by_id = await catalog.products_by_ids(session, [s.entity_id for s in stats])

    products: list[TrendingProduct] = []
    for s in stats:
        product = by_id.get(s.entity_id)
        if product is None:
            continue
        products.append(TrendingProduct(
            id=product.id,
            name=product.name,
            slug=product.slug,
            rank=len(products) + 1,
            views=s.views,
            unique_visitors=s.unique_visitors,
            score=s.score,
            total_views=product.total_views or 0,
        ))
    strategy: Optional[str] = "analytics" if products else None

    for fallback, by_score in (("score", True), ("latest", False)):
        if len(products) >= limit:
            break
        extra = await catalog.ranked_products(
            session,
            limit=limit - len(products),
            category_ids=category_ids,
            exclude_ids=[p.id for p in products],
            by_score=by_score,
        )
        if extra and strategy is None:
            strategy = fallback
        for product in extra:
            products.append(TrendingProduct(
                id=product.id,
                name=product.name,
                slug=product.slug,
                rank=len(products) + 1,
                score=product.score or 0,
                total_views=product.total_views or 0,
            ))

    return TrendingData(
        products=products,
        meta=TrendingMeta(total=len(products), strategy=strategy or "latest", period=period, limit=limit),
    )
