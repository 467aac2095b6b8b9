"""Aggregation queries over the event store and daily rollups.

Views, clicks and impressions are event families matched by substring on the
event type, so ``product_view`` and ``category_view`` both count as views.
Unique visitors are distinct actor keys (session id, else IP, else "unknown").
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.analytics.filters import EventFilter
from storefront.analytics.tables import AnalyticsEventRow, DailyAnalyticsRow
from storefront.db.tables import ProductRow, utcnow
from storefront.models.analytics import DashboardPeriod, EntityType, EventType, TrendingPeriod

MAX_TREND_DAYS = 30

_DASHBOARD_DAYS = {
    DashboardPeriod.WEEK: 7,
    DashboardPeriod.MONTH: 30,
    DashboardPeriod.QUARTER: 90,
    DashboardPeriod.ALL: None,
}

_TRENDING_DAYS = {
    TrendingPeriod.DAY: 1,
    TrendingPeriod.WEEK: 7,
    TrendingPeriod.MONTH: 30,
}


def period_since(period: DashboardPeriod, now: Optional[datetime] = None) -> Optional[datetime]:
    """Rolling window start for a dashboard period; None means all time."""
    days = _DASHBOARD_DAYS[period]
    if days is None:
        return None
    return (now or utcnow()) - timedelta(days=days)


def trending_since(period: TrendingPeriod, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) - timedelta(days=_TRENDING_DAYS[period])


def day_start(days_back: int, now: Optional[datetime] = None) -> datetime:
    """UTC midnight ``days_back`` days before ``now``."""
    start = (now or utcnow()) - timedelta(days=days_back)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def percentage(value: Optional[int], base: Optional[int]) -> int:
    """Whole-number percentage of ``value`` over ``base``, rounding halves up.

    >>> percentage(1, 3)
    33
    >>> percentage(1, 8)
    13
    """
    if not base:
        return 0
    return math.floor((value or 0) / max(1, base) * 100 + 0.5)


def _family_sum(fragment: str):
    return func.sum(case((AnalyticsEventRow.event_type.contains(fragment), 1), else_=0))


@dataclass
class EntityCount:
    entity_id: str
    entity_name: Optional[str]
    entity_slug: Optional[str]
    count: int
    unique_visitors: int


@dataclass
class OverviewCounts:
    views: int = 0
    clicks: int = 0
    unique_visitors: int = 0


@dataclass
class TrendStat:
    entity_id: str
    views: int
    unique_visitors: int

    @property
    def score(self) -> int:
        return self.views + 2 * self.unique_visitors


async def top_entities(session: AsyncSession, flt: EventFilter, limit: int = 10) -> list[EntityCount]:
    """Most frequent entities matching ``flt``; ties broken by entity id."""
    ev = AnalyticsEventRow
    count = func.count(ev.id)
    stmt = (
        select(
            ev.entity_id,
            func.max(ev.entity_name),
            func.max(ev.entity_slug),
            count.label("count"),
            func.count(func.distinct(ev.actor_key)).label("unique_visitors"),
        )
        .where(ev.entity_id.is_not(None))
        .group_by(ev.entity_id)
        .order_by(count.desc(), ev.entity_id.asc())
        .limit(limit)
    )
    rows = (await session.execute(flt.apply(stmt))).all()
    return [EntityCount(r[0], r[1], r[2], r[3], r[4]) for r in rows]


async def entity_counts(session: AsyncSession, flt: EventFilter) -> dict[str, int]:
    """Event count per entity id for every entity matching ``flt``."""
    ev = AnalyticsEventRow
    stmt = select(ev.entity_id, func.count(ev.id)).where(ev.entity_id.is_not(None)).group_by(ev.entity_id)
    rows = (await session.execute(flt.apply(stmt))).all()
    return {r[0]: r[1] for r in rows}


async def family_counts_by_entity(
    session: AsyncSession, flt: EventFilter
) -> dict[str, dict[str, int]]:
    """Per entity id: ``{"views": n, "clicks": n, "impressions": n}``."""
    ev = AnalyticsEventRow
    stmt = (
        select(
            ev.entity_id,
            _family_sum("view"),
            _family_sum("click"),
            _family_sum("impression"),
        )
        .where(ev.entity_id.is_not(None))
        .group_by(ev.entity_id)
    )
    rows = (await session.execute(flt.apply(stmt))).all()
    return {
        r[0]: {"views": r[1] or 0, "clicks": r[2] or 0, "impressions": r[3] or 0}
        for r in rows
    }


async def overview_counts(session: AsyncSession, since: Optional[datetime] = None) -> OverviewCounts:
    ev = AnalyticsEventRow
    stmt = select(
        _family_sum("view"),
        _family_sum("click"),
        func.count(func.distinct(ev.actor_key)),
    )
    row = (await session.execute(EventFilter(since=since).apply(stmt))).one()
    return OverviewCounts(views=row[0] or 0, clicks=row[1] or 0, unique_visitors=row[2] or 0)


async def daily_trends(session: AsyncSession, since: Optional[datetime] = None) -> list[dict]:
    """Per UTC day views, clicks and unique visitors, oldest first.

    Only the most recent ``MAX_TREND_DAYS`` days with activity are returned.
    """
    ev = AnalyticsEventRow
    day = func.date(ev.created_at)
    stmt = (
        select(
            day.label("day"),
            _family_sum("view"),
            _family_sum("click"),
            func.count(func.distinct(ev.actor_key)),
        )
        .group_by(day)
        .order_by(day.desc())
        .limit(MAX_TREND_DAYS)
    )
    rows = (await session.execute(EventFilter(since=since).apply(stmt))).all()
    return [
        {"date": str(r[0]), "views": r[1] or 0, "clicks": r[2] or 0, "unique_visitors": r[3] or 0}
        for r in reversed(rows)
    ]


async def entity_breakdown(session: AsyncSession, since: Optional[datetime] = None) -> list[dict]:
    """Event count per entity type, largest first."""
    ev = AnalyticsEventRow
    count = func.count(ev.id)
    stmt = select(ev.entity_type, count).group_by(ev.entity_type).order_by(count.desc(), ev.entity_type.asc())
    rows = (await session.execute(EventFilter(since=since).apply(stmt))).all()
    return [{"name": r[0], "value": r[1]} for r in rows]


async def entity_stats(
    session: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    days: int = 30,
    now: Optional[datetime] = None,
) -> dict:
    """Totals for one entity since UTC midnight ``days`` ago, plus its rollup series."""
    ev = AnalyticsEventRow
    start = day_start(days, now)
    flt = EventFilter(entity_type=entity_type, entity_id=entity_id, since=start)
    stmt = select(
        _family_sum("view"),
        _family_sum("click"),
        _family_sum("impression"),
        func.count(func.distinct(ev.actor_key)),
    )
    row = (await session.execute(flt.apply(stmt))).one()

    entity_type = entity_type.value if isinstance(entity_type, EntityType) else entity_type
    da = DailyAnalyticsRow
    rollups = (await session.execute(
        select(da)
        .where(da.entity_type == entity_type, da.entity_id == entity_id, da.date >= start.date())
        .order_by(da.date.asc())
    )).scalars().all()

    return {
        "views": row[0] or 0,
        "clicks": row[1] or 0,
        "impressions": row[2] or 0,
        "unique_visitors": row[3] or 0,
        "daily": [
            {"date": r.date.isoformat(), "views": r.views, "clicks": r.clicks, "impressions": r.impressions}
            for r in rollups
        ],
    }


async def view_counts_by_range(
    session: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """Views of one entity in the last day, week, month and year."""
    ev = AnalyticsEventRow
    now = now or utcnow()
    ranges = {"daily": 1, "weekly": 7, "monthly": 30, "yearly": 365}
    columns = [
        func.sum(case((ev.created_at >= now - timedelta(days=d), 1), else_=0))
        for d in ranges.values()
    ]
    flt = EventFilter(
        entity_type=entity_type,
        entity_id=entity_id,
        event_type_contains="view",
        since=now - timedelta(days=max(ranges.values())),
    )
    row = (await session.execute(flt.apply(select(*columns)))).one()
    return {name: row[i] or 0 for i, name in enumerate(ranges)}


async def product_view_windows(
    session: AsyncSession,
    product_id: str,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """All-time product views plus views since UTC midnight today, 7 and 30 days ago."""
    ev = AnalyticsEventRow
    windows = {"today": day_start(0, now), "week": day_start(7, now), "month": day_start(30, now)}
    columns = [func.count(ev.id)] + [
        func.sum(case((ev.created_at >= start, 1), else_=0)) for start in windows.values()
    ]
    flt = EventFilter(event_type=EventType.PRODUCT_VIEW, entity_type=EntityType.PRODUCT, entity_id=product_id)
    row = (await session.execute(flt.apply(select(*columns)))).one()
    counts = {"total": row[0] or 0}
    counts.update({name: row[i + 1] or 0 for i, name in enumerate(windows)})
    return counts


async def trending_products(
    session: AsyncSession,
    period: TrendingPeriod = TrendingPeriod.WEEK,
    limit: Optional[int] = 10,
    now: Optional[datetime] = None,
    active_only: bool = False,
    category_ids: Optional[Sequence[str]] = None,
) -> list[TrendStat]:
    """Products ranked by ``views + 2 * unique visitors`` over the period.

    ``active_only`` drops events of inactive or deleted products;
    ``category_ids`` keeps only products in those categories.
    """
    ev = AnalyticsEventRow
    views = func.count(ev.id)
    uniques = func.count(func.distinct(ev.actor_key))
    score = views + 2 * uniques
    flt = EventFilter(
        event_type=EventType.PRODUCT_VIEW,
        entity_type=EntityType.PRODUCT,
        since=trending_since(period, now),
    )
    stmt = (
        select(ev.entity_id, views, uniques)
        .where(ev.entity_id.is_not(None))
        .group_by(ev.entity_id)
        .order_by(score.desc(), views.desc(), ev.entity_id.asc())
    )
    if active_only or category_ids is not None:
        products = select(ProductRow.id)
        if active_only:
            products = products.where(ProductRow.is_active.is_(True))
        if category_ids is not None:
            products = products.where(ProductRow.category_id.in_(list(category_ids)))
        stmt = stmt.where(ev.entity_id.in_(products))
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = (await session.execute(flt.apply(stmt))).all()
    return [TrendStat(entity_id=r[0], views=r[1], unique_visitors=r[2]) for r in rows]
