"""Counter projection: denormalised catalog counters and daily rollups.

Runs after the event row is committed. Every increment is a single atomic
``UPDATE ... SET col = col + n`` so concurrent projections never lose counts.
A product view also rewrites the product score from its view history.
Failures are logged and reported to the caller as ``False``; they never undo
the event itself.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.analytics import aggregation as agg
from storefront.analytics.tables import DailyAnalyticsRow
from storefront.db.engine import async_session
from storefront.db.tables import CategoryRow, HeroBannerRow, ProductRow, TagRow, utcnow
from storefront.middleware.metrics import metrics
from storefront.models.analytics import EntityType, EventType, is_click, is_impression, is_view

logger = logging.getLogger(__name__)

# (entity type, event family) -> (table, {column: increment})
COUNTER_RULES: dict[tuple[str, str], tuple[type, dict[str, int]]] = {
    ("product", "view"): (ProductRow, {"total_views": 1}),
    ("category", "view"): (CategoryRow, {"total_views": 1}),
    ("banner", "impression"): (HeroBannerRow, {"impressions": 1}),
    ("banner", "click"): (HeroBannerRow, {"clicks": 1}),
    ("tag", "impression"): (TagRow, {"impressions": 1}),
    ("tag", "click"): (TagRow, {"clicks": 1}),
}


def _event_family(event_type: str) -> Optional[str]:
    if is_impression(event_type):
        return "impression"
    if is_view(event_type):
        return "view"
    if is_click(event_type):
        return "click"
    return None


def _str(value: EventType | EntityType | str) -> str:
    return value.value if isinstance(value, (EventType, EntityType)) else value


def rollup_increments(event_type: EventType | str) -> dict[str, int]:
    """Which DailyAnalytics columns an event bumps. Empty for e.g. ``search``."""
    event_type = _str(event_type)
    inc: dict[str, int] = {}
    if is_view(event_type):
        inc["views"] = 1
    if is_click(event_type):
        inc["clicks"] = 1
    if is_impression(event_type):
        inc["impressions"] = 1
    return inc


async def increment_entity_counters(
    session: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    event_type: EventType | str,
) -> bool:
    """Apply the counter rule for this event. Returns True if a rule matched."""
    family = _event_family(_str(event_type))
    rule = COUNTER_RULES.get((_str(entity_type), family)) if family else None
    if rule is None:
        return False
    table, increments = rule
    values = {col: getattr(table, col) + n for col, n in increments.items()}
    await session.execute(update(table).where(table.id == entity_id).values(**values))
    return True


NEW_PRODUCT_DAYS = 60


def product_score(views: dict[str, int], discount: float, created_at: Optional[datetime], now: datetime) -> float:
    """Ranking score: recent views weigh most, with a boost for discounts and new products."""
    is_new = created_at is not None and now - created_at <= timedelta(days=NEW_PRODUCT_DAYS)
    raw = (
        views.get("today", 0) * 4
        + views.get("week", 0) * 2
        + views.get("month", 0) * 1.2
        + views.get("total", 0) * 0.5
        + (discount or 0) * 0.8
        + (6 if is_new else 0)
    )
    return round(raw, 2)


async def recompute_product_score(session: AsyncSession, product_id: str, now: Optional[datetime] = None) -> Optional[float]:
    """Recompute a product's score from its view events and store it. None if the product is gone."""
    now = now or utcnow()
    row = (await session.execute(
        select(ProductRow.discount, ProductRow.created_at).where(ProductRow.id == product_id)
    )).one_or_none()
    if row is None:
        return None
    views = await agg.product_view_windows(session, product_id, now)
    score = product_score(views, row.discount, row.created_at, now)
    await session.execute(update(ProductRow).where(ProductRow.id == product_id).values(score=score))
    return score


async def _bump_rollup(session: AsyncSession, day: date, entity_type: str, entity_id: str, inc: dict[str, int]) -> int:
    values = {col: getattr(DailyAnalyticsRow, col) + n for col, n in inc.items()}
    result = await session.execute(
        update(DailyAnalyticsRow)
        .where(
            DailyAnalyticsRow.date == day,
            DailyAnalyticsRow.entity_type == entity_type,
            DailyAnalyticsRow.entity_id == entity_id,
        )
        .values(**values, updated_at=utcnow())
    )
    return result.rowcount


async def upsert_daily_rollup(
    session: AsyncSession,
    *,
    day: date,
    entity_type: EntityType | str,
    entity_id: str,
    event_type: EventType | str,
    entity_slug: Optional[str] = None,
    entity_name: Optional[str] = None,
) -> bool:
    """Increment (or create) the rollup row for one entity on one UTC day.

    Commits on success. Returns False when the event bumps no rollup column.
    """
    inc = rollup_increments(event_type)
    if not inc:
        return False
    entity_type = _str(entity_type)

    if await _bump_rollup(session, day, entity_type, entity_id, inc):
        await session.commit()
        return True

    session.add(DailyAnalyticsRow(
        date=day,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_slug=entity_slug,
        entity_name=entity_name,
        views=inc.get("views", 0),
        clicks=inc.get("clicks", 0),
        impressions=inc.get("impressions", 0),
    ))
    try:
        await session.commit()
    except IntegrityError:
        # Another projection created the row first
        await session.rollback()
        await _bump_rollup(session, day, entity_type, entity_id, inc)
        await session.commit()
    return True


async def project_event(
    event_type: EventType | str,
    entity_type: EntityType | str,
    entity_id: Optional[str],
    entity_slug: Optional[str] = None,
    entity_name: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> bool:
    """Project one stored event onto catalog counters and the daily rollup.

    Opens its own session so it can run as a background task after the
    request session is gone. Never raises.
    """
    if not entity_id:
        return True
    occurred_at = occurred_at or utcnow()
    try:
        async with async_session() as session:
            await increment_entity_counters(session, entity_type, entity_id, event_type)
            if _str(entity_type) == EntityType.PRODUCT.value and is_view(_str(event_type)):
                await recompute_product_score(session, entity_id)
            await session.commit()
            await upsert_daily_rollup(
                session,
                day=occurred_at.date(),
                entity_type=entity_type,
                entity_id=entity_id,
                event_type=event_type,
                entity_slug=entity_slug,
                entity_name=entity_name,
            )
        return True
    except Exception:
        logger.exception("Counter projection failed for %s %s/%s", _str(event_type), _str(entity_type), entity_id)
        metrics.record_tracking("projection_failed")
        return False
