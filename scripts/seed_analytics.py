#!/usr/bin/env python3
"""Seed a development database with a small catalog and tracked interactions.

Generates DAYS days of synthetic storefront behaviour:
- Growing daily visitor count
- Page views, product/category views and banner impressions/clicks
- Diurnal pattern (more browsing at lunch and in the evening)

Events go in through the same projection the API uses, so catalog counters
and daily rollups match the event store afterwards.
"""
import asyncio
import os
import random
import sys
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from storefront.analytics import counters
from storefront.analytics.dedup import resolve_actor_key
from storefront.analytics.tables import AnalyticsEventRow, DailyAnalyticsRow
from storefront.db.engine import async_session, engine
from storefront.db.tables import Base, CategoryRow, HeroBannerRow, ProductRow, TagRow, utcnow

# --- Config ---
DAYS = 30
BASE_VISITORS = 20
GROWTH_RATE = 0.05

CATEGORIES = [
    ("cat-furniture", "Furniture", None),
    ("cat-chairs", "Chairs", "cat-furniture"),
    ("cat-tables", "Tables", "cat-furniture"),
    ("cat-lighting", "Lighting", None),
]

PRODUCTS = [
    ("p-oak-chair", "Oak Dining Chair", "cat-chairs"),
    ("p-lounge-chair", "Lounge Chair", "cat-chairs"),
    ("p-desk-chair", "Ergonomic Desk Chair", "cat-chairs"),
    ("p-walnut-table", "Walnut Dining Table", "cat-tables"),
    ("p-side-table", "Marble Side Table", "cat-tables"),
    ("p-floor-lamp", "Arc Floor Lamp", "cat-lighting"),
    ("p-pendant", "Brass Pendant Light", "cat-lighting"),
]

BANNERS = [("banner-summer", "Summer Sale"), ("banner-new", "New Arrivals")]
TAGS = [("tag-oak", "Oak"), ("tag-sale", "Sale"), ("tag-handmade", "Handmade")]

PAGES = ["/", "/products", "/categories", "/about", "/contact"]

# Diurnal pattern (hour → relative activity, peaks at 12pm and 8pm)
HOUR_WEIGHTS = {
    0: 0.02, 1: 0.01, 2: 0.01, 3: 0.01, 4: 0.01, 5: 0.02,
    6: 0.03, 7: 0.05, 8: 0.06, 9: 0.06, 10: 0.06, 11: 0.08,
    12: 0.10, 13: 0.08, 14: 0.06, 15: 0.05, 16: 0.05, 17: 0.06,
    18: 0.08, 19: 0.09, 20: 0.10, 21: 0.08, 22: 0.05, 23: 0.03,
}


def weighted_hour() -> int:
    return random.choices(list(HOUR_WEIGHTS), weights=list(HOUR_WEIGHTS.values()), k=1)[0]


def make_ts(day_offset: int) -> datetime:
    """A timestamp on the given day, counted forward from DAYS ago."""
    base = utcnow() - timedelta(days=DAYS - day_offset)
    return base.replace(hour=weighted_hour(), minute=random.randint(0, 59), second=random.randint(0, 59), microsecond=0)


def make_event(ts: datetime, session_id: str, ip: str, event_type: str, entity_type: str, entity_id: str, slug=None, name=None) -> AnalyticsEventRow:
    return AnalyticsEventRow(
        id=str(uuid.uuid4()),
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_slug=slug,
        entity_name=name,
        session_id=session_id,
        ip=ip,
        actor_key=resolve_actor_key(session_id, ip),
        event_metadata={"page": slug} if entity_type == "page" else {},
        created_at=ts,
    )


async def seed_catalog() -> None:
    async with async_session() as session:
        for model in (AnalyticsEventRow, DailyAnalyticsRow, ProductRow, TagRow, HeroBannerRow, CategoryRow):
            await session.execute(delete(model))
        for cid, name, parent in CATEGORIES:
            session.add(CategoryRow(id=cid, name=name, slug=cid.removeprefix("cat-"), parent_id=parent))
        for pid, name, cid in PRODUCTS:
            session.add(ProductRow(id=pid, name=name, slug=pid.removeprefix("p-"), category_id=cid))
        for bid, name in BANNERS:
            session.add(HeroBannerRow(id=bid, name=name))
        for tid, name in TAGS:
            session.add(TagRow(id=tid, name=name, slug=tid.removeprefix("tag-")))
        await session.commit()
    print("Seeded catalog")


def generate_events() -> list[AnalyticsEventRow]:
    events: list[AnalyticsEventRow] = []
    for day in range(DAYS):
        visitors = int(BASE_VISITORS * (1 + GROWTH_RATE) ** day)
        for _ in range(visitors):
            session_id = f"sess_seed_{uuid.uuid4().hex[:13]}"
            ip = f"10.0.{random.randint(0, 255)}.{random.randint(1, 254)}"
            ts = make_ts(day)

            page = random.choice(PAGES)
            events.append(make_event(ts, session_id, ip, "page_view", "page", page, page, page))

            bid, bname = random.choice(BANNERS)
            events.append(make_event(ts, session_id, ip, "banner_impression", "banner", bid, None, bname))
            if random.random() < 0.08:
                events.append(make_event(ts + timedelta(seconds=5), session_id, ip, "banner_click", "banner", bid, None, bname))

            cid, cname, _ = random.choice(CATEGORIES)
            events.append(make_event(ts + timedelta(seconds=20), session_id, ip, "category_view", "category", cid, cid.removeprefix("cat-"), cname))

            for n in range(random.choices([0, 1, 2, 3], weights=[0.2, 0.4, 0.3, 0.1], k=1)[0]):
                pid, pname, _ = random.choice(PRODUCTS)
                view_ts = ts + timedelta(minutes=n + 1)
                events.append(make_event(view_ts, session_id, ip, "product_view", "product", pid, pid.removeprefix("p-"), pname))
                if random.random() < 0.1:
                    events.append(make_event(view_ts + timedelta(seconds=30), session_id, ip, "add_to_inquiry", "product", pid, pid.removeprefix("p-"), pname))

            if random.random() < 0.05:
                tid, tname = random.choice(TAGS)
                events.append(make_event(ts + timedelta(minutes=5), session_id, ip, "tag_click", "tag", tid, tid.removeprefix("tag-"), tname))
    return events


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await seed_catalog()
    events = generate_events()
    print(f"Generated {len(events)} events")

    BATCH = 500
    async with async_session() as session:
        for i in range(0, len(events), BATCH):
            session.add_all(events[i:i + BATCH])
            await session.commit()
            print(f"  Inserted batch {i // BATCH + 1}/{(len(events) + BATCH - 1) // BATCH}")

    failed = 0
    for ev in events:
        ok = await counters.project_event(ev.event_type, ev.entity_type, ev.entity_id, ev.entity_slug, ev.entity_name, ev.created_at)
        failed += not ok
    print(f"Projected counters ({failed} failures)")

    print(f"\n✅ Seeded {len(events)} analytics events across {DAYS} days")


if __name__ == "__main__":
    asyncio.run(seed())
