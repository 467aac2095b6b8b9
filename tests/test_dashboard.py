"""Tests for the admin analytics dashboard and per-entity stats endpoints."""
from __future__ import annotations

from datetime import timedelta

import pytest

from storefront.analytics.dedup import resolve_actor_key
from storefront.analytics.tables import AnalyticsEventRow
from storefront.db.tables import HeroBannerRow, TagRow, utcnow

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


def _event(event_type, entity_type, entity_id, session_id="s1", days_ago=0, name=None):
    return AnalyticsEventRow(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=name,
        session_id=session_id,
        actor_key=resolve_actor_key(session_id, None),
        created_at=utcnow() - timedelta(days=days_ago, minutes=1),
    )


@pytest.mark.asyncio
async def test_dashboard_requires_admin_key(client):
    resp = await client.get("/api/admin/analytics")
    assert resp.status_code == 403
    assert resp.json()["success"] is False

    resp = await client.get("/api/admin/analytics", headers={"X-Admin-Key": "wrong"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_dashboard_disabled_without_configured_key(client, monkeypatch):
    from config.settings import settings
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "")
    resp = await client.get("/api/admin/analytics", headers=ADMIN_HEADERS)
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_top_products_scenario(client, catalog):
    """Three views of p1 and one of p2 in the last week."""
    catalog.add_all([
        _event("product_view", "product", "p1", session_id="a", name="Chair"),
        _event("product_view", "product", "p1", session_id="b", name="Chair"),
        _event("product_view", "product", "p1", session_id="c", name="Chair"),
        _event("product_view", "product", "p2", session_id="a", name="Stool"),
        _event("product_view", "product", "p3", session_id="a", days_ago=20),
    ])
    await catalog.commit()

    resp = await client.get("/api/admin/analytics?period=7d", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    data = resp.json()["data"]
    top = [{k: p[k] for k in ("id", "views", "percentage")} for p in data["topProducts"]]
    assert top == [
        {"id": "p1", "views": 3, "percentage": 100},
        {"id": "p2", "views": 1, "percentage": 33},
    ]
    assert data["topProducts"][0]["uniqueVisitors"] == 3
    assert data["period"] == "7d"
    assert data["overview"]["totalViews"] == 4
    assert data["overview"]["uniqueVisitors"] == 3
    assert data["overview"]["totalProducts"] == 4


@pytest.mark.asyncio
async def test_top_product_name_falls_back_to_catalog(client, catalog):
    catalog.add(_event("product_view", "product", "p2"))
    await catalog.commit()
    data = (await client.get("/api/admin/analytics", headers=ADMIN_HEADERS)).json()["data"]
    assert data["topProducts"][0]["name"] == "Stool"


@pytest.mark.asyncio
async def test_categories_fall_back_to_product_count(client, catalog):
    data = (await client.get("/api/admin/analytics?period=30d", headers=ADMIN_HEADERS)).json()["data"]
    assert data["categoryStrategy"] == "product_count"
    cats = data["topCategories"]
    assert [c["id"] for c in cats] == ["c-chairs", "c-furniture"]
    assert cats[0]["productCount"] == 2
    assert all(c["views"] == 0 for c in cats)


@pytest.mark.asyncio
async def test_categories_ranked_by_views_when_tracked(client, catalog):
    catalog.add_all([
        _event("category_view", "category", "c-furniture", session_id="a"),
        _event("category_view", "category", "c-furniture", session_id="b"),
    ])
    await catalog.commit()
    data = (await client.get("/api/admin/analytics", headers=ADMIN_HEADERS)).json()["data"]
    assert data["categoryStrategy"] == "views"
    assert data["topCategories"][0]["id"] == "c-furniture"
    assert data["topCategories"][0]["views"] == 2


@pytest.mark.asyncio
async def test_banner_and_tag_stats(client, catalog):
    banner = await catalog.get(HeroBannerRow, "b1")
    banner.impressions = 8
    banner.clicks = 1
    tag = await catalog.get(TagRow, "t1")
    tag.clicks = 5
    catalog.add_all([_event("tag_click", "tag", "t1", session_id=f"s{i}") for i in range(7)])
    await catalog.commit()

    data = (await client.get("/api/admin/analytics", headers=ADMIN_HEADERS)).json()["data"]
    assert data["bannerStats"] == [{"id": "b1", "name": "Summer Sale", "impressions": 8, "clicks": 1, "ctr": 13}]
    assert data["tagStats"] == [{"id": "t1", "name": "Oak", "slug": "oak", "clicks": 7}]
    assert data["overview"]["totalBannerClicks"] == 1
    assert data["overview"]["totalTagClicks"] == 7


@pytest.mark.asyncio
async def test_click_totals_sum_each_entity(client, catalog):
    # b1/t1 only have stored counts, b2/t2 only have tracked events
    banner = await catalog.get(HeroBannerRow, "b1")
    banner.clicks = 3
    tag = await catalog.get(TagRow, "t1")
    tag.clicks = 4
    catalog.add_all([
        HeroBannerRow(id="b2", name="New Arrivals"),
        TagRow(id="t2", name="Walnut", slug="walnut"),
        _event("banner_click", "banner", "b2", session_id="a"),
        _event("banner_click", "banner", "b2", session_id="b"),
        _event("tag_click", "tag", "t2", session_id="a"),
        _event("tag_click", "tag", "t2", session_id="b"),
    ])
    await catalog.commit()

    data = (await client.get("/api/admin/analytics", headers=ADMIN_HEADERS)).json()["data"]
    assert {b["id"]: b["clicks"] for b in data["bannerStats"]} == {"b1": 3, "b2": 2}
    assert data["overview"]["totalBannerClicks"] == 5
    assert data["overview"]["totalTagClicks"] == 6
    assert data["overview"]["totalClicks"] == 5


@pytest.mark.asyncio
async def test_banner_ctr_zero_without_impressions(client, catalog):
    data = (await client.get("/api/admin/analytics", headers=ADMIN_HEADERS)).json()["data"]
    assert data["bannerStats"][0]["ctr"] == 0


@pytest.mark.asyncio
async def test_empty_dashboard_shape(client):
    resp = await client.get("/api/admin/analytics?period=all", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    data = resp.json()["data"]
    for key in ("overview", "topProducts", "topCategories", "bannerStats", "tagStats", "dailyTrends", "entityBreakdown"):
        assert key in data
    assert data["topProducts"] == []
    assert data["overview"]["totalViews"] == 0


@pytest.mark.asyncio
async def test_daily_trends_in_dashboard(client, catalog):
    catalog.add_all([
        _event("product_view", "product", "p1", session_id="a", days_ago=1),
        _event("banner_click", "banner", "b1", session_id="b"),
    ])
    await catalog.commit()
    trends = (await client.get("/api/admin/analytics?period=7d", headers=ADMIN_HEADERS)).json()["data"]["dailyTrends"]
    assert len(trends) == 2
    assert trends[0]["views"] == 1 and trends[0]["clicks"] == 0
    assert trends[1]["clicks"] == 1 and trends[1]["uniqueVisitors"] == 1


@pytest.mark.asyncio
async def test_invalid_period_is_400(client):
    resp = await client.get("/api/admin/analytics?period=1y", headers=ADMIN_HEADERS)
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_aggregation_failure_is_structured_500(client, monkeypatch):
    import storefront.api.admin as admin_api
    from sqlalchemy.exc import OperationalError

    async def failing(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("timeout"))

    monkeypatch.setattr(admin_api, "build_dashboard", failing)
    resp = await client.get("/api/admin/analytics", headers=ADMIN_HEADERS)
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Failed to load analytics"}


@pytest.mark.asyncio
async def test_entity_stats_endpoint(client, catalog):
    for sid in ("a", "b"):
        await client.post("/api/products/chair/view", json={"sessionId": sid})

    resp = await client.get("/api/admin/analytics/entities/product/p1?days=7", headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["entityType"] == "product"
    assert data["views"] == 2
    assert data["uniqueVisitors"] == 2
    assert len(data["daily"]) == 1
    assert data["daily"][0]["views"] == 2


@pytest.mark.asyncio
async def test_view_counts_endpoint(client, catalog):
    catalog.add_all([
        _event("product_view", "product", "p1", session_id="a"),
        _event("product_view", "product", "p1", session_id="a", days_ago=10),
    ])
    await catalog.commit()
    resp = await client.get("/api/admin/analytics/views/product/p1", headers=ADMIN_HEADERS)
    assert resp.json()["data"] == {"daily": 1, "weekly": 1, "monthly": 2, "yearly": 2}


@pytest.mark.asyncio
async def test_entity_stats_rejects_unknown_entity_type(client):
    resp = await client.get("/api/admin/analytics/entities/warehouse/w1", headers=ADMIN_HEADERS)
    assert resp.status_code == 400
