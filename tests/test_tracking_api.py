"""Tests for the tracking ingestion and entity view/click endpoints."""
from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from storefront.analytics.tables import AnalyticsEventRow
from storefront.db.tables import CategoryRow, HeroBannerRow, ProductRow

CHAIR_VIEW = {"eventType": "product_view", "entityType": "product", "entityId": "p1", "entityName": "Chair"}


async def _total_views(session, product_id="p1") -> int:
    return (await session.execute(select(ProductRow.total_views).where(ProductRow.id == product_id))).scalar()


async def _events(session) -> list[AnalyticsEventRow]:
    return list((await session.execute(select(AnalyticsEventRow))).scalars().all())


@pytest.mark.asyncio
async def test_repeat_product_view_is_skipped(client, catalog):
    """Same IP, no session id: second view inside the window is not stored."""
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    first = await client.post("/api/analytics/track", json=CHAIR_VIEW, headers=headers)
    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["eventId"]
    assert await _total_views(catalog) == 1

    second = await client.post("/api/analytics/track", json=CHAIR_VIEW, headers=headers)
    assert second.status_code == 200
    assert second.json() == {"success": True, "skipped": True}
    assert await _total_views(catalog) == 1

    events = await _events(catalog)
    assert len(events) == 1
    assert events[0].ip == "203.0.113.7"
    assert events[0].actor_key == "203.0.113.7"


@pytest.mark.asyncio
async def test_ip_comes_from_headers_not_body(client, catalog):
    payload = {**CHAIR_VIEW, "ip": "6.6.6.6"}
    await client.post("/api/analytics/track", json=payload, headers={"X-Real-IP": "198.51.100.4"})
    events = await _events(catalog)
    assert events[0].ip == "198.51.100.4"


@pytest.mark.asyncio
async def test_session_id_separates_actors(client, catalog):
    for sid in ("sess_1", "sess_2"):
        resp = await client.post("/api/analytics/track", json={**CHAIR_VIEW, "sessionId": sid})
        assert "eventId" in resp.json()
    assert await _total_views(catalog) == 2


@pytest.mark.asyncio
async def test_header_metadata_fills_gaps(client, catalog):
    await client.post(
        "/api/analytics/track",
        json={**CHAIR_VIEW, "metadata": {"referrer": "https://news.example", "utmCampaign": "spring", "custom": 1}},
        headers={"User-Agent": "pytest-agent", "Referer": "https://ignored.example"},
    )
    meta = (await _events(catalog))[0].event_metadata
    assert meta["referrer"] == "https://news.example"
    assert meta["user_agent"] == "pytest-agent"
    assert meta["utm_campaign"] == "spring"
    assert meta["custom"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"entityType": "product", "entityId": "p1"},
    {"eventType": "product_view", "entityId": "p1"},
    {"eventType": "teleport", "entityType": "product"},
    {"eventType": "product_view", "entityType": "warehouse"},
])
async def test_missing_or_unknown_types_are_400(client, payload):
    resp = await client.post("/api/analytics/track", json=payload)
    assert resp.status_code == 400
    data = resp.json()
    assert data["success"] is False
    assert data["error"] == "validation_error"
    assert data["details"]


@pytest.mark.asyncio
async def test_insert_failure_is_500(client, monkeypatch):
    import storefront.api.tracking as tracking_api

    async def failing(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(tracking_api, "track_event", failing)
    resp = await client.post("/api/analytics/track", json=CHAIR_VIEW)
    assert resp.status_code == 500
    data = resp.json()
    assert data == {"success": False, "error": "Failed to track event"}


@pytest.mark.asyncio
async def test_insert_failure_detail_in_debug(client, monkeypatch):
    import storefront.api.tracking as tracking_api
    from config.settings import settings

    async def failing(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(tracking_api, "track_event", failing)
    monkeypatch.setattr(settings, "DEBUG", True)
    resp = await client.post("/api/analytics/track", json=CHAIR_VIEW)
    assert resp.status_code == 500
    assert "database is locked" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_counter_failure_does_not_fail_request(client, catalog, monkeypatch):
    from storefront.analytics import counters

    async def broken(*args, **kwargs):
        raise RuntimeError("counter store down")

    monkeypatch.setattr(counters, "increment_entity_counters", broken)
    resp = await client.post("/api/analytics/track", json=CHAIR_VIEW)
    assert resp.status_code == 200
    assert resp.json()["eventId"]
    assert len(await _events(catalog)) == 1
    assert await _total_views(catalog) == 0


# --- Batch ---

@pytest.mark.asyncio
async def test_batch_counts_accepted_events(client, catalog):
    events = [
        {**CHAIR_VIEW, "sessionId": "sess_1"},
        {**CHAIR_VIEW, "sessionId": "sess_1"},  # duplicate
        {**CHAIR_VIEW, "sessionId": "sess_2"},
        {"eventType": "banner_click", "entityType": "banner", "entityId": "b1", "sessionId": "sess_1"},
        {"eventType": "banner_click", "entityType": "banner", "entityId": "b1", "sessionId": "sess_1"},
    ]
    resp = await client.put("/api/analytics/track", json={"events": events})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "count": 4}
    assert await _total_views(catalog) == 2
    assert (await catalog.execute(select(HeroBannerRow.clicks))).scalar() == 2


@pytest.mark.asyncio
async def test_batch_limits(client):
    resp = await client.put("/api/analytics/track", json={"events": []})
    assert resp.status_code == 400
    resp = await client.put("/api/analytics/track", json={"events": [CHAIR_VIEW] * 101})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_batch_rejects_invalid_member(client, catalog):
    resp = await client.put("/api/analytics/track", json={"events": [CHAIR_VIEW, {"entityType": "product"}]})
    assert resp.status_code == 400
    assert (await catalog.execute(select(func.count(AnalyticsEventRow.id)))).scalar() == 0


# --- Entity-scoped endpoints ---

@pytest.mark.asyncio
async def test_product_view_endpoint(client, catalog):
    resp = await client.post("/api/products/chair/view", json={"sessionId": "sess_1", "userId": "u1"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    event = (await _events(catalog))[0]
    assert (event.event_type, event.entity_id, event.entity_slug, event.entity_name) == ("product_view", "p1", "chair", "Chair")
    assert event.user_id == "u1"
    assert await _total_views(catalog) == 1

    # refresh within the window
    await client.post("/api/products/chair/view", json={"sessionId": "sess_1"})
    assert await _total_views(catalog) == 1


@pytest.mark.asyncio
async def test_product_view_without_body(client, catalog):
    resp = await client.post("/api/products/chair/view")
    assert resp.status_code == 200
    assert len(await _events(catalog)) == 1


@pytest.mark.asyncio
async def test_session_header_used_when_body_has_none(client, catalog):
    await client.post("/api/products/chair/view", headers={"X-Session-ID": "sess_hdr"})
    assert (await _events(catalog))[0].actor_key == "sess_hdr"


@pytest.mark.asyncio
async def test_view_of_missing_or_inactive_product_is_404(client, catalog):
    for slug in ("nope", "retired"):
        resp = await client.post(f"/api/products/{slug}/view")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Product not found"}
    assert await _events(catalog) == []


@pytest.mark.asyncio
async def test_category_view_endpoint(client, catalog):
    resp = await client.post("/api/categories/chairs/view", json={"sessionId": "sess_1"})
    assert resp.status_code == 200
    views = (await catalog.execute(select(CategoryRow.total_views).where(CategoryRow.id == "c-chairs"))).scalar()
    assert views == 1

    resp = await client.post("/api/categories/hidden/view")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_banner_clicks_bypass_dedup(client, catalog):
    for _ in range(3):
        resp = await client.post("/api/hero-banners/b1/click", json={"sessionId": "sess_1"})
        assert resp.status_code == 200
    assert (await catalog.execute(select(HeroBannerRow.clicks))).scalar() == 3
    assert len(await _events(catalog)) == 3

    resp = await client.post("/api/hero-banners/missing/click")
    assert resp.status_code == 404
