"""Tests for rate limiting middleware."""
from __future__ import annotations

import pytest
from storefront.middleware.rate_limit import RateLimitStore, find_limit


def test_allows_within_limit():
    store = RateLimitStore()
    for i in range(5):
        allowed, count = store.check_and_record("test-key", 10, 60)
        assert allowed is True
        assert count == i + 1


def test_blocks_over_limit():
    store = RateLimitStore()
    for _ in range(10):
        store.check_and_record("block-key", 10, 60)
    allowed, count = store.check_and_record("block-key", 10, 60)
    assert allowed is False
    assert count == 10


def test_separate_keys():
    store = RateLimitStore()
    for _ in range(10):
        store.check_and_record("key-a", 10, 60)
    allowed, _ = store.check_and_record("key-b", 10, 60)
    assert allowed is True


def test_cleanup_removes_stale():
    store = RateLimitStore()
    store._windows["stale-key"]  # Create empty window
    store._cleanup_interval = 0  # Force cleanup on next check
    store.check_and_record("active-key", 10, 60)
    assert "stale-key" not in store._windows


def test_most_specific_limit_wins():
    assert find_limit("/api/analytics/track") == (300, 60, "track")
    assert find_limit("/api/admin/analytics") == (60, 60, "admin")
    assert find_limit("/api/products/chair/view") == (120, 60, "api")
    assert find_limit("/health") is None
    assert find_limit("/metrics") is None


# Integration tests via API client

@pytest.mark.asyncio
async def test_rate_limit_headers(client):
    """API responses include rate limit headers."""
    resp = await client.get("/api/products/trending")
    assert resp.headers["x-ratelimit-limit"] == "120"
    assert resp.headers["x-ratelimit-remaining"] == "119"


@pytest.mark.asyncio
async def test_health_not_rate_limited(client):
    """Health endpoint is exempt from rate limiting."""
    for _ in range(5):
        resp = await client.get("/health")
        assert resp.status_code == 200
    assert "x-ratelimit-limit" not in resp.headers


@pytest.mark.asyncio
async def test_admin_flood_gets_429(client, monkeypatch):
    from storefront.middleware import rate_limit

    monkeypatch.setattr(rate_limit, "_RATE_LIMITS", [("/api/admin/", 2, 60, "admin")])
    headers = {"X-Admin-Key": "test-admin-key"}
    for _ in range(2):
        assert (await client.get("/api/admin/analytics", headers=headers)).status_code == 200

    resp = await client.get("/api/admin/analytics", headers=headers)
    assert resp.status_code == 429
    assert resp.headers["retry-after"] == "60"
    data = resp.json()
    assert data["success"] is False
    assert data["error"] == "rate_limited"
    assert data["retryAfter"] == 60


@pytest.mark.asyncio
async def test_buckets_are_per_client_ip(client, monkeypatch):
    from storefront.middleware import rate_limit

    monkeypatch.setattr(rate_limit, "_RATE_LIMITS", [("/api/", 1, 60, "api")])
    first = await client.get("/api/products/trending", headers={"X-Forwarded-For": "198.51.100.1"})
    other = await client.get("/api/products/trending", headers={"X-Forwarded-For": "198.51.100.2"})
    again = await client.get("/api/products/trending", headers={"X-Forwarded-For": "198.51.100.1"})
    assert first.status_code == 200
    assert other.status_code == 200
    assert again.status_code == 429
