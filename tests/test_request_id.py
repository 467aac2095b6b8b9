"""Tests for request ID tracing middleware."""
import logging

import pytest


@pytest.mark.asyncio
async def test_response_includes_request_id(client):
    """Every response should have X-Request-ID header."""
    resp = await client.get("/health")
    assert "x-request-id" in resp.headers
    rid = resp.headers["x-request-id"]
    assert len(rid) == 36  # UUID format


@pytest.mark.asyncio
async def test_client_request_id_honored(client):
    """If client sends X-Request-ID, server should echo it back."""
    custom_id = "my-trace-12345"
    resp = await client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers["x-request-id"] == custom_id


@pytest.mark.asyncio
async def test_unique_ids_per_request(client):
    """Each request gets a unique ID."""
    r1 = await client.get("/health")
    r2 = await client.get("/health")
    assert r1.headers["x-request-id"] != r2.headers["x-request-id"]


@pytest.mark.asyncio
async def test_error_responses_carry_request_id(client):
    resp = await client.post("/api/products/nope/view", headers={"X-Request-ID": "trace-404"})
    assert resp.status_code == 404
    assert resp.headers["x-request-id"] == "trace-404"


def test_log_records_get_request_id():
    from storefront.logging_config import RequestIDFilter
    from storefront.middleware.request_id import request_id_var

    record = logging.LogRecord("storefront", logging.INFO, __file__, 1, "hello", None, None)
    token = request_id_var.set("trace-abc")
    try:
        RequestIDFilter().filter(record)
    finally:
        request_id_var.reset(token)
    assert record.request_id == "trace-abc"

    outside = logging.LogRecord("storefront", logging.INFO, __file__, 1, "hello", None, None)
    RequestIDFilter().filter(outside)
    assert outside.request_id == "-"
