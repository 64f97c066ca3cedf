from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from listing_reference.api.app import create_app
from listing_reference.errors import UpstreamError, UpstreamTimeout


@pytest.fixture()
def client(make_context):
    ctx = make_context(max_retries=0)
    return TestClient(create_app(ctx)), ctx


def test_health(client):
    http, _ = client
    assert http.get("/health").json() == {"status": "ok"}


def test_resolve_then_cache(client, upstream):
    http, _ = client
    r = http.get("/api/reference/086983")
    assert r.status_code == 200
    body = r.json()
    assert body["url"] == "/listings/apartment-for-rent-at-east-legon-086983"
    assert body["source"] == "api"
    r = http.get("/api/reference/086983")
    assert r.json()["source"] == "cache"
    assert upstream.calls == ["086983"]


def test_not_found(client):
    http, _ = client
    r = http.get("/api/reference/999999")
    assert r.status_code == 404
    assert r.json()["detail"] == "Property not available"


def test_invalid_reference(client, upstream):
    http, _ = client
    r = http.get("/api/reference/--")
    assert r.status_code == 400
    assert upstream.calls == []


def test_upstream_failures(client, upstream):
    http, _ = client
    upstream.failures = [UpstreamError("down", status=503), UpstreamTimeout("slow")]
    assert http.get("/api/reference/111111").status_code == 502
    assert http.get("/api/reference/222222").status_code == 504


def test_rate_limited_per_trusted_client_header(make_context):
    http = TestClient(create_app(make_context(max_retries=0, trust_client_header=True)))
    headers = {"X-Client-Id": "browser-1"}
    for _ in range(5):
        assert http.get("/api/reference/086983", headers=headers).status_code == 200
    r = http.get("/api/reference/086983", headers=headers)
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"
    other = http.get("/api/reference/086983", headers={"X-Client-Id": "browser-2"})
    assert other.status_code == 200


def test_metrics_endpoint(client):
    http, _ = client
    http.get("/api/reference/086983")
    http.get("/api/reference/086983")
    data = http.get("/api/reference-metrics").json()
    assert data["total_requests"] == 2
    assert data["hits"] == 1
    assert data["cache_size"] == 1
    assert data["alerts"] == []


def test_untrusted_client_header_is_ignored(client):
    http, ctx = client
    statuses = [
        http.get("/api/reference/086983", headers={"X-Client-Id": f"c{i}"}).status_code
        for i in range(20)
    ]
    assert statuses[:5] == [200] * 5
    assert set(statuses[5:]) == {429}
    assert len(ctx.limiter) == 1


def test_rotating_trusted_ids_are_cleaned_up(make_context, clock):
    ctx = make_context(max_retries=0, trust_client_header=True)
    http = TestClient(create_app(ctx))
    for i in range(50):
        http.get("/api/reference/086983", headers={"X-Client-Id": f"c{i}"})
    assert len(ctx.limiter) == 50
    clock.advance(5 * 60)
    http.get("/api/reference/086983", headers={"X-Client-Id": "late"})
    assert len(ctx.limiter) == 1
