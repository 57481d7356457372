import pytest
from httpx import AsyncClient

from walletlink.config import settings


@pytest.mark.asyncio
async def test_health_endpoints(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "ok"
    assert payload["environment"] == "test"
    assert payload["nonce_store"] == "memory"
    assert payload["site_domain"] == "testserver"

    resp = await client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}

    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_health_db(client: AsyncClient):
    resp = await client.get("/health/db")
    assert resp.status_code == 200, resp.text
    payload = resp.json()
    assert payload["db"]["dialect"] == "sqlite"
    assert payload["db"]["reachable"] is True
    assert payload["wallet_bindings"] == 0


@pytest.mark.asyncio
async def test_health_redis_reports_memory_backend(client: AsyncClient):
    resp = await client.get("/health/redis")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "redis": {"enabled": False}, "nonce_store": "memory"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    resp = await client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_metrics_exposes_wallet_counters(client: AsyncClient, alice_wallet):
    await client.post("/api/v1/wallet/challenge", json={"purpose": "login", "address": alice_wallet.address})

    resp = await client.get("/metrics")
    assert resp.status_code == 200
    body = resp.text
    assert "walletlink_http_requests_total" in body
    assert 'path="/api/v1/wallet/challenge"' in body
    assert "walletlink_challenge_events_total" in body


@pytest.mark.asyncio
async def test_metrics_label_parameterized_and_unknown_paths(client: AsyncClient, alice_wallet):
    await client.get(f"/api/v1/wallet/accounts/{alice_wallet.address}")
    await client.get("/no/such/page")

    body = (await client.get("/metrics")).text

    assert 'path="/api/v1/wallet/accounts/{address}"' in body
    assert alice_wallet.address not in body
    assert 'path="__unmatched__"' in body


@pytest.mark.asyncio
async def test_rate_limit_returns_429(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_REQUESTS_PER_WINDOW", 2)
    monkeypatch.setattr(settings, "RATE_LIMIT_WINDOW_SECONDS", 3600)

    statuses = [(await client.get("/api/v1/healthz")).status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    resp = await client.get("/api/v1/healthz")
    assert resp.json()["error"]["code"] == "E016"
    assert resp.json()["error"]["details"] == {"window_seconds": 3600, "limit": 2}
