"""Health endpoint."""
import pytest


@pytest.mark.anyio
async def test_health_reports_db_migrations_and_stripe(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["service"] == "tradiepay-backend"
    assert body["env"] == "test"
    assert body["db_ok"] is True
    assert body["migrations_status"] == "up_to_date"
    assert body["stripe"]["enabled"] is True
    assert body["stripe"]["api_key_configured"] is True
    assert body["stripe"]["webhook_configured"] is True
    assert len(body["stripe"]["webhook_secret_fingerprint"]) == 8
    assert body["escrow"] == {"currency": "AUD", "platform_fee_percent": "5"}


@pytest.mark.anyio
async def test_health_degraded_when_db_unreachable(client, monkeypatch):
    monkeypatch.setattr("tradiepay.routers.health._db_status", lambda: "error")

    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "degraded"
    assert body["migrations_status"] == "unknown"
