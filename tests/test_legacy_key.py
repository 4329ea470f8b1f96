"""Tests for the legacy development key."""
import pytest
from sqlalchemy import select

from tradiepay import config
from tradiepay.models import AuditLog


@pytest.mark.anyio
async def test_legacy_key_rejected_outside_dev(monkeypatch, client, legacy_headers):
    monkeypatch.setattr(config, "DEV_API_KEY_ALLOWED", False)

    resp = await client.get("/escrow-payments", headers=legacy_headers)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "LEGACY_KEY_FORBIDDEN"


@pytest.mark.anyio
async def test_legacy_key_accepted_in_dev_and_audited(client, db_session, legacy_headers):
    resp = await client.post(
        "/users",
        json={"username": "legacy-made", "email": "legacy@example.com"},
        headers=legacy_headers,
    )
    assert resp.status_code == 201, resp.text

    audit_entry = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "LEGACY_API_KEY_USED").order_by(AuditLog.at.desc())
    ).first()
    assert audit_entry is not None
    assert audit_entry.data_json.get("env") == "test"
