"""API key authentication and scope enforcement."""
from datetime import timedelta

import pytest

from tradiepay.models import ApiKey, ApiScope, UserRole
from tradiepay.utils.apikey import hash_key
from tradiepay.utils.time import utcnow


@pytest.mark.anyio
async def test_missing_key(client):
    resp = await client.get("/escrow-payments")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "NO_API_KEY"


@pytest.mark.anyio
async def test_unknown_inactive_and_expired_keys(client, db_session, make_api_key):
    unknown = await client.get("/escrow-payments", headers={"X-API-Key": "not-a-key"})
    assert unknown.status_code == 401
    assert unknown.json()["error"]["code"] == "UNAUTHORIZED"

    inactive = await client.get("/escrow-payments", headers=make_api_key(ApiScope.admin, is_active=False))
    assert inactive.status_code == 401

    db_session.add(
        ApiKey(
            name="expired",
            prefix="expired",
            key_hash=hash_key("expired-token"),
            scope=ApiScope.admin,
            is_active=True,
            expires_at=utcnow() - timedelta(minutes=1),
        )
    )
    db_session.commit()
    expired = await client.get("/escrow-payments", headers={"X-API-Key": "expired-token"})
    assert expired.status_code == 401


@pytest.mark.anyio
async def test_user_key_cannot_manage_users_or_keys(client, make_user, make_api_key):
    headers = make_api_key(ApiScope.user, make_user())

    users = await client.post("/users", json={"username": "x", "email": "x@example.com"}, headers=headers)
    assert users.status_code == 403
    assert users.json()["error"]["code"] == "INSUFFICIENT_SCOPE"

    keys = await client.get("/apikeys", headers=headers)
    assert keys.status_code == 403


@pytest.mark.anyio
async def test_support_creates_users(client, support_headers):
    resp = await client.post(
        "/users",
        json={"username": "helper-sam", "email": "sam@example.com", "role": "helper"},
        headers=support_headers,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["role"] == "helper"

    fetched = await client.get(f"/users/{resp.json()['id']}", headers=support_headers)
    assert fetched.status_code == 200
    assert fetched.json()["email"] == "sam@example.com"


@pytest.mark.anyio
async def test_admin_issues_and_revokes_user_keys(client, db_session, make_user, admin_headers):
    tradie = make_user(UserRole.TRADIE)

    unbound = await client.post("/apikeys", json={"name": "unbound", "scope": "user"}, headers=admin_headers)
    assert unbound.status_code == 422
    assert unbound.json()["error"]["code"] == "APIKEY_USER_REQUIRED"

    created = await client.post(
        "/apikeys", json={"name": "tradie-app", "scope": "user", "user_id": tradie.id}, headers=admin_headers
    )
    assert created.status_code == 201, created.text
    raw_key = created.json()["key"]
    key_id = created.json()["id"]

    listed = await client.get("/escrow-payments", headers={"Authorization": f"Bearer {raw_key}"})
    assert listed.status_code == 200
    stored = db_session.get(ApiKey, key_id)
    db_session.refresh(stored)
    assert stored.last_used_at is not None

    revoked = await client.delete(f"/apikeys/{key_id}", headers=admin_headers)
    assert revoked.status_code == 204
    after = await client.get("/escrow-payments", headers={"Authorization": f"Bearer {raw_key}"})
    assert after.status_code == 401

    db_session.refresh(stored)
    assert stored.is_active is False
