"""Job endpoints used ahead of funding."""
import pytest

from tradiepay.models import ApiScope, JobStatus, PaymentStatus, UserRole


@pytest.mark.anyio
async def test_create_and_assign_job(client, make_user, make_api_key):
    tradie = make_user(UserRole.TRADIE)
    helper = make_user(UserRole.HELPER)
    headers = make_api_key(ApiScope.user, tradie)

    created = await client.post("/jobs", json={"title": "Fence repair", "tradie_id": tradie.id}, headers=headers)
    assert created.status_code == 201, created.text
    job = created.json()
    assert job["status"] == "open"
    assert job["assigned_helper_id"] is None

    assigned = await client.post(f"/jobs/{job['id']}/assign", json={"helper_id": helper.id}, headers=headers)
    assert assigned.status_code == 200, assigned.text
    assert assigned.json()["status"] == "assigned"
    assert assigned.json()["assigned_helper_id"] == helper.id

    as_helper = await client.get(f"/jobs/{job['id']}", headers=make_api_key(ApiScope.user, helper))
    assert as_helper.status_code == 200


@pytest.mark.anyio
async def test_cannot_create_job_for_another_tradie(client, make_user, make_api_key):
    tradie = make_user(UserRole.TRADIE)
    other = make_user(UserRole.TRADIE)

    resp = await client.post(
        "/jobs", json={"title": "Roof", "tradie_id": tradie.id}, headers=make_api_key(ApiScope.user, other)
    )
    assert resp.status_code == 403


@pytest.mark.anyio
async def test_assign_requires_a_helper(client, make_user, make_job, make_api_key):
    tradie = make_user(UserRole.TRADIE)
    job = make_job(tradie)
    another_tradie = make_user(UserRole.TRADIE)

    resp = await client.post(
        f"/jobs/{job.id}/assign", json={"helper_id": another_tradie.id}, headers=make_api_key(ApiScope.user, tradie)
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "USER_NOT_FOUND"


@pytest.mark.anyio
async def test_funded_job_cannot_change_helper(client, funded_setup, make_user, make_payment, make_api_key):
    tradie, _, job = funded_setup()
    make_payment(job, status=PaymentStatus.PENDING)
    replacement = make_user(UserRole.HELPER)

    resp = await client.post(
        f"/jobs/{job.id}/assign", json={"helper_id": replacement.id}, headers=make_api_key(ApiScope.user, tradie)
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "JOB_NOT_ASSIGNABLE"


@pytest.mark.anyio
async def test_paid_job_cannot_be_reassigned(client, make_user, make_job, admin_headers):
    tradie = make_user(UserRole.TRADIE)
    helper = make_user(UserRole.HELPER)
    job = make_job(tradie, helper, status=JobStatus.PAID)

    resp = await client.post(f"/jobs/{job.id}/assign", json={"helper_id": helper.id}, headers=admin_headers)
    assert resp.status_code == 409
