"""Who may act on jobs, payments and payout accounts."""
import pytest

from tradiepay.models import ApiKey, ApiScope, EscrowPayment, Job, PaymentStatus
from tradiepay.services import escrow_policy
from tradiepay.utils.errors import ForbiddenActor

TRADIE_ID = 10
HELPER_ID = 20


def _key(scope: ApiScope, user_id: int | None = None) -> ApiKey:
    return ApiKey(name="k", prefix="p", key_hash="h", scope=scope, user_id=user_id, is_active=True)


def _payment(status: PaymentStatus = PaymentStatus.PENDING) -> EscrowPayment:
    return EscrowPayment(id=1, job_id=5, tradie_id=TRADIE_ID, helper_id=HELPER_ID, status=status)


def test_fund():
    job = Job(id=5, title="Deck", tradie_id=TRADIE_ID, assigned_helper_id=HELPER_ID)
    escrow_policy.ensure_can_fund(_key(ApiScope.user, TRADIE_ID), job)
    escrow_policy.ensure_can_fund(_key(ApiScope.support), job)
    with pytest.raises(ForbiddenActor):
        escrow_policy.ensure_can_fund(_key(ApiScope.user, HELPER_ID), job)
    with pytest.raises(ForbiddenActor):
        escrow_policy.ensure_can_fund(_key(ApiScope.user), job)


def test_release():
    payment = _payment(PaymentStatus.HELD)
    escrow_policy.ensure_can_release(_key(ApiScope.admin), payment)
    escrow_policy.ensure_can_release(_key(ApiScope.user, TRADIE_ID), payment)
    for key in (_key(ApiScope.support), _key(ApiScope.support, TRADIE_ID), _key(ApiScope.user, HELPER_ID)):
        with pytest.raises(ForbiddenActor):
            escrow_policy.ensure_can_release(key, payment)


def test_refund_depends_on_status():
    escrow_policy.ensure_can_refund(_key(ApiScope.user, TRADIE_ID), _payment(PaymentStatus.PENDING))
    escrow_policy.ensure_can_refund(_key(ApiScope.support), _payment(PaymentStatus.HELD))
    with pytest.raises(ForbiddenActor) as excinfo:
        escrow_policy.ensure_can_refund(_key(ApiScope.user, TRADIE_ID), _payment(PaymentStatus.HELD))
    assert excinfo.value.status_code == 403
    assert excinfo.value.detail["error"]["details"]["action"] == "refund"


def test_view_and_account_management():
    payment = _payment()
    escrow_policy.ensure_can_view(_key(ApiScope.user, HELPER_ID), payment)
    escrow_policy.ensure_can_view(_key(ApiScope.user, TRADIE_ID), payment)
    with pytest.raises(ForbiddenActor):
        escrow_policy.ensure_can_view(_key(ApiScope.user, 99), payment)

    escrow_policy.ensure_can_manage_account(_key(ApiScope.user, HELPER_ID), HELPER_ID)
    escrow_policy.ensure_can_manage_account(_key(ApiScope.admin), HELPER_ID)
    with pytest.raises(ForbiddenActor):
        escrow_policy.ensure_can_manage_account(_key(ApiScope.user, TRADIE_ID), HELPER_ID)
