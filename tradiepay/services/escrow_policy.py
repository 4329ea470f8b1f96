"""Who may fund, release, refund and view escrow payments.

Staff keys (``admin``, ``support``) act on any record; ``user`` keys act only
for the user they are bound to:

* fund a job: the job's tradie
* release: the funding party; support may not release money
* refund: the funding party while the payment is still ``pending``; staff at any time
* view: either party to the payment
* payout accounts: the account owner
"""
from __future__ import annotations

from tradiepay.models import ApiKey, ApiScope, EscrowPayment, Job, PaymentStatus
from tradiepay.utils.errors import ForbiddenActor

_STAFF = (ApiScope.admin, ApiScope.support)


def _is_admin(key: ApiKey) -> bool:
    return key.scope == ApiScope.admin


def _is_staff(key: ApiKey) -> bool:
    return key.scope in _STAFF


def _acts_for(key: ApiKey, user_id: int | None) -> bool:
    return key.user_id is not None and user_id is not None and key.user_id == user_id


def _deny(action: str, **details: object) -> ForbiddenActor:
    return ForbiddenActor(details={"action": action, **details})


def ensure_can_fund(key: ApiKey, job: Job) -> None:
    if _is_staff(key) or _acts_for(key, job.tradie_id):
        return
    raise _deny("fund", job_id=job.id)


def ensure_can_release(key: ApiKey, payment: EscrowPayment) -> None:
    if _is_admin(key) or (key.scope == ApiScope.user and _acts_for(key, payment.tradie_id)):
        return
    raise _deny("release", payment_id=payment.id)


def ensure_can_refund(key: ApiKey, payment: EscrowPayment) -> None:
    if _is_staff(key):
        return
    if _acts_for(key, payment.tradie_id) and payment.status == PaymentStatus.PENDING:
        return
    raise _deny("refund", payment_id=payment.id)


def ensure_can_view(key: ApiKey, payment: EscrowPayment) -> None:
    if _is_staff(key) or _acts_for(key, payment.tradie_id) or _acts_for(key, payment.helper_id):
        return
    raise _deny("view", payment_id=payment.id)


def ensure_can_manage_account(key: ApiKey, user_id: int) -> None:
    if _is_staff(key) or _acts_for(key, user_id):
        return
    raise _deny("manage_account", user_id=user_id)


__all__ = [
    "ensure_can_fund",
    "ensure_can_manage_account",
    "ensure_can_refund",
    "ensure_can_release",
    "ensure_can_view",
]
