"""Stripe adapter: request shaping and error classification."""
from types import SimpleNamespace

import pytest
import stripe
from fastapi import HTTPException

from tradiepay.config import Settings
from tradiepay.services import psp_stripe
from tradiepay.services.processor import ProcessorError, RefundResult
from tradiepay.services.psp_stripe import StripeClient


@pytest.fixture
def stripe_client():
    return StripeClient(Settings(STRIPE_SECRET_KEY="sk_test_unit", STRIPE_WEBHOOK_SECRET="whsec_unit"))


def test_disabled_or_keyless_client_refuses_to_start():
    with pytest.raises(RuntimeError):
        StripeClient(Settings(STRIPE_ENABLED=False, STRIPE_SECRET_KEY="sk_test_unit"))
    with pytest.raises(RuntimeError):
        StripeClient(Settings(STRIPE_SECRET_KEY=" "))


def test_dependency_answers_503_when_unconfigured(monkeypatch):
    monkeypatch.setattr(psp_stripe, "get_settings", lambda: Settings(STRIPE_SECRET_KEY=""))
    with pytest.raises(HTTPException) as excinfo:
        psp_stripe.get_payment_processor()
    assert excinfo.value.status_code == 503
    assert excinfo.value.detail["error"]["code"] == "STRIPE_NOT_CONFIGURED"


def test_held_payment_uses_manual_capture(stripe_client, monkeypatch):
    seen = {}

    def _create(**kwargs):
        seen.update(kwargs)
        return SimpleNamespace(id="pi_123", client_secret="pi_123_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", _create)
    held = stripe_client.create_held_payment(
        amount=20000,
        fee_amount=1000,
        destination_account_id="acct_9",
        currency="AUD",
        metadata={"job_id": "7"},
    )

    assert held.ref == "pi_123"
    assert seen["api_key"] == "sk_test_unit"
    assert seen["capture_method"] == "manual"
    assert seen["currency"] == "aud"
    assert seen["application_fee_amount"] == 1000
    assert seen["transfer_data"] == {"destination": "acct_9"}


def test_refund_voids_uncaptured_hold(stripe_client, monkeypatch):
    cancelled = []
    monkeypatch.setattr(
        stripe.PaymentIntent, "retrieve", lambda ref, **kwargs: SimpleNamespace(id=ref, status="requires_capture")
    )
    monkeypatch.setattr(stripe.PaymentIntent, "cancel", lambda ref, **kwargs: cancelled.append((ref, kwargs)))

    result = stripe_client.refund_payment("pi_1", "job cancelled")
    assert result.method == "cancel"
    assert result.refund_id == "pi_1"
    assert cancelled[0][1]["cancellation_reason"] == "requested_by_customer"


def test_refund_of_captured_charge(stripe_client, monkeypatch):
    monkeypatch.setattr(
        stripe.PaymentIntent, "retrieve", lambda ref, **kwargs: SimpleNamespace(id=ref, status="succeeded")
    )
    monkeypatch.setattr(stripe.Refund, "create", lambda **kwargs: SimpleNamespace(id="re_1", **kwargs))

    result = stripe_client.refund_payment("pi_1", "duplicate")
    assert result == RefundResult(refund_id="re_1", method="refund")


def test_network_errors_are_retryable(stripe_client, monkeypatch):
    def _down(ref, **kwargs):
        raise stripe.APIConnectionError("Network error")

    monkeypatch.setattr(stripe.PaymentIntent, "capture", _down)
    with pytest.raises(ProcessorError) as excinfo:
        stripe_client.capture_held_payment("pi_1")
    assert excinfo.value.retryable is True


def test_invalid_requests_are_not_retryable(stripe_client, monkeypatch):
    def _reject(ref, **kwargs):
        raise stripe.InvalidRequestError(
            "This PaymentIntent could not be captured", "intent", code="payment_intent_unexpected_state", http_status=400
        )

    monkeypatch.setattr(stripe.PaymentIntent, "capture", _reject)
    with pytest.raises(ProcessorError) as excinfo:
        stripe_client.capture_held_payment("pi_1")
    assert excinfo.value.retryable is False
    assert excinfo.value.code == "payment_intent_unexpected_state"


def test_payout_account_flags_are_mapped(stripe_client, monkeypatch):
    account = SimpleNamespace(
        id="acct_1",
        charges_enabled=True,
        payouts_enabled=False,
        details_submitted=True,
        requirements=SimpleNamespace(disabled_reason="requirements.pending_verification"),
        metadata={"user_id": "3"},
    )
    monkeypatch.setattr(stripe.Account, "retrieve", lambda account_id, **kwargs: account)

    mapped = stripe_client.retrieve_payout_account("acct_1")
    assert mapped.account_id == "acct_1"
    assert mapped.payouts_enabled is False
    assert mapped.details_submitted is True
    assert mapped.disabled_reason == "requirements.pending_verification"
