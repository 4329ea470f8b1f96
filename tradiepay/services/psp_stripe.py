"""Stripe SDK wrapper implementing the ``PaymentProcessor`` boundary."""
from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Mapping, Sequence

import stripe
from fastapi import HTTPException, status

from tradiepay.config import Settings, get_settings
from tradiepay.services.processor import (
    HeldPayment,
    InvalidSignatureError,
    OnboardingLink,
    PaymentProcessor,
    PayoutAccount,
    ProcessorError,
    RefundResult,
)
from tradiepay.utils.errors import error_response

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)
# PaymentIntent statuses where nothing has been captured yet: a refund means voiding the hold.
_UNCAPTURED_STATUSES = {
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "requires_capture",
    "processing",
}
_STRIPE_REFUND_REASONS = {"duplicate", "fraudulent", "requested_by_customer"}

_transport_configured: tuple[int, int] | None = None


def _configure_transport(settings: Settings) -> None:
    """Bound every Stripe HTTP call by a timeout and a retry budget."""

    global _transport_configured
    wanted = (settings.STRIPE_TIMEOUT_SECONDS, settings.STRIPE_MAX_NETWORK_RETRIES)
    if _transport_configured == wanted:
        return
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)
    stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
    _transport_configured = wanted


@contextmanager
def _stripe_call(operation: str, **context: Any) -> Iterator[None]:
    """Translate Stripe SDK errors into ``ProcessorError`` with a retryable flag."""

    try:
        yield
    except stripe.StripeError as exc:
        retryable = isinstance(exc, _RETRYABLE_ERRORS) or (exc.http_status or 0) >= 500
        logger.warning(
            "Stripe call failed",
            extra={
                "operation": operation,
                "retryable": retryable,
                "stripe_code": exc.code,
                "http_status": exc.http_status,
                **context,
            },
        )
        raise ProcessorError(
            exc.user_message or str(exc) or "Stripe request failed",
            retryable=retryable,
            code=exc.code,
        ) from exc


def _payout_account(account: Any) -> PayoutAccount:
    requirements = getattr(account, "requirements", None)
    metadata = getattr(account, "metadata", None) or {}
    return PayoutAccount(
        account_id=account.id,
        charges_enabled=bool(getattr(account, "charges_enabled", False)),
        payouts_enabled=bool(getattr(account, "payouts_enabled", False)),
        details_submitted=bool(getattr(account, "details_submitted", False)),
        disabled_reason=getattr(requirements, "disabled_reason", None) if requirements else None,
        metadata={str(key): str(value) for key, value in dict(metadata).items()},
    )


class StripeClient:
    """Stripe-backed payment processor.

    Credentials are passed per request instead of through ``stripe.api_key`` so
    clients built from different settings never leak into each other.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        if not settings.STRIPE_ENABLED:
            raise RuntimeError("Stripe integration is disabled; enable STRIPE_ENABLED to proceed.")
        if not settings.STRIPE_SECRET_KEY:
            raise RuntimeError("Stripe secret key is missing; configure STRIPE_SECRET_KEY.")
        self._secret_key = settings.STRIPE_SECRET_KEY
        self._webhook_secret = settings.STRIPE_WEBHOOK_SECRET
        _configure_transport(settings)

    @classmethod
    def from_env(cls) -> "StripeClient":
        """Instantiate a client using the cached application settings."""

        return cls(get_settings())

    # --- Escrow payments -------------------------------------------------
    def create_held_payment(
        self,
        *,
        amount: int,
        fee_amount: int,
        destination_account_id: str,
        currency: str,
        metadata: Mapping[str, str],
    ) -> HeldPayment:
        """Create a manual-capture PaymentIntent routed to the helper's account."""

        with _stripe_call("create_held_payment", destination=destination_account_id):
            intent = stripe.PaymentIntent.create(
                api_key=self._secret_key,
                amount=amount,
                currency=currency.lower(),
                capture_method="manual",
                application_fee_amount=fee_amount,
                transfer_data={"destination": destination_account_id},
                metadata=dict(metadata),
            )
        return HeldPayment(ref=intent.id, client_secret=intent.client_secret)

    def capture_held_payment(self, ref: str) -> None:
        with _stripe_call("capture_held_payment", ref=ref):
            stripe.PaymentIntent.capture(ref, api_key=self._secret_key)

    def cancel_held_payment(self, ref: str) -> None:
        with _stripe_call("cancel_held_payment", ref=ref):
            stripe.PaymentIntent.cancel(ref, api_key=self._secret_key, cancellation_reason="abandoned")

    def refund_payment(self, ref: str, reason: str | None) -> RefundResult:
        """Give the money back: void an uncaptured hold, refund a captured charge.

        Free-text ``reason`` travels in metadata; Stripe only accepts a fixed set
        of reason codes.
        """

        stripe_reason = reason if reason in _STRIPE_REFUND_REASONS else "requested_by_customer"
        with _stripe_call("refund_payment", ref=ref):
            intent = stripe.PaymentIntent.retrieve(ref, api_key=self._secret_key)
            if intent.status in _UNCAPTURED_STATUSES:
                stripe.PaymentIntent.cancel(
                    ref, api_key=self._secret_key, cancellation_reason=stripe_reason
                )
                return RefundResult(refund_id=ref, method="cancel")
            refund = stripe.Refund.create(
                api_key=self._secret_key,
                payment_intent=ref,
                reason=stripe_reason,
                metadata={"reason": (reason or "")[:500]},
            )
        return RefundResult(refund_id=refund.id, method="refund")

    # --- Connect accounts ------------------------------------------------
    def create_payout_account(
        self,
        *,
        country: str,
        capabilities: Sequence[str],
        metadata: Mapping[str, str],
        email: str | None = None,
    ) -> PayoutAccount:
        """Create a Stripe Connect Express account."""

        params: dict[str, Any] = {
            "type": "express",
            "country": country,
            "capabilities": {name: {"requested": True} for name in capabilities},
            "metadata": dict(metadata),
        }
        if email:
            params["email"] = email
        with _stripe_call("create_payout_account", country=country):
            account = stripe.Account.create(api_key=self._secret_key, **params)
        return _payout_account(account)

    def retrieve_payout_account(self, account_id: str) -> PayoutAccount:
        with _stripe_call("retrieve_payout_account", account_id=account_id):
            account = stripe.Account.retrieve(account_id, api_key=self._secret_key)
        return _payout_account(account)

    def create_onboarding_link(self, account_id: str, *, return_url: str, refresh_url: str) -> OnboardingLink:
        with _stripe_call("create_onboarding_link", account_id=account_id):
            link = stripe.AccountLink.create(
                api_key=self._secret_key,
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
        return OnboardingLink(url=link.url)

    # --- Webhooks --------------------------------------------------------
    def verify_webhook_signature(self, raw_body: bytes, signature_header: str) -> dict[str, Any]:
        """Check the ``Stripe-Signature`` header against the raw body, then parse it."""

        if not self._webhook_secret:
            raise RuntimeError(
                "Stripe webhook secret is missing; configure STRIPE_WEBHOOK_SECRET for verification."
            )
        try:
            stripe.WebhookSignature.verify_header(
                raw_body.decode("utf-8"),
                signature_header,
                self._webhook_secret,
                self.settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            raise InvalidSignatureError(str(exc)) from exc
        return json.loads(raw_body)


def get_payment_processor() -> PaymentProcessor:
    """FastAPI dependency returning the configured processor."""

    try:
        return StripeClient(get_settings())
    except RuntimeError as exc:
        logger.error("Payment processor is not configured", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("STRIPE_NOT_CONFIGURED", str(exc)),
        ) from exc


__all__ = ["StripeClient", "get_payment_processor"]
