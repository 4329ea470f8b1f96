"""Payment processor boundary consumed by the escrow services.

Services depend on the ``PaymentProcessor`` protocol, never on the Stripe SDK, so
the processor can be swapped for a fake in tests and several credential sets can
coexist in one process.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence

from tradiepay.utils.errors import ProcessorRejected, ProcessorUnavailable

logger = logging.getLogger(__name__)


class ProcessorError(Exception):
    """A processor call failed.

    ``retryable`` is True for network errors, timeouts, rate limits and
    processor-side 5xx; False when the processor rejected the request itself.
    """

    def __init__(self, message: str, *, retryable: bool, code: str | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.code = code


class InvalidSignatureError(Exception):
    """The webhook signature header does not match the raw body."""


@dataclass(frozen=True)
class HeldPayment:
    ref: str
    client_secret: str


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    # "refund" for captured funds, "cancel" when an uncaptured hold was voided
    method: str = "refund"


@dataclass(frozen=True)
class PayoutAccount:
    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    disabled_reason: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OnboardingLink:
    url: str


class PaymentProcessor(Protocol):
    def create_held_payment(
        self,
        *,
        amount: int,
        fee_amount: int,
        destination_account_id: str,
        currency: str,
        metadata: Mapping[str, str],
    ) -> HeldPayment: ...

    def capture_held_payment(self, ref: str) -> None: ...

    def cancel_held_payment(self, ref: str) -> None: ...

    def refund_payment(self, ref: str, reason: str | None) -> RefundResult: ...

    def create_payout_account(
        self,
        *,
        country: str,
        capabilities: Sequence[str],
        metadata: Mapping[str, str],
        email: str | None = None,
    ) -> PayoutAccount: ...

    def retrieve_payout_account(self, account_id: str) -> PayoutAccount: ...

    def create_onboarding_link(self, account_id: str, *, return_url: str, refresh_url: str) -> OnboardingLink: ...

    def verify_webhook_signature(self, raw_body: bytes, signature_header: str) -> dict[str, Any]:
        """Return the parsed event only once the signature checks out."""
        ...


@contextmanager
def processor_guard(operation: str, **context: Any) -> Iterator[None]:
    """Surface ``ProcessorError`` as a retryable 503 or a fatal 502 service error."""

    try:
        yield
    except ProcessorError as exc:
        details = {"operation": operation, **context}
        if exc.retryable:
            logger.warning("Processor temporarily unavailable", extra=details)
            raise ProcessorUnavailable(details=details) from exc
        logger.warning("Processor rejected request", extra={**details, "processor_code": exc.code})
        if exc.code:
            details["processor_code"] = exc.code
        raise ProcessorRejected(str(exc) or None, details=details) from exc


__all__ = [
    "HeldPayment",
    "InvalidSignatureError",
    "OnboardingLink",
    "PaymentProcessor",
    "PayoutAccount",
    "ProcessorError",
    "RefundResult",
    "processor_guard",
]
