"""Decoding of verified Stripe webhook events into a closed set of variants.

Handlers never look at raw event JSON: ``decode_event`` turns the payload into
exactly one of the dataclasses below, and dispatch matches on the type.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

PAYMENT_SUCCEEDED_TYPES = frozenset(
    {
        # Manual-capture intents report the hold through this event
        "payment_intent.amount_capturable_updated",
        "payment_intent.succeeded",
    }
)
PAYMENT_FAILED_TYPES = frozenset({"payment_intent.payment_failed", "payment_intent.canceled"})
ACCOUNT_UPDATED_TYPES = frozenset({"account.updated"})


class MalformedEvent(ValueError):
    """A signed payload that is not a Stripe event envelope."""


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str
    event_type: str
    ref: str


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    event_type: str
    ref: str
    failure_message: str | None = None


@dataclass(frozen=True)
class AccountUpdated:
    event_id: str
    event_type: str
    account_id: str
    user_id: int | None
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    disabled_reason: str | None = None


@dataclass(frozen=True)
class UnknownEvent:
    event_id: str
    event_type: str


PaymentEvent = Union[PaymentSucceeded, PaymentFailed, AccountUpdated, UnknownEvent]


def _user_id_from_metadata(metadata: Mapping[str, Any]) -> int | None:
    raw = metadata.get("user_id") or metadata.get("userId")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def event_ref(event: PaymentEvent) -> str | None:
    """Return the processor object id the event is about, if any."""

    if isinstance(event, (PaymentSucceeded, PaymentFailed)):
        return event.ref
    if isinstance(event, AccountUpdated):
        return event.account_id
    return None


def decode_event(payload: Mapping[str, Any]) -> PaymentEvent:
    """Map a verified Stripe event onto its variant.

    Types outside the handled set, and handled types whose object carries no
    id, decode to ``UnknownEvent`` so they are acknowledged and ignored.
    """

    if not isinstance(payload, Mapping):
        raise MalformedEvent("Stripe event payload must be an object")
    event_id = payload.get("id")
    event_type = payload.get("type")
    if not isinstance(event_id, str) or not event_id or not isinstance(event_type, str):
        raise MalformedEvent("Stripe event is missing its id or type")

    data = payload.get("data") or {}
    obj = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(obj, Mapping) or not obj.get("id"):
        return UnknownEvent(event_id=event_id, event_type=event_type)

    if event_type in PAYMENT_SUCCEEDED_TYPES:
        return PaymentSucceeded(event_id=event_id, event_type=event_type, ref=str(obj["id"]))

    if event_type in PAYMENT_FAILED_TYPES:
        last_error = obj.get("last_payment_error") or {}
        message = last_error.get("message") if isinstance(last_error, Mapping) else None
        if message is None and event_type == "payment_intent.canceled":
            message = obj.get("cancellation_reason") or "canceled"
        return PaymentFailed(
            event_id=event_id,
            event_type=event_type,
            ref=str(obj["id"]),
            failure_message=message,
        )

    if event_type in ACCOUNT_UPDATED_TYPES:
        requirements = obj.get("requirements") or {}
        return AccountUpdated(
            event_id=event_id,
            event_type=event_type,
            account_id=str(obj["id"]),
            user_id=_user_id_from_metadata(obj.get("metadata") or {}),
            charges_enabled=bool(obj.get("charges_enabled")),
            payouts_enabled=bool(obj.get("payouts_enabled")),
            details_submitted=bool(obj.get("details_submitted")),
            disabled_reason=requirements.get("disabled_reason") if isinstance(requirements, Mapping) else None,
        )

    return UnknownEvent(event_id=event_id, event_type=event_type)


__all__ = [
    "AccountUpdated",
    "MalformedEvent",
    "PaymentEvent",
    "PaymentFailed",
    "PaymentSucceeded",
    "UnknownEvent",
    "decode_event",
    "event_ref",
]
