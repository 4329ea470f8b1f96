"""Reconciliation of Stripe webhook events against local payment, job and account state."""
from __future__ import annotations

import hashlib
import logging
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradiepay.models import PaymentStatus, PSPWebhookEvent, TransactionKind
from tradiepay.services import payment_state
from tradiepay.services.connect_accounts import apply_account_update
from tradiepay.services.escrow_payments import get_payment_by_ref, record_transaction
from tradiepay.services.processor import InvalidSignatureError, PaymentProcessor
from tradiepay.services.psp_events import (
    AccountUpdated,
    MalformedEvent,
    PaymentEvent,
    PaymentFailed,
    PaymentSucceeded,
    decode_event,
    event_ref,
)
from tradiepay.utils.audit import log_audit
from tradiepay.utils.errors import error_response
from tradiepay.utils.time import utcnow

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


def _fingerprint(value: bytes) -> str:
    return "sha256:" + hashlib.sha256(value).hexdigest()[:12]


def _reject(code: str, message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> HTTPException:
    return HTTPException(status_code=status_code, detail=error_response(code, message))


def _already_journaled(db: Session, event_id: str) -> bool:
    stmt = select(PSPWebhookEvent.id).where(
        PSPWebhookEvent.provider == PROVIDER,
        PSPWebhookEvent.event_id == event_id,
    )
    return db.scalars(stmt).first() is not None


def _apply_payment_succeeded(db: Session, event: PaymentSucceeded) -> tuple[str, int | None]:
    payment = get_payment_by_ref(db, event.ref)
    if payment is None:
        logger.warning("Hold confirmation for unknown payment", extra={"payment_ref": event.ref})
        return "unknown_payment", None

    if payment.status != PaymentStatus.PENDING:
        logger.info(
            "Hold confirmation for payment already past pending",
            extra={"payment_id": payment.id, "status": payment.status.value},
        )
        return "duplicate", None

    if not payment_state.transition_payment(db, payment, PaymentStatus.HELD, paid_at=utcnow()):
        return "ignored", None

    record_transaction(db, payment, TransactionKind.CHARGE)
    log_audit(
        db,
        actor="stripe",
        action="ESCROW_PAYMENT_HELD",
        entity="EscrowPayment",
        entity_id=payment.id,
        data={"job_id": payment.job_id, "event_id": event.event_id},
    )
    return "held", payment.job_id


def _apply_payment_failed(db: Session, event: PaymentFailed) -> str:
    payment = get_payment_by_ref(db, event.ref)
    if payment is None:
        logger.warning("Payment failure for unknown payment", extra={"payment_ref": event.ref})
        return "unknown_payment"

    if payment.status != PaymentStatus.PENDING:
        logger.info(
            "Payment failure ignored; payment not pending",
            extra={"payment_id": payment.id, "status": payment.status.value},
        )
        return "ignored"

    moved = payment_state.transition_payment(
        db,
        payment,
        PaymentStatus.FAILED,
        failed_at=utcnow(),
        failure_message=(event.failure_message or "")[:500] or None,
    )
    if not moved:
        return "ignored"
    log_audit(
        db,
        actor="stripe",
        action="ESCROW_PAYMENT_FAILED",
        entity="EscrowPayment",
        entity_id=payment.id,
        data={"job_id": payment.job_id, "event_id": event.event_id, "event_type": event.event_type},
    )
    return "failed"


def _dispatch(db: Session, event: PaymentEvent) -> tuple[str, int | None]:
    """Apply ``event`` without committing; returns the outcome and a job id to bridge."""

    if isinstance(event, PaymentSucceeded):
        return _apply_payment_succeeded(db, event)
    if isinstance(event, PaymentFailed):
        return _apply_payment_failed(db, event), None
    if isinstance(event, AccountUpdated):
        account = apply_account_update(db, event)
        return ("account_updated" if account is not None else "unknown_account"), None
    logger.info("Unhandled Stripe event type", extra={"event_type": event.event_type})
    return "ignored", None


def _bridge_job(db: Session, job_id: int, event_id: str) -> None:
    # The payment is already committed; a failure here is left for the drift repair pass.
    try:
        payment_state.on_payment_held(db, job_id)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "Job status update failed after payment was held",
            extra={"job_id": job_id, "event_id": event_id},
        )


def handle_stripe_webhook(
    db: Session,
    processor: PaymentProcessor,
    raw_body: bytes,
    signature_header: str | None,
) -> dict[str, Any]:
    """Verify, journal and apply one Stripe webhook delivery.

    Returns the acknowledgement body. Raises 400 for signature problems and
    malformed envelopes, 503 when nothing could be committed so Stripe
    redelivers. Anything that went wrong after the payment update was
    committed is logged and still acknowledged.
    """

    if not signature_header:
        logger.warning("Stripe webhook without signature header", extra={"body": _fingerprint(raw_body)})
        raise _reject("STRIPE_SIGNATURE_MISSING", "Stripe-Signature header is required.")

    try:
        payload = processor.verify_webhook_signature(raw_body, signature_header)
    except InvalidSignatureError:
        logger.warning(
            "Stripe signature verification failed; possible forged webhook",
            extra={"body": _fingerprint(raw_body)},
        )
        raise _reject("STRIPE_SIGNATURE_INVALID", "Invalid Stripe signature.")
    except RuntimeError as exc:
        logger.error("Stripe webhook configuration error", exc_info=True)
        raise _reject("STRIPE_NOT_CONFIGURED", str(exc), status.HTTP_503_SERVICE_UNAVAILABLE)
    except ValueError:
        logger.warning("Signed Stripe webhook body is not JSON", extra={"body": _fingerprint(raw_body)})
        raise _reject("STRIPE_EVENT_INVALID", "Invalid Stripe webhook payload.")

    try:
        event = decode_event(payload)
    except MalformedEvent:
        logger.warning("Stripe webhook is not an event envelope", extra={"body": _fingerprint(raw_body)})
        raise _reject("STRIPE_EVENT_INVALID", "Invalid Stripe webhook payload.")

    logger.info(
        "Stripe webhook received",
        extra={"event_id": event.event_id, "event_type": event.event_type},
    )

    duplicate_ack = {"received": True, "event_id": event.event_id, "duplicate": True}
    try:
        if _already_journaled(db, event.event_id):
            logger.info("Duplicate Stripe event delivery", extra={"event_id": event.event_id})
            return duplicate_ack
        journal = PSPWebhookEvent(
            provider=PROVIDER,
            event_id=event.event_id,
            kind=event.event_type,
            psp_ref=event_ref(event),
            raw_json=payload,
            received_at=utcnow(),
        )
        db.add(journal)
        db.flush()
        outcome, job_id = _dispatch(db, event)
        journal.processed_at = utcnow()
        journal.outcome = outcome
        db.commit()
    except IntegrityError:
        # A concurrent delivery of the same event journaled it first.
        db.rollback()
        logger.info("Duplicate Stripe event delivery", extra={"event_id": event.event_id})
        return duplicate_ack
    except Exception:
        db.rollback()
        logger.exception(
            "Stripe webhook processing failed",
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )
        raise _reject(
            "WEBHOOK_PROCESSING_FAILED",
            "Webhook could not be processed; retry later.",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if job_id is not None:
        _bridge_job(db, job_id, event.event_id)

    logger.info(
        "Stripe webhook processed",
        extra={"event_id": event.event_id, "event_type": event.event_type, "outcome": outcome},
    )
    return {"received": True, "event_id": event.event_id, "outcome": outcome}


__all__ = ["PROVIDER", "handle_stripe_webhook"]
