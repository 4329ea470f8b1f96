"""Escrow payment orchestration: fund a job, then release or refund the hold."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tradiepay.config import Settings, get_settings
from tradiepay.models import (
    ACTIVE_PAYMENT_STATUSES,
    EscrowPayment,
    Job,
    JobStatus,
    PaymentStatus,
    PaymentTransaction,
    TransactionKind,
)
from tradiepay.services import payment_state
from tradiepay.services.connect_accounts import account_for_user, payouts_ready
from tradiepay.services.processor import PaymentProcessor, processor_guard
from tradiepay.utils.audit import log_audit
from tradiepay.utils.compensation import compensate_on_error
from tradiepay.utils.errors import (
    InvalidAmount,
    JobNotAssigned,
    JobNotFound,
    NoPayoutAccount,
    NotInEscrow,
    NotRefundable,
    PaymentAlreadyActive,
    PaymentNotFound,
    PaymentStateDrift,
)
from tradiepay.utils.money import percent_of, platform_fee, to_minor_units
from tradiepay.utils.time import utcnow

logger = logging.getLogger(__name__)

REFUNDABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.HELD)
_UNFUNDABLE_JOB_STATUSES = (JobStatus.CANCELLED, JobStatus.COMPLETED)


@dataclass(frozen=True)
class FeeQuote:
    """Fee breakdown for an amount in minor units."""

    amount: int
    platform_fee: int
    processor_fee: int
    net_amount: int
    currency: str


def quote_fees(amount: int, settings: Settings | None = None) -> FeeQuote:
    """Split ``amount`` into platform fee, estimated processor fee and the helper's net."""

    settings = settings or get_settings()
    fee = platform_fee(amount, settings.PLATFORM_FEE_PERCENT)
    processor_fee = percent_of(amount, settings.PROCESSOR_FEE_PERCENT) + settings.PROCESSOR_FEE_FIXED_MINOR
    return FeeQuote(
        amount=amount,
        platform_fee=fee,
        processor_fee=processor_fee,
        net_amount=amount - fee - processor_fee,
        currency=settings.PAYMENT_CURRENCY,
    )


def record_transaction(
    db: Session,
    payment: EscrowPayment,
    kind: TransactionKind,
    *,
    external_ref: str | None = None,
) -> PaymentTransaction:
    """Append a ledger row for a money movement on ``payment``."""

    if kind == TransactionKind.REFUND:
        entry = PaymentTransaction(
            payment_id=payment.id,
            kind=kind,
            amount=payment.amount,
            platform_fee=0,
            processor_fee=0,
            net_amount=payment.amount,
            external_ref=external_ref,
            at=utcnow(),
        )
    else:
        quote = quote_fees(payment.amount)
        entry = PaymentTransaction(
            payment_id=payment.id,
            kind=kind,
            amount=payment.amount,
            platform_fee=payment.platform_fee_amount,
            processor_fee=quote.processor_fee,
            net_amount=payment.amount - payment.platform_fee_amount - quote.processor_fee,
            external_ref=external_ref or payment.external_payment_ref,
            at=utcnow(),
        )
    db.add(entry)
    return entry


def active_payment_for_job(db: Session, job_id: int) -> EscrowPayment | None:
    stmt = select(EscrowPayment).where(
        EscrowPayment.job_id == job_id,
        EscrowPayment.status.in_(ACTIVE_PAYMENT_STATUSES),
    )
    return db.scalars(stmt).first()


def create_escrow_payment(
    db: Session,
    processor: PaymentProcessor,
    *,
    job_id: int,
    amount: Decimal,
    actor: str = "system",
) -> tuple[EscrowPayment, str]:
    """Open a held payment for ``job_id`` and persist it as ``pending``.

    ``amount`` is in major units. Returns the pending payment and the client
    secret the funding party uses to authorise the hold. The payment only
    becomes ``held`` (and the job ``paid``) once the processor confirms it.
    """

    settings = get_settings()
    job = db.get(Job, job_id)
    if job is None:
        raise JobNotFound(details={"job_id": job_id})

    active = active_payment_for_job(db, job_id)
    if active is not None:
        raise PaymentAlreadyActive(details={"job_id": job_id, "payment_id": active.id})

    if job.assigned_helper_id is None or job.status in _UNFUNDABLE_JOB_STATUSES:
        raise JobNotAssigned(details={"job_id": job_id, "job_status": job.status.value})

    account = account_for_user(db, job.assigned_helper_id)
    if not payouts_ready(account):
        raise NoPayoutAccount(details={"helper_id": job.assigned_helper_id})

    try:
        amount_minor = to_minor_units(amount)
    except ValueError as exc:
        raise InvalidAmount() from exc
    if amount_minor <= 0:
        raise InvalidAmount()
    fee = platform_fee(amount_minor, settings.PLATFORM_FEE_PERCENT)

    with processor_guard("create_held_payment", job_id=job_id):
        held = processor.create_held_payment(
            amount=amount_minor,
            fee_amount=fee,
            destination_account_id=account.external_account_id,
            currency=settings.PAYMENT_CURRENCY,
            metadata={
                "job_id": str(job_id),
                "tradie_id": str(job.tradie_id),
                "helper_id": str(job.assigned_helper_id),
                "type": "escrow_payment",
            },
        )

    with compensate_on_error(
        lambda: processor.cancel_held_payment(held.ref),
        description="cancel held payment",
        extra={"job_id": job_id, "payment_ref": held.ref},
    ):
        payment = EscrowPayment(
            job_id=job_id,
            tradie_id=job.tradie_id,
            helper_id=job.assigned_helper_id,
            amount=amount_minor,
            platform_fee_amount=fee,
            currency=settings.PAYMENT_CURRENCY,
            external_payment_ref=held.ref,
            destination_account_id=account.external_account_id,
            status=PaymentStatus.PENDING,
        )
        db.add(payment)
        try:
            db.flush()
            log_audit(
                db,
                actor=actor,
                action="ESCROW_PAYMENT_CREATED",
                entity="EscrowPayment",
                entity_id=payment.id,
                data={
                    "job_id": job_id,
                    "amount": amount_minor,
                    "platform_fee_amount": fee,
                    "currency": settings.PAYMENT_CURRENCY,
                    "external_payment_ref": held.ref,
                },
            )
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise PaymentAlreadyActive(details={"job_id": job_id}) from exc
        except SQLAlchemyError:
            db.rollback()
            raise

    db.refresh(payment)
    logger.info(
        "Escrow payment created",
        extra={"payment_id": payment.id, "job_id": job_id, "payment_ref": held.ref},
    )
    return payment, held.client_secret


def get_payment(db: Session, payment_id: int) -> EscrowPayment:
    payment = db.get(EscrowPayment, payment_id)
    if payment is None:
        raise PaymentNotFound(details={"payment_id": payment_id})
    return payment


def get_payment_by_ref(db: Session, ref: str) -> EscrowPayment | None:
    stmt = select(EscrowPayment).where(EscrowPayment.external_payment_ref == ref)
    return db.scalars(stmt).first()


def list_payments(
    db: Session,
    *,
    job_id: int | None = None,
    status: PaymentStatus | None = None,
    party_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[EscrowPayment]:
    stmt = select(EscrowPayment).order_by(EscrowPayment.id.desc())
    if party_id is not None:
        stmt = stmt.where(or_(EscrowPayment.tradie_id == party_id, EscrowPayment.helper_id == party_id))
    if job_id is not None:
        stmt = stmt.where(EscrowPayment.job_id == job_id)
    if status is not None:
        stmt = stmt.where(EscrowPayment.status == status)
    return list(db.scalars(stmt.offset(offset).limit(limit)).all())


def list_transactions(db: Session, payment_id: int) -> list[PaymentTransaction]:
    payment = get_payment(db, payment_id)
    stmt = (
        select(PaymentTransaction)
        .where(PaymentTransaction.payment_id == payment.id)
        .order_by(PaymentTransaction.id)
    )
    return list(db.scalars(stmt).all())


def _record_drift(
    payment_id: int, payment_ref: str, operation: str, exc: BaseException | None = None, **extra: Any
) -> PaymentStateDrift:
    logger.critical(
        "Processor operation succeeded but local payment state was not updated",
        exc_info=exc,
        extra={
            "payment_id": payment_id,
            "payment_ref": payment_ref,
            "operation": operation,
            **extra,
        },
    )
    return PaymentStateDrift(details={"payment_id": payment_id, "operation": operation})


def release_escrow_payment(
    db: Session,
    processor: PaymentProcessor,
    payment_id: int,
    *,
    actor: str = "system",
) -> EscrowPayment:
    """Capture a held payment so the funds go to the helper's account.

    The capture is never retried here: when it succeeded but the local write
    did not, the caller gets ``PAYMENT_STATE_DRIFT`` and reconciliation takes
    over.
    """

    payment = get_payment(db, payment_id)
    if payment.status != PaymentStatus.HELD:
        raise NotInEscrow(details={"payment_id": payment.id, "status": payment.status.value})

    payment_ref = payment.external_payment_ref
    with processor_guard("capture_held_payment", payment_id=payment.id):
        processor.capture_held_payment(payment_ref)

    try:
        moved = payment_state.transition_payment(
            db, payment, PaymentStatus.COMPLETED, completed_at=utcnow()
        )
        if not moved:
            db.rollback()
            db.refresh(payment)
            raise _record_drift(payment_id, payment_ref, "capture", observed_status=payment.status.value)
        record_transaction(db, payment, TransactionKind.CAPTURE)
        log_audit(
            db,
            actor=actor,
            action="ESCROW_PAYMENT_RELEASED",
            entity="EscrowPayment",
            entity_id=payment.id,
            data={"job_id": payment.job_id, "amount": payment.amount},
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _record_drift(payment_id, payment_ref, "capture", exc) from exc

    db.refresh(payment)
    payment_state.on_payment_completed(db, payment.job_id)
    logger.info("Escrow payment released", extra={"payment_id": payment.id, "job_id": payment.job_id})
    return payment


def _stamp_voided_failure(db: Session, payment: EscrowPayment, **values: Any) -> bool:
    """Attach refund details to a payment the void webhook already marked failed.

    The status stays ``failed``; only a row without a refund id is stamped.
    """

    stmt = (
        update(EscrowPayment)
        .where(
            and_(
                EscrowPayment.id == payment.id,
                EscrowPayment.status == PaymentStatus.FAILED,
                EscrowPayment.refund_id.is_(None),
            )
        )
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount != 1:
        return False
    db.refresh(payment)
    logger.info(
        "Refund void already applied by webhook",
        extra={"payment_id": payment.id, "refund_id": payment.refund_id},
    )
    return True


def refund_escrow_payment(
    db: Session,
    processor: PaymentProcessor,
    payment_id: int,
    reason: str | None = None,
    *,
    actor: str = "system",
) -> EscrowPayment:
    """Return the funds to the funding party from ``pending`` or ``held``."""

    payment = get_payment(db, payment_id)
    if payment.status not in REFUNDABLE_STATUSES:
        raise NotRefundable(details={"payment_id": payment.id, "status": payment.status.value})

    payment_ref = payment.external_payment_ref
    with processor_guard("refund_payment", payment_id=payment.id):
        result = processor.refund_payment(payment_ref, reason)

    values = {"refunded_at": utcnow(), "refund_id": result.refund_id, "refund_reason": reason}
    try:
        moved = payment_state.transition_payment(db, payment, PaymentStatus.REFUNDED, **values)
        if not moved:
            # A webhook may have moved pending -> held meanwhile; that is still refundable.
            db.refresh(payment)
            if payment.status in REFUNDABLE_STATUSES:
                moved = payment_state.transition_payment(db, payment, PaymentStatus.REFUNDED, **values)
            elif payment.status == PaymentStatus.FAILED and result.method == "cancel":
                # Our own void came back first as payment_intent.canceled.
                moved = _stamp_voided_failure(db, payment, **values)
        if not moved:
            db.rollback()
            db.refresh(payment)
            raise _record_drift(payment_id, payment_ref, "refund", observed_status=payment.status.value)
        record_transaction(db, payment, TransactionKind.REFUND, external_ref=result.refund_id)
        log_audit(
            db,
            actor=actor,
            action="ESCROW_PAYMENT_REFUNDED",
            entity="EscrowPayment",
            entity_id=payment.id,
            data={"job_id": payment.job_id, "refund_id": result.refund_id, "method": result.method, "reason": reason},
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _record_drift(payment_id, payment_ref, "refund", exc) from exc

    db.refresh(payment)
    payment_state.on_payment_refunded(db, payment.job_id)
    logger.info(
        "Escrow payment refunded",
        extra={"payment_id": payment.id, "job_id": payment.job_id, "refund_method": result.method},
    )
    return payment


def find_job_drift(db: Session) -> list[EscrowPayment]:
    """Payments already held whose job never moved to ``paid``."""

    stmt = (
        select(EscrowPayment)
        .join(Job, Job.id == EscrowPayment.job_id)
        .where(and_(EscrowPayment.status == PaymentStatus.HELD, Job.status == JobStatus.ASSIGNED))
        .order_by(EscrowPayment.id)
    )
    return list(db.scalars(stmt).all())


def repair_job_drift(db: Session, *, actor: str = "system") -> list[int]:
    """Re-drive the job bridge for every drifted payment; returns the repaired job ids."""

    repaired: list[int] = []
    for payment in find_job_drift(db):
        if payment_state.on_payment_held(db, payment.job_id):
            log_audit(
                db,
                actor=actor,
                action="JOB_PAYMENT_DRIFT_REPAIRED",
                entity="Job",
                entity_id=payment.job_id,
                data={"payment_id": payment.id},
            )
            repaired.append(payment.job_id)
    db.commit()
    if repaired:
        logger.info("Job payment drift repaired", extra={"job_ids": repaired})
    return repaired


__all__ = [
    "FeeQuote",
    "REFUNDABLE_STATUSES",
    "active_payment_for_job",
    "create_escrow_payment",
    "find_job_drift",
    "get_payment",
    "get_payment_by_ref",
    "list_payments",
    "list_transactions",
    "quote_fees",
    "record_transaction",
    "refund_escrow_payment",
    "release_escrow_payment",
    "repair_job_drift",
]
