"""Payment state machine and the bridge from payment events to job status.

Every write of ``EscrowPayment.status`` and every payment-driven write of
``Job.status`` goes through this module as a single compare-and-set UPDATE,
so two racing writers can never both win the same edge.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import and_, update
from sqlalchemy.orm import Session

from tradiepay.models import EscrowPayment, Job, JobStatus, PaymentStatus
from tradiepay.utils.time import utcnow

logger = logging.getLogger(__name__)

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.HELD, PaymentStatus.FAILED, PaymentStatus.REFUNDED}),
    PaymentStatus.HELD: frozenset({PaymentStatus.COMPLETED, PaymentStatus.REFUNDED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in PAYMENT_TRANSITIONS.items() if not targets)


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in PAYMENT_TRANSITIONS.get(current, frozenset())


def transition_payment(
    db: Session,
    payment: EscrowPayment,
    target: PaymentStatus,
    **values: Any,
) -> bool:
    """Move ``payment`` to ``target`` if it is still in the status we observed.

    Returns False without touching the row when the edge is not allowed or when
    another writer changed the status first. On success the instance is
    refreshed; the caller owns the commit.
    """

    observed = payment.status
    if not can_transition(observed, target):
        logger.info(
            "Payment transition not allowed",
            extra={"payment_id": payment.id, "from": observed.value, "to": target.value},
        )
        return False

    stmt = (
        update(EscrowPayment)
        .where(and_(EscrowPayment.id == payment.id, EscrowPayment.status == observed))
        .values(status=target, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        logger.info(
            "Payment transition lost a race",
            extra={"payment_id": payment.id, "from": observed.value, "to": target.value},
        )
        return False

    db.refresh(payment)
    logger.info(
        "Payment transitioned",
        extra={"payment_id": payment.id, "from": observed.value, "to": target.value},
    )
    return True


def on_payment_held(db: Session, job_id: int) -> bool:
    """Mark the job paid once its escrow payment is held.

    Only an ``assigned`` job moves; a job in any other status is left alone and
    the call reports False. The caller owns the commit.
    """

    stmt = (
        update(Job)
        .where(and_(Job.id == job_id, Job.status == JobStatus.ASSIGNED))
        .values(status=JobStatus.PAID, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    moved = db.execute(stmt).rowcount == 1
    if moved:
        logger.info("Job marked paid", extra={"job_id": job_id})
    else:
        logger.info("Job not in assigned status; paid transition skipped", extra={"job_id": job_id})
    return moved


def on_payment_completed(db: Session, job_id: int) -> bool:
    # Job completion is driven by the work lifecycle, not by money movement.
    logger.info("Escrow released for job", extra={"job_id": job_id})
    return False


def on_payment_refunded(db: Session, job_id: int) -> bool:
    # A refunded job keeps its status; it may be re-funded with a new payment.
    logger.info("Escrow refunded for job", extra={"job_id": job_id})
    return False


__all__ = [
    "PAYMENT_TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition",
    "on_payment_completed",
    "on_payment_held",
    "on_payment_refunded",
    "transition_payment",
]
