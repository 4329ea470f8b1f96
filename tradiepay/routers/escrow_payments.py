"""Escrow payment endpoints."""
from decimal import Decimal

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from tradiepay.db import get_db
from tradiepay.models import ApiKey, ApiScope, EscrowPayment, Job, PaymentStatus, PaymentTransaction
from tradiepay.schemas.escrow_payment import (
    DriftRead,
    DriftRepairRead,
    EscrowPaymentCreate,
    EscrowPaymentCreated,
    EscrowPaymentRead,
    EscrowPaymentRefund,
    FeeQuoteRead,
    PaymentTransactionRead,
)
from tradiepay.security import require_api_key, require_scope
from tradiepay.services import escrow_payments as escrow_service
from tradiepay.services import escrow_policy
from tradiepay.services.processor import PaymentProcessor
from tradiepay.services.psp_stripe import get_payment_processor
from tradiepay.utils.audit import actor_from_api_key
from tradiepay.utils.errors import InvalidAmount, JobNotFound
from tradiepay.utils.money import to_minor_units

router = APIRouter(prefix="/escrow-payments", tags=["escrow-payments"])


@router.post("", response_model=EscrowPaymentCreated, status_code=status.HTTP_201_CREATED)
def create_escrow_payment(
    payload: EscrowPaymentCreate,
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
    api_key: ApiKey = Depends(require_api_key),
) -> EscrowPaymentCreated:
    job = db.get(Job, payload.job_id)
    if job is None:
        raise JobNotFound(details={"job_id": payload.job_id})
    escrow_policy.ensure_can_fund(api_key, job)

    payment, client_secret = escrow_service.create_escrow_payment(
        db,
        processor,
        job_id=payload.job_id,
        amount=payload.amount,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
    )
    return EscrowPaymentCreated(
        payment=EscrowPaymentRead.model_validate(payment),
        client_secret=client_secret,
    )


@router.get("", response_model=list[EscrowPaymentRead])
def list_escrow_payments(
    job_id: int | None = Query(default=None),
    payment_status: PaymentStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
) -> list[EscrowPayment]:
    # User keys only ever see payments they are a party to.
    party_id = None if api_key.scope in (ApiScope.admin, ApiScope.support) else api_key.user_id
    if party_id is None and api_key.scope == ApiScope.user:
        return []
    return escrow_service.list_payments(
        db, job_id=job_id, status=payment_status, party_id=party_id, limit=limit, offset=offset
    )


@router.get("/fee-quote", response_model=FeeQuoteRead)
def fee_quote(
    amount: Decimal = Query(gt=Decimal("0"), max_digits=12, decimal_places=2),
    api_key: ApiKey = Depends(require_api_key),
) -> escrow_service.FeeQuote:
    try:
        amount_minor = to_minor_units(amount)
    except ValueError as exc:
        raise InvalidAmount() from exc
    return escrow_service.quote_fees(amount_minor)


@router.get(
    "/drift",
    response_model=list[DriftRead],
    dependencies=[Depends(require_scope({ApiScope.support}))],
)
def list_job_drift(db: Session = Depends(get_db)) -> list[DriftRead]:
    """Held payments whose job is still waiting to be marked paid."""

    return [
        DriftRead(payment_id=payment.id, job_id=payment.job_id, paid_at=payment.paid_at)
        for payment in escrow_service.find_job_drift(db)
    ]


@router.post("/drift/repair", response_model=DriftRepairRead)
def repair_job_drift(
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.support})),
) -> DriftRepairRead:
    repaired = escrow_service.repair_job_drift(
        db, actor=actor_from_api_key(api_key, fallback="apikey:unknown")
    )
    return DriftRepairRead(repaired_job_ids=repaired)


@router.get("/{payment_id}", response_model=EscrowPaymentRead)
def get_escrow_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
) -> EscrowPayment:
    payment = escrow_service.get_payment(db, payment_id)
    escrow_policy.ensure_can_view(api_key, payment)
    return payment


@router.get("/{payment_id}/transactions", response_model=list[PaymentTransactionRead])
def list_payment_transactions(
    payment_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
) -> list[PaymentTransaction]:
    payment = escrow_service.get_payment(db, payment_id)
    escrow_policy.ensure_can_view(api_key, payment)
    return escrow_service.list_transactions(db, payment.id)


@router.post("/{payment_id}/release", response_model=EscrowPaymentRead)
def release_escrow_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
    api_key: ApiKey = Depends(require_api_key),
) -> EscrowPayment:
    payment = escrow_service.get_payment(db, payment_id)
    escrow_policy.ensure_can_release(api_key, payment)
    return escrow_service.release_escrow_payment(
        db,
        processor,
        payment.id,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
    )


@router.post("/{payment_id}/refund", response_model=EscrowPaymentRead)
def refund_escrow_payment(
    payment_id: int,
    payload: EscrowPaymentRefund | None = Body(default=None),
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
    api_key: ApiKey = Depends(require_api_key),
) -> EscrowPayment:
    payment = escrow_service.get_payment(db, payment_id)
    escrow_policy.ensure_can_refund(api_key, payment)
    return escrow_service.refund_escrow_payment(
        db,
        processor,
        payment.id,
        payload.reason if payload else None,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
    )
