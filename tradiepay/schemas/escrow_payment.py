"""Escrow payment schemas.

Amounts are integer minor units (cents) on the way out; ``EscrowPaymentCreate``
takes the major-unit amount the funding party typed.
"""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from tradiepay.models.escrow_payment import PaymentStatus
from tradiepay.models.payment_transaction import TransactionKind


class EscrowPaymentCreate(BaseModel):
    job_id: int
    amount: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)


class EscrowPaymentRefund(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class EscrowPaymentRead(BaseModel):
    id: int
    job_id: int
    tradie_id: int
    helper_id: int
    amount: int
    platform_fee_amount: int
    currency: str
    external_payment_ref: str
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    refunded_at: datetime | None = None
    failed_at: datetime | None = None
    refund_reason: str | None = None
    failure_message: str | None = None

    model_config = ConfigDict(from_attributes=True)


class EscrowPaymentCreated(BaseModel):
    payment: EscrowPaymentRead
    client_secret: str


class PaymentTransactionRead(BaseModel):
    id: int
    kind: TransactionKind
    amount: int
    platform_fee: int
    processor_fee: int
    net_amount: int
    external_ref: str | None
    at: datetime

    model_config = ConfigDict(from_attributes=True)


class FeeQuoteRead(BaseModel):
    amount: int
    platform_fee: int
    processor_fee: int
    net_amount: int
    currency: str

    model_config = ConfigDict(from_attributes=True)


class DriftRead(BaseModel):
    payment_id: int
    job_id: int
    paid_at: datetime | None


class DriftRepairRead(BaseModel):
    repaired_job_ids: list[int]
