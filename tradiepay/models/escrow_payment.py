"""Escrow payment model definitions."""
import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class PaymentStatus(str, enum.Enum):
    """Escrow payment lifecycle; FAILED, COMPLETED and REFUNDED are terminal."""

    PENDING = "pending"
    HELD = "held"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


ACTIVE_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.HELD, PaymentStatus.COMPLETED)
# Stored enum names, as used by the partial unique index below.
_ACTIVE_SQL = "status IN ('PENDING', 'HELD', 'COMPLETED')"


class EscrowPayment(Base):
    """Money held against a job until it is released to the helper or refunded.

    Rows are never deleted; ``status`` is the only lifecycle field and it only
    moves through ``tradiepay.services.payment_state``.
    """

    __tablename__ = "escrow_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_escrow_payments_positive_amount"),
        CheckConstraint("platform_fee_amount >= 0", name="ck_escrow_payments_fee_non_negative"),
        Index("ix_escrow_payments_status", "status"),
        Index("ix_escrow_payments_job_id", "job_id"),
        Index(
            "uq_escrow_payments_active_job",
            "job_id",
            unique=True,
            sqlite_where=text(_ACTIVE_SQL),
            postgresql_where=text(_ACTIVE_SQL),
        ),
    )

    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id"), nullable=False)
    tradie_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    helper_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_fee_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    external_payment_ref: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    destination_account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SqlEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    failure_message: Mapped[str | None] = mapped_column(String(500), nullable=True)

    job = relationship("Job")
    transactions = relationship(
        "PaymentTransaction", back_populates="payment", order_by="PaymentTransaction.id"
    )
