"""Ledger of money movements for an escrow payment."""
import enum
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum as SqlEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class TransactionKind(str, enum.Enum):
    CHARGE = "charge"
    CAPTURE = "capture"
    REFUND = "refund"


class PaymentTransaction(Base):
    """One money movement (charge held, captured, refunded) with its fee breakdown."""

    __tablename__ = "payment_transactions"

    payment_id: Mapped[int] = mapped_column(ForeignKey("escrow_payments.id"), nullable=False, index=True)
    kind: Mapped[TransactionKind] = mapped_column(SqlEnum(TransactionKind), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    platform_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    processor_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    external_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payment = relationship("EscrowPayment", back_populates="transactions")
