"""Schema package exports."""
from .connect_account import ConnectAccountCreate, ConnectAccountRead, OnboardingRead
from .escrow_payment import (
    DriftRead,
    DriftRepairRead,
    EscrowPaymentCreate,
    EscrowPaymentCreated,
    EscrowPaymentRead,
    EscrowPaymentRefund,
    FeeQuoteRead,
    PaymentTransactionRead,
)
from .job import JobAssign, JobCreate, JobRead
from .user import UserCreate, UserRead

__all__ = [
    "ConnectAccountCreate",
    "ConnectAccountRead",
    "DriftRead",
    "DriftRepairRead",
    "EscrowPaymentCreate",
    "EscrowPaymentCreated",
    "EscrowPaymentRead",
    "EscrowPaymentRefund",
    "FeeQuoteRead",
    "JobAssign",
    "JobCreate",
    "JobRead",
    "OnboardingRead",
    "PaymentTransactionRead",
    "UserCreate",
    "UserRead",
]
