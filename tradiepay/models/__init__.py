"""ORM models package."""
from .api_key import ApiKey, ApiScope
from .audit import AuditLog
from .base import Base
from .connect_account import ConnectAccount
from .escrow_payment import ACTIVE_PAYMENT_STATUSES, EscrowPayment, PaymentStatus
from .job import Job, JobStatus
from .payment_transaction import PaymentTransaction, TransactionKind
from .psp_webhook import PSPWebhookEvent
from .user import User, UserRole

__all__ = [
    "ACTIVE_PAYMENT_STATUSES",
    "ApiKey",
    "ApiScope",
    "AuditLog",
    "Base",
    "ConnectAccount",
    "EscrowPayment",
    "Job",
    "JobStatus",
    "PaymentStatus",
    "PaymentTransaction",
    "PSPWebhookEvent",
    "TransactionKind",
    "User",
    "UserRole",
]
