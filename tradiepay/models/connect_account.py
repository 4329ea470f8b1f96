"""Payout (Stripe Connect) account model."""
from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class ConnectAccount(Base):
    """Links a user to their payout-capable account at the processor.

    Created once per user and never re-created; the capability flags are
    mirrored from ``account.updated`` webhooks.
    """

    __tablename__ = "connect_accounts"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    external_account_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    charges_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    details_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    disabled_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user = relationship("User", back_populates="connect_account")

    @property
    def account_status(self) -> str:
        """Summarise the capability flags as ``pending|active|restricted|rejected``."""

        if self.disabled_reason and self.disabled_reason.startswith("rejected"):
            return "rejected"
        if self.charges_enabled and self.payouts_enabled:
            return "active"
        if self.details_submitted:
            return "restricted"
        return "pending"
