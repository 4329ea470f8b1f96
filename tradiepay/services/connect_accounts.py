"""Provisioning and status tracking of helpers' payout (Stripe Connect) accounts."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradiepay.config import Settings, get_settings
from tradiepay.models import ConnectAccount, User
from tradiepay.services.processor import PaymentProcessor, PayoutAccount, processor_guard
from tradiepay.services.psp_events import AccountUpdated
from tradiepay.utils.audit import log_audit
from tradiepay.utils.errors import ConnectAccountNotFound, UserNotFound

logger = logging.getLogger(__name__)

PAYOUT_CAPABILITIES = ("card_payments", "transfers")


@dataclass(frozen=True)
class ProvisionResult:
    account: ConnectAccount
    onboarding_url: str
    created: bool

    @property
    def external_account_id(self) -> str:
        return self.account.external_account_id


def payouts_ready(account: ConnectAccount | None) -> bool:
    """True when the account can receive transfers from an escrow release."""

    return account is not None and account.payouts_enabled


def account_for_user(db: Session, user_id: int) -> ConnectAccount | None:
    stmt = select(ConnectAccount).where(ConnectAccount.user_id == user_id)
    return db.scalars(stmt).first()


def _onboarding_link(processor: PaymentProcessor, account_id: str, settings: Settings) -> str:
    with processor_guard("create_onboarding_link", account_id=account_id):
        link = processor.create_onboarding_link(
            account_id,
            return_url=settings.onboarding_return_url,
            refresh_url=settings.onboarding_refresh_url,
        )
    return link.url


def provision_account(
    db: Session,
    processor: PaymentProcessor,
    user_id: int,
    *,
    actor: str = "system",
) -> ProvisionResult:
    """Ensure ``user_id`` has a payout account and return an onboarding link.

    A user who already has an account gets a fresh link for it and
    ``created=False``; nothing is created at the processor in that case. For a
    new account the local record is committed before the link is requested, so
    the returned URL always refers to a persisted account.
    """

    settings = get_settings()
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFound(details={"user_id": user_id})

    existing = account_for_user(db, user_id)
    if existing is not None:
        logger.info(
            "Payout account already provisioned",
            extra={"user_id": user_id, "account_id": existing.external_account_id},
        )
        url = _onboarding_link(processor, existing.external_account_id, settings)
        return ProvisionResult(account=existing, onboarding_url=url, created=False)

    with processor_guard("create_payout_account", user_id=user_id):
        created = processor.create_payout_account(
            country=settings.CONNECT_ACCOUNT_COUNTRY,
            capabilities=PAYOUT_CAPABILITIES,
            metadata={"user_id": str(user_id)},
            email=user.email,
        )

    account = ConnectAccount(
        user_id=user_id,
        external_account_id=created.account_id,
        charges_enabled=created.charges_enabled,
        payouts_enabled=created.payouts_enabled,
        details_submitted=created.details_submitted,
        disabled_reason=created.disabled_reason,
    )
    db.add(account)
    try:
        db.flush()
        log_audit(
            db,
            actor=actor,
            action="CONNECT_ACCOUNT_CREATED",
            entity="ConnectAccount",
            entity_id=account.id,
            data={"user_id": user_id, "external_account_id": created.account_id},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = account_for_user(db, user_id)
        # The processor-side account we just created is now unreferenced.
        logger.error(
            "Payout account provisioning lost a race; orphaned processor account",
            extra={"user_id": user_id, "orphaned_account_id": created.account_id},
        )
        if winner is None:
            raise
        url = _onboarding_link(processor, winner.external_account_id, settings)
        return ProvisionResult(account=winner, onboarding_url=url, created=False)

    db.refresh(account)
    logger.info(
        "Payout account provisioned",
        extra={"user_id": user_id, "account_id": account.external_account_id},
    )
    url = _onboarding_link(processor, account.external_account_id, settings)
    return ProvisionResult(account=account, onboarding_url=url, created=True)


def get_account_status(db: Session, user_id: int) -> ConnectAccount:
    account = account_for_user(db, user_id)
    if account is None:
        raise ConnectAccountNotFound(details={"user_id": user_id})
    return account


def _mirror_flags(
    account: ConnectAccount,
    *,
    charges_enabled: bool,
    payouts_enabled: bool,
    details_submitted: bool,
    disabled_reason: str | None,
) -> bool:
    before = (account.charges_enabled, account.payouts_enabled, account.details_submitted, account.disabled_reason)
    account.charges_enabled = charges_enabled
    account.payouts_enabled = payouts_enabled
    account.details_submitted = details_submitted
    account.disabled_reason = disabled_reason
    return before != (charges_enabled, payouts_enabled, details_submitted, disabled_reason)


def _audit_flags(db: Session, account: ConnectAccount, *, actor: str, source: str) -> None:
    log_audit(
        db,
        actor=actor,
        action="CONNECT_ACCOUNT_UPDATED",
        entity="ConnectAccount",
        entity_id=account.id,
        data={
            "source": source,
            "charges_enabled": account.charges_enabled,
            "payouts_enabled": account.payouts_enabled,
            "details_submitted": account.details_submitted,
            "account_status": account.account_status,
        },
    )


def refresh_account_status(
    db: Session,
    processor: PaymentProcessor,
    user_id: int,
    *,
    actor: str = "system",
) -> ConnectAccount:
    """Pull the live account from the processor and mirror its capability flags."""

    account = get_account_status(db, user_id)
    with processor_guard("retrieve_payout_account", account_id=account.external_account_id):
        live: PayoutAccount = processor.retrieve_payout_account(account.external_account_id)

    changed = _mirror_flags(
        account,
        charges_enabled=live.charges_enabled,
        payouts_enabled=live.payouts_enabled,
        details_submitted=live.details_submitted,
        disabled_reason=live.disabled_reason,
    )
    if changed:
        _audit_flags(db, account, actor=actor, source="refresh")
        db.commit()
        db.refresh(account)
    return account


def apply_account_update(db: Session, update: AccountUpdated) -> ConnectAccount | None:
    """Mirror an ``account.updated`` event onto the local record.

    Returns None, changing nothing, when no local account matches. The caller
    owns the commit.
    """

    if update.user_id is not None:
        account = account_for_user(db, update.user_id)
    else:
        stmt = select(ConnectAccount).where(ConnectAccount.external_account_id == update.account_id)
        account = db.scalars(stmt).first()

    if account is None:
        logger.info(
            "Account update for unknown payout account",
            extra={"account_id": update.account_id, "user_id": update.user_id},
        )
        return None
    if account.external_account_id != update.account_id:
        logger.warning(
            "Account update does not match the stored payout account",
            extra={
                "user_id": account.user_id,
                "stored_account_id": account.external_account_id,
                "event_account_id": update.account_id,
            },
        )
        return None

    if _mirror_flags(
        account,
        charges_enabled=update.charges_enabled,
        payouts_enabled=update.payouts_enabled,
        details_submitted=update.details_submitted,
        disabled_reason=update.disabled_reason,
    ):
        db.flush()
        _audit_flags(db, account, actor="stripe", source="webhook")
    return account


__all__ = [
    "PAYOUT_CAPABILITIES",
    "ProvisionResult",
    "account_for_user",
    "apply_account_update",
    "get_account_status",
    "payouts_ready",
    "provision_account",
    "refresh_account_status",
]
