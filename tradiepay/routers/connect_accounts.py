"""Payout (Stripe Connect) account endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tradiepay.db import get_db
from tradiepay.models import ApiKey, ConnectAccount
from tradiepay.schemas.connect_account import ConnectAccountCreate, ConnectAccountRead, OnboardingRead
from tradiepay.security import require_api_key
from tradiepay.services import connect_accounts as account_service
from tradiepay.services.escrow_policy import ensure_can_manage_account
from tradiepay.services.processor import PaymentProcessor
from tradiepay.services.psp_stripe import get_payment_processor
from tradiepay.utils.audit import actor_from_api_key

router = APIRouter(prefix="/connect-accounts", tags=["connect-accounts"])


@router.post("", response_model=OnboardingRead, status_code=status.HTTP_201_CREATED)
def provision_connect_account(
    payload: ConnectAccountCreate,
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
    api_key: ApiKey = Depends(require_api_key),
) -> OnboardingRead:
    """Create the user's payout account if needed and return an onboarding link."""

    ensure_can_manage_account(api_key, payload.user_id)
    result = account_service.provision_account(
        db,
        processor,
        payload.user_id,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
    )
    return OnboardingRead(
        external_account_id=result.external_account_id,
        onboarding_url=result.onboarding_url,
        created=result.created,
    )


@router.get("/{user_id}", response_model=ConnectAccountRead)
def get_connect_account(
    user_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_api_key),
) -> ConnectAccount:
    ensure_can_manage_account(api_key, user_id)
    return account_service.get_account_status(db, user_id)


@router.post("/{user_id}/refresh", response_model=ConnectAccountRead)
def refresh_connect_account(
    user_id: int,
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
    api_key: ApiKey = Depends(require_api_key),
) -> ConnectAccount:
    ensure_can_manage_account(api_key, user_id)
    return account_service.refresh_account_status(
        db,
        processor,
        user_id,
        actor=actor_from_api_key(api_key, fallback="apikey:unknown"),
    )
