"""Payout account schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ConnectAccountCreate(BaseModel):
    user_id: int


class ConnectAccountRead(BaseModel):
    user_id: int
    external_account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    account_status: str
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OnboardingRead(BaseModel):
    external_account_id: str
    onboarding_url: str
    created: bool
