"""Inbound payment processor webhooks."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.orm import Session

from tradiepay.db import get_db
from tradiepay.services import psp_webhooks
from tradiepay.services.processor import PaymentProcessor
from tradiepay.services.psp_stripe import get_payment_processor

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payment-events", status_code=status.HTTP_200_OK)
async def payment_events(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> dict[str, Any]:
    # The raw bytes are what Stripe signed; never let the framework parse them first.
    raw_body = await request.body()
    return psp_webhooks.handle_stripe_webhook(db, processor, raw_body, stripe_signature)


__all__ = ["router"]
