"""API routers for the Tradie Helper payments backend."""
from fastapi import APIRouter

from . import apikeys, connect_accounts, escrow_payments, health, jobs, users, webhooks


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(apikeys.router)
    api_router.include_router(users.router)
    api_router.include_router(jobs.router)
    api_router.include_router(connect_accounts.router)
    api_router.include_router(escrow_payments.router)
    api_router.include_router(webhooks.router)
    return api_router
