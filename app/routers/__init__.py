"""API routers for the TrustWork escrow backend."""
from fastapi import APIRouter

from . import bank_accounts, disputes, escrows, health, milestones, notifications, operator, payfast, payouts


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(payfast.router)
    api_router.include_router(escrows.router)
    api_router.include_router(milestones.router)
    api_router.include_router(disputes.router)
    api_router.include_router(bank_accounts.router)
    api_router.include_router(notifications.router)
    api_router.include_router(payouts.router)
    api_router.include_router(operator.router)
    return api_router
