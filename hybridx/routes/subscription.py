# hybridx/routes/subscription.py
"""HybridX API - Subscription Routes."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from hybridx.dependencies import get_current_user, get_user_repository
from hybridx.models.user import User
from hybridx.repositories.base import UserRepository
from hybridx.services.stripe import StripeService, get_stripe_service
from hybridx.services.subscription_status import has_access, status_for_user, trial_days_remaining

router = APIRouter()
logger = logging.getLogger(__name__)


class SubscriptionStatusResponse(BaseModel):
    status: str
    has_access: bool
    trial_days_remaining: int
    cancel_at_period_end: bool = False
    cancellation_effective_date: Optional[datetime] = None


class CheckoutSessionResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


@router.get("/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(user: User = Depends(get_current_user)) -> SubscriptionStatusResponse:
    """Resolved subscription status; never the raw stored value."""
    resolved = status_for_user(user)
    return SubscriptionStatusResponse(
        status=resolved.value,
        has_access=has_access(resolved),
        trial_days_remaining=trial_days_remaining(user.trial_start_date) if resolved.value == "trial" else 0,
        cancel_at_period_end=user.cancel_at_period_end,
        cancellation_effective_date=user.cancellation_effective_date,
    )


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutSessionResponse:
    """Create Stripe checkout session."""
    session = await stripe_service.create_checkout_session(user, users)
    return CheckoutSessionResponse(**session)
