"""
HybridX API - Webhook Routes.

Handles incoming webhooks from external services (Stripe).
"""

import logging

from fastapi import APIRouter, Depends, Request

from hybridx.dependencies import get_user_repository
from hybridx.repositories.base import UserRepository
from hybridx.services.stripe import StripeService, get_stripe_service


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    users: UserRepository = Depends(get_user_repository),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> dict:
    """
    Handle Stripe webhook events.

    Subscription and invoice events update the user's stored subscription
    fields; everything else is acknowledged and ignored.

    Raises:
        ValidationError: 400 if signature verification fails.
    """
    payload = await request.body()
    event = stripe_service.verify_webhook_signature(payload, request.headers.get("stripe-signature"))

    event_type = event["type"]
    logger.info(f"Stripe webhook received: {event_type}")

    await stripe_service.handle_event(event, users)
    return {"received": True, "type": event_type}
