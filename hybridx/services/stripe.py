"""
HybridX API - Stripe Payment Service.

Checkout for the single paid plan, webhook verification, and mapping of
subscription events onto the user fields the status resolver reads.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe

from hybridx.models.user import User
from hybridx.repositories.base import UserRepository
from hybridx.utils.errors import ExternalServiceError, ValidationError
from settings import settings


logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})
INVOICE_EVENTS = frozenset({
    "invoice.payment_succeeded",
    "invoice.payment_failed",
})

# Stripe statuses stored under our own name; everything else is stored as is
STRIPE_STATUS_MAP = {
    "canceled": "expired",
    "trialing": "active",
}

CUSTOMER_USER_ID_KEY = "user_id"


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def subscription_update_fields(subscription: Any, event_type: str) -> Dict[str, Any]:
    """
    User fields to write for a Stripe subscription object.

    Args:
        subscription: Stripe subscription (object or plain dict).
        event_type: Webhook event type that delivered it.

    Returns:
        Dict[str, Any]: Values for ``UserRepository.update_fields``.
    """
    status = _field(subscription, "status")
    cancel_at_period_end = bool(_field(subscription, "cancel_at_period_end", False))

    fields: Dict[str, Any] = {
        "subscription_id": _field(subscription, "id"),
        "subscription_status": STRIPE_STATUS_MAP.get(status, status),
        "cancel_at_period_end": cancel_at_period_end,
        "cancellation_effective_date": None,
    }

    if status == "active" and _field(subscription, "pause_collection"):
        fields["subscription_status"] = "paused"

    if cancel_at_period_end:
        fields["cancellation_effective_date"] = _timestamp(
            _field(subscription, "cancel_at") or _field(subscription, "current_period_end")
        )

    if event_type == "customer.subscription.deleted":
        fields["subscription_status"] = "expired"
        fields["subscription_id"] = None

    return fields


class StripeService:
    """
    Stripe payment service for subscription management.

    Handles customers, checkout sessions and webhook events.
    """

    def __init__(self, api_key: Optional[str] = None, price_id: Optional[str] = None):
        """
        Initialize Stripe client.

        Args:
            api_key: Stripe secret key. Falls back to settings if not provided.
            price_id: Price of the subscription plan. Falls back to settings.
        """
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.price_id = price_id or settings.STRIPE_PRICE_ID
        if self.api_key:
            stripe.api_key = self.api_key

    def _require_key(self) -> None:
        if not self.api_key:
            logger.error("Stripe API key not configured")
            raise ExternalServiceError("stripe", "Payments are not configured")

    def create_customer(self, user: User) -> str:
        """Create a Stripe customer tagged with our user id."""
        self._require_key()
        try:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.full_name or user.email,
                metadata={CUSTOMER_USER_ID_KEY: user.id},
            )
        except stripe.error.StripeError as e:
            logger.error(f"Stripe customer creation error: {str(e)}")
            raise ExternalServiceError("stripe", "Could not create customer", detail=str(e))
        logger.info(f"Created Stripe customer {customer.id} for user {user.id}")
        return customer.id

    async def create_checkout_session(self, user: User, users: UserRepository) -> Dict[str, Any]:
        """
        Create a subscription checkout session, creating the customer first if needed.

        Returns:
            Dict[str, Any]: ``session_id`` and ``url`` to redirect to.
        """
        self._require_key()
        if not self.price_id:
            raise ExternalServiceError("stripe", "Subscription price is not configured")

        customer_id = user.stripe_customer_id
        if not customer_id:
            customer_id = self.create_customer(user)
            await users.update_fields(user.id, stripe_customer_id=customer_id)

        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                mode="subscription",
                customer=customer_id,
                line_items=[{"price": self.price_id, "quantity": 1}],
                success_url=f"{settings.FRONTEND_URL}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{settings.FRONTEND_URL}/subscription",
                metadata={CUSTOMER_USER_ID_KEY: user.id},
            )
        except stripe.error.StripeError as e:
            logger.error(f"Stripe error creating checkout session: {str(e)}")
            raise ExternalServiceError("stripe", "Could not start checkout", detail=str(e))

        logger.info(f"Created Stripe checkout session {session.id} for user {user.id}")
        return {"session_id": session.id, "url": session.url}

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> Any:
        """
        Verify Stripe webhook signature.

        Raises:
            ValidationError: missing or invalid signature.
        """
        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("Stripe webhook secret not configured")
            raise ExternalServiceError("stripe", "Webhooks are not configured")
        if not signature:
            raise ValidationError("Missing Stripe signature")

        try:
            return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.error.SignatureVerificationError) as e:
            logger.warning(f"Stripe webhook signature verification failed: {e}")
            raise ValidationError("Invalid webhook signature", detail=str(e))

    def retrieve_subscription(self, subscription_id: str) -> Any:
        self._require_key()
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except stripe.error.StripeError as e:
            logger.error(f"Stripe subscription lookup error: {str(e)}")
            raise ExternalServiceError("stripe", "Could not load subscription", detail=str(e))

    def customer_user_id(self, customer_id: str) -> Optional[str]:
        """Our user id from the customer's metadata, if present."""
        self._require_key()
        try:
            customer = stripe.Customer.retrieve(customer_id)
        except stripe.error.StripeError as e:
            logger.error(f"Stripe customer lookup error: {str(e)}")
            raise ExternalServiceError("stripe", "Could not load customer", detail=str(e))
        return _field(_field(customer, "metadata"), CUSTOMER_USER_ID_KEY)

    async def _find_user(self, customer_id: str, users: UserRepository) -> Optional[User]:
        user = await users.get_by_stripe_customer(customer_id)
        if user is not None:
            return user
        user_id = self.customer_user_id(customer_id)
        if not user_id:
            return None
        return await users.get(user_id)

    async def handle_event(self, event: Any, users: UserRepository) -> Optional[str]:
        """
        Apply a verified webhook event.

        Returns:
            Optional[str]: Id of the updated user, None when the event was
            ignored or no user matched.
        """
        event_type = _field(event, "type")
        data = _field(_field(event, "data"), "object")

        if event_type in SUBSCRIPTION_EVENTS:
            subscription = data
        elif event_type in INVOICE_EVENTS:
            subscription_id = _field(data, "subscription")
            if not subscription_id:
                return None
            subscription = self.retrieve_subscription(subscription_id)
        else:
            logger.debug(f"Ignoring Stripe event {event_type}")
            return None

        customer_id = _field(subscription, "customer")
        user = await self._find_user(customer_id, users) if customer_id else None
        if user is None:
            logger.error(f"No user found for Stripe customer {customer_id} ({event_type})")
            return None

        fields = subscription_update_fields(subscription, event_type)
        fields["stripe_customer_id"] = customer_id
        await users.update_fields(user.id, **fields)
        logger.info(
            f"Updated subscription for user {user.id} to {fields['subscription_status']} ({event_type})"
        )
        return user.id


_stripe_service: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Global Stripe service instance."""
    global _stripe_service
    if _stripe_service is None:
        _stripe_service = StripeService()
    return _stripe_service
