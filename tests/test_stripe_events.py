"""Tests for applying Stripe subscription events to users."""
from datetime import datetime, timezone

import pytest

from hybridx.services.stripe import StripeService, subscription_update_fields


PERIOD_END = 1718400000  # 2024-06-14T21:20:00Z


def subscription(**overrides):
    data = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "active",
        "cancel_at_period_end": False,
        "cancel_at": None,
        "current_period_end": PERIOD_END,
        "pause_collection": None,
    }
    data.update(overrides)
    return data


def event(event_type, obj):
    return {"type": event_type, "data": {"object": obj}}


class TestSubscriptionUpdateFields:

    def test_active_subscription(self):
        fields = subscription_update_fields(subscription(), "customer.subscription.updated")

        assert fields == {
            "subscription_id": "sub_1",
            "subscription_status": "active",
            "cancel_at_period_end": False,
            "cancellation_effective_date": None,
        }

    def test_trialing_is_stored_as_active(self):
        fields = subscription_update_fields(subscription(status="trialing"), "customer.subscription.created")

        assert fields["subscription_status"] == "active"

    def test_paused_collection(self):
        fields = subscription_update_fields(
            subscription(pause_collection={"behavior": "void"}), "customer.subscription.updated"
        )

        assert fields["subscription_status"] == "paused"

    def test_cancel_at_period_end_uses_period_end(self):
        fields = subscription_update_fields(
            subscription(cancel_at_period_end=True), "customer.subscription.updated"
        )

        assert fields["cancel_at_period_end"] is True
        assert fields["cancellation_effective_date"] == datetime.fromtimestamp(PERIOD_END, tz=timezone.utc)

    def test_explicit_cancel_at_wins(self):
        fields = subscription_update_fields(
            subscription(cancel_at_period_end=True, cancel_at=PERIOD_END - 86400),
            "customer.subscription.updated",
        )

        assert fields["cancellation_effective_date"] == datetime.fromtimestamp(
            PERIOD_END - 86400, tz=timezone.utc
        )

    def test_deleted_subscription_expires(self):
        fields = subscription_update_fields(subscription(status="canceled"), "customer.subscription.deleted")

        assert fields["subscription_status"] == "expired"
        assert fields["subscription_id"] is None

    def test_other_statuses_are_stored_verbatim(self):
        fields = subscription_update_fields(subscription(status="past_due"), "customer.subscription.updated")

        assert fields["subscription_status"] == "past_due"


class TestHandleEvent:

    @pytest.fixture
    def stripe_service(self, monkeypatch):
        service = StripeService(api_key="sk_test_123", price_id="price_1")
        monkeypatch.setattr(service, "customer_user_id", lambda customer_id: "user-1")
        monkeypatch.setattr(service, "retrieve_subscription", lambda subscription_id: subscription())
        return service

    async def test_subscription_event_updates_user(self, stripe_service, users_repo):
        user_id = await stripe_service.handle_event(
            event("customer.subscription.created", subscription()), users_repo
        )

        stored = users_repo.items["user-1"]
        assert user_id == "user-1"
        assert stored.subscription_status == "active"
        assert stored.subscription_id == "sub_1"
        assert stored.stripe_customer_id == "cus_1"

    async def test_user_found_by_customer_id(self, stripe_service, users_repo, monkeypatch):
        users_repo.items["user-1"] = users_repo.items["user-1"].model_copy(update={"stripe_customer_id": "cus_1"})
        monkeypatch.setattr(stripe_service, "customer_user_id", lambda customer_id: pytest.fail("no lookup"))

        user_id = await stripe_service.handle_event(
            event("customer.subscription.deleted", subscription(status="canceled")), users_repo
        )

        assert user_id == "user-1"
        assert users_repo.items["user-1"].subscription_status == "expired"

    async def test_invoice_event_loads_subscription(self, stripe_service, users_repo):
        user_id = await stripe_service.handle_event(
            event("invoice.payment_succeeded", {"subscription": "sub_1"}), users_repo
        )

        assert user_id == "user-1"
        assert users_repo.items["user-1"].subscription_status == "active"

    async def test_unknown_customer_is_ignored(self, stripe_service, users_repo, monkeypatch):
        monkeypatch.setattr(stripe_service, "customer_user_id", lambda customer_id: None)

        user_id = await stripe_service.handle_event(
            event("customer.subscription.updated", subscription()), users_repo
        )

        assert user_id is None
        assert users_repo.items["user-1"].subscription_status == "trial"

    async def test_unhandled_event_type(self, stripe_service, users_repo):
        assert await stripe_service.handle_event(event("charge.refunded", {}), users_repo) is None
