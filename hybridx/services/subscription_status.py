"""
HybridX API - Subscription Status Resolver.

Reconciles the stored subscription fields (trial start, Stripe ids and
status, cancellation flags) into the single status that gates access.
Rules are evaluated top to bottom and the first match wins; their order
matters.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Tuple

from hybridx.utils.dates import as_utc, utc_now

TRIAL_LENGTH = timedelta(days=30)
ADMIN_STATUS = "admin"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    PAUSED = "paused"
    CANCELED = "canceled"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"


ACCESS_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL})


@dataclass(frozen=True)
class SubscriptionFacts:
    """Inputs to the resolver, with datetimes normalized to UTC."""

    stored_status: Optional[str]
    stripe_customer_id: Optional[str]
    subscription_id: Optional[str]
    trial_start_date: Optional[datetime]
    cancel_at_period_end: bool
    cancellation_effective_date: Optional[datetime]
    now: datetime

    @property
    def has_stripe_ids(self) -> bool:
        return bool(self.stripe_customer_id) and bool(self.subscription_id)

    @property
    def cancellation_scheduled(self) -> bool:
        return self.cancel_at_period_end and self.cancellation_effective_date is not None


def _stored_or_expired(facts: SubscriptionFacts) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(facts.stored_status)
    except ValueError:
        return SubscriptionStatus.EXPIRED


@dataclass(frozen=True)
class StatusRule:
    name: str
    applies: Callable[[SubscriptionFacts], bool]
    result: Callable[[SubscriptionFacts], SubscriptionStatus]


def _fixed(status: SubscriptionStatus) -> Callable[[SubscriptionFacts], SubscriptionStatus]:
    return lambda facts: status


STATUS_RULES: Tuple[StatusRule, ...] = (
    StatusRule(
        "admin",
        lambda f: f.stored_status == ADMIN_STATUS,
        _fixed(SubscriptionStatus.ACTIVE),
    ),
    StatusRule(
        "paid_active",
        lambda f: f.stored_status == SubscriptionStatus.ACTIVE.value and f.has_stripe_ids,
        _fixed(SubscriptionStatus.ACTIVE),
    ),
    StatusRule(
        "paused",
        lambda f: f.stored_status == SubscriptionStatus.PAUSED.value,
        _fixed(SubscriptionStatus.PAUSED),
    ),
    StatusRule(
        "canceling_within_period",
        lambda f: f.cancellation_scheduled and f.now < f.cancellation_effective_date,
        _fixed(SubscriptionStatus.ACTIVE),
    ),
    StatusRule(
        "canceled_after_period",
        lambda f: f.cancellation_scheduled and f.now >= f.cancellation_effective_date,
        _fixed(SubscriptionStatus.CANCELED),
    ),
    StatusRule(
        "trial",
        lambda f: f.trial_start_date is not None and f.now < f.trial_start_date + TRIAL_LENGTH,
        _fixed(SubscriptionStatus.TRIAL),
    ),
    StatusRule(
        "no_payment_details",
        lambda f: not f.has_stripe_ids,
        _fixed(SubscriptionStatus.EXPIRED),
    ),
    StatusRule(
        "stored_fallback",
        lambda f: True,
        _stored_or_expired,
    ),
)


def determine_subscription_status(
    stored_status: Optional[str],
    stripe_customer_id: Optional[str],
    subscription_id: Optional[str],
    trial_start_date: Optional[datetime],
    cancel_at_period_end: Optional[bool],
    cancellation_effective_date: Optional[datetime],
    now: Optional[datetime] = None,
) -> SubscriptionStatus:
    """
    Resolve the effective subscription status.

    Pure and total: every combination of inputs maps to one status.
    Stored values outside the status set fall back to ``expired``.

    Example:
        >>> determine_subscription_status("admin", None, None, None, False, None)
        <SubscriptionStatus.ACTIVE: 'active'>
    """
    facts = SubscriptionFacts(
        stored_status=stored_status,
        stripe_customer_id=stripe_customer_id,
        subscription_id=subscription_id,
        trial_start_date=as_utc(trial_start_date),
        cancel_at_period_end=bool(cancel_at_period_end),
        cancellation_effective_date=as_utc(cancellation_effective_date),
        now=as_utc(now) if now is not None else utc_now(),
    )
    for rule in STATUS_RULES:
        if rule.applies(facts):
            return rule.result(facts)
    return SubscriptionStatus.EXPIRED


def status_for_user(user, now: Optional[datetime] = None) -> SubscriptionStatus:
    """Resolve the status from a ``User``'s stored fields."""
    stored = ADMIN_STATUS if user.is_admin else user.subscription_status
    return determine_subscription_status(
        stored,
        user.stripe_customer_id,
        user.subscription_id,
        user.trial_start_date,
        user.cancel_at_period_end,
        user.cancellation_effective_date,
        now=now,
    )


def has_access(status: SubscriptionStatus) -> bool:
    return status in ACCESS_STATUSES


def trial_days_remaining(trial_start_date: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole days left in the trial, never negative."""
    if trial_start_date is None:
        return 0
    now = as_utc(now) if now is not None else utc_now()
    remaining = as_utc(trial_start_date) + TRIAL_LENGTH - now
    return max(remaining.days, 0)
