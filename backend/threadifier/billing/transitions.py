"""Subscription state transitions shared by webhooks, reconciliation and recovery.

Every function here is pure: it takes a snapshot of the Stripe subscription
(plus the configured price table) and returns the field values to write to
the user row. Nothing in this module touches Stripe or the database, so the
webhook checkout path and the operator replay path produce identical writes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from threadifier.billing.errors import SubscriptionItemMissingError, UnknownPriceError
from threadifier.billing.plans import FREE, PLANS, PriceConfig, get_plan_by_price_id

ACTIVE = "active"
PAST_DUE = "past_due"
CANCELLED = "cancelled"


def _ts_to_naive(ts: int | None) -> datetime | None:
    """Convert a Stripe Unix timestamp to a naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def _get_first_item(stripe_sub: Any):
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() on Stripe objects.
    """
    try:
        sub_items = stripe_sub["items"]
    except (KeyError, AttributeError):
        return None
    if sub_items and sub_items.data:
        return sub_items.data[0]
    return None


def metadata_user_id(obj: Any) -> str | None:
    metadata = getattr(obj, "metadata", None)
    if metadata is None:
        return None
    try:
        return metadata["userId"] or None
    except KeyError:
        return None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """The parts of a Stripe subscription the entitlement record depends on."""

    id: str
    customer_id: str | None
    status: str
    price_id: str | None
    current_period_end: datetime | None
    cancel_at_period_end: bool
    user_id: str | None = None

    @classmethod
    def from_stripe(cls, stripe_sub: Any) -> "SubscriptionSnapshot":
        """Build a snapshot from a Stripe Subscription object.

        Since Stripe API 2025-08-27 (basil) the billing period lives on the
        subscription item; older payloads carry it on the subscription itself.
        """
        item = _get_first_item(stripe_sub)
        price_id = item.price.id if item else None
        period_end = getattr(item, "current_period_end", None) if item else None
        if period_end is None:
            period_end = getattr(stripe_sub, "current_period_end", None)
        return cls(
            id=stripe_sub.id,
            customer_id=getattr(stripe_sub, "customer", None),
            status=stripe_sub.status,
            price_id=price_id,
            current_period_end=_ts_to_naive(period_end),
            cancel_at_period_end=bool(getattr(stripe_sub, "cancel_at_period_end", False)),
            user_id=metadata_user_id(stripe_sub),
        )


@dataclass(frozen=True)
class RecordUpdate:
    """Field values to overwrite on a user row, plus an additive credit grant."""

    values: dict[str, Any] = field(default_factory=dict)
    credit_grant: int = 0

    @property
    def plan(self) -> str | None:
        return self.values.get("plan")

    @property
    def status(self) -> str | None:
        return self.values.get("subscription_status")


@dataclass(frozen=True)
class ReconcileDecision:
    """Outcome of comparing the stored entitlement against the live subscription."""

    old_plan: str
    plan: str
    status: str
    changed: bool
    update: RecordUpdate


def derive_plan(snapshot: SubscriptionSnapshot, config: PriceConfig) -> str:
    """Map the subscription's price id to a paid plan.

    Raises:
        SubscriptionItemMissingError: The subscription has no price to read.
        UnknownPriceError: The price is in neither configured tier.
    """
    if snapshot.price_id is None:
        raise SubscriptionItemMissingError(snapshot.id)
    plan = get_plan_by_price_id(snapshot.price_id, config)
    if plan is None:
        raise UnknownPriceError(snapshot.price_id, snapshot.id)
    return plan


def is_already_granted(stored_subscription_id: str | None, snapshot: SubscriptionSnapshot) -> bool:
    """True if the activation grant for this subscription has already been applied."""
    return stored_subscription_id is not None and stored_subscription_id == snapshot.id


def checkout_completed(
    snapshot: SubscriptionSnapshot,
    config: PriceConfig,
    customer_id: str | None = None,
    grant_credits: bool = True,
) -> RecordUpdate:
    """Activation: full subscription sub-object plus the plan's one-time grant."""
    plan = derive_plan(snapshot, config)
    return RecordUpdate(
        values={
            "plan": plan,
            "subscription_status": ACTIVE,
            "stripe_customer_id": customer_id or snapshot.customer_id,
            "stripe_subscription_id": snapshot.id,
            "current_period_end": snapshot.current_period_end,
            "cancel_at_period_end": snapshot.cancel_at_period_end,
            "auto_append_referral": False,
        },
        credit_grant=PLANS[plan].credit_grant if grant_credits else 0,
    )


def subscription_updated(snapshot: SubscriptionSnapshot) -> RecordUpdate:
    """Status and billing-period sync; plan and credits are left alone."""
    return RecordUpdate(
        values={
            "subscription_status": snapshot.status,
            "current_period_end": snapshot.current_period_end,
            "cancel_at_period_end": snapshot.cancel_at_period_end,
        }
    )


def subscription_deleted() -> RecordUpdate:
    """Cancellation: back to free, previously granted credits are kept."""
    return RecordUpdate(
        values={
            "plan": FREE,
            "subscription_status": CANCELLED,
            "cancel_at_period_end": False,
        }
    )


def payment_failed() -> RecordUpdate:
    return RecordUpdate(values={"subscription_status": PAST_DUE})


def reconcile(
    stored_plan: str,
    stored_status: str | None,
    snapshot: SubscriptionSnapshot,
    config: PriceConfig,
) -> ReconcileDecision:
    """Recompute the entitlement from the live subscription.

    An inactive subscription never confers a paid plan, whatever its price.
    """
    if snapshot.status != ACTIVE:
        correct_plan = FREE
    else:
        correct_plan = derive_plan(snapshot, config)

    changed = stored_plan != correct_plan or stored_status != snapshot.status
    update = RecordUpdate(
        values={
            "plan": correct_plan,
            "subscription_status": snapshot.status,
            "current_period_end": snapshot.current_period_end,
            "cancel_at_period_end": snapshot.cancel_at_period_end,
        }
    )
    return ReconcileDecision(
        old_plan=stored_plan,
        plan=correct_plan,
        status=snapshot.status,
        changed=changed,
        update=update,
    )
