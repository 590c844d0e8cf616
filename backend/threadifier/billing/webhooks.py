"""Stripe webhook event handlers — apply subscription lifecycle transitions."""

import enum
import logging
from typing import Any

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.billing import transitions
from threadifier.billing.errors import BillingError
from threadifier.billing.plans import PriceConfig, get_price_config
from threadifier.billing.stripe_client import get_subscription
from threadifier.billing.transitions import SubscriptionSnapshot, metadata_user_id
from threadifier.models.user import User
from threadifier.services.user_service import (
    apply_record_update,
    get_user,
    get_user_by_stripe_customer,
)

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    """Stripe event types with a transition. Anything else is acknowledged and ignored."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def parse(cls, event_type: str) -> "EventKind | None":
        try:
            return cls(event_type)
        except ValueError:
            return None


def _get_invoice_subscription_id(invoice: Any) -> str | None:
    """Extract the subscription ID from an invoice.

    Newer API versions move it under ``parent.subscription_details``.
    """
    subscription_id = getattr(invoice, "subscription", None)
    if subscription_id:
        return subscription_id
    parent = getattr(invoice, "parent", None)
    details = getattr(parent, "subscription_details", None) if parent else None
    return getattr(details, "subscription", None) if details else None


async def resolve_user(
    db: AsyncSession, obj: Any, customer_id: str | None
) -> User | None:
    """Find the user an event belongs to.

    ``metadata.userId`` on the Stripe object wins; otherwise the user that owns
    the Stripe customer. Returns None when neither resolves.
    """
    user_id = metadata_user_id(obj)
    if user_id:
        user = await get_user(db, user_id)
        if user is None:
            logger.warning("Event references unknown user %s", user_id)
        return user

    if customer_id:
        user = await get_user_by_stripe_customer(db, customer_id)
        if user is not None:
            logger.info("Resolved user %s from Stripe customer %s", user.id, customer_id)
            return user

    logger.warning("No userId in metadata and no user for customer %s", customer_id)
    return None


def _warn_if_other_subscription(user: User, subscription_id: str) -> None:
    if user.stripe_subscription_id and user.stripe_subscription_id != subscription_id:
        logger.warning(
            "Event for subscription %s but user %s holds %s",
            subscription_id,
            user.id,
            user.stripe_subscription_id,
        )


async def handle_checkout_session_completed(
    db: AsyncSession, event: stripe.Event, price_config: PriceConfig | None = None
) -> None:
    """Handle checkout.session.completed — activate the subscription and grant credits once."""
    session = event.data.object
    customer_id = getattr(session, "customer", None)
    subscription_id = getattr(session, "subscription", None)

    if not subscription_id:
        logger.info("Checkout session %s has no subscription (one-time?), skipping", session.id)
        return

    user = await resolve_user(db, session, customer_id)
    if user is None:
        logger.warning(
            "Skipping checkout %s: no user (customer=%s, subscription=%s)",
            session.id,
            customer_id,
            subscription_id,
        )
        return

    # Fetch full subscription from Stripe to get price and period info
    stripe_sub = await get_subscription(subscription_id)
    snapshot = SubscriptionSnapshot.from_stripe(stripe_sub)

    already_granted = transitions.is_already_granted(user.stripe_subscription_id, snapshot)
    try:
        record_update = transitions.checkout_completed(
            snapshot,
            price_config or get_price_config(),
            customer_id=customer_id,
            grant_credits=not already_granted,
        )
    except BillingError as e:
        logger.warning("Skipping checkout %s for user %s: %s", session.id, user.id, e)
        return

    if already_granted:
        logger.info(
            "Subscription %s already active for user %s, not re-granting credits",
            subscription_id,
            user.id,
        )

    await apply_record_update(db, user.id, record_update)
    logger.info(
        "Checkout completed: user %s on plan %s (+%d credits)",
        user.id,
        record_update.plan,
        record_update.credit_grant,
    )


async def handle_subscription_updated(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.updated — sync status and billing period only."""
    snapshot = SubscriptionSnapshot.from_stripe(event.data.object)

    user = await resolve_user(db, event.data.object, snapshot.customer_id)
    if user is None:
        logger.warning("Skipping update for subscription %s: no user", snapshot.id)
        return

    _warn_if_other_subscription(user, snapshot.id)
    await apply_record_update(db, user.id, transitions.subscription_updated(snapshot))
    logger.info(
        "Subscription updated: %s → status=%s, cancel_at_period_end=%s",
        snapshot.id,
        snapshot.status,
        snapshot.cancel_at_period_end,
    )


async def handle_subscription_deleted(db: AsyncSession, event: stripe.Event) -> None:
    """Handle customer.subscription.deleted — downgrade to free, keep credits."""
    stripe_sub = event.data.object

    user = await resolve_user(db, stripe_sub, getattr(stripe_sub, "customer", None))
    if user is None:
        logger.warning("Skipping delete for subscription %s: no user", stripe_sub.id)
        return

    _warn_if_other_subscription(user, stripe_sub.id)
    await apply_record_update(db, user.id, transitions.subscription_deleted())
    logger.info("Subscription deleted: %s, user %s downgraded to free", stripe_sub.id, user.id)


async def handle_invoice_payment_failed(db: AsyncSession, event: stripe.Event) -> None:
    """Handle invoice.payment_failed — mark the subscription past_due."""
    invoice = event.data.object
    subscription_id = _get_invoice_subscription_id(invoice)

    if not subscription_id:
        logger.info(
            "Invoice %s has no subscription (one-time), skipping payment failure",
            invoice.id,
        )
        return

    # The invoice carries no userId; the subscription it bills does.
    stripe_sub = await get_subscription(subscription_id)

    user = await resolve_user(db, stripe_sub, getattr(stripe_sub, "customer", None))
    if user is None:
        logger.warning("Skipping payment failure for subscription %s: no user", subscription_id)
        return

    await apply_record_update(db, user.id, transitions.payment_failed())
    logger.info("Payment failed: user %s marked past_due", user.id)


EVENT_HANDLERS = {
    EventKind.CHECKOUT_COMPLETED: handle_checkout_session_completed,
    EventKind.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    EventKind.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    EventKind.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
}
