"""Reconciliation service — repair drift between the user row and Stripe."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.billing import transitions
from threadifier.billing.plans import PriceConfig, get_price_config
from threadifier.billing.stripe_client import get_subscription
from threadifier.billing.transitions import ReconcileDecision, SubscriptionSnapshot
from threadifier.models.user import User
from threadifier.services.user_service import apply_record_update

logger = logging.getLogger(__name__)


async def reconcile_user(
    db: AsyncSession, user: User, price_config: PriceConfig | None = None
) -> ReconcileDecision | None:
    """Re-derive the user's plan and status from the live Stripe subscription.

    Returns None when the user has no subscription to reconcile. Writes only
    when plan or status differ; credit fields are never touched.

    Raises:
        BillingError: The live subscription's price maps to no plan.
        stripe.StripeError: Stripe could not be reached or rejected the lookup.
    """
    if not user.stripe_subscription_id:
        return None

    stored_status = user.subscription_status
    stripe_sub = await get_subscription(user.stripe_subscription_id)
    snapshot = SubscriptionSnapshot.from_stripe(stripe_sub)
    decision = transitions.reconcile(
        user.plan,
        user.subscription_status,
        snapshot,
        price_config or get_price_config(),
    )

    if not decision.changed:
        logger.info("User %s already up to date (plan=%s, status=%s)", user.id, decision.plan, decision.status)
        return decision

    await apply_record_update(db, user.id, decision.update)
    logger.info(
        "Reconciled user %s: plan %s → %s, status %s → %s",
        user.id,
        decision.old_plan,
        decision.plan,
        stored_status,
        decision.status,
    )
    return decision
