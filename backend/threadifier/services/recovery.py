"""Recovery service — replay a Stripe subscription that missed its checkout webhook."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.billing import transitions
from threadifier.billing.errors import InactiveSubscriptionError
from threadifier.billing.plans import PriceConfig, get_price_config
from threadifier.billing.stripe_client import get_subscription
from threadifier.billing.transitions import SubscriptionSnapshot
from threadifier.models.user import User
from threadifier.services.user_service import apply_record_update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayOutcome:
    """What a replay wrote for one user."""

    user_id: str
    subscription_id: str
    plan: str
    status: str
    credits_added: int
    credits_before: int

    @property
    def credits_after(self) -> int:
        return self.credits_before + self.credits_added


async def replay_subscription(
    db: AsyncSession,
    user: User,
    subscription_id: str,
    confirm_regrant: Callable[[], bool] | None = None,
    price_config: PriceConfig | None = None,
) -> ReplayOutcome:
    """Apply the checkout-completion transition for ``subscription_id`` to ``user``.

    If the user already holds this subscription id the grant has been applied
    before, whatever the stored plan. Credits are only added again when
    ``confirm_regrant`` returns True; without a callback the sub-object is
    rewritten and no credits are added.

    Raises:
        InactiveSubscriptionError: The subscription is not active in Stripe.
        BillingError: The subscription's price maps to no plan.
    """
    stripe_sub = await get_subscription(subscription_id)
    snapshot = SubscriptionSnapshot.from_stripe(stripe_sub)

    if snapshot.status != transitions.ACTIVE:
        raise InactiveSubscriptionError(snapshot.id, snapshot.status)

    grant_credits = True
    if transitions.is_already_granted(user.stripe_subscription_id, snapshot):
        grant_credits = confirm_regrant() if confirm_regrant is not None else False
        logger.warning(
            "User %s already holds subscription %s; re-grant %s",
            user.id,
            snapshot.id,
            "confirmed" if grant_credits else "declined",
        )

    record_update = transitions.checkout_completed(
        snapshot,
        price_config or get_price_config(),
        grant_credits=grant_credits,
    )
    credits_before = user.credits_available
    await apply_record_update(db, user.id, record_update)

    logger.info(
        "Replayed subscription %s for user %s: plan=%s, +%d credits",
        snapshot.id,
        user.id,
        record_update.plan,
        record_update.credit_grant,
    )
    return ReplayOutcome(
        user_id=user.id,
        subscription_id=snapshot.id,
        plan=record_update.plan,
        status=snapshot.status,
        credits_added=record_update.credit_grant,
        credits_before=credits_before,
    )
