"""User service — lookups and atomic entitlement writes on the users table."""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.billing.stripe_client import create_customer
from threadifier.billing.transitions import RecordUpdate
from threadifier.models.user import User
from threadifier.models.webhook_event import ProcessedWebhookEvent

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    """Look up a user by identity-provider uid."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_stripe_customer(
    db: AsyncSession, stripe_customer_id: str
) -> User | None:
    """Look up a user by Stripe customer ID (used by webhooks and recovery)."""
    result = await db.execute(
        select(User).where(User.stripe_customer_id == stripe_customer_id)
    )
    return result.scalar_one_or_none()


async def find_user(db: AsyncSession, identifier: str) -> User | None:
    """Resolve an operator-supplied identifier: email first, then Stripe customer ID."""
    user = await get_user_by_email(db, identifier)
    if user is not None:
        return user
    return await get_user_by_stripe_customer(db, identifier)


async def apply_record_update(
    db: AsyncSession, user_id: str, record_update: RecordUpdate
) -> bool:
    """Write a transition to the user row as one UPDATE statement.

    The credit grant is applied as an in-SQL increment so concurrent writers
    cannot lose each other's additions. Returns False if no row matched.
    """
    values = dict(record_update.values)
    if record_update.credit_grant:
        values["credits_available"] = User.credits_available + record_update.credit_grant
        values["credits_lifetime"] = User.credits_lifetime + record_update.credit_grant
        values["credits_last_refresh_at"] = func.now()
    values["updated_at"] = func.now()

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()

    if result.rowcount == 0:
        logger.warning("No user row %s to update", user_id)
        return False

    logger.info(
        "Updated user %s: %s (credits +%d)",
        user_id,
        ", ".join(sorted(record_update.values)),
        record_update.credit_grant,
    )
    return True


async def ensure_stripe_customer(db: AsyncSession, user: User) -> str:
    """Ensure the user has a Stripe customer ID. Create one if missing."""
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = await create_customer(email=user.email, user_id=user.id)
    user.stripe_customer_id = customer.id
    await db.flush()
    logger.info("Linked Stripe customer %s to user %s", customer.id, user.id)
    return customer.id


async def is_event_processed(db: AsyncSession, stripe_event_id: str) -> bool:
    result = await db.execute(
        select(ProcessedWebhookEvent.id).where(
            ProcessedWebhookEvent.stripe_event_id == stripe_event_id
        )
    )
    return result.scalar_one_or_none() is not None


async def mark_event_processed(
    db: AsyncSession, stripe_event_id: str, event_type: str
) -> None:
    """Record an event in the same transaction as its transition.

    The unique constraint on ``stripe_event_id`` makes a concurrent second
    delivery fail at commit instead of applying twice.
    """
    db.add(ProcessedWebhookEvent(stripe_event_id=stripe_event_id, event_type=event_type))
    await db.flush()
