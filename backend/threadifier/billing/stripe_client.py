"""Async Stripe API wrapper for Threadifier."""

import logging
from functools import lru_cache

import stripe
from stripe import StripeClient

from threadifier.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_stripe_client() -> StripeClient:
    """Return the process-wide StripeClient, created on first use with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


async def create_customer(email: str, user_id: str) -> stripe.Customer:
    """Create a Stripe customer linked to a Threadifier user."""
    client = get_stripe_client()
    logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
    customer = await client.v1.customers.create_async(
        params={
            "email": email,
            "metadata": {"userId": user_id},
        }
    )
    logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
    return customer


async def create_checkout_session(
    customer_id: str,
    price_id: str,
    user_id: str,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    """Create a subscription Checkout Session tagged with the user id.

    ``userId`` goes on both the session and the subscription it creates, so
    every later webhook for this subscription can be correlated to the user.
    """
    client = get_stripe_client()
    logger.info(
        "Creating checkout session for customer %s, price %s",
        customer_id,
        price_id,
    )
    return await client.v1.checkout.sessions.create_async(
        params={
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {"userId": user_id},
            "subscription_data": {"metadata": {"userId": user_id}},
            "allow_promotion_codes": True,
        }
    )


async def create_portal_session(
    customer_id: str, return_url: str
) -> stripe.billing_portal.Session:
    """Create a Stripe Customer Portal session for subscription management."""
    client = get_stripe_client()
    logger.info("Creating portal session for customer %s", customer_id)
    return await client.v1.billing_portal.sessions.create_async(
        params={
            "customer": customer_id,
            "return_url": return_url,
        }
    )


async def get_subscription(subscription_id: str) -> stripe.Subscription:
    """Retrieve a Stripe subscription by ID."""
    client = get_stripe_client()
    return await client.v1.subscriptions.retrieve_async(subscription_id)


async def find_active_subscription(customer_id: str) -> stripe.Subscription | None:
    """Return the customer's most recent active subscription, if any."""
    client = get_stripe_client()
    result = await client.v1.subscriptions.list_async(
        params={"customer": customer_id, "status": "active", "limit": 1}
    )
    return result.data[0] if result.data else None


async def reactivate_subscription(subscription_id: str) -> stripe.Subscription:
    """Clear a scheduled cancellation so the subscription renews again."""
    client = get_stripe_client()
    logger.info("Reactivating subscription %s", subscription_id)
    return await client.v1.subscriptions.update_async(
        subscription_id,
        params={"cancel_at_period_end": False},
    )


async def list_checkout_events(limit: int = 20) -> list[stripe.Event]:
    """List the most recent checkout.session.completed events."""
    client = get_stripe_client()
    result = await client.v1.events.list_async(
        params={"type": "checkout.session.completed", "limit": limit}
    )
    return list(result.data)


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event (synchronous)."""
    client = get_stripe_client()
    return client.construct_event(payload, sig_header, settings.stripe_webhook_secret)
