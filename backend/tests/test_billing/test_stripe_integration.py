"""Optional Stripe integration tests — hit real Stripe test mode API.

These tests are auto-skipped unless a real test-mode key is configured in
STRIPE_SECRET_KEY (the suite's placeholder key does not count). Set
STRIPE_INTEGRATION_PRICE_ID to a real test-mode price to run the checkout test.
"""

import os

import pytest
import stripe

from threadifier.billing.stripe_client import (
    construct_webhook_event,
    create_checkout_session,
    create_customer,
    find_active_subscription,
    get_subscription,
)
from threadifier.config import settings

SKIP_REASON = "No real STRIPE_SECRET_KEY — skipping real Stripe integration tests"
_has_real_key = settings.stripe_secret_key.startswith("sk_test_") and (
    settings.stripe_secret_key != "sk_test_threadifier"
)
pytestmark = [
    pytest.mark.asyncio,
    pytest.mark.skipif(not _has_real_key, reason=SKIP_REASON),
]


class TestStripeIntegration:
    """Real Stripe API tests — only run when a test-mode key is available."""

    async def test_create_real_customer(self):
        """Verify we can create a real Stripe customer tagged with the user id."""
        customer = await create_customer(
            email="integration-test@threadifier.test",
            user_id="test-integration-user-id",
        )
        assert customer.id.startswith("cus_")
        assert customer.email == "integration-test@threadifier.test"
        assert customer.metadata["userId"] == "test-integration-user-id"

    async def test_new_customer_has_no_active_subscription(self):
        customer = await create_customer(
            email="no-sub@threadifier.test",
            user_id="test-no-sub-user-id",
        )
        assert await find_active_subscription(customer.id) is None

    async def test_create_checkout_session_returns_url(self):
        """Verify checkout session creation returns a valid URL."""
        price_id = os.getenv("STRIPE_INTEGRATION_PRICE_ID")
        if not price_id:
            pytest.skip("STRIPE_INTEGRATION_PRICE_ID not configured")

        customer = await create_customer(
            email="checkout-test@threadifier.test",
            user_id="test-checkout-user-id",
        )
        session = await create_checkout_session(
            customer_id=customer.id,
            price_id=price_id,
            user_id="test-checkout-user-id",
            success_url="https://example.com/success",
            cancel_url="https://example.com/cancel",
        )
        assert session.id.startswith("cs_")
        assert session.url is not None
        assert "checkout.stripe.com" in session.url
        assert session.metadata["userId"] == "test-checkout-user-id"

    def test_construct_webhook_event_invalid_signature(self):
        """Verify signature verification rejects invalid signatures."""
        with pytest.raises(stripe.SignatureVerificationError):
            construct_webhook_event(
                payload=b'{"type": "test"}',
                sig_header="t=12345,v1=invalid_signature",
            )

    async def test_retrieve_nonexistent_subscription(self):
        """Verify proper error when retrieving a non-existent subscription."""
        with pytest.raises(stripe.InvalidRequestError):
            await get_subscription("sub_nonexistent_12345")
