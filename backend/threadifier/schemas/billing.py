"""Pydantic v2 request/response schemas for billing endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session."""

    price_id: str
    success_url: str | None = None
    cancel_url: str | None = None


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    return_url: str | None = None


class RecoverSubscriptionRequest(BaseModel):
    """Operator request to replay a user's active Stripe subscription."""

    user_email: str
    stripe_customer_id: str | None = None


# --- Response schemas ---


class CreditsResponse(BaseModel):
    """Credit balance of a user."""

    available: int
    lifetime: int
    last_refresh_at: datetime | None
    expirations: list[dict]


class SubscriptionResponse(BaseModel):
    """Stored entitlement and credit state for the authenticated user."""

    user_id: str
    email: str
    plan: str
    plan_display_name: str
    status: str | None
    stripe_customer_id: str | None
    stripe_subscription_id: str | None
    current_period_end: datetime | None
    cancel_at_period_end: bool
    auto_append_referral: bool
    credits: CreditsResponse
    updated_at: datetime | None


class RefreshSubscriptionResponse(BaseModel):
    """Result of reconciling the stored entitlement against Stripe.

    Serialised in camelCase (``oldPlan``/``newPlan``) for the web client.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    plan: str
    status: str | None = None
    old_plan: str | None = None
    new_plan: str | None = None


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    checkout_url: str
    session_id: str


class PortalResponse(BaseModel):
    """Stripe Customer Portal URL returned to frontend."""

    portal_url: str


class ReactivateResponse(BaseModel):
    """Subscription state after clearing a scheduled cancellation."""

    subscription_id: str
    cancel_at_period_end: bool
    current_period_end: datetime | None


class RecoverSubscriptionResponse(BaseModel):
    """Result of an operator replay."""

    success: bool
    message: str
    user_id: str
    plan: str
    stripe_subscription_id: str
    credits_added: int
    total_credits: int
