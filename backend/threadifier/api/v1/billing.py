"""Billing API endpoints — entitlement state, reconciliation, Checkout and Customer Portal."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.auth.dependencies import get_current_user
from threadifier.billing import transitions
from threadifier.billing.errors import BillingError
from threadifier.billing.plans import get_plan, get_price_config
from threadifier.billing.stripe_client import (
    create_checkout_session,
    create_portal_session,
    reactivate_subscription,
)
from threadifier.billing.transitions import SubscriptionSnapshot
from threadifier.config import settings
from threadifier.database import get_db
from threadifier.models.user import User
from threadifier.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    CreditsResponse,
    PortalRequest,
    PortalResponse,
    ReactivateResponse,
    RefreshSubscriptionResponse,
    SubscriptionResponse,
)
from threadifier.services.reconciliation import reconcile_user
from threadifier.services.user_service import apply_record_update, ensure_stripe_customer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])

_REFRESH_FAILED = "Failed to refresh subscription"


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription_state(
    current_user: User = Depends(get_current_user),
) -> SubscriptionResponse:
    """Get the stored plan, subscription status and credit balance."""
    return SubscriptionResponse(
        user_id=current_user.id,
        email=current_user.email,
        plan=current_user.plan,
        plan_display_name=get_plan(current_user.plan).display_name,
        status=current_user.subscription_status,
        stripe_customer_id=current_user.stripe_customer_id,
        stripe_subscription_id=current_user.stripe_subscription_id,
        current_period_end=current_user.current_period_end,
        cancel_at_period_end=current_user.cancel_at_period_end,
        auto_append_referral=current_user.auto_append_referral,
        credits=CreditsResponse(
            available=current_user.credits_available,
            lifetime=current_user.credits_lifetime,
            last_refresh_at=current_user.credits_last_refresh_at,
            expirations=current_user.credit_expirations or [],
        ),
        updated_at=current_user.updated_at,
    )


@router.post("/refresh-subscription", response_model=RefreshSubscriptionResponse)
async def refresh_subscription(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> RefreshSubscriptionResponse:
    """Reconcile the caller's stored plan and status with Stripe."""
    stored_status = current_user.subscription_status
    try:
        decision = await reconcile_user(db, current_user)
    except BillingError as e:
        logger.warning("Cannot reconcile user %s: %s", current_user.id, e)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_REFRESH_FAILED) from e
    except stripe.StripeError as e:
        logger.error("Stripe error refreshing subscription for user %s: %s", current_user.id, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=_REFRESH_FAILED) from e
    except Exception as e:
        logger.exception("Error refreshing subscription for user %s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=_REFRESH_FAILED
        ) from e

    if decision is None:
        return RefreshSubscriptionResponse(
            success=True,
            message="No subscription found",
            plan="free",
            status=stored_status,
        )

    if not decision.changed:
        return RefreshSubscriptionResponse(
            success=True,
            message="already up to date",
            plan=decision.plan,
            status=decision.status,
        )

    await db.commit()
    return RefreshSubscriptionResponse(
        success=True,
        message="Subscription updated",
        plan=decision.plan,
        status=decision.status,
        old_plan=decision.old_plan,
        new_plan=decision.plan,
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a configured plan price."""
    if body.price_id not in get_price_config().all_price_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid price ID.",
        )

    success_url = (
        body.success_url
        or f"{settings.frontend_url}/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}"
    )
    cancel_url = body.cancel_url or f"{settings.frontend_url}/billing?canceled=true"

    try:
        customer_id = await ensure_stripe_customer(db, current_user)
        session = await create_checkout_session(
            customer_id=customer_id,
            price_id=body.price_id,
            user_id=current_user.id,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e

    await db.commit()

    return CheckoutResponse(
        checkout_url=session.url,
        session_id=session.id,
    )


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    current_user: User = Depends(get_current_user),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for subscription management."""
    if not current_user.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No Stripe customer found. Subscribe first.",
        )

    return_url = body.return_url or f"{settings.frontend_url}/?view=billing"

    try:
        session = await create_portal_session(
            customer_id=current_user.stripe_customer_id,
            return_url=return_url,
        )
    except stripe.StripeError as e:
        logger.error("Stripe portal error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e

    return PortalResponse(portal_url=session.url)


@router.post("/reactivate", response_model=ReactivateResponse)
async def reactivate(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReactivateResponse:
    """Undo a scheduled cancellation on the caller's subscription."""
    if not current_user.stripe_subscription_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing subscription ID",
        )

    try:
        stripe_sub = await reactivate_subscription(current_user.stripe_subscription_id)
    except stripe.StripeError as e:
        logger.error("Stripe reactivation error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to reactivate subscription",
        ) from e

    snapshot = SubscriptionSnapshot.from_stripe(stripe_sub)
    await apply_record_update(db, current_user.id, transitions.subscription_updated(snapshot))
    await db.commit()

    return ReactivateResponse(
        subscription_id=snapshot.id,
        cancel_at_period_end=snapshot.cancel_at_period_end,
        current_period_end=snapshot.current_period_end,
    )
