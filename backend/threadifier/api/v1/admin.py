"""Admin endpoints — operator recovery of subscriptions whose checkout webhook was lost."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.auth.dependencies import get_admin_user
from threadifier.billing.errors import BillingError
from threadifier.billing.stripe_client import find_active_subscription
from threadifier.database import get_db
from threadifier.models.user import User
from threadifier.schemas.billing import RecoverSubscriptionRequest, RecoverSubscriptionResponse
from threadifier.services.recovery import replay_subscription
from threadifier.services.user_service import get_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post("/recover-subscription", response_model=RecoverSubscriptionResponse)
async def recover_subscription(
    body: RecoverSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_admin_user),
) -> RecoverSubscriptionResponse:
    """Replay the user's active Stripe subscription onto their record.

    Credits are never re-granted here when the user already holds the
    subscription; re-grants need the interactive recovery tool.
    """
    user = await get_user_by_email(db, body.user_email)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    customer_id = body.stripe_customer_id or user.stripe_customer_id
    if not customer_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active subscription found for this user",
        )

    try:
        stripe_sub = await find_active_subscription(customer_id)
        if stripe_sub is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No active subscription found for this user",
            )
        outcome = await replay_subscription(db, user, stripe_sub.id)
    except BillingError as e:
        logger.warning("Recovery for %s aborted: %s", body.user_email, e)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except stripe.StripeError as e:
        logger.error("Stripe error recovering subscription for %s: %s", body.user_email, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e

    await db.commit()
    logger.info("Admin %s recovered subscription %s for %s", admin.email, outcome.subscription_id, user.id)

    return RecoverSubscriptionResponse(
        success=True,
        message=f"Successfully recovered subscription for {body.user_email}",
        user_id=outcome.user_id,
        plan=outcome.plan,
        stripe_subscription_id=outcome.subscription_id,
        credits_added=outcome.credits_added,
        total_credits=outcome.credits_after,
    )
