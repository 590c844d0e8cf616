"""Stripe webhook endpoint — receives and processes Stripe events."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.billing.stripe_client import construct_webhook_event
from threadifier.billing.webhooks import EVENT_HANDLERS, EventKind
from threadifier.database import get_db
from threadifier.services.user_service import is_event_processed, mark_event_processed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Receive and process Stripe webhook events."""
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    # 2. Verify signature
    try:
        event = construct_webhook_event(payload, sig_header)
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e
    except ValueError as e:
        logger.warning("Invalid webhook payload")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from e

    # 3. Dispatch to handler
    kind = EventKind.parse(event.type)
    if kind is None:
        logger.debug("Unhandled webhook event type: %s", event.type)
        return {"received": True, "status": "ignored"}

    logger.info("Processing webhook event: %s (id=%s)", event.type, event.id)

    # 4. Apply the transition and record the event in one transaction
    try:
        if await is_event_processed(db, event.id):
            logger.info("Webhook event %s already processed, skipping", event.id)
            return {"received": True, "status": "duplicate"}

        await EVENT_HANDLERS[kind](db, event)
        await mark_event_processed(db, event.id, event.type)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Error processing webhook event %s", event.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook handler failed",
        ) from e

    return {"received": True, "status": "processed"}
