"""Interactive recovery tool for subscriptions whose Stripe webhooks were missed.

Run with the production environment loaded:
    python -m threadifier.billing.scripts.recover_subscriptions

Actions:
    1. Replay a Stripe subscription onto a user (same transition as checkout)
    2. List recent checkout.session.completed events
    3. Look up a user by email or Stripe customer ID
    4. Reconcile a user's plan with Stripe
"""

import asyncio
import sys
from collections.abc import Callable
from datetime import datetime, timezone

import stripe

from threadifier.billing.errors import BillingError
from threadifier.billing.plans import get_plan
from threadifier.billing.stripe_client import list_checkout_events
from threadifier.config import Settings, settings
from threadifier.database import async_session_factory, engine
from threadifier.services.reconciliation import reconcile_user
from threadifier.services.recovery import replay_subscription
from threadifier.services.user_service import find_user, get_user, get_user_by_email

COLORS = {
    "reset": "\x1b[0m",
    "red": "\x1b[31m",
    "green": "\x1b[32m",
    "yellow": "\x1b[33m",
    "blue": "\x1b[34m",
}

MENU = """
What would you like to do?
1. Process a specific subscription
2. Check recent checkout events
3. Find user by email/customer ID
4. Reconcile a user's plan with Stripe
5. Exit

Enter your choice (1-5): """

Prompt = Callable[[str], str]


def log(message: str, color: str = "reset") -> None:
    print(f"{COLORS[color]}{message}{COLORS['reset']}")


def missing_env() -> list[str]:
    """Names of required settings that are not configured."""
    missing = []
    if not settings.stripe_secret_key:
        missing.append("STRIPE_SECRET_KEY")
    if settings.database_url == Settings.model_fields["database_url"].default:
        missing.append("DATABASE_URL")
    return missing


async def process_subscription(subscription_id: str, identifier: str, prompt: Prompt) -> bool:
    """Replay ``subscription_id`` onto the user named by id or email."""
    log(f"\nProcessing subscription {subscription_id}...", "yellow")

    def confirm_regrant() -> bool:
        answer = prompt(
            "This subscription already shows an active grant. Re-grant anyway? (y/n): "
        )
        return answer.strip().lower() == "y"

    async with async_session_factory() as db:
        if "@" in identifier:
            user = await get_user_by_email(db, identifier)
        else:
            user = await get_user(db, identifier)
        if user is None:
            log("User not found!", "red")
            return False
        log(f"Found user: {user.email} ({user.id})", "green")

        try:
            outcome = await replay_subscription(db, user, subscription_id, confirm_regrant=confirm_regrant)
        except BillingError as e:
            await db.rollback()
            log(f"❌ Aborted: {e}", "red")
            return False
        except stripe.StripeError as e:
            await db.rollback()
            log(f"❌ Error processing subscription: {e}", "red")
            return False
        await db.commit()

    log(f"Plan: {outcome.plan} ({outcome.credits_added} credits)", "blue")
    log(f"Status: {outcome.status}", "blue")
    log(f"✅ Successfully updated user {outcome.user_id}", "green")
    log(f"   Credits: {outcome.credits_before} -> {outcome.credits_after}", "green")
    return True


async def show_recent_checkouts(limit: int = 20) -> None:
    log("\nFetching recent events...", "yellow")
    try:
        events = await list_checkout_events(limit=limit)
    except stripe.StripeError as e:
        log(f"Error fetching events: {e}", "red")
        return

    log(f"\nFound {len(events)} recent checkout events:\n", "blue")
    for event in events:
        session = event.data.object
        created = datetime.fromtimestamp(event.created, tz=timezone.utc)
        metadata = getattr(session, "metadata", None)
        log(f"Event: {event.id}", "yellow")
        log(f"Time: {created:%Y-%m-%d %H:%M:%S} UTC")
        log(f"Customer: {getattr(session, 'customer', None)}")
        log(f"Subscription: {getattr(session, 'subscription', None)}")
        log(f"Metadata: {metadata}")
        log("---")


async def show_user(identifier: str) -> bool:
    async with async_session_factory() as db:
        user = await find_user(db, identifier)

    if user is None:
        log("❌ User not found", "red")
        return False

    log("\n✅ User found:", "green")
    log(f"ID: {user.id}")
    log(f"Email: {user.email}")
    log(f"Credits: {user.credits_available} (lifetime {user.credits_lifetime})")
    log(f"Plan: {user.plan} ({get_plan(user.plan).display_name})")
    log(f"Status: {user.subscription_status or 'none'}")
    log(f"Customer ID: {user.stripe_customer_id or 'none'}")
    log(f"Subscription ID: {user.stripe_subscription_id or 'none'}")
    return True


async def fix_user_plan(email: str) -> bool:
    """Reconcile one user's stored plan with their live Stripe subscription."""
    async with async_session_factory() as db:
        user = await get_user_by_email(db, email)
        if user is None:
            log(f"No user found with email: {email}", "red")
            return False
        log(f"Current plan in database: {user.plan}", "blue")

        try:
            decision = await reconcile_user(db, user)
        except BillingError as e:
            await db.rollback()
            log(f"⚠️ {e}", "yellow")
            return False
        except stripe.StripeError as e:
            await db.rollback()
            log(f"❌ Error fetching subscription: {e}", "red")
            return False
        await db.commit()

    if decision is None:
        log("User has no Stripe subscription ID", "yellow")
    elif decision.changed:
        log(f"✅ Updated plan {decision.old_plan} -> {decision.plan} (status {decision.status})", "green")
    else:
        log(f"✓ User plan is already correct ({decision.plan})", "green")
    return True


async def run_recovery(prompt: Prompt = input) -> None:
    """Menu loop; returns when the operator exits."""
    log("\n🔧 Stripe Webhook Recovery Tool\n", "blue")

    while True:
        action = prompt(MENU).strip()

        if action == "1":
            subscription_id = prompt("\nEnter Stripe subscription ID: ").strip()
            identifier = prompt("Enter user email or user ID: ").strip()
            await process_subscription(subscription_id, identifier, prompt)
        elif action == "2":
            await show_recent_checkouts()
        elif action == "3":
            identifier = prompt("\nEnter email or Stripe customer ID: ").strip()
            await show_user(identifier)
        elif action == "4":
            email = prompt("\nEnter user email: ").strip()
            await fix_user_plan(email)
        elif action == "5":
            break
        else:
            log("Invalid choice!", "red")
            continue

        again = prompt("\nWould you like to perform another action? (y/n): ")
        if again.strip().lower() != "y":
            break

    log("\nGoodbye! 👋\n", "blue")


async def _main() -> None:
    try:
        await run_recovery()
    finally:
        await engine.dispose()


def main() -> None:
    missing = missing_env()
    if missing:
        log("❌ Missing required environment variables:", "red")
        for key in missing:
            log(f"   - {key}", "red")
        log("\nPlease set these in your .env file", "yellow")
        sys.exit(1)

    try:
        asyncio.run(_main())
    except (KeyboardInterrupt, EOFError):
        log("\nGoodbye! 👋\n", "blue")
    except Exception as e:
        log(f"\n❌ Fatal error: {e}", "red")
        sys.exit(1)


if __name__ == "__main__":
    main()
