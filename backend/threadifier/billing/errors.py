"""Billing domain errors raised by the transition layer."""


class BillingError(Exception):
    """Base class for billing data anomalies."""


class UnknownPriceError(BillingError):
    """A subscription references a price id that no plan is configured for."""

    def __init__(self, price_id: str | None, subscription_id: str | None = None) -> None:
        self.price_id = price_id
        self.subscription_id = subscription_id
        super().__init__(f"Unknown price ID {price_id!r} on subscription {subscription_id!r}")


class SubscriptionItemMissingError(BillingError):
    """A subscription carries no line items, so no price can be read."""

    def __init__(self, subscription_id: str | None) -> None:
        self.subscription_id = subscription_id
        super().__init__(f"Subscription {subscription_id!r} has no items")


class InactiveSubscriptionError(BillingError):
    """A replay was requested for a subscription that is not active."""

    def __init__(self, subscription_id: str, status: str) -> None:
        self.subscription_id = subscription_id
        self.status = status
        super().__init__(f"Subscription {subscription_id!r} is {status!r}, not active")
