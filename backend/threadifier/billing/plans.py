"""Plan definitions — entitlement tiers, credit grants and the price→plan table."""

from dataclasses import dataclass
from functools import lru_cache

from threadifier.config import settings

FREE = "free"
PROFESSIONAL = "professional"
TEAM = "team"


@dataclass(frozen=True)
class PlanLimits:
    """Entitlement details for a subscription plan."""

    name: str
    display_name: str
    credit_grant: int  # one-time credits added on activation


PLANS: dict[str, PlanLimits] = {
    FREE: PlanLimits(name=FREE, display_name="Free", credit_grant=0),
    PROFESSIONAL: PlanLimits(name=PROFESSIONAL, display_name="Professional", credit_grant=500),
    TEAM: PlanLimits(name=TEAM, display_name="Team", credit_grant=2000),
}


@dataclass(frozen=True)
class PriceConfig:
    """Configured Stripe price ids, partitioned by paid tier."""

    professional: frozenset[str]
    team: frozenset[str]

    @classmethod
    def from_settings(cls) -> "PriceConfig":
        """Build the lookup table from the STRIPE_PRICE_* settings, ignoring blanks."""
        professional = {
            settings.stripe_price_professional_monthly,
            settings.stripe_price_professional_yearly,
        }
        team = {
            settings.stripe_price_team_monthly,
            settings.stripe_price_team_yearly,
        }
        return cls(
            professional=frozenset(p for p in professional if p),
            team=frozenset(p for p in team if p),
        )

    @property
    def all_price_ids(self) -> frozenset[str]:
        return self.professional | self.team


def get_plan(plan_name: str) -> PlanLimits:
    """Get plan details by name. Defaults to free if unknown."""
    return PLANS.get(plan_name, PLANS[FREE])


def get_plan_by_price_id(price_id: str | None, config: PriceConfig) -> str | None:
    """Reverse lookup: Stripe price ID -> plan name. Returns None if not configured."""
    if not price_id:
        return None
    # Team wins when a price is listed under both tiers.
    if price_id in config.team:
        return TEAM
    if price_id in config.professional:
        return PROFESSIONAL
    return None


@lru_cache(maxsize=1)
def get_price_config() -> PriceConfig:
    """Process-wide price table, built once from settings."""
    return PriceConfig.from_settings()
