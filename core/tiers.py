"""Subscription tiers and their usage policies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from core.models import SubscriptionStatus


class Tier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    BUSINESS = "business"


@dataclass(frozen=True)
class TierPolicy:
    tier: Tier
    display_name: str
    description: str
    monthly_price: float
    daily: int
    monthly: int
    burst_per_minute: int
    daily_exempt: bool = False
    features: tuple[str, ...] = field(default_factory=tuple)


TIER_POLICIES: dict[Tier, TierPolicy] = {
    Tier.FREE: TierPolicy(
        tier=Tier.FREE,
        display_name="Free Trial",
        description="Get a taste of AutoLister AI",
        monthly_price=0.0,
        daily=2,
        monthly=8,
        burst_per_minute=3,
        features=("AI-generated titles and descriptions", "Basic support"),
    ),
    Tier.STARTER: TierPolicy(
        tier=Tier.STARTER,
        display_name="Starter",
        description="Perfect for casual Vinted sellers",
        monthly_price=3.99,
        daily=15,
        monthly=300,
        burst_per_minute=10,
        features=(
            "AI-generated titles and descriptions",
            "Priority support",
            "Up to 15 listings per day",
        ),
    ),
    Tier.PRO: TierPolicy(
        tier=Tier.PRO,
        display_name="Pro",
        description="For active sellers listing daily",
        monthly_price=9.99,
        daily=40,
        monthly=800,
        burst_per_minute=20,
        features=(
            "Everything in Starter",
            "Up to 40 listings per day",
            "Priority processing",
        ),
    ),
    Tier.BUSINESS: TierPolicy(
        tier=Tier.BUSINESS,
        display_name="Business",
        description="For resellers and high-volume sellers",
        monthly_price=19.99,
        daily=75,
        monthly=1500,
        burst_per_minute=30,
        daily_exempt=True,
        features=(
            "Everything in Pro",
            "Up to 75 listings per day",
            "Dedicated support",
            "Highest daily limits",
        ),
    ),
}

# Plan names sold before the current tier lineup.
LEGACY_TIER_ALIASES: dict[str, Tier] = {
    "unlimited_monthly": Tier.STARTER,
}

DEFAULT_TIER = Tier.FREE


def resolve_tier(tier_name: str | None, subscription_status: str | None) -> Tier:
    """Map a stored tier name and subscription status onto a known tier.

    Anything that is not an active subscription to a recognised plan is
    treated as the free tier.
    """
    if subscription_status != SubscriptionStatus.ACTIVE.value:
        return DEFAULT_TIER

    name = (tier_name or "").strip().lower()
    if name in LEGACY_TIER_ALIASES:
        return LEGACY_TIER_ALIASES[name]
    try:
        return Tier(name)
    except ValueError:
        return DEFAULT_TIER


def policy_for(tier: Tier | str) -> TierPolicy:
    if not isinstance(tier, Tier):
        try:
            tier = Tier(tier)
        except ValueError:
            tier = DEFAULT_TIER
    return TIER_POLICIES.get(tier, TIER_POLICIES[DEFAULT_TIER])


def paid_tiers() -> list[TierPolicy]:
    return [p for p in TIER_POLICIES.values() if p.monthly_price > 0]
