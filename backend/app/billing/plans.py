from typing import Literal

from pydantic import BaseModel

from app.core.config import settings

PlanTier = Literal["foundational", "professional", "institutional"]
BillingCycle = Literal["monthly", "quarterly", "yearly"]

TIERS: tuple[str, ...] = ("foundational", "professional", "institutional")
BILLING_CYCLES: tuple[str, ...] = ("monthly", "quarterly", "yearly")

UNLIMITED = -1


class PlanLimits(BaseModel):
    sections: int
    max_reports_per_property: int
    max_users: int


# Per-property price in USD for one billing period
PRICES: dict[str, dict[str, float]] = {
    "foundational": {"monthly": 75, "quarterly": 206.33, "yearly": 747},
    "professional": {"monthly": 299, "quarterly": 822.55, "yearly": 2978.04},
    "institutional": {"monthly": 750, "quarterly": 2063.25, "yearly": 7470},
}

PLAN_LIMITS: dict[str, PlanLimits] = {
    "foundational": PlanLimits(sections=4, max_reports_per_property=1, max_users=1),
    "professional": PlanLimits(sections=10, max_reports_per_property=UNLIMITED, max_users=3),
    "institutional": PlanLimits(sections=15, max_reports_per_property=UNLIMITED, max_users=10),
}


def monthly_equivalent(tier: str, cycle: str) -> float:
    months = {"monthly": 1, "quarterly": 3, "yearly": 12}[cycle]
    return round(PRICES[tier][cycle] / months, 2)


def price_id_for(tier: str, cycle: str) -> str:
    """Stripe price id configured for ``tier``/``cycle``; empty when unset."""
    return getattr(settings, f"STRIPE_PRICE_{tier.upper()}_{cycle.upper()}", "")


def plan_limits(tier: str | None) -> PlanLimits:
    return PLAN_LIMITS.get(tier or "", PLAN_LIMITS["foundational"])
