"""
Subscription plan catalog.

Single source of truth for plan prices, billing periods and proposal limits.
Amounts are in minor units (Rappen), matching what the payment gateway sends.
-1 as a proposals limit means unlimited.
"""
from dataclasses import dataclass
from typing import Dict, Optional

UNLIMITED = -1
FREE_PLAN = "free"
FREE_TIER_PROPOSALS_LIMIT = 5
FREE_PERIOD_DAYS = 30
DEFAULT_CURRENCY = "CHF"


@dataclass(frozen=True)
class PlanConfig:
    plan_type: str
    display_name: str
    amount: int
    currency: str
    period_months: int
    proposals_limit: int


PLAN_CONFIGS: Dict[str, PlanConfig] = {
    "monthly": PlanConfig("monthly", "Monatlich", 9000, DEFAULT_CURRENCY, 1, UNLIMITED),
    "6_month": PlanConfig("6_month", "6 Monate", 51000, DEFAULT_CURRENCY, 6, UNLIMITED),
    "annual": PlanConfig("annual", "Jährlich", 96000, DEFAULT_CURRENCY, 12, UNLIMITED),
}

PLAN_TYPES = (FREE_PLAN,) + tuple(PLAN_CONFIGS)


def get_plan_config(plan_type: str) -> Optional[PlanConfig]:
    """Return the paid plan config, or None for free/unknown plans."""
    if not plan_type:
        return None
    return PLAN_CONFIGS.get(plan_type.lower())


def get_plan_name(plan_type: str) -> str:
    config = get_plan_config(plan_type)
    if config:
        return config.display_name
    return "Kostenlos" if plan_type == FREE_PLAN else plan_type
