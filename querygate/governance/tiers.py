"""
Subscription tiers and their static limits.

The table is fixed configuration, not stored per user.  ``math.inf`` marks
an unbounded limit; every comparison below treats it as "always permit".
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class Tier(str, Enum):
    STARTER = "starter"
    PRO = "pro"
    AGENCY = "agency"


@dataclass(frozen=True)
class TierLimits:
    """Quota and feature limits for one tier."""
    queries_per_month: int
    max_rollover: int
    max_data_sources: float
    max_columns: int
    max_users: float
    features: frozenset[str]


TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.STARTER: TierLimits(
        queries_per_month=50,
        max_rollover=100,
        max_data_sources=5,
        max_columns=10,
        max_users=1,
        features=frozenset({"csv"}),
    ),
    Tier.PRO: TierLimits(
        queries_per_month=150,
        max_rollover=300,
        max_data_sources=15,
        max_columns=25,
        max_users=5,
        features=frozenset({"csv", "sheets", "postgres", "mysql", "team", "pdf_export"}),
    ),
    Tier.AGENCY: TierLimits(
        queries_per_month=300,
        max_rollover=600,
        max_data_sources=math.inf,
        max_columns=50,
        max_users=math.inf,
        features=frozenset({
            "csv", "sheets", "postgres", "mysql", "api",
            "team", "pdf_export", "whitelabel", "api_access",
        }),
    ),
}

_NEXT_TIER = {Tier.STARTER: "Pro", Tier.PRO: "Agency"}

_UPGRADE_MESSAGES: dict[str, str] = {
    "data_sources": "Upgrade to {next} for more data sources",
    "columns": "Upgrade to {next} to select more columns",
    "queries": "Upgrade to {next} for more monthly queries",
    "sheets": "Upgrade to Pro to connect Google Sheets",
    "database": "Upgrade to Pro to connect databases",
    "team": "Upgrade to Pro for team collaboration",
    "whitelabel": "Upgrade to Agency for white-label features",
}


def limits_for(tier: Tier | str) -> TierLimits:
    """Look up limits; raises ``ValueError`` for an unknown tier name."""
    return TIER_LIMITS[Tier(tier)]


def can_use_feature(tier: Tier | str, feature: str) -> bool:
    return feature in limits_for(tier).features


def can_add_data_source(tier: Tier | str, current_count: int) -> bool:
    return current_count < limits_for(tier).max_data_sources


def can_select_columns(tier: Tier | str, selected_count: int) -> bool:
    return selected_count <= limits_for(tier).max_columns


def upgrade_message(tier: Tier | str, action: str) -> str | None:
    """Upsell text for a blocked action; ``None`` on the top tier."""
    next_tier = _NEXT_TIER.get(Tier(tier))
    if next_tier is None:
        return None
    template = _UPGRADE_MESSAGES.get(action, "Upgrade to {next} to unlock this feature")
    return template.format(next=next_tier)
