"""Referrer tier definitions."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class ReferralTier(str, Enum):
    """Referrer standing, derived from completed referrals."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


@dataclass(frozen=True)
class TierThreshold:
    """Both minimums must be met to reach the tier."""

    tier: ReferralTier
    min_commission_earned: Decimal
    min_successful_referrals: int


# Highest first; the first row that matches wins
TIER_THRESHOLDS: tuple[TierThreshold, ...] = (
    TierThreshold(ReferralTier.PLATINUM, Decimal("5000"), 50),
    TierThreshold(ReferralTier.GOLD, Decimal("2000"), 25),
    TierThreshold(ReferralTier.SILVER, Decimal("500"), 10),
)


def compute_tier(total_commission_earned: Decimal, successful_referrals: int) -> ReferralTier:
    """Map aggregated statistics to a tier.

    Args:
        total_commission_earned: Sum of commission over completed referrals
        successful_referrals: Number of completed referrals

    Returns:
        The highest tier whose thresholds are both met, else bronze
    """
    for row in TIER_THRESHOLDS:
        if (
            total_commission_earned >= row.min_commission_earned
            and successful_referrals >= row.min_successful_referrals
        ):
            return row.tier
    return ReferralTier.BRONZE
