"""Milestone definitions and evaluation."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable

from referral_ledger.ledger.errors import InvalidInputError
from referral_ledger.ledger.models import Milestone
from referral_ledger.ledger.rewards import (
    CashBonusReward,
    CreditsReward,
    DiscountReward,
    RewardDefinition,
    parse_reward_definition,
)
from referral_ledger.ledger.statistics import Statistics
from referral_ledger.logging_config import get_logger

logger = get_logger(__name__)


class MilestoneKind(str, Enum):
    REFERRAL_COUNT = "referral_count"
    COMMISSION_EARNED = "commission_earned"
    SUCCESSFUL_CONVERSIONS = "successful_conversions"


def milestone_progress(kind: str, stats: Statistics) -> Decimal:
    """The statistic a milestone of ``kind`` is measured against."""
    if kind == MilestoneKind.COMMISSION_EARNED.value:
        return stats.total_commission_earned
    if kind in (MilestoneKind.REFERRAL_COUNT.value, MilestoneKind.SUCCESSFUL_CONVERSIONS.value):
        return Decimal(stats.successful_referrals)
    raise ValueError(f"Unknown milestone kind: {kind}")


# Seeded on every new account
DEFAULT_MILESTONES: tuple[tuple[MilestoneKind, Decimal, RewardDefinition], ...] = (
    (MilestoneKind.REFERRAL_COUNT, Decimal("1"), CreditsReward(value=Decimal("50"))),
    (
        MilestoneKind.SUCCESSFUL_CONVERSIONS,
        Decimal("10"),
        DiscountReward(value=Decimal("20"), expires_in_days=90),
    ),
    (MilestoneKind.COMMISSION_EARNED, Decimal("500"), CashBonusReward(value=Decimal("50"))),
    (MilestoneKind.COMMISSION_EARNED, Decimal("2000"), CashBonusReward(value=Decimal("250"))),
)


def build_milestone(kind: MilestoneKind | str, target: Decimal, reward: RewardDefinition) -> Milestone:
    kind = MilestoneKind(kind)
    if target <= 0:
        raise InvalidInputError("Milestone target must be positive", target=str(target))
    return Milestone(
        kind=kind.value,
        target=target,
        achieved=False,
        reward_json=reward.model_dump(mode="json"),
    )


def evaluate_milestones(
    milestones: list[Milestone],
    stats: Statistics,
    now: datetime,
    issue: Callable[[Milestone, RewardDefinition], object],
) -> list[Milestone]:
    """Mark newly reached milestones achieved and issue their rewards.

    Achieved milestones are skipped, so calling this again with the same
    statistics issues nothing.

    Args:
        milestones: The account's milestones, in order
        stats: Freshly recomputed statistics
        now: Achievement timestamp
        issue: Called once per newly achieved milestone with its reward

    Returns:
        Milestones achieved by this call
    """
    achieved = []
    for milestone in milestones:
        if milestone.achieved:
            continue
        if milestone_progress(milestone.kind, stats) < milestone.target:
            continue

        milestone.achieved = True
        milestone.achieved_at = now
        issue(milestone, parse_reward_definition(milestone.reward_json))
        achieved.append(milestone)

        logger.info(
            "milestone_achieved",
            milestone_id=milestone.id,
            kind=milestone.kind,
            target=str(milestone.target),
        )
    return achieved
