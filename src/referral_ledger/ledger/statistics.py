"""Summary counters derived from an account's transactions and rewards."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from referral_ledger.ledger.commission import to_money
from referral_ledger.ledger.models import (
    ReferralAccount,
    ReferralTransaction,
    Reward,
    RewardStatus,
    TransactionStatus,
)
from referral_ledger.ledger.rewards import RewardType


@dataclass(frozen=True)
class Statistics:
    total_referrals: int = 0
    successful_referrals: int = 0
    pending_referrals: int = 0
    total_commission_earned: Decimal = Decimal("0.00")
    total_discounts_earned: Decimal = Decimal("0.00")
    total_free_courses_earned: int = 0


def recompute(
    transactions: Iterable[ReferralTransaction],
    rewards: Iterable[Reward] = (),
) -> Statistics:
    """Rebuild statistics from scratch.

    Only completed transactions count towards successes and commission.
    ``total_referrals`` counts every transaction whatever its status.
    """
    total = successful = pending = 0
    commission = Decimal("0")
    for transaction in transactions:
        total += 1
        if transaction.status == TransactionStatus.COMPLETED.value:
            successful += 1
            commission += transaction.commission_amount
        elif transaction.status == TransactionStatus.PENDING.value:
            pending += 1

    discounts = Decimal("0")
    free_courses = 0
    for reward in rewards:
        if reward.status != RewardStatus.USED.value:
            continue
        if reward.type == RewardType.DISCOUNT.value:
            discounts += reward.value
        elif reward.type == RewardType.FREE_COURSE.value:
            free_courses += 1

    return Statistics(
        total_referrals=total,
        successful_referrals=successful,
        pending_referrals=pending,
        total_commission_earned=to_money(commission),
        total_discounts_earned=to_money(discounts),
        total_free_courses_earned=free_courses,
    )


def read_statistics(account: ReferralAccount) -> Statistics:
    """Snapshot of the statistics stored on an account."""
    return Statistics(
        total_referrals=account.total_referrals,
        successful_referrals=account.successful_referrals,
        pending_referrals=account.pending_referrals,
        total_commission_earned=to_money(account.total_commission_earned),
        total_discounts_earned=to_money(account.total_discounts_earned),
        total_free_courses_earned=account.total_free_courses_earned,
    )


def store_statistics(account: ReferralAccount, stats: Statistics) -> None:
    account.total_referrals = stats.total_referrals
    account.successful_referrals = stats.successful_referrals
    account.pending_referrals = stats.pending_referrals
    account.total_commission_earned = stats.total_commission_earned
    account.total_discounts_earned = stats.total_discounts_earned
    account.total_free_courses_earned = stats.total_free_courses_earned
