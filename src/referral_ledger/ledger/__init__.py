"""Referral ledger: codes, transactions, commissions, tiers, milestones and rewards.

Flow:
- apply_referral records a pending transaction with its commission fixed
- complete_referral recomputes statistics, then tier, then milestones
- milestones issue rewards, which the referrer later redeems
"""

from referral_ledger.ledger.errors import ReferralError
from referral_ledger.ledger.models import (
    Milestone,
    ReferralAccount,
    ReferralTransaction,
    Reward,
)
from referral_ledger.ledger.service import ReferralService

__all__ = [
    "Milestone",
    "ReferralAccount",
    "ReferralError",
    "ReferralService",
    "ReferralTransaction",
    "Reward",
]
