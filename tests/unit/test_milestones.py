"""Tests for milestone evaluation."""

from datetime import datetime
from decimal import Decimal

import pytest

from referral_ledger.ledger.errors import InvalidInputError
from referral_ledger.ledger.milestones import (
    MilestoneKind,
    build_milestone,
    evaluate_milestones,
    milestone_progress,
)
from referral_ledger.ledger.rewards import CashBonusReward, CreditsReward
from referral_ledger.ledger.statistics import Statistics

NOW = datetime(2026, 3, 15, 12, 0, 0)


class IssueRecorder:
    def __init__(self):
        self.issued = []

    def __call__(self, milestone, reward):
        self.issued.append((milestone, reward))


def test_progress_selects_statistic_by_kind():
    stats = Statistics(successful_referrals=3, total_commission_earned=Decimal("42.00"))

    assert milestone_progress("referral_count", stats) == Decimal("3")
    assert milestone_progress("successful_conversions", stats) == Decimal("3")
    assert milestone_progress("commission_earned", stats) == Decimal("42.00")


def test_progress_rejects_unknown_kind():
    with pytest.raises(ValueError):
        milestone_progress("page_views", Statistics())


def test_reached_milestone_is_achieved_and_rewarded():
    milestone = build_milestone(MilestoneKind.REFERRAL_COUNT, Decimal("2"), CreditsReward(value=Decimal("50")))
    recorder = IssueRecorder()

    achieved = evaluate_milestones([milestone], Statistics(successful_referrals=2), NOW, recorder)

    assert achieved == [milestone]
    assert milestone.achieved is True
    assert milestone.achieved_at == NOW
    assert len(recorder.issued) == 1
    assert recorder.issued[0][1] == CreditsReward(value=Decimal("50"))


def test_unreached_milestone_is_left_alone():
    milestone = build_milestone(
        MilestoneKind.COMMISSION_EARNED, Decimal("500"), CashBonusReward(value=Decimal("25"))
    )
    recorder = IssueRecorder()

    achieved = evaluate_milestones(
        [milestone], Statistics(total_commission_earned=Decimal("499.99")), NOW, recorder
    )

    assert achieved == []
    assert milestone.achieved is False
    assert milestone.achieved_at is None
    assert recorder.issued == []


def test_reevaluation_is_idempotent():
    milestone = build_milestone(MilestoneKind.REFERRAL_COUNT, Decimal("1"), CreditsReward(value=Decimal("50")))
    recorder = IssueRecorder()
    stats = Statistics(successful_referrals=5)

    evaluate_milestones([milestone], stats, NOW, recorder)
    evaluate_milestones([milestone], stats, datetime(2026, 4, 1), recorder)

    assert len(recorder.issued) == 1
    assert milestone.achieved_at == NOW


def test_build_milestone_rejects_non_positive_target():
    with pytest.raises(InvalidInputError):
        build_milestone(MilestoneKind.REFERRAL_COUNT, Decimal("0"), CreditsReward(value=Decimal("1")))
