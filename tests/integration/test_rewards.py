"""Reward issuance, listing and redemption through the service."""

from datetime import timedelta
from decimal import Decimal

import pytest
import structlog

from referral_ledger.ledger import service as ledger_service
from referral_ledger.ledger.errors import (
    DependencyFailureError,
    NotAvailableError,
    RewardNotFoundError,
    UnsupportedRewardTypeError,
)
from referral_ledger.ledger.models import Reward
from referral_ledger.ledger.rewards import (
    CashBonusRedemption,
    CashBonusReward,
    CreditsRedemption,
    CreditsReward,
    DiscountRedemption,
    DiscountReward,
    FreeCourseRedemption,
    FreeCourseReward,
    redemption_key,
)


class TestIssueAndList:

    def test_issued_reward_is_available(self, service, referrer, now):
        reward = service.issue_reward(1, DiscountReward(value=Decimal("15")), now=now)

        available = service.list_available_rewards(1, now=now)

        assert [r.id for r in available] == [reward.id]
        assert available[0].status == "available"
        assert available[0].expiry_date is None

    def test_issue_can_reference_a_transaction(self, service, referrer, now):
        applied = service.apply_referral(referrer.code, referred_user_id=2, course_id=101)

        reward = service.issue_reward(1, CreditsReward(value=Decimal("5")), transaction_id=applied.transaction_id, now=now)

        assert reward.transaction_id == applied.transaction_id

    def test_expired_reward_is_hidden_without_a_sweep(self, service, referrer, now):
        service.issue_reward(1, CreditsReward(value=Decimal("10"), expires_in_days=7), now=now)

        assert len(service.list_available_rewards(1, now=now + timedelta(days=6))) == 1
        assert service.list_available_rewards(1, now=now + timedelta(days=8)) == []
        # Listing does not transition the stored status
        assert service.get_account(1).rewards[0].status == "available"


class TestRedeem:

    def test_discount(self, service, referrer, now):
        reward = service.issue_reward(1, DiscountReward(value=Decimal("15"), course_id=101), now=now)

        result = service.redeem_reward(1, reward.id, now=now)

        assert isinstance(result, DiscountRedemption)
        assert result.token.startswith("DISC-")
        assert result.percentage == Decimal("15")
        assert result.course_id == 101
        assert result.valid_until == now + timedelta(days=30)

        account = service.get_account(1)
        stored = account.find_reward(reward.id)
        assert stored.status == "used"
        assert stored.used_at == now
        assert stored.redemption_json["token"] == result.token
        assert account.total_discounts_earned == Decimal("15.00")

    def test_used_reward_cannot_be_redeemed_again(self, service, referrer, now):
        reward = service.issue_reward(1, CreditsReward(value=Decimal("100")), now=now)
        service.redeem_reward(1, reward.id, now=now)

        with pytest.raises(NotAvailableError):
            service.redeem_reward(1, reward.id, now=now)

    def test_credits(self, service, referrer, now):
        reward = service.issue_reward(1, CreditsReward(value=Decimal("100")), now=now)

        result = service.redeem_reward(1, reward.id, now=now)

        assert result == CreditsRedemption(credits=Decimal("100"))

    def test_cash_bonus_is_marked_owed(self, service, referrer, now):
        service.update_settings(1, payout_method="bank_transfer")
        reward = service.issue_reward(1, CashBonusReward(value=Decimal("75.50")), now=now)

        result = service.redeem_reward(1, reward.id, now=now)

        assert isinstance(result, CashBonusRedemption)
        assert result.amount_owed == Decimal("75.50")
        assert result.currency == "USD"
        assert result.payout_method == "bank_transfer"

    def test_free_course_creates_enrollment(self, service, referrer, enrollments, now):
        reward = service.issue_reward(1, FreeCourseReward(course_id=103), now=now)

        result = service.redeem_reward(1, reward.id, now=now)

        assert isinstance(result, FreeCourseRedemption)
        assert result.course_id == 103
        assert len(enrollments.enrollments) == 1
        assert enrollments.enrollments[0].user_id == 1
        assert result.enrollment_id == enrollments.enrollments[0].id
        assert service.get_account(1).total_free_courses_earned == 1

    def test_free_course_failure_leaves_reward_available(self, service, referrer, enrollments, now):
        reward = service.issue_reward(1, FreeCourseReward(course_id=103), now=now)
        enrollments.fail = True

        with pytest.raises(DependencyFailureError):
            service.redeem_reward(1, reward.id, now=now)

        account = service.get_account(1)
        assert account.find_reward(reward.id).status == "available"
        assert account.find_reward(reward.id).used_at is None
        assert account.total_free_courses_earned == 0

        # Caller may retry the whole redemption
        enrollments.fail = False
        result = service.redeem_reward(1, reward.id, now=now)
        assert result.course_id == 103

    def test_free_course_unexpected_error_becomes_dependency_failure(self, service, referrer, enrollments, now):
        reward = service.issue_reward(1, FreeCourseReward(course_id=103), now=now)

        def explode(user_id, course_id, idempotency_key=None):
            raise RuntimeError("socket closed")

        enrollments.create_free_enrollment = explode

        with pytest.raises(DependencyFailureError):
            service.redeem_reward(1, reward.id, now=now)
        assert service.get_account(1).find_reward(reward.id).status == "available"

    def test_expired_reward_transitions_on_redeem(self, service, referrer, now):
        reward = service.issue_reward(1, CreditsReward(value=Decimal("10"), expires_in_days=7), now=now)

        with pytest.raises(NotAvailableError):
            service.redeem_reward(1, reward.id, now=now + timedelta(days=8))

        assert service.get_account(1).find_reward(reward.id).status == "expired"
        with pytest.raises(NotAvailableError):
            service.redeem_reward(1, reward.id, now=now)

    def test_missing_reward(self, service, referrer, now):
        with pytest.raises(RewardNotFoundError):
            service.redeem_reward(1, 999, now=now)

    def test_reward_of_another_account_is_not_found(self, service, referrer, now):
        service.create_account(9)
        reward = service.issue_reward(9, CreditsReward(value=Decimal("10")), now=now)

        with pytest.raises(RewardNotFoundError):
            service.redeem_reward(1, reward.id, now=now)

    def test_unrecognized_type_fails_whole_redemption(self, database, service, referrer, now):
        account_id = service.get_account(1).id
        with database.session() as session:
            reward = Reward(
                account_id=account_id,
                type="mystery_box",
                value=Decimal("1"),
                status="available",
            )
            session.add(reward)

        with pytest.raises(UnsupportedRewardTypeError):
            service.redeem_reward(1, reward.id, now=now)

        assert service.get_account(1).find_reward(reward.id).status == "available"

    def test_enrollment_is_keyed_by_reward(self, service, referrer, enrollments, now):
        reward = service.issue_reward(1, FreeCourseReward(course_id=103), now=now)
        calls = []
        create = enrollments.create_free_enrollment

        def recording(user_id, course_id, idempotency_key=None):
            calls.append(idempotency_key)
            return create(user_id, course_id, idempotency_key=idempotency_key)

        enrollments.create_free_enrollment = recording

        service.redeem_reward(1, reward.id, now=now)

        assert calls == [redemption_key(reward)]

    def test_retry_after_failed_commit_reuses_enrollment(self, monkeypatch, service, referrer, enrollments, now):
        reward = service.issue_reward(1, FreeCourseReward(course_id=103), now=now)
        store = ledger_service.store_statistics
        calls = []

        def store_then_fail_once(account, stats):
            store(account, stats)
            calls.append(account.owner_id)
            if len(calls) == 1:
                raise RuntimeError("disk I/O error")

        monkeypatch.setattr(ledger_service, "store_statistics", store_then_fail_once)

        with pytest.raises(RuntimeError):
            service.redeem_reward(1, reward.id, now=now)
        assert service.get_account(1).find_reward(reward.id).status == "available"
        assert len(enrollments.enrollments) == 1

        result = service.redeem_reward(1, reward.id, now=now)

        assert len(enrollments.enrollments) == 1
        assert result.enrollment_id == enrollments.enrollments[0].id
        assert service.get_account(1).find_reward(reward.id).status == "used"

    def test_collaborator_calls_carry_account_context(self, service, referrer, enrollments, now):
        reward = service.issue_reward(1, FreeCourseReward(course_id=103), now=now)
        seen = []
        create = enrollments.create_free_enrollment

        def capturing(user_id, course_id, idempotency_key=None):
            seen.append(structlog.contextvars.get_contextvars())
            return create(user_id, course_id, idempotency_key=idempotency_key)

        enrollments.create_free_enrollment = capturing

        service.redeem_reward(1, reward.id, now=now)

        assert seen == [{"owner_id": 1}]
        assert structlog.contextvars.get_contextvars() == {}
