"""Reward definitions, redemption results and the reward store."""

import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Annotated, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from sqlalchemy.orm import Session

from referral_ledger.integrations.base import EnrollmentGateway
from referral_ledger.ledger.codes import CODE_ALPHABET
from referral_ledger.ledger.errors import (
    DependencyFailureError,
    NotAvailableError,
    RewardNotFoundError,
    UnsupportedRewardTypeError,
)
from referral_ledger.ledger.models import ReferralAccount, Reward, RewardStatus
from referral_ledger.logging_config import get_logger

logger = get_logger(__name__)


class RewardType(str, Enum):
    DISCOUNT = "discount"
    FREE_COURSE = "free_course"
    CASH_BONUS = "cash_bonus"
    CREDITS = "credits"


# ==================== DEFINITIONS ====================


class _RewardDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    expires_in_days: int | None = Field(default=None, gt=0)

    def expiry_from(self, now: datetime) -> datetime | None:
        if self.expires_in_days is None:
            return None
        return now + timedelta(days=self.expires_in_days)


class DiscountReward(_RewardDefinition):
    """Percentage off a purchase, optionally for one course."""
    type: Literal["discount"] = "discount"
    value: Decimal = Field(gt=0, le=100)
    course_id: int | None = None


class FreeCourseReward(_RewardDefinition):
    """Free access to one course."""
    type: Literal["free_course"] = "free_course"
    course_id: int
    value: Decimal = Decimal("1")


class CashBonusReward(_RewardDefinition):
    """Money owed to the referrer, paid out externally."""
    type: Literal["cash_bonus"] = "cash_bonus"
    value: Decimal = Field(gt=0)


class CreditsReward(_RewardDefinition):
    """Platform credits."""
    type: Literal["credits"] = "credits"
    value: Decimal = Field(gt=0)


RewardDefinition = Annotated[
    Union[DiscountReward, FreeCourseReward, CashBonusReward, CreditsReward],
    Field(discriminator="type"),
]

_definition_adapter: TypeAdapter[RewardDefinition] = TypeAdapter(RewardDefinition)


def parse_reward_definition(data: dict) -> RewardDefinition:
    """Validate a stored or user-supplied reward definition."""
    return _definition_adapter.validate_python(data)


# ==================== REDEMPTION RESULTS ====================


class DiscountRedemption(BaseModel):
    type: Literal["discount"] = "discount"
    token: str
    percentage: Decimal
    course_id: int | None = None
    valid_until: datetime


class FreeCourseRedemption(BaseModel):
    type: Literal["free_course"] = "free_course"
    enrollment_id: str
    course_id: int


class CashBonusRedemption(BaseModel):
    type: Literal["cash_bonus"] = "cash_bonus"
    amount_owed: Decimal
    currency: str
    payout_method: str


class CreditsRedemption(BaseModel):
    type: Literal["credits"] = "credits"
    credits: Decimal


RedemptionResult = Annotated[
    Union[DiscountRedemption, FreeCourseRedemption, CashBonusRedemption, CreditsRedemption],
    Field(discriminator="type"),
]


def generate_discount_token(length: int = 10) -> str:
    return "DISC-" + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def redemption_key(reward: Reward) -> str:
    """Stable per reward, so a retried redemption reuses the first enrollment."""
    return f"referral-reward-{reward.id}"


# ==================== STORE ====================


class RewardStore:
    """Issues, lists and redeems an account's rewards.

    Works on an account already loaded (and locked) by the caller's session;
    the caller commits.
    """

    def __init__(
        self,
        enrollments: EnrollmentGateway,
        currency: str = "USD",
        discount_validity_days: int = 30,
    ):
        self.enrollments = enrollments
        self.currency = currency
        self.discount_validity_days = discount_validity_days
        self._handlers: dict[str, Callable[[ReferralAccount, Reward, datetime], RedemptionResult]] = {
            RewardType.DISCOUNT.value: self._redeem_discount,
            RewardType.FREE_COURSE.value: self._redeem_free_course,
            RewardType.CASH_BONUS.value: self._redeem_cash_bonus,
            RewardType.CREDITS.value: self._redeem_credits,
        }

    def issue(
        self,
        account: ReferralAccount,
        definition: RewardDefinition,
        now: datetime,
        transaction_id: int | None = None,
        milestone_id: int | None = None,
    ) -> Reward:
        """Append a new available reward to the account."""
        reward = Reward(
            type=definition.type,
            value=definition.value,
            status=RewardStatus.AVAILABLE.value,
            course_id=getattr(definition, "course_id", None),
            transaction_id=transaction_id,
            milestone_id=milestone_id,
            expiry_date=definition.expiry_from(now),
            created_at=now,
        )
        account.rewards.append(reward)

        logger.info(
            "reward_issued",
            owner_id=account.owner_id,
            type=reward.type,
            value=str(reward.value),
            expiry_date=reward.expiry_date.isoformat() if reward.expiry_date else None,
            milestone_id=milestone_id,
        )
        return reward

    def list_available(self, account: ReferralAccount, now: datetime) -> list[Reward]:
        """Rewards that can be redeemed right now.

        Expiry is judged against ``now``; stored status is not changed here.
        """
        return [reward for reward in account.rewards if reward.is_available(now)]

    def redeem(
        self,
        session: Session,
        account: ReferralAccount,
        reward_id: int,
        now: datetime,
    ) -> tuple[Reward, RedemptionResult]:
        """Run the reward's redemption and mark it used.

        Raises:
            RewardNotFoundError: No such reward on this account
            NotAvailableError: Reward is used, expired, or past its expiry date
            UnsupportedRewardTypeError: No redemption exists for the reward's type
            DependencyFailureError: A collaborator failed; the reward stays available
        """
        reward = account.find_reward(reward_id)
        if reward is None:
            raise RewardNotFoundError(f"Reward {reward_id} not found", reward_id=reward_id)

        if reward.status != RewardStatus.AVAILABLE.value:
            raise NotAvailableError(
                f"Reward {reward_id} is {reward.status}",
                reward_id=reward_id,
                status=reward.status,
            )

        if reward.is_expired(now):
            # Persist the lazy transition before refusing
            reward.status = RewardStatus.EXPIRED.value
            session.commit()
            logger.info("reward_expired", owner_id=account.owner_id, reward_id=reward_id)
            raise NotAvailableError(
                f"Reward {reward_id} expired",
                reward_id=reward_id,
                status=reward.status,
            )

        handler = self._handlers.get(reward.type)
        if handler is None:
            raise UnsupportedRewardTypeError(
                f"Cannot redeem reward of type {reward.type!r}",
                reward_id=reward_id,
                type=reward.type,
            )

        result = handler(account, reward, now)

        reward.status = RewardStatus.USED.value
        reward.used_at = now
        reward.redemption_json = result.model_dump(mode="json")

        logger.info(
            "reward_redeemed",
            owner_id=account.owner_id,
            reward_id=reward_id,
            type=reward.type,
        )
        return reward, result

    def _redeem_discount(self, account: ReferralAccount, reward: Reward, now: datetime) -> DiscountRedemption:
        return DiscountRedemption(
            token=generate_discount_token(),
            percentage=reward.value,
            course_id=reward.course_id,
            valid_until=now + timedelta(days=self.discount_validity_days),
        )

    def _redeem_free_course(self, account: ReferralAccount, reward: Reward, now: datetime) -> FreeCourseRedemption:
        if reward.course_id is None:
            raise NotAvailableError(
                f"Reward {reward.id} is not bound to a course",
                reward_id=reward.id,
            )

        try:
            enrollment = self.enrollments.create_free_enrollment(
                account.owner_id,
                reward.course_id,
                idempotency_key=redemption_key(reward),
            )
        except DependencyFailureError:
            raise
        except Exception as e:
            raise DependencyFailureError(
                f"Enrollment failed for course {reward.course_id}",
                course_id=reward.course_id,
                error=str(e),
            ) from e

        return FreeCourseRedemption(enrollment_id=enrollment.id, course_id=reward.course_id)

    def _redeem_cash_bonus(self, account: ReferralAccount, reward: Reward, now: datetime) -> CashBonusRedemption:
        return CashBonusRedemption(
            amount_owed=reward.value,
            currency=self.currency,
            payout_method=account.payout_method,
        )

    def _redeem_credits(self, account: ReferralAccount, reward: Reward, now: datetime) -> CreditsRedemption:
        return CreditsRedemption(credits=reward.value)
