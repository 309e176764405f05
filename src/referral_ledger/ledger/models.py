"""Referral ledger database models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from referral_ledger.ledger.tiers import ReferralTier
from referral_ledger.storage.db import Base
from referral_ledger.utils import utc_now


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class PayoutMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    PLATFORM_CREDITS = "platform_credits"


class TransactionStatus(str, Enum):
    """Referral transaction lifecycle.

    pending -> completed | cancelled; both are terminal.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RewardStatus(str, Enum):
    """Reward lifecycle.

    available -> used | expired; both are terminal.
    """
    AVAILABLE = "available"
    USED = "used"
    EXPIRED = "expired"


class ReferralAccount(Base):
    """One per referring user.

    Owns the user's code, transactions, rewards and milestones. The statistic
    columns and ``tier`` are derived and only written by the recompute step.
    """
    __tablename__ = "referral_accounts"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, unique=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=AccountStatus.ACTIVE.value)

    # Settings
    commission_rate = Column(Numeric(5, 2), nullable=False)  # percent
    minimum_payout = Column(Numeric(12, 2), nullable=False)
    payout_method = Column(String(32), nullable=False, default=PayoutMethod.PLATFORM_CREDITS.value)

    # Derived
    tier = Column(String(20), nullable=False, default=ReferralTier.BRONZE.value)
    total_referrals = Column(Integer, nullable=False, default=0)
    successful_referrals = Column(Integer, nullable=False, default=0)
    pending_referrals = Column(Integer, nullable=False, default=0)
    total_commission_earned = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_discounts_earned = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_free_courses_earned = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    transactions = relationship(
        "ReferralTransaction",
        back_populates="account",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReferralTransaction.id",
    )
    rewards = relationship(
        "Reward",
        back_populates="account",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Reward.id",
    )
    milestones = relationship(
        "Milestone",
        back_populates="account",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Milestone.id",
    )

    def __repr__(self):
        return f"<ReferralAccount(owner={self.owner_id}, code={self.code}, tier={self.tier})>"

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    def find_transaction(self, transaction_id: int) -> "ReferralTransaction | None":
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def find_reward(self, reward_id: int) -> "Reward | None":
        return next((r for r in self.rewards if r.id == reward_id), None)


class ReferralTransaction(Base):
    """A single referred signup or purchase.

    Commission fields are fixed at creation from the account's rate at that time.
    """
    __tablename__ = "referral_transactions"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("referral_accounts.id"), nullable=False, index=True)
    # A user can be referred once, ever
    referred_user_id = Column(Integer, nullable=False, unique=True, index=True)
    course_id = Column(Integer, nullable=True, index=True)
    enrollment_id = Column(String(64), nullable=True)

    purchase_amount = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    commission_percentage = Column(Numeric(5, 2), nullable=False)
    commission_currency = Column(String(3), nullable=False, default="USD")

    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value)
    date = Column(DateTime, nullable=False, default=utc_now)
    processed_at = Column(DateTime, nullable=True)

    account = relationship("ReferralAccount", back_populates="transactions")

    def __repr__(self):
        return (
            f"<ReferralTransaction(id={self.id}, referred={self.referred_user_id}, "
            f"status={self.status}, commission={self.commission_amount})>"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING.value


class Reward(Base):
    """A redeemable benefit held by a referrer.

    ``value`` is a percentage for discounts, a currency amount for cash bonuses,
    a credit amount for credits and a course count for free courses.
    """
    __tablename__ = "referral_rewards"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("referral_accounts.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=RewardStatus.AVAILABLE.value)
    course_id = Column(Integer, nullable=True)

    # Traceability only
    transaction_id = Column(Integer, ForeignKey("referral_transactions.id"), nullable=True)
    milestone_id = Column(Integer, ForeignKey("referral_milestones.id"), nullable=True)

    expiry_date = Column(DateTime, nullable=True)
    used_at = Column(DateTime, nullable=True)
    redemption_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    account = relationship("ReferralAccount", back_populates="rewards")

    def __repr__(self):
        return f"<Reward(id={self.id}, type={self.type}, value={self.value}, status={self.status})>"

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date is not None and self.expiry_date <= now

    def is_available(self, now: datetime) -> bool:
        """Available and not past its expiry date, whatever ``status`` says."""
        return self.status == RewardStatus.AVAILABLE.value and not self.is_expired(now)


class Milestone(Base):
    """A one-time target that issues ``reward_json`` when reached."""
    __tablename__ = "referral_milestones"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("referral_accounts.id"), nullable=False, index=True)
    kind = Column(String(32), nullable=False)
    target = Column(Numeric(12, 2), nullable=False)
    achieved = Column(Boolean, nullable=False, default=False)
    achieved_at = Column(DateTime, nullable=True)
    reward_json = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utc_now)

    account = relationship("ReferralAccount", back_populates="milestones")

    def __repr__(self):
        return f"<Milestone(kind={self.kind}, target={self.target}, achieved={self.achieved})>"
