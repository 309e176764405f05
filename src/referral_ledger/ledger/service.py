"""Referral ledger service.

Every mutating operation runs inside one database transaction with the
referrer's account row locked, so the statistics -> tier -> milestone pipeline
never interleaves with another writer on the same account. Cross-account
uniqueness (codes, referred users) is enforced by unique indexes.
"""

import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Generator, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from referral_ledger.integrations.base import CourseCatalog, EnrollmentGateway, IdentityDirectory
from referral_ledger.ledger.codes import CodeGenerator, normalize_code
from referral_ledger.ledger.commission import calculate_commission, to_money
from referral_ledger.ledger.errors import (
    AccountExistsError,
    AccountInactiveError,
    AccountNotFoundError,
    AlreadyProcessedError,
    AlreadyReferredError,
    CodeGenerationExhaustedError,
    CodeNotFoundError,
    CourseNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    SelfReferralError,
    TransactionNotFoundError,
)
from referral_ledger.ledger.milestones import (
    DEFAULT_MILESTONES,
    MilestoneKind,
    build_milestone,
    evaluate_milestones,
)
from referral_ledger.ledger.models import (
    AccountStatus,
    Milestone,
    PayoutMethod,
    ReferralAccount,
    ReferralTransaction,
    Reward,
    TransactionStatus,
)
from referral_ledger.ledger.rewards import RedemptionResult, RewardDefinition, RewardStore
from referral_ledger.ledger.statistics import Statistics, read_statistics, recompute, store_statistics
from referral_ledger.ledger.tiers import ReferralTier, compute_tier
from referral_ledger.logging_config import account_context, get_logger
from referral_ledger.settings import settings
from referral_ledger.storage.db import Database, db
from referral_ledger.utils import utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppliedReferral:
    """What the referred user gets for using a code."""

    transaction_id: int
    referrer_id: int
    commission_amount: Decimal
    final_price: Decimal

    @property
    def discount_amount(self) -> Decimal:
        return self.commission_amount


@dataclass(frozen=True)
class MonthlyStat:
    year: int
    month: int
    count: int
    commission: Decimal


@dataclass(frozen=True)
class CourseStat:
    course_id: int
    count: int
    total_commission: Decimal


@dataclass(frozen=True)
class ReferralReport:
    code: str
    tier: ReferralTier
    overall: Statistics
    monthly: list[MonthlyStat] = field(default_factory=list)
    top_courses: list[CourseStat] = field(default_factory=list)
    display_name: str | None = None


@dataclass
class _LockSlot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class AccountLocks:
    """In-process mutex per account owner.

    Row locks alone are not enough on SQLite, which ignores ``FOR UPDATE``.
    A slot lives only while some thread holds or waits for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._slots: dict[int, _LockSlot] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    @contextmanager
    def hold(self, owner_id: int) -> Generator[None, None, None]:
        with self._guard:
            slot = self._slots.setdefault(owner_id, _LockSlot())
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[owner_id]


class ReferralService:
    """Referral accounts, transactions and rewards."""

    def __init__(
        self,
        database: Database | None = None,
        courses: CourseCatalog | None = None,
        enrollments: EnrollmentGateway | None = None,
        default_milestones: Iterable[tuple[MilestoneKind, Decimal, RewardDefinition]] | None = None,
        identities: IdentityDirectory | None = None,
    ):
        self.db = database or db
        self.courses = courses
        self.identities = identities
        self.rewards = RewardStore(
            enrollments,
            currency=settings.currency,
            discount_validity_days=settings.discount_token_validity_days,
        )
        self.default_milestones = tuple(
            DEFAULT_MILESTONES if default_milestones is None else default_milestones
        )
        self.locks = AccountLocks()
        self.logger = get_logger(__name__)

    # ==================== ACCOUNTS ====================

    def create_account(self, owner_id: int, commission_rate: Decimal | None = None) -> ReferralAccount:
        """Create a referral account with a fresh code.

        Args:
            owner_id: Referring user's ID
            commission_rate: Percentage rate (defaults to settings)

        Returns:
            The new account

        Raises:
            AccountExistsError: If the user already has an account
            CodeGenerationExhaustedError: If no free code could be found
        """
        rate = settings.default_commission_rate if commission_rate is None else Decimal(commission_rate)
        _validate_rate(rate)

        with account_context(owner_id), self.locks.hold(owner_id), self.db.session() as session:
            if self._find_account(session, owner_id) is not None:
                raise AccountExistsError(f"User {owner_id} already has a referral code", owner_id=owner_id)

            generator = CodeGenerator(
                is_taken=lambda code: _code_taken(session, code),
                length=settings.referral_code_length,
                fallback_length=settings.referral_code_fallback_length,
                max_attempts=settings.referral_code_max_attempts,
            )

            # The code index is the real guard; a concurrent insert of the same
            # code surfaces here and gets a new draw
            for _ in range(settings.referral_code_max_attempts):
                account = ReferralAccount(
                    owner_id=owner_id,
                    code=generator.generate(),
                    status=AccountStatus.ACTIVE.value,
                    commission_rate=rate,
                    minimum_payout=settings.default_minimum_payout,
                    payout_method=PayoutMethod(settings.default_payout_method).value,
                    tier=ReferralTier.BRONZE.value,
                    transactions=[],
                    rewards=[],
                    milestones=[
                        build_milestone(kind, target, reward)
                        for kind, target, reward in self.default_milestones
                    ],
                )
                session.add(account)
                try:
                    session.flush()
                except IntegrityError:
                    session.rollback()
                    if self._find_account(session, owner_id) is not None:
                        raise AccountExistsError(
                            f"User {owner_id} already has a referral code", owner_id=owner_id
                        )
                    self.logger.warning("referral_code_insert_collision", owner_id=owner_id)
                    continue
                break
            else:
                raise CodeGenerationExhaustedError("Could not store a unique referral code", owner_id=owner_id)

            self.logger.info("referral_code_created", owner_id=owner_id, code=account.code)
            return account

    def get_or_create_account(self, owner_id: int) -> ReferralAccount:
        try:
            return self.get_account(owner_id)
        except AccountNotFoundError:
            return self.create_account(owner_id)

    def get_account(self, owner_id: int) -> ReferralAccount:
        with self.db.session() as session:
            account = self._find_account(session, owner_id)
            if account is None:
                raise AccountNotFoundError(f"No referral account for user {owner_id}", owner_id=owner_id)
            return account

    def validate_code(self, code: str) -> ReferralAccount | None:
        """Return the account owning ``code``, or None."""
        if not code:
            return None

        with self.db.session() as session:
            return session.query(ReferralAccount).filter(
                ReferralAccount.code == normalize_code(code)
            ).first()

    def update_settings(
        self,
        owner_id: int,
        commission_rate: Decimal | None = None,
        minimum_payout: Decimal | None = None,
        payout_method: PayoutMethod | str | None = None,
    ) -> ReferralAccount:
        """Change an account's payout settings.

        A new rate applies to future referrals only.
        """
        with self._locked_account(owner_id) as (session, account):
            if commission_rate is not None:
                rate = Decimal(commission_rate)
                _validate_rate(rate)
                account.commission_rate = rate
            if minimum_payout is not None:
                if Decimal(minimum_payout) < 0:
                    raise InvalidInputError(
                        "Minimum payout must not be negative",
                        minimum_payout=str(minimum_payout),
                    )
                account.minimum_payout = to_money(minimum_payout)
            if payout_method is not None:
                account.payout_method = _choice(PayoutMethod, payout_method, "payout_method").value

            self.logger.info(
                "referral_settings_updated",
                owner_id=owner_id,
                commission_rate=str(account.commission_rate),
                minimum_payout=str(account.minimum_payout),
                payout_method=account.payout_method,
            )
            return account

    def set_account_status(self, owner_id: int, status: AccountStatus | str) -> ReferralAccount:
        status = _choice(AccountStatus, status, "status")
        with self._locked_account(owner_id) as (session, account):
            previous = account.status
            account.status = status.value
            self.logger.info(
                "referral_account_status_changed",
                owner_id=owner_id,
                previous=previous,
                status=status.value,
            )
            return account

    # ==================== TRANSACTIONS ====================

    def apply_referral(
        self,
        code: str,
        referred_user_id: int,
        course_id: int | None = None,
        purchase_amount: Decimal | None = None,
        now: datetime | None = None,
    ) -> AppliedReferral:
        """Link a referred user's purchase to the code's owner.

        The commission is fixed now, from the referrer's current rate, and the
        transaction starts out pending.

        Args:
            code: Referral code as typed by the user
            referred_user_id: The new user
            course_id: Course being bought
            purchase_amount: Price paid; looked up from the course catalog if omitted
            now: Transaction timestamp (defaults to current UTC time)

        Returns:
            Commission (equal to the referred user's discount) and final price

        Raises:
            CodeNotFoundError: No account owns ``code``
            AccountInactiveError: The referrer's account is not active
            SelfReferralError: The user tried to use their own code
            AlreadyReferredError: The user was referred before, by anyone
            CourseNotFoundError: No price for ``course_id``
        """
        now = now or utc_now()
        owner_id = self._owner_for_code(code)

        with self._locked_account(owner_id) as (session, account):
            if not account.is_active:
                raise AccountInactiveError(
                    f"Referral code {account.code} is {account.status}",
                    code=account.code,
                    status=account.status,
                )

            if account.owner_id == referred_user_id:
                self.logger.warning("self_referral_rejected", owner_id=owner_id)
                raise SelfReferralError("Cannot use your own referral code", owner_id=owner_id)

            if _already_referred(session, referred_user_id):
                self.logger.warning("duplicate_referral_rejected", referred_user_id=referred_user_id)
                raise AlreadyReferredError(
                    "You have already used a referral code",
                    referred_user_id=referred_user_id,
                )

            price = self._resolve_price(course_id, purchase_amount)
            commission = calculate_commission(price, account.commission_rate)

            transaction = ReferralTransaction(
                referred_user_id=referred_user_id,
                course_id=course_id,
                purchase_amount=price,
                commission_amount=commission,
                commission_percentage=account.commission_rate,
                commission_currency=settings.currency,
                status=TransactionStatus.PENDING.value,
                date=now,
            )
            account.transactions.append(transaction)
            try:
                session.flush()
            except IntegrityError as e:
                # Lost the race against another apply for the same user
                raise AlreadyReferredError(
                    "You have already used a referral code",
                    referred_user_id=referred_user_id,
                ) from e

            self._refresh(account, now)

            self.logger.info(
                "referral_applied",
                owner_id=owner_id,
                referred_user_id=referred_user_id,
                course_id=course_id,
                transaction_id=transaction.id,
                commission=str(commission),
            )

            return AppliedReferral(
                transaction_id=transaction.id,
                referrer_id=owner_id,
                commission_amount=commission,
                final_price=to_money(price - commission),
            )

    def complete_referral(
        self,
        owner_id: int,
        transaction_id: int,
        enrollment_id: str | None = None,
        now: datetime | None = None,
    ) -> ReferralAccount:
        """Confirm a pending referral once the purchase went through.

        Recomputes statistics, then the tier, then milestones, issuing rewards
        for any milestone crossed.

        Raises:
            TransactionNotFoundError: No such transaction on this account
            AlreadyProcessedError: The transaction is not pending
        """
        now = now or utc_now()

        with self._locked_account(owner_id) as (session, account):
            transaction = self._get_transaction(account, transaction_id)
            if not transaction.is_pending:
                raise AlreadyProcessedError(
                    "Referral already processed",
                    transaction_id=transaction_id,
                    status=transaction.status,
                )

            transaction.status = TransactionStatus.COMPLETED.value
            transaction.processed_at = now
            if enrollment_id is not None:
                transaction.enrollment_id = enrollment_id

            self._refresh(account, now, transaction_id=transaction.id)

            self.logger.info(
                "referral_completed",
                owner_id=owner_id,
                transaction_id=transaction_id,
                commission=str(transaction.commission_amount),
                tier=account.tier,
            )
            return account

    def cancel_referral(
        self,
        owner_id: int,
        transaction_id: int,
        now: datetime | None = None,
    ) -> ReferralTransaction:
        """Invalidate a pending referral.

        Raises:
            TransactionNotFoundError: No such transaction on this account
            InvalidTransitionError: The transaction is not pending
        """
        now = now or utc_now()

        with self._locked_account(owner_id) as (session, account):
            transaction = self._get_transaction(account, transaction_id)
            if not transaction.is_pending:
                raise InvalidTransitionError(
                    f"Cannot cancel a {transaction.status} referral",
                    transaction_id=transaction_id,
                    status=transaction.status,
                )

            transaction.status = TransactionStatus.CANCELLED.value
            transaction.processed_at = now
            self._refresh(account, now)

            self.logger.info("referral_cancelled", owner_id=owner_id, transaction_id=transaction_id)
            return transaction

    # ==================== REPORTING ====================

    def get_statistics(self, owner_id: int, top_courses: int = 5) -> ReferralReport:
        """Overall counters plus monthly and per-course breakdowns."""
        account = self.get_account(owner_id)

        monthly: dict[tuple[int, int], list] = defaultdict(lambda: [0, Decimal("0")])
        courses: dict[int, list] = defaultdict(lambda: [0, Decimal("0")])
        for transaction in account.transactions:
            bucket = monthly[(transaction.date.year, transaction.date.month)]
            bucket[0] += 1
            bucket[1] += transaction.commission_amount
            if transaction.course_id is not None:
                course = courses[transaction.course_id]
                course[0] += 1
                course[1] += transaction.commission_amount

        return ReferralReport(
            code=account.code,
            tier=ReferralTier(account.tier),
            display_name=self.identities.get_display_name(owner_id) if self.identities else None,
            overall=read_statistics(account),
            monthly=[
                MonthlyStat(year=year, month=month, count=count, commission=to_money(total))
                for (year, month), (count, total) in sorted(monthly.items(), reverse=True)
            ],
            top_courses=[
                CourseStat(course_id=course_id, count=count, total_commission=to_money(total))
                for course_id, (count, total) in sorted(
                    courses.items(), key=lambda item: (item[1][0], item[1][1]), reverse=True
                )[:top_courses]
            ],
        )

    def calculate_earnings(self, owner_id: int, start: datetime, end: datetime) -> Decimal:
        """Commission from referrals completed with a ``date`` in [start, end]."""
        account = self.get_account(owner_id)
        return to_money(sum(
            (
                t.commission_amount
                for t in account.transactions
                if t.status == TransactionStatus.COMPLETED.value and start <= t.date <= end
            ),
            Decimal("0"),
        ))

    # ==================== MILESTONES & REWARDS ====================

    def add_milestone(
        self,
        owner_id: int,
        kind: MilestoneKind | str,
        target: Decimal,
        reward: RewardDefinition,
        now: datetime | None = None,
    ) -> Milestone:
        """Add a milestone; it is checked right away against current statistics."""
        now = now or utc_now()

        with self._locked_account(owner_id) as (session, account):
            milestone = build_milestone(kind, Decimal(target), reward)
            account.milestones.append(milestone)
            session.flush()

            self._refresh(account, now)
            self.logger.info(
                "milestone_added",
                owner_id=owner_id,
                kind=milestone.kind,
                target=str(milestone.target),
                achieved=milestone.achieved,
            )
            return milestone

    def issue_reward(
        self,
        owner_id: int,
        reward: RewardDefinition,
        transaction_id: int | None = None,
        now: datetime | None = None,
    ) -> Reward:
        now = now or utc_now()

        with self._locked_account(owner_id) as (session, account):
            if transaction_id is not None:
                self._get_transaction(account, transaction_id)
            issued = self.rewards.issue(account, reward, now, transaction_id=transaction_id)
            session.flush()
            return issued

    def list_available_rewards(self, owner_id: int, now: datetime | None = None) -> list[Reward]:
        account = self.get_account(owner_id)
        return self.rewards.list_available(account, now or utc_now())

    def redeem_reward(self, owner_id: int, reward_id: int, now: datetime | None = None) -> RedemptionResult:
        """Redeem one of the account's rewards.

        All or nothing: if the redemption's side effect fails the reward stays
        available and the error propagates.
        """
        now = now or utc_now()

        with self._locked_account(owner_id) as (session, account):
            try:
                _, result = self.rewards.redeem(session, account, reward_id, now)
            except Exception as e:
                self.logger.warning(
                    "reward_redemption_failed",
                    owner_id=owner_id,
                    reward_id=reward_id,
                    error=type(e).__name__,
                )
                raise
            store_statistics(account, recompute(account.transactions, account.rewards))
            return result

    # ==================== INTERNALS ====================

    @contextmanager
    def _locked_account(self, owner_id: int) -> Generator[tuple[Session, ReferralAccount], None, None]:
        with account_context(owner_id), self.locks.hold(owner_id), self.db.session() as session:
            account = self._find_account(session, owner_id, for_update=True)
            if account is None:
                raise AccountNotFoundError(f"No referral account for user {owner_id}", owner_id=owner_id)
            yield session, account

    def _find_account(self, session: Session, owner_id: int, for_update: bool = False) -> ReferralAccount | None:
        query = session.query(ReferralAccount).filter(ReferralAccount.owner_id == owner_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _owner_for_code(self, code: str) -> int:
        normalized = normalize_code(code or "")
        with self.db.session() as session:
            owner_id = session.query(ReferralAccount.owner_id).filter(
                ReferralAccount.code == normalized
            ).scalar()
        if owner_id is None:
            self.logger.warning("referral_code_not_found", code=normalized)
            raise CodeNotFoundError("Invalid referral code", code=normalized)
        return owner_id

    def _resolve_price(self, course_id: int | None, purchase_amount: Decimal | None) -> Decimal:
        if purchase_amount is not None:
            return to_money(purchase_amount)
        if course_id is None or self.courses is None:
            raise CourseNotFoundError("No purchase amount and no course to price", course_id=course_id)
        price = self.courses.get_price(course_id)
        if price is None:
            raise CourseNotFoundError(f"Course {course_id} not found", course_id=course_id)
        return to_money(price)

    def _get_transaction(self, account: ReferralAccount, transaction_id: int) -> ReferralTransaction:
        transaction = account.find_transaction(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(
                "Referral transaction not found",
                owner_id=account.owner_id,
                transaction_id=transaction_id,
            )
        return transaction

    def _refresh(self, account: ReferralAccount, now: datetime, transaction_id: int | None = None) -> None:
        """Statistics, then tier, then milestones, always in that order."""
        stats = recompute(account.transactions, account.rewards)
        store_statistics(account, stats)

        tier = compute_tier(stats.total_commission_earned, stats.successful_referrals)
        if tier.value != account.tier:
            self.logger.info(
                "tier_changed",
                owner_id=account.owner_id,
                previous=account.tier,
                tier=tier.value,
            )
            account.tier = tier.value

        evaluate_milestones(
            account.milestones,
            stats,
            now,
            issue=lambda milestone, reward: self.rewards.issue(
                account, reward, now, transaction_id=transaction_id, milestone_id=milestone.id
            ),
        )


def _validate_rate(rate: Decimal) -> None:
    if rate <= 0 or rate > 100:
        raise InvalidInputError("Commission rate must be greater than 0 and at most 100", rate=str(rate))


def _choice(enum_cls, value, name: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise InvalidInputError(f"Unknown {name}: {value!r}", **{name: str(value)}) from e


def _code_taken(session: Session, code: str) -> bool:
    return session.query(ReferralAccount.id).filter(ReferralAccount.code == code).first() is not None


def _already_referred(session: Session, referred_user_id: int) -> bool:
    return session.query(ReferralTransaction.id).filter(
        ReferralTransaction.referred_user_id == referred_user_id
    ).first() is not None
