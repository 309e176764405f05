"""Typed errors raised by the referral ledger.

Every failure a caller can act on is one of these. The CLI (or any other outer
layer) maps ``error_code`` to a user-facing message.
"""

from typing import Any


class ReferralError(Exception):
    """Base class for ledger errors."""

    error_code = "referral_error"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidInputError(ReferralError, ValueError):
    """A caller-supplied amount, rate or setting is out of range."""

    error_code = "invalid_input"


# ── Not found ────────────────────────────────────────────────────────


class NotFoundError(ReferralError):
    error_code = "not_found"


class CodeNotFoundError(NotFoundError):
    error_code = "code_not_found"


class AccountNotFoundError(NotFoundError):
    error_code = "account_not_found"


class TransactionNotFoundError(NotFoundError):
    error_code = "transaction_not_found"


class RewardNotFoundError(NotFoundError):
    error_code = "reward_not_found"


class CourseNotFoundError(NotFoundError):
    error_code = "course_not_found"


# ── Conflicts ────────────────────────────────────────────────────────


class ConflictError(ReferralError):
    error_code = "conflict"


class AlreadyReferredError(ConflictError):
    error_code = "already_referred"


class SelfReferralError(ConflictError):
    error_code = "self_referral"


class AlreadyProcessedError(ConflictError):
    error_code = "already_processed"


class InvalidTransitionError(ConflictError):
    error_code = "invalid_transition"


class CodeGenerationExhaustedError(ConflictError):
    error_code = "code_generation_exhausted"


class AccountExistsError(ConflictError):
    error_code = "account_exists"


class AccountInactiveError(ConflictError):
    error_code = "account_inactive"


# ── Rewards and collaborators ────────────────────────────────────────


class NotAvailableError(ReferralError):
    """Reward is used or expired."""

    error_code = "not_available"


class UnsupportedRewardTypeError(ReferralError):
    error_code = "unsupported_reward_type"


class DependencyFailureError(ReferralError):
    """An external collaborator call failed."""

    error_code = "dependency_failure"
