"""Create referral ledger tables

Revision ID: 001_referral_ledger
Revises:
Create Date: 2026-10-18

Adds tables for:
- referral_accounts: One per referring user, with code, settings and derived statistics
- referral_transactions: Referred purchases and their lifecycle
- referral_milestones: Targets that issue rewards once reached
- referral_rewards: Issued rewards and their redemption
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_referral_ledger"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create referral ledger tables."""

    op.create_table(
        "referral_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("minimum_payout", sa.Numeric(12, 2), nullable=False),
        sa.Column("payout_method", sa.String(32), nullable=False, server_default="platform_credits"),
        sa.Column("tier", sa.String(20), nullable=False, server_default="bronze"),
        sa.Column("total_referrals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_referrals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_referrals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_commission_earned", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_discounts_earned", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_free_courses_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referral_accounts_owner_id", "referral_accounts", ["owner_id"], unique=True)
    op.create_index("ix_referral_accounts_code", "referral_accounts", ["code"], unique=True)

    op.create_table(
        "referral_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("referred_user_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=True),
        sa.Column("enrollment_id", sa.String(64), nullable=True),
        sa.Column("purchase_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["referral_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referral_transactions_account_id", "referral_transactions", ["account_id"], unique=False)
    # A user can be referred at most once across all accounts
    op.create_index(
        "ix_referral_transactions_referred_user_id",
        "referral_transactions",
        ["referred_user_id"],
        unique=True,
    )
    op.create_index("ix_referral_transactions_course_id", "referral_transactions", ["course_id"], unique=False)

    op.create_table(
        "referral_milestones",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("target", sa.Numeric(12, 2), nullable=False),
        sa.Column("achieved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("achieved_at", sa.DateTime(), nullable=True),
        sa.Column("reward_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["referral_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referral_milestones_account_id", "referral_milestones", ["account_id"], unique=False)

    op.create_table(
        "referral_rewards",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("course_id", sa.Integer(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("milestone_id", sa.Integer(), nullable=True),
        sa.Column("expiry_date", sa.DateTime(), nullable=True),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("redemption_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["referral_accounts.id"]),
        sa.ForeignKeyConstraint(["transaction_id"], ["referral_transactions.id"]),
        sa.ForeignKeyConstraint(["milestone_id"], ["referral_milestones.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_referral_rewards_account_id", "referral_rewards", ["account_id"], unique=False)


def downgrade() -> None:
    """Drop referral ledger tables."""
    op.drop_table("referral_rewards")
    op.drop_table("referral_milestones")
    op.drop_table("referral_transactions")
    op.drop_table("referral_accounts")
