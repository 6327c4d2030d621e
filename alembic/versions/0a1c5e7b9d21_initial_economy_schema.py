"""Initial economy schema: accounts, stakes, snapshots, ledger, scheduling

Revision ID: 0a1c5e7b9d21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c5e7b9d21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    """Create every PullQuest table."""
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("github_username", sa.String(39), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="contributor"),
        sa.Column("coins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rank", sa.String(50), nullable=False, server_default="Code Novice"),
        sa.Column("monthly_coins_last_refill", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("coins >= 0", name="ck_accounts_coins_non_negative"),
        sa.CheckConstraint("xp >= 0", name="ck_accounts_xp_non_negative"),
    )
    op.create_index("ix_accounts_role", "accounts", ["role"])
    op.create_index("ix_accounts_xp_desc", "accounts", ["xp"])

    op.create_table(
        "stakes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("issue_id", sa.BigInteger(), nullable=False),
        sa.Column("repository", sa.String(200), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("pr_url", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("bounty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_earned", sa.Integer(), nullable=True),
        sa.Column("coins_earned", sa.Integer(), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 1", name="ck_stakes_amount_positive"),
    )
    op.create_index("ix_stakes_account_id", "stakes", ["account_id"])
    op.create_index("ix_stakes_issue_id", "stakes", ["issue_id"])
    op.create_index("ix_stakes_status", "stakes", ["status"])
    op.create_index("ix_stakes_pr_url", "stakes", ["pr_url"])

    op.create_table(
        "cached_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("github_username", sa.String(39), nullable=False),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("last_computed", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "account_id", "github_username", "kind",
            name="uq_cached_snapshots_account_user_kind",
        ),
    )
    op.create_index(
        "ix_cached_snapshots_last_computed", "cached_snapshots", ["last_computed"]
    )

    op.create_table(
        "coin_ledger",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("coin_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stake_id", sa.Integer(), sa.ForeignKey("stakes.id"), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_coin_ledger_account_time", "coin_ledger", ["account_id", "timestamp"]
    )
    op.create_index("ix_coin_ledger_stake", "coin_ledger", ["stake_id"])

    op.create_table(
        "scheduled_runs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_name", sa.String(50), nullable=False),
        sa.Column("period", sa.String(20), nullable=False),
        sa.Column("affected_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "ran_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("job_name", "period", name="uq_scheduled_runs_job_period"),
    )

    op.create_table(
        "rate_limit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("bucket", sa.String(50), nullable=False),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_rate_limit_bucket_account_ts",
        "rate_limit_events",
        ["bucket", "account_id", sa.text("timestamp DESC")],
    )
    op.create_index("ix_rate_limit_ts", "rate_limit_events", ["timestamp"])


def downgrade() -> None:
    """Drop every PullQuest table."""
    op.drop_index("ix_rate_limit_ts", table_name="rate_limit_events")
    op.drop_index("ix_rate_limit_bucket_account_ts", table_name="rate_limit_events")
    op.drop_table("rate_limit_events")

    op.drop_table("scheduled_runs")

    op.drop_index("ix_coin_ledger_stake", table_name="coin_ledger")
    op.drop_index("ix_coin_ledger_account_time", table_name="coin_ledger")
    op.drop_table("coin_ledger")

    op.drop_index("ix_cached_snapshots_last_computed", table_name="cached_snapshots")
    op.drop_table("cached_snapshots")

    op.drop_index("ix_stakes_pr_url", table_name="stakes")
    op.drop_index("ix_stakes_status", table_name="stakes")
    op.drop_index("ix_stakes_issue_id", table_name="stakes")
    op.drop_index("ix_stakes_account_id", table_name="stakes")
    op.drop_table("stakes")

    op.drop_index("ix_accounts_xp_desc", table_name="accounts")
    op.drop_index("ix_accounts_role", table_name="accounts")
    op.drop_table("accounts")
