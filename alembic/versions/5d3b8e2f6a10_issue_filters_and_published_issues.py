"""Saved issue filters and maintainer-published issues

Revision ID: 5d3b8e2f6a10
Revises: 0a1c5e7b9d21
Create Date: 2026-10-19 15:30:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5d3b8e2f6a10"
down_revision: str | Sequence[str] | None = "0a1c5e7b9d21"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "issue_filters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("github_username", sa.String(39), nullable=False),
        sa.Column("languages", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("labels", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("difficulty", sa.String(20), nullable=True),
        sa.Column("min_stars", sa.Integer(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "account_id", "github_username", name="uq_issue_filters_account_user"
        ),
    )

    op.create_table(
        "published_issues",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column(
            "maintainer_account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id"),
            nullable=False,
        ),
        sa.Column("number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(300), nullable=False, server_default=""),
        sa.Column("html_url", sa.String(500), nullable=False, server_default=""),
        sa.Column("repository", sa.String(200), nullable=False),
        sa.Column("repository_stars", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("labels", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("state", sa.String(20), nullable=False, server_default="open"),
        sa.Column("difficulty", sa.String(20), nullable=False),
        sa.Column("estimated_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("bounty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("staking_required", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expiration_date", sa.DateTime(timezone=True), nullable=False),
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
    )
    op.create_index(
        "ix_published_issues_maintainer", "published_issues", ["maintainer_account_id"]
    )
    op.create_index("ix_published_issues_repository", "published_issues", ["repository"])
    op.create_index("ix_published_issues_state", "published_issues", ["state"])


def downgrade() -> None:
    op.drop_index("ix_published_issues_state", table_name="published_issues")
    op.drop_index("ix_published_issues_repository", table_name="published_issues")
    op.drop_index("ix_published_issues_maintainer", table_name="published_issues")
    op.drop_table("published_issues")

    op.drop_table("issue_filters")
