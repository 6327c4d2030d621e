"""
pullquest.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- accounts           — Contributor / maintainer balances (coins, XP, rank)
- stakes             — Coin commitments against GitHub issues (audit trail)
- cached_snapshots   — Per-account cached analysis / suggested-issue sets
- coin_ledger        — Append-only journal of every balance mutation
- scheduled_runs     — Once-per-period claims for periodic jobs
- rate_limit_events  — Durable request timestamps for the per-account limiter
- issue_filters      — Saved suggested-issue filter preferences per account
- published_issues   — Maintainer-published issues with authoritative rewards
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pullquest.constants import ROLE_CONTRIBUTOR


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all PullQuest ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class StakeStatus(enum.StrEnum):
    """Lifecycle states of a stake."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_STATUSES: frozenset[StakeStatus] = frozenset({
    StakeStatus.ACCEPTED,
    StakeStatus.REJECTED,
    StakeStatus.EXPIRED,
})

# Terminal states a "reopen" may move back to PENDING.
REOPENABLE_STATUSES: frozenset[StakeStatus] = frozenset({
    StakeStatus.REJECTED,
    StakeStatus.EXPIRED,
})


class SnapshotKind(enum.StrEnum):
    """Kinds of externally-derived data cached per account."""
    LANGUAGE_ANALYSIS = "language_analysis"
    SUGGESTED_ISSUES = "suggested_issues"


class LedgerKind(enum.StrEnum):
    """Categories of balance mutation recorded in coin_ledger."""
    OPENING_BALANCE = "OPENING_BALANCE"
    STAKE_DEBIT = "STAKE_DEBIT"
    STAKE_SETTLED = "STAKE_SETTLED"
    MONTHLY_REFILL = "MONTHLY_REFILL"


# ---------------------------------------------------------------------------
# Accounts — one row per PullQuest user
# ---------------------------------------------------------------------------
class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    github_username: Mapped[str | None] = mapped_column(String(39), default=None)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ROLE_CONTRIBUTOR
    )
    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[str] = mapped_column(String(50), nullable=False, default="Code Novice")
    monthly_coins_last_refill: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    stakes: Mapped[list[Stake]] = relationship(back_populates="account")
    ledger_entries: Mapped[list[LedgerEntry]] = relationship(back_populates="account")

    __table_args__ = (
        CheckConstraint("coins >= 0", name="ck_accounts_coins_non_negative"),
        CheckConstraint("xp >= 0", name="ck_accounts_xp_non_negative"),
        Index("ix_accounts_role", "role"),
        Index("ix_accounts_xp_desc", "xp"),
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} gh={self.github_username!r} rank={self.rank!r}>"


# ---------------------------------------------------------------------------
# Stakes — never deleted; the audit trail of every commitment
# ---------------------------------------------------------------------------
class Stake(Base):
    __tablename__ = "stakes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False
    )
    issue_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    repository: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    pr_url: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StakeStatus.PENDING.value
    )
    # Issue rewards captured at staking time; used by webhook settlement.
    bounty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_earned: Mapped[int | None] = mapped_column(Integer, default=None)
    coins_earned: Mapped[int | None] = mapped_column(Integer, default=None)
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    account: Mapped[Account] = relationship(back_populates="stakes")

    __table_args__ = (
        CheckConstraint("amount >= 1", name="ck_stakes_amount_positive"),
        Index("ix_stakes_account_id", "account_id"),
        Index("ix_stakes_issue_id", "issue_id"),
        Index("ix_stakes_status", "status"),
        Index("ix_stakes_pr_url", "pr_url"),
    )

    def __repr__(self) -> str:
        return f"<Stake id={self.id} account={self.account_id} status={self.status}>"


# ---------------------------------------------------------------------------
# CachedSnapshot — upserted wholesale on recomputation
# ---------------------------------------------------------------------------
class CachedSnapshot(Base):
    __tablename__ = "cached_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    github_username: Mapped[str] = mapped_column(String(39), nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    last_computed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id", "github_username", "kind",
            name="uq_cached_snapshots_account_user_kind",
        ),
        Index("ix_cached_snapshots_last_computed", "last_computed"),
    )

    def __repr__(self) -> str:
        return (
            f"<CachedSnapshot account={self.account_id} "
            f"gh={self.github_username!r} kind={self.kind!r}>"
        )


# ---------------------------------------------------------------------------
# LedgerEntry — append-only balance journal
# ---------------------------------------------------------------------------
class LedgerEntry(Base):
    __tablename__ = "coin_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    coin_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stake_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("stakes.id"), nullable=True
    )
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    account: Mapped[Account] = relationship(back_populates="ledger_entries")

    __table_args__ = (
        Index("ix_coin_ledger_account_time", "account_id", "timestamp"),
        Index("ix_coin_ledger_stake", "stake_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} account={self.account_id} "
            f"kind={self.kind} coins={self.coin_delta:+d}>"
        )


# ---------------------------------------------------------------------------
# ScheduledRun — one row per (job, period) that has fired
# ---------------------------------------------------------------------------
class ScheduledRun(Base):
    __tablename__ = "scheduled_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_name: Mapped[str] = mapped_column(String(50), nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)
    affected_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ran_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("job_name", "period", name="uq_scheduled_runs_job_period"),
    )

    def __repr__(self) -> str:
        return f"<ScheduledRun job={self.job_name!r} period={self.period!r}>"


# ---------------------------------------------------------------------------
# RateLimitEvent — durable request events for per-account throttling
# ---------------------------------------------------------------------------
class RateLimitEvent(Base):
    __tablename__ = "rate_limit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bucket: Mapped[str] = mapped_column(String(50), nullable=False)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_rate_limit_bucket_account_ts", "bucket", "account_id", timestamp.desc()),
        Index("ix_rate_limit_ts", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<RateLimitEvent bucket={self.bucket!r} "
            f"account={self.account_id!r} ts={self.timestamp}>"
        )


# ---------------------------------------------------------------------------
# IssueFilterPreference — saved suggested-issue filters per (account, user)
# ---------------------------------------------------------------------------
class IssueFilterPreference(Base):
    __tablename__ = "issue_filters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    github_username: Mapped[str] = mapped_column(String(39), nullable=False)
    # Empty list means "use the analysis' top languages".
    languages: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    labels: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    difficulty: Mapped[str | None] = mapped_column(String(20), default=None)
    min_stars: Mapped[int | None] = mapped_column(Integer, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id", "github_username", name="uq_issue_filters_account_user"
        ),
    )

    def __repr__(self) -> str:
        return f"<IssueFilterPreference account={self.account_id} gh={self.github_username!r}>"


# ---------------------------------------------------------------------------
# PublishedIssue — keyed by the GitHub issue id; rewards computed server-side
# ---------------------------------------------------------------------------
class PublishedIssue(Base):
    __tablename__ = "published_issues"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    maintainer_account_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("accounts.id"), nullable=False
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    title: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    html_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    repository: Mapped[str] = mapped_column(String(200), nullable=False)
    repository_stars: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    labels: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    estimated_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    bounty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    staking_required: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expiration_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_published_issues_maintainer", "maintainer_account_id"),
        Index("ix_published_issues_repository", "repository"),
        Index("ix_published_issues_state", "state"),
    )

    def __repr__(self) -> str:
        return f"<PublishedIssue id={self.id} repo={self.repository!r} bounty={self.bounty}>"
