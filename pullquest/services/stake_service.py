"""
pullquest.services.stake_service — Stake Lifecycle
===================================================

State machine::

    pending ──merged──▶ accepted            (final)
       │
       ├──closed──────▶ rejected ─┐
       │                          ├─reopen─▶ pending
       └──expired─────▶ expired  ─┘

Credit rules on settlement:

==========  =======================================  ==================
status      coins credited                           XP credited
==========  =======================================  ==================
accepted    ``amount + coins_earned``                ``xp_earned``
rejected    ``coins_earned`` (the stake is forfeit)  0
expired     ``amount`` (full refund)                 0
==========  =======================================  ==================

Every write path runs in one transaction holding row locks on the stake and
the account: stake status, account balance, derived rank and the ledger
entry commit together or not at all.  Settling a stake that is no longer
``pending`` is a logged no-op, so duplicate webhook deliveries and racing
maintainers cannot double-credit an account.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from pullquest.database.engine import get_session
from pullquest.database.models import (
    REOPENABLE_STATUSES,
    CachedSnapshot,
    LedgerKind,
    PublishedIssue,
    SnapshotKind,
    Stake,
    StakeStatus,
)
from pullquest.errors import NotFoundError, SettlementConflictError, ValidationError
from pullquest.services.account_service import (
    apply_balance_change,
    lock_account,
    require_account,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

WEBHOOK_ACTIONS = frozenset({"closed", "reopened"})


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def _require_int(name: str, value, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={"field": name})
    if minimum is not None and value < minimum:
        raise ValidationError(
            f"{name} must be >= {minimum}", details={"field": name, "value": value}
        )
    return value


def _require_text(name: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", details={"field": name})
    return value.strip()


def _parse_status(status: str | StakeStatus) -> StakeStatus:
    try:
        return StakeStatus(status)
    except ValueError:
        raise ValidationError(
            f"Unknown stake status {status!r}",
            code="invalid_status",
            details={"allowed": [s.value for s in StakeStatus]},
        ) from None


# ---------------------------------------------------------------------------
# Reward lookup
# ---------------------------------------------------------------------------
def resolve_issue_rewards(
    session: Session, account_id: int, issue_id: int
) -> tuple[int, int]:
    """Server-side ``(bounty, xp_reward)`` for *issue_id*.

    A maintainer-published issue is authoritative; otherwise the values
    annotated into the account's cached suggestions apply; otherwise 0.
    """
    published = session.get(PublishedIssue, issue_id)
    if published is not None:
        return published.bounty, published.xp_reward
    return _cached_issue_rewards(session, account_id, issue_id) or (0, 0)


def _cached_issue_rewards(
    session: Session, account_id: int, issue_id: int
) -> tuple[int, int] | None:
    """Find ``(bounty, xp_reward)`` for *issue_id* in the account's suggestions."""
    snapshots = session.scalars(
        select(CachedSnapshot).where(
            CachedSnapshot.account_id == account_id,
            CachedSnapshot.kind == SnapshotKind.SUGGESTED_ISSUES.value,
        )
    ).all()
    for snapshot in snapshots:
        for issue in (snapshot.payload or {}).get("issues", []):
            if issue.get("id") == issue_id:
                return int(issue.get("bounty") or 0), int(issue.get("xp_reward") or 0)
    return None


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_stake(
    engine: Engine,
    account_id: int,
    issue_id: int,
    repository: str,
    amount: int,
    pr_url: str,
    *,
    bounty: int | None = None,
    xp_reward: int | None = None,
) -> Stake:
    """Debit *amount* from the account and open a pending stake.

    When *bounty* / *xp_reward* are omitted they are resolved on the server
    by :func:`resolve_issue_rewards`.  The overrides exist for internal
    callers and are never taken from an HTTP request.

    Raises ValidationError, NotFoundError(account_not_found) or
    InsufficientFundsError; on any error nothing is written.
    """
    _require_int("account_id", account_id)
    _require_int("issue_id", issue_id)
    _require_int("amount", amount, minimum=1)
    repository = _require_text("repository", repository)
    pr_url = _require_text("pr_url", pr_url)
    if bounty is not None:
        _require_int("bounty", bounty, minimum=0)
    if xp_reward is not None:
        _require_int("xp_reward", xp_reward, minimum=0)

    with get_session(engine) as session:
        account = require_account(session, account_id, lock=True)

        if bounty is None or xp_reward is None:
            resolved = resolve_issue_rewards(session, account_id, issue_id)
            bounty = resolved[0] if bounty is None else bounty
            xp_reward = resolved[1] if xp_reward is None else xp_reward

        stake = Stake(
            account_id=account_id,
            issue_id=issue_id,
            repository=repository,
            amount=amount,
            pr_url=pr_url,
            status=StakeStatus.PENDING.value,
            bounty=bounty,
            xp_reward=xp_reward,
        )

        # Debit first so an InsufficientFundsError aborts before the insert.
        entry = apply_balance_change(
            session, account,
            kind=LedgerKind.STAKE_DEBIT,
            coin_delta=-amount,
            metadata={"issue_id": issue_id, "repository": repository},
        )
        session.add(stake)
        session.flush()
        entry.stake_id = stake.id
        session.refresh(stake)   # load server-side timestamps

    logger.info(
        "Account %d staked %d coins on issue %d (%s) → stake %d",
        account_id, amount, issue_id, repository, stake.id,
    )
    return stake


# ---------------------------------------------------------------------------
# Settlement core
# ---------------------------------------------------------------------------
def _credit_for(
    stake: Stake, target: StakeStatus, xp_earned: int, coins_earned: int
) -> tuple[int, int, int, int]:
    """Return ``(coin_delta, xp_delta, xp_earned, coins_earned)`` for *target*."""
    if target is StakeStatus.ACCEPTED:
        return stake.amount + coins_earned, xp_earned, xp_earned, coins_earned
    if target is StakeStatus.REJECTED:
        return coins_earned, 0, 0, coins_earned
    if target is StakeStatus.EXPIRED:
        return stake.amount, 0, 0, 0
    raise ValueError(f"{target} is not a settlement status")


def _settle(
    session: Session,
    stake: Stake,
    target: StakeStatus,
    *,
    xp_earned: int,
    coins_earned: int,
    source: str,
    missing_account: type[Exception],
) -> Stake:
    """Apply a terminal transition to a locked pending stake."""
    account = lock_account(session, stake.account_id)
    if account is None:
        raise missing_account(
            f"Account {stake.account_id} for stake {stake.id} not found",
            code="account_not_found",
            details={"stake_id": stake.id, "account_id": stake.account_id},
        )

    coin_delta, xp_delta, xp_final, coins_final = _credit_for(
        stake, target, xp_earned, coins_earned
    )

    stake.status = target.value
    stake.xp_earned = xp_final
    stake.coins_earned = coins_final
    stake.settled_at = datetime.now(UTC)

    apply_balance_change(
        session, account,
        kind=LedgerKind.STAKE_SETTLED,
        coin_delta=coin_delta,
        xp_delta=xp_delta,
        stake_id=stake.id,
        metadata={"status": target.value, "source": source},
    )
    session.flush()

    logger.info(
        "Stake %d settled as %s via %s: account %d %+d coins, %+d XP",
        stake.id, target, source, account.id, coin_delta, xp_delta,
    )
    return stake


def _reopen(stake: Stake, *, source: str) -> Stake:
    if stake.status not in REOPENABLE_STATUSES:
        logger.info(
            "Ignoring reopen of stake %d in status %s (%s)", stake.id, stake.status, source
        )
        return stake
    stake.status = StakeStatus.PENDING.value
    stake.xp_earned = None
    stake.coins_earned = None
    stake.settled_at = None
    logger.info("Stake %d reopened via %s", stake.id, source)
    return stake


# ---------------------------------------------------------------------------
# Webhook path
# ---------------------------------------------------------------------------
def settle_by_webhook(
    engine: Engine,
    pr_url: str,
    merged: bool,
    action: str,
) -> Stake | None:
    """Settle the stake correlated with *pr_url* from a pull_request event.

    Returns the (possibly unchanged) stake, or None when the event does not
    apply.  Raises SettlementConflictError if the owning account is gone;
    the stake is left pending in that case.
    """
    if action not in WEBHOOK_ACTIONS:
        logger.debug("Ignoring pull_request action %r for %s", action, pr_url)
        return None
    if not pr_url:
        return None

    with get_session(engine) as session:
        stake = session.scalar(
            select(Stake)
            .where(Stake.pr_url == pr_url)
            .order_by(Stake.created_at.desc(), Stake.id.desc())
            .limit(1)
            .with_for_update()
        )
        if stake is None:
            logger.info("No stake matches PR %s; ignoring %s event", pr_url, action)
            return None

        if action == "reopened":
            return _reopen(stake, source="webhook")

        if stake.status != StakeStatus.PENDING:
            logger.info(
                "Stake %d already %s; ignoring duplicate %s event",
                stake.id, stake.status, action,
            )
            return stake

        target = StakeStatus.ACCEPTED if merged else StakeStatus.REJECTED
        return _settle(
            session, stake, target,
            xp_earned=stake.xp_reward if merged else 0,
            coins_earned=stake.bounty if merged else 0,
            source="webhook",
            missing_account=SettlementConflictError,
        )


# ---------------------------------------------------------------------------
# Maintainer path
# ---------------------------------------------------------------------------
def settle_explicit(
    engine: Engine,
    stake_id: int,
    status: str | StakeStatus,
    xp_earned: int = 0,
    coins_earned: int = 0,
) -> Stake:
    """Set a stake's outcome by hand.

    ``status="pending"`` reopens a rejected or expired stake.  Settling a
    stake that is not pending returns it unchanged.
    """
    _require_int("stake_id", stake_id)
    _require_int("xp_earned", xp_earned, minimum=0)
    _require_int("coins_earned", coins_earned, minimum=0)
    target = _parse_status(status)

    with get_session(engine) as session:
        stake = session.get(Stake, stake_id, with_for_update=True)
        if stake is None:
            raise NotFoundError(
                f"Stake {stake_id} not found",
                code="stake_not_found",
                details={"stake_id": stake_id},
            )

        if target is StakeStatus.PENDING:
            return _reopen(stake, source="maintainer")

        if stake.status != StakeStatus.PENDING:
            logger.info(
                "Stake %d already %s; explicit %s is a no-op",
                stake.id, stake.status, target,
            )
            return stake

        return _settle(
            session, stake, target,
            xp_earned=xp_earned,
            coins_earned=coins_earned,
            source="maintainer",
            missing_account=NotFoundError,
        )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_stake(engine: Engine, stake_id: int) -> Stake:
    with get_session(engine) as session:
        stake = session.get(Stake, stake_id)
        if stake is None:
            raise NotFoundError(
                f"Stake {stake_id} not found",
                code="stake_not_found",
                details={"stake_id": stake_id},
            )
        return stake


def list_stakes(
    engine: Engine,
    account_id: int,
    status: str | StakeStatus | None = None,
) -> list[Stake]:
    """An account's stakes, newest first, optionally filtered by status."""
    query = select(Stake).where(Stake.account_id == account_id)
    if status is not None:
        query = query.where(Stake.status == _parse_status(status).value)
    query = query.order_by(Stake.created_at.desc(), Stake.id.desc())

    with get_session(engine) as session:
        return list(session.scalars(query).all())
