"""
pullquest.services.account_service — Account Balances & Ledger
===============================================================

Every coin/XP mutation in PullQuest goes through :func:`apply_balance_change`,
which keeps three things in step inside the caller's transaction:

1. ``accounts.coins`` / ``accounts.xp``
2. ``accounts.rank`` (re-derived from XP via the rank engine)
3. one ``coin_ledger`` row recording the delta

Callers own the session; nothing here commits.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from pullquest.constants import ROLE_CONTRIBUTOR, ROLES, STARTING_COINS
from pullquest.database.engine import get_session
from pullquest.database.models import Account, LedgerEntry, LedgerKind
from pullquest.engine.rank import rank_of
from pullquest.errors import InsufficientFundsError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def lock_account(session: Session, account_id: int) -> Account | None:
    """Load an account row with ``SELECT … FOR UPDATE``."""
    return session.get(Account, account_id, with_for_update=True)


def require_account(session: Session, account_id: int, *, lock: bool = False) -> Account:
    account = (
        lock_account(session, account_id) if lock else session.get(Account, account_id)
    )
    if account is None:
        raise NotFoundError(
            f"Account {account_id} not found",
            code="account_not_found",
            details={"account_id": account_id},
        )
    return account


def apply_balance_change(
    session: Session,
    account: Account,
    *,
    kind: LedgerKind,
    coin_delta: int = 0,
    xp_delta: int = 0,
    stake_id: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> LedgerEntry:
    """Mutate *account* and journal the change.

    Raises :class:`InsufficientFundsError` if the coin balance would go
    negative; nothing is written in that case.
    """
    new_coins = account.coins + coin_delta
    if new_coins < 0:
        raise InsufficientFundsError(
            "Insufficient coins",
            details={"balance": account.coins, "required": -coin_delta},
        )

    account.coins = new_coins
    account.xp = max(account.xp + xp_delta, 0)
    account.rank = rank_of(account.xp)

    entry = LedgerEntry(
        account_id=account.id,
        kind=kind.value,
        coin_delta=coin_delta,
        xp_delta=xp_delta,
        stake_id=stake_id,
        metadata_=metadata,
    )
    session.add(entry)
    return entry


def create_account(
    engine: Engine,
    *,
    github_username: str | None = None,
    role: str = ROLE_CONTRIBUTOR,
    starting_coins: int = STARTING_COINS,
) -> Account:
    """Insert an account with its opening balance journaled."""
    if role not in ROLES:
        raise ValidationError(
            f"Unknown role {role!r}", details={"allowed": list(ROLES)}
        )
    if starting_coins < 0:
        raise ValidationError("starting_coins must be non-negative")

    with get_session(engine) as session:
        account = Account(
            github_username=github_username,
            role=role,
            coins=0,
            xp=0,
            rank=rank_of(0),
        )
        session.add(account)
        session.flush()
        apply_balance_change(
            session, account,
            kind=LedgerKind.OPENING_BALANCE,
            coin_delta=starting_coins,
        )
        session.flush()
        session.refresh(account)   # load server-side timestamps

    logger.info(
        "Created %s account %d (%s) with %d coins",
        role, account.id, github_username, starting_coins,
    )
    return account


def get_account(engine: Engine, account_id: int) -> Account:
    with get_session(engine) as session:
        return require_account(session, account_id)
