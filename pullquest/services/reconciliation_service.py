"""
pullquest.services.reconciliation_service — Ledger Reconciliation
==================================================================

Validates ``accounts`` balances against the ``coin_ledger`` journal.

How it works:
    1. ``SUM(coin_delta)`` / ``SUM(xp_delta)`` per account from the ledger.
    2. Compare against the stored ``coins`` / ``xp``.
    3. Report every mismatch.  Balances are NOT rewritten: a drift means a
       write bypassed the ledger and needs a human to decide which side is
       right.
    4. Repair ``rank`` wherever it disagrees with ``rank_of(xp)``; rank is
       purely derived, so fixing it is always safe.
    5. Flag pending stakes without a ``STAKE_DEBIT`` entry.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from pullquest.database.engine import get_session
from pullquest.database.models import (
    Account,
    LedgerEntry,
    LedgerKind,
    Stake,
    StakeStatus,
)
from pullquest.engine.rank import rank_of

logger = logging.getLogger(__name__)


def reconcile_ledger(engine: Engine) -> dict:
    """Compare balances with ledger sums and repair derived ranks.

    Returns ``{"checked": N, "drift": [...], "ranks_repaired": M,
    "unjournaled_stakes": [...], "timestamp": ...}``.
    """
    drift: list[dict] = []
    ranks_repaired = 0

    with get_session(engine) as session:
        sums = session.execute(
            select(
                LedgerEntry.account_id,
                func.coalesce(func.sum(LedgerEntry.coin_delta), 0).label("coins"),
                func.coalesce(func.sum(LedgerEntry.xp_delta), 0).label("xp"),
            ).group_by(LedgerEntry.account_id)
        ).all()
        ledger_map: dict[int, tuple[int, int]] = {
            row.account_id: (row.coins, row.xp) for row in sums
        }

        accounts = session.scalars(select(Account).order_by(Account.id)).all()
        for account in accounts:
            expected_coins, expected_xp = ledger_map.get(account.id, (0, 0))
            if account.coins != expected_coins or account.xp != expected_xp:
                drift.append({
                    "account_id": account.id,
                    "stored_coins": account.coins,
                    "ledger_coins": expected_coins,
                    "stored_xp": account.xp,
                    "ledger_xp": expected_xp,
                })

            derived = rank_of(account.xp)
            if account.rank != derived:
                logger.info(
                    "Repairing rank for account %d: %r → %r",
                    account.id, account.rank, derived,
                )
                account.rank = derived
                ranks_repaired += 1

        debited = select(LedgerEntry.stake_id).where(
            LedgerEntry.kind == LedgerKind.STAKE_DEBIT.value,
            LedgerEntry.stake_id.is_not(None),
        )
        unjournaled = session.scalars(
            select(Stake.id).where(
                Stake.status == StakeStatus.PENDING.value,
                Stake.id.not_in(debited),
            )
        ).all()

    if drift or unjournaled:
        logger.warning(
            "Ledger reconciliation: %d/%d accounts drifted, %d stakes unjournaled: %s",
            len(drift), len(accounts), len(unjournaled), drift,
        )
    else:
        logger.info("Ledger reconciliation: all %d accounts match", len(accounts))

    return {
        "checked": len(accounts),
        "drift": drift,
        "ranks_repaired": ranks_repaired,
        "unjournaled_stakes": list(unjournaled),
        "timestamp": datetime.now(UTC).isoformat(),
    }
