"""
pullquest.services.refill_service — Monthly Coin Refill
========================================================

Credits every contributor account with a flat allowance once per calendar
month.

How it works:
    1. Claim ``("monthly_refill", "YYYY-MM")`` in ``scheduled_runs``.  The
       unique constraint makes a second claim for the same month fail, so a
       restart or a second process cannot refill twice.
    2. Credit each contributor inside its own SAVEPOINT.  One bad row is
       logged, counted and rolled back without blocking the others.
    3. Record the affected count on the claim row.

The claim and the credits share one transaction: if the whole batch fails
(e.g. the database goes away) nothing is claimed and the next tick retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pullquest.constants import MONTHLY_REFILL_COINS, MONTHLY_REFILL_JOB, ROLE_CONTRIBUTOR
from pullquest.database.engine import get_session
from pullquest.database.models import Account, LedgerKind, ScheduledRun
from pullquest.engine.freshness import as_utc
from pullquest.errors import ValidationError
from pullquest.services.account_service import apply_balance_change, lock_account

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RefillResult:
    refilled_count: int
    failed_count: int
    period: str
    already_ran: bool = False


def refill_period(now: datetime) -> str:
    """UTC calendar period key, e.g. ``"2026-10"``."""
    return as_utc(now).strftime("%Y-%m")


def monthly_refill(
    engine: Engine,
    amount: int = MONTHLY_REFILL_COINS,
    now: datetime | None = None,
    period: str | None = None,
) -> RefillResult:
    """Credit *amount* coins to every contributor, at most once per period."""
    if amount < 0:
        raise ValidationError("Refill amount must be non-negative")

    now = now or datetime.now(UTC)
    period = period or refill_period(now)
    refilled = 0
    failed = 0

    with get_session(engine) as session:
        claim = ScheduledRun(job_name=MONTHLY_REFILL_JOB, period=period)
        try:
            with session.begin_nested():
                session.add(claim)
        except IntegrityError:
            logger.info("Monthly refill for %s already ran; skipping", period)
            return RefillResult(0, 0, period, already_ran=True)

        account_ids = session.scalars(
            select(Account.id)
            .where(Account.role == ROLE_CONTRIBUTOR)
            .order_by(Account.id)
        ).all()

        for account_id in account_ids:
            try:
                with session.begin_nested():   # SAVEPOINT
                    account = lock_account(session, account_id)
                    if account is None:
                        continue
                    apply_balance_change(
                        session, account,
                        kind=LedgerKind.MONTHLY_REFILL,
                        coin_delta=amount,
                        metadata={"period": period},
                    )
                    account.monthly_coins_last_refill = now
                refilled += 1
            except Exception:
                failed += 1
                logger.exception(
                    "Monthly refill failed for account %d (%s)", account_id, period
                )

        claim.affected_count = refilled

    log = logger.warning if failed else logger.info
    log(
        "Monthly refill %s: credited %d contributors with %d coins (%d failed)",
        period, refilled, amount, failed,
    )
    return RefillResult(refilled, failed, period)
