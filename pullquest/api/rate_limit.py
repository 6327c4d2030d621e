"""
pullquest.api.rate_limit — Per-Contributor Request Rate Limiting
=================================================================

Sliding-window limits on the contributor endpoints that reach out to the
issue source:

- ``issues``   — 50 requests per 15 minutes (suggested issues, issue details)
- ``analysis`` — 5 requests per hour (repository analysis)

Keyed by bucket and account ID (JWT ``sub`` claim).  State lives in the
``rate_limit_events`` table so limits hold across restarts and processes.
Returns HTTP 429 with a ``Retry-After`` header when a limit is exceeded.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, status
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from pullquest.api.deps import get_current_account
from pullquest.database.models import RateLimitEvent

logger = logging.getLogger(__name__)

ISSUES_BUCKET = "issues"
ANALYSIS_BUCKET = "analysis"

# bucket → (max requests, window seconds)
DEFAULT_LIMITS: dict[str, tuple[int, int]] = {
    ISSUES_BUCKET: (50, 15 * 60),
    ANALYSIS_BUCKET: (5, 60 * 60),
}


class ContributorRateLimiter:
    """Sliding-window rate limiter for one bucket, keyed by account ID.

    DB-backed only — uses the ``rate_limit_events`` table for durable
    state that survives restarts.
    """

    def __init__(
        self,
        bucket: str,
        max_requests: int,
        window_seconds: int,
        *,
        engine: Engine,
    ) -> None:
        self.bucket = bucket
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.engine = engine

    def _normalize_dt(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def _scope(self, account_id: str):
        return (
            RateLimitEvent.bucket == self.bucket,
            RateLimitEvent.account_id == account_id,
        )

    def check(self, account_id: str) -> tuple[bool, dict[str, Any]]:
        """Check if the account is within the bucket's limit.

        Returns (allowed, info) where info contains:
          - remaining: requests remaining in the window
          - reset: seconds until the oldest request expires
          - limit: the max requests per window
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with Session(self.engine) as session:
            session.execute(
                delete(RateLimitEvent).where(
                    *self._scope(account_id), RateLimitEvent.timestamp < cutoff
                )
            )
            timestamps = session.scalars(
                select(RateLimitEvent.timestamp)
                .where(*self._scope(account_id))
                .order_by(RateLimitEvent.timestamp.asc())
            ).all()
            session.commit()

        count = len(timestamps)
        if count >= self.max_requests:
            oldest = self._normalize_dt(timestamps[0])
            reset = (oldest + timedelta(seconds=self.window_seconds) - now).total_seconds()
            return False, {
                "remaining": 0,
                "reset": max(1, int(reset) + 1),
                "limit": self.max_requests,
            }

        return True, {
            "remaining": self.max_requests - count,
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def record(self, account_id: str) -> dict[str, Any]:
        """Record a request and return updated rate-limit info."""
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.window_seconds)

        with Session(self.engine) as session:
            session.execute(
                delete(RateLimitEvent).where(
                    *self._scope(account_id), RateLimitEvent.timestamp < cutoff
                )
            )
            session.add(
                RateLimitEvent(bucket=self.bucket, account_id=account_id, timestamp=now)
            )
            session.flush()

            count = session.scalar(
                select(func.count()).select_from(
                    select(RateLimitEvent.id).where(*self._scope(account_id)).subquery()
                )
            ) or 0
            session.commit()

        return {
            "remaining": max(0, self.max_requests - count),
            "reset": self.window_seconds,
            "limit": self.max_requests,
        }

    def reset(self, account_id: str | None = None) -> None:
        """Clear this bucket's state. If account_id is None, clear all."""
        with Session(self.engine) as session:
            query = delete(RateLimitEvent).where(RateLimitEvent.bucket == self.bucket)
            if account_id is not None:
                query = query.where(RateLimitEvent.account_id == account_id)
            session.execute(query)
            session.commit()


# ---------------------------------------------------------------------------
# Module-level registry
# ---------------------------------------------------------------------------
_limiters: dict[str, ContributorRateLimiter] = {}


def get_rate_limiter(bucket: str) -> ContributorRateLimiter:
    """Return the configured limiter for *bucket*."""
    try:
        return _limiters[bucket]
    except KeyError:
        raise RuntimeError(
            "Rate limiters not configured — call configure_rate_limiters() first"
        ) from None


def configure_rate_limiters(*, engine: Engine) -> None:
    """Configure every bucket's limiter against durable DB-backed storage."""
    for bucket, (max_requests, window_seconds) in DEFAULT_LIMITS.items():
        _limiters[bucket] = ContributorRateLimiter(
            bucket, max_requests, window_seconds, engine=engine
        )


# ---------------------------------------------------------------------------
# FastAPI dependencies — chain after get_current_account
# ---------------------------------------------------------------------------
def rate_limited(bucket: str):
    """Dependency factory enforcing *bucket*'s limit for the caller.

    Raises HTTP 429 when the limit is exceeded; otherwise records the
    request and returns the JWT payload.
    """

    async def _dependency(account: dict = Depends(get_current_account)) -> dict:
        limiter = get_rate_limiter(bucket)
        account_key = str(account["account_id"])

        allowed, info = await asyncio.to_thread(limiter.check, account_key)
        if not allowed:
            logger.warning(
                "Rate limit exceeded for account %s on %s: %d requests per %ds",
                account_key, bucket, limiter.max_requests, limiter.window_seconds,
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "rate_limit_exceeded",
                    "message": (
                        f"Rate limit exceeded: {limiter.max_requests} requests"
                        f" per {limiter.window_seconds // 60} minutes."
                    ),
                    "retry_after": info["reset"],
                },
                headers={"Retry-After": str(info["reset"])},
            )

        await asyncio.to_thread(limiter.record, account_key)
        return account

    return _dependency


issue_rate_limited = rate_limited(ISSUES_BUCKET)
analysis_rate_limited = rate_limited(ANALYSIS_BUCKET)
