"""
pullquest.engine.freshness — Snapshot TTL Policy
=================================================

Decides whether a cached snapshot can be served as-is.  Storage lives in
:mod:`pullquest.services.snapshot_service`; this module only does time math.

SQLite hands back naive datetimes, so naive values are treated as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pullquest.constants import LANGUAGE_ANALYSIS_TTL, SUGGESTED_ISSUES_TTL
from pullquest.database.models import SnapshotKind

SNAPSHOT_TTLS: dict[str, timedelta] = {
    SnapshotKind.LANGUAGE_ANALYSIS: LANGUAGE_ANALYSIS_TTL,
    SnapshotKind.SUGGESTED_ISSUES: SUGGESTED_ISSUES_TTL,
}


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; convert an aware one."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_fresh(
    last_computed: datetime | None,
    ttl: timedelta,
    now: datetime | None = None,
) -> bool:
    """True iff ``now - last_computed < ttl``.  A missing timestamp is stale."""
    if last_computed is None:
        return False
    current = as_utc(now) if now is not None else datetime.now(UTC)
    return current - as_utc(last_computed) < ttl


def ttl_for(kind: str) -> timedelta:
    """TTL for a snapshot kind (KeyError on an unknown kind)."""
    return SNAPSHOT_TTLS[SnapshotKind(kind)]
