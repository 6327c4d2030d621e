"""
pullquest.services.snapshot_service — Cached Snapshot Storage
==============================================================

Read-through cache for externally-derived data (language analysis,
suggested issues), one row per ``(account_id, github_username, kind)``.

:func:`refresh_if_stale` serves the stored payload while it is fresh and
otherwise recomputes it and replaces the row wholesale.  The recompute
callable runs *before* any write, so a failing recompute leaves the stored
snapshot untouched.

Two racing refreshers both recompute; the last writer wins.  A racing
first insert trips the unique constraint, which is caught and turned into
an update.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pullquest.database.engine import get_session
from pullquest.database.models import CachedSnapshot, SnapshotKind
from pullquest.engine.freshness import as_utc, is_fresh, ttl_for

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SnapshotKey:
    account_id: int
    github_username: str
    kind: SnapshotKind


@dataclass(frozen=True, slots=True)
class Snapshot:
    key: SnapshotKey
    payload: dict[str, Any]
    last_computed: datetime
    from_cache: bool = False


def _select_row(session: Session, key: SnapshotKey) -> CachedSnapshot | None:
    return session.scalar(
        select(CachedSnapshot).where(
            CachedSnapshot.account_id == key.account_id,
            CachedSnapshot.github_username == key.github_username,
            CachedSnapshot.kind == key.kind.value,
        )
    )


def _to_snapshot(key: SnapshotKey, row: CachedSnapshot, *, from_cache: bool) -> Snapshot:
    return Snapshot(
        key=key,
        payload=row.payload,
        last_computed=as_utc(row.last_computed),
        from_cache=from_cache,
    )


def get_snapshot(engine: Engine, key: SnapshotKey) -> Snapshot | None:
    """Return the stored snapshot regardless of age, or None."""
    with get_session(engine) as session:
        row = _select_row(session, key)
        if row is None:
            return None
        return _to_snapshot(key, row, from_cache=True)


def store_snapshot(
    engine: Engine,
    key: SnapshotKey,
    payload: dict[str, Any],
    *,
    now: datetime | None = None,
) -> Snapshot:
    """Upsert *payload* for *key* with ``last_computed = now``."""
    computed_at = now or datetime.now(UTC)

    with get_session(engine) as session:
        row = _select_row(session, key)
        if row is None:
            try:
                with session.begin_nested():
                    row = CachedSnapshot(
                        account_id=key.account_id,
                        github_username=key.github_username,
                        kind=key.kind.value,
                        payload=payload,
                        last_computed=computed_at,
                    )
                    session.add(row)
            except IntegrityError:
                # Another refresher inserted first; overwrite its row.
                logger.debug("Snapshot insert raced for %s; updating instead", key)
                row = _select_row(session, key)
                if row is None:
                    raise
                row.payload = payload
                row.last_computed = computed_at
        else:
            row.payload = payload
            row.last_computed = computed_at

        return _to_snapshot(key, row, from_cache=False)


def refresh_if_stale(
    engine: Engine,
    key: SnapshotKey,
    ttl: timedelta | None,
    recompute: Callable[[], dict[str, Any]],
    force: bool = False,
    *,
    now: datetime | None = None,
) -> Snapshot:
    """Serve a fresh stored snapshot, else recompute and store.

    *ttl* defaults to the kind's TTL when None.  Exceptions from
    *recompute* propagate unchanged.
    """
    ttl = ttl if ttl is not None else ttl_for(key.kind)

    if not force:
        existing = get_snapshot(engine, key)
        if existing is not None and is_fresh(existing.last_computed, ttl, now):
            logger.debug("Snapshot hit for %s", key)
            return existing

    logger.info("Recomputing %s snapshot for account %d", key.kind, key.account_id)
    payload = recompute()
    return store_snapshot(engine, key, payload, now=now)
