"""
pullquest.services.maintainer_service — Published Issues
=========================================================

Maintainers publish GitHub issues to PullQuest.  The issue's difficulty,
bounty, XP reward and staking requirement are always computed here with the
reward engine; a publisher cannot set them.  Published rewards are what
:func:`pullquest.services.stake_service.create_stake` pays out for stakes on
that issue.

Republishing the same GitHub issue id refreshes its metadata and rewards but
keeps the original expiration date.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from pullquest.constants import ISSUE_EXPIRATION_DAYS
from pullquest.database.engine import get_session
from pullquest.database.models import PublishedIssue
from pullquest.engine.reward import RawIssue, annotate_issue, seeded_rng
from pullquest.errors import NotFoundError, ValidationError
from pullquest.services.account_service import require_account

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

ISSUE_STATES = frozenset({"open", "closed"})


def _parse_issue(payload: Any, repository: dict[str, Any] | None) -> RawIssue:
    if not isinstance(payload, dict):
        raise ValidationError("issue must be an object", details={"field": "issue"})
    try:
        issue_id = int(payload["id"])
        number = int(payload["number"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError(
            "issue.id and issue.number are required integers",
            details={"field": "issue"},
        ) from None
    if issue_id < 1 or number < 1:
        raise ValidationError(
            "issue.id and issue.number must be positive", details={"field": "issue"}
        )

    if repository and not payload.get("repository"):
        payload = {**payload, "repository": repository}
    raw = RawIssue.from_github(payload)
    if not raw.repository_full_name:
        raise ValidationError(
            "repository.full_name is required", details={"field": "repository"}
        )
    return raw


def publish_issue(
    engine: Engine,
    maintainer_id: int,
    issue: dict[str, Any],
    repository: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
    expiration_days: int = ISSUE_EXPIRATION_DAYS,
) -> PublishedIssue:
    """Insert or refresh a published issue from a GitHub issue payload.

    *repository* supplies ``full_name`` / ``stargazers_count`` when the
    issue payload does not embed it.  Raises ValidationError for a malformed
    payload or an issue already published by another maintainer, and
    NotFoundError(account_not_found) for an unknown maintainer.
    """
    raw = _parse_issue(issue, repository)
    state = str(issue.get("state") or "open")
    if state not in ISSUE_STATES:
        raise ValidationError(
            f"Unknown issue state {state!r}", details={"allowed": sorted(ISSUE_STATES)}
        )

    annotated = annotate_issue(
        raw, now=now, rng=seeded_rng(raw.id), expiration_days=expiration_days
    )
    reward = annotated.reward

    with get_session(engine) as session:
        require_account(session, maintainer_id)

        row = session.get(PublishedIssue, raw.id, with_for_update=True)
        if row is None:
            row = PublishedIssue(
                id=raw.id,
                maintainer_account_id=maintainer_id,
                expiration_date=annotated.expiration_date,
            )
            session.add(row)
        elif row.maintainer_account_id != maintainer_id:
            raise ValidationError(
                f"Issue {raw.id} was published by another maintainer",
                code="issue_already_published",
                details={"issue_id": raw.id},
            )

        row.number = raw.number
        row.title = raw.title[:300]
        row.html_url = raw.html_url
        row.repository = raw.repository_full_name
        row.repository_stars = raw.repository_stars
        row.labels = list(raw.labels)
        row.state = state
        row.difficulty = reward.difficulty
        row.estimated_hours = reward.estimated_hours
        row.bounty = reward.bounty
        row.xp_reward = reward.xp_reward
        row.staking_required = reward.staking_required
        session.flush()
        session.refresh(row)

    logger.info(
        "Maintainer %d published issue %d (%s): %s, bounty %d, staking %d",
        maintainer_id, row.id, row.repository, row.difficulty,
        row.bounty, row.staking_required,
    )
    return row


def get_published_issue(engine: Engine, issue_id: int) -> PublishedIssue:
    with get_session(engine) as session:
        row = session.get(PublishedIssue, issue_id)
        if row is None:
            raise NotFoundError(
                f"Issue {issue_id} has not been published",
                code="issue_not_found",
                details={"issue_id": issue_id},
            )
        return row


def list_published_issues(
    engine: Engine,
    *,
    repository: str | None = None,
    state: str | None = "open",
) -> list[PublishedIssue]:
    """Published issues, newest first."""
    if state is not None and state not in ISSUE_STATES:
        raise ValidationError(
            f"Unknown issue state {state!r}", details={"allowed": sorted(ISSUE_STATES)}
        )
    query = select(PublishedIssue)
    if repository:
        query = query.where(PublishedIssue.repository == repository)
    if state is not None:
        query = query.where(PublishedIssue.state == state)
    query = query.order_by(PublishedIssue.created_at.desc(), PublishedIssue.id.desc())

    with get_session(engine) as session:
        return list(session.scalars(query).all())
