"""
pullquest.engine.reward — Issue Reward Calculation Pipeline
============================================================

Pure calculation pipeline.  No GitHub I/O, no DB I/O inside the engine.

Pipeline stages:
  RawIssue → Difficulty → Bounty → XP → Staking requirement → Hours → AnnotatedIssue

Two deliberate properties:

* Repository popularity scales the bounty upward without bound
  (``1 + stars / 1000``).  Popular projects pay more; that is the incentive.
* Estimated hours are *sampled* inside a band, not computed.  The noise is
  intentional.  Pass ``rng=seeded_rng(issue.id)`` when a reproducible value
  is needed.

The calculator never raises: missing labels, body, comment counts or star
counts fall back to neutral defaults.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from pullquest.constants import (
    ADVANCED,
    ADVANCED_LABELS,
    BASE_BOUNTY,
    BEGINNER,
    BEGINNER_LABELS,
    DIFFICULTY_MULTIPLIER,
    FALLBACK_HOUR_BAND,
    HOUR_BANDS,
    INTERMEDIATE,
    ISSUE_EXPIRATION_DAYS,
    STAKE_RATIO_DENOMINATOR,
    STAKE_RATIO_NUMERATOR,
    STAR_SCALE,
    XP_REWARD,
)

logger = logging.getLogger(__name__)

__all__ = [
    "AnnotatedIssue",
    "RawIssue",
    "RewardEstimate",
    "annotate_issue",
    "annotate_issues",
    "calculate_bounty",
    "calculate_staking_required",
    "calculate_xp_reward",
    "classify_difficulty",
    "estimate_hours",
    "estimate_rewards",
    "hour_band",
    "seeded_rng",
]


# ---------------------------------------------------------------------------
# RawIssue — the fields the calculator reads from the issue source
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RawIssue:
    """Normalized issue as delivered by the issue source."""

    id: int
    number: int = 0
    title: str = ""
    body: str | None = None
    html_url: str = ""
    labels: tuple[str, ...] = ()
    comments_count: int = 0
    repository_full_name: str = ""
    repository_stars: int = 0
    repository_language: str | None = None
    user_login: str | None = None

    @classmethod
    def from_github(cls, payload: dict[str, Any]) -> RawIssue:
        """Build a RawIssue from a GitHub search-API issue dict.

        Accepts both the raw snake_case API shape and the already-enriched
        shape where ``repository`` is a nested dict.
        """
        labels: list[str] = []
        for label in payload.get("labels") or []:
            name = label.get("name") if isinstance(label, dict) else label
            if name:
                labels.append(str(name))

        repo = payload.get("repository") or {}
        full_name = repo.get("full_name") or repo.get("fullName") or ""
        if not full_name and payload.get("repository_url"):
            full_name = "/".join(payload["repository_url"].rstrip("/").split("/")[-2:])

        comments = payload.get("comments")
        if comments is None:
            comments = payload.get("comments_count", 0)

        user = payload.get("user") or {}

        return cls(
            id=int(payload["id"]),
            number=int(payload.get("number") or 0),
            title=payload.get("title") or "",
            body=payload.get("body"),
            html_url=payload.get("html_url") or payload.get("htmlUrl") or "",
            labels=tuple(labels),
            comments_count=int(comments or 0),
            repository_full_name=full_name,
            repository_stars=int(
                repo.get("stargazers_count") or repo.get("stargazersCount") or 0
            ),
            repository_language=repo.get("language"),
            user_login=user.get("login"),
        )


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardEstimate:
    """The reward tuple derived from an issue's metadata."""

    difficulty: str
    estimated_hours: float
    bounty: int
    xp_reward: int
    staking_required: int


@dataclass(frozen=True, slots=True)
class AnnotatedIssue:
    """A RawIssue enriched with its reward estimate and expiry."""

    issue: RawIssue
    reward: RewardEstimate
    expiration_date: datetime
    labels: list[str] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.issue.id

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable form stored inside suggested-issue snapshots."""
        data = asdict(self.issue)
        data["labels"] = list(self.issue.labels)
        data.update(asdict(self.reward))
        data["expiration_date"] = self.expiration_date.isoformat()
        return data


# ---------------------------------------------------------------------------
# Stage 1: Difficulty classification
# ---------------------------------------------------------------------------
def classify_difficulty(labels: Iterable[str | None] | None) -> str:
    """Classify by case-insensitive substring match on label names.

    A beginner match wins over an advanced match; no match is intermediate.
    """
    names = [name.lower() for name in (labels or ()) if name]

    if any(marker in name for name in names for marker in BEGINNER_LABELS):
        return BEGINNER
    if any(marker in name for name in names for marker in ADVANCED_LABELS):
        return ADVANCED
    return INTERMEDIATE


# ---------------------------------------------------------------------------
# Stage 2: Coins and XP
# ---------------------------------------------------------------------------
def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_bounty(difficulty: str, repo_stars: int | None = 0) -> int:
    """``round(10 × multiplier × (1 + stars / 1000))``, rounding half up."""
    multiplier = DIFFICULTY_MULTIPLIER.get(difficulty, DIFFICULTY_MULTIPLIER[INTERMEDIATE])
    stars = max(repo_stars or 0, 0)
    return _round_half_up(BASE_BOUNTY * multiplier * (1 + stars / STAR_SCALE))


def calculate_xp_reward(difficulty: str) -> int:
    return XP_REWARD.get(difficulty, XP_REWARD[INTERMEDIATE])


def calculate_staking_required(bounty: int) -> int:
    """``floor(bounty × 0.3)`` in integer arithmetic (no float drift)."""
    return (bounty * STAKE_RATIO_NUMERATOR) // STAKE_RATIO_DENOMINATOR


# ---------------------------------------------------------------------------
# Stage 3: Effort estimation (intentionally noisy)
# ---------------------------------------------------------------------------
def hour_band(body_length: int, comments_count: int) -> tuple[float, float]:
    """Return the ``[low, high)`` hour band for an issue's size."""
    for max_body, max_comments, low, high in HOUR_BANDS:
        if body_length < max_body and comments_count < max_comments:
            return low, high
    return FALLBACK_HOUR_BAND


def estimate_hours(
    body_length: int | None,
    comments_count: int | None,
    rng: random.Random | None = None,
) -> float:
    """Sample an hour estimate uniformly inside the issue's band."""
    low, high = hour_band(max(body_length or 0, 0), max(comments_count or 0, 0))
    sample = (rng or random).random()
    return low + sample * (high - low)


def seeded_rng(issue_id: int) -> random.Random:
    """A generator seeded from the issue id, for reproducible estimates."""
    return random.Random(issue_id)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------
def estimate_rewards(
    labels: Iterable[str | None] | None = None,
    body_length: int | None = 0,
    comments_count: int | None = 0,
    repo_stars: int | None = 0,
    *,
    rng: random.Random | None = None,
) -> RewardEstimate:
    """Derive ``{difficulty, estimated_hours, bounty, xp_reward, staking_required}``."""
    difficulty = classify_difficulty(labels)
    bounty = calculate_bounty(difficulty, repo_stars)
    return RewardEstimate(
        difficulty=difficulty,
        estimated_hours=estimate_hours(body_length, comments_count, rng),
        bounty=bounty,
        xp_reward=calculate_xp_reward(difficulty),
        staking_required=calculate_staking_required(bounty),
    )


def annotate_issue(
    raw: RawIssue | dict[str, Any],
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    expiration_days: int = ISSUE_EXPIRATION_DAYS,
) -> AnnotatedIssue:
    """Run the full reward pipeline on one issue."""
    issue = raw if isinstance(raw, RawIssue) else RawIssue.from_github(raw)
    reward = estimate_rewards(
        issue.labels,
        len(issue.body or ""),
        issue.comments_count,
        issue.repository_stars,
        rng=rng,
    )
    annotated_at = now or datetime.now(UTC)
    return AnnotatedIssue(
        issue=issue,
        reward=reward,
        expiration_date=annotated_at + timedelta(days=expiration_days),
        labels=list(issue.labels),
    )


def annotate_issues(
    raws: Iterable[RawIssue | dict[str, Any]],
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    expiration_days: int = ISSUE_EXPIRATION_DAYS,
) -> list[AnnotatedIssue]:
    """Annotate a batch, skipping payloads without an ``id``."""
    annotated: list[AnnotatedIssue] = []
    for raw in raws:
        if isinstance(raw, dict) and raw.get("id") is None:
            logger.warning("Skipping issue payload without id: %r", raw.get("html_url"))
            continue
        annotated.append(
            annotate_issue(raw, now=now, rng=rng, expiration_days=expiration_days)
        )
    return annotated
