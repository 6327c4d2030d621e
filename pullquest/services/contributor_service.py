"""
pullquest.services.contributor_service — Contributor Workflows
===============================================================

Glue between the issue source, the pure engines, and the snapshot cache:

* :func:`analyze_repositories` — language analysis of a GitHub user's
  repositories (cached 24 h).
* :func:`get_repository_analysis` — read-only summary of the stored
  analysis: per-language repo counts, stars and forks.
* :func:`save_issue_filters` / :func:`get_issue_filters` — a contributor's
  saved suggested-issue filters.
* :func:`get_suggested_issues` — annotated issues in the user's languages
  (cached 4 h), filtered and paginated locally.
* :func:`get_cached_issue` — one issue out of the cached suggestion set.

The issue source is injected.  Its transport errors (``OSError`` and
subclasses) surface as :class:`UpstreamUnavailableError`.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pullquest.constants import DEFAULT_MIN_STARS, DIFFICULTIES, ISSUE_EXPIRATION_DAYS
from pullquest.database.engine import get_session
from pullquest.database.models import IssueFilterPreference, SnapshotKind
from pullquest.engine.languages import (
    calculate_language_stats,
    primary_language,
    repository_breakdown,
)
from pullquest.engine.reward import annotate_issues
from pullquest.errors import NotFoundError, UpstreamUnavailableError, ValidationError
from pullquest.services.snapshot_service import (
    Snapshot,
    SnapshotKey,
    get_snapshot,
    refresh_if_stale,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100


class IssueSource(Protocol):
    """What PullQuest needs from GitHub.  Fetching mechanics live elsewhere."""

    def get_user_repositories(self, username: str) -> list[dict[str, Any]]:
        """Public repositories owned by *username*.

        Dicts with ``full_name`` and, when known, ``language``,
        ``stargazers_count`` and ``forks_count``.
        """
        ...

    def get_repository_languages(self, full_name: str) -> dict[str, int]:
        """``{language: bytes}`` for one repository."""
        ...

    def search_issues(
        self,
        languages: list[str],
        *,
        min_stars: int = DEFAULT_MIN_STARS,
        per_page: int = 50,
    ) -> list[dict[str, Any]]:
        """Open issues in *languages*, as GitHub search-API dicts."""
        ...


def _require_username(username: str | None) -> str:
    if not username or not username.strip():
        raise ValidationError(
            "github_username is required", details={"field": "github_username"}
        )
    return username.strip()


def _require_difficulty(difficulty: str | None) -> None:
    if difficulty is not None and difficulty not in DIFFICULTIES:
        raise ValidationError(
            f"Unknown difficulty {difficulty!r}",
            details={"allowed": list(DIFFICULTIES)},
        )


def _require_min_stars(min_stars: int | None) -> None:
    if min_stars is not None and (isinstance(min_stars, bool) or min_stars < 0):
        raise ValidationError("min_stars must be >= 0", details={"field": "min_stars"})


def _clean_names(values: Iterable[str] | None) -> list[str]:
    """Strip, drop blanks and de-duplicate, keeping the first occurrence."""
    seen: list[str] = []
    for value in values or ():
        name = str(value).strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def _call_source(what: str, func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except OSError as exc:
        logger.warning("Issue source failed during %s: %s", what, exc)
        raise UpstreamUnavailableError(
            f"Issue source unavailable while {what}",
            details={"reason": str(exc)},
        ) from exc


def _analysis_key(account_id: int, username: str) -> SnapshotKey:
    return SnapshotKey(account_id, username, SnapshotKind.LANGUAGE_ANALYSIS)


def _analysis_not_found(username: str) -> NotFoundError:
    return NotFoundError(
        "No language analysis found. Analyze repositories first.",
        code="analysis_not_found",
        details={"github_username": username},
    )


# ---------------------------------------------------------------------------
# Language analysis
# ---------------------------------------------------------------------------
def analyze_repositories(
    engine: Engine,
    source: IssueSource,
    account_id: int,
    username: str,
    force: bool = False,
    *,
    now: datetime | None = None,
) -> Snapshot:
    """Return the user's language analysis, recomputing when stale.

    Raises NotFoundError(repositories_not_found) if the user has no
    repositories; the stored analysis is left as it was.
    """
    username = _require_username(username)

    def recompute() -> dict[str, Any]:
        repos = _call_source(
            "listing repositories", source.get_user_repositories, username
        )
        if not repos:
            raise NotFoundError(
                f"No repositories found for {username}",
                code="repositories_not_found",
                details={"github_username": username},
            )

        repositories: list[dict[str, Any]] = []
        languages: list[dict[str, int]] = []
        for repo in repos:
            name = repo.get("full_name") or repo.get("name")
            if not name:
                continue
            repo_languages = _call_source(
                "reading repository languages",
                source.get_repository_languages,
                name,
            )
            languages.append(repo_languages)
            repositories.append({
                "full_name": name,
                "language": primary_language(repo.get("language"), repo_languages),
                "stargazers_count": int(repo.get("stargazers_count") or 0),
                "forks_count": int(repo.get("forks_count") or 0),
            })

        stats = calculate_language_stats(languages)
        stats["repositories"] = repositories
        logger.info(
            "Analyzed %d repositories for %s: top languages %s",
            len(repositories), username, stats["top_languages"],
        )
        return stats

    return refresh_if_stale(
        engine, _analysis_key(account_id, username), None, recompute, force, now=now
    )


def get_repository_analysis(
    engine: Engine,
    account_id: int,
    username: str,
) -> dict[str, Any]:
    """Summary of the stored analysis, regardless of age.  Never recomputes."""
    username = _require_username(username)
    snapshot = get_snapshot(engine, _analysis_key(account_id, username))
    if snapshot is None:
        raise _analysis_not_found(username)

    payload = snapshot.payload
    repositories = [
        repo if isinstance(repo, dict) else {"full_name": repo}
        for repo in payload.get("repositories", [])
    ]
    top_languages = payload.get("top_languages", [])
    return {
        "github_username": username,
        "total_repositories": len(repositories),
        "languages": payload.get("languages", []),
        "top_languages": top_languages,
        "last_analyzed": snapshot.last_computed.isoformat(),
        "repository_breakdown": repository_breakdown(repositories, top_languages),
    }


# ---------------------------------------------------------------------------
# Saved filters
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class IssueFilters:
    languages: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    difficulty: str | None = None
    min_stars: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "languages": list(self.languages),
            "labels": list(self.labels),
            "difficulty": self.difficulty,
            "min_stars": self.min_stars,
        }


def _filter_row(
    session: Session, account_id: int, username: str
) -> IssueFilterPreference | None:
    return session.scalar(
        select(IssueFilterPreference).where(
            IssueFilterPreference.account_id == account_id,
            IssueFilterPreference.github_username == username,
        )
    )


def _to_filters(row: IssueFilterPreference | None) -> IssueFilters:
    if row is None:
        return IssueFilters()
    return IssueFilters(
        languages=tuple(row.languages or ()),
        labels=tuple(row.labels or ()),
        difficulty=row.difficulty,
        min_stars=row.min_stars,
    )


def get_issue_filters(engine: Engine, account_id: int, username: str) -> IssueFilters:
    """Saved filters, or empty filters when none were saved."""
    username = _require_username(username)
    with get_session(engine) as session:
        return _to_filters(_filter_row(session, account_id, username))


def save_issue_filters(
    engine: Engine,
    account_id: int,
    username: str,
    *,
    languages: Iterable[str] | None = None,
    labels: Iterable[str] | None = None,
    difficulty: str | None = None,
    min_stars: int | None = None,
) -> IssueFilters:
    """Replace the saved filters for ``(account, username)``.

    Empty ``languages`` means "search the analysis' top languages"; a None
    ``min_stars`` means "use the configured default".
    """
    username = _require_username(username)
    _require_difficulty(difficulty)
    _require_min_stars(min_stars)
    values = {
        "languages": _clean_names(languages),
        "labels": _clean_names(labels),
        "difficulty": difficulty,
        "min_stars": min_stars,
    }

    with get_session(engine) as session:
        row = _filter_row(session, account_id, username)
        if row is None:
            try:
                with session.begin_nested():
                    row = IssueFilterPreference(
                        account_id=account_id, github_username=username, **values
                    )
                    session.add(row)
            except IntegrityError:
                row = _filter_row(session, account_id, username)
                if row is None:
                    raise
        for name, value in values.items():
            setattr(row, name, value)
        saved = _to_filters(row)

    logger.info("Saved issue filters for account %d (%s): %s", account_id, username, saved)
    return saved


# ---------------------------------------------------------------------------
# Suggested issues
# ---------------------------------------------------------------------------
def filter_issues(
    issues: Iterable[dict[str, Any]],
    *,
    difficulty: str | None = None,
    labels: Iterable[str] | None = None,
) -> list[dict[str, Any]]:
    """Keep issues matching *difficulty* and any of *labels* (substring)."""
    wanted = [label.lower() for label in (labels or ()) if label]
    result = []
    for issue in issues:
        if difficulty and issue.get("difficulty") != difficulty:
            continue
        if wanted:
            names = [str(name).lower() for name in issue.get("labels") or []]
            if not any(w in name for name in names for w in wanted):
                continue
        result.append(issue)
    return result


def get_suggested_issues(
    engine: Engine,
    source: IssueSource,
    account_id: int,
    username: str,
    *,
    difficulty: str | None = None,
    labels: list[str] | None = None,
    page: int = 1,
    per_page: int = 20,
    min_stars: int | None = None,
    default_min_stars: int = DEFAULT_MIN_STARS,
    force: bool = False,
    expiration_days: int = ISSUE_EXPIRATION_DAYS,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """One page of annotated issues in the user's languages.

    Arguments left unset fall back to the saved filters, then to the
    analysis' top languages and *default_min_stars*.  A cached set searched
    with other languages or another star floor is recomputed.

    Raises NotFoundError(analysis_not_found) until the user's repositories
    have been analyzed.
    """
    username = _require_username(username)
    _require_difficulty(difficulty)
    _require_min_stars(min_stars)
    if page < 1:
        raise ValidationError("page must be >= 1", details={"field": "page"})
    if not 1 <= per_page <= MAX_PER_PAGE:
        raise ValidationError(
            f"per_page must be between 1 and {MAX_PER_PAGE}",
            details={"field": "per_page"},
        )

    analysis = get_snapshot(engine, _analysis_key(account_id, username))
    top_languages = (analysis.payload.get("top_languages") if analysis else None) or []
    if not top_languages:
        raise _analysis_not_found(username)

    saved = get_issue_filters(engine, account_id, username)
    if difficulty is None:
        difficulty = saved.difficulty
    if not labels:
        labels = list(saved.labels)
    if min_stars is None:
        min_stars = saved.min_stars if saved.min_stars is not None else default_min_stars
    search_languages = list(saved.languages) or list(top_languages)

    def recompute() -> dict[str, Any]:
        raws = _call_source(
            "searching issues",
            source.search_issues,
            search_languages,
            min_stars=min_stars,
        )
        annotated = annotate_issues(
            raws, now=now, rng=rng, expiration_days=expiration_days
        )
        logger.info(
            "Annotated %d suggested issues for %s (%s, >= %d stars)",
            len(annotated), username, ", ".join(search_languages), min_stars,
        )
        return {
            "issues": [issue.to_dict() for issue in annotated],
            "top_languages": top_languages,
            "search_languages": search_languages,
            "min_stars": min_stars,
        }

    key = SnapshotKey(account_id, username, SnapshotKind.SUGGESTED_ISSUES)
    if not force:
        cached = get_snapshot(engine, key)
        if cached is not None and (
            cached.payload.get("min_stars") != min_stars
            or cached.payload.get("search_languages") != search_languages
        ):
            logger.info(
                "Suggested issues for %s were searched with other parameters; recomputing",
                username,
            )
            force = True
    snapshot = refresh_if_stale(engine, key, None, recompute, force, now=now)

    filtered = filter_issues(
        snapshot.payload.get("issues", []), difficulty=difficulty, labels=labels
    )
    start = (page - 1) * per_page

    return {
        "issues": filtered[start:start + per_page],
        "total_issues": len(filtered),
        "page": page,
        "per_page": per_page,
        "total_pages": math.ceil(len(filtered) / per_page),
        "top_languages": snapshot.payload.get("top_languages", top_languages),
        "filters": {
            "languages": search_languages,
            "labels": list(labels or []),
            "difficulty": difficulty,
            "min_stars": min_stars,
        },
        "last_computed": snapshot.last_computed.isoformat(),
        "from_cache": snapshot.from_cache,
    }


def get_cached_issue(
    engine: Engine,
    account_id: int,
    username: str,
    issue_id: int,
) -> dict[str, Any]:
    """Issue details from the cached suggestion set, regardless of age."""
    username = _require_username(username)
    snapshot = get_snapshot(
        engine, SnapshotKey(account_id, username, SnapshotKind.SUGGESTED_ISSUES)
    )
    if snapshot is not None:
        for issue in snapshot.payload.get("issues", []):
            if issue.get("id") == issue_id:
                return issue

    raise NotFoundError(
        f"Issue {issue_id} not found in suggestions",
        code="issue_not_found",
        details={"issue_id": issue_id},
    )
