"""
pullquest.api.routes.contributor — Language analysis & suggested issues
========================================================================

All endpoints require the contributor role.  Analysis and issue endpoints
are rate limited per account (see :mod:`pullquest.api.rate_limit`); saved
filters are not.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from pullquest.api.deps import (
    get_config,
    get_current_account,
    get_engine,
    get_issue_source,
    require_role,
)
from pullquest.api.rate_limit import analysis_rate_limited, issue_rate_limited
from pullquest.config import PullQuestConfig
from pullquest.constants import ROLE_CONTRIBUTOR
from pullquest.errors import ValidationError
from pullquest.services import account_service, contributor_service
from pullquest.services.contributor_service import IssueSource

router = APIRouter(
    prefix="/contributor",
    tags=["contributor"],
    dependencies=[Depends(require_role(ROLE_CONTRIBUTOR))],
)


class AnalysisRequest(BaseModel):
    github_username: str | None = None
    force: bool = False


class IssueFiltersUpdate(BaseModel):
    github_username: str | None = None
    languages: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    difficulty: str | None = None
    min_stars: int | None = Field(default=None, ge=0)


def _resolve_username(engine: Engine, account_id: int, username: str | None) -> str:
    """Explicit username, else the one linked to the account."""
    if username:
        return username
    account = account_service.get_account(engine, account_id)
    if not account.github_username:
        raise ValidationError(
            "github_username is required", details={"field": "github_username"}
        )
    return account.github_username


# ---------------------------------------------------------------------------
# POST /contributor/analysis
# ---------------------------------------------------------------------------
@router.post("/analysis")
def analyze_repositories(
    body: AnalysisRequest,
    caller: dict = Depends(analysis_rate_limited),
    engine: Engine = Depends(get_engine),
    source: IssueSource = Depends(get_issue_source),
):
    """Language statistics across the user's repositories (cached 24 h)."""
    username = _resolve_username(engine, caller["account_id"], body.github_username)
    snapshot = contributor_service.analyze_repositories(
        engine, source, caller["account_id"], username, body.force
    )
    return {
        "github_username": username,
        "analysis": snapshot.payload,
        "last_computed": snapshot.last_computed.isoformat(),
        "from_cache": snapshot.from_cache,
    }


# ---------------------------------------------------------------------------
# GET /contributor/analysis
# ---------------------------------------------------------------------------
@router.get("/analysis")
def repository_analysis(
    github_username: str | None = Query(None),
    caller: dict = Depends(issue_rate_limited),
    engine: Engine = Depends(get_engine),
):
    """Stored analysis summary: per-language repos and stars, totals, top repo."""
    username = _resolve_username(engine, caller["account_id"], github_username)
    return contributor_service.get_repository_analysis(
        engine, caller["account_id"], username
    )


# ---------------------------------------------------------------------------
# GET / PUT /contributor/filters
# ---------------------------------------------------------------------------
@router.get("/filters")
def get_filters(
    github_username: str | None = Query(None),
    caller: dict = Depends(get_current_account),
    engine: Engine = Depends(get_engine),
):
    username = _resolve_username(engine, caller["account_id"], github_username)
    filters = contributor_service.get_issue_filters(engine, caller["account_id"], username)
    return {"github_username": username, "filters": filters.to_dict()}


@router.put("/filters")
def update_filters(
    body: IssueFiltersUpdate,
    caller: dict = Depends(get_current_account),
    engine: Engine = Depends(get_engine),
):
    """Replace the saved suggested-issue filters."""
    username = _resolve_username(engine, caller["account_id"], body.github_username)
    filters = contributor_service.save_issue_filters(
        engine,
        caller["account_id"],
        username,
        languages=body.languages,
        labels=body.labels,
        difficulty=body.difficulty,
        min_stars=body.min_stars,
    )
    return {"github_username": username, "filters": filters.to_dict()}


# ---------------------------------------------------------------------------
# GET /contributor/suggested-issues
# ---------------------------------------------------------------------------
@router.get("/suggested-issues")
def suggested_issues(
    github_username: str | None = Query(None),
    difficulty: str | None = Query(None),
    labels: list[str] | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1, le=contributor_service.MAX_PER_PAGE),
    min_stars: int | None = Query(None, ge=0),
    refresh: bool = Query(False),
    caller: dict = Depends(issue_rate_limited),
    engine: Engine = Depends(get_engine),
    source: IssueSource = Depends(get_issue_source),
    cfg: PullQuestConfig = Depends(get_config),
):
    """Annotated issues in the user's languages (cached 4 h).

    Query parameters left unset fall back to the saved filters.
    """
    username = _resolve_username(engine, caller["account_id"], github_username)
    return contributor_service.get_suggested_issues(
        engine,
        source,
        caller["account_id"],
        username,
        difficulty=difficulty,
        labels=labels,
        page=page,
        per_page=per_page or cfg.default_per_page,
        min_stars=min_stars,
        default_min_stars=cfg.default_min_stars,
        force=refresh,
        expiration_days=cfg.issue_expiration_days,
    )


# ---------------------------------------------------------------------------
# GET /contributor/issues/{issue_id}
# ---------------------------------------------------------------------------
@router.get("/issues/{issue_id}")
def issue_details(
    issue_id: int,
    github_username: str | None = Query(None),
    caller: dict = Depends(issue_rate_limited),
    engine: Engine = Depends(get_engine),
):
    username = _resolve_username(engine, caller["account_id"], github_username)
    issue = contributor_service.get_cached_issue(
        engine, caller["account_id"], username, issue_id
    )
    return {"issue": issue}
