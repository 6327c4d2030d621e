"""
pullquest.api.routes.issues — Maintainer-published issues
==========================================================

Maintainers publish GitHub issues; any signed-in account can browse them.
Rewards are computed by the server from the issue's metadata.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from pullquest.api.deps import get_config, get_current_account, get_engine, require_role
from pullquest.config import PullQuestConfig
from pullquest.constants import ROLE_MAINTAINER
from pullquest.database.models import PublishedIssue
from pullquest.services import maintainer_service

router = APIRouter(prefix="/issues", tags=["issues"])


class PublishIssueRequest(BaseModel):
    """A GitHub issue payload, plus its repository when not embedded."""

    issue: dict[str, Any]
    repository: dict[str, Any] | None = None


def published_issue_dict(issue: PublishedIssue) -> dict:
    return {
        "id": issue.id,
        "number": issue.number,
        "title": issue.title,
        "html_url": issue.html_url,
        "repository": issue.repository,
        "repository_stars": issue.repository_stars,
        "labels": list(issue.labels or []),
        "state": issue.state,
        "difficulty": issue.difficulty,
        "estimated_hours": issue.estimated_hours,
        "bounty": issue.bounty,
        "xp_reward": issue.xp_reward,
        "staking_required": issue.staking_required,
        "expiration_date": issue.expiration_date.isoformat(),
        "maintainer_account_id": issue.maintainer_account_id,
        "created_at": issue.created_at.isoformat() if issue.created_at else None,
    }


@router.post("", status_code=201)
def publish_issue(
    body: PublishIssueRequest,
    caller: dict = Depends(require_role(ROLE_MAINTAINER)),
    engine: Engine = Depends(get_engine),
    cfg: PullQuestConfig = Depends(get_config),
):
    """Publish (or refresh) an issue with server-computed rewards."""
    issue = maintainer_service.publish_issue(
        engine,
        caller["account_id"],
        body.issue,
        body.repository,
        expiration_days=cfg.issue_expiration_days,
    )
    return {"issue": published_issue_dict(issue)}


@router.get("")
def list_issues(
    repository: str | None = Query(None),
    state: str | None = Query("open"),
    caller: dict = Depends(get_current_account),
    engine: Engine = Depends(get_engine),
):
    issues = maintainer_service.list_published_issues(
        engine, repository=repository, state=state
    )
    return {"issues": [published_issue_dict(i) for i in issues], "total": len(issues)}


@router.get("/{issue_id}")
def get_issue(
    issue_id: int,
    caller: dict = Depends(get_current_account),
    engine: Engine = Depends(get_engine),
):
    issue = maintainer_service.get_published_issue(engine, issue_id)
    return {"issue": published_issue_dict(issue)}
