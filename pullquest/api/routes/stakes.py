"""
pullquest.api.routes.stakes — Stake creation & maintainer settlement
=====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from pullquest.api.deps import get_engine, require_role
from pullquest.constants import ROLE_CONTRIBUTOR, ROLE_MAINTAINER
from pullquest.database.models import Stake
from pullquest.services import stake_service

router = APIRouter(prefix="/stakes", tags=["stakes"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StakeCreate(BaseModel):
    """Rewards are not part of the request; the server resolves them."""

    issue_id: int
    repository: str = Field(min_length=1)
    amount: int = Field(ge=1)
    pr_url: str = Field(min_length=1)


class StakeStatusUpdate(BaseModel):
    status: str
    xp_earned: int = Field(default=0, ge=0)
    coins_earned: int = Field(default=0, ge=0)


def stake_dict(stake: Stake) -> dict:
    return {
        "id": stake.id,
        "account_id": stake.account_id,
        "issue_id": stake.issue_id,
        "repository": stake.repository,
        "amount": stake.amount,
        "pr_url": stake.pr_url,
        "status": stake.status,
        "bounty": stake.bounty,
        "xp_reward": stake.xp_reward,
        "xp_earned": stake.xp_earned,
        "coins_earned": stake.coins_earned,
        "settled_at": stake.settled_at.isoformat() if stake.settled_at else None,
        "created_at": stake.created_at.isoformat() if stake.created_at else None,
    }


# ---------------------------------------------------------------------------
# Contributor endpoints
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_stake(
    body: StakeCreate,
    caller: dict = Depends(require_role(ROLE_CONTRIBUTOR)),
    engine: Engine = Depends(get_engine),
):
    stake = stake_service.create_stake(
        engine,
        caller["account_id"],
        body.issue_id,
        body.repository,
        body.amount,
        body.pr_url,
    )
    return {"stake": stake_dict(stake)}


@router.get("")
def list_stakes(
    status: str | None = Query(None),
    caller: dict = Depends(require_role(ROLE_CONTRIBUTOR)),
    engine: Engine = Depends(get_engine),
):
    stakes = stake_service.list_stakes(engine, caller["account_id"], status)
    return {"stakes": [stake_dict(s) for s in stakes], "total": len(stakes)}


# ---------------------------------------------------------------------------
# Maintainer endpoint
# ---------------------------------------------------------------------------
@router.patch("/{stake_id}/status")
def update_stake_status(
    stake_id: int,
    body: StakeStatusUpdate,
    caller: dict = Depends(require_role(ROLE_MAINTAINER)),
    engine: Engine = Depends(get_engine),
):
    stake = stake_service.settle_explicit(
        engine, stake_id, body.status, body.xp_earned, body.coins_earned
    )
    return {"stake": stake_dict(stake)}
