"""
pullquest.api.routes.account — Caller's account & rank progress
================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from pullquest.api.deps import get_current_account, get_engine
from pullquest.database.models import Account
from pullquest.engine.rank import rank_progress
from pullquest.services import account_service

router = APIRouter(tags=["account"])


def account_dict(account: Account) -> dict:
    return {
        "id": account.id,
        "github_username": account.github_username,
        "role": account.role,
        "coins": account.coins,
        "xp": account.xp,
        "rank": account.rank,
        "monthly_coins_last_refill": (
            account.monthly_coins_last_refill.isoformat()
            if account.monthly_coins_last_refill else None
        ),
        "created_at": account.created_at.isoformat() if account.created_at else None,
    }


@router.get("/me")
def get_me(
    caller: dict = Depends(get_current_account),
    engine: Engine = Depends(get_engine),
):
    """The caller's balances plus progress toward the next rank."""
    account = account_service.get_account(engine, caller["account_id"])
    return {
        "account": account_dict(account),
        "progress": rank_progress(account.xp),
    }
