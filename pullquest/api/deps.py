"""
pullquest.api.deps — FastAPI dependency injection
==================================================

Bearer tokens are HS256 JWTs carrying ``sub`` (account id) and ``role``.
PullQuest only verifies them; issuing tokens belongs to the auth service.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from pullquest.config import PullQuestConfig, load_config
from pullquest.constants import ROLES
from pullquest.database.engine import create_db_engine
from pullquest.errors import UpstreamUnavailableError
from pullquest.services.contributor_service import IssueSource

_WEAK_SECRETS = frozenset({
    "pullquest-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> PullQuestConfig:
    if os.path.exists("config.yaml"):
        return load_config()
    return PullQuestConfig()


def get_webhook_secret() -> str | None:
    """``GITHUB_WEBHOOK_SECRET`` or None when signature checks are off."""
    return os.getenv("GITHUB_WEBHOOK_SECRET") or None


# ---------------------------------------------------------------------------
# Issue source — wired by the deployment, overridable in tests
# ---------------------------------------------------------------------------
_issue_source: IssueSource | None = None


def configure_issue_source(source: IssueSource | None) -> None:
    global _issue_source
    _issue_source = source


def get_issue_source() -> IssueSource:
    if _issue_source is None:
        raise UpstreamUnavailableError(
            "No issue source configured", code="issue_source_unconfigured"
        )
    return _issue_source


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
def get_current_account(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate the JWT and return its payload with ``account_id`` as int.

    Raises 401 if the token is missing or invalid.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")

    try:
        payload["account_id"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token subject")
    if payload.get("role") not in ROLES:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token role")
    return payload


def require_role(*roles: str):
    """Dependency factory: 403 unless the caller's role is in *roles*."""

    def _check(account: dict = Depends(get_current_account)) -> dict:
        if account["role"] not in roles:
            raise HTTPException(
                status.HTTP_403_FORBIDDEN,
                f"Requires role: {', '.join(roles)}",
            )
        return account

    return _check
