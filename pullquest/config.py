"""
pullquest.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for economy tunables and scheduling knobs.  Secrets
(``DATABASE_URL``, ``JWT_SECRET``, ``GITHUB_WEBHOOK_SECRET``) never live here;
they come from the environment (``.env`` via python-dotenv).

Every key is optional and falls back to the documented economy defaults, so an
empty file is a valid configuration.

Usage::

    from pullquest.config import load_config

    cfg = load_config()             # reads ./config.yaml by default
    print(cfg.monthly_refill_coins) # 100
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from pullquest.constants import (
    DEFAULT_MIN_STARS,
    ISSUE_EXPIRATION_DAYS,
    MONTHLY_REFILL_COINS,
    STARTING_COINS,
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PullQuestConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Economy
    starting_coins: int = STARTING_COINS
    monthly_refill_coins: int = MONTHLY_REFILL_COINS
    issue_expiration_days: int = ISSUE_EXPIRATION_DAYS

    # Scheduling
    refill_enabled: bool = True
    refill_check_interval_seconds: int = 3600

    # Suggested-issue search defaults
    default_min_stars: int = DEFAULT_MIN_STARS
    default_per_page: int = 20


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PullQuestConfig:
    """Read *path* and return a :class:`PullQuestConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a value cannot be coerced to its declared type.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = PullQuestConfig()
    return PullQuestConfig(
        starting_coins=int(raw.get("starting_coins", defaults.starting_coins)),
        monthly_refill_coins=int(
            raw.get("monthly_refill_coins", defaults.monthly_refill_coins)
        ),
        issue_expiration_days=int(
            raw.get("issue_expiration_days", defaults.issue_expiration_days)
        ),
        refill_enabled=bool(raw.get("refill_enabled", defaults.refill_enabled)),
        refill_check_interval_seconds=int(
            raw.get(
                "refill_check_interval_seconds",
                defaults.refill_check_interval_seconds,
            )
        ),
        default_min_stars=int(raw.get("default_min_stars", defaults.default_min_stars)),
        default_per_page=int(raw.get("default_per_page", defaults.default_per_page)),
    )
