"""
pullquest.constants — Shared Economy Constants
===============================================

Single source of truth for the numbers the economy is built on: reward
tiers, the rank ladder, cache TTLs, and allowance amounts.  Import from here
instead of duplicating values in services and routes.
"""

from __future__ import annotations

from datetime import timedelta

# ---------------------------------------------------------------------------
# Difficulty tiers
# ---------------------------------------------------------------------------
BEGINNER = "beginner"
INTERMEDIATE = "intermediate"
ADVANCED = "advanced"

DIFFICULTIES: tuple[str, ...] = (BEGINNER, INTERMEDIATE, ADVANCED)

BEGINNER_LABELS: tuple[str, ...] = (
    "good first issue",
    "beginner",
    "easy",
    "starter",
    "beginner-friendly",
)
ADVANCED_LABELS: tuple[str, ...] = ("complex", "advanced", "hard", "expert")

# ---------------------------------------------------------------------------
# Reward formula
# ---------------------------------------------------------------------------
BASE_BOUNTY = 10

DIFFICULTY_MULTIPLIER: dict[str, float] = {
    BEGINNER: 1.0,
    INTERMEDIATE: 1.5,
    ADVANCED: 2.0,
}

XP_REWARD: dict[str, int] = {
    BEGINNER: 50,
    INTERMEDIATE: 100,
    ADVANCED: 150,
}

# staking_required = floor(bounty * 3 / 10)
STAKE_RATIO_NUMERATOR = 3
STAKE_RATIO_DENOMINATOR = 10

# Stars are divided by this before scaling the bounty: 1000 stars doubles it.
STAR_SCALE = 1000

# (max_body_length, max_comments, low_hours, high_hours) — first match wins.
HOUR_BANDS: tuple[tuple[int, int, float, float], ...] = (
    (200, 5, 1.0, 4.0),
    (500, 15, 4.0, 12.0),
)
FALLBACK_HOUR_BAND: tuple[float, float] = (12.0, 32.0)

ISSUE_EXPIRATION_DAYS = 7

# Suggested-issue search floor when neither the request nor saved filters set one.
DEFAULT_MIN_STARS = 10

# ---------------------------------------------------------------------------
# Rank ladder — (inclusive lower XP bound, label), ascending
# ---------------------------------------------------------------------------
RANK_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (0, "Code Novice"),
    (100, "Code Apprentice"),
    (500, "Code Contributor"),
    (1500, "Code Master"),
    (3000, "Code Expert"),
    (5000, "Open Source Legend"),
)

# ---------------------------------------------------------------------------
# Cache TTLs per snapshot kind
# ---------------------------------------------------------------------------
LANGUAGE_ANALYSIS_TTL = timedelta(hours=24)
SUGGESTED_ISSUES_TTL = timedelta(hours=4)

TOP_LANGUAGE_COUNT = 5

# ---------------------------------------------------------------------------
# Allowances
# ---------------------------------------------------------------------------
STARTING_COINS = 100
MONTHLY_REFILL_COINS = 100
MONTHLY_REFILL_JOB = "monthly_refill"

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------
ROLE_CONTRIBUTOR = "contributor"
ROLE_MAINTAINER = "maintainer"
ROLE_COMPANY = "company"
ROLES: tuple[str, ...] = (ROLE_CONTRIBUTOR, ROLE_MAINTAINER, ROLE_COMPANY)
