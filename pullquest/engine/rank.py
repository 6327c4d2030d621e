"""
pullquest.engine.rank — XP → Rank Ladder
=========================================

Pure functions, no I/O.  Rank is always derived from XP, never stored
independently of it: services call :func:`rank_of` on every balance
mutation.
"""

from __future__ import annotations

from pullquest.constants import RANK_THRESHOLDS


def rank_of(xp: int) -> str:
    """Return the rank label for *xp*.  Negative XP is clamped to 0."""
    xp = max(xp, 0)
    label = RANK_THRESHOLDS[0][1]
    for threshold, name in RANK_THRESHOLDS:
        if xp >= threshold:
            label = name
        else:
            break
    return label


def next_rank(xp: int) -> tuple[int, str] | None:
    """The next ``(threshold, label)`` above *xp*, or None at the top."""
    xp = max(xp, 0)
    for threshold, name in RANK_THRESHOLDS:
        if xp < threshold:
            return threshold, name
    return None


def xp_to_next(xp: int) -> int:
    """XP still needed to reach the next rank (0 at the terminal rank)."""
    upcoming = next_rank(xp)
    if upcoming is None:
        return 0
    return upcoming[0] - max(xp, 0)


def rank_progress(xp: int) -> dict:
    """Summary used by the account endpoint."""
    upcoming = next_rank(xp)
    return {
        "rank": rank_of(xp),
        "xp": max(xp, 0),
        "xp_to_next": xp_to_next(xp),
        "next_rank": upcoming[1] if upcoming else None,
    }
