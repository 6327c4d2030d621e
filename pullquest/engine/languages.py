"""
pullquest.engine.languages — Repository Language Statistics
============================================================

Aggregates GitHub's per-repository ``{language: bytes}`` maps into the
language-analysis payload stored in a snapshot, and summarizes the stored
per-repository stars and forks into a breakdown by primary language.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from dataclasses import asdict, dataclass

from pullquest.constants import TOP_LANGUAGE_COUNT


@dataclass(slots=True)
class LanguageStat:
    language: str
    repository_count: int = 0
    total_bytes: int = 0
    percentage: float = 0.0


def calculate_language_stats(
    repo_languages: Iterable[Mapping[str, int]],
    *,
    top_n: int = TOP_LANGUAGE_COUNT,
) -> dict:
    """Build ``{"languages": [...], "top_languages": [...], "total_bytes": N,
    "repository_count": M}``.

    ``languages`` is sorted by bytes descending (ties by name);
    ``top_languages`` holds the first *top_n* names.  Percentages are of the
    total byte count, rounded to two decimals.
    """
    stats: dict[str, LanguageStat] = {}
    repo_count = 0

    for languages in repo_languages:
        repo_count += 1
        for language, size in (languages or {}).items():
            stat = stats.setdefault(language, LanguageStat(language=language))
            stat.repository_count += 1
            stat.total_bytes += max(int(size or 0), 0)

    total = sum(stat.total_bytes for stat in stats.values())
    ordered = sorted(stats.values(), key=lambda s: (-s.total_bytes, s.language))
    for stat in ordered:
        stat.percentage = round(stat.total_bytes * 100 / total, 2) if total else 0.0

    return {
        "languages": [asdict(stat) for stat in ordered],
        "top_languages": [stat.language for stat in ordered[:top_n]],
        "total_bytes": total,
        "repository_count": repo_count,
    }


def primary_language(
    declared: str | None, languages: Mapping[str, int] | None
) -> str | None:
    """GitHub's declared language, else the one with the most bytes."""
    if declared:
        return declared
    if not languages:
        return None
    return min(languages.items(), key=lambda item: (-int(item[1] or 0), item[0]))[0]


def repository_breakdown(
    repositories: Iterable[Mapping[str, Any]],
    top_languages: Iterable[str],
) -> dict:
    """Stars and forks across *repositories*, per top language and overall.

    Each repository mapping carries ``full_name``, ``language``,
    ``stargazers_count`` and ``forks_count``.  ``most_starred_repo`` is the
    first repository with the highest star count, or None when there are none.
    """
    repos = list(repositories)
    by_language = []
    for language in top_languages:
        matching = [r for r in repos if r.get("language") == language]
        by_language.append({
            "language": language,
            "count": len(matching),
            "total_stars": sum(int(r.get("stargazers_count") or 0) for r in matching),
        })

    most_starred = None
    for repo in repos:
        if most_starred is None or (
            int(repo.get("stargazers_count") or 0)
            > int(most_starred.get("stargazers_count") or 0)
        ):
            most_starred = repo

    return {
        "by_language": by_language,
        "total_stars": sum(int(r.get("stargazers_count") or 0) for r in repos),
        "total_forks": sum(int(r.get("forks_count") or 0) for r in repos),
        "most_starred_repo": dict(most_starred) if most_starred else None,
    }
