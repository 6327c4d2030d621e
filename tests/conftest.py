"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of pullquest.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from pullquest.database.models import Base  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all PullQuest tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in the rate limiter and
    webhook route).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session for direct row inspection."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


def make_account(
    engine: Engine,
    coins: int = 100,
    *,
    role: str = "contributor",
    github_username: str | None = "octocat",
):
    """Create an account with an opening balance of *coins*."""
    from pullquest.services.account_service import create_account

    return create_account(
        engine, github_username=github_username, role=role, starting_coins=coins
    )


def make_token(sub: int | str, role: str = "contributor") -> str:
    """Create a signed bearer token for *sub*.  Usable as a factory function."""
    import jwt

    return jwt.encode(
        {"sub": str(sub), "role": role},
        os.environ["JWT_SECRET"],
        algorithm="HS256",
    )


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class FakeIssueSource:
    """In-memory IssueSource recording how often it is called."""

    def __init__(
        self,
        repos: dict[str, dict[str, int]] | None = None,
        issues: list[dict] | None = None,
        details: dict[str, dict] | None = None,
    ) -> None:
        self.repos = repos if repos is not None else {
            "octocat/api": {"Python": 6000, "Shell": 500},
            "octocat/web": {"TypeScript": 3000, "Python": 1000},
        }
        self.details = details if details is not None else {
            "octocat/api": {"language": "Python", "stargazers_count": 50, "forks_count": 5},
            "octocat/web": {"language": "TypeScript", "stargazers_count": 120, "forks_count": 8},
        }
        self.issues = issues if issues is not None else sample_issues()
        self.calls: dict[str, int] = {"repos": 0, "languages": 0, "search": 0}
        self.searches: list[tuple[list[str], int]] = []

    def get_user_repositories(self, username):
        self.calls["repos"] += 1
        return [{"full_name": name, **self.details.get(name, {})} for name in self.repos]

    def get_repository_languages(self, full_name):
        self.calls["languages"] += 1
        return self.repos[full_name]

    def search_issues(self, languages, *, min_stars=10, per_page=50):
        self.calls["search"] += 1
        self.searches.append((list(languages), min_stars))
        return list(self.issues)


def sample_issues() -> list[dict]:
    """Three GitHub search-API issues, one per difficulty tier."""
    return [
        {
            "id": 101,
            "number": 1,
            "title": "Fix typo in README",
            "body": "Small fix",
            "html_url": "https://github.com/acme/api/issues/1",
            "labels": [{"name": "good first issue"}],
            "comments": 0,
            "repository": {"full_name": "acme/api", "stargazers_count": 0, "language": "Python"},
            "user": {"login": "alice"},
        },
        {
            "id": 102,
            "number": 2,
            "title": "Add pagination",
            "body": "x" * 300,
            "html_url": "https://github.com/acme/api/issues/2",
            "labels": [{"name": "enhancement"}],
            "comments": 6,
            "repository": {"full_name": "acme/api", "stargazers_count": 1000, "language": "Python"},
            "user": {"login": "bob"},
        },
        {
            "id": 103,
            "number": 3,
            "title": "Rewrite scheduler",
            "body": "x" * 900,
            "html_url": "https://github.com/acme/core/issues/3",
            "labels": [{"name": "Complex"}, {"name": "help wanted"}],
            "comments": 20,
            "repository": {"full_name": "acme/core", "stargazers_count": 500, "language": "Python"},
            "user": {"login": "carol"},
        },
    ]


@pytest.fixture
def issue_source() -> FakeIssueSource:
    return FakeIssueSource()


@pytest.fixture
def client(db_engine: Engine, issue_source: FakeIssueSource):
    """FastAPI TestClient wired to the in-memory engine and fake issue source.

    Overrides are registered against each router module's own reference,
    since test_jwt_startup reloads ``pullquest.api.deps``.
    """
    from fastapi.testclient import TestClient

    from pullquest.api.main import app
    from pullquest.api.rate_limit import configure_rate_limiters
    from pullquest.api.routes import account, contributor, issues, stakes, webhooks
    from pullquest.config import PullQuestConfig

    for module in (account, contributor, issues, stakes, webhooks):
        app.dependency_overrides[module.get_engine] = lambda: db_engine
    app.dependency_overrides[contributor.get_issue_source] = lambda: issue_source
    app.dependency_overrides[contributor.get_config] = lambda: PullQuestConfig()
    app.dependency_overrides[issues.get_config] = lambda: PullQuestConfig()
    configure_rate_limiters(engine=db_engine)

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
