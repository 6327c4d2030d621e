"""
tests/test_rate_limit.py — Contributor API Rate Limiting Tests
===============================================================
Contributor endpoints are rate-limited per account and bucket (issues:
50 per 15 min, analysis: 5 per hour), returning 429 with a consistent
error payload.
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from conftest import auth, make_account, make_token
from pullquest.api.rate_limit import (
    ANALYSIS_BUCKET,
    DEFAULT_LIMITS,
    ISSUES_BUCKET,
    ContributorRateLimiter,
    get_rate_limiter,
)
from pullquest.database.models import RateLimitEvent


# ---------------------------------------------------------------------------
# Unit tests for the ContributorRateLimiter core (DB-backed)
# ---------------------------------------------------------------------------
class TestContributorRateLimiter:
    """Test the sliding-window rate limiter in isolation (DB-backed)."""

    @pytest.fixture(autouse=True)
    def _limiter(self, db_engine):
        """Create a fresh DB-backed limiter for each test."""
        self.limiter = ContributorRateLimiter(
            ISSUES_BUCKET, max_requests=5, window_seconds=60, engine=db_engine
        )
        self.engine = db_engine

    def _clear(self):
        with Session(self.engine) as s:
            s.query(RateLimitEvent).delete()
            s.commit()

    def test_default_limits(self):
        assert DEFAULT_LIMITS[ISSUES_BUCKET] == (50, 900)
        assert DEFAULT_LIMITS[ANALYSIS_BUCKET] == (5, 3600)

    def test_allows_requests_within_limit(self):
        self._clear()
        for _ in range(5):
            allowed, _ = self.limiter.check("1")
            assert allowed
            self.limiter.record("1")

    def test_blocks_after_limit_exceeded(self):
        self._clear()
        limiter = ContributorRateLimiter(ISSUES_BUCKET, 3, 60, engine=self.engine)
        for _ in range(3):
            limiter.record("1")

        allowed, info = limiter.check("1")
        assert not allowed
        assert info["remaining"] == 0
        assert info["reset"] > 0

    def test_separate_accounts_have_separate_limits(self):
        self._clear()
        limiter = ContributorRateLimiter(ISSUES_BUCKET, 2, 60, engine=self.engine)
        limiter.record("1")
        limiter.record("1")

        allowed1, _ = limiter.check("1")
        assert not allowed1

        allowed2, _ = limiter.check("2")
        assert allowed2

    def test_buckets_are_independent(self):
        self._clear()
        issues = ContributorRateLimiter(ISSUES_BUCKET, 1, 60, engine=self.engine)
        analysis = ContributorRateLimiter(ANALYSIS_BUCKET, 1, 60, engine=self.engine)
        issues.record("1")

        assert not issues.check("1")[0]
        assert analysis.check("1")[0]

    def test_remaining_count_decreases(self):
        self._clear()
        _, info = self.limiter.check("1")
        assert info["remaining"] == 5

        info = self.limiter.record("1")
        assert info["remaining"] == 4

        _, info = self.limiter.check("1")
        assert info["remaining"] == 4

    def test_reset_clears_specific_account(self):
        self._clear()
        limiter = ContributorRateLimiter(ISSUES_BUCKET, 2, 60, engine=self.engine)
        limiter.record("1")
        limiter.record("1")
        limiter.record("2")

        limiter.reset("1")

        allowed1, _ = limiter.check("1")
        assert allowed1

        _, info2 = limiter.check("2")
        assert info2["remaining"] == 1


# ---------------------------------------------------------------------------
# Integration tests with FastAPI TestClient
# ---------------------------------------------------------------------------
class TestRateLimitDependency:
    """Test the rate limiter dependency end-to-end via TestClient."""

    @pytest.fixture
    def contributor(self, db_engine):
        return make_account(db_engine)

    def test_returns_429_after_limit(self, client, contributor):
        limiter = get_rate_limiter(ISSUES_BUCKET)
        for _ in range(limiter.max_requests):
            limiter.record(str(contributor.id))

        resp = client.get(
            "/api/contributor/issues/101",
            headers=auth(make_token(contributor.id)),
        )
        assert resp.status_code == 429
        body = resp.json()
        assert body["detail"]["error"] == "rate_limit_exceeded"
        assert "retry_after" in body["detail"]
        assert "Retry-After" in resp.headers

    def test_analysis_limit_is_five_per_hour(self, client, contributor):
        headers = auth(make_token(contributor.id))
        statuses = [
            client.post("/api/contributor/analysis", headers=headers, json={}).status_code
            for _ in range(6)
        ]
        assert statuses[:5] == [200] * 5
        assert statuses[5] == 429

    def test_other_accounts_not_blocked(self, client, db_engine, contributor):
        other = make_account(db_engine, github_username="hubot")
        limiter = get_rate_limiter(ISSUES_BUCKET)
        for _ in range(limiter.max_requests):
            limiter.record(str(contributor.id))

        resp = client.get(
            "/api/contributor/issues/101",
            headers=auth(make_token(other.id)),
        )
        assert resp.status_code != 429

    def test_health_not_limited(self, client):
        for _ in range(10):
            assert client.get("/api/health").status_code == 200
