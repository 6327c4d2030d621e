"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Integration tests for the contributor, issue, stake and account routes using the
FastAPI TestClient against the in-memory engine and fake issue source.

These tests verify:
- Auth guards (401 without a valid token, 403 for the wrong role)
- Response structure of each endpoint
- The structured error body ``{error, code, message, details}``
"""

from __future__ import annotations

import json

import pytest

from conftest import auth, make_account, make_token, sample_issues
from pullquest.errors import UpstreamUnavailableError


@pytest.fixture
def contributor(db_engine):
    return make_account(db_engine, coins=50)


@pytest.fixture
def maintainer(db_engine):
    return make_account(db_engine, coins=0, role="maintainer", github_username="maint")


@pytest.fixture
def contributor_headers(contributor):
    return auth(make_token(contributor.id))


@pytest.fixture
def maintainer_headers(maintainer):
    return auth(make_token(maintainer.id, "maintainer"))


def _stake_body(**overrides) -> dict:
    body = {
        "issue_id": 102,
        "repository": "acme/api",
        "amount": 20,
        "pr_url": "https://github.com/acme/api/pull/7",
    }
    body.update(overrides)
    return body


def _merged_webhook(client, pr_url: str):
    return client.post(
        "/api/webhooks/github",
        content=json.dumps(
            {"action": "closed", "pull_request": {"html_url": pr_url, "merged": True}}
        ).encode(),
        headers={"X-GitHub-Event": "pull_request"},
    )


def _assert_error(resp, status: int, kind: str, code: str | None = None) -> dict:
    assert resp.status_code == status
    body = resp.json()
    assert set(body) == {"error", "code", "message", "details"}
    assert body["error"] == kind
    if code is not None:
        assert body["code"] == code
    return body


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    """Protected endpoints must return 401/403 for missing/invalid/wrong-role tokens."""

    PROTECTED_GET_ENDPOINTS = [
        "/api/me",
        "/api/stakes",
        "/api/contributor/suggested-issues",
        "/api/contributor/issues/1",
        "/api/contributor/analysis",
        "/api/contributor/filters",
        "/api/issues",
        "/api/issues/1",
    ]

    @pytest.mark.parametrize("endpoint", PROTECTED_GET_ENDPOINTS)
    def test_get_no_token_returns_401(self, client, endpoint):
        resp = client.get(endpoint)
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", PROTECTED_GET_ENDPOINTS)
    def test_get_invalid_token_returns_401(self, client, endpoint):
        resp = client.get(endpoint, headers=auth("invalid.token.here"))
        assert resp.status_code == 401

    def test_contributor_routes_reject_maintainer(self, client, maintainer_headers):
        resp = client.get("/api/contributor/suggested-issues", headers=maintainer_headers)
        assert resp.status_code == 403

    def test_stake_creation_rejects_maintainer(self, client, maintainer_headers):
        resp = client.post("/api/stakes", headers=maintainer_headers, json=_stake_body())
        assert resp.status_code == 403

    def test_status_update_rejects_contributor(self, client, contributor_headers):
        resp = client.patch(
            "/api/stakes/1/status", headers=contributor_headers, json={"status": "accepted"}
        )
        assert resp.status_code == 403


# ===========================================================================
# Account
# ===========================================================================
class TestMe:
    def test_returns_balances_and_progress(self, client, contributor, contributor_headers):
        resp = client.get("/api/me", headers=contributor_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["account"]["id"] == contributor.id
        assert body["account"]["coins"] == 50
        assert body["account"]["rank"] == "Code Novice"
        assert body["progress"] == {
            "rank": "Code Novice",
            "xp": 0,
            "xp_to_next": 100,
            "next_rank": "Code Apprentice",
        }

    def test_unknown_account(self, client):
        resp = client.get("/api/me", headers=auth(make_token(9999)))
        _assert_error(resp, 404, "not_found", "account_not_found")


# ===========================================================================
# Stakes
# ===========================================================================
class TestStakes:
    def test_create_debits_and_returns_201(self, client, contributor_headers):
        resp = client.post("/api/stakes", headers=contributor_headers, json=_stake_body())
        assert resp.status_code == 201
        stake = resp.json()["stake"]
        assert stake["status"] == "pending"
        assert stake["amount"] == 20
        assert (stake["bounty"], stake["xp_reward"]) == (0, 0)
        assert stake["settled_at"] is None

        me = client.get("/api/me", headers=contributor_headers).json()
        assert me["account"]["coins"] == 30

    def test_insufficient_funds(self, client, contributor_headers):
        resp = client.post(
            "/api/stakes", headers=contributor_headers, json=_stake_body(amount=51)
        )
        _assert_error(resp, 400, "insufficient_resources", "insufficient_funds")

        me = client.get("/api/me", headers=contributor_headers).json()
        assert me["account"]["coins"] == 50

    def test_zero_amount_is_validation_error(self, client, contributor_headers):
        resp = client.post(
            "/api/stakes", headers=contributor_headers, json=_stake_body(amount=0)
        )
        body = _assert_error(resp, 400, "validation", "invalid_request")
        assert any(e["field"].endswith("amount") for e in body["details"]["errors"])

    def test_missing_account(self, client):
        resp = client.post("/api/stakes", headers=auth(make_token(9999)), json=_stake_body())
        _assert_error(resp, 404, "not_found", "account_not_found")

    def test_list_with_status_filter(self, client, contributor_headers):
        client.post("/api/stakes", headers=contributor_headers, json=_stake_body())
        client.post(
            "/api/stakes", headers=contributor_headers,
            json=_stake_body(issue_id=101, amount=3, pr_url="https://github.com/acme/api/pull/8"),
        )

        resp = client.get("/api/stakes", headers=contributor_headers)
        assert resp.json()["total"] == 2

        resp = client.get("/api/stakes?status=accepted", headers=contributor_headers)
        assert resp.json() == {"stakes": [], "total": 0}

        resp = client.get("/api/stakes?status=bogus", headers=contributor_headers)
        _assert_error(resp, 400, "validation")

    def test_maintainer_accepts_stake(
        self, client, contributor_headers, maintainer_headers
    ):
        stake_id = client.post(
            "/api/stakes", headers=contributor_headers, json=_stake_body()
        ).json()["stake"]["id"]

        resp = client.patch(
            f"/api/stakes/{stake_id}/status",
            headers=maintainer_headers,
            json={"status": "accepted", "xp_earned": 120, "coins_earned": 40},
        )
        assert resp.status_code == 200
        stake = resp.json()["stake"]
        assert stake["status"] == "accepted"
        assert stake["xp_earned"] == 120
        assert stake["settled_at"] is not None

        me = client.get("/api/me", headers=contributor_headers).json()
        assert me["account"]["coins"] == 90
        assert me["account"]["xp"] == 120
        assert me["account"]["rank"] == "Code Apprentice"

    def test_client_supplied_rewards_are_ignored(
        self, client, contributor_headers, monkeypatch
    ):
        monkeypatch.delenv("GITHUB_WEBHOOK_SECRET", raising=False)
        body = _stake_body(issue_id=101, amount=1, bounty=1_000_000, xp_reward=100_000)

        resp = client.post("/api/stakes", headers=contributor_headers, json=body)
        assert resp.status_code == 201
        stake = resp.json()["stake"]
        assert (stake["bounty"], stake["xp_reward"]) == (0, 0)

        assert _merged_webhook(client, body["pr_url"]).status_code == 200
        me = client.get("/api/me", headers=contributor_headers).json()
        assert (me["account"]["coins"], me["account"]["xp"]) == (50, 0)

    def test_published_rewards_are_paid(
        self, client, contributor_headers, maintainer_headers, monkeypatch
    ):
        monkeypatch.delenv("GITHUB_WEBHOOK_SECRET", raising=False)
        published = client.post(
            "/api/issues", headers=maintainer_headers, json={"issue": sample_issues()[1]}
        ).json()["issue"]

        body = _stake_body(amount=1, bounty=1_000_000)
        stake = client.post(
            "/api/stakes", headers=contributor_headers, json=body
        ).json()["stake"]
        assert stake["bounty"] == published["bounty"] == 30

        _merged_webhook(client, body["pr_url"])
        me = client.get("/api/me", headers=contributor_headers).json()
        assert (me["account"]["coins"], me["account"]["xp"]) == (80, 100)

    def test_unknown_stake(self, client, maintainer_headers):
        resp = client.patch(
            "/api/stakes/999/status", headers=maintainer_headers, json={"status": "expired"}
        )
        _assert_error(resp, 404, "not_found", "stake_not_found")


# ===========================================================================
# Contributor workflow
# ===========================================================================
class TestContributorRoutes:
    def test_analysis_then_suggestions_then_details(
        self, client, contributor_headers, issue_source
    ):
        resp = client.post("/api/contributor/analysis", headers=contributor_headers, json={})
        assert resp.status_code == 200
        body = resp.json()
        assert body["github_username"] == "octocat"
        assert body["from_cache"] is False
        assert body["analysis"]["top_languages"][0] == "Python"

        resp = client.get(
            "/api/contributor/suggested-issues?per_page=2", headers=contributor_headers
        )
        assert resp.status_code == 200
        page = resp.json()
        assert page["total_issues"] == 3
        assert page["total_pages"] == 2
        assert [i["id"] for i in page["issues"]] == [101, 102]

        resp = client.get("/api/contributor/issues/103", headers=contributor_headers)
        assert resp.status_code == 200
        assert resp.json()["issue"]["difficulty"] == "advanced"
        assert issue_source.calls["search"] == 1

    def test_suggestions_require_analysis(self, client, contributor_headers):
        resp = client.get("/api/contributor/suggested-issues", headers=contributor_headers)
        _assert_error(resp, 404, "not_found", "analysis_not_found")

    def test_invalid_difficulty(self, client, contributor_headers):
        client.post("/api/contributor/analysis", headers=contributor_headers, json={})
        resp = client.get(
            "/api/contributor/suggested-issues?difficulty=legendary",
            headers=contributor_headers,
        )
        _assert_error(resp, 400, "validation")

    def test_per_page_out_of_range(self, client, contributor_headers):
        resp = client.get(
            "/api/contributor/suggested-issues?per_page=500", headers=contributor_headers
        )
        _assert_error(resp, 400, "validation", "invalid_request")

    def test_stake_picks_up_cached_rewards(self, client, contributor_headers):
        client.post("/api/contributor/analysis", headers=contributor_headers, json={})
        client.get("/api/contributor/suggested-issues", headers=contributor_headers)

        resp = client.post(
            "/api/stakes",
            headers=contributor_headers,
            json={
                "issue_id": 102,
                "repository": "acme/api",
                "amount": 9,
                "pr_url": "https://github.com/acme/api/pull/9",
            },
        )
        stake = resp.json()["stake"]
        assert (stake["bounty"], stake["xp_reward"]) == (30, 100)

    def test_no_issue_source_is_503(self, client, contributor_headers):
        from pullquest.api.main import app
        from pullquest.api.routes import contributor

        def _unconfigured():
            raise UpstreamUnavailableError(
                "No issue source configured", code="issue_source_unconfigured"
            )

        app.dependency_overrides[contributor.get_issue_source] = _unconfigured
        resp = client.post("/api/contributor/analysis", headers=contributor_headers, json={})
        _assert_error(resp, 503, "upstream_unavailable", "issue_source_unconfigured")

    def test_analysis_summary(self, client, contributor_headers, issue_source):
        resp = client.get("/api/contributor/analysis", headers=contributor_headers)
        _assert_error(resp, 404, "not_found", "analysis_not_found")

        client.post("/api/contributor/analysis", headers=contributor_headers, json={})
        resp = client.get("/api/contributor/analysis", headers=contributor_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["github_username"] == "octocat"
        assert body["total_repositories"] == 2
        breakdown = body["repository_breakdown"]
        assert breakdown["total_stars"] == 170
        assert breakdown["total_forks"] == 13
        assert breakdown["most_starred_repo"]["full_name"] == "octocat/web"
        assert issue_source.calls["repos"] == 1

    def test_saved_filters_round_trip_and_apply(
        self, client, contributor_headers, issue_source
    ):
        resp = client.get("/api/contributor/filters", headers=contributor_headers)
        assert resp.json()["filters"]["languages"] == []

        resp = client.put(
            "/api/contributor/filters",
            headers=contributor_headers,
            json={"languages": ["Python"], "difficulty": "intermediate", "min_stars": 200},
        )
        assert resp.status_code == 200
        assert resp.json()["filters"] == {
            "languages": ["Python"],
            "labels": [],
            "difficulty": "intermediate",
            "min_stars": 200,
        }

        client.post("/api/contributor/analysis", headers=contributor_headers, json={})
        page = client.get(
            "/api/contributor/suggested-issues", headers=contributor_headers
        ).json()
        assert [i["id"] for i in page["issues"]] == [102]
        assert issue_source.searches == [(["Python"], 200)]

    def test_min_stars_change_bypasses_cache(
        self, client, contributor_headers, issue_source
    ):
        client.post("/api/contributor/analysis", headers=contributor_headers, json={})
        client.get("/api/contributor/suggested-issues", headers=contributor_headers)
        page = client.get(
            "/api/contributor/suggested-issues?min_stars=500", headers=contributor_headers
        ).json()

        assert page["from_cache"] is False
        assert [floor for _, floor in issue_source.searches] == [10, 500]

    def test_invalid_saved_filters(self, client, contributor_headers):
        resp = client.put(
            "/api/contributor/filters",
            headers=contributor_headers,
            json={"difficulty": "legendary"},
        )
        _assert_error(resp, 400, "validation")

        resp = client.put(
            "/api/contributor/filters", headers=contributor_headers, json={"min_stars": -5}
        )
        _assert_error(resp, 400, "validation", "invalid_request")


# ===========================================================================
# Published issues
# ===========================================================================
class TestIssueRoutes:
    def test_maintainer_publishes_with_server_rewards(
        self, client, maintainer, maintainer_headers, contributor_headers
    ):
        payload = {**sample_issues()[2], "bounty": 1_000_000, "staking_required": 0}

        resp = client.post(
            "/api/issues", headers=maintainer_headers, json={"issue": payload}
        )

        assert resp.status_code == 201
        issue = resp.json()["issue"]
        assert issue["id"] == 103
        assert issue["difficulty"] == "advanced"
        assert issue["bounty"] != 1_000_000
        assert issue["staking_required"] > 0
        assert issue["maintainer_account_id"] == maintainer.id

        listed = client.get("/api/issues", headers=contributor_headers).json()
        assert listed["total"] == 1
        assert listed["issues"][0]["repository"] == "acme/core"

        resp = client.get("/api/issues/103", headers=contributor_headers)
        assert resp.json()["issue"]["title"] == "Rewrite scheduler"

    def test_contributor_cannot_publish(self, client, contributor_headers):
        resp = client.post(
            "/api/issues", headers=contributor_headers, json={"issue": sample_issues()[0]}
        )
        assert resp.status_code == 403

    def test_repository_supplied_separately(self, client, maintainer_headers):
        issue = {k: v for k, v in sample_issues()[0].items() if k != "repository"}
        resp = client.post(
            "/api/issues",
            headers=maintainer_headers,
            json={"issue": issue, "repository": {"full_name": "acme/docs"}},
        )
        assert resp.status_code == 201
        assert resp.json()["issue"]["repository"] == "acme/docs"

    def test_malformed_issue(self, client, maintainer_headers):
        resp = client.post(
            "/api/issues", headers=maintainer_headers, json={"issue": {"title": "x"}}
        )
        _assert_error(resp, 400, "validation")

    def test_unknown_issue(self, client, contributor_headers):
        resp = client.get("/api/issues/999", headers=contributor_headers)
        _assert_error(resp, 404, "not_found", "issue_not_found")
