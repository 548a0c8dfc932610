"""Tests for rate limit API routes and the enforcement dependency.

Each test gets its own app and limiter (see conftest.py) driven by a mocked
clock, so counters never leak between tests.
"""

from unittest.mock import Mock

import pytest
from fastapi import APIRouter, Depends, FastAPI
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.errors import ValidationAppError
from app.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from app.core.policies import AUTHENTICATION, GENERAL_API, READ_HEAVY, get_policy
from app.core.rate_limit import rate_limited


class TestPoliciesEndpoint:
    def test_lists_presets_with_headers(self, client: TestClient) -> None:
        response = client.get("/v1/rate-limit/policies")

        assert response.status_code == 200
        names = {p["name"]: p for p in response.json()["policies"]}
        assert names["payment"] == {"name": "payment", "window_seconds": 3600, "max_requests": 3}
        assert response.headers["X-RateLimit-Limit"] == "120"
        assert response.headers["X-RateLimit-Remaining"] == "119"
        assert response.headers["X-RateLimit-Reset"] == "1060"

    def test_returns_429_when_read_heavy_budget_is_spent(self, client: TestClient) -> None:
        for _ in range(120):
            assert client.get("/v1/rate-limit/policies").status_code == 200

        response = client.get("/v1/rate-limit/policies")

        assert response.status_code == 429
        assert response.json()["detail"] == "Rate limit exceeded. Try again later."
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["Retry-After"] == "60"

    def test_budget_is_per_route(self, client: TestClient) -> None:
        for _ in range(121):
            client.get("/v1/rate-limit/policies")

        assert client.get("/v1/rate-limit/stats").status_code == 200

    def test_budget_is_per_api_key(self, client: TestClient) -> None:
        for _ in range(121):
            client.get("/v1/rate-limit/policies", headers={"X-API-Key": "key-a"})

        blocked = client.get("/v1/rate-limit/policies", headers={"X-API-Key": "key-a"})
        other = client.get("/v1/rate-limit/policies", headers={"X-API-Key": "key-b"})

        assert blocked.status_code == 429
        assert other.status_code == 200
        assert other.headers["X-RateLimit-Remaining"] == "119"

    def test_key_includes_router_prefix(
        self, client: TestClient, limiter: InMemoryFixedWindowRateLimiter
    ) -> None:
        client.get("/v1/rate-limit/policies")

        decision = limiter.check("ip:testclient:/v1/rate-limit/policies", get_policy(READ_HEAVY))

        assert decision.remaining == 118
        assert limiter.size() == 1

    def test_window_expiry_restores_access(self, client: TestClient, clock: Mock) -> None:
        for _ in range(121):
            client.get("/v1/rate-limit/policies")

        clock.return_value = 1060.0
        response = client.get("/v1/rate-limit/policies")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Reset"] == "1120"


class TestCheckEndpoint:
    def test_counts_against_the_given_key(self, client: TestClient) -> None:
        body = {"key": "user@example.com", "policy": AUTHENTICATION}

        results = [client.post("/v1/rate-limit/check", json=body).json() for _ in range(6)]

        assert [r["allowed"] for r in results] == [True] * 5 + [False]
        assert [r["remaining"] for r in results] == [4, 3, 2, 1, 0, 0]
        assert results[4]["reset_at"] == results[5]["reset_at"] == 1900.0
        assert results[5]["retry_after_seconds"] == 900
        assert results[0]["policy"] == "authentication"

    def test_denial_is_reported_not_enforced(self, client: TestClient) -> None:
        body = {"key": "k", "policy": "payment"}
        for _ in range(3):
            client.post("/v1/rate-limit/check", json=body)

        response = client.post("/v1/rate-limit/check", json=body)

        assert response.status_code == 200
        assert response.json()["allowed"] is False
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["Retry-After"] == "3600"

    def test_defaults_to_general_api(self, client: TestClient) -> None:
        response = client.post("/v1/rate-limit/check", json={"key": "k"})

        assert response.json()["limit"] == 60
        assert response.json()["remaining"] == 59

    def test_unknown_policy_returns_400(self, client: TestClient) -> None:
        response = client.post("/v1/rate-limit/check", json={"key": "k", "policy": "nope"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "unknown_rate_limit_policy"

    def test_empty_key_is_rejected(self, client: TestClient) -> None:
        response = client.post("/v1/rate-limit/check", json={"key": ""})

        assert response.status_code == 422

    def test_checked_key_is_kept_in_its_own_namespace(
        self, client: TestClient, limiter: InMemoryFixedWindowRateLimiter
    ) -> None:
        client.post("/v1/rate-limit/check", json={"key": "k"})

        assert limiter.check("check:k", get_policy(GENERAL_API)).remaining == 58
        assert limiter.check("k", get_policy(GENERAL_API)).remaining == 59

    @pytest.mark.parametrize(
        "key",
        ["ip:testclient:/v1/rate-limit/policies", "ip:testclient:/rate-limit/policies"],
    )
    def test_cannot_spend_an_enforced_budget(self, client: TestClient, key: str) -> None:
        for _ in range(120):
            client.post("/v1/rate-limit/check", json={"key": key, "policy": READ_HEAVY})

        response = client.get("/v1/rate-limit/policies")

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "119"

    def test_cannot_stretch_an_enforced_window(self, client: TestClient) -> None:
        client.post(
            "/v1/rate-limit/check",
            json={"key": "ip:testclient:/v1/rate-limit/stats", "policy": "payment"},
        )

        response = client.get("/v1/rate-limit/stats")

        assert response.headers["X-RateLimit-Reset"] == "1060"
        assert response.headers["X-RateLimit-Limit"] == "120"


class TestStatsEndpoint:
    def test_reports_tracked_keys(self, client: TestClient) -> None:
        client.post("/v1/rate-limit/check", json={"key": "a"})
        client.post("/v1/rate-limit/check", json={"key": "b"})

        data = client.get("/v1/rate-limit/stats").json()

        # a, b and the caller's own stats key
        assert data["tracked_keys"] == 3
        assert data["reclaim_interval_seconds"] == settings.app.rate_limit_reclaim_interval_seconds

    def test_reclaimer_runs_within_lifespan(self, app: FastAPI) -> None:
        with TestClient(app) as client:
            assert client.get("/v1/rate-limit/stats").json()["reclaimer_running"] is True
            assert client.get("/health").json() == {"status": "ok", "reclaimer_running": True}

        assert app.state.reclaimer.running is False


class TestSettingsToggles:
    def test_disabled_rate_limit_skips_enforcement(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_enabled", False)

        for _ in range(130):
            response = client.get("/v1/rate-limit/policies")

        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_headers_can_be_omitted(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_include_headers", False)
        for _ in range(120):
            client.get("/v1/rate-limit/policies")

        response = client.get("/v1/rate-limit/policies")

        assert response.status_code == 429
        assert "Retry-After" not in response.headers
        assert "X-RateLimit-Remaining" not in response.headers

    def test_ip_identity_when_api_key_not_trusted(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_trust_api_key", False)
        for i in range(120):
            client.get("/v1/rate-limit/policies", headers={"X-API-Key": f"rotating-{i}"})

        response = client.get("/v1/rate-limit/policies", headers={"X-API-Key": "fresh"})

        assert response.status_code == 429


def test_unknown_policy_fails_when_declaring_dependency() -> None:
    with pytest.raises(ValidationAppError):
        rate_limited("does-not-exist")


def test_dependency_can_guard_any_route(app: FastAPI, client: TestClient) -> None:
    @app.post("/login", dependencies=[Depends(rate_limited(AUTHENTICATION))])
    async def login() -> dict:
        return {"ok": True}

    statuses = [client.post("/login").status_code for _ in range(6)]

    assert statuses == [200] * 5 + [429]
    # Other routes keep their own budgets
    assert client.get("/v1/rate-limit/policies").status_code == 200


def test_health_is_never_rate_limited(client: TestClient) -> None:
    for _ in range(200):
        response = client.get("/health")

    assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers


def test_openapi_documents_rate_limit_headers(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    policies_get = schema["paths"]["/v1/rate-limit/policies"]["get"]
    assert "429" in policies_get["responses"]
    assert "X-RateLimit-Limit" in policies_get["responses"]["200"]["headers"]
    assert "429" not in schema["paths"]["/health"]["get"]["responses"]
    assert {t["name"] for t in schema["tags"]} >= {"Rate Limit", "Health"}


def test_router_mounted_twice_keeps_separate_budgets(app: FastAPI, client: TestClient) -> None:
    router = APIRouter(prefix="/items")

    @router.get("/{item_id}", dependencies=[Depends(rate_limited(AUTHENTICATION))])
    async def read_item(item_id: int) -> dict:
        return {"id": item_id}

    app.include_router(router, prefix="/a")
    app.include_router(router, prefix="/b")

    statuses = [client.get(f"/a/items/{i}").status_code for i in range(6)]

    assert statuses == [200] * 5 + [429]
    assert client.get("/b/items/1").status_code == 200
