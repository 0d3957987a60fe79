"""Integration tests for the analysis, usage and model endpoints."""
from __future__ import annotations

import json

import anthropic
import httpx
import pytest
from fastapi.testclient import TestClient

from workout_insight.config import get_settings
from workout_insight.main import app


HEADERS = {"X-User-Id": "athlete-1"}
ADMIN_HEADERS = {"X-User-Id": "ops-1"}


@pytest.fixture
def admin_settings(test_client):
    settings = get_settings().model_copy(update={"admin_user_ids": ["ops-1"]})
    app.dependency_overrides[get_settings] = lambda: settings
    return settings


@pytest.fixture
def payload() -> dict:
    return {
        "profile": {"age": 30, "weight": 70, "height": 175, "resting_heart_rate": 60},
        "activity": {
            "id": 9001,
            "name": "Lunch Ride",
            "type": "Ride",
            "moving_time": 5400,
            "distance": 42000,
            "average_heartrate": 138,
            "average_watts": 190,
        },
        "samples": [
            {"time": i * 10, "distance": i * 70, "heartrate": 135 + i % 5, "speed": 7.0, "watts": 190}
            for i in range(90)
        ],
    }


def test_health_check(test_client: TestClient):
    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_analysis_requires_identity(test_client: TestClient, payload, fake_generator):
    response = test_client.post("/api/analysis/9001", json=payload)

    assert response.status_code == 401
    assert response.json()["error_kind"] == "unauthorized"
    assert fake_generator.calls == 0


def test_generate_then_serve_from_cache(test_client: TestClient, payload, fake_generator):
    first = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)
    assert first.status_code == 200
    body = first.json()
    assert body["activity_id"] == 9001
    assert body["is_cached"] is False
    assert body["content"].startswith("## SUMMARY")
    assert "Average power: 190 W (2.71 W/kg)" in fake_generator.prompts[0]

    second = test_client.post("/api/analysis/9001", json={}, headers=HEADERS)
    assert second.status_code == 200
    assert second.json()["is_cached"] is True
    assert second.json()["content"] == body["content"]
    assert fake_generator.calls == 1


def test_forced_refresh_hits_cooldown(test_client: TestClient, payload, fake_generator):
    test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    response = test_client.post(
        "/api/analysis/9001", json={**payload, "force_refresh": True}, headers=HEADERS
    )

    assert response.status_code == 429
    body = response.json()
    assert body["error_kind"] == "cooldown_active"
    assert 0 < body["retry_after_seconds"] <= get_settings().analysis_cooldown_seconds
    assert body["cached_fallback"].startswith("## SUMMARY")
    assert response.headers["Retry-After"] == str(body["retry_after_seconds"])
    assert fake_generator.calls == 1


def test_missing_profile_is_validation_error(test_client: TestClient, payload, fake_generator):
    payload.pop("profile")

    response = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    assert response.status_code == 422
    assert response.json()["error_kind"] == "validation_error"
    assert fake_generator.calls == 0


def test_malformed_body_uses_error_payload(test_client: TestClient, payload):
    payload["profile"]["age"] = -5

    response = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    assert response.status_code == 422
    body = response.json()
    assert body["error_kind"] == "validation_error"
    assert "profile.age" in body["message"]


def test_overflowing_weight_is_validation_error(test_client: TestClient, payload, fake_generator):
    body = json.dumps(payload).replace('"weight": 70', '"weight": 1e400')

    response = test_client.post(
        "/api/analysis/9001",
        content=body,
        headers={**HEADERS, "Content-Type": "application/json"},
    )

    assert response.status_code == 422
    assert "profile.weight" in response.json()["message"]
    assert fake_generator.calls == 0


def test_samples_and_streams_are_mutually_exclusive(test_client: TestClient, payload):
    payload["streams"] = {"time": [0, 1, 2]}

    response = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    assert response.status_code == 422


def test_upstream_failure_maps_to_503(test_client: TestClient, payload, fake_generator):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    fake_generator.outcomes = [
        anthropic.InternalServerError(
            "Overloaded", response=httpx.Response(529, request=request), body=None
        )
    ]

    response = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    assert response.status_code == 503
    assert response.json()["error_kind"] == "upstream_unavailable"

    cached = test_client.get("/api/analysis/9001", headers=HEADERS)
    assert cached.status_code == 404


def test_rate_limit_sets_retry_after_header(test_client: TestClient, payload, fake_generator):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    fake_generator.outcomes = [
        anthropic.RateLimitError(
            "Too many requests",
            response=httpx.Response(429, headers={"retry-after": "17"}, request=request),
            body=None,
        )
    ]

    response = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    assert response.status_code == 429
    assert response.json() == {
        "error_kind": "rate_limited",
        "message": "The analysis service is rate limited. Try again in 17 seconds.",
        "retry_after_seconds": 17,
    }
    assert response.headers["Retry-After"] == "17"


def test_empty_result_maps_to_502(test_client: TestClient, payload, fake_generator):
    fake_generator.outcomes = [""]

    response = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    assert response.status_code == 502
    assert response.json()["error_kind"] == "empty_result"


def test_get_cached_analysis(test_client: TestClient, payload):
    assert test_client.get("/api/analysis/9001", headers=HEADERS).status_code == 404

    test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)
    response = test_client.get("/api/analysis/9001", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["is_cached"] is True

    other_user = test_client.get("/api/analysis/9001", headers={"X-User-Id": "someone-else"})
    assert other_user.status_code == 404


def test_delete_analysis(test_client: TestClient, payload):
    test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    response = test_client.delete("/api/analysis/9001", headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"status": "success", "message": "Analysis deleted"}

    assert test_client.delete("/api/analysis/9001", headers=HEADERS).status_code == 404
    assert test_client.get("/api/analysis/9001", headers=HEADERS).status_code == 404


def test_delete_all_analyses(test_client: TestClient, payload):
    for activity_id in (1, 2, 3):
        test_client.post(f"/api/analysis/{activity_id}", json=payload, headers=HEADERS)

    response = test_client.delete("/api/analysis", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"status": "success", "deleted": 3}


def test_usage_counts_successful_generations(test_client: TestClient, payload, fake_generator):
    before = test_client.get("/api/usage", headers=HEADERS).json()
    assert before["count"] == 0
    assert before["remaining"] == before["daily_limit"]

    test_client.post("/api/analysis/1", json=payload, headers=HEADERS)
    test_client.post("/api/analysis/1", json=payload, headers=HEADERS)  # cache hit
    fake_generator.outcomes = [""]
    test_client.post("/api/analysis/2", json=payload, headers=HEADERS)  # empty result

    after = test_client.get("/api/usage", headers=HEADERS).json()
    assert after["count"] == 1
    assert after["scope"] == "global"
    assert 0 < after["seconds_until_reset"] <= 25 * 3600


def test_usage_override_and_quota_exhaustion(test_client: TestClient, payload, fake_generator, admin_settings):
    limit = admin_settings.daily_generation_limit

    response = test_client.put("/api/usage", json={"count": limit}, headers=ADMIN_HEADERS)
    assert response.status_code == 200
    assert response.json()["remaining"] == 0

    blocked = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)
    assert blocked.status_code == 429
    assert blocked.json()["error_kind"] == "quota_exhausted"
    assert blocked.json()["retry_after_seconds"] > 0
    assert fake_generator.calls == 0


def test_usage_override_requires_admin(test_client: TestClient, payload, fake_generator, admin_settings):
    test_client.post("/api/analysis/1", json=payload, headers=HEADERS)

    response = test_client.put("/api/usage", json={"count": 0}, headers=HEADERS)

    assert response.status_code == 403
    assert response.json()["error_kind"] == "forbidden"
    assert test_client.get("/api/usage", headers=HEADERS).json()["count"] == 1


def test_usage_override_forbidden_without_admins(test_client: TestClient):
    response = test_client.put("/api/usage", json={"count": 0}, headers=HEADERS)

    assert response.status_code == 403


def test_usage_override_rejects_negative(test_client: TestClient, admin_settings):
    response = test_client.put("/api/usage", json={"count": -1}, headers=ADMIN_HEADERS)

    assert response.status_code == 422


def test_model_info(test_client: TestClient):
    response = test_client.get("/api/model")

    assert response.status_code == 200
    body = response.json()
    settings = get_settings()
    assert body["id"] == settings.anthropic_model
    assert body["limits"] == {"rpm": 5, "tpm": 250000, "rpd": 20}


def test_unexpected_error_returns_500(test_client: TestClient, payload, monkeypatch: pytest.MonkeyPatch):
    async def boom(self, *args, **kwargs):
        raise RuntimeError("database on fire")

    monkeypatch.setattr("workout_insight.routers.analysis.AnalysisOrchestrator.analyze", boom)

    response = test_client.post("/api/analysis/9001", json=payload, headers=HEADERS)

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to generate analysis"}
