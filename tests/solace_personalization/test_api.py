"""
Tests for the personalization API endpoints and application factory.
"""
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from solace_personalization.api import ContextRequest, router, set_dependencies
from solace_personalization.config import PersonalizationSettings
from solace_personalization.main import create_app
from solace_personalization.models import TimeOfDay

PREFIX = "/api/v1/personalization"


@pytest.fixture
def client():
    """Test client running the application lifespan."""
    app = create_app(PersonalizationSettings())
    with TestClient(app) as test_client:
        yield test_client


class TestContextRequest:

    def test_to_context(self):
        context = ContextRequest(mood="worried", stress_level=3).to_context()

        assert context.mood.emotion == "worried"
        assert context.stress_level == 3
        assert isinstance(context.time_of_day, TimeOfDay)

    def test_rejects_out_of_range_levels(self):
        with pytest.raises(ValueError):
            ContextRequest(anxiety_level=12)


class TestHealthEndpoints:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "personalization-service"

    def test_health_and_ready(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/ready").json() == {"status": "ready"}

    def test_correlation_id_header(self, client):
        echoed = client.get("/health", headers={"X-Correlation-ID": "req-42"})
        generated = client.get("/health")

        assert echoed.headers["X-Correlation-ID"] == "req-42"
        assert generated.headers["X-Correlation-ID"]

    def test_router_health(self, client):
        body = client.get(f"{PREFIX}/health").json()

        assert body["service"] == "initialized"
        assert body["publisher_running"] is True


class TestUninitialized:

    def test_returns_503(self):
        set_dependencies(None)
        app = FastAPI()
        app.include_router(router)

        response = TestClient(app).get(f"{PREFIX}/patterns/user-1")

        assert response.status_code == 503

    def test_ready_before_startup(self):
        client = TestClient(create_app(PersonalizationSettings()))

        assert client.get("/ready").json()["status"] == "not_ready"


class TestInteractionEndpoints:

    def test_track_interaction(self, client):
        response = client.post(f"{PREFIX}/interactions", json={
            "user_id": "user-1",
            "type": "breathing_exercise",
            "payload": {"completed": True, "user_rating": 5},
            "context": {"mood": "anxious"},
        })

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "breathing_exercise"
        assert body["payload"]["user_rating"] == 5
        assert body["context"]["mood"]["emotion"] == "anxious"

    def test_invalid_payload_422(self, client):
        response = client.post(f"{PREFIX}/interactions", json={
            "user_id": "user-1", "type": "meditation", "payload": {"user_rating": 9},
        })

        assert response.status_code == 422

    def test_unknown_type_422(self, client):
        response = client.post(f"{PREFIX}/interactions", json={"user_id": "user-1", "type": "teleport"})

        assert response.status_code == 422

    def test_patterns(self, client):
        for _ in range(2):
            client.post(f"{PREFIX}/interactions", json={"user_id": "user-1", "type": "meditation"})

        body = client.get(f"{PREFIX}/patterns/user-1").json()

        assert body["total_interactions"] == 2
        assert body["content_preferences"]["activity_types"] == {"meditation": 2}


class TestRecommendationEndpoints:

    def test_fallback_without_body(self, client):
        response = client.post(f"{PREFIX}/recommendations/user-1")

        assert response.status_code == 200
        assert response.json()["source"] == "fallback"

    def test_safety_override(self, client):
        response = client.post(f"{PREFIX}/recommendations/user-1", json={
            "context": {"anxiety_level": 9},
            "base": [{"type": "physical_exercise", "score": 0.9}],
        })

        body = response.json()
        assert body["stress_level"] == "critical"
        assert body["immediate_action"] is True
        assert body["items"][0]["type"] == "crisis_support"
        assert "physical_exercise" not in {i["type"] for i in body["items"]}

    def test_recommendation_event(self, client):
        response = client.post(f"{PREFIX}/recommendation-events", json={
            "user_id": "user-1", "recommendation_id": "rec-1", "action": "accept", "category": "mood",
        })

        assert response.status_code == 200
        assert response.json()["accepted"] is True
        assert response.json()["event"]["category"] == "mood"

    def test_analytics_summary(self, client):
        client.post(f"{PREFIX}/recommendation-events", json={
            "user_id": "user-1", "recommendation_id": "rec-1", "action": "impression", "category": "mood",
        })

        body = client.get(f"{PREFIX}/analytics/user-1", params={"window_days": 7}).json()

        assert body["performance_overview"]["total_interactions"] == 1
        assert "mood" in body["category_analysis"]

    def test_peer_matches(self, client):
        body = client.get(f"{PREFIX}/peers/user-1", params={"limit": 5}).json()

        assert body["user_id"] == "user-1"
        assert body["support_partners"] == []


class TestRefreshEndpoints:

    def test_trigger_refresh(self, client):
        body = client.post(f"{PREFIX}/refresh/user-1").json()

        assert body["success"] is True
        assert body["results"]["content"]["count"] == 2

        stats = client.get(f"{PREFIX}/refresh/user-1/statistics").json()
        assert stats["total_refreshes"] == 1

    def test_session_start_and_stop(self, client):
        started = client.post(f"{PREFIX}/refresh/user-1/session").json()

        assert started["active"] is True
        assert 300 <= started["interval_seconds"] <= 3600
        assert client.delete(f"{PREFIX}/refresh/user-1").status_code == 200
        assert client.delete(f"{PREFIX}/refresh/user-1").status_code == 200
