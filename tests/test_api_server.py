"""
Tests for the FastAPI server: response mapping for success, fallback and
failure, request validation and the health endpoint.
"""

import pytest
from fastapi.testclient import TestClient

from roadmap_pipeline.api.server import create_app
from roadmap_pipeline.config.container import setup_container
from roadmap_pipeline.core.errors import GenerationError, GenerationErrorKind

ZONES = {
    "clarity": "Development",
    "engagement": "Balanced",
    "preparation": "Development",
    "support": "Proficiency",
}


@pytest.fixture
def make_client(settings, store):
    """Build a TestClient whose container uses the given generator and a tmp store."""
    clients = []

    def _make(generator):
        container = setup_container(settings)
        container.register_singleton("generation_client", generator)
        container.register_singleton("assessment_store", store)
        client = TestClient(create_app(container))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


class TestGenerateEndpoint:
    def test_success(self, make_client, make_generator, valid_response_text, store):
        client = make_client(make_generator([valid_response_text]))

        response = client.post(
            "/roadmaps/generate",
            json={"subject_id": "student-7", **ZONES, "preferences": {"interests": "art"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["fallback"] is False
        assert body["session_id"].startswith("assessment_")
        assert len(body["step_history"]) == 6
        assert len(body["data"]["roadmap"]) == 4
        assert body["data"]["success"] is True
        assert "generated_at" in body["data"]
        assert set(body["data"]["scores_summary"]) >= {"Clarity", "overall_stage"}
        assert store.get("student-7", body["session_id"]) is not None

    def test_fallback_is_success_with_flag(self, make_client, make_generator):
        client = make_client(make_generator(["Not JSON at all."]))

        response = client.post("/roadmaps/generate", json={"subject_id": "s", **ZONES})

        assert response.status_code == 200
        body = response.json()
        assert body["fallback"] is True
        assert body["data"]["roadmap"] == []
        assert body["data"]["error"] == "Invalid JSON response from AI service"

    def test_failure_maps_to_500(self, make_client, make_generator):
        client = make_client(
            make_generator([GenerationError(GenerationErrorKind.RATE_LIMIT, detail="429")])
        )

        response = client.post("/roadmaps/generate", json={"subject_id": "s", **ZONES})

        assert response.status_code == 500
        assert response.json() == {
            "error": "Rate limit exceeded: AI service usage limit reached",
            "error_code": "generation.rate_limit",
            "retryable": True,
            "data": None,
        }

    def test_domain_failure(self, make_client, make_generator):
        client = make_client(make_generator(["{}"]))

        response = client.post(
            "/roadmaps/generate", json={"subject_id": "s", **ZONES, "support": "Expert"}
        )

        assert response.status_code == 500
        assert response.json()["error_code"] == "domain"
        assert response.json()["retryable"] is False

    def test_answers_accepted_instead_of_zones(
        self, make_client, make_generator, valid_response_text
    ):
        generator = make_generator([valid_response_text])
        client = make_client(generator)

        response = client.post(
            "/roadmaps/generate",
            json={"subject_id": "s", "answers": list("DDDDDDDDDDDD"), "session_id": "sess-9"},
        )

        assert response.status_code == 200
        assert response.json()["session_id"] == "sess-9"
        assert "Clarity: Proficiency" in generator.prompts[0]

    @pytest.mark.parametrize(
        "payload",
        [
            {"clarity": "Development"},
            {"subject_id": "", **ZONES},
            {"subject_id": "s", "clarity": "Development"},
            {"subject_id": "s", "answers": ["A"] * 11},
            {"subject_id": "s", "answers": ["Z"] * 12},
        ],
    )
    def test_malformed_body_is_422(self, make_client, make_generator, payload):
        generator = make_generator(["{}"])
        client = make_client(generator)

        response = client.post("/roadmaps/generate", json=payload)

        assert response.status_code == 422
        assert generator.calls == 0


class TestHealthEndpoint:
    def test_health(self, make_client, make_generator):
        client = make_client(make_generator([]))

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["components"]["store"] == "local"
        assert body["components"]["generation"] == "missing_api_key"
        assert body["uptime_seconds"] >= 0
