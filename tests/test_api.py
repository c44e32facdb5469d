"""
Tests for the resilient LLM API.
"""

import json

import pytest
from fastapi.testclient import TestClient

from resilient_llm.api.app import create_app
from resilient_llm.exceptions import UpstreamAPIError

MESSAGE_REQUEST = {
    "messages": [{"role": "user", "content": "What does this service do?"}],
    "model": "test-model",
    "temperature": 0.7,
    "session_id": "session-1",
}


@pytest.fixture
def client(service):
    """Create a test client around the fake-backed service."""
    return TestClient(create_app(service))


def parse_sse(body: str) -> list[tuple[str | None, dict]]:
    """Split a server-sent event body into (event name, data) pairs."""
    frames = []
    for block in body.strip().split("\n\n"):
        event = None
        data = None
        for line in block.splitlines():
            if line.startswith("event: "):
                event = line[len("event: ") :]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: ") :])
        frames.append((event, data))
    return frames


def test_root(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Resilient LLM API"
    assert "messages" in data["endpoints"]


def test_health(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "cache_healthy": True, "cache_enabled": True}


def test_send_message(client, upstream):
    """Test message endpoint."""
    response = client.post("/messages", json=MESSAGE_REQUEST)
    assert response.status_code == 200
    data = response.json()
    assert data["content"] == upstream.content
    assert data["model"] == "test-model"
    assert data["usage"]["input_tokens"] == 10
    assert data["response_time_ms"] >= 0


def test_send_message_cached(client, upstream):
    """Test repeated messages are served from the cache."""
    client.post("/messages", json=MESSAGE_REQUEST)
    client.post("/messages", json=MESSAGE_REQUEST)

    assert upstream.complete_calls == 1
    stats = client.get("/stats").json()
    assert stats["requests"]["cached"] == 1
    assert stats["cache"]["hits"] == 1


def test_send_message_classified_error(client, upstream):
    """Test classified errors map to HTTP status and user payload."""
    upstream.failures = [UpstreamAPIError(401, "invalid x-api-key")]

    response = client.post("/messages", json=MESSAGE_REQUEST)

    assert response.status_code == 401
    detail = response.json()["detail"]
    assert detail["code"] == "AUTH_INVALID_API_KEY"
    assert detail["retryable"] is False
    assert detail["actions"][0]["action"] == "open_provider_settings"


def test_send_message_validation(client):
    """Test invalid requests are rejected before reaching the service."""
    assert client.post("/messages", json={"messages": []}).status_code == 422
    assert client.post("/messages", json={**MESSAGE_REQUEST, "temperature": 5}).status_code == 422


def test_stream_message(client, upstream):
    """Test streaming endpoint emits content frames then done."""
    response = client.post("/messages/stream", json=MESSAGE_REQUEST)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = parse_sse(response.text)
    assert all(event is None for event, _ in frames)
    assert "".join(d["content"] for _, d in frames if d["type"] == "content") == upstream.content
    assert frames[-1][1]["type"] == "done"
    assert frames[-1][1]["cached"] is False


def test_stream_message_error(client, upstream):
    """Test streaming failures end with an error frame."""
    upstream.failures = [UpstreamAPIError(503, "unavailable")]

    response = client.post("/messages/stream", json=MESSAGE_REQUEST)

    frames = parse_sse(response.text)
    assert frames[-1][0] == "error"
    assert frames[-1][1]["code"] == "API_OVERLOADED"


def test_cache_analytics_and_patterns(client):
    """Test cache analytics and popular patterns endpoints."""
    client.post("/messages", json=MESSAGE_REQUEST)
    client.post("/messages", json=MESSAGE_REQUEST)

    analytics = client.get("/cache/analytics").json()
    assert analytics["total_entries"] == 1
    assert analytics["total_hits"] == 1

    patterns = client.get("/cache/patterns", params={"limit": 1}).json()
    assert len(patterns) == 1
    assert patterns[0]["prompt_preview"] == "What does this service do?"


def test_update_cache_config(client):
    """Test runtime cache configuration."""
    response = client.patch("/cache/config", json={"ttl_seconds": 60, "max_entries": 10})
    assert response.status_code == 200
    cache = response.json()["cache"]
    assert cache["ttl_seconds"] == 60
    assert cache["max_entries"] == 10

    assert client.patch("/cache/config", json={"max_entries": 0}).status_code == 422


def test_clear_cache(client):
    """Test clear cache endpoint."""
    client.post("/messages", json=MESSAGE_REQUEST)

    response = client.delete("/cache")
    assert response.status_code == 200
    assert response.json()["deleted_count"] == 1


def test_reset(client):
    """Test reset endpoint."""
    client.post("/messages", json=MESSAGE_REQUEST)

    assert client.post("/reset").status_code == 200
    stats = client.get("/stats").json()
    assert stats["requests"]["total"] == 0
    assert stats["cache"]["size"] == 0


def test_error_history(client, upstream):
    """Test error stats and history clearing."""
    upstream.failures = [UpstreamAPIError(404, "model not found")]
    client.post("/messages", json=MESSAGE_REQUEST)

    stats = client.get("/errors/stats").json()
    assert stats["total_errors"] == 1
    assert stats["most_common_error"] == "API_MODEL_NOT_FOUND"
    assert stats["recent_errors"][0]["code"] == "API_MODEL_NOT_FOUND"

    assert client.delete("/errors/history").status_code == 200
    assert client.get("/errors/stats").json()["total_errors"] == 0
