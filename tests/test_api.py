"""
API Endpoint Tests

Tests for FastAPI endpoints using TestClient. Sessions live in memory, so
no external services are needed. All sessions use unique ids for isolation.
"""

import time

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

# Load environment variables
load_dotenv()

from main import app

from tests.conftest import frame_dict


def unique_id(prefix: str) -> str:
    """Generate unique ID with timestamp for test isolation."""
    return f"test_{prefix}_{time.time_ns()}"


def keystroke_payload(session_id: str, batch_index: int = 0, count: int = 5, start: float = 0.0):
    keystrokes = [
        {"key": "a", "code": "KeyA", "timestamp": start + i * 120, "targetType": "text"}
        for i in range(count)
    ]
    return {
        "sessionId": session_id,
        "batchIndex": batch_index,
        "keystrokes": keystrokes,
        "startTime": start,
        "endTime": start + count * 120,
    }


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="module")
def client():
    """TestClient for FastAPI app with lifespan context."""
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client


@pytest.fixture
def session_id(client):
    """A freshly created session."""
    sid = unique_id("sess")
    response = client.post("/sessions", json={"sessionId": sid})
    assert response.status_code == 201
    return sid


# =============================================================================
# Health Check Tests
# =============================================================================

class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_returns_200(self, client):
        """Health endpoint should return 200."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data


# =============================================================================
# Session Endpoint Tests
# =============================================================================

class TestSessionEndpoints:
    """Session lifecycle over HTTP."""

    def test_create_returns_status(self, client):
        sid = unique_id("create")
        response = client.post("/sessions", json={"sessionId": sid, "thresholds": {"squintThreshold": 70}})
        assert response.status_code == 201

        data = response.json()
        assert data["sessionId"] == sid
        assert data["totalKeystrokes"] == 0
        assert len(data["trackerStates"]) == 12

    def test_duplicate_returns_409(self, client, session_id):
        response = client.post("/sessions", json={"sessionId": session_id})
        assert response.status_code == 409

    def test_invalid_thresholds_still_create(self, client):
        sid = unique_id("bad_thresholds")
        response = client.post("/sessions", json={"sessionId": sid, "thresholds": {"squintThreshold": -1}})
        assert response.status_code == 201

    def test_empty_session_id_returns_422(self, client):
        response = client.post("/sessions", json={"sessionId": ""})
        assert response.status_code == 422

    def test_status(self, client, session_id):
        response = client.get(f"/sessions/{session_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["framesProcessed"] == 0
        assert data["secondsSinceLastFrame"] is None

    def test_unknown_status_returns_404(self, client):
        response = client.get(f"/sessions/{unique_id('missing')}")
        assert response.status_code == 404

    def test_delete(self, client, session_id):
        response = client.delete(f"/sessions/{session_id}")
        assert response.status_code == 204

        assert client.get(f"/sessions/{session_id}").status_code == 404
        assert client.delete(f"/sessions/{session_id}").status_code == 404


# =============================================================================
# Keystroke Stream Tests
# =============================================================================

class TestKeystrokeStreamEndpoint:
    """Test keystroke stream endpoint."""

    def test_valid_batch(self, client, session_id):
        response = client.post("/stream/keystrokes", json=keystroke_payload(session_id))
        assert response.status_code == 200

        data = response.json()
        assert data == {"success": True, "batchIndex": 0, "keystrokeCount": 5}

    def test_duplicate_batch_not_successful(self, client, session_id):
        payload = keystroke_payload(session_id)
        client.post("/stream/keystrokes", json=payload)
        response = client.post("/stream/keystrokes", json=payload)
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_unknown_session_returns_404(self, client):
        response = client.post("/stream/keystrokes", json=keystroke_payload(unique_id("ghost")))
        assert response.status_code == 404

    def test_negative_batch_index_not_successful(self, client, session_id):
        response = client.post("/stream/keystrokes", json=keystroke_payload(session_id, batch_index=-1))
        assert response.status_code == 200
        assert response.json() == {"success": False, "batchIndex": -1, "keystrokeCount": 0}

    def test_malformed_batch_echoes_index(self, client, session_id):
        payload = keystroke_payload(session_id, batch_index=3)
        payload["startTime"] = "yesterday"
        response = client.post("/stream/keystrokes", json=payload)
        assert response.status_code == 200
        assert response.json() == {"success": False, "batchIndex": 3, "keystrokeCount": 0}

    @pytest.mark.parametrize("body", [{"sessionId": "x"}, [1, 2, 3], "text"])
    def test_unparseable_body_not_successful(self, client, body):
        response = client.post("/stream/keystrokes", json=body)
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_malformed_batch_leaves_session_untouched(self, client, session_id):
        payload = keystroke_payload(session_id)
        del payload["batchIndex"]
        assert client.post("/stream/keystrokes", json=payload).json()["success"] is False

        response = client.post("/stream/keystrokes", json=keystroke_payload(session_id))
        assert response.json() == {"success": True, "batchIndex": 0, "keystrokeCount": 5}

    def test_password_keys_accepted(self, client, session_id):
        payload = keystroke_payload(session_id)
        payload["keystrokes"][0]["isPassword"] = True
        response = client.post("/stream/keystrokes", json=payload)
        assert response.json()["success"] is True


# =============================================================================
# Face Stream Tests
# =============================================================================

class TestFaceStreamEndpoint:
    """Test face frame stream endpoint."""

    def test_quiet_frame_returns_empty_list(self, client, session_id):
        response = client.post(f"/stream/face/{session_id}", json=frame_dict(0))
        assert response.status_code == 200
        assert response.json() == []

    def test_multiple_faces_event(self, client, session_id):
        client.post(f"/stream/face/{session_id}", json=frame_dict(0))
        response = client.post(f"/stream/face/{session_id}", json=frame_dict(33, face_count=2))
        assert response.status_code == 200

        events = response.json()
        assert [e["type"] for e in events] == ["multiple_faces_detected"]
        assert events[0]["frameTimestamp"] == 33
        assert events[0]["severity"] == "warning"
        assert events[0]["data"]["faceCount"] == 2

    def test_malformed_frame_returns_empty_list(self, client, session_id):
        response = client.post(f"/stream/face/{session_id}", json={"timestamp": "soon"})
        assert response.status_code == 200
        assert response.json() == []

        status = client.get(f"/sessions/{session_id}").json()
        assert status["framesDiscarded"] == 1

    def test_unknown_session_returns_404(self, client):
        response = client.post(f"/stream/face/{unique_id('ghost')}", json=frame_dict(0))
        assert response.status_code == 404


# =============================================================================
# Typing Analysis Tests
# =============================================================================

class TestTypingAnalysisEndpoint:
    """Test typing analysis endpoint."""

    def test_analysis_after_batches(self, client, session_id):
        client.post("/stream/keystrokes", json=keystroke_payload(session_id, 0))
        client.post("/stream/keystrokes", json=keystroke_payload(session_id, 1, start=2000))

        response = client.get(f"/sessions/{session_id}/typing-analysis")
        assert response.status_code == 200

        data = response.json()
        assert data["sessionId"] == session_id
        assert data["totalKeystrokes"] == 10
        assert data["totalBatches"] == 2
        assert data["riskLevel"] in ("low", "medium", "high")
        assert 0 <= data["riskScore"] <= 100
        assert "interKeyInterval" in data
        assert "suspiciousPatterns" in data

    def test_empty_session_analysis(self, client, session_id):
        data = client.get(f"/sessions/{session_id}/typing-analysis").json()
        assert data["totalKeystrokes"] == 0
        assert data["riskScore"] == 0

    def test_unknown_session_returns_404(self, client):
        response = client.get(f"/sessions/{unique_id('ghost')}/typing-analysis")
        assert response.status_code == 404
