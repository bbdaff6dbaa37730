"""
End-to-end tests for the challenge REST and WebSocket endpoints.
"""

import pytest
from fastapi.testclient import TestClient

import challenge_service.router as challenge_router
from challenge_service.models import ChallengeSessionHandler
from main import app


API = "/api/challenge"


@pytest.fixture
def api(monkeypatch, library, clock):
    """Client whose sessions skip the countdown and run on the fake clock."""
    handler = ChallengeSessionHandler(library=library, max_sessions=3)
    original_create = handler.create_session

    def create_session(user_id, pose_slugs=None):
        return original_create(user_id, pose_slugs, clock=clock, countdown_seconds=0)

    monkeypatch.setattr(handler, "create_session", create_session)
    monkeypatch.setattr(challenge_router, "_pose_library", library)
    monkeypatch.setattr(challenge_router, "_session_handler", handler)

    with TestClient(app) as client:
        yield client


def _start(api, **body) -> str:
    body.setdefault("user_id", "user-1")
    response = api.post(f"{API}/session/start", json=body)
    assert response.status_code == 200
    return response.json()["session_id"]


# ═══════════════════════════════════════════════════════════════════════════════
# POSE LIBRARY
# ═══════════════════════════════════════════════════════════════════════════════

class TestPoseEndpoints:

    def test_list_poses(self, api):
        data = api.get(f"{API}/poses").json()

        assert data["total"] == 2
        assert {p["slug"] for p in data["poses"]} == {"knee-hold", "squat-hold"}

    def test_get_pose(self, api):
        response = api.get(f"{API}/poses/knee-hold")

        assert response.status_code == 200
        assert response.json()["target_angles"] == {"knee": 90}

    def test_unknown_pose_is_404(self, api):
        assert api.get(f"{API}/poses/handstand").status_code == 404

    def test_default_levels(self, api):
        data = api.get(f"{API}/levels").json()
        assert [lvl["slug"] for lvl in data["levels"]] == ["knee-hold", "squat-hold"]


# ═══════════════════════════════════════════════════════════════════════════════
# REST SESSION FLOW
# ═══════════════════════════════════════════════════════════════════════════════

class TestSessionFlow:

    def test_full_challenge(self, api, clock):
        session_id = _start(api)
        base = f"{API}/session/{session_id}"

        assert api.post(f"{base}/begin").status_code == 409

        assert api.post(f"{base}/camera", json={"active": True}).json()["state"] == "camera_ready"
        assert api.post(f"{base}/begin").json()["state"] == "holding"

        first = api.post(f"{base}/frame", json={"angles": {"knee": 85}}).json()
        assert first["status"] == "scored"
        assert first["similarity"] == 50
        assert first["feedback"] == ["Straighten your knee by about 5°"]

        clock.advance(3)
        done = api.post(f"{base}/frame", json={"angles": {"knee": 90}}).json()
        assert done["completed"] is True
        assert done["state"] == "level_complete"
        assert done["result"]["accuracy"] == 100

        assert api.get(f"{base}/summary").status_code == 409

        status = api.post(f"{base}/next").json()
        assert status["level"] == 2
        assert status["ledger"]["scores"][0] == done["result"]["overall_score"]

        skipped = api.post(f"{base}/skip").json()
        assert skipped["status"] == "skipped"
        assert skipped["result"]["overall_score"] == 0
        assert skipped["session"]["state"] == "challenge_complete"

        summary = api.get(f"{base}/summary").json()
        assert summary["level_scores"][1] == 0
        assert summary["levels"][1]["display"] == "—"

        report = api.get(f"{base}/report")
        assert report.status_code == 200
        assert report.headers["content-type"] == "image/png"
        assert report.content.startswith(b"\x89PNG")

    def test_frames_before_hold_are_ignored(self, api):
        session_id = _start(api)
        response = api.post(f"{API}/session/{session_id}/frame", json={"angles": {"knee": 90}})

        assert response.json() == {"status": "ignored", "state": "idle"}

    def test_reset_returns_to_camera_ready(self, api):
        session_id = _start(api)
        base = f"{API}/session/{session_id}"
        api.post(f"{base}/camera", json={"active": True})
        api.post(f"{base}/begin")
        api.post(f"{base}/frame", json={"angles": {"knee": 70}})

        status = api.post(f"{base}/reset").json()

        assert status["state"] == "camera_ready"
        assert status["hold_progress"] == 0.0

    def test_camera_off_drops_to_idle(self, api):
        session_id = _start(api)
        base = f"{API}/session/{session_id}"
        api.post(f"{base}/camera", json={"active": True})

        assert api.post(f"{base}/camera", json={"active": False}).json()["state"] == "idle"

    def test_custom_level_order(self, api):
        response = api.post(f"{API}/session/start", json={"user_id": "user-1", "pose_slugs": ["squat-hold"]})
        data = response.json()

        assert [lvl["slug"] for lvl in data["levels"]] == ["squat-hold"]
        assert data["websocket_url"].endswith(data["session_id"])

    def test_invalid_requests(self, api):
        assert api.post(f"{API}/session/start", json={"user_id": "u", "pose_slugs": ["nope"]}).status_code == 404
        assert api.get(f"{API}/session/missing").status_code == 404
        assert api.post(f"{API}/session/missing/begin").status_code == 404

        session_id = _start(api)
        response = api.post(f"{API}/session/{session_id}/frame", json={"angles": {"knee": "bent"}})
        assert response.status_code == 422

    def test_session_limit(self, api):
        for _ in range(3):
            _start(api)

        response = api.post(f"{API}/session/start", json={"user_id": "user-4"})
        assert response.status_code == 503

    def test_completed_sessions_free_their_slot(self, api):
        for idx in range(3):
            session_id = _start(api, user_id=f"user-{idx}", pose_slugs=["knee-hold"])
            skipped = api.post(f"{API}/session/{session_id}/skip").json()
            assert skipped["session"]["state"] == "challenge_complete"
            assert api.get(f"{API}/session/{session_id}/summary").status_code == 200

        response = api.post(f"{API}/session/start", json={"user_id": "user-4"})

        assert response.status_code == 200
        assert api.get("/stats").json()["sessions"]["active_sessions"] == 1

    def test_delete_session(self, api):
        session_id = _start(api)

        assert api.delete(f"{API}/session/{session_id}").json()["status"] == "removed"
        assert api.get(f"{API}/session/{session_id}").status_code == 404
        assert api.delete(f"{API}/session/{session_id}").status_code == 404

    def test_health_counts_sessions(self, api):
        _start(api)
        assert api.get("/health").json()["active_sessions"] == 1


# ═══════════════════════════════════════════════════════════════════════════════
# WEBSOCKET
# ═══════════════════════════════════════════════════════════════════════════════

class TestWebSocket:

    def test_challenge_over_websocket(self, api, clock):
        session_id = _start(api)

        with api.websocket_connect(f"{API}/ws/session/{session_id}") as ws:
            assert ws.receive_json()["type"] == "SESSION_CONNECTED"

            ws.send_json({"type": "camera", "active": True})
            assert ws.receive_json()["session"]["state"] == "camera_ready"

            ws.send_json({"type": "begin"})
            assert ws.receive_json()["type"] == "COUNTDOWN_STARTED"

            ws.send_json({"type": "pose", "angles": {"knee": 90}})
            live = ws.receive_json()
            assert live["type"] == "LIVE_UPDATE"
            assert live["similarity"] == 100

            clock.advance(3)
            ws.send_json({"type": "pose", "angles": {"knee": 90}})
            completed = ws.receive_json()
            assert completed["type"] == "LEVEL_COMPLETED"
            assert completed["result"]["overall_score"] == 100

            ws.send_json({"type": "next"})
            assert ws.receive_json()["type"] == "LEVEL_STARTED"

            ws.send_json({"type": "skip"})
            assert ws.receive_json()["type"] == "LEVEL_SKIPPED"

            ws.send_json({"type": "status"})
            status = ws.receive_json()
            assert status["session"]["state"] == "challenge_complete"
            assert status["session"]["ledger"]["total_score"] == 50

    def test_bad_messages_get_errors(self, api):
        session_id = _start(api)

        with api.websocket_connect(f"{API}/ws/session/{session_id}") as ws:
            ws.receive_json()

            ws.send_json({"type": "dance"})
            assert ws.receive_json()["error_code"] == "INVALID_MESSAGE"

            ws.send_json({"type": "next"})
            error = ws.receive_json()
            assert error["success"] is False

            ws.send_json({"type": "status"})
            assert ws.receive_json()["type"] == "STATUS"

    def test_malformed_messages_keep_socket_alive(self, api):
        session_id = _start(api)
        base = f"{API}/session/{session_id}"
        api.post(f"{base}/camera", json={"active": True})
        api.post(f"{base}/begin")

        with api.websocket_connect(f"{API}/ws/session/{session_id}") as ws:
            ws.receive_json()

            ws.send_json([1, 2])
            assert ws.receive_json()["error_code"] == "INVALID_MESSAGE"

            ws.send_text("not json")
            assert ws.receive_json()["error_code"] == "INVALID_MESSAGE"

            ws.send_json({"type": "pose", "angles": [1, 2]})
            assert ws.receive_json()["error_code"] == "INVALID_MESSAGE"

            ws.send_json({"type": "status"})
            assert ws.receive_json()["session"]["state"] == "holding"

        status = api.get(base).json()
        assert status["state"] == "camera_ready"

    def test_unknown_session(self, api):
        with api.websocket_connect(f"{API}/ws/session/missing") as ws:
            message = ws.receive_json()

        assert message["error_code"] == "SESSION_NOT_FOUND"
