"""
End-to-end tests for the relay server over HTTP and WebSocket.
"""
import time

import pytest
from fastapi.testclient import TestClient

import main


SLIDE = {"type": "content", "title": "Family composition requirements", "content": ["a", "b"], "timestamp": 1}


@pytest.fixture
def client():
    with TestClient(main.app) as test_client:
        yield test_client


def join(ws, room_name):
    ws.send_json({"type": "join-room", "roomName": room_name})
    assert ws.receive_json() == {"type": "room-joined", "roomName": room_name}
    welcome = ws.receive_json()
    assert welcome["type"] == "agent-message"
    assert welcome["data"]["type"] == "welcome"


def wait_for_connections(client, expected):
    for _ in range(200):
        if client.get("/health").json()["connections"] == expected:
            return True
        time.sleep(0.01)
    return False


class TestQueryEndpoints:

    def test_lessons(self, client):
        response = client.get("/api/lessons")
        assert response.status_code == 200
        lessons = response.json()
        assert list(lessons) == ["welcome", "eligibility", "application", "income", "payment", "voucher", "rights"]
        assert lessons["eligibility"]["topics"][0] == "Income limits and calculations"

    def test_single_lesson_and_fallback(self, client):
        assert client.get("/api/lesson/voucher").json()["title"] == "Voucher Process"
        assert client.get("/api/lesson/mystery").json() == {"title": "mystery", "description": "", "topics": []}

    def test_slide(self, client):
        data = client.get("/api/slide/eligibility/chart").json()
        assert data["type"] == "chart"
        assert data["chartData"][0]["label"] == "Family of 1"

    def test_unknown_slide_type(self, client):
        assert client.get("/api/slide/eligibility/pie").status_code == 422

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "rooms": {}, "connections": 0}

    def test_index_page(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "HCV Training System" in response.text


class TestAgentPushEndpoints:

    def test_slide_update_reaches_room(self, client):
        with client.websocket_connect("/ws") as ws:
            join(ws, "room-1")
            response = client.post("/api/agent/slide-update", json={"roomName": "room-1", "slideData": SLIDE})
            assert response.json() == {"success": True}

            event = ws.receive_json()
            assert event["type"] == "slide-update"
            assert event["data"]["type"] == "agent-slide"
            assert event["data"]["slideData"]["title"] == "Family composition requirements"
            assert event["data"]["slideData"]["content"] == ["a", "b"]

    def test_message_reaches_room(self, client):
        with client.websocket_connect("/ws") as ws:
            join(ws, "room-1")
            client.post("/api/agent/message", json={"roomName": "room-1", "message": "Hello there"})
            event = ws.receive_json()
            assert event["type"] == "agent-message"
            assert event["data"]["type"] == "agent-speech"
            assert event["data"]["message"] == "Hello there"

    def test_empty_room_still_succeeds(self, client):
        response = client.post("/api/agent/slide-update", json={"roomName": "nobody", "slideData": SLIDE})
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_invalid_body(self, client):
        response = client.post("/api/agent/slide-update", json={"roomName": "room-1", "slideData": {"type": "pie"}})
        assert response.status_code == 422

    def test_publish_failure_is_a_server_error(self, client, monkeypatch):
        async def broken_publish(room_name, message):
            raise RuntimeError("relay down")

        monkeypatch.setattr(main.relay, "publish", broken_publish)
        response = client.post("/api/agent/message", json={"roomName": "room-1", "message": "hi"})
        assert response.status_code == 500
        assert response.json() == {"error": "relay down"}

    def test_late_joiner_misses_earlier_events(self, client):
        client.post("/api/agent/message", json={"roomName": "room-1", "message": "before"})
        with client.websocket_connect("/ws") as ws:
            join(ws, "room-1")
            client.post("/api/agent/message", json={"roomName": "room-1", "message": "after"})
            assert ws.receive_json()["data"]["message"] == "after"

    def test_fan_out_is_room_scoped_and_ordered(self, client):
        with client.websocket_connect("/ws") as first, \
                client.websocket_connect("/ws") as second, \
                client.websocket_connect("/ws") as other:
            join(first, "room-1")
            join(second, "room-1")
            join(other, "room-2")

            for n in range(3):
                client.post("/api/agent/message", json={"roomName": "room-1", "message": f"m{n}"})
            client.post("/api/agent/message", json={"roomName": "room-2", "message": "only room-2"})

            for ws in (first, second):
                assert [ws.receive_json()["data"]["message"] for _ in range(3)] == ["m0", "m1", "m2"]
            assert other.receive_json()["data"]["message"] == "only room-2"

    def test_rejoin_moves_client(self, client):
        with client.websocket_connect("/ws") as ws:
            join(ws, "room-1")
            join(ws, "room-2")
            client.post("/api/agent/message", json={"roomName": "room-1", "message": "old room"})
            client.post("/api/agent/message", json={"roomName": "room-2", "message": "new room"})
            assert ws.receive_json()["data"]["message"] == "new room"
            assert client.get("/health").json()["rooms"] == {"room-2": 1}

    def test_disconnect_leaves_room(self, client):
        with client.websocket_connect("/ws") as ws:
            join(ws, "room-1")
            assert client.get("/health").json()["connections"] == 1
        assert wait_for_connections(client, 0)


class TestClientChannel:

    def test_request_slide(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "request-slide", "lesson": "voucher", "slideType": "process", "topicIndex": 1})
            event = ws.receive_json()
            assert event["type"] == "slide-update"
            assert event["data"]["type"] == "slide-generated"
            assert event["data"]["slideData"]["title"] == "Housing search process - Process Flow"

    def test_bad_slide_request(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "request-slide", "lesson": "voucher", "slideType": "pie"})
            assert ws.receive_json()["type"] == "error"

    def test_huge_topic_index_is_rejected(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text('{"type": "request-slide", "lesson": "voucher", "slideType": "title", "topicIndex": 1e400}')
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "request-slide", "lesson": "voucher", "slideType": "title"})
            assert ws.receive_json()["type"] == "slide-update"

    @pytest.mark.parametrize("msg_type", ["request-slide", "start-lesson", "next-topic"])
    @pytest.mark.parametrize("lesson", [5, ["payment"], {"key": "payment"}])
    def test_non_string_lesson_is_rejected(self, client, msg_type, lesson):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": msg_type, "lesson": lesson})
            error = ws.receive_json()
            assert error["type"] == "error"
            assert "lesson must be a string" in error["message"]
            ws.send_json({"type": "start-lesson", "lesson": "payment"})
            assert ws.receive_json()["data"]["type"] == "lesson-started"

    def test_lesson_acknowledgements(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "start-lesson", "lesson": "payment"})
            started = ws.receive_json()["data"]
            assert started["type"] == "lesson-started"
            assert "Payment Standards and Rent" in started["message"]

            ws.send_json({"type": "next-topic", "lesson": "payment"})
            progress = ws.receive_json()["data"]
            assert progress["type"] == "topic-progress"
            assert progress["lesson"] == "payment"

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "dance"})
            assert ws.receive_json() == {"type": "error", "message": "Unknown message type: 'dance'"}

    def test_non_json_message(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("hello")
            assert ws.receive_json()["type"] == "error"

    def test_join_requires_room_name(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join-room"})
            assert ws.receive_json()["type"] == "error"


def test_startup_fails_on_bad_catalog(tmp_path, monkeypatch):
    path = tmp_path / "lessons.json"
    path.write_text("{\"eligibility\": {\"title\": \"No welcome\"}}", encoding="utf-8")
    monkeypatch.setattr(main.settings, "LESSON_CATALOG_PATH", str(path))
    with pytest.raises(Exception):
        with TestClient(main.app):
            pass
