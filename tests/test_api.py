"""
Tests for the HTTP API and the /ws/session WebSocket.
"""
import json
import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from storycapture.main import app

from tests.fakes import FakeDiarizationProvider

TEST_ENV = {
    "UPLOAD_BACKEND": "none",
    "SEGMENT_STORE_ENABLED": "false",
    "SEGMENT_WINDOW_MS": "60000",
    "LOG_FILE": "",
}


def receive_until(ws, message_type):
    """Read messages until one of message_type arrives; return all read."""
    messages = []
    while True:
        message = json.loads(ws.receive_text())
        messages.append(message)
        if message["type"] == message_type:
            return messages


class TestApi(unittest.TestCase):
    """Tests for the FastAPI app."""

    def setUp(self):
        self.env = patch.dict(os.environ, TEST_ENV)
        self.env.start()
        app.state.provider = FakeDiarizationProvider()
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        app.state.provider = None
        self.env.stop()

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_unknown_session_is_404(self):
        self.assertEqual(self.client.get("/api/sessions/nope/stats").status_code, 404)
        self.assertEqual(self.client.get("/api/sessions/nope").status_code, 404)

    def test_session_over_websocket(self):
        """start -> audio -> stop yields session, segment and complete events."""
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_text(json.dumps({"action": "start"}))
            started = json.loads(ws.receive_text())
            self.assertEqual(started["type"], "session")
            session_id = started["session_id"]

            live = self.client.get(f"/api/sessions/{session_id}/stats")
            self.assertEqual(live.status_code, 200)
            self.assertTrue(live.json()["is_active"])

            ws.send_bytes(b"\x10\x00" * 3200)
            ws.send_text(json.dumps({"action": "stop"}))
            messages = receive_until(ws, "complete")

        types = [m["type"] for m in messages]
        self.assertIn("segment", types)
        segment = next(m for m in messages if m["type"] == "segment")
        self.assertEqual(segment["segment"]["segment_number"], 1)
        self.assertEqual(segment["segment"]["status"], "processed")
        complete = messages[-1]["session"]
        self.assertEqual(complete["session_id"], session_id)
        self.assertEqual(complete["end_reason"], "user_stop")
        self.assertEqual(complete["stats"]["turn_count"], 2)

        stats = self.client.get(f"/api/sessions/{session_id}/stats").json()
        self.assertEqual(stats["turn_count"], 2)
        self.assertEqual(stats["elderly_turns"], 1)
        self.assertEqual(stats["young_adult_turns"], 1)
        self.assertFalse(stats["is_active"])

        detail = self.client.get(f"/api/sessions/{session_id}").json()
        self.assertEqual(detail["state"], "ended")
        self.assertEqual(len(detail["segments"]), 1)
        self.assertEqual([t["role"] for t in detail["turns"]], ["elderly", "young_adult"])

    def test_websocket_errors(self):
        """Commands in the wrong state or unknown actions answer with error events."""
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_text(json.dumps({"action": "rotate"}))
            error = json.loads(ws.receive_text())
            self.assertEqual(error["type"], "error")
            self.assertEqual(error["code"], "session_not_active")

            ws.send_text(json.dumps({"action": "dance"}))
            self.assertEqual(json.loads(ws.receive_text())["type"], "error")

            ws.send_text("not json")
            self.assertEqual(json.loads(ws.receive_text())["code"], "bad_request")

    def test_second_start_on_same_socket_is_rejected(self):
        with self.client.websocket_connect("/ws/session") as ws:
            ws.send_text(json.dumps({"action": "start"}))
            self.assertEqual(json.loads(ws.receive_text())["type"], "session")

            ws.send_text(json.dumps({"action": "start"}))
            error = json.loads(ws.receive_text())
            self.assertEqual(error["code"], "session_already_active")

            ws.send_text(json.dumps({"action": "stop"}))
            receive_until(ws, "complete")


if __name__ == '__main__':
    unittest.main()
