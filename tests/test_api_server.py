"""
Tests for the FastAPI relay server: health endpoints and the /ws socket.
"""

import json

import pytest
from fastapi.testclient import TestClient

from travelbuddy.config import OpenAIConfig, RelayConfig, WeatherConfig
from travelbuddy.realtime.events import encode_frame
from travelbuddy.realtime.relay import RelayServer


@pytest.fixture
def client(relay):
    """Test client with the relay injected before startup."""
    import api_server

    api_server.app.state.relay = relay
    with TestClient(api_server.app) as test_client:
        yield test_client
    api_server.app.state.relay = None


def receive(ws):
    frame = json.loads(ws.receive_text())
    return frame["event"], frame["data"]


class TestHealth:
    """Tests for HTTP endpoints."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "message": "TravelBuddy Server is running",
            "websocket": "Connect via WebSocket on /ws",
        }

    def test_health_reports_credentials(self, client):
        response = client.get("/api/health")

        assert response.json() == {
            "status": "healthy",
            "weather_configured": True,
            "openai_configured": True,
        }

    def test_health_with_missing_credentials(self, weather_provider, llm_provider):
        import api_server

        api_server.app.state.relay = RelayServer(
            RelayConfig(weather=WeatherConfig(api_key=""), openai=OpenAIConfig(api_key="")),
            weather_provider=weather_provider,
            llm_provider=llm_provider,
        )
        try:
            with TestClient(api_server.app) as client:
                data = client.get("/api/health").json()
        finally:
            api_server.app.state.relay = None

        assert data["weather_configured"] is False
        assert data["openai_configured"] is False


class TestWebSocket:
    """Tests for the /ws relay socket."""

    def test_weather_round_trip(self, client, snapshot):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(encode_frame("get-weather", {"latitude": 35.6762, "longitude": 139.6503}))
            event, data = receive(ws)

        assert event == "weather-response"
        assert data == {"success": True, "data": snapshot.to_wire()}

    def test_suggestion_round_trip(self, client, llm_provider):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(encode_frame("get-ai-response", {"voiceText": "今日はどこに行けばいい？", "weather": None}))
            event, data = receive(ws)

        assert event == "ai-response"
        assert data == {"success": True, "data": "浅草でのんびり散歩はいかがでしょう。"}
        assert "Location: Unknown" in llm_provider.last_user_prompt

    def test_validation_failure(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(encode_frame("get-weather", {}))
            event, data = receive(ws)

        assert event == "weather-response"
        assert data == {"success": False, "error": "Latitude and longitude are required"}

    def test_unsupported_event(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(encode_frame("get-horoscope", {}))
            event, data = receive(ws)

        assert event == "error"
        assert data == {"success": False, "error": "Unsupported event: get-horoscope"}

    def test_malformed_frames_keep_connection_open(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            event, data = receive(ws)
            assert event == "error"
            assert data["success"] is False

            ws.send_bytes(b"\x00\x01")
            event, _ = receive(ws)
            assert event == "error"

            ws.send_text(encode_frame("get-weather", {"latitude": 0, "longitude": 0}))
            event, data = receive(ws)
            assert event == "weather-response"
            assert data["success"] is True

    def test_binary_frame_rejected(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(json.dumps({"event": "get-weather", "data": {}}).encode())
            event, data = receive(ws)

        assert event == "error"
        assert data == {"success": False, "error": "Frame must be a JSON object with an event name"}

    def test_each_request_gets_one_response(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(encode_frame("get-weather", {"latitude": 35.6, "longitude": 139.6}))
            ws.send_text(encode_frame("get-ai-response", {"voiceText": ""}))
            events = sorted(receive(ws)[0] for _ in range(2))

        assert events == ["ai-response", "weather-response"]
