import json
import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from callbridge.config.settings import Settings
from callbridge.events import AudioChunkEvent
from callbridge.main import _to_ws_url, create_app, media_stream_endpoint


@pytest.fixture
def app(settings, client_factory):
    return create_app(settings=settings, client_factory=client_factory)


@pytest.fixture
def client(app):
    return TestClient(app)


def test_health_check(client):
    """Test the health check endpoint returns correct response"""
    response = client.get("/health")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "healthy"
    assert response_json["elevenlabs_configured"] is True
    assert response_json["active_connections"] == 0
    assert response_json["active_conversations"] == 0


def test_root_endpoint(client):
    """Test the root endpoint returns the correct API information"""
    response = client.get("/")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["name"] == "Call Bridge"
    assert "description" in response_json
    assert response_json["version"] == "1.0.0"
    assert "/voice/media-stream" in response_json["endpoints"]
    assert "/voice/webhook-stream" in response_json["endpoints"]
    assert "/health" in response_json["endpoints"]


def test_stream_status(client):
    response = client.get("/voice/stream-status")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "running"
    assert response_json["activeConversations"] == 0
    assert response_json["conversations"] == []
    assert response_json["uptime"] >= 0


def test_webhook_stream_connects_media_stream(client):
    """Test that the voice webhook answers with a bidirectional stream to this server"""
    response = client.post("/voice/webhook-stream")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")

    body = response.text
    assert body.startswith('<?xml version="1.0" encoding="UTF-8"?><Response>')
    assert "<Say" in body
    assert (
        '<Connect><Stream name="elevenlabs-voice2-stream" '
        'url="wss://bridge.example.com/voice/media-stream" /></Connect>'
    ) in body
    assert "<Hangup/>" not in body


def test_webhook_stream_not_configured(unconfigured_settings, client_factory):
    """Test that an unconfigured server tells the caller instead of streaming"""
    client = TestClient(create_app(settings=unconfigured_settings, client_factory=client_factory))

    response = client.post("/voice/webhook-stream")
    assert response.status_code == 200

    body = response.text
    assert "<Say>" in body
    assert "<Hangup/>" in body
    assert "<Stream" not in body


def test_webhook_stream_url_from_host(monkeypatch, client_factory):
    monkeypatch.delenv("BASE_URL", raising=False)
    settings = Settings(elevenlabs_api_key="test-key", elevenlabs_agent_id="agent-123")
    client = TestClient(create_app(settings=settings, client_factory=client_factory))

    response = client.post("/voice/webhook-stream")

    assert 'url="wss://testserver/voice/media-stream"' in response.text


@pytest.mark.parametrize(
    "http_url, ws_url",
    [
        ("https://bridge.example.com", "wss://bridge.example.com"),
        ("http://localhost:8000", "ws://localhost:8000"),
        ("wss://already.example.com", "wss://already.example.com"),
    ],
)
def test_to_ws_url(http_url, ws_url):
    assert _to_ws_url(http_url) == ws_url


def test_media_stream_route_accepts_websocket(client):
    """Test that the media stream path is served as a WebSocket endpoint"""
    with client.websocket_connect("/voice/media-stream") as ws:
        ws.send_text(json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"}))

    assert client.app.state.media_stream_manager.active_calls() == []


@pytest.mark.asyncio
async def test_media_stream_endpoint_delegates(app):
    """Test that the media stream endpoint hands the socket to the manager"""
    with patch.object(app.state.media_stream_manager, "handle_websocket") as mock_handle:
        mock_websocket = MagicMock()
        mock_websocket.app = app

        await media_stream_endpoint(mock_websocket)

        mock_handle.assert_called_once_with(mock_websocket)


def test_media_stream_end_to_end(settings, client_factory):
    """Test a call from start frame to agent audio played back on the same stream"""
    def echo_factory(**kwargs):
        voice_client = client_factory(**kwargs)

        async def echo(audio):
            await voice_client.emit("audio_chunk", AudioChunkEvent(audio=f"reply-{audio}"))
            return True

        voice_client.send_audio.side_effect = echo
        return voice_client

    app = create_app(settings=settings, client_factory=echo_factory)

    with TestClient(app) as test_client:
        with test_client.websocket_connect("/voice/media-stream") as ws:
            ws.send_text(json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"}))
            ws.send_text(json.dumps({
                "event": "start",
                "start": {"callSid": "C1", "streamSid": "S1", "tracks": ["inbound"]},
                "streamSid": "S1",
            }))
            ws.send_text(json.dumps({"event": "media", "media": {"track": "inbound", "payload": "abc"}}))

            frame = ws.receive_json()

            assert frame == {"event": "media", "streamSid": "S1", "media": {"payload": "reply-abc"}}
            assert app.state.orchestrator.get_stats().conversations == ["C1"]

    voice_client = client_factory.created[0]
    voice_client.send_audio.assert_awaited_once_with("abc")
    voice_client.disconnect.assert_awaited_once()
    assert app.state.orchestrator.get_stats().active_conversations == 0
