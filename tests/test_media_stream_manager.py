import json
import pytest
from unittest.mock import AsyncMock

from fastapi import WebSocket, WebSocketDisconnect

from callbridge.media_stream_manager import MediaStreamManager
from callbridge.models.conversation import StreamConnection


def start_frame(call_sid="C1", stream_sid="S1"):
    return json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "start": {
            "callSid": call_sid,
            "streamSid": stream_sid,
            "tracks": ["inbound"],
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
        },
        "streamSid": stream_sid,
    })


def media_frame(payload, track="inbound"):
    return json.dumps({"event": "media", "media": {"track": track, "payload": payload}})


def stop_frame(stream_sid="S1"):
    return json.dumps({"event": "stop", "streamSid": stream_sid, "stop": {"callSid": "C1"}})


@pytest.fixture
def manager():
    return MediaStreamManager()


@pytest.fixture
def connection():
    return StreamConnection(websocket=AsyncMock())


@pytest.fixture
def recorded(manager):
    """Record every published event as (name, payload) in delivery order"""
    events = []
    for name in ("connected", "stream_started", "audio_received", "stream_stopped", "call_ended"):
        manager.on(name, lambda payload, name=name: events.append((name, payload)))
    return events


def test_media_stream_manager_initialization(manager):
    """Test that MediaStreamManager initializes correctly"""
    assert len(manager.registry) == 0
    assert len(manager.handlers) == 5
    for event in ("connected", "start", "media", "stop", "mark"):
        assert event in manager.handlers


@pytest.mark.asyncio
async def test_connected_frame_published(manager, connection, recorded):
    await manager.handle_message(
        connection, json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"})
    )
    assert [name for name, _ in recorded] == ["connected"]
    assert connection.has_started is False


@pytest.mark.asyncio
async def test_start_registers_connection(manager, connection, recorded):
    """Test that a start frame records the identifiers before stream_started is published"""
    seen_in_registry = []
    manager.on("stream_started", lambda event: seen_in_registry.append(event.call_sid in manager.registry))

    await manager.handle_message(connection, start_frame("C1", "S1"))

    assert manager.registry.get("C1") is connection
    assert connection.stream_sid == "S1"
    assert seen_in_registry == [True]
    name, event = recorded[0]
    assert name == "stream_started"
    assert event.call_sid == "C1"
    assert event.stream_sid == "S1"
    assert event.synthetic is False
    assert event.websocket is connection.websocket


@pytest.mark.asyncio
async def test_media_after_start_published_in_order(manager, connection, recorded):
    await manager.handle_message(connection, start_frame())
    for payload in ("A1", "A2", "A3"):
        await manager.handle_message(connection, media_frame(payload))

    audio = [(event.call_sid, event.audio) for name, event in recorded if name == "audio_received"]
    assert audio == [("C1", "A1"), ("C1", "A2"), ("C1", "A3")]


@pytest.mark.asyncio
async def test_media_before_start_synthesizes_session(manager, connection, recorded):
    """Test that caller audio without a start frame still starts exactly one session"""
    await manager.handle_message(connection, media_frame("abc"))
    await manager.handle_message(connection, media_frame("def"))

    assert [name for name, _ in recorded] == ["stream_started", "audio_received", "audio_received"]
    started = recorded[0][1]
    assert started.synthetic is True
    assert started.call_sid.startswith("CALL")
    assert started.stream_sid.startswith("SYN")
    # Every audio event carries the synthesized identifier
    assert {event.call_sid for name, event in recorded[1:]} == {started.call_sid}
    assert manager.registry.get(started.call_sid) is connection


@pytest.mark.asyncio
async def test_synthetic_identifiers_unique_per_connection(manager, recorded):
    first = StreamConnection(websocket=AsyncMock())
    second = StreamConnection(websocket=AsyncMock())

    await manager.handle_message(first, media_frame("abc"))
    await manager.handle_message(second, media_frame("abc"))

    assert first.call_sid != second.call_sid
    assert len(manager.registry) == 2


@pytest.mark.asyncio
async def test_late_start_after_synthetic_session(manager, connection, recorded):
    """Test that a late start keeps the synthesized call and adopts the real stream"""
    await manager.handle_message(connection, media_frame("abc"))
    synthetic_call_sid = connection.call_sid

    await manager.handle_message(connection, start_frame("C1", "S1"))

    assert [name for name, _ in recorded].count("stream_started") == 1
    assert connection.call_sid == synthetic_call_sid
    assert connection.stream_sid == "S1"
    assert "C1" not in manager.registry

    await manager.send_audio(synthetic_call_sid, "xyz")
    frame = json.loads(connection.websocket.send_text.call_args[0][0])
    assert frame["streamSid"] == "S1"


@pytest.mark.asyncio
async def test_start_for_call_held_by_other_connection(manager, recorded):
    """Test that a second connection cannot take over a live call identifier"""
    first = StreamConnection(websocket=AsyncMock())
    second = StreamConnection(websocket=AsyncMock())

    await manager.handle_message(first, start_frame("C1", "S1"))
    await manager.handle_message(second, start_frame("C1", "S2"))

    assert manager.registry.get("C1") is first
    assert second.has_started is False
    assert second.call_sid is None
    assert [name for name, _ in recorded].count("stream_started") == 1


@pytest.mark.asyncio
async def test_start_with_different_call_on_started_connection(manager, connection, recorded):
    await manager.handle_message(connection, start_frame("C1", "S1"))
    await manager.handle_message(connection, start_frame("C2", "S2"))

    assert connection.call_sid == "C1"
    assert "C2" not in manager.registry
    assert [name for name, _ in recorded].count("stream_started") == 1


@pytest.mark.asyncio
async def test_outbound_track_media_ignored(manager, connection, recorded):
    await manager.handle_message(connection, start_frame())
    await manager.handle_message(connection, media_frame("abc", track="outbound"))

    assert [name for name, _ in recorded] == ["stream_started"]


@pytest.mark.asyncio
async def test_stop_keeps_registry_entry(manager, connection, recorded):
    """Test that stop is published but the connection stays addressable until close"""
    await manager.handle_message(connection, start_frame())
    await manager.handle_message(connection, stop_frame())

    name, event = recorded[-1]
    assert name == "stream_stopped"
    assert event.call_sid == "C1"
    assert event.stream_sid == "S1"
    assert "C1" in manager.registry


@pytest.mark.asyncio
async def test_mark_frame_is_not_published(manager, connection, recorded):
    await manager.handle_message(connection, start_frame())
    await manager.handle_message(
        connection, json.dumps({"event": "mark", "streamSid": "S1", "mark": {"name": "m1"}})
    )
    assert [name for name, _ in recorded] == ["stream_started"]


@pytest.mark.asyncio
async def test_unknown_event_ignored(manager, connection, recorded):
    await manager.handle_message(connection, json.dumps({"event": "dtmf", "dtmf": {"digit": "1"}}))
    assert recorded == []
    assert len(manager.registry) == 0


@pytest.mark.asyncio
async def test_invalid_frames_discarded(manager, connection, recorded):
    """Test that unparseable or malformed frames are dropped without side effects"""
    await manager.handle_message(connection, "not json")
    await manager.handle_message(connection, json.dumps(["media"]))
    await manager.handle_message(connection, json.dumps({"event": "start"}))
    await manager.handle_message(connection, json.dumps({"event": "media", "media": {}}))

    assert recorded == []
    assert connection.has_started is False
    assert len(manager.registry) == 0


@pytest.mark.asyncio
async def test_send_audio_writes_media_frame(manager, connection):
    await manager.handle_message(connection, start_frame("C1", "S1"))

    result = await manager.send_audio("C1", "xyz")

    assert result is True
    connection.websocket.send_text.assert_awaited_once()
    assert json.loads(connection.websocket.send_text.call_args[0][0]) == {
        "event": "media",
        "streamSid": "S1",
        "media": {"payload": "xyz"},
    }


@pytest.mark.asyncio
async def test_send_clear_writes_clear_frame(manager, connection):
    await manager.handle_message(connection, start_frame("C1", "S1"))

    assert await manager.send_clear("C1") is True
    assert json.loads(connection.websocket.send_text.call_args[0][0]) == {
        "event": "clear",
        "streamSid": "S1",
    }


@pytest.mark.asyncio
async def test_send_to_unknown_call(manager, connection):
    """Test that sending to a call without a connection fails without side effects"""
    await manager.handle_message(connection, start_frame("C1", "S1"))

    assert await manager.send_audio("C9", "xyz") is False
    assert await manager.send_clear("C9") is False

    connection.websocket.send_text.assert_not_awaited()
    assert manager.active_calls() == ["C1"]


@pytest.mark.asyncio
async def test_send_failure_returns_false(manager, connection):
    await manager.handle_message(connection, start_frame())
    connection.websocket.send_text.side_effect = RuntimeError("socket closed")

    assert await manager.send_audio("C1", "xyz") is False
    assert "C1" in manager.registry


@pytest.mark.asyncio
async def test_close_connection_publishes_call_ended_once(manager, connection, recorded):
    await manager.handle_message(connection, start_frame())

    await manager.close_connection(connection)
    await manager.close_connection(connection)

    ended = [event.call_sid for name, event in recorded if name == "call_ended"]
    assert ended == ["C1"]
    assert "C1" not in manager.registry


@pytest.mark.asyncio
async def test_close_connection_without_start(manager, connection, recorded):
    await manager.close_connection(connection)

    assert recorded == []
    connection.websocket.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_handle_websocket_flow(manager, recorded):
    """Test the full lifecycle of a media stream connection"""
    websocket = AsyncMock(spec=WebSocket)
    websocket.receive_text.side_effect = [
        json.dumps({"event": "connected", "protocol": "Call", "version": "1.0.0"}),
        start_frame("C1", "S1"),
        media_frame("abc"),
        stop_frame(),
        WebSocketDisconnect(code=1000),
    ]

    await manager.handle_websocket(websocket)

    websocket.accept.assert_awaited_once()
    assert [name for name, _ in recorded] == [
        "connected",
        "stream_started",
        "audio_received",
        "stream_stopped",
        "call_ended",
    ]
    assert len(manager.registry) == 0
    websocket.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_handle_websocket_unexpected_error(manager, recorded):
    """Test that a receive error still releases the connection"""
    websocket = AsyncMock(spec=WebSocket)
    websocket.receive_text.side_effect = [start_frame("C1", "S1"), RuntimeError("boom")]

    await manager.handle_websocket(websocket)

    assert recorded[-1][0] == "call_ended"
    assert len(manager.registry) == 0


@pytest.mark.asyncio
async def test_media_on_refused_connection_not_synthesized(manager, recorded):
    """Test that a refused start blocks the synthetic fallback on that connection"""
    first = StreamConnection(websocket=AsyncMock())
    second = StreamConnection(websocket=AsyncMock())

    await manager.handle_message(first, start_frame("C1", "S1"))
    await manager.handle_message(second, start_frame("C1", "S2"))
    await manager.handle_message(second, media_frame("abc"))

    assert second.rejected is True
    assert second.has_started is False
    assert [name for name, _ in recorded] == ["stream_started"]
    assert manager.active_calls() == ["C1"]
