"""
Handles the Twilio Media Streams frames received on an inbound call connection.

Each handler validates one frame type, updates the per-connection state and the
connection registry, and publishes the resulting domain event on the manager. Malformed
frames are logged and discarded without closing the connection.
"""

import logging
import time
import uuid
from typing import TYPE_CHECKING, Any, Dict

from pydantic import ValidationError

from callbridge.config.constants import (
    EVENT_AUDIO_RECEIVED,
    EVENT_CONNECTED,
    EVENT_STREAM_STARTED,
    EVENT_STREAM_STOPPED,
    LOGGER_NAME,
    SYNTHETIC_CALL_PREFIX,
    SYNTHETIC_STREAM_PREFIX,
)
from callbridge.events import AudioReceivedEvent, StreamStartedEvent, StreamStoppedEvent
from callbridge.models.conversation import StreamConnection
from callbridge.models.message_schemas import (
    ConnectedMessage,
    MarkMessage,
    MediaMessage,
    StartMessage,
    StopMessage,
)

if TYPE_CHECKING:
    from callbridge.media_stream_manager import MediaStreamManager

logger = logging.getLogger(LOGGER_NAME)


async def handle_connected(
    message: Dict[str, Any],
    connection: StreamConnection,
    manager: "MediaStreamManager",
) -> None:
    """
    Handle the connected frame, Twilio's acknowledgement of the WebSocket handshake.

    Args:
        message: The connected frame
        connection: State of the connection the frame arrived on
        manager: The media stream manager publishing events
    """
    try:
        connected = ConnectedMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid connected frame: {e}")
        return

    logger.info(f"Media stream connected (protocol: {connected.protocol}, version: {connected.version})")
    await manager.emit(EVENT_CONNECTED, connected)


async def handle_start(
    message: Dict[str, Any],
    connection: StreamConnection,
    manager: "MediaStreamManager",
) -> None:
    """
    Handle the start frame, the canonical trigger for a call session.

    The call and stream identifiers are recorded in the connection registry before
    stream_started is published. A start that follows a synthesized session keeps the
    synthesized call identifier and only adopts the real stream identifier, so the
    pairing built on the synthetic start stays intact.

    Args:
        message: The start frame
        connection: State of the connection the frame arrived on
        manager: The media stream manager publishing events
    """
    try:
        start = StartMessage(**message).start
    except ValidationError as e:
        logger.error(f"Invalid start frame discarded: {e}")
        return

    if connection.has_started:
        if connection.synthetic:
            logger.warning(
                f"Late start frame for call {start.callSid}; keeping synthetic call "
                f"{connection.call_sid} and routing audio to stream {start.streamSid}"
            )
            connection.stream_sid = start.streamSid
            return
        if start.callSid != connection.call_sid:
            logger.error(
                f"Ignoring start for call {start.callSid}: connection already carries "
                f"call {connection.call_sid}"
            )
            return
        logger.warning(f"Duplicate start frame for call: {start.callSid}")
        await manager.emit(
            EVENT_STREAM_STARTED,
            StreamStartedEvent(
                call_sid=connection.call_sid,
                stream_sid=connection.stream_sid,
                websocket=connection.websocket,
            ),
        )
        return

    connection.call_sid = start.callSid
    connection.stream_sid = start.streamSid
    if not manager.registry.register(connection):
        logger.error(
            f"Call {start.callSid} is already streaming on another connection; start ignored"
        )
        connection.call_sid = None
        connection.stream_sid = None
        connection.rejected = True
        return
    connection.has_started = True
    connection.rejected = False

    logger.info(f"Media stream started for call: {start.callSid} (stream: {start.streamSid})")
    if start.mediaFormat:
        logger.info(
            f"Media format: {start.mediaFormat.encoding} "
            f"{start.mediaFormat.sampleRate}Hz x{start.mediaFormat.channels}"
        )
    if start.customParameters:
        logger.info(f"Custom parameters: {start.customParameters}")

    await manager.emit(
        EVENT_STREAM_STARTED,
        StreamStartedEvent(
            call_sid=start.callSid,
            stream_sid=start.streamSid,
            websocket=connection.websocket,
        ),
    )


async def start_synthetic_stream(connection: StreamConnection, manager: "MediaStreamManager") -> bool:
    """
    Fallback for a media frame that arrives before any start frame.

    Twilio has been observed to omit or delay the start frame. Rather than dropping the
    caller's audio, unique identifiers are synthesized for this connection and
    stream_started is published as if the start frame had arrived.

    Returns:
        True if the synthetic session was registered
    """
    timestamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8]
    connection.call_sid = f"{SYNTHETIC_CALL_PREFIX}{timestamp}{suffix}"
    connection.stream_sid = f"{SYNTHETIC_STREAM_PREFIX}{timestamp}{suffix}"

    if not manager.registry.register(connection):
        logger.error(f"Could not register synthetic call: {connection.call_sid}")
        connection.call_sid = None
        connection.stream_sid = None
        return False

    connection.has_started = True
    connection.synthetic = True
    logger.warning(
        f"Media received before start; created synthetic call {connection.call_sid} "
        f"(stream: {connection.stream_sid})"
    )
    await manager.emit(
        EVENT_STREAM_STARTED,
        StreamStartedEvent(
            call_sid=connection.call_sid,
            stream_sid=connection.stream_sid,
            synthetic=True,
            websocket=connection.websocket,
        ),
    )
    return True


async def handle_media(
    message: Dict[str, Any],
    connection: StreamConnection,
    manager: "MediaStreamManager",
) -> None:
    """
    Handle a media frame carrying a chunk of caller audio.

    Args:
        message: The media frame
        connection: State of the connection the frame arrived on
        manager: The media stream manager publishing events
    """
    try:
        media = MediaMessage(**message).media
    except ValidationError as e:
        logger.error(f"Invalid media frame discarded: {e}")
        return

    if media.track and media.track != "inbound":
        return

    if connection.rejected:
        logger.debug("Dropping media on a connection whose start was refused")
        return

    if not connection.has_started:
        if not await start_synthetic_stream(connection, manager):
            return

    await manager.emit(
        EVENT_AUDIO_RECEIVED,
        AudioReceivedEvent(call_sid=connection.call_sid, audio=media.payload),
    )


async def handle_stop(
    message: Dict[str, Any],
    connection: StreamConnection,
    manager: "MediaStreamManager",
) -> None:
    """
    Handle the stop frame.

    The registry entry is kept until the socket closes.
    """
    try:
        stop = StopMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid stop frame discarded: {e}")
        return

    logger.info(f"Media stream stopped for call: {connection.call_sid}")
    await manager.emit(
        EVENT_STREAM_STOPPED,
        StreamStoppedEvent(
            call_sid=connection.call_sid,
            stream_sid=connection.stream_sid or stop.streamSid,
        ),
    )


async def handle_mark(
    message: Dict[str, Any],
    connection: StreamConnection,
    manager: "MediaStreamManager",
) -> None:
    try:
        mark = MarkMessage(**message)
    except ValidationError as e:
        logger.error(f"Invalid mark frame discarded: {e}")
        return
    logger.debug(f"Playback mark {mark.mark.get('name')} reached for call: {connection.call_sid}")
