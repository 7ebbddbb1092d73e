"""
Telephony stream adapter for Twilio Media Streams.

This module implements the server side of the Twilio Media Streams WebSocket protocol,
providing the infrastructure to:
- Accept one inbound media stream connection per call
- Route incoming frames to the appropriate handler function
- Keep the connection registry that maps call identifiers to streams
- Write caller-bound audio and clear frames addressed by stream identifier

The MediaStreamManager publishes connected, stream_started, audio_received,
stream_stopped and call_ended events; it never talks to the voice-AI leg directly.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Union

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel
from starlette.websockets import WebSocketState

from callbridge.config.constants import (
    EVENT_CALL_ENDED,
    LOGGER_NAME,
    TWILIO_EVENT_CONNECTED,
    TWILIO_EVENT_MARK,
    TWILIO_EVENT_MEDIA,
    TWILIO_EVENT_START,
    TWILIO_EVENT_STOP,
)
from callbridge.events import CallEndedEvent, EventEmitter
from callbridge.handlers.media_stream_handlers import (
    handle_connected,
    handle_mark,
    handle_media,
    handle_start,
    handle_stop,
)
from callbridge.models.conversation import ConnectionRegistry, StreamConnection
from callbridge.models.message_schemas import (
    ClearMessage,
    OutboundMediaMessage,
    OutboundMediaPayload,
)

logger = logging.getLogger(LOGGER_NAME)

# Type hint for handler functions
HandlerFunc = Callable[
    [Dict[str, Any], StreamConnection, "MediaStreamManager"],
    Awaitable[None],
]


class MediaStreamManager(EventEmitter):
    """Terminates Twilio media stream connections and exposes them as call events.

    One instance serves every call in the process. Each frame is routed to a handler
    based on its "event" field; handlers run to completion before the next frame of
    the same connection is read, which keeps audio in arrival order.
    """

    def __init__(self):
        super().__init__()
        self.registry = ConnectionRegistry()

        self.handlers: Dict[str, HandlerFunc] = {
            TWILIO_EVENT_CONNECTED: handle_connected,
            TWILIO_EVENT_START: handle_start,
            TWILIO_EVENT_MEDIA: handle_media,
            TWILIO_EVENT_STOP: handle_stop,
            TWILIO_EVENT_MARK: handle_mark,
        }

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """Handle a media stream connection throughout its lifecycle.

        Args:
            websocket: The FastAPI WebSocket connection opened by Twilio

        The connection stays open until Twilio hangs up the stream. On close the
        registry entry is removed and call_ended is published exactly once.
        """
        await websocket.accept()
        connection = StreamConnection(websocket=websocket)
        logger.info("Media stream WebSocket connection established")

        try:
            while True:
                data = await websocket.receive_text()
                await self.handle_message(connection, data)
        except WebSocketDisconnect as e:
            logger.info(f"Media stream disconnected (code: {e.code}) for call: {connection.call_sid}")
        except Exception as e:
            logger.error(f"Error in media stream connection: {e}", exc_info=True)
        finally:
            await self.close_connection(connection)

    async def handle_message(self, connection: StreamConnection, data: Union[str, bytes]) -> None:
        """
        Decode one frame and route it to its handler.

        Unparseable frames and unknown events are logged and discarded.
        """
        try:
            message_dict = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"Discarding unparseable media stream frame: {str(data)[:100]}")
            return

        if not isinstance(message_dict, dict):
            logger.warning(f"Discarding media stream frame that is not an object: {str(data)[:100]}")
            return

        event = message_dict.get("event")

        # Fast path for audio frames
        if event == TWILIO_EVENT_MEDIA:
            await self.handlers[TWILIO_EVENT_MEDIA](message_dict, connection, self)
            return

        logger.info(
            f"Received media stream event: {event}"
            + (f" for call: {connection.call_sid}" if connection.call_sid else "")
        )

        handler = self.handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown media stream event ignored: {event}")
            return
        await handler(message_dict, connection, self)

    async def close_connection(self, connection: StreamConnection) -> None:
        """Release a connection's registry entry and announce the end of its call."""
        call_sid = connection.call_sid
        if call_sid and self.registry.remove(call_sid, connection):
            logger.info(f"Call ended: {call_sid}")
            await self.emit(EVENT_CALL_ENDED, CallEndedEvent(call_sid=call_sid))

        websocket = connection.websocket
        if getattr(websocket, "client_state", None) != WebSocketState.DISCONNECTED:
            try:
                await websocket.close()
            except RuntimeError:
                # Already closed by the peer
                pass
        logger.info("Media stream WebSocket connection closed")

    async def send_audio(self, call_sid: str, audio_base64: str) -> bool:
        """
        Play a chunk of audio to the caller.

        Args:
            call_sid: Call identifier of the target call
            audio_base64: Base64-encoded audio in the stream's media format

        Returns:
            True if the frame was written, False if the call is unknown or the write failed
        """
        connection = self.registry.get(call_sid)
        if connection is None:
            logger.warning(f"No media stream connection for call: {call_sid}")
            return False

        frame = OutboundMediaMessage(
            streamSid=connection.stream_sid,
            media=OutboundMediaPayload(payload=audio_base64),
        )
        return await self._send(connection, frame)

    async def send_clear(self, call_sid: str) -> bool:
        """
        Flush audio already queued for playback on the caller's side.

        Returns:
            True if the frame was written, False if the call is unknown or the write failed
        """
        connection = self.registry.get(call_sid)
        if connection is None:
            logger.warning(f"No media stream connection for call: {call_sid}")
            return False

        logger.info(f"Clearing playback buffer for call: {call_sid}")
        return await self._send(connection, ClearMessage(streamSid=connection.stream_sid))

    async def _send(self, connection: StreamConnection, frame: BaseModel) -> bool:
        # Failed frames are dropped, never retried
        try:
            await connection.websocket.send_text(frame.model_dump_json())
            return True
        except Exception as e:
            logger.error(f"Failed to send frame for call {connection.call_sid}: {e}")
            return False

    def active_calls(self) -> List[str]:
        return self.registry.call_sids()
