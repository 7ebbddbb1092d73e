"""
Client for the ElevenLabs Conversational AI WebSocket API.

One VoiceAIStreamClient owns exactly one provider session for the lifetime of one call.
It sends the conversation initiation handshake on open, forwards caller audio, answers
keepalive pings, and publishes the provider's audio, transcript and response messages
as events. It never reconnects: a broken session ends that call's AI leg.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from pydantic import BaseModel, ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from callbridge.config.constants import (
    CONNECTION_TIMEOUT,
    DEFAULT_AGENT_PROMPT,
    DEFAULT_FIRST_MESSAGE,
    DEFAULT_LANGUAGE,
    ELEVENLABS_CONVAI_URL,
    EVENT_AGENT_RESPONSE,
    EVENT_AUDIO_CHUNK,
    EVENT_CONNECTED,
    EVENT_CONVERSATION_STARTED,
    EVENT_DISCONNECTED,
    EVENT_ERROR,
    EVENT_INTERRUPTION,
    EVENT_USER_TRANSCRIPT,
    LOGGER_NAME,
    MESSAGE_TYPE_AGENT_RESPONSE,
    MESSAGE_TYPE_AUDIO,
    MESSAGE_TYPE_INITIATION_METADATA,
    MESSAGE_TYPE_INTERRUPTION,
    MESSAGE_TYPE_PING,
    MESSAGE_TYPE_USER_TRANSCRIPT,
)
from callbridge.config.settings import is_configured
from callbridge.events import AudioChunkEvent, ClientErrorEvent, EventEmitter
from callbridge.models.voice_ai_schemas import (
    AgentResponseEvent,
    AudioEvent,
    ConversationInitiationMessage,
    InterruptionEvent,
    PongMessage,
    UserAudioChunk,
    UserAudioChunkMessage,
    UserTranscriptionEvent,
)

logger = logging.getLogger(LOGGER_NAME)

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks


class ConnectionState(str, Enum):
    """Lifecycle of the provider session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class VoiceAIStreamClient(EventEmitter):
    """
    Client to connect to the ElevenLabs Conversational AI WebSocket for one call.

    Events published: connected, conversation_started, audio_chunk, user_transcript,
    agent_response, interruption, disconnected, error.
    """

    def __init__(
        self,
        api_key: Optional[str],
        agent_id: Optional[str],
        prompt: str = DEFAULT_AGENT_PROMPT,
        first_message: str = DEFAULT_FIRST_MESSAGE,
        language: str = DEFAULT_LANGUAGE,
        connection_timeout: float = CONNECTION_TIMEOUT,
    ):
        super().__init__()
        self.api_key = api_key
        self.agent_id = agent_id
        self.prompt = prompt
        self.first_message = first_message
        self.language = language
        self.connection_timeout = connection_timeout

        self.ws = None
        self.state = ConnectionState.DISCONNECTED
        self._recv_task: Optional[asyncio.Task] = None
        self._is_closing = False

        self.message_handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            MESSAGE_TYPE_INITIATION_METADATA: self._on_initiation_metadata,
            MESSAGE_TYPE_AUDIO: self._on_audio,
            MESSAGE_TYPE_USER_TRANSCRIPT: self._on_user_transcript,
            MESSAGE_TYPE_AGENT_RESPONSE: self._on_agent_response,
            MESSAGE_TYPE_INTERRUPTION: self._on_interruption,
            MESSAGE_TYPE_PING: self._on_ping,
        }

    @property
    def url(self) -> str:
        return f"{ELEVENLABS_CONVAI_URL}?agent_id={self.agent_id}"

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def is_configured(self) -> bool:
        """Check that the API key and agent id are set to real values."""
        return is_configured(self.api_key, self.agent_id)

    async def connect(self) -> bool:
        """
        Open the provider session and send the conversation initiation message.

        The attempt fails if the provider does not accept the connection within
        connection_timeout seconds.

        Returns:
            bool: True if the session is open and initiated, False otherwise
        """
        if self._is_closing:
            logger.warning("Connect called on a client that was disconnected")
            return False

        if self.state != ConnectionState.DISCONNECTED:
            logger.warning(f"Connect called while {self.state.value}")
            return self.is_connected

        if not self.is_configured():
            logger.error("Cannot connect - ElevenLabs API key or agent id not configured")
            return False

        self.state = ConnectionState.CONNECTING
        logger.info(f"Connecting to ElevenLabs Conversational AI (agent: {self.agent_id})")

        try:
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    additional_headers={"xi-api-key": self.api_key},
                    max_size=WS_MAX_SIZE,
                    compression=None,  # Disable compression for lower latency
                ),
                timeout=self.connection_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Timeout while connecting to ElevenLabs (after {self.connection_timeout}s)")
            self.state = ConnectionState.DISCONNECTED
            return False
        except Exception as e:
            logger.error(f"Failed to connect to ElevenLabs: {e}")
            self.state = ConnectionState.DISCONNECTED
            return False

        if self._is_closing:
            return await self._abandon_connect()

        # The provider does not start the conversation until it has this message
        initiation = ConversationInitiationMessage.build(
            prompt=self.prompt,
            first_message=self.first_message,
            language=self.language,
        )
        try:
            await self.ws.send(initiation.model_dump_json())
        except Exception as e:
            logger.error(f"Failed to send conversation initiation: {e}")
            await self._close_socket()
            self.state = ConnectionState.DISCONNECTED
            return False

        if self._is_closing:
            return await self._abandon_connect()

        self.state = ConnectionState.CONNECTED
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info("Connected to ElevenLabs Conversational AI")
        await self.emit(EVENT_CONNECTED)
        return True

    async def _abandon_connect(self) -> bool:
        # disconnect() was called while the connection was being opened
        logger.info("Connect abandoned - client was disconnected while connecting")
        await self._close_socket()
        self.state = ConnectionState.DISCONNECTED
        return False

    async def _recv_loop(self) -> None:
        """Receive provider messages until the session closes."""
        error = None
        try:
            async for message in self.ws:
                await self.handle_message(message)
        except ConnectionClosedError as e:
            error = f"Connection closed unexpectedly: {e}"
        except Exception as e:
            error = f"Error in receive loop: {e}"

        if self._is_closing:
            return

        self.state = ConnectionState.DISCONNECTED
        if error:
            logger.error(f"ElevenLabs session failed: {error}")
            await self.emit(EVENT_ERROR, ClientErrorEvent(message=error))
        else:
            logger.info("ElevenLabs connection closed by provider")
            await self.emit(EVENT_DISCONNECTED)

    async def handle_message(self, raw: Any) -> None:
        """
        Decode one provider message and dispatch it on its "type" field.

        Unparseable messages, malformed payloads and unknown types are logged and ignored.
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
            logger.warning(f"Received invalid JSON from ElevenLabs: {str(raw)[:100]}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Received non-object message from ElevenLabs: {str(raw)[:100]}")
            return

        message_type = data.get("type")
        handler = self.message_handlers.get(message_type)
        if handler is None:
            logger.info(f"Unhandled ElevenLabs message type: {message_type}")
            return

        try:
            await handler(data)
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning(f"Malformed '{message_type}' message discarded: {e}")

    async def _on_initiation_metadata(self, data: Dict[str, Any]) -> None:
        metadata = data.get("conversation_initiation_metadata_event", {})
        logger.info(f"Conversation initiated: {metadata.get('conversation_id')}")
        await self.emit(EVENT_CONVERSATION_STARTED, metadata)

    async def _on_audio(self, data: Dict[str, Any]) -> None:
        audio_event = AudioEvent(**data["audio_event"])
        await self.emit(
            EVENT_AUDIO_CHUNK,
            AudioChunkEvent(audio=audio_event.audio_base_64, event_id=audio_event.event_id),
        )

    async def _on_user_transcript(self, data: Dict[str, Any]) -> None:
        await self.emit(
            EVENT_USER_TRANSCRIPT,
            UserTranscriptionEvent(**data["user_transcription_event"]),
        )

    async def _on_agent_response(self, data: Dict[str, Any]) -> None:
        await self.emit(
            EVENT_AGENT_RESPONSE,
            AgentResponseEvent(**data["agent_response_event"]),
        )

    async def _on_interruption(self, data: Dict[str, Any]) -> None:
        await self.emit(
            EVENT_INTERRUPTION,
            InterruptionEvent(**data.get("interruption_event", {})),
        )

    async def _on_ping(self, data: Dict[str, Any]) -> None:
        await self.send_pong()

    async def send_audio(self, audio_base64: str) -> bool:
        """
        Forward a chunk of caller audio to the agent.

        Caller audio can race the teardown of the session, so sending while not
        connected is logged and dropped rather than raised.

        Args:
            audio_base64: Base64-encoded caller audio

        Returns:
            bool: True if the chunk was sent
        """
        if not self.is_connected or self.ws is None:
            logger.error("Cannot send audio - not connected to ElevenLabs")
            return False

        return await self._send(
            UserAudioChunkMessage(user_audio_chunk=UserAudioChunk(chunk=audio_base64))
        )

    async def send_pong(self) -> bool:
        if not self.is_connected or self.ws is None:
            return False
        return await self._send(PongMessage())

    async def _send(self, message: BaseModel) -> bool:
        try:
            await self.ws.send(message.model_dump_json())
            return True
        except ConnectionClosed as e:
            logger.warning(f"Connection closed while sending to ElevenLabs: {e}")
            return False
        except Exception as e:
            logger.error(f"Error sending to ElevenLabs: {e}")
            return False

    async def disconnect(self) -> None:
        """
        Close the session. Safe to call more than once; no events are published afterwards.
        """
        if self._is_closing:
            return
        self._is_closing = True
        self.state = ConnectionState.DISCONNECTED

        task, self._recv_task = self._recv_task, None
        # Teardown may be triggered from inside the receive loop itself
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_socket()
        logger.info("ElevenLabs client disconnected")

    async def _close_socket(self) -> None:
        ws, self.ws = self.ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except Exception as e:
            logger.warning(f"Error closing ElevenLabs WebSocket: {e}")
