"""
Orchestrator pairing Twilio media streams with ElevenLabs conversations.

This module relays audio between the telephony adapter and one voice-AI client per call,
enabling real-time speech-to-speech conversations between a caller and an AI agent.
"""

import logging
from typing import Callable, Dict, List, Optional

from callbridge.bot.voice_ai_client import VoiceAIStreamClient
from callbridge.config.constants import (
    EVENT_AGENT_RESPONSE,
    EVENT_AUDIO_CHUNK,
    EVENT_AUDIO_RECEIVED,
    EVENT_CALL_ENDED,
    EVENT_CONVERSATION_STARTED,
    EVENT_DISCONNECTED,
    EVENT_ERROR,
    EVENT_INTERRUPTION,
    EVENT_STREAM_STARTED,
    EVENT_STREAM_STOPPED,
    EVENT_USER_TRANSCRIPT,
    LOGGER_NAME,
)
from callbridge.config.settings import Settings
from callbridge.events import (
    AudioReceivedEvent,
    CallEndedEvent,
    ClientErrorEvent,
    StreamStartedEvent,
    StreamStoppedEvent,
)
from callbridge.media_stream_manager import MediaStreamManager
from callbridge.models.conversation import (
    ActiveConversation,
    ConversationSnapshot,
    ConversationTable,
)

logger = logging.getLogger(LOGGER_NAME)


class StreamOrchestrator:
    """
    Bridge between the Twilio media stream adapter and ElevenLabs Conversational AI.

    This class handles:
    - Creating one voice-AI client per call when the telephony stream starts
    - Relaying caller audio to the agent and agent audio to the caller
    - Tearing down the AI leg when either leg ends, exactly once per call
    """

    def __init__(
        self,
        telephony: MediaStreamManager,
        settings: Optional[Settings] = None,
        client_factory: Callable[..., VoiceAIStreamClient] = VoiceAIStreamClient,
    ):
        self.telephony = telephony
        self.settings = settings or Settings()
        self.client_factory = client_factory
        self.conversations = ConversationTable()
        self._pending: Dict[str, VoiceAIStreamClient] = {}
        self._shutting_down = False

        self._subscriptions: List[Callable[[], None]] = [
            telephony.on(EVENT_STREAM_STARTED, self.start_conversation),
            telephony.on(EVENT_AUDIO_RECEIVED, self.forward_to_voice_ai),
            telephony.on(EVENT_STREAM_STOPPED, self._handle_stream_stopped),
            telephony.on(EVENT_CALL_ENDED, self._handle_call_ended),
        ]
        logger.info("Stream orchestrator event handlers registered")

    def is_configured(self) -> bool:
        return self.settings.elevenlabs_configured

    async def start_conversation(self, event: StreamStartedEvent) -> bool:
        """
        Create and connect a voice-AI client for a newly started call.

        Args:
            event: The stream_started event from the telephony adapter

        Returns:
            True if a conversation was added to the active table
        """
        call_sid = event.call_sid
        if self._shutting_down:
            logger.warning(f"Shutting down; no conversation started for call: {call_sid}")
            return False

        if call_sid in self.conversations or call_sid in self._pending:
            logger.warning(f"Duplicate stream start ignored for call: {call_sid}")
            return False

        if not self.is_configured():
            logger.warning(f"ElevenLabs not configured; call {call_sid} continues without AI")
            return False

        logger.info(f"Starting voice-AI conversation for call: {call_sid}")
        client = self.client_factory(
            api_key=self.settings.elevenlabs_api_key,
            agent_id=self.settings.elevenlabs_agent_id,
            prompt=self.settings.agent_prompt,
            first_message=self.settings.first_message,
            language=self.settings.language,
        )
        unsubscribers = self._subscribe_client(call_sid, client)
        self._pending[call_sid] = client

        # Telephony frames of this call are not read while the provider connects, so
        # caller audio from that window arrives in one burst once the connect returns.
        try:
            connected = await client.connect()
        except Exception as e:
            logger.error(f"Error connecting voice-AI client for call {call_sid}: {e}", exc_info=True)
            connected = False

        # shutdown() removes the pending client and disconnects it itself
        taken_over = self._pending.pop(call_sid, None) is None

        if taken_over or not connected:
            for unsubscribe in unsubscribers:
                unsubscribe()
            if taken_over:
                logger.info(f"Voice-AI connect for call {call_sid} finished after shutdown; discarded")
                return False
            await client.disconnect()
            logger.error(f"Voice-AI leg unavailable for call {call_sid}; no conversation created")
            return False

        self.conversations.add(
            ActiveConversation(
                call_sid=call_sid,
                client=client,
                websocket=event.websocket,
                unsubscribers=unsubscribers,
            )
        )
        logger.info(f"Voice-AI conversation active for call: {call_sid}")
        return True

    def _subscribe_client(self, call_sid: str, client: VoiceAIStreamClient) -> List[Callable[[], None]]:
        return [
            client.on(EVENT_AUDIO_CHUNK, lambda chunk: self.forward_to_telephony(call_sid, chunk.audio)),
            client.on(EVENT_INTERRUPTION, lambda _: self.handle_interruption(call_sid)),
            client.on(
                EVENT_CONVERSATION_STARTED,
                lambda metadata: logger.info(f"ElevenLabs conversation started for call: {call_sid}"),
            ),
            client.on(
                EVENT_USER_TRANSCRIPT,
                lambda transcript: logger.info(f'User said: "{transcript.user_transcript}" (call: {call_sid})'),
            ),
            client.on(
                EVENT_AGENT_RESPONSE,
                lambda response: logger.info(f'AI responded: "{response.agent_response}" (call: {call_sid})'),
            ),
            client.on(EVENT_ERROR, lambda error: self._handle_client_error(call_sid, error)),
            client.on(EVENT_DISCONNECTED, lambda _: self.end_conversation(call_sid)),
        ]

    async def forward_to_voice_ai(self, event: AudioReceivedEvent) -> bool:
        """
        Forward caller audio to the call's voice-AI client.

        Audio that arrives before the AI leg is connected, or after it ended, is dropped.
        """
        conversation = self.conversations.get(event.call_sid)
        if conversation is None:
            logger.debug(f"No active conversation for call {event.call_sid}; caller audio dropped")
            return False
        return await conversation.client.send_audio(event.audio)

    async def forward_to_telephony(self, call_sid: str, audio_base64: str) -> bool:
        """Forward agent speech to the caller."""
        if call_sid not in self.conversations:
            logger.warning(f"Agent audio for ended call {call_sid} dropped")
            return False
        return await self.telephony.send_audio(call_sid, audio_base64)

    async def handle_interruption(self, call_sid: str) -> bool:
        """Stop agent speech already queued on the caller's side when the caller barges in."""
        if call_sid not in self.conversations:
            return False
        logger.info(f"Caller interrupted the agent on call: {call_sid}")
        return await self.telephony.send_clear(call_sid)

    async def _handle_client_error(self, call_sid: str, error: ClientErrorEvent) -> None:
        logger.error(f"ElevenLabs error for call {call_sid}: {error.message}")
        await self.end_conversation(call_sid)

    def _handle_stream_stopped(self, event: StreamStoppedEvent) -> None:
        logger.info(f"Telephony stream stopped for call: {event.call_sid}")

    async def _handle_call_ended(self, event: CallEndedEvent) -> None:
        await self.end_conversation(event.call_sid)

    async def end_conversation(self, call_sid: str) -> bool:
        """
        Tear down the pairing for a call.

        Safe to call repeatedly: only the first call for a given call identifier
        disconnects the voice-AI client.

        Returns:
            True if a conversation was torn down
        """
        conversation = self.conversations.pop(call_sid)
        if conversation is None:
            return False

        logger.info(f"Ending conversation for call: {call_sid}")
        for unsubscribe in conversation.unsubscribers:
            unsubscribe()

        try:
            await conversation.client.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting voice-AI client for call {call_sid}: {e}")

        logger.info(f"Conversation duration for call {call_sid}: {conversation.duration * 1000:.0f}ms")
        return True

    def get_stats(self) -> ConversationSnapshot:
        """Return the number and identifiers of active conversations."""
        return self.conversations.snapshot()

    async def shutdown(self) -> None:
        """
        Stop listening to the telephony adapter and end every conversation.

        Clients still connecting are disconnected here; their pending connect then
        returns without creating a conversation.
        """
        self._shutting_down = True
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []

        pending, self._pending = self._pending, {}
        for call_sid, client in pending.items():
            logger.info(f"Cancelling pending voice-AI connect for call: {call_sid}")
            try:
                await client.disconnect()
            except Exception as e:
                logger.error(f"Error disconnecting voice-AI client for call {call_sid}: {e}")

        for call_sid in self.conversations.call_sids():
            await self.end_conversation(call_sid)
