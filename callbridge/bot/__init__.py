"""
Bot module for the voice-AI leg of the call bridge.

This module contains the components that talk to the conversational voice-AI provider
and pair its sessions with telephony media streams.

Key components:
- voice_ai_client: VoiceAIStreamClient, one ElevenLabs Conversational AI session per
  call. Sends the initiation handshake, forwards caller audio, answers pings and
  publishes agent audio, transcripts and responses as events.
- stream_orchestrator: StreamOrchestrator, which creates a client when a telephony
  stream starts, relays audio in both directions and tears both sides down together.

Usage examples:
```python
from callbridge.bot.stream_orchestrator import StreamOrchestrator
from callbridge.media_stream_manager import MediaStreamManager

telephony = MediaStreamManager()
orchestrator = StreamOrchestrator(telephony)

# Later, for status reporting
snapshot = orchestrator.get_stats()
print(snapshot.active_conversations, snapshot.conversations)
```
"""

# Bot module initialization
