"""
Models module for data structures and state management in the call bridge.

This module provides structured data models and the call registries, defining the
schemas for both the Twilio Media Streams protocol and the ElevenLabs Conversational
AI protocol.

Key components:
- message_schemas: Pydantic models for the inbound and outbound media stream frames.
- voice_ai_schemas: Pydantic models for the voice-AI handshake, audio and keepalive
  messages.
- conversation: The connection registry owned by the telephony adapter and the active
  conversation table owned by the orchestrator.

Usage examples:
```python
from callbridge.models.message_schemas import OutboundMediaMessage, OutboundMediaPayload

frame = OutboundMediaMessage(
    streamSid="MZ123",
    media=OutboundMediaPayload(payload="c29tZSBhdWRpbw=="),
)
await websocket.send_text(frame.model_dump_json())
```
"""

from callbridge.models.conversation import (
    ActiveConversation,
    ConnectionRegistry,
    ConversationSnapshot,
    ConversationTable,
    StreamConnection,
)
from callbridge.models.message_schemas import (
    ClearMessage,
    ConnectedMessage,
    MarkMessage,
    MediaMessage,
    OutboundMediaMessage,
    OutboundMediaPayload,
    StartMessage,
    StopMessage,
    TwilioBaseMessage,
)
from callbridge.models.voice_ai_schemas import (
    ConversationInitiationMessage,
    PongMessage,
    UserAudioChunkMessage,
)
