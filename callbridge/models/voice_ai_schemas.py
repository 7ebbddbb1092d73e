"""
Pydantic models for the ElevenLabs Conversational AI WebSocket messages.

This module provides type-safe models for the messages exchanged with the voice-AI
provider, including the conversation initiation handshake, caller audio and keepalive
frames, and the inbound event payloads.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


# Outbound messages
class AgentPrompt(BaseModel):
    prompt: str


class AgentOverride(BaseModel):
    """Persona overrides applied to the configured agent for one conversation."""

    prompt: AgentPrompt
    first_message: str
    language: str


class ConversationConfigOverride(BaseModel):
    agent: AgentOverride


class ConversationInitiationMessage(BaseModel):
    """First message sent after the socket opens; the provider waits for it."""

    type: Literal["conversation_initiation_client_data"] = "conversation_initiation_client_data"
    conversation_config_override: ConversationConfigOverride
    custom_llm_extra_body: Dict[str, Any] = Field(default_factory=dict)
    dynamic_variables: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, prompt: str, first_message: str, language: str) -> "ConversationInitiationMessage":
        return cls(
            conversation_config_override=ConversationConfigOverride(
                agent=AgentOverride(
                    prompt=AgentPrompt(prompt=prompt),
                    first_message=first_message,
                    language=language,
                )
            )
        )


class UserAudioChunk(BaseModel):
    chunk: str = Field(..., description="Base64-encoded caller audio")


class UserAudioChunkMessage(BaseModel):
    """Caller audio forwarded to the agent."""

    type: Literal["user_audio_chunk"] = "user_audio_chunk"
    user_audio_chunk: UserAudioChunk


class PongMessage(BaseModel):
    """Keepalive reply to a provider ping."""

    type: Literal["pong"] = "pong"


# Inbound payloads
class AudioEvent(BaseModel):
    audio_base_64: str
    event_id: Optional[int] = None


class UserTranscriptionEvent(BaseModel):
    user_transcript: str = ""


class AgentResponseEvent(BaseModel):
    agent_response: str = ""


class InterruptionEvent(BaseModel):
    event_id: Optional[int] = None
    reason: Optional[str] = None
