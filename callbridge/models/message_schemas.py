"""
Pydantic models for the Twilio Media Streams WebSocket protocol.

This module defines structured data models for the inbound frames Twilio sends over a
media stream (connected, start, media, stop, mark) and the outbound frames the bridge
sends back (media, clear), providing type validation and documentation.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class TwilioBaseMessage(BaseModel):
    """Base model for all media stream frames."""

    event: str = Field(..., description="Event type discriminator")
    sequenceNumber: Optional[str] = Field(
        None, description="Monotonic frame counter assigned by Twilio"
    )
    streamSid: Optional[str] = Field(None, description="Media stream identifier")


# Inbound frames
class ConnectedMessage(TwilioBaseMessage):
    """Model for the connected handshake frame."""

    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class MediaFormat(BaseModel):
    """Audio format advertised in the start frame."""

    encoding: str = "audio/x-mulaw"
    sampleRate: int = 8000
    channels: int = 1


class StartMetadata(BaseModel):
    """Payload of the start frame."""

    callSid: str = Field(..., description="Call identifier")
    streamSid: str = Field(..., description="Stream identifier used to address outbound frames")
    accountSid: Optional[str] = None
    tracks: List[str] = Field(default_factory=list)
    customParameters: Dict[str, str] = Field(default_factory=dict)
    mediaFormat: Optional[MediaFormat] = None

    @field_validator("callSid", "streamSid")
    def validate_identifier(cls, v):
        """Validate that identifiers are not blank."""
        if not v.strip():
            raise ValueError("Identifier cannot be empty")
        return v


class StartMessage(TwilioBaseMessage):
    """Model for the start frame carrying call and stream identifiers."""

    event: Literal["start"]
    start: StartMetadata


class MediaPayload(BaseModel):
    """Payload of a media frame."""

    payload: str = Field(..., description="Base64-encoded audio data")
    track: Optional[str] = None
    chunk: Optional[str] = None
    timestamp: Optional[str] = None


class MediaMessage(TwilioBaseMessage):
    """Model for an inbound media frame."""

    event: Literal["media"]
    media: MediaPayload


class StopMetadata(BaseModel):
    """Payload of the stop frame."""

    accountSid: Optional[str] = None
    callSid: Optional[str] = None


class StopMessage(TwilioBaseMessage):
    """Model for the stop frame."""

    event: Literal["stop"]
    stop: Optional[StopMetadata] = None


class MarkMessage(TwilioBaseMessage):
    """Model for a playback mark acknowledgement."""

    event: Literal["mark"]
    mark: Dict[str, str] = Field(default_factory=dict)


# Outbound frames
class OutboundMediaPayload(BaseModel):
    payload: str


class OutboundMediaMessage(BaseModel):
    """Model for audio sent back to the caller."""

    event: Literal["media"] = "media"
    streamSid: str = Field(..., description="Stream identifier, the wire-level routing key")
    media: OutboundMediaPayload


class ClearMessage(BaseModel):
    """Model for the frame that flushes audio queued for playback on the caller's side."""

    event: Literal["clear"] = "clear"
    streamSid: str
