"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol names, timeouts and agent defaults so the
telephony and voice-AI legs agree on the same vocabulary.
"""

# Logger name used throughout the application
LOGGER_NAME = "call_bridge"

# ElevenLabs Conversational AI endpoint
ELEVENLABS_CONVAI_URL = "wss://api.elevenlabs.io/v1/convai/conversation"

# Seconds to wait for the voice-AI provider to accept the WebSocket open
CONNECTION_TIMEOUT = 10

# Placeholder credentials shipped in example .env files
PLACEHOLDER_API_KEY = "your_elevenlabs_key"
PLACEHOLDER_AGENT_ID = "your_agent_id"

# Default agent persona sent in the conversation initiation message
DEFAULT_AGENT_PROMPT = (
    "You are a friendly, professional voice assistant conducting brief phone "
    "conversations with callers. Keep responses under 30 seconds when spoken. "
    "Ask engaging follow-up questions and show genuine interest in the person."
)
DEFAULT_FIRST_MESSAGE = (
    "Hello! Thanks for calling. I'm an AI assistant and I'd love to have a quick "
    "chat with you. How are you doing today?"
)
DEFAULT_LANGUAGE = "en"

# HTTP / WebSocket routes
MEDIA_STREAM_PATH = "/voice/media-stream"
WEBHOOK_STREAM_PATH = "/voice/webhook-stream"
STREAM_STATUS_PATH = "/voice/stream-status"

# Twilio media stream events (inbound)
TWILIO_EVENT_CONNECTED = "connected"
TWILIO_EVENT_START = "start"
TWILIO_EVENT_MEDIA = "media"
TWILIO_EVENT_STOP = "stop"
TWILIO_EVENT_MARK = "mark"

# Prefixes for identifiers synthesized when a media frame precedes the start frame
SYNTHETIC_CALL_PREFIX = "CALL"
SYNTHETIC_STREAM_PREFIX = "SYN"

# ElevenLabs message types (inbound)
MESSAGE_TYPE_INITIATION_METADATA = "conversation_initiation_metadata"
MESSAGE_TYPE_AUDIO = "audio"
MESSAGE_TYPE_USER_TRANSCRIPT = "user_transcript"
MESSAGE_TYPE_AGENT_RESPONSE = "agent_response"
MESSAGE_TYPE_INTERRUPTION = "interruption"
MESSAGE_TYPE_PING = "ping"

# Adapter events
EVENT_CONNECTED = "connected"
EVENT_STREAM_STARTED = "stream_started"
EVENT_AUDIO_RECEIVED = "audio_received"
EVENT_STREAM_STOPPED = "stream_stopped"
EVENT_CALL_ENDED = "call_ended"

# Voice-AI client events
EVENT_CONVERSATION_STARTED = "conversation_started"
EVENT_AUDIO_CHUNK = "audio_chunk"
EVENT_USER_TRANSCRIPT = "user_transcript"
EVENT_AGENT_RESPONSE = "agent_response"
EVENT_INTERRUPTION = "interruption"
EVENT_DISCONNECTED = "disconnected"
EVENT_ERROR = "error"
