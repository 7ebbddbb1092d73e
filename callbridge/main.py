"""
FastAPI server bridging Twilio Media Streams and ElevenLabs Conversational AI.

This module builds the FastAPI application that Twilio talks to. A voice webhook answers
inbound calls with TwiML that opens a bidirectional media stream to this server; the
media stream WebSocket is handed to the MediaStreamManager, and the StreamOrchestrator
pairs every stream with an ElevenLabs conversation.

One MediaStreamManager and one StreamOrchestrator serve every call in the process. They
are created in create_app() and stored on app.state.
"""

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional
from xml.sax.saxutils import escape

import dotenv
from fastapi import APIRouter, FastAPI, Request, Response, WebSocket

from callbridge.bot.stream_orchestrator import StreamOrchestrator
from callbridge.bot.voice_ai_client import VoiceAIStreamClient
from callbridge.config.constants import (
    MEDIA_STREAM_PATH,
    STREAM_STATUS_PATH,
    WEBHOOK_STREAM_PATH,
)
from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import Settings
from callbridge.media_stream_manager import MediaStreamManager

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

logger = configure_logging()

STREAM_NAME = "elevenlabs-voice2-stream"
GREETING = "Hello! Connecting you to our AI assistant. Please wait a moment."
NOT_CONFIGURED_MESSAGE = (
    "Hello! The voice assistant is not configured right now. Please try again later."
)

router = APIRouter()


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _media_stream_url(request: Request, settings: Settings) -> str:
    base_url = settings.base_url or f"https://{request.headers.get('host', 'localhost')}"
    return f"{_to_ws_url(base_url.rstrip('/'))}{MEDIA_STREAM_PATH}"


def _twiml_connect_stream(*, stream_url: str, greeting: str) -> str:
    say = escape(greeting)
    stream = escape(stream_url)
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say voice=\"Polly.Joanna\">{say}</Say>"
        "<Connect>"
        f"<Stream name=\"{STREAM_NAME}\" url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


def _twiml_say_and_hangup(*, message: str) -> str:
    say = escape(message)
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say>{say}</Say>"
        "<Hangup/>"
        "</Response>"
    )


@router.websocket(MEDIA_STREAM_PATH)
async def media_stream_endpoint(websocket: WebSocket):
    """WebSocket endpoint for Twilio Media Streams.

    Twilio opens one connection per call after receiving the TwiML from the voice
    webhook. Frames follow the Media Streams protocol (connected, start, media, stop).
    """
    await websocket.app.state.media_stream_manager.handle_websocket(websocket)


@router.post(WEBHOOK_STREAM_PATH)
async def webhook_stream(request: Request) -> Response:
    """Voice webhook answering an inbound call.

    Returns TwiML that connects the call to the media stream endpoint, or a spoken
    fallback when the voice-AI provider is not configured so the caller never hears
    silence.
    """
    settings: Settings = request.app.state.settings
    orchestrator: StreamOrchestrator = request.app.state.orchestrator

    if not orchestrator.is_configured():
        logger.warning("ElevenLabs not configured, answering with fallback message")
        xml = _twiml_say_and_hangup(message=NOT_CONFIGURED_MESSAGE)
    else:
        stream_url = _media_stream_url(request, settings)
        logger.info(f"Starting Twilio media stream to: {stream_url}")
        xml = _twiml_connect_stream(stream_url=stream_url, greeting=GREETING)

    return Response(content=xml, media_type="application/xml")


@router.get(STREAM_STATUS_PATH)
async def stream_status(request: Request):
    """Report the conversations currently relayed by the orchestrator."""
    snapshot = request.app.state.orchestrator.get_stats()
    return {
        "service": "ElevenLabs Voice 2.0 Streaming",
        "status": "running",
        "activeConversations": snapshot.active_conversations,
        "conversations": snapshot.conversations,
        "uptime": time.time() - request.app.state.started_at,
    }


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information including whether the voice-AI provider is configured
        and how many calls and conversations are live.
    """
    state = request.app.state
    return {
        "status": "healthy",
        "elevenlabs_configured": state.orchestrator.is_configured(),
        "active_connections": len(state.media_stream_manager.active_calls()),
        "active_conversations": state.orchestrator.get_stats().active_conversations,
    }


@router.get("/")
async def root():
    """Root endpoint to display basic information about the API."""
    return {
        "name": "Call Bridge",
        "description": "Real-time relay between Twilio Media Streams and ElevenLabs Conversational AI",
        "version": "1.0.0",
        "endpoints": {
            MEDIA_STREAM_PATH: "WebSocket endpoint for Twilio Media Streams",
            WEBHOOK_STREAM_PATH: "Twilio voice webhook returning streaming TwiML",
            STREAM_STATUS_PATH: "Active conversation status",
            "/health": "Health check endpoint",
        },
    }


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Callable[..., VoiceAIStreamClient] = VoiceAIStreamClient,
) -> FastAPI:
    """
    Build the application with its process-scoped adapter and orchestrator.

    Args:
        settings: Configuration, read from the environment when omitted
        client_factory: Constructor for per-call voice-AI clients
    """
    settings = settings or Settings()
    media_stream_manager = MediaStreamManager()
    orchestrator = StreamOrchestrator(
        media_stream_manager, settings=settings, client_factory=client_factory
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await orchestrator.shutdown()

    app = FastAPI(
        title="Call Bridge",
        description="Integration between Twilio Media Streams and ElevenLabs Conversational AI",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.media_stream_manager = media_stream_manager
    app.state.orchestrator = orchestrator
    app.state.started_at = time.time()
    app.include_router(router)

    logger.info(f"ElevenLabs configured: {settings.elevenlabs_configured}")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        websocket_max_size=16777216,  # 16MB - large enough for audio chunks
        http="h11",
    )
