"""
Run script for starting the Call Bridge server.

This script configures and starts the FastAPI server with WebSocket settings suited to
real-time audio relay between Twilio and ElevenLabs.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import os
import sys
from pathlib import Path

import dotenv
import uvicorn

env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import Settings

logger = configure_logging()


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the Call Bridge server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8000")),
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args()


def main():
    """Main entry point for starting the server."""
    args = parse_args()
    settings = Settings()

    if not settings.elevenlabs_configured:
        logger.error("ELEVENLABS_API_KEY and ELEVENLABS_AGENT_ID must be set")
        print("Error: ELEVENLABS_API_KEY and ELEVENLABS_AGENT_ID environment variables are required")
        sys.exit(1)

    if not settings.base_url:
        logger.warning("BASE_URL not set; media stream URL will be derived from the request host")

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Log level: {args.log_level}")

    uvicorn.run(
        "callbridge.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
