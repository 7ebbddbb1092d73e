"""
Environment-based settings for the call bridge.

Values are read from the process environment when a Settings instance is
created, after an optional ``.env`` file has been loaded by the entry point.
"""

import os
from typing import Optional

from callbridge.config.constants import (
    DEFAULT_AGENT_PROMPT,
    DEFAULT_FIRST_MESSAGE,
    DEFAULT_LANGUAGE,
    PLACEHOLDER_AGENT_ID,
    PLACEHOLDER_API_KEY,
)


class Settings:
    """Snapshot of the configuration consumed by the relay core."""

    def __init__(
        self,
        elevenlabs_api_key: Optional[str] = None,
        elevenlabs_agent_id: Optional[str] = None,
        base_url: Optional[str] = None,
        agent_prompt: Optional[str] = None,
        first_message: Optional[str] = None,
        language: Optional[str] = None,
    ):
        self.elevenlabs_api_key = elevenlabs_api_key or os.getenv("ELEVENLABS_API_KEY")
        self.elevenlabs_agent_id = elevenlabs_agent_id or os.getenv("ELEVENLABS_AGENT_ID")
        self.base_url = base_url or os.getenv("BASE_URL")
        self.agent_prompt = agent_prompt or os.getenv("AGENT_PROMPT", DEFAULT_AGENT_PROMPT)
        self.first_message = first_message or os.getenv(
            "AGENT_FIRST_MESSAGE", DEFAULT_FIRST_MESSAGE
        )
        self.language = language or os.getenv("AGENT_LANGUAGE", DEFAULT_LANGUAGE)
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "8000"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def elevenlabs_configured(self) -> bool:
        """True when both voice-AI credentials are set to non-placeholder values."""
        return is_configured(self.elevenlabs_api_key, self.elevenlabs_agent_id)


def is_configured(api_key: Optional[str], agent_id: Optional[str]) -> bool:
    return bool(
        api_key
        and agent_id
        and api_key != PLACEHOLDER_API_KEY
        and agent_id != PLACEHOLDER_AGENT_ID
    )
