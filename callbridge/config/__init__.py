"""
Configuration module for the call bridge.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based settings.

Key components:
- constants: Protocol event names for both legs, timeouts, routes and the default
  agent persona.
- logging_config: Console and rotating-file logging under a single application logger.
- settings: Credentials and agent options read from the environment.

Usage examples:
```python
from callbridge.config.constants import LOGGER_NAME, CONNECTION_TIMEOUT
from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import Settings

logger = configure_logging()
settings = Settings()
if not settings.elevenlabs_configured:
    logger.warning("ElevenLabs credentials missing")
```
"""

# Config module initialization
