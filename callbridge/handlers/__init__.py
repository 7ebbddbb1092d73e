"""
Handlers module for the Twilio Media Streams WebSocket protocol.

This module provides one handler per inbound frame type. The MediaStreamManager routes
each decoded frame to its handler based on the frame's "event" field.

Key components:
- media_stream_handlers: connected, start, media, stop and mark handlers, plus the
  synthetic start fallback used when media arrives before the start frame.

Usage examples:
```python
from callbridge.handlers import media_stream_handlers
from callbridge.media_stream_manager import MediaStreamManager
from callbridge.models.conversation import StreamConnection

manager = MediaStreamManager()
connection = StreamConnection(websocket=websocket)
await media_stream_handlers.handle_start(
    {"event": "start", "start": {"callSid": "CA1", "streamSid": "MZ1"}},
    connection,
    manager,
)
```
"""

# Handlers module initialization
