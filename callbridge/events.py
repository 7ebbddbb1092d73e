"""
Typed publish/subscribe surface shared by the relay components.

Each leaf component owns an EventEmitter and publishes typed event payloads on it.
Subscribers register with ``on`` and receive an unsubscribe callable, which the
orchestrator keeps per call pairing and invokes on teardown so handlers never leak
across calls.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from callbridge.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]


# Telephony adapter events
class StreamStartedEvent(BaseModel):
    call_sid: str
    stream_sid: str
    synthetic: bool = False
    websocket: Any = Field(default=None, exclude=True, repr=False)


class AudioReceivedEvent(BaseModel):
    call_sid: str
    audio: str


class StreamStoppedEvent(BaseModel):
    call_sid: Optional[str] = None
    stream_sid: Optional[str] = None


class CallEndedEvent(BaseModel):
    call_sid: str


# Voice-AI client events
class AudioChunkEvent(BaseModel):
    audio: str
    event_id: Optional[int] = None


class ClientErrorEvent(BaseModel):
    message: str


class EventEmitter:
    """
    Minimal async event emitter.

    Handlers run in registration order. Coroutine handlers are awaited inline, so
    an emit completes only after every handler has finished.
    """

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}

    def on(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler for an event.

        Args:
            event: Event name
            handler: Callable or coroutine function taking the event payload

        Returns:
            A callable that removes this registration
        """
        self._handlers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            self.off(event, handler)

        return unsubscribe

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event]

    def remove_all_handlers(self) -> None:
        self._handlers.clear()

    def handler_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._handlers.get(event, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    async def emit(self, event: str, payload: Any = None) -> None:
        """
        Deliver a payload to every handler registered for the event.

        A failing handler is logged and does not prevent the remaining handlers
        from running.
        """
        # Copy so handlers may unsubscribe while the event is being delivered
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in '{event}' handler: {e}", exc_info=True)
