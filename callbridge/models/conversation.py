"""
Call state management for the telephony and voice-AI legs.

This module provides the two registries the relay depends on:

- ConnectionRegistry, owned by the telephony adapter, maps a call identifier to the
  media stream connection and the stream identifier needed to address outbound frames.
- ConversationTable, owned by the orchestrator, maps a call identifier to the active
  pairing of a voice-AI client and a telephony connection.

Each registry is mutated only by its owner's event handlers, so neither needs locking.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field


@dataclass
class StreamConnection:
    """Per-socket state of one inbound media stream."""

    websocket: Any
    call_sid: Optional[str] = None
    stream_sid: Optional[str] = None
    has_started: bool = False
    synthetic: bool = False
    rejected: bool = False


class ConnectionRegistry:
    """
    Registry of live media stream connections keyed by call identifier.

    At most one live entry exists per call identifier, and an entry is only ever
    removed by the connection that owns it.
    """

    def __init__(self):
        self._connections: Dict[str, StreamConnection] = {}

    def register(self, connection: StreamConnection) -> bool:
        """
        Record a started connection under its call identifier.

        Returns:
            False if a different live connection already holds the call identifier
        """
        existing = self._connections.get(connection.call_sid)
        if existing is not None and existing is not connection:
            return False
        self._connections[connection.call_sid] = connection
        return True

    def get(self, call_sid: str) -> Optional[StreamConnection]:
        return self._connections.get(call_sid)

    def remove(self, call_sid: str, connection: StreamConnection) -> bool:
        """
        Remove the entry for call_sid if it belongs to the given connection.

        Returns:
            True if an entry was removed
        """
        if self._connections.get(call_sid) is connection:
            del self._connections[call_sid]
            return True
        return False

    def call_sids(self) -> List[str]:
        return list(self._connections)

    def __contains__(self, call_sid: str) -> bool:
        return call_sid in self._connections

    def __len__(self) -> int:
        return len(self._connections)


@dataclass
class ActiveConversation:
    """One live pairing of a telephony leg with a voice-AI leg."""

    call_sid: str
    client: Any
    websocket: Any
    start_time: float = field(default_factory=time.time)
    unsubscribers: List[Callable[[], None]] = field(default_factory=list)

    @property
    def duration(self) -> float:
        """Seconds since the pairing was created."""
        return time.time() - self.start_time


class ConversationSnapshot(BaseModel):
    """Read-only view of the active conversations for status reporting."""

    active_conversations: int = Field(..., description="Number of live pairings")
    conversations: List[str] = Field(
        default_factory=list, description="Call identifiers of the live pairings"
    )


class ConversationTable:
    """
    Active conversation table keyed by call identifier.

    A call identifier is present only while both legs are believed live; absence
    means audio for that call is not forwarded.
    """

    def __init__(self):
        self._conversations: Dict[str, ActiveConversation] = {}

    def add(self, conversation: ActiveConversation) -> bool:
        """
        Insert a pairing.

        Returns:
            False if the call identifier already has a pairing; the existing entry is kept
        """
        if conversation.call_sid in self._conversations:
            return False
        self._conversations[conversation.call_sid] = conversation
        return True

    def get(self, call_sid: str) -> Optional[ActiveConversation]:
        return self._conversations.get(call_sid)

    def pop(self, call_sid: str) -> Optional[ActiveConversation]:
        """Remove and return the pairing, or None if it was already removed."""
        return self._conversations.pop(call_sid, None)

    def call_sids(self) -> List[str]:
        return list(self._conversations)

    def snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            active_conversations=len(self._conversations),
            conversations=self.call_sids(),
        )

    def __contains__(self, call_sid: str) -> bool:
        return call_sid in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)
