import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from callbridge.config.settings import Settings
from callbridge.events import EventEmitter


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class FakeVoiceAIClient(EventEmitter):
    """Stand-in for VoiceAIStreamClient that records what the orchestrator does with it"""

    def __init__(self, connect_result=True, **kwargs):
        super().__init__()
        self.kwargs = kwargs
        self.connect = AsyncMock(return_value=connect_result)
        self.send_audio = AsyncMock(return_value=True)
        self.disconnect = AsyncMock()


class FakeProviderSocket:
    """Provider-side WebSocket fed by the test; iteration blocks until a message is fed"""

    def __init__(self):
        self.sent = []
        self.close_calls = 0
        self.send_error = None
        self._queue = None

    @property
    def _incoming(self):
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    async def send(self, message):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

    async def close(self):
        self.close_calls += 1
        self._incoming.put_nowait(None)

    def feed(self, message):
        self._incoming.put_nowait(message)

    def finish(self, error=None):
        self._incoming.put_nowait(error)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def settings():
    return Settings(
        elevenlabs_api_key="test-key",
        elevenlabs_agent_id="agent-123",
        base_url="https://bridge.example.com",
        agent_prompt="You are a test agent.",
        first_message="Hi there",
        language="en",
    )


@pytest.fixture
def unconfigured_settings():
    return Settings(
        elevenlabs_api_key="your_elevenlabs_key",
        elevenlabs_agent_id="your_agent_id",
        base_url="https://bridge.example.com",
    )


@pytest.fixture
def client_factory():
    """Factory building FakeVoiceAIClient instances; set connect_result before a call starts"""
    created = []

    def factory(**kwargs):
        client = FakeVoiceAIClient(connect_result=factory.connect_result, **kwargs)
        created.append(client)
        return client

    factory.created = created
    factory.connect_result = True
    return factory


@pytest.fixture
def provider_socket():
    return FakeProviderSocket()
