"""Test configuration and shared fixtures for EmoteStream tests."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from emotestream.aggregator.settings import EmoteSettings
from emotestream.events import ReactionEvent
from emotestream.relay.registry import ConnectionRegistry

BASE_TIME = datetime(2024, 5, 1, 20, 15, 0)


class FakeConnection:
    """Stand-in for a viewer connection with scriptable send behaviour."""

    def __init__(
        self,
        fail_with: Exception | None = None,
        send_delay: float = 0.0,
        close_delay: float = 0.0,
        remote_address=("127.0.0.1", 50000),
    ):
        self.fail_with = fail_with
        self.send_delay = send_delay
        self.close_delay = close_delay
        self.remote_address = remote_address
        self.state = State.OPEN

        self.sent: list[str] = []
        self.close_calls: list[tuple[int, str]] = []

    async def send(self, message: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls.append((code, reason))
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.state = State.CLOSED


def make_event(emote: str, minute: int = 0, second: int = 0) -> ReactionEvent:
    """Reaction at BASE_TIME plus the given offset."""
    return ReactionEvent(emote_symbol=emote, occurred_at=BASE_TIME + timedelta(minutes=minute, seconds=second))


def closed_error() -> ConnectionClosed:
    return ConnectionClosed(None, None)


@pytest.fixture
def settings():
    """Settings with a small interval so flushes are easy to trigger."""
    return EmoteSettings(interval=4, threshold=0.5, allowed_emotes=["❤️", "👍", "😢", "😡"])


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def mock_producer():
    """Kafka producer whose sends resolve immediately."""
    producer = AsyncMock()

    async def send(topic, value=None, **kwargs):
        future = asyncio.get_running_loop().create_future()
        future.set_result(MagicMock(topic=topic, offset=0))
        return future

    producer.send.side_effect = send
    return producer


@pytest.fixture
def make_record():
    """Build a minimal consumer record."""

    def _make(topic: str, value: bytes | None, headers=None):
        return MagicMock(topic=topic, value=value, headers=headers or [])

    return _make
