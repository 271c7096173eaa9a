"""Tests for fan-out of moments and video chunks to viewers."""

import asyncio
import base64
import json

import pytest
from conftest import FakeConnection, closed_error
from websockets.protocol import State

from emotestream.events import MediaChunk, SignificantMoment
from emotestream.relay.relay import BroadcastRelay, chunk_envelope, moment_envelope, welcome_envelope

pytestmark = pytest.mark.asyncio


def moment():
    return SignificantMoment(window_key="2024-05-01T20:15", emote_symbol="😢", count=3, total_in_window=4)


class TestEnvelopes:
    async def test_moment_envelope(self):
        assert moment_envelope(moment()) == {
            "type": "emote",
            "timestamp": "2024-05-01T20:15",
            "emote": "😢",
            "count": 3,
            "totalEmotes": 4,
        }

    async def test_chunk_envelope_base64_encodes_payload(self):
        envelope = chunk_envelope(MediaChunk(sequence_index=7, payload=b"\x00\xffvideo"))

        assert envelope["type"] == "video"
        assert envelope["index"] == 7
        assert base64.b64decode(envelope["chunk"]) == b"\x00\xffvideo"

    async def test_welcome_envelope(self):
        assert welcome_envelope("relay") == {
            "type": "welcome",
            "message": "Connected to emote data server",
            "server": "relay",
        }


class TestBroadcastRelay:
    async def test_every_viewer_receives_the_moment(self, registry):
        connections = [FakeConnection() for _ in range(3)]
        for connection in connections:
            registry.register(connection)
        relay = BroadcastRelay(registry)

        delivered = await relay.relay_moment(moment())

        assert delivered == 3
        for connection in connections:
            assert [json.loads(frame)["type"] for frame in connection.sent] == ["emote"]
        assert relay.frames_sent == 3

    async def test_chunks_keep_producer_order(self, registry):
        connection = FakeConnection()
        registry.register(connection)
        relay = BroadcastRelay(registry)

        for index in range(5):
            await relay.relay_chunk(MediaChunk(sequence_index=index, payload=b"x"))

        assert [json.loads(frame)["index"] for frame in connection.sent] == [0, 1, 2, 3, 4]

    async def test_no_viewers(self, registry):
        assert await BroadcastRelay(registry).relay_moment(moment()) == 0

    async def test_failed_viewer_is_dropped_and_others_still_receive(self, registry):
        healthy = FakeConnection()
        failing = FakeConnection(fail_with=closed_error())
        registry.register(healthy)
        failing_handle = registry.register(failing)
        relay = BroadcastRelay(registry)

        delivered = await relay.relay_moment(moment())

        assert delivered == 1
        assert len(healthy.sent) == 1
        assert not registry.is_registered(failing_handle)
        assert relay.send_failures == 1

    async def test_unexpected_send_error_drops_viewer(self, registry):
        handle = registry.register(FakeConnection(fail_with=OSError("reset by peer")))

        assert await BroadcastRelay(registry).relay_moment(moment()) == 0
        assert not registry.is_registered(handle)

    async def test_connection_not_open_is_dropped_without_sending(self, registry):
        closing = FakeConnection()
        closing.state = State.CLOSING
        handle = registry.register(closing)

        assert await BroadcastRelay(registry).relay_moment(moment()) == 0
        assert closing.sent == []
        assert not registry.is_registered(handle)

    async def test_stalled_viewer_is_timed_out_and_closed(self, registry):
        fast = FakeConnection()
        slow = FakeConnection(send_delay=1.0)
        registry.register(fast)
        slow_handle = registry.register(slow)
        relay = BroadcastRelay(registry, send_timeout=0.05)

        delivered = await relay.relay_moment(moment())

        assert delivered == 1
        assert not registry.is_registered(slow_handle)
        await relay.wait_closed()
        assert slow.close_calls == [(1013, "too slow")]

    async def test_viewer_unregistered_after_snapshot_is_skipped(self, registry, monkeypatch):
        """A viewer removed after the snapshot was taken is not sent to."""
        first = FakeConnection()
        second = FakeConnection()
        first_handle = registry.register(first)
        second_handle = registry.register(second)
        stale_snapshot = registry.active_connections()
        registry.unregister(second_handle)
        monkeypatch.setattr(registry, "active_connections", lambda: stale_snapshot)
        relay = BroadcastRelay(registry)

        delivered = await relay.relay_moment(moment())

        assert delivered == 1
        assert len(first.sent) == 1
        assert second.sent == []
        assert relay.send_failures == 0
        assert registry.is_registered(first_handle)

    async def test_dropped_viewer_gets_nothing_further(self, registry):
        failing = FakeConnection(fail_with=closed_error())
        registry.register(failing)
        relay = BroadcastRelay(registry)

        await relay.relay_moment(moment())
        failing.fail_with = None
        await relay.relay_moment(moment())

        assert failing.sent == []

    async def test_stalled_close_does_not_hold_up_the_broadcast(self, registry):
        """Closing a stalled viewer happens off the broadcast path."""
        fast = FakeConnection()
        stalled = FakeConnection(send_delay=1.0, close_delay=10.0)
        registry.register(fast)
        registry.register(stalled)
        relay = BroadcastRelay(registry, send_timeout=0.2)

        # Awaiting the close inline would take two send timeouts
        async with asyncio.timeout(0.3):
            delivered = await relay.relay_moment(moment())

        assert delivered == 1
        assert len(fast.sent) == 1

        await relay.wait_closed()
        assert stalled.close_calls == [(1013, "too slow")]

    async def test_wait_closed_without_pending_closes(self, registry):
        await BroadcastRelay(registry).wait_closed()
