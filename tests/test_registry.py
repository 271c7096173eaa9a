"""Tests for the live connection registry."""

import pytest
from conftest import FakeConnection

pytestmark = pytest.mark.asyncio


class TestConnectionRegistry:
    async def test_register_assigns_unique_ids(self, registry):
        first = registry.register(FakeConnection())
        second = registry.register(FakeConnection())

        assert first.connection_id != second.connection_id
        assert len(registry) == 2
        assert registry.is_registered(first)

    async def test_unregister_is_idempotent(self, registry):
        handle = registry.register(FakeConnection())

        assert registry.unregister(handle) is True
        assert registry.unregister(handle) is False
        assert len(registry) == 0

    async def test_snapshot_unaffected_by_later_changes(self, registry):
        first = registry.register(FakeConnection())
        snapshot = registry.active_connections()

        registry.unregister(first)
        registry.register(FakeConnection())

        assert snapshot == (first,)
        assert len(registry.active_connections()) == 1

    async def test_close_all_closes_and_empties(self, registry):
        connections = [FakeConnection(), FakeConnection()]
        for connection in connections:
            registry.register(connection)

        closed = await registry.close_all()

        assert closed == 2
        assert len(registry) == 0
        assert all(connection.close_calls == [(1001, "server shutting down")] for connection in connections)

    async def test_close_all_survives_close_errors(self, registry):
        broken = FakeConnection()

        async def failing_close(code=1000, reason=""):
            raise RuntimeError("socket already gone")

        broken.close = failing_close
        registry.register(broken)
        registry.register(FakeConnection())

        assert await registry.close_all() == 2
        assert len(registry) == 0

    async def test_stats(self, registry):
        handle = registry.register(FakeConnection())
        registry.register(FakeConnection())
        registry.unregister(handle)

        assert registry.get_stats() == {"active": 1, "total_registered": 2, "total_unregistered": 1}
