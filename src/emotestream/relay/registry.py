"""Registry of live viewer connections eligible for fan-out."""

import asyncio
import itertools
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

from websockets.protocol import State

from ..shared.logger import get_logger

logger = get_logger(__name__)


class ClientConnection(Protocol):
    """The parts of a duplex connection the relay relies on."""

    @property
    def state(self) -> State: ...

    @property
    def remote_address(self) -> Any: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


@dataclass(frozen=True, eq=False)
class ConnectionHandle:
    """Registry entry for one viewer connection."""

    connection_id: str
    connection: ClientConnection
    registered_at: float = field(default_factory=time.time)

    @property
    def is_open(self) -> bool:
        """True while the underlying socket is OPEN."""
        return self.connection.state is State.OPEN


class ConnectionRegistry:
    """Copy-on-write set of live connections.

    Writers build a new mapping under a lock and swap it in; readers take a
    tuple snapshot that later register/unregister calls never touch.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Mapping[str, ConnectionHandle] = MappingProxyType({})
        self._ids = itertools.count(1)

        self.total_registered = 0
        self.total_unregistered = 0

    def __len__(self) -> int:
        """Number of live connections in the current mapping."""
        return len(self._connections)

    def register(self, connection: ClientConnection) -> ConnectionHandle:
        """Add ``connection`` under a fresh ``conn-N`` id and return its handle.

        The new mapping is visible to the next ``active_connections`` call; snapshots
        already handed out do not include it.
        """
        with self._lock:
            handle = ConnectionHandle(connection_id=f"conn-{next(self._ids)}", connection=connection)
            updated = dict(self._connections)
            updated[handle.connection_id] = handle
            self._connections = MappingProxyType(updated)
            self.total_registered += 1

        logger.info(
            "Viewer connected",
            connection_id=handle.connection_id,
            remote_address=str(connection.remote_address),
            active_connections=len(self._connections),
        )
        return handle

    def unregister(self, handle: ConnectionHandle) -> bool:
        """Remove ``handle``; returns False if it was already gone. Never raises."""
        with self._lock:
            if handle.connection_id not in self._connections:
                return False
            updated = dict(self._connections)
            del updated[handle.connection_id]
            self._connections = MappingProxyType(updated)
            self.total_unregistered += 1

        logger.info(
            "Viewer disconnected",
            connection_id=handle.connection_id,
            active_connections=len(self._connections),
        )
        return True

    def is_registered(self, handle: ConnectionHandle) -> bool:
        """True while ``handle`` is in the live mapping, whatever its socket state."""
        return handle.connection_id in self._connections

    def active_connections(self) -> tuple[ConnectionHandle, ...]:
        """Snapshot of the live handles at the time of the call."""
        return tuple(self._connections.values())

    async def close_all(self, code: int = 1001, reason: str = "server shutting down", timeout: float = 5.0) -> int:
        """Close every registered connection and empty the registry. Returns how many were closed."""
        handles = self.active_connections()

        async def _close(handle: ConnectionHandle) -> None:
            try:
                await asyncio.wait_for(handle.connection.close(code=code, reason=reason), timeout=timeout)
            except Exception as e:
                logger.warning("Error closing viewer connection", connection_id=handle.connection_id, error=str(e))
            finally:
                self.unregister(handle)

        await asyncio.gather(*(_close(handle) for handle in handles))
        if handles:
            logger.info("Closed viewer connections", count=len(handles))
        return len(handles)

    def get_stats(self) -> dict[str, int]:
        """Live count plus lifetime register/unregister totals."""
        return {
            "active": len(self._connections),
            "total_registered": self.total_registered,
            "total_unregistered": self.total_unregistered,
        }
