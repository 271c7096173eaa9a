"""Relay service: fans significant moments and video chunks out to viewers."""

from .registry import ConnectionHandle, ConnectionRegistry
from .relay import BroadcastRelay
from .websocket_server import RelayServer

__all__ = ["BroadcastRelay", "ConnectionHandle", "ConnectionRegistry", "RelayServer"]
