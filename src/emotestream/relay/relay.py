"""Serializes moments and media chunks and fans them out to every viewer."""

import asyncio
import base64
import json
from typing import Any

from websockets.exceptions import ConnectionClosed

from ..events import MediaChunk, SignificantMoment
from ..shared.logger import get_logger
from .registry import ConnectionHandle, ConnectionRegistry

logger = get_logger(__name__)

WELCOME_MESSAGE = "Connected to emote data server"


def welcome_envelope(server_name: str) -> dict[str, Any]:
    """First frame a viewer receives after the handshake."""
    return {"type": "welcome", "message": WELCOME_MESSAGE, "server": server_name}


def moment_envelope(moment: SignificantMoment) -> dict[str, Any]:
    """Moment wire fields under ``type: emote``."""
    return {"type": "emote", **moment.to_wire()}


def chunk_envelope(chunk: MediaChunk) -> dict[str, Any]:
    """Video frame: base64 payload plus its ``index`` header value."""
    return {
        "type": "video",
        "chunk": base64.b64encode(chunk.payload).decode("ascii"),
        "index": chunk.sequence_index,
    }


class BroadcastRelay:
    """Best-effort fan-out to the registry's live connections.

    Each message goes to a snapshot of the registry. Sends run concurrently and
    are bounded by ``send_timeout``; a connection that is closed, errors or
    times out is unregistered and the rest still receive the frame. Nothing is
    queued or retried. Stalled connections are closed in the background so the
    next frame is not held up; ``wait_closed`` waits for those closes.
    """

    def __init__(self, registry: ConnectionRegistry, send_timeout: float = 5.0):
        self.registry = registry
        self.send_timeout = send_timeout

        self.frames_sent = 0
        self.send_failures = 0
        self._closing: set[asyncio.Task] = set()

    async def relay_moment(self, moment: SignificantMoment) -> int:
        """Send one significant moment to every viewer; returns how many received it."""
        return await self.broadcast(moment_envelope(moment))

    async def relay_chunk(self, chunk: MediaChunk) -> int:
        """Send one video chunk to every viewer; returns how many received it."""
        return await self.broadcast(chunk_envelope(chunk))

    async def broadcast(self, envelope: dict[str, Any]) -> int:
        """Send ``envelope`` to every live connection; returns the number reached."""
        handles = self.registry.active_connections()
        if not handles:
            return 0

        message = json.dumps(envelope, ensure_ascii=False)
        results = await asyncio.gather(*(self._deliver(handle, message) for handle in handles))
        delivered = sum(results)

        self.frames_sent += delivered
        logger.debug("Broadcast complete", type=envelope.get("type"), delivered=delivered, targets=len(handles))
        return delivered

    async def _deliver(self, handle: ConnectionHandle, message: str) -> bool:
        # Unregistered since the snapshot was taken
        if not self.registry.is_registered(handle):
            return False

        if not handle.is_open:
            self._drop(handle, "connection not open")
            return False

        try:
            await asyncio.wait_for(handle.connection.send(message), timeout=self.send_timeout)
        except ConnectionClosed:
            self._drop(handle, "connection closed")
            return False
        except TimeoutError:
            self._drop(handle, f"send timed out after {self.send_timeout}s")
            self._close_in_background(handle)
            return False
        except Exception as e:
            self._drop(handle, f"send failed: {type(e).__name__}: {e}")
            return False

        return True

    def _drop(self, handle: ConnectionHandle, reason: str) -> None:
        self.send_failures += 1
        if self.registry.unregister(handle):
            logger.warning("Dropping viewer connection", connection_id=handle.connection_id, reason=reason)

    def _close_in_background(self, handle: ConnectionHandle) -> None:
        task = asyncio.create_task(self._close_stalled(handle), name=f"close-{handle.connection_id}")
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def wait_closed(self) -> None:
        """Wait for background closes of stalled connections to finish."""
        if self._closing:
            await asyncio.gather(*self._closing)

    async def _close_stalled(self, handle: ConnectionHandle) -> None:
        # 1013: try again later
        try:
            await asyncio.wait_for(handle.connection.close(code=1013, reason="too slow"), timeout=self.send_timeout)
        except Exception as e:
            logger.debug("Could not close stalled connection", connection_id=handle.connection_id, error=str(e))

    def get_stats(self) -> dict[str, int]:
        """Counters for the health payload."""
        return {"frames_sent": self.frames_sent, "send_failures": self.send_failures}
