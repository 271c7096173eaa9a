"""WebSocket acceptor for viewer connections."""

import json
from collections.abc import Callable
from http import HTTPStatus
from typing import Any

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from ..shared.logger import bind_connection_context, clear_context, get_logger
from .registry import ConnectionHandle, ConnectionRegistry
from .relay import welcome_envelope

logger = get_logger(__name__)

# RFC 6455: inconsistent data within a message
CLOSE_INVALID_PAYLOAD = 1007


class RelayServer:
    """Accepts viewer connections on ``path`` and registers them for fan-out.

    Viewers receive a welcome frame on connect. Frames from viewers are logged
    only; a frame that is not JSON drops that viewer.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        host: str = "0.0.0.0",
        port: int = 3003,
        path: str = "/ws",
        server_name: str = "relay",
        max_message_size: int = 1024 * 1024,
        status_provider: Callable[[], dict[str, Any]] | None = None,
    ):
        self.registry = registry
        self.host = host
        self.port = port
        self.path = path
        self.server_name = server_name
        self.max_message_size = max_message_size
        self.status_provider = status_provider
        self.server: Server | None = None

    async def start(self) -> None:
        """Start accepting connections."""
        self.server = await serve(
            self.handle_connection,
            self.host,
            self.port,
            max_size=self.max_message_size,
            process_request=self.process_request,
        )
        logger.info(f"Relay WebSocket server started on {self.host}:{self.port}{self.path}")

    async def stop(self, close_timeout: float = 5.0) -> None:
        """Close viewer connections, then stop accepting new ones."""
        await self.registry.close_all(timeout=close_timeout)

        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        logger.info("Relay WebSocket server stopped")

    @property
    def bound_port(self) -> int | None:
        """Port actually bound; differs from ``port`` when 0 was requested."""
        if not self.server:
            return None
        for sock in self.server.sockets:
            return sock.getsockname()[1]
        return None

    def process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        """Answer /health over plain HTTP and refuse unknown paths."""
        path = request.path.split("?", 1)[0]

        if path == "/health":
            payload = {"status": "healthy", "service": self.server_name, "connections": len(self.registry)}
            if self.status_provider:
                payload.update(self.status_provider())
            body = json.dumps(payload)
            response = connection.respond(HTTPStatus.OK, body + "\n")
            del response.headers["Content-Type"]
            response.headers["Content-Type"] = "application/json"
            return response

        if path != self.path:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

        return None

    async def handle_connection(self, websocket: ServerConnection) -> None:
        """Register the viewer for the lifetime of its connection."""
        handle = self.registry.register(websocket)
        bind_connection_context(connection_id=handle.connection_id, remote_address=str(websocket.remote_address))

        try:
            await websocket.send(json.dumps(welcome_envelope(self.server_name)))

            async for message in websocket:
                if not await self.handle_client_frame(handle, message):
                    break

        except ConnectionClosed:
            logger.debug("Viewer connection closed")
        except Exception as e:
            logger.error(f"Error handling viewer connection: {e}")
        finally:
            self.registry.unregister(handle)
            clear_context()

    async def handle_client_frame(self, handle: ConnectionHandle, message: str | bytes) -> bool:
        """Log a viewer frame. Returns False when the viewer was dropped for a malformed frame."""
        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Malformed frame from viewer, dropping connection", connection_id=handle.connection_id)
            self.registry.unregister(handle)
            await handle.connection.close(code=CLOSE_INVALID_PAYLOAD, reason="malformed frame")
            return False

        logger.info("Received message from viewer", connection_id=handle.connection_id, data=data)
        return True
