"""
Websocket call server.

Accepts one websocket per call on ``/<room>`` for each configured room, hands
every inbound message to a fresh SessionController in receipt order, and
closes the controller when the socket goes away.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Callable, Optional
from urllib.parse import urlsplit

from prometheus_client import Gauge
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.frames import CloseCode

from callbridge.config import ServerConfig
from callbridge.core.session_controller import SessionController
from callbridge.errors import SetupError
from callbridge.logging_config import get_logger

logger = get_logger(__name__)

_CONNECTIONS = Gauge(
    "callbridge_socket_connections",
    "Open call websocket connections",
    labelnames=("room",),
)

ControllerFactory = Callable[[ServerConnection, str], SessionController]


class CallServer:
    def __init__(self, config: ServerConfig, controller_factory: ControllerFactory) -> None:
        self.config = config
        self.host = config.host
        self.port = config.port
        self._controller_factory = controller_factory
        self._server: Optional[Server] = None

    @property
    def is_serving(self) -> bool:
        return self._server is not None

    def room_for_path(self, path: str) -> Optional[str]:
        """Map a request path to a configured room; ``/`` is the first room."""
        name = urlsplit(path).path.strip("/")
        if not name:
            return self.config.rooms[0]
        return name if name in self.config.rooms else None

    async def start(self) -> None:
        if self._server:
            logger.warning("Call server already running")
            return
        self._server = await serve(
            self._handle_connection,
            self.host,
            self.port,
            process_request=self._process_request,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
            max_size=self.config.max_message_size,
        )
        sockets = list(self._server.sockets or [])
        if sockets:
            # update port in case OS picked an ephemeral port (port=0)
            self.port = sockets[0].getsockname()[1]
        logger.info("Call server listening", host=self.host, port=self.port, rooms=self.config.rooms)

    async def stop(self) -> None:
        if not self._server:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Call server stopped")

    def _process_request(self, connection: ServerConnection, request):
        if self.room_for_path(request.path) is None:
            logger.warning("Rejected connection for unknown room", path=request.path)
            return connection.respond(HTTPStatus.NOT_FOUND, "Unknown room\n")
        return None

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        room = self.room_for_path(websocket.request.path)
        controller = self._controller_factory(websocket, room)
        _CONNECTIONS.labels(room=room).inc()
        logger.debug("Call socket connected", room=room, peer=websocket.remote_address)
        try:
            async for message in websocket:
                try:
                    await controller.handle_message(message)
                except SetupError as exc:
                    logger.warning("Invalid setup message, closing connection", room=room, error=str(exc))
                    await websocket.close(code=CloseCode.POLICY_VIOLATION, reason="invalid setup message")
                    break
        except ConnectionClosed:
            pass
        finally:
            _CONNECTIONS.labels(room=room).dec()
            await controller.close()
