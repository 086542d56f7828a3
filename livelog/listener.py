"""
livelog/listener.py — Accept loop and connection table.

All methods run on the network event loop; the connection table is only
mutated from there, so it needs no locking.
"""

import asyncio
import logging
import sys
from typing import Dict, List, Optional, Set

from livelog.config import ServerConfig
from livelog.connection import Connection, Role
from livelog.errors import BindError
from livelog.static import StaticResponder

log = logging.getLogger("livelog.listener")


class Listener:
    """
    Binds the TCP port and owns every live ``Connection``.

    Attributes:
        config: The server configuration
        responder: Static responder shared by all connections
        connections: Live connections keyed by ``Connection.id``
    """

    def __init__(self, config: ServerConfig, responder: Optional[StaticResponder] = None):
        self.config = config
        self.responder = responder or StaticResponder(config.root)
        self.connections: Dict[int, Connection] = {}
        self._tasks: Dict[int, asyncio.Task] = {}
        self._sends: Set[asyncio.Task] = set()
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def serving(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> Optional[int]:
        """The bound port, once listening."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    def websockets(self) -> List[Connection]:
        """Connections that completed the upgrade handshake."""
        return [
            conn for conn in list(self.connections.values())
            if conn.role is Role.WEBSOCKET and not conn.closed
        ]

    async def start(self):
        """
        Bind and begin accepting.

        Raises ``BindError`` if the port is outside 1..65535 or cannot be
        bound. Nothing is retried.
        """
        port = self.config.port
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port <= 0xFFFF:
            raise BindError(f"Invalid port: {port!r}")
        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                self.config.host,
                port,
                # SO_REUSEADDR lets another process share the port on Windows
                reuse_address=sys.platform != "win32",
            )
        except OSError as e:
            raise BindError(
                f"Could not bind {self.config.host}:{port}: {e.strerror or e}"
            ) from e
        log.info("Listening on http://%s:%s", self.config.host, port)

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        """Track one accepted transport for as long as it lives."""
        conn = Connection(
            reader,
            writer,
            self.responder,
            timeout=self.config.timeout,
            max_requests=self.config.max_requests,
            max_pending_bytes=self.config.max_pending_bytes,
            on_close=self._untrack,
        )
        self.connections[conn.id] = conn
        self._tasks[conn.id] = asyncio.current_task()
        log.debug("%s:%s connected (%d live)", conn.peer[0], conn.peer[1], len(self.connections))
        try:
            await conn.run()
        finally:
            self._untrack(conn)

    def _untrack(self, conn: Connection):
        self.connections.pop(conn.id, None)
        self._tasks.pop(conn.id, None)

    def broadcast(self, frame: bytes) -> int:
        """
        Queue *frame* for every upgraded connection.

        Each write runs as its own task; a failing peer is closed without
        affecting the others. Returns the number of recipients.
        """
        targets = self.websockets()
        for conn in targets:
            task = asyncio.ensure_future(conn.send_frame(frame))
            self._sends.add(task)
            task.add_done_callback(self._sends.discard)
        return len(targets)

    async def stop(self):
        """
        Stop accepting and forcibly close every connection.

        In-flight reads and writes are abandoned. Safe to call repeatedly.
        """
        server, self._server = self._server, None
        if server is not None:
            server.close()

        tasks = list(self._tasks.values()) + list(self._sends)
        for conn in list(self.connections.values()):
            conn.abort()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self.connections.clear()
        self._tasks.clear()
        self._sends.clear()
        if server is not None:
            await server.wait_closed()
            log.info("Listener stopped")
