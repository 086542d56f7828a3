"""
livelog/server.py — Host-facing API.

``LogServer`` runs the network event loop on its own daemon thread so a
host application can start, feed and stop it from ordinary synchronous
code:

    server = LogServer()
    server.start(8080)
    server.emit("info", "hello")
    server.stop()

``start`` and ``stop`` block until the network thread has finished the
work; they must not be called from that thread.
"""

import asyncio
import dataclasses
import logging
import threading
from typing import Optional

from livelog.broadcast import LogBroadcaster
from livelog.config import DEFAULT_PORT, ServerConfig
from livelog.errors import BindError
from livelog.listener import Listener
from livelog.static import StaticResponder

log = logging.getLogger("livelog")

STARTUP_TIMEOUT = 10.0


class LogServer:
    """
    An embeddable live log server.

    Attributes:
        config: Configuration used for the next ``start``
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._listener: Optional[Listener] = None
        self._broadcaster: Optional[LogBroadcaster] = None
        self._lock = threading.RLock()

    def __enter__(self) -> "LogServer":
        return self

    def __exit__(self, *exc_info):
        self.stop()

    @property
    def running(self) -> bool:
        return self._listener is not None

    @property
    def port(self) -> Optional[int]:
        listener = self._listener
        return listener.port if listener is not None else None

    @property
    def connection_count(self) -> int:
        listener = self._listener
        return len(listener.connections) if listener is not None else 0

    @property
    def websocket_count(self) -> int:
        listener = self._listener
        return len(listener.websockets()) if listener is not None else 0

    def start(self, port: int = DEFAULT_PORT):
        """
        Bind *port* and start serving.

        A server that is already running is stopped and replaced. On
        ``BindError`` the failure is logged, the server stays stopped and the
        error is re-raised.
        """
        with self._lock:
            if self.running:
                log.info("Restarting live log server")
                self.stop()

            config = dataclasses.replace(self.config, port=port)
            listener = Listener(config, StaticResponder(config.root))
            loop = asyncio.new_event_loop()
            thread = threading.Thread(
                target=self._run_loop,
                args=(loop,),
                name="livelog-network",
                daemon=True,
            )
            thread.start()

            future = asyncio.run_coroutine_threadsafe(listener.start(), loop)
            try:
                future.result(timeout=STARTUP_TIMEOUT)
            except BindError as e:
                log.error("Failed to start live log server: %s", e)
                self._shutdown_loop(loop, thread)
                raise
            except Exception:
                log.error("Live log server did not start", exc_info=True)
                self._shutdown_loop(loop, thread)
                raise

            self.config = config
            self._loop = loop
            self._thread = thread
            self._listener = listener
            self._broadcaster = LogBroadcaster(listener, loop)

    def emit(self, level: str, message: str):
        """
        Push one log event to every connected viewer.

        Fire-and-forget: a no-op while stopped, never raises.
        """
        broadcaster = self._broadcaster
        if broadcaster is None:
            return
        broadcaster.publish(level, message)

    def stop(self):
        """Close the listener and every connection. Idempotent."""
        with self._lock:
            listener, self._listener = self._listener, None
            broadcaster, self._broadcaster = self._broadcaster, None
            loop, self._loop = self._loop, None
            thread, self._thread = self._thread, None
            if listener is None:
                return

            broadcaster.close(wait=False)
            future = asyncio.run_coroutine_threadsafe(listener.stop(), loop)
            future.result(timeout=STARTUP_TIMEOUT)
            self._shutdown_loop(loop, thread)
            log.info("Live log server stopped")

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop):
        asyncio.set_event_loop(loop)
        loop.run_forever()

    @staticmethod
    def _shutdown_loop(loop: asyncio.AbstractEventLoop, thread: threading.Thread):
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()
