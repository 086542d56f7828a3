"""
livelog — An embeddable live log viewer server.

Serves a small web bundle over HTTP and pushes structured log events to
every browser that opened the bundle's WebSocket (``/ws``).
"""

__version__ = "0.1.0"
__all__ = ["LogServer", "ServerConfig", "BroadcastHandler", "BindError"]

from livelog.broadcast import BroadcastHandler
from livelog.config import ServerConfig
from livelog.errors import BindError
from livelog.server import LogServer
