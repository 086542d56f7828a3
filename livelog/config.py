"""
livelog/config.py — Server defaults and runtime configuration.

Values resolve in this order: CLI flags, then ``LIVELOG_*`` environment
variables, then the defaults below.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Default Configuration
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_ROOT = Path(__file__).parent / "web"
REQUEST_TIMEOUT = 5.0               # seconds per read/write before close
MAX_REQUESTS_PER_CONNECTION = 10    # plain requests before forced close
MAX_HEADER_SIZE = 64 * 1024         # 64 KB — close on oversized headers
MAX_PENDING_BYTES = 1024 * 1024     # 1 MB of queued broadcast per peer
MAX_FRAME_SIZE = 16 * 1024 * 1024   # 16 MB — inbound frames are discarded
RECV_CHUNK = 8192                   # bytes per read call


@dataclass
class ServerConfig:
    """
    Configuration for a ``LogServer``.

    Attributes:
        host: Bind address (all interfaces by default so a browser on the
            same network can reach the viewer)
        port: TCP port, 1..65535
        root: Directory holding the static web bundle
        timeout: Seconds any single read or write may take
        max_requests: Plain HTTP requests served per connection
        max_pending_bytes: Broadcast bytes a peer may leave unwritten
            before it is disconnected as too slow
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    root: Path = DEFAULT_ROOT
    timeout: float = REQUEST_TIMEOUT
    max_requests: int = MAX_REQUESTS_PER_CONNECTION
    max_pending_bytes: int = MAX_PENDING_BYTES

    def __post_init__(self):
        self.root = Path(self.root)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ServerConfig":
        """
        Build a configuration from environment variables.

            LIVELOG_HOST          bind address (default: 0.0.0.0)
            LIVELOG_PORT          port (default: 8080)
            LIVELOG_ROOT          static bundle directory
            LIVELOG_TIMEOUT       per-operation timeout in seconds (default: 5)
            LIVELOG_MAX_REQUESTS  requests per connection (default: 10)
        """
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("LIVELOG_HOST", DEFAULT_HOST),
            port=int(env.get("LIVELOG_PORT", DEFAULT_PORT)),
            root=Path(env.get("LIVELOG_ROOT", DEFAULT_ROOT)),
            timeout=float(env.get("LIVELOG_TIMEOUT", REQUEST_TIMEOUT)),
            max_requests=int(
                env.get("LIVELOG_MAX_REQUESTS", MAX_REQUESTS_PER_CONNECTION)
            ),
        )

    def validate(self) -> None:
        """Raise ``ValueError`` for values the server cannot run with."""
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.max_requests < 1:
            raise ValueError(
                f"max_requests must be at least 1, got {self.max_requests}"
            )
        if self.max_pending_bytes < 1:
            raise ValueError("max_pending_bytes must be positive")
