"""
pytest configuration and fixtures.
"""

import asyncio
import socket
import struct
from collections import deque
from pathlib import Path

import pytest

from livelog.static import StaticResponder

INDEX_HTML = b"<!DOCTYPE html><html><body>viewer</body></html>"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture
def asset_root(tmp_path: Path) -> Path:
    """A small web bundle."""
    (tmp_path / "index.html").write_bytes(INDEX_HTML)
    (tmp_path / "app.js").write_text("console.log('hi');")
    (tmp_path / "style.css").write_text("body { color: red; }")
    (tmp_path / "logo.png").write_bytes(PNG_BYTES)
    (tmp_path / "data.bin").write_bytes(b"\x00\x01\x02")
    (tmp_path / "assets").mkdir()
    return tmp_path


@pytest.fixture
def responder(asset_root: Path) -> StaticResponder:
    return StaticResponder(asset_root)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def http_request(method: str = "GET", path: str = "/", **headers) -> bytes:
    lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
    lines += [f"{name.replace('_', '-')}: {value}" for name, value in headers.items()]
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def upgrade_request(key: str = "dGhlIHNhbXBsZSBub25jZQ==") -> bytes:
    return http_request(
        "GET", "/ws",
        Upgrade="websocket",
        Connection="Upgrade",
        Sec_WebSocket_Key=key,
        Sec_WebSocket_Version="13",
    )


def client_frame(opcode: int, payload: bytes = b"") -> bytes:
    """A masked client-to-server frame, using extended lengths past 125 bytes."""
    mask = b"\x01\x02\x03\x04"
    masked = bytes(b ^ mask[i % 4] for i, b in enumerate(payload))
    size = len(payload)
    if size <= 125:
        length = bytes([0x80 | size])
    elif size <= 0xFFFF:
        length = bytes([0x80 | 126]) + struct.pack("!H", size)
    else:
        length = bytes([0x80 | 127]) + struct.pack("!Q", size)
    return bytes([0x80 | opcode]) + length + mask + masked


class FakeReader:
    """
    Stream reader fed from a list of chunks.

    Each ``read`` call returns at most one chunk. Once the chunks run out the
    reader reports end-of-stream, or blocks forever when *hang* is set.
    """

    def __init__(self, *chunks: bytes, hang: bool = False):
        self.chunks = deque(chunks)
        self.buffer = bytearray()
        self.hang = hang

    async def _more(self) -> bool:
        if self.chunks:
            self.buffer += self.chunks.popleft()
            return True
        if self.hang:
            await asyncio.Event().wait()
        return False

    async def read(self, n: int = -1) -> bytes:
        if not self.buffer:
            await self._more()
        data = bytes(self.buffer[:n])
        del self.buffer[:n]
        return data

    async def readexactly(self, n: int) -> bytes:
        while len(self.buffer) < n:
            if not await self._more():
                partial = bytes(self.buffer)
                self.buffer.clear()
                raise asyncio.IncompleteReadError(partial, n)
        data = bytes(self.buffer[:n])
        del self.buffer[:n]
        return data


class FakeTransport:
    def __init__(self):
        self.aborted = False

    def abort(self):
        self.aborted = True


class FakeWriter:
    """Stream writer that records everything written."""

    def __init__(self, peer=("127.0.0.1", 50000)):
        self.data = bytearray()
        self.closed = False
        self.peer = peer
        self.transport = FakeTransport()
        self.release = None

    def get_extra_info(self, name, default=None):
        return self.peer if name == "peername" else default

    def write(self, data: bytes):
        if self.closed:
            raise ConnectionResetError("writer closed")
        self.data += data

    async def drain(self):
        if self.release is not None:
            await self.release.wait()

    def close(self):
        self.closed = True

    def is_closing(self) -> bool:
        return self.closed
