"""
livelog/connection.py — Per-connection protocol state machine.

A connection starts as a plain HTTP/1.1 keep-alive connection and may be
upgraded once to a push-only WebSocket. It works on any asyncio
``StreamReader`` / ``StreamWriter`` pair, so tests can drive it with an
in-memory transport.

States:

    READING_HEADER → DISPATCHING → WRITING_RESPONSE → READING_HEADER
                                                    ↘ READING_FRAME
    any state → CLOSED
"""

import asyncio
import enum
import itertools
import logging
from typing import Callable, Optional, Tuple

from livelog.colors import format_response_log, format_ws_event
from livelog.config import (
    MAX_FRAME_SIZE,
    MAX_HEADER_SIZE,
    MAX_PENDING_BYTES,
    MAX_REQUESTS_PER_CONNECTION,
    RECV_CHUNK,
    REQUEST_TIMEOUT,
)
from livelog.errors import ProtocolError, TransportError
from livelog.frames import (
    OP_CLOSE,
    OP_PING,
    PONG_FRAME,
    Frame,
    decode_extended_length,
    decode_header,
    extended_length_size,
)
from livelog.handshake import negotiate
from livelog.http import (
    HEADER_TERMINATOR,
    RequestLine,
    Response,
    parse_request_line,
    text_response,
)
from livelog.static import StaticResponder

log = logging.getLogger("livelog.connection")

WS_PATH = "/ws"

_ids = itertools.count(1)


class Role(enum.Enum):
    PLAIN = "plain"
    WEBSOCKET = "websocket"


class ConnectionState(enum.Enum):
    READING_HEADER = "reading_header"
    DISPATCHING = "dispatching"
    WRITING_RESPONSE = "writing_response"
    READING_FRAME = "reading_frame"
    CLOSED = "closed"


class Connection:
    """
    One accepted transport and its protocol state.

    Attributes:
        id: Identity used as the key in the listener's connection table
        role: ``Role.PLAIN`` until a 101 response has been written
        state: Current ``ConnectionState``
        request_count: Plain requests read so far (irrelevant once upgraded)
        buffer: Bytes read but not yet consumed as a request header
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        responder: StaticResponder,
        *,
        timeout: float = REQUEST_TIMEOUT,
        max_requests: int = MAX_REQUESTS_PER_CONNECTION,
        max_pending_bytes: int = MAX_PENDING_BYTES,
        on_upgrade: Optional[Callable[["Connection"], None]] = None,
        on_close: Optional[Callable[["Connection"], None]] = None,
    ):
        self.id = next(_ids)
        self.reader = reader
        self.writer = writer
        self.responder = responder
        self.timeout = timeout
        self.max_requests = max_requests
        self.max_pending_bytes = max_pending_bytes
        self.on_upgrade = on_upgrade
        self.on_close = on_close

        self.role = Role.PLAIN
        self.state = ConnectionState.READING_HEADER
        self.request_count = 0
        self.buffer = bytearray()

        self.peer = writer.get_extra_info("peername") or ("unknown", 0)
        self._write_lock = asyncio.Lock()
        self._pending_bytes = 0

    def __repr__(self) -> str:
        return (
            f"<Connection #{self.id} {self.peer[0]}:{self.peer[1]} "
            f"{self.role.value} {self.state.value}>"
        )

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    # Main loop

    async def run(self):
        """Serve the connection until it reaches ``CLOSED``."""
        try:
            while not self.closed:
                if self.role is Role.PLAIN:
                    await self._serve_request()
                else:
                    await self._serve_frame()
        except asyncio.TimeoutError:
            log.debug("%s:%s timed out in %s", *self.peer[:2], self.state.value)
        except (ConnectionError, asyncio.IncompleteReadError, OSError) as e:
            log.debug("%s:%s transport error: %s", *self.peer[:2], e)
        except ProtocolError as e:
            log.warning("%s:%s protocol error: %s", *self.peer[:2], e)
        except Exception:
            log.error("Fatal error in connection handler", exc_info=True)
        finally:
            self.close()
            log.debug(
                "%s:%s connection closed (%d request(s) served)",
                self.peer[0], self.peer[1], self.request_count,
            )

    # Plain HTTP

    async def _serve_request(self):
        head = await self._read_header()
        if head is None:
            log.debug(
                "%s:%s closed by peer after %d request(s)",
                self.peer[0], self.peer[1], self.request_count,
            )
            self.close()
            return

        self.request_count += 1
        if self.request_count > self.max_requests:
            log.warning(
                "%s:%s exceeded %d requests per connection, closing",
                self.peer[0], self.peer[1], self.max_requests,
            )
            self.close()
            return

        self.state = ConnectionState.DISPATCHING
        request, response, upgraded = self.dispatch(
            head.decode("utf-8", errors="replace")
        )

        self.state = ConnectionState.WRITING_RESPONSE
        await self._write(response.encode())
        log.info(format_response_log(
            self.peer,
            request.method if request else "-",
            request.path if request else "-",
            response.status,
        ))

        if upgraded:
            self.role = Role.WEBSOCKET
            self.state = ConnectionState.READING_FRAME
            log.info(format_ws_event(self.peer, "accepted"))
            if self.on_upgrade is not None:
                self.on_upgrade(self)
        else:
            self.state = ConnectionState.READING_HEADER

    async def _read_header(self) -> Optional[bytes]:
        """
        Accumulate bytes until the blank line ending the header block.

        Returns None if the stream ends first. Bytes after the terminator
        are dropped since request bodies are not supported. The whole header
        must arrive within one ``timeout``, however it is split into reads.
        """
        self.state = ConnectionState.READING_HEADER
        if not await asyncio.wait_for(
            self._accumulate_header(), timeout=self.timeout
        ):
            return None

        end = self.buffer.index(HEADER_TERMINATOR) + len(HEADER_TERMINATOR)
        head = bytes(self.buffer[:end])
        self.buffer.clear()
        return head

    async def _accumulate_header(self) -> bool:
        """Read until the buffer holds a terminator; False on end-of-stream."""
        while HEADER_TERMINATOR not in self.buffer:
            if len(self.buffer) > MAX_HEADER_SIZE:
                raise ProtocolError("Headers exceed maximum allowed size")
            chunk = await self.reader.read(RECV_CHUNK)
            if not chunk:
                return False
            self.buffer += chunk
        return True

    def dispatch(
        self, request_text: str
    ) -> Tuple[Optional[RequestLine], Response, bool]:
        """
        Route one request to the handshake validator or the static responder.

        Returns the parsed request line (None if malformed), the response
        and whether the connection upgrades after the response is written.
        """
        try:
            request = parse_request_line(request_text)
        except ProtocolError as e:
            log.warning("%s:%s → 400 %s", self.peer[0], self.peer[1], e)
            return None, text_response(400), False

        if request.method == "GET" and request.path == WS_PATH:
            response, upgraded = negotiate(request_text)
            return request, response, upgraded
        return request, self.responder.respond(request.method, request.path), False

    # WebSocket

    async def _serve_frame(self):
        frame = await self._read_frame()

        if frame.opcode == OP_CLOSE:
            log.info(format_ws_event(self.peer, "closed", "by peer"))
            self.close()
        elif frame.opcode == OP_PING:
            log.debug(format_ws_event(self.peer, "ping"))
            await self._write(PONG_FRAME)

    async def _read_frame(self) -> Frame:
        """
        Read one inbound frame, keeping only its opcode.

        The payload is skipped without unmasking; inbound data carries no
        meaning for a push-only stream.
        """
        self.state = ConnectionState.READING_FRAME
        header = decode_header(await self._read_exact(2))

        length = header.length
        extra = extended_length_size(length)
        if extra:
            length = decode_extended_length(await self._read_exact(extra))
        if length > MAX_FRAME_SIZE:
            raise ProtocolError(f"Inbound frame too large ({length} bytes)")

        if header.masked:
            await self._read_exact(4)
        remaining = length
        while remaining:
            step = min(remaining, RECV_CHUNK)
            await self._read_exact(step)
            remaining -= step
        return Frame(header.opcode)

    async def _read_exact(self, n: int) -> bytes:
        return await asyncio.wait_for(
            self.reader.readexactly(n), timeout=self.timeout
        )

    async def send_frame(self, frame: bytes) -> bool:
        """
        Write an encoded frame to an upgraded connection.

        A peer that already has ``max_pending_bytes`` queued is disconnected
        rather than buffered further. Returns False when nothing was sent.
        """
        if self.closed or self.role is not Role.WEBSOCKET:
            return False
        if self._pending_bytes >= self.max_pending_bytes:
            log.warning(format_ws_event(
                self.peer, "dropped", f"{self._pending_bytes} bytes pending"
            ))
            self.close()
            return False

        self._pending_bytes += len(frame)
        try:
            await self._write(frame)
        except (asyncio.TimeoutError, ConnectionError, OSError) as e:
            log.debug("%s:%s broadcast write failed: %s", *self.peer[:2], e)
            self.close()
            return False
        finally:
            self._pending_bytes -= len(frame)
        return True

    # Transport

    async def _write(self, data: bytes):
        async with self._write_lock:
            if self.closed:
                raise TransportError("Write on closed connection")
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), timeout=self.timeout)

    def close(self):
        """Close the transport and mark the connection ``CLOSED``."""
        if self.closed:
            return
        self.state = ConnectionState.CLOSED
        self.writer.close()
        if self.on_close is not None:
            self.on_close(self)

    def abort(self):
        """Drop the transport immediately, discarding unwritten data."""
        if self.closed:
            return
        self.state = ConnectionState.CLOSED
        self.writer.transport.abort()
        if self.on_close is not None:
            self.on_close(self)
