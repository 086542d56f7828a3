"""
livelog/frames.py — WebSocket frame codec (RFC 6455 §5.2).

The server only ever sends unfragmented, unmasked frames. Inbound frames
are inspected for their control opcode; their payload is never interpreted.
"""

import struct
from typing import NamedTuple, Union

from livelog.errors import ProtocolError

OP_CONTINUATION = 0x00
OP_TEXT = 0x01
OP_BINARY = 0x02
OP_CLOSE = 0x08
OP_PING = 0x09
OP_PONG = 0x0A

# FIN + pong, empty payload
PONG_FRAME = b"\x8a\x00"


class Frame(NamedTuple):
    opcode: int
    payload: bytes = b""


class FrameHeader(NamedTuple):
    fin: bool
    opcode: int
    masked: bool
    length: int  # 7-bit length field; 126/127 announce an extended length


def encode_frame(opcode: int, payload: bytes = b"") -> bytes:
    """
    Build a single server-to-client frame with the FIN bit set.

    Supports 7-bit, 16-bit and 64-bit payload lengths.
    """
    first_byte = 0x80 | (opcode & 0x0F)
    length = len(payload)

    if length <= 125:
        header = struct.pack("!BB", first_byte, length)
    elif length <= 0xFFFF:
        header = struct.pack("!BBH", first_byte, 126, length)
    else:
        header = struct.pack("!BBQ", first_byte, 127, length)
    return header + payload


def encode_text_frame(payload: Union[bytes, str]) -> bytes:
    """Encode *payload* as a text frame (first byte ``0x81``)."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return encode_frame(OP_TEXT, payload)


def decode_header(head: bytes) -> FrameHeader:
    """Decode the first two bytes of an inbound frame."""
    if len(head) < 2:
        raise ProtocolError("Frame shorter than 2 bytes")
    first, second = head[0], head[1]
    return FrameHeader(
        fin=bool(first & 0x80),
        opcode=first & 0x0F,
        masked=bool(second & 0x80),
        length=second & 0x7F,
    )


def extended_length_size(length: int) -> int:
    """Number of extended length bytes following a 7-bit length field."""
    if length == 126:
        return 2
    if length == 127:
        return 8
    return 0


def decode_extended_length(raw: bytes) -> int:
    if len(raw) == 2:
        return struct.unpack("!H", raw)[0]
    return struct.unpack("!Q", raw)[0]
