"""
livelog/handshake.py — WebSocket opening handshake (RFC 6455 §4.2).
"""

import base64
import hashlib
from typing import Dict, Tuple

from livelog.http import Response, text_response

WS_MAGIC_STRING = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


def parse_headers(request_text: str) -> Dict[str, str]:
    """
    Collect ``Name: value`` lines, splitting on the first colon only.

    Names are folded to lower case; names and values are trimmed. Lines
    without a colon (including the request line) are skipped.
    """
    headers = {}
    for line in request_text.split("\r\n")[1:]:
        name, sep, value = line.partition(":")
        if not sep:
            continue
        headers[name.strip().lower()] = value.strip()
    return headers


def compute_accept_key(key: str) -> str:
    """
    Compute ``Sec-WebSocket-Accept`` value per RFC 6455 §4.2.2.
    accept = base64( sha1( key + MAGIC ) )
    """
    digest = hashlib.sha1((key + WS_MAGIC_STRING).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def is_websocket_upgrade(headers: Dict[str, str]) -> bool:
    """
    Return True if *headers* describe an acceptable upgrade.

    Checks:
        - ``Sec-WebSocket-Key`` is present
        - ``Upgrade`` equals ``websocket`` (case-insensitive)
        - ``Connection`` contains ``upgrade`` (case-insensitive)
    """
    return (
        bool(headers.get("sec-websocket-key"))
        and headers.get("upgrade", "").lower() == "websocket"
        and "upgrade" in headers.get("connection", "").lower()
    )


def negotiate(request_text: str) -> Tuple[Response, bool]:
    """
    Answer an upgrade request.

    Returns the response to write and whether the connection upgrades.
    """
    headers = parse_headers(request_text)
    if not is_websocket_upgrade(headers):
        return text_response(400), False

    accept = compute_accept_key(headers["sec-websocket-key"])
    return Response(101, [
        ("Upgrade", "websocket"),
        ("Connection", "Upgrade"),
        ("Sec-WebSocket-Accept", accept),
    ]), True
