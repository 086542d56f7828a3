"""
livelog/http.py — The HTTP/1.1 subset the viewer needs.

Only the request line is parsed; headers are left to the handshake
validator and request bodies are not supported.
"""

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple
from urllib.parse import unquote

from livelog.errors import ProtocolError

HEADER_TERMINATOR = b"\r\n\r\n"

_STATUS_PHRASES = {
    101: "Switching Protocols",
    200: "OK",
    204: "No Content",
    400: "Bad Request",
    404: "Not Found",
    500: "Internal Server Error",
}


class RequestLine(NamedTuple):
    method: str
    path: str


@dataclass
class Response:
    """A status, ordered headers and an optional body."""

    status: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: Optional[bytes] = None

    @property
    def reason(self) -> str:
        return _STATUS_PHRASES.get(self.status, "Unknown")

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status} {self.reason}"

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    def encode(self) -> bytes:
        """Serialize status line, headers, blank line and body."""
        headers = list(self.headers)
        if self.body is not None and self.header("Content-Length") is None:
            headers.append(("Content-Length", str(len(self.body))))

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers)
        lines.append("")
        lines.append("")
        head = "\r\n".join(lines).encode("latin-1")
        return head + (self.body or b"")


def text_response(status: int, text: Optional[str] = None) -> Response:
    """Plain-text error response, e.g. ``404 Not Found``."""
    if text is None:
        text = _STATUS_PHRASES.get(status, "Error")
    return Response(
        status,
        [("Content-Type", "text/plain")],
        text.encode("utf-8"),
    )


def parse_request_line(request_text: str) -> RequestLine:
    """
    Parse the first line of *request_text* into method and path.

    The query string is dropped and the path percent-decoded; ``/`` is
    rewritten to ``/index.html``. Raises ``ProtocolError`` when the line is
    missing or has fewer than two space-separated tokens.
    """
    first_line = request_text.split("\r\n", 1)[0]
    parts = first_line.split(" ")
    if not first_line or len(parts) < 2 or not parts[0] or not parts[1]:
        raise ProtocolError(f"Malformed request line: {first_line!r}")

    method, raw_path = parts[0], parts[1]
    path = unquote(raw_path.split("?", 1)[0])
    if path == "/":
        path = "/index.html"
    return RequestLine(method, path)
