"""
livelog/static.py — Serves the web bundle from a directory.
"""

import logging
from pathlib import Path
from typing import List, Tuple

from livelog.errors import InternalError, ResourceNotFound
from livelog.http import Response, text_response

log = logging.getLogger("livelog.static")

_CONTENT_TYPES = {
    ".html": "text/html; charset=utf-8",
    ".css": "text/css; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

CORS_HEADERS = [
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, POST, OPTIONS"),
    ("Access-Control-Allow-Headers", "Content-Type"),
    ("Access-Control-Max-Age", "86400"),
]
KEEP_ALIVE_HEADERS = [
    ("Connection", "keep-alive"),
    ("Keep-Alive", "timeout=5, max=1000"),
]


def content_type_for(path: str) -> str:
    """Map a request path to a Content-Type by its file extension."""
    return _CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


class StaticResponder:
    """
    Resolves request paths against an asset root.

    Paths that resolve outside the root are reported as missing.
    """

    def __init__(self, root):
        self.root = Path(root).resolve()

    def locate(self, path: str) -> Path:
        """Return the file for *path* or raise ``ResourceNotFound``."""
        try:
            target = (self.root / path.lstrip("/")).resolve()
            target.relative_to(self.root)
            found = target.exists()
        except (ValueError, OSError):
            raise ResourceNotFound(path) from None
        if not found:
            raise ResourceNotFound(path)
        return target

    def read(self, path: str) -> bytes:
        """Return the bytes stored at *path*."""
        target = self.locate(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise InternalError(f"Could not read {target}: {e}") from e

    def headers_for(self, path: str, length: int) -> List[Tuple[str, str]]:
        return (
            [("Content-Type", content_type_for(path))]
            + CORS_HEADERS
            + KEEP_ALIVE_HEADERS
            + [("Content-Length", str(length))]
        )

    def respond(self, method: str, path: str) -> Response:
        """
        Build the response for *method* on *path*.

        ``OPTIONS`` answers 204 with the full header set and no body; every
        other method is served like ``GET``.
        """
        try:
            body = self.read(path)
        except ResourceNotFound:
            return text_response(404)
        except InternalError as e:
            log.error("%s", e)
            return text_response(500)

        headers = self.headers_for(path, len(body))
        if method == "OPTIONS":
            return Response(204, headers)
        return Response(200, headers, body)
