"""
livelog/broadcast.py — Log event pipeline.

Events are built and JSON-encoded on a dedicated single-thread executor so
that callers of ``emit`` never touch the network loop; only the finished
frame is handed over with ``call_soon_threadsafe``.
"""

import asyncio
import datetime
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from livelog.errors import SerializationError
from livelog.frames import encode_text_frame

if TYPE_CHECKING:
    from livelog.listener import Listener
    from livelog.server import LogServer

log = logging.getLogger("livelog.broadcast")

LEVELS = ("info", "warning", "error")
_ALIASES = {"warn": "warning", "err": "error"}


def normalize_level(level: str) -> str:
    """Fold *level* onto one of ``LEVELS``; unknown names become ``info``."""
    name = str(level).strip().lower()
    name = _ALIASES.get(name, name)
    return name if name in LEVELS else "info"


def _utc_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )


@dataclass(frozen=True)
class LogEvent:
    timestamp: str
    level: str
    message: str

    @classmethod
    def now(cls, level: str, message: str) -> "LogEvent":
        return cls(_utc_timestamp(), normalize_level(level), message)


def serialize_event(event: LogEvent) -> bytes:
    """Encode *event* as a UTF-8 JSON object."""
    try:
        text = json.dumps(
            {
                "timestamp": event.timestamp,
                "level": event.level,
                "message": event.message,
            },
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize log event: {e}") from e
    return text.encode("utf-8")


class LogBroadcaster:
    """
    Fans log events out to every upgraded connection of a listener.

    ``publish`` may be called from any thread at any time; it never raises.
    """

    def __init__(self, listener: "Listener", loop: asyncio.AbstractEventLoop):
        self.listener = listener
        self.loop = loop
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="livelog-log"
        )

    def publish(self, level: str, message: str):
        """Queue an event for encoding and delivery."""
        try:
            self._executor.submit(self._deliver, level, message)
        except RuntimeError:
            # executor already shut down by close()
            log.debug("Broadcaster closed, dropping %s event", level)

    def _deliver(self, level: str, message: str):
        event = LogEvent.now(level, message)
        try:
            frame = encode_text_frame(serialize_event(event))
        except SerializationError as e:
            log.error("%s", e)
            return

        try:
            self.loop.call_soon_threadsafe(self.listener.broadcast, frame)
        except RuntimeError:
            log.debug("Network loop closed, dropping %s event", event.level)

    def close(self, wait: bool = True):
        """Stop accepting events; pending ones finish when *wait*."""
        self._executor.shutdown(wait=wait)


class BroadcastHandler(logging.Handler):
    """
    A ``logging.Handler`` that forwards records to a ``LogServer``.

        handler = BroadcastHandler(server)
        logging.getLogger("myapp").addHandler(handler)
    """

    def __init__(self, server: "LogServer", level: int = logging.NOTSET):
        super().__init__(level)
        self.server = server

    @staticmethod
    def level_for(record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            return "error"
        if record.levelno >= logging.WARNING:
            return "warning"
        return "info"

    def emit(self, record: logging.LogRecord):
        # records from livelog itself would loop back through the server
        if record.name == "livelog" or record.name.startswith("livelog."):
            return
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self.server.emit(self.level_for(record), message)
