"""
livelog/follow.py — Stream a growing log file to connected viewers.

Uses watchdog to observe the file's directory and forwards each newly
appended line through ``LogServer.emit``.
"""

import logging
import os
import re
import threading
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

log = logging.getLogger("livelog.follow")

_ERROR_RE = re.compile(r"\b(ERROR|CRITICAL|FATAL)\b", re.IGNORECASE)
_WARNING_RE = re.compile(r"\bWARN(ING)?\b", re.IGNORECASE)


def level_for_line(line: str) -> str:
    """Guess a level from the text of a log line."""
    if _ERROR_RE.search(line):
        return "error"
    if _WARNING_RE.search(line):
        return "warning"
    return "info"


class FileFollower(FileSystemEventHandler):
    """
    Tails *path*, emitting every complete line appended after ``start``.

    A file that shrinks is assumed to have been truncated or rotated and is
    read again from the beginning.
    """

    def __init__(self, server, path):
        super().__init__()
        self.server = server
        self.path = Path(path).resolve()
        self._offset = 0
        self._partial = b""
        self._lock = threading.Lock()
        self._observer = None

    def start(self):
        """Begin watching from the current end of the file."""
        try:
            self._offset = self.path.stat().st_size
        except FileNotFoundError:
            self._offset = 0
        self._observer = Observer()
        self._observer.schedule(self, str(self.path.parent), recursive=False)
        self._observer.start()
        log.info("Following %s", self.path)

    def stop(self):
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def on_modified(self, event):
        if not event.is_directory and self._is_target(event.src_path):
            self.poll()

    def on_created(self, event):
        if not event.is_directory and self._is_target(event.src_path):
            with self._lock:
                self._offset = 0
                self._partial = b""
            self.poll()

    def _is_target(self, src_path) -> bool:
        return Path(os.fsdecode(src_path)).resolve() == self.path

    def poll(self) -> int:
        """Emit lines appended since the last poll; returns how many."""
        with self._lock:
            try:
                size = self.path.stat().st_size
            except FileNotFoundError:
                return 0
            if size < self._offset:
                log.info("%s was truncated, rereading", self.path)
                self._offset = 0
                self._partial = b""
            if size == self._offset:
                return 0

            with self.path.open("rb") as f:
                f.seek(self._offset)
                data = f.read(size - self._offset)
            self._offset += len(data)

            *lines, self._partial = (self._partial + data).split(b"\n")

        count = 0
        for raw in lines:
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            if not line:
                continue
            self.server.emit(level_for_line(line), line)
            count += 1
        return count
