"""
livelog/colors.py — Terminal styling for the server's own log output.

Viewer-bound events are JSON and never styled; everything here only
affects what the ``livelog`` command prints to its console.
"""

import logging
import os
import sys
import time

# SGR parameters, combined as "\033[<a>;<b>m"
_SGR = {
    "bold": "1",
    "dim": "2",
    "red": "31",
    "green": "32",
    "yellow": "33",
    "magenta": "35",
    "cyan": "36",
    "white": "37",
    "on_red": "41",
    "bright_cyan": "96",
}


def _color_enabled(stream=None) -> bool:
    """NO_COLOR wins over FORCE_COLOR; otherwise color only a terminal."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    stream = stream or sys.stdout
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


USE_COLOR = _color_enabled()


def paint(text: str, *styles: str) -> str:
    """Wrap *text* in the named SGR *styles*, or return it untouched."""
    if not USE_COLOR or not styles:
        return text
    codes = ";".join(_SGR[s] for s in styles)
    return f"\033[{codes}m{text}\033[0m"


# Console log records

_LEVEL_STYLES = {
    logging.DEBUG: ("dim", "cyan"),
    logging.INFO: ("green",),
    logging.WARNING: ("yellow",),
    logging.ERROR: ("bold", "red"),
    logging.CRITICAL: ("bold", "white", "on_red"),
}


class ColorFormatter(logging.Formatter):
    """
    Renders ``LEVEL    message`` with the level name styled by severity.

    With *show_timestamp* a dim local time is inserted after the level.
    """

    def __init__(self, show_timestamp: bool = False):
        super().__init__()
        self.show_timestamp = show_timestamp

    def format(self, record: logging.LogRecord) -> str:
        level = paint(f"{record.levelname:<8}", *_LEVEL_STYLES.get(record.levelno, ()))
        message = record.getMessage()
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        if not self.show_timestamp:
            return f"{level} {message}"
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.created))
        return f"{level} {paint(stamp, 'dim')} {message}"


# Request and WebSocket lines

_STATUS_STYLES = {
    1: ("bold", "magenta"),
    2: ("bold", "green"),
    4: ("bold", "yellow"),
    5: ("bold", "red"),
}

_WS_EVENT_STYLES = {
    "accepted": ("bold", "green"),
    "closed": ("yellow",),
    "ping": ("dim", "cyan"),
    "dropped": ("bold", "red"),
}


def color_status(status_code: int) -> str:
    return paint(str(status_code), *_STATUS_STYLES.get(status_code // 100, ("bold",)))


def _peer(peer) -> str:
    return paint(f"{peer[0]}:{peer[1]}", "dim")


def format_response_log(peer, method: str, path: str, status_code: int) -> str:
    """
    One line per served request, e.g.
    ``127.0.0.1:51234 - GET     /index.html → 200``.
    """
    return " ".join((
        _peer(peer),
        paint("-", "dim"),
        paint(f"{method:<7}", "bold"),
        paint(path, "bold"),
        paint("→", "dim"),
        color_status(status_code),
    ))


def format_ws_event(peer, event: str, detail: str = "") -> str:
    """One line per WebSocket lifecycle event (accepted, closed, ping, dropped)."""
    line = [_peer(peer), paint("-", "dim"), paint("WS", "bold", "magenta"),
            paint(event, *_WS_EVENT_STYLES.get(event, ()))]
    if detail:
        line.append(paint(f"({detail})", "dim"))
    return " ".join(line)


# Startup banner

def format_banner_title(name: str, version: str) -> str:
    return f"{paint('  ' + name, 'bold', 'bright_cyan')} {paint('v' + version, 'dim')}"


def format_banner_line(label: str, value: str) -> str:
    return f"{paint(f'  {label:<12}', 'dim')} {value}"


def format_banner_separator(width: int = 40) -> str:
    return paint("  " + "─" * width, "dim")


def format_banner_tag(text: str) -> str:
    return paint(text, "bold", "cyan")
