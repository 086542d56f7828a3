"""
Unit tests for the log event pipeline.
"""

import json
import logging
import re

import pytest

from livelog.broadcast import (
    BroadcastHandler,
    LogBroadcaster,
    LogEvent,
    normalize_level,
    serialize_event,
)
from livelog.errors import SerializationError
from livelog.frames import encode_text_frame


class FakeLoop:
    """Runs ``call_soon_threadsafe`` callbacks immediately."""

    def __init__(self, closed: bool = False):
        self.closed = closed

    def call_soon_threadsafe(self, callback, *args):
        if self.closed:
            raise RuntimeError("Event loop is closed")
        callback(*args)


class FakeListener:
    def __init__(self):
        self.frames = []

    def broadcast(self, frame):
        self.frames.append(frame)
        return 1


class FakeServer:
    def __init__(self):
        self.events = []

    def emit(self, level, message):
        self.events.append((level, message))


class TestLogEvent:

    def test_timestamp_is_iso8601_utc(self):
        event = LogEvent.now("info", "hello")
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", event.timestamp)

    @pytest.mark.parametrize("given,expected", [
        ("info", "info"),
        ("WARNING", "warning"),
        ("warn", "warning"),
        ("Error", "error"),
        ("verbose", "info"),
    ])
    def test_normalize_level(self, given, expected):
        assert normalize_level(given) == expected


class TestSerializeEvent:

    def test_json_keys(self):
        event = LogEvent("2025-04-25T08:00:00Z", "error", "X")
        assert json.loads(serialize_event(event)) == {
            "timestamp": "2025-04-25T08:00:00Z",
            "level": "error",
            "message": "X",
        }

    def test_key_order(self):
        data = serialize_event(LogEvent("t", "info", "m"))
        assert data == b'{"timestamp": "t", "level": "info", "message": "m"}'

    def test_non_ascii_is_utf8(self):
        data = serialize_event(LogEvent("t", "info", "数据库连接失败"))
        assert "数据库连接失败".encode("utf-8") in data

    def test_unserializable_message(self):
        with pytest.raises(SerializationError):
            serialize_event(LogEvent("t", "info", object()))


class TestLogBroadcaster:

    def test_publish_delivers_one_frame(self):
        listener = FakeListener()
        broadcaster = LogBroadcaster(listener, FakeLoop())
        broadcaster.publish("error", "X")
        broadcaster.close()

        assert len(listener.frames) == 1
        frame = listener.frames[0]
        assert frame[0] == 0x81
        payload = json.loads(frame[2:])
        assert payload["level"] == "error"
        assert payload["message"] == "X"

    def test_frame_matches_codec(self):
        listener = FakeListener()
        broadcaster = LogBroadcaster(listener, FakeLoop())
        broadcaster.publish("info", "y" * 300)
        broadcaster.close()
        frame = listener.frames[0]
        assert frame == encode_text_frame(frame[4:])

    def test_serialization_failure_is_dropped(self, caplog):
        listener = FakeListener()
        broadcaster = LogBroadcaster(listener, FakeLoop())
        with caplog.at_level(logging.ERROR, logger="livelog.broadcast"):
            broadcaster.publish("info", object())
            broadcaster.close()
        assert listener.frames == []
        assert "Cannot serialize" in caplog.text

    def test_closed_loop_drops_event(self):
        listener = FakeListener()
        broadcaster = LogBroadcaster(listener, FakeLoop(closed=True))
        broadcaster.publish("info", "late")
        broadcaster.close()
        assert listener.frames == []

    def test_publish_after_close_is_noop(self):
        listener = FakeListener()
        broadcaster = LogBroadcaster(listener, FakeLoop())
        broadcaster.close()
        broadcaster.publish("info", "too late")
        assert listener.frames == []


class TestBroadcastHandler:

    def make_logger(self, name="myapp"):
        server = FakeServer()
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        handler = BroadcastHandler(server)
        logger.handlers[:] = [handler]
        return server, logger

    def test_levels(self):
        server, logger = self.make_logger()
        logger.debug("d")
        logger.info("i")
        logger.warning("w")
        logger.error("e")
        logger.critical("c")
        assert server.events == [
            ("info", "d"),
            ("info", "i"),
            ("warning", "w"),
            ("error", "e"),
            ("error", "c"),
        ]

    def test_uses_formatter(self):
        server, logger = self.make_logger()
        logger.handlers[0].setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.info("ready")
        assert server.events == [("info", "myapp: ready")]

    def test_skips_own_records(self):
        server, logger = self.make_logger("livelog.testing")
        logger.info("Listening")
        assert server.events == []
