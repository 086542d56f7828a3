"""
livelog/errors.py — Error taxonomy.

Every failure is scoped to a single connection or a single log event;
none of these is fatal to the host process.
"""


class LiveLogError(Exception):
    """Base class for all livelog errors."""


class BindError(LiveLogError, OSError):
    """The listener could not bind (port invalid or unavailable)."""


class ProtocolError(LiveLogError, ValueError):
    """Malformed request line, failed handshake or bad frame header."""


class ResourceNotFound(LiveLogError, LookupError):
    """No static asset exists for the requested path."""


class InternalError(LiveLogError):
    """A static asset exists but could not be read."""


class TransportError(LiveLogError, ConnectionError):
    """Socket-level read/write failure or timeout."""


class SerializationError(LiveLogError, ValueError):
    """A log event could not be encoded as JSON."""
