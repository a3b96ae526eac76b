"""Errors raised while pinging a server.

Every error derives from :class:`PingError` and from the builtin exception
that best describes it, so callers can catch either.
"""


class PingError(Exception):
    """Base class for all ping failures"""


class PingConnectionError(PingError, ConnectionError):
    """The connection could not be opened, written to or closed"""


class MalformedVarint(PingError, ValueError):
    """A VarInt needed more than 5 bytes"""


class UnexpectedEndOfStream(PingError, EOFError):
    """The stream ended before the expected number of bytes was read"""


class TruncatedVarint(MalformedVarint, UnexpectedEndOfStream):
    """The stream ended in the middle of a VarInt"""


class ProtocolError(PingError):
    """The peer sent something a status response can't look like"""


class PingTimeout(PingError, TimeoutError):
    """The peer did not deliver the announced bytes in time"""


class DecodeError(PingError, ValueError):
    """The status payload is not valid JSON or has the wrong shape"""
