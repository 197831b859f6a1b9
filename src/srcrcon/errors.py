"""Exception hierarchy shared by every layer of the RCON client."""

from __future__ import annotations


class RconError(Exception):
    """Base exception for RCON errors."""


class ConnectionError(RconError):  # noqa: A001
    """Raised when the connection to the server is lost or cannot be established."""


class TimeoutError(RconError):  # noqa: A001
    """Raised when the server does not answer within the socket timeout."""


class FramingError(RconError):
    """Raised when a frame's declared size is invalid or the stream ends inside it."""


class EncodingError(RconError):
    """Raised when a packet cannot be encoded, before anything is sent."""


class AuthenticationError(RconError):
    """Raised when RCON authentication fails."""


class ProtocolError(RconError):
    """Raised for a well-formed packet the exchange did not expect."""
