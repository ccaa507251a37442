"""
Custom exceptions for the Camper client.

Content-layer errors (network, parsing, authentication) and playback-layer
errors (engine readiness, timeouts, decoding) live in two separate branches
so callers can tell "retry" apart from "re-authenticate" apart from
"the stream itself is broken".
"""

from typing import Optional


class CamperException(Exception):
    """
    Base exception for every Camper error.

    Attributes:
        message (str): Detailed error message
        code (int): Optional error code
    """
    def __init__(self, message: str, code: int = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ContentError(CamperException):
    """Raised by the catalog layer."""
    pass


class NetworkError(ContentError):
    """
    Transient transport failure (connection refused, timeout, HTTP 5xx).

    Examples:
        >>> raise NetworkError("Connection reset")
        >>> raise NetworkError("HTTP 503", status=503)
    """
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message, code=status)
        self.status = status


class ParseError(ContentError):
    """
    An upstream record or page did not have the expected shape.

    Examples:
        >>> raise ParseError("search result without a name")
    """
    def __init__(self, message: str, record=None):
        super().__init__(message)
        self.record = record


class AuthExpired(ContentError):
    """The catalog no longer accepts the session credential."""
    pass


class StreamUnavailable(ContentError):
    """A track exists but has no streamable file."""
    pass


class PlaybackError(CamperException):
    """Raised by the playback layer."""
    pass


class NotReady(PlaybackError):
    """An engine command was issued before the current load completed."""
    pass


class PlaybackTimeout(PlaybackError):
    """Loading did not reach readiness within the configured bound."""
    pass


class DecodeError(PlaybackError):
    """The backend could not decode or fetch the stream."""
    pass


class BackendError(PlaybackError):
    """The audio backend is missing, crashed or refused a command."""
    pass


class QueueError(CamperException):
    """
    Raised for invalid queue operations.

    Examples:
        >>> raise QueueError("Queue index 7 out of range")
    """
    pass
