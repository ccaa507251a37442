"""
Error classification for playback and content failures.

Maps any exception raised while resolving or playing a track onto an
ErrorCause, so PlayerState never carries a raw exception.
"""

import asyncio
import logging

import aiohttp

from camper.core.interfaces import ErrorCause, ErrorKind
from camper.utils.exceptions import (
    AuthExpired, BackendError, DecodeError, NetworkError, NotReady, ParseError,
    PlaybackTimeout, StreamUnavailable,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
_TYPED_KINDS = (
    (PlaybackTimeout, ErrorKind.TIMEOUT),
    (asyncio.TimeoutError, ErrorKind.TIMEOUT),
    (TimeoutError, ErrorKind.TIMEOUT),
    (DecodeError, ErrorKind.DECODE),
    (AuthExpired, ErrorKind.AUTH_EXPIRED),
    (StreamUnavailable, ErrorKind.STREAM_UNAVAILABLE),
    (NetworkError, ErrorKind.NETWORK),
    (aiohttp.ClientError, ErrorKind.NETWORK),
    (ConnectionError, ErrorKind.NETWORK),
    (ParseError, ErrorKind.PARSE),
    (BackendError, ErrorKind.BACKEND),
    (NotReady, ErrorKind.BACKEND),
    (FileNotFoundError, ErrorKind.BACKEND),
)

# Failures a retry of the same entry cannot fix
_NOT_RETRYABLE = {ErrorKind.STREAM_UNAVAILABLE, ErrorKind.AUTH_EXPIRED, ErrorKind.PARSE}


def _classify_message(text: str) -> ErrorKind:
    """Keyword fallback for errors that only come with a message."""
    text = text.lower()
    if any(keyword in text for keyword in ['timeout', 'timed out']):
        return ErrorKind.TIMEOUT
    if any(keyword in text for keyword in ['unavailable', 'not found', '404', '410']):
        return ErrorKind.STREAM_UNAVAILABLE
    if any(keyword in text for keyword in ['network', 'connection', 'dns', 'tls', 'http']):
        return ErrorKind.NETWORK
    if any(keyword in text for keyword in ['decode', 'codec', 'format', 'demux', 'unrecognized file']):
        return ErrorKind.DECODE
    return ErrorKind.UNKNOWN


def classify_error(error) -> ErrorCause:
    """
    Classify an error to determine how the player reports it.

    Args:
        error: An exception, an existing ErrorCause, or a bare message

    Returns:
        ErrorCause: kind, human-readable message and whether a retry may help
    """
    if isinstance(error, ErrorCause):
        return error

    if isinstance(error, str):
        kind = _classify_message(error)
        message = error
    else:
        kind = None
        for error_type, error_kind in _TYPED_KINDS:
            if isinstance(error, error_type):
                kind = error_kind
                break
        message = getattr(error, 'message', None) or str(error) or type(error).__name__
        if kind is None:
            kind = _classify_message(f"{type(error).__name__} {message}")

    cause = ErrorCause(kind=kind, message=message, retryable=kind not in _NOT_RETRYABLE)
    logger.debug(f"[PLAYER] Classified {error!r} as {kind.value}")
    return cause


def timeout_cause(seconds: float) -> ErrorCause:
    return ErrorCause(ErrorKind.TIMEOUT, f"stream not ready after {seconds:g}s", retryable=True)
