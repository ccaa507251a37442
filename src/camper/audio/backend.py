"""
Audio backend contract.

The PlaybackEngine drives exactly one AudioBackend. Backends report what
happens to the stream through a BackendSink; they never touch player state.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BackendSink(ABC):
    """Receiver of backend stream events. Called on the event loop thread."""

    @abstractmethod
    def on_buffering(self, percent: float):
        ...

    @abstractmethod
    def on_position(self, seconds: float):
        ...

    @abstractmethod
    def on_end_of_stream(self):
        ...

    @abstractmethod
    def on_error(self, message: str):
        ...


class AudioBackend(ABC):
    """
    Streaming audio backend.

    open() resolves once the stream is loaded and ready to start, with
    playback still paused; it raises DecodeError when the stream cannot be
    opened. All other transport calls raise BackendError on failure.
    """

    def __init__(self):
        self._sink: Optional[BackendSink] = None

    def set_sink(self, sink: BackendSink):
        self._sink = sink

    async def launch(self):
        """Start the backend process or device. No-op unless overridden."""

    @abstractmethod
    async def open(self, uri: str):
        ...

    @abstractmethod
    async def start(self):
        ...

    @abstractmethod
    async def pause(self):
        ...

    @abstractmethod
    async def seek(self, seconds: float):
        ...

    @abstractmethod
    async def stop(self):
        ...

    @abstractmethod
    async def set_volume(self, volume: float):
        """Volume in 0.0 - 1.0."""

    @abstractmethod
    async def close(self):
        ...

    def _emit_buffering(self, percent: float):
        if self._sink is not None:
            self._sink.on_buffering(percent)

    def _emit_position(self, seconds: float):
        if self._sink is not None:
            self._sink.on_position(seconds)

    def _emit_end_of_stream(self):
        if self._sink is not None:
            self._sink.on_end_of_stream()

    def _emit_error(self, message: str):
        logger.warning(f"[ENGINE] Backend reported error: {message}")
        if self._sink is not None:
            self._sink.on_error(message)
