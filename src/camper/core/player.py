"""
Playback engine: transport primitives over one AudioBackend.

load() returns immediately with a load token; readiness and failures come
back later as events stamped with that token. Loading again, or stopping,
invalidates the previous token, so a stale stream can never report into the
current one.
"""

import asyncio
import logging
from typing import Callable, Optional

from camper.audio.backend import AudioBackend, BackendSink
from camper.core.error_recovery import classify_error
from camper.core.interfaces import (
    BufferingProgress, EndOfStream, EngineError, EngineEvent, EngineReady, PositionTick,
)
from camper.utils.exceptions import DecodeError, NotReady

logger = logging.getLogger(__name__)


class PlaybackEngine(BackendSink):
    """
    Wraps a streaming AudioBackend.

    Events are handed to the emit callback (normally the state machine's
    thread-safe submit()); nothing here touches player state.
    """

    def __init__(self, backend: AudioBackend, emit: Callable[[EngineEvent], None] = None):
        self.backend = backend
        self.backend.set_sink(self)
        self._emit = emit
        self._token = 0
        self._ready = False
        self._open_task: Optional[asyncio.Task] = None
        self._pending_play: Optional[bool] = None
        self.uri: Optional[str] = None
        self.volume = 1.0

    def connect(self, emit: Callable[[EngineEvent], None]):
        """Route engine events to emit."""
        self._emit = emit

    @property
    def token(self) -> int:
        return self._token

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def pending_play(self) -> Optional[bool]:
        """Play (True) or pause (False) requested before readiness, if any."""
        return self._pending_play

    def _post(self, event: EngineEvent):
        if self._emit is None:
            logger.debug(f"[ENGINE] No listener for {event}")
            return
        self._emit(event)

    def _invalidate(self):
        self._token += 1
        self._ready = False
        self._pending_play = None
        if self._open_task is not None and not self._open_task.done():
            self._open_task.cancel()
        self._open_task = None

    def load(self, uri: str) -> int:
        """
        Start loading a stream.

        Returns:
            int: Token that the resulting EngineReady/EngineError will carry
        """
        self._invalidate()
        token = self._token
        self.uri = uri
        self._open_task = asyncio.get_running_loop().create_task(self._open(token, uri))
        logger.info(f"[ENGINE] Loading stream (token {token})")
        return token

    async def _open(self, token: int, uri: str):
        try:
            await self.backend.open(uri)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if token == self._token:
                logger.warning(f"[ENGINE] Load failed (token {token}): {e}")
                self._post(EngineError(token, classify_error(e)))
            return

        if token != self._token:
            logger.debug(f"[ENGINE] Discarding readiness of stale load {token}")
            return

        self._ready = True
        pending, self._pending_play = self._pending_play, None
        try:
            if pending is True:
                await self.backend.start()
            elif pending is False:
                await self.backend.pause()
        except Exception as e:
            logger.warning(f"[ENGINE] Applying pending toggle failed: {e}")
            self._post(EngineError(token, classify_error(e)))
            return
        logger.info(f"[ENGINE] Stream ready (token {token})")
        self._post(EngineReady(token))

    async def play(self):
        if not self._ready:
            self._pending_play = True
            return
        await self.backend.start()

    async def pause(self):
        if not self._ready:
            self._pending_play = False
            return
        await self.backend.pause()

    async def seek(self, position: float):
        """
        Seek to an absolute position in seconds.

        Raises:
            NotReady: no stream has finished loading
        """
        if not self._ready:
            raise NotReady("Cannot seek before the stream is ready")
        await self.backend.seek(max(0.0, position))

    async def stop(self):
        self._invalidate()
        self.uri = None
        await self.backend.stop()

    async def set_volume(self, volume: float):
        self.volume = max(0.0, min(1.0, volume))
        await self.backend.set_volume(self.volume)

    async def close(self):
        self._invalidate()
        await self.backend.close()

    # BackendSink

    def on_buffering(self, percent: float):
        if self._token and (self._ready or self._open_task is not None):
            self._post(BufferingProgress(self._token, percent))

    def on_position(self, seconds: float):
        if self._ready:
            self._post(PositionTick(self._token, seconds))

    def on_end_of_stream(self):
        if self._ready:
            self._post(EndOfStream(self._token))
        else:
            logger.debug("[ENGINE] Ignoring end of stream while not ready")

    def on_error(self, message: str):
        if self._ready:
            self._post(EngineError(self._token, classify_error(DecodeError(message))))
        else:
            logger.debug(f"[ENGINE] Ignoring backend error while not ready: {message}")
