"""
Player state machine: the coordinator that owns the Queue and the
PlaybackEngine and publishes the one authoritative PlayerState.

Every input (UI commands, OS media commands, engine events, stream
resolution results, load timeouts) is a message put on one inbox and handled
in order by a single owner task, so the state never needs a lock.

States and transitions:
- Idle --PlayRequested--> Loading
- Loading --EngineReady--> Playing (or Paused when play was toggled off)
- Playing <--Pause/Play--> Paused
- Loading/Playing/Paused --engine error, resolve failure, timeout--> Error
- Playing/Paused --EndOfStream--> Loading (next entry) | Idle (last entry)
- Error --Retry--> Loading, re-resolving the stream URI
- Next/Previous from Loading/Playing/Paused/Error --> Loading | Idle
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import async_timeout

from camper.catalog.models import QueueEntry
from camper.core.error_recovery import classify_error, timeout_cause
from camper.core.interfaces import (
    BufferingProgress, ClearQueue, EndOfStream, Enqueue, EngineError, EngineReady, ErrorCause,
    InsertNext, LoadTimedOut, NextCommand, PauseCommand, PlayCommand, PlayerState, PlayerStatus,
    PlayRequested, PositionTick, PreviousCommand, RemoveFromQueue, ReplaceQueue, ResolveFailed,
    RetryCommand, SeekCommand, SetVolume, StopCommand, StreamResolved, TogglePlayPause, VolumeStep,
)
from camper.core.player import PlaybackEngine
from camper.core.queue_manager import Queue
from camper.utils.exceptions import NotReady, PlaybackError, QueueError

logger = logging.getLogger(__name__)

StateListener = Callable[[PlayerState], None]
StreamResolver = Callable[[str], Awaitable[str]]


class PlayerStateMachine:
    def __init__(self, engine: PlaybackEngine, resolver: StreamResolver, queue: Queue = None,
                 config: dict = None):
        """
        Initialize the state machine

        Args:
            engine: Playback engine to drive; its events are routed into this machine
            resolver: Coroutine function mapping a track id to a fresh stream URI
            queue: Play queue to own (a new empty one by default)
            config: Application configuration (load_timeout, resolve_timeout)
        """
        config = config or {}
        self.engine = engine
        self.engine.connect(self.submit)
        self.queue = queue if queue is not None else Queue()
        self._resolve = resolver
        self.load_timeout = float(config.get('load_timeout', 20.0))
        self.resolve_timeout = float(config.get('resolve_timeout', 15.0))

        self._state = PlayerState.idle()
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []
        self._queue_listeners: List[Callable[[], None]] = []

        self._load_token = 0
        self._engine_token: Optional[int] = None
        self._resolve_task: Optional[asyncio.Task] = None
        self._watchdog: Optional[asyncio.TimerHandle] = None
        self.buffering: Optional[float] = None
        self.volume = 1.0

        self._setup_handlers()

    def _setup_handlers(self):
        """Map every message type to its handler"""
        self._handlers = {
            PlayRequested: self._on_play_requested,
            PlayCommand: self._on_play,
            PauseCommand: self._on_pause,
            TogglePlayPause: self._on_toggle,
            StopCommand: self._on_stop,
            NextCommand: self._on_next,
            PreviousCommand: self._on_previous,
            SeekCommand: self._on_seek,
            RetryCommand: self._on_retry,
            SetVolume: self._on_set_volume,
            VolumeStep: self._on_volume_step,
            ReplaceQueue: self._on_replace_queue,
            Enqueue: self._on_enqueue,
            InsertNext: self._on_insert_next,
            RemoveFromQueue: self._on_remove,
            ClearQueue: self._on_clear,
            StreamResolved: self._on_stream_resolved,
            ResolveFailed: self._on_resolve_failed,
            LoadTimedOut: self._on_load_timed_out,
            EngineReady: self._on_engine_ready,
            PositionTick: self._on_position_tick,
            BufferingProgress: self._on_buffering,
            EndOfStream: self._on_end_of_stream,
            EngineError: self._on_engine_error,
        }

    # ------------------------------------------------------------------
    # Lifecycle and public surface

    @property
    def state(self) -> PlayerState:
        """Current snapshot. Snapshots are immutable."""
        return self._state

    @property
    def load_token(self) -> int:
        return self._load_token

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start the owner task on the running loop."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._event_loop())
        logger.info("[PLAYER] State machine started")

    async def close(self):
        """Stop the owner task and any load in flight. The engine is left to its owner."""
        self._cancel_load()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[PLAYER] State machine stopped")

    def submit(self, message):
        """
        Deliver a command or event to the owner task. Safe to call from any thread.
        """
        loop = self._loop
        if loop is None:
            self._inbox.put_nowait(message)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._inbox.put_nowait(message)
        else:
            loop.call_soon_threadsafe(self._inbox.put_nowait, message)

    async def join(self):
        """Wait until every message submitted so far has been handled."""
        await self._inbox.join()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a state-change listener.

        Returns:
            Callable that removes the listener again
        """
        return _register(self._listeners, listener)

    def subscribe_queue(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a listener called after every queue mutation."""
        return _register(self._queue_listeners, listener)

    # ------------------------------------------------------------------
    # Owner loop

    async def _event_loop(self):
        """Main message handling loop"""
        while True:
            message = await self._inbox.get()
            try:
                handler = self._handlers.get(type(message))
                if handler is None:
                    logger.warning(f"[PLAYER] Ignoring unknown message {message!r}")
                else:
                    await handler(message)
            except QueueError as e:
                logger.warning(f"[PLAYER] Rejected {type(message).__name__}: {e.message}")
            except Exception as e:
                logger.exception(f"[PLAYER] Failed to handle {type(message).__name__}: {e}")
            finally:
                self._inbox.task_done()

    def _transition(self, new_state: PlayerState):
        old_state = self._state
        self._state = new_state
        if old_state.status is new_state.status and old_state.entry is new_state.entry \
                and old_state.wants_play == new_state.wants_play:
            logger.debug(f"[PLAYER] {new_state.describe()} @ {new_state.position:.1f}s")
        else:
            logger.info(f"[PLAYER] {old_state.describe()} -> {new_state.describe()}")
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                logger.exception(f"[PLAYER] State listener failed: {e}")

    def _queue_changed(self):
        for listener in list(self._queue_listeners):
            try:
                listener()
            except Exception as e:
                logger.exception(f"[PLAYER] Queue listener failed: {e}")

    # ------------------------------------------------------------------
    # Loading

    def _cancel_load(self):
        if self._resolve_task is not None and not self._resolve_task.done():
            self._resolve_task.cancel()
        self._resolve_task = None
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        self._engine_token = None

    async def _stop_engine(self):
        try:
            await self.engine.stop()
        except PlaybackError as e:
            logger.warning(f"[PLAYER] Engine stop failed: {e.message}")

    async def _begin_load(self, entry: QueueEntry, wants_play: bool = True):
        """Enter Loading for entry: resolve a fresh stream URI, then load it."""
        previous = self._state
        self._cancel_load()
        if previous.status is not PlayerStatus.IDLE:
            await self._stop_engine()

        self._load_token += 1
        token = self._load_token
        self.buffering = None
        self._transition(PlayerState.loading(entry, wants_play=wants_play))

        loop = asyncio.get_running_loop()
        self._resolve_task = loop.create_task(self._resolve_stream(token, entry))
        self._watchdog = loop.call_later(self.load_timeout, self.submit, LoadTimedOut(token))

    async def _resolve_stream(self, token: int, entry: QueueEntry):
        try:
            async with async_timeout.timeout(self.resolve_timeout):
                uri = await self._resolve(entry.track.id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[PLAYER] Could not resolve '{entry.title}': {e}")
            self.submit(ResolveFailed(token, classify_error(e)))
        else:
            self.submit(StreamResolved(token, uri))

    def _is_current_load(self, token: int) -> bool:
        return token == self._load_token and self._state.status is PlayerStatus.LOADING

    def _is_current_stream(self, token: int) -> bool:
        return self._engine_token is not None and token == self._engine_token

    async def _fail(self, cause: ErrorCause):
        """Enter Error on the current entry, keeping the queue cursor."""
        entry = self._state.entry
        self._cancel_load()
        await self._stop_engine()
        self._transition(PlayerState.error(entry, cause))

    async def _go_idle(self):
        self._cancel_load()
        if self._state.status is not PlayerStatus.IDLE:
            await self._stop_engine()
            self._transition(PlayerState.idle())

    async def _start_or_idle(self, entry: Optional[QueueEntry]):
        if entry is None:
            await self._go_idle()
        else:
            await self._begin_load(entry)

    async def _on_stream_resolved(self, message: StreamResolved):
        if not self._is_current_load(message.load_token):
            logger.debug(f"[PLAYER] Discarding stale stream resolution {message.load_token}")
            return
        self._resolve_task = None
        self._engine_token = self.engine.load(message.uri)

    async def _on_resolve_failed(self, message: ResolveFailed):
        if not self._is_current_load(message.load_token):
            logger.debug(f"[PLAYER] Discarding stale resolve failure {message.load_token}")
            return
        await self._fail(message.cause)

    async def _on_load_timed_out(self, message: LoadTimedOut):
        if not self._is_current_load(message.load_token):
            return
        logger.warning(f"[PLAYER] '{self._state.entry.title}' not ready after {self.load_timeout:g}s")
        await self._fail(timeout_cause(self.load_timeout))

    # ------------------------------------------------------------------
    # Engine events

    async def _on_engine_ready(self, message: EngineReady):
        if not self._is_current_stream(message.token) or self._state.status is not PlayerStatus.LOADING:
            logger.debug(f"[PLAYER] Discarding stale readiness {message.token}")
            return
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

        entry = self._state.entry
        if not self._state.wants_play:
            self._transition(PlayerState.paused(entry))
            return
        try:
            await self.engine.play()
        except PlaybackError as e:
            await self._fail(classify_error(e))
            return
        self._transition(PlayerState.playing(entry))

    async def _on_position_tick(self, message: PositionTick):
        if not self._is_current_stream(message.token) or not self._state.is_active:
            return
        self._transition(self._state.at(message.position))

    async def _on_buffering(self, message: BufferingProgress):
        if not self._is_current_stream(message.token):
            return
        self.buffering = message.percent
        logger.debug(f"[PLAYER] Buffering {message.percent:.0f}%")

    async def _on_end_of_stream(self, message: EndOfStream):
        if not self._is_current_stream(message.token) or not self._state.is_active:
            logger.debug(f"[PLAYER] Discarding stale end of stream {message.token}")
            return
        next_entry = self.queue.advance()
        self._queue_changed()
        await self._start_or_idle(next_entry)

    async def _on_engine_error(self, message: EngineError):
        if not self._is_current_stream(message.token):
            logger.debug(f"[PLAYER] Discarding stale engine error {message.token}")
            return
        if self._state.status in (PlayerStatus.LOADING, PlayerStatus.PLAYING, PlayerStatus.PAUSED):
            await self._fail(message.cause)

    # ------------------------------------------------------------------
    # Transport commands

    async def _on_play_requested(self, message: PlayRequested):
        index = self.queue.index_of(message.entry)
        if index is None:
            self.queue.append(message.entry)
            index = len(self.queue) - 1
        self.queue.move_cursor_to(index)
        self._queue_changed()
        await self._begin_load(message.entry)

    async def _on_play(self, message=None):
        status = self._state.status
        if status is PlayerStatus.PAUSED:
            await self._resume()
        elif status is PlayerStatus.LOADING:
            if not self._state.wants_play:
                self._transition(PlayerState.loading(self._state.entry, wants_play=True))
        elif status is PlayerStatus.ERROR:
            await self._on_retry()
        elif status is PlayerStatus.IDLE:
            entry = self.queue.current()
            if entry is None and len(self.queue):
                entry = self.queue.move_cursor_to(0)
                self._queue_changed()
            if entry is not None:
                await self._begin_load(entry)

    async def _on_pause(self, message=None):
        status = self._state.status
        if status is PlayerStatus.PLAYING:
            try:
                await self.engine.pause()
            except PlaybackError as e:
                await self._fail(classify_error(e))
                return
            self._transition(PlayerState.paused(self._state.entry, self._state.position))
        elif status is PlayerStatus.LOADING and self._state.wants_play:
            self._transition(PlayerState.loading(self._state.entry, wants_play=False))

    async def _on_toggle(self, message: TogglePlayPause):
        if self._state.status is PlayerStatus.PLAYING or (
                self._state.status is PlayerStatus.LOADING and self._state.wants_play):
            await self._on_pause()
        else:
            await self._on_play()

    async def _resume(self):
        try:
            await self.engine.play()
        except PlaybackError as e:
            await self._fail(classify_error(e))
            return
        self._transition(PlayerState.playing(self._state.entry, self._state.position))

    async def _on_stop(self, message: StopCommand):
        await self._go_idle()

    async def _on_next(self, message: NextCommand):
        if self._state.status is PlayerStatus.IDLE:
            logger.debug("[PLAYER] Next ignored while idle")
            return
        entry = self.queue.advance()
        self._queue_changed()
        await self._start_or_idle(entry)

    async def _on_previous(self, message: PreviousCommand):
        if self._state.status is PlayerStatus.IDLE:
            logger.debug("[PLAYER] Previous ignored while idle")
            return
        entry = self.queue.previous()
        self._queue_changed()
        await self._start_or_idle(entry)

    async def _on_seek(self, message: SeekCommand):
        if not self._state.is_active:
            logger.debug(f"[PLAYER] Seek ignored while {self._state.status.value}")
            return
        try:
            await self.engine.seek(max(0.0, message.position))
        except NotReady:
            logger.debug("[PLAYER] Seek ignored, stream not ready")
        except PlaybackError as e:
            await self._fail(classify_error(e))

    async def _on_retry(self, message=None):
        if self._state.status is not PlayerStatus.ERROR:
            return
        await self._begin_load(self._state.entry)

    async def _on_set_volume(self, message: SetVolume):
        self.volume = max(0.0, min(1.0, message.volume))
        try:
            await self.engine.set_volume(self.volume)
        except PlaybackError as e:
            logger.warning(f"[PLAYER] Volume change failed: {e.message}")

    async def _on_volume_step(self, message: VolumeStep):
        await self._on_set_volume(SetVolume(self.volume + message.delta))

    # ------------------------------------------------------------------
    # Queue commands

    async def _on_replace_queue(self, message: ReplaceQueue):
        entry = self.queue.replace(message.entries, message.start_index)
        self._queue_changed()
        await self._start_or_idle(entry)

    async def _on_enqueue(self, message: Enqueue):
        self.queue.extend(message.entries)
        self._queue_changed()

    async def _on_insert_next(self, message: InsertNext):
        self.queue.insert_next(message.entry)
        self._queue_changed()

    async def _on_remove(self, message: RemoveFromQueue):
        was_current = message.index == self.queue.cursor
        self.queue.remove_at(message.index)
        self._queue_changed()
        if was_current and self._state.status is not PlayerStatus.IDLE:
            await self._start_or_idle(self.queue.current())

    async def _on_clear(self, message: ClearQueue):
        self.queue.clear()
        self._queue_changed()
        await self._go_idle()


def _register(listeners: list, listener) -> Callable[[], None]:
    listeners.append(listener)

    def unsubscribe():
        if listener in listeners:
            listeners.remove(listener)
    return unsubscribe
