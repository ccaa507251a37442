"""
Interfaces and data structures for communication with the player state machine.

Everything the state machine consumes is a message: UI and OS commands,
PlaybackEngine events, and its own internal load bookkeeping. Everything it
publishes is an immutable PlayerState snapshot.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence

from camper.catalog.models import QueueEntry


class PlayerStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


class ErrorKind(Enum):
    """Classification of playback and content failures."""
    TIMEOUT = "timeout"
    DECODE = "decode"
    NETWORK = "network"
    STREAM_UNAVAILABLE = "stream_unavailable"
    AUTH_EXPIRED = "auth_expired"
    PARSE = "parse"
    BACKEND = "backend"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorCause:
    kind: ErrorKind
    message: str = ""
    retryable: bool = True

    def __str__(self) -> str:
        if self.message:
            return f"{self.kind.value}: {self.message}"
        return self.kind.value


@dataclass(frozen=True)
class PlayerState:
    """
    The one authoritative "now playing" snapshot.

    Attributes:
        status: Which variant this is
        entry: Queue entry being loaded/played (None only when idle)
        position: Playback position in seconds (Playing/Paused)
        cause: Why playback failed (Error only)
        wants_play: Whether a Loading state starts playing once ready
    """
    status: PlayerStatus
    entry: Optional[QueueEntry] = None
    position: float = 0.0
    cause: Optional[ErrorCause] = None
    wants_play: bool = True

    def __post_init__(self):
        if self.status is PlayerStatus.IDLE:
            if self.entry is not None:
                raise ValueError("Idle state carries no entry")
        elif self.entry is None:
            raise ValueError(f"{self.status.value} state requires an entry")
        if self.status is PlayerStatus.ERROR and self.cause is None:
            raise ValueError("Error state requires a cause")

    @classmethod
    def idle(cls) -> 'PlayerState':
        return cls(PlayerStatus.IDLE)

    @classmethod
    def loading(cls, entry: QueueEntry, wants_play: bool = True) -> 'PlayerState':
        return cls(PlayerStatus.LOADING, entry, wants_play=wants_play)

    @classmethod
    def playing(cls, entry: QueueEntry, position: float = 0.0) -> 'PlayerState':
        return cls(PlayerStatus.PLAYING, entry, position=position)

    @classmethod
    def paused(cls, entry: QueueEntry, position: float = 0.0) -> 'PlayerState':
        return cls(PlayerStatus.PAUSED, entry, position=position, wants_play=False)

    @classmethod
    def error(cls, entry: QueueEntry, cause: ErrorCause) -> 'PlayerState':
        return cls(PlayerStatus.ERROR, entry, cause=cause, wants_play=False)

    def at(self, position: float) -> 'PlayerState':
        return replace(self, position=position)

    @property
    def is_active(self) -> bool:
        """Playing or paused on a loaded stream."""
        return self.status in (PlayerStatus.PLAYING, PlayerStatus.PAUSED)

    def describe(self) -> str:
        if self.entry is None:
            return self.status.value
        text = f"{self.status.value} '{self.entry.title}'"
        if self.status is PlayerStatus.ERROR:
            text += f" ({self.cause})"
        return text


# ----------------------------------------------------------------------
# Commands (UI, media keys, MPRIS)

class Command:
    """Marker base for commands accepted by the player state machine."""


@dataclass(frozen=True)
class PlayRequested(Command):
    entry: QueueEntry


@dataclass(frozen=True)
class PlayCommand(Command):
    pass


@dataclass(frozen=True)
class PauseCommand(Command):
    pass


@dataclass(frozen=True)
class TogglePlayPause(Command):
    pass


@dataclass(frozen=True)
class StopCommand(Command):
    pass


@dataclass(frozen=True)
class NextCommand(Command):
    pass


@dataclass(frozen=True)
class PreviousCommand(Command):
    pass


@dataclass(frozen=True)
class SeekCommand(Command):
    """Absolute seek, in seconds."""
    position: float


@dataclass(frozen=True)
class RetryCommand(Command):
    pass


@dataclass(frozen=True)
class SetVolume(Command):
    """Volume in 0.0 - 1.0."""
    volume: float


@dataclass(frozen=True)
class VolumeStep(Command):
    delta: float


@dataclass(frozen=True)
class ReplaceQueue(Command):
    entries: Sequence[QueueEntry]
    start_index: int = 0


@dataclass(frozen=True)
class Enqueue(Command):
    entries: Sequence[QueueEntry]


@dataclass(frozen=True)
class InsertNext(Command):
    entry: QueueEntry


@dataclass(frozen=True)
class RemoveFromQueue(Command):
    index: int


@dataclass(frozen=True)
class ClearQueue(Command):
    pass


# ----------------------------------------------------------------------
# PlaybackEngine events, stamped with the engine load token they belong to

class EngineEvent:
    """Marker base for PlaybackEngine events."""
    token: int


@dataclass(frozen=True)
class EngineReady(EngineEvent):
    token: int


@dataclass(frozen=True)
class BufferingProgress(EngineEvent):
    token: int
    percent: float


@dataclass(frozen=True)
class PositionTick(EngineEvent):
    token: int
    position: float


@dataclass(frozen=True)
class EndOfStream(EngineEvent):
    token: int


@dataclass(frozen=True)
class EngineError(EngineEvent):
    token: int
    cause: ErrorCause


# ----------------------------------------------------------------------
# Load bookkeeping, stamped with the state machine's load token

@dataclass(frozen=True)
class StreamResolved:
    load_token: int
    uri: str


@dataclass(frozen=True)
class ResolveFailed:
    load_token: int
    cause: ErrorCause


@dataclass(frozen=True)
class LoadTimedOut:
    load_token: int
