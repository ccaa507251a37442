"""
MPRIS Adapter
=============

Translates PlayerStateMachine snapshots into the MPRIS media-player
vocabulary and relays OS-issued media commands back as state machine
commands. It holds no playback logic of its own.

A D-Bus exporter sits on top of this adapter: it reads properties(), calls
the command methods from its method handlers, and turns the change sets
published to listeners into PropertiesChanged signals.
"""

import logging
from typing import Any, Callable, Dict, List

from camper.core.controller import PlayerStateMachine
from camper.core.interfaces import (
    NextCommand, PauseCommand, PlayCommand, PlayerState, PlayerStatus, PreviousCommand,
    SeekCommand, SetVolume, StopCommand, TogglePlayPause,
)

logger = logging.getLogger(__name__)

TRACK_PATH_PREFIX = "/org/camper/track/"
NO_TRACK = "/org/mpris/MediaPlayer2/TrackList/NoTrack"

# MPRIS does not announce Position through PropertiesChanged
UNSIGNALLED = {'Position'}

PropertyListener = Callable[[Dict[str, Any]], None]


def to_microseconds(seconds: float) -> int:
    return int(round(seconds * 1_000_000))


def playback_status(state: PlayerState) -> str:
    if state.status is PlayerStatus.PLAYING:
        return "Playing"
    if state.status is PlayerStatus.PAUSED:
        return "Paused"
    if state.status is PlayerStatus.LOADING:
        return "Playing" if state.wants_play else "Paused"
    return "Stopped"


class MprisAdapter:
    def __init__(self, machine: PlayerStateMachine):
        """
        Initialize the adapter and start following the state machine

        Args:
            machine: The player whose state is exported and which receives commands
        """
        self.machine = machine
        self._listeners: List[PropertyListener] = []
        self._published = self.properties()
        self._unsubscribe = [
            machine.subscribe(self._on_state_changed),
            machine.subscribe_queue(self._publish),
        ]

    def close(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def add_listener(self, listener: PropertyListener):
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Exported fields

    @property
    def state(self) -> PlayerState:
        return self.machine.state

    @property
    def track_id(self) -> str:
        if self.state.entry is None:
            return NO_TRACK
        index = self.machine.queue.index_of(self.state.entry)
        if index is None:
            return NO_TRACK
        return f"{TRACK_PATH_PREFIX}{index}"

    def metadata(self) -> Dict[str, Any]:
        """
        Metadata of the current entry.

        Returns:
            Dict keyed by MPRIS/xesam names; only mpris:trackid when idle
        """
        entry = self.state.entry
        if entry is None:
            return {'mpris:trackid': NO_TRACK}

        track = entry.track
        metadata = {
            'mpris:trackid': self.track_id,
            'xesam:title': track.title,
            'xesam:artist': [track.artist] if track.artist else [],
            'xesam:album': track.album_title,
            'xesam:url': track.url or entry.origin.album_id,
        }
        if track.duration:
            metadata['mpris:length'] = to_microseconds(track.duration)
        if track.art_url:
            metadata['mpris:artUrl'] = track.art_url
        if track.position:
            metadata['xesam:trackNumber'] = track.position
        return metadata

    @property
    def position_us(self) -> int:
        return to_microseconds(self.state.position) if self.state.is_active else 0

    def properties(self) -> Dict[str, Any]:
        """Every exported org.mpris.MediaPlayer2.Player property."""
        state = self.state
        queue = self.machine.queue
        # Next and Previous are ignored while idle
        navigable = state.status is not PlayerStatus.IDLE
        return {
            'PlaybackStatus': playback_status(state),
            'Metadata': self.metadata(),
            'Position': self.position_us,
            'Volume': self.machine.volume,
            'CanControl': True,
            'CanPlay': state.entry is not None or len(queue) > 0,
            'CanPause': state.status in (PlayerStatus.PLAYING, PlayerStatus.PAUSED, PlayerStatus.LOADING),
            'CanSeek': state.is_active,
            'CanGoNext': navigable and queue.peek_next() is not None,
            'CanGoPrevious': navigable and queue.has_previous,
        }

    def _on_state_changed(self, state: PlayerState):
        self._publish()

    def _publish(self):
        current = self.properties()
        changed = {
            name: value for name, value in current.items()
            if name not in UNSIGNALLED and self._published.get(name) != value
        }
        self._published = current
        if not changed:
            return
        logger.debug(f"[MPRIS] Changed: {', '.join(sorted(changed))}")
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception as e:
                logger.exception(f"[MPRIS] Property listener failed: {e}")

    # ------------------------------------------------------------------
    # Inbound OS commands

    def play_pause(self):
        self.machine.submit(TogglePlayPause())

    def play(self):
        self.machine.submit(PlayCommand())

    def pause(self):
        self.machine.submit(PauseCommand())

    def stop(self):
        self.machine.submit(StopCommand())

    def next(self):
        self.machine.submit(NextCommand())

    def previous(self):
        self.machine.submit(PreviousCommand())

    def seek(self, offset_us: int):
        """
        Relative seek.

        Args:
            offset_us: Offset from the current position in microseconds
        """
        state = self.state
        if not state.is_active:
            logger.debug("[MPRIS] Seek ignored, nothing playing")
            return
        target = max(0.0, state.position + offset_us / 1_000_000)
        duration = state.entry.track.duration
        if duration and target > duration:
            # Seeking past the end behaves like Next
            self.machine.submit(NextCommand())
            return
        self.machine.submit(SeekCommand(target))

    def set_position(self, track_id: str, position_us: int):
        """
        Absolute seek within the given track. Ignored for a stale track id.
        """
        state = self.state
        if not state.is_active or track_id != self.track_id:
            logger.debug(f"[MPRIS] SetPosition ignored for {track_id}")
            return
        position = position_us / 1_000_000
        duration = state.entry.track.duration
        if position < 0 or (duration and position > duration):
            logger.debug(f"[MPRIS] SetPosition out of range: {position_us}")
            return
        self.machine.submit(SeekCommand(position))

    def set_volume(self, volume: float):
        self.machine.submit(SetVolume(volume))
