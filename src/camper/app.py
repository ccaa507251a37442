"""
Camper Application
==================

Composition root: builds the session store, content client, playback engine
(with its audio backend), player state machine and MPRIS adapter, and tears
them down again in reverse order.

Usage: camper [album-url]
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from camper.audio.backend import AudioBackend
from camper.audio.mpv_backend import MpvBackend
from camper.catalog.client import ContentClient
from camper.catalog.models import Album, FanInfo, OriginKind, entries_for_album
from camper.core.controller import PlayerStateMachine
from camper.core.interfaces import Command, ReplaceQueue
from camper.core.mpris import MprisAdapter
from camper.core.player import PlaybackEngine
from camper.utils.config import load_config
from camper.utils.exceptions import CamperException, QueueError, StreamUnavailable
from camper.utils.logging_config import setup_logging
from camper.utils.session_store import SessionStore

logger = logging.getLogger(__name__)


class CamperApp:
    """Owns every long-lived component for the lifetime of the process."""

    def __init__(self, config: dict = None, backend: Optional[AudioBackend] = None, http_session=None):
        """
        Args:
            config: Application configuration (load_config() when omitted)
            backend: Audio backend (an MpvBackend by default)
            http_session: aiohttp-compatible session for the content client
        """
        self.config = config if config is not None else load_config()
        self.session_store = SessionStore(self.config['session_db'])
        self.client = ContentClient(self.session_store, self.config, http_session=http_session)
        self.backend = backend or MpvBackend(
            mpv_path=self.config.get('mpv_path', 'mpv'),
            volume=self.config.get('volume', 100),
        )
        self.engine = PlaybackEngine(self.backend)
        self.player = PlayerStateMachine(self.engine, self.client.resolve_stream_uri, config=self.config)
        self.mpris = MprisAdapter(self.player)
        self.running = False

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def start(self):
        """Initialize storage, restore the session, start the backend and the player."""
        await self.session_store.initialize()
        await self.session_store.load()
        await self.backend.launch()
        self.player.start()
        self.running = True
        logger.info("Camper started")

    async def shutdown(self):
        """Stop every component, in reverse order of construction."""
        if not self.running:
            return
        logger.info("Shutting down Camper...")
        self.running = False

        self.mpris.close()
        await self.player.close()
        try:
            await self.engine.close()
        except CamperException as e:
            logger.error(f"Error closing audio backend: {e}")
        await self.client.close()
        logger.info("Camper shutdown complete")

    def submit(self, command: Command):
        """Forward a UI command to the player."""
        self.player.submit(command)

    async def play_album(self, album_id: str, start_index: int = 0,
                         origin: OriginKind = OriginKind.ALBUM, label: str = None) -> Album:
        """
        Resolve an album and play it, starting at one of its tracks.

        Args:
            album_id: Album page URL
            start_index: Index into the album's tracks; an unplayable track
                starts at the next playable one
            origin: View the album was picked from
            label: Display label of that view

        Returns:
            Album: The resolved album

        Raises:
            StreamUnavailable: the album has no streamable track at or after start_index
            QueueError: start_index is outside the album
        """
        album = await self.client.resolve_album(album_id)
        if not album.tracks:
            raise StreamUnavailable(f"'{album.title}' has no tracks")
        if not 0 <= start_index < len(album.tracks):
            raise QueueError(f"Track index {start_index} out of range for '{album.title}'")

        entries = entries_for_album(album, origin_kind=origin, label=label)
        first_position = album.tracks[start_index].position
        start_entry = None
        for index, entry in enumerate(entries):
            if entry.track.position >= first_position:
                start_entry = index
                break
        if start_entry is None:
            raise StreamUnavailable(f"'{album.title}' has no streamable tracks")

        self.player.submit(ReplaceQueue(entries, start_entry))
        return album

    async def login(self, blob: str) -> FanInfo:
        """Store a credential from the login flow and verify it against the catalog."""
        await self.session_store.save(blob)
        self.client.reset_identity()
        return await self.client.verify_session()

    async def logout(self):
        await self.session_store.clear()
        self.client.reset_identity()


async def run(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    config = load_config()
    setup_logging(config)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in [signal.SIGINT, signal.SIGTERM]:
        loop.add_signal_handler(sig, stop.set)

    try:
        async with CamperApp(config) as app:
            if argv:
                album = await app.play_album(argv[0])
                logger.info(f"Playing '{album.title}' by {album.artist}")
            await stop.wait()
    except CamperException as e:
        logger.error(f"Fatal error: {e.message}")
        return 1
    return 0


def main():
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
