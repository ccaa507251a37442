import asyncio
import json

import pytest

from camper.audio.backend import AudioBackend
from camper.catalog.models import OriginKind, QueueEntry, Track
from camper.core.controller import PlayerStateMachine
from camper.core.player import PlaybackEngine
from camper.utils.exceptions import DecodeError

ALBUM_URL = "https://artist.bandcamp.com/album/test-album"


def make_track(position=1, album_id=ALBUM_URL, duration=180.0, streamable=True):
    return Track(
        id=f"{album_id}#{position}",
        title=f"Song {position}",
        artist="Test Artist",
        album_id=album_id,
        album_title="Test Album",
        position=position,
        duration=duration,
        stream_url=f"https://stream.example/{position}.mp3" if streamable else None,
        url=f"https://artist.bandcamp.com/track/song-{position}",
    )


def make_entries(count, album_id=ALBUM_URL):
    return [QueueEntry.for_track(make_track(i + 1, album_id), OriginKind.ALBUM, "Test Album")
            for i in range(count)]


class FakeBackend(AudioBackend):
    """
    Records every transport call. open() completes at once unless hold is set,
    in which case the test releases each pending open with ready()/fail().
    """

    def __init__(self, hold=False):
        super().__init__()
        self.hold = hold
        self.calls = []
        self.waiters = {}

    def transport_calls(self):
        return [call for call in self.calls if call[0] != 'open']

    async def open(self, uri):
        self.calls.append(('open', uri))
        if not self.hold:
            return
        waiter = asyncio.get_running_loop().create_future()
        self.waiters[uri] = waiter
        await waiter

    def ready(self, uri):
        self.waiters.pop(uri).set_result(True)

    def fail(self, uri, message="unrecognized file format"):
        self.waiters.pop(uri).set_exception(DecodeError(message))

    async def start(self):
        self.calls.append(('start',))

    async def pause(self):
        self.calls.append(('pause',))

    async def seek(self, seconds):
        self.calls.append(('seek', seconds))

    async def stop(self):
        self.calls.append(('stop',))

    async def set_volume(self, volume):
        self.calls.append(('volume', volume))

    async def close(self):
        self.calls.append(('close',))

    # Stream events as a real backend would report them
    def tick(self, seconds):
        self._emit_position(seconds)

    def buffer(self, percent):
        self._emit_buffering(percent)

    def finish(self):
        self._emit_end_of_stream()

    def break_stream(self, message="stream reset"):
        self._emit_error(message)


class FakeResolver:
    """Hands out a fresh URI on every call, like a re-fetched album page."""

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.hang = set()

    async def __call__(self, track_id):
        self.calls.append(track_id)
        if track_id in self.hang:
            await asyncio.Event().wait()
        if track_id in self.errors:
            raise self.errors[track_id]
        return f"https://stream.example/{track_id.rsplit('#', 1)[1]}.mp3?attempt={len(self.calls)}"


async def settle(machine, rounds=20):
    """Let the owner task, resolve tasks and engine opens run to quiescence."""
    for _ in range(rounds):
        await asyncio.sleep(0)
        await machine.join()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
async def machine(backend, resolver):
    engine = PlaybackEngine(backend)
    player = PlayerStateMachine(engine, resolver, config={'load_timeout': 5, 'resolve_timeout': 5})
    player.start()
    yield player
    await player.close()


class FakeResponse:
    def __init__(self, status=200, body=None, text=None):
        self.status = status
        self._body = body
        self._text = text

    async def json(self, content_type=None):
        if self._text is not None:
            return json.loads(self._text)
        return self._body

    async def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self._body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeHTTPSession:
    """
    Stands in for aiohttp.ClientSession.request(). Routes are keyed by URL;
    each route is a FakeResponse, an exception to raise, or a callable taking
    the recorded request and returning either of those.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []
        self.closed = False

    def request(self, method, url, params=None, json=None, headers=None):
        request = {'method': method, 'url': url, 'params': params, 'json': json, 'headers': headers or {}}
        self.requests.append(request)
        route = self.routes.get(url)
        if callable(route) and not isinstance(route, FakeResponse):
            route = route(request)
        if route is None:
            route = FakeResponse(status=404, body={})
        if isinstance(route, Exception):
            raise route
        return route

    async def close(self):
        self.closed = True
