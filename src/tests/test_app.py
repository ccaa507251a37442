import json

import pytest

from camper.app import CamperApp
from camper.catalog import constants
from camper.catalog.models import OriginKind
from camper.core.interfaces import PlayerStatus, StopCommand
from camper.utils.exceptions import QueueError, StreamUnavailable
from conftest import FakeBackend, FakeHTTPSession, FakeResponse, settle

ALBUM = "https://neon.bandcamp.com/album/night-drive"


def album_response(streamable=(False, True, True)):
    tracks = []
    for num, playable in enumerate(streamable, start=1):
        record = {'title': f"Track {num}", 'track_num': num, 'duration': 120}
        if playable:
            record['file'] = {'mp3-128': f"https://t4.bcbits.com/stream/{num}"}
        tracks.append(record)
    data = {'current': {'title': "Night Drive"}, 'artist': "Neon Artist", 'trackinfo': tracks}
    payload = json.dumps(data).replace('"', '&quot;')
    return FakeResponse(text=f'<html><script data-tralbum="{payload}"></script></html>')


@pytest.fixture
def config(tmp_path):
    return {
        'session_db': str(tmp_path / "session.db"),
        'load_timeout': 5,
        'resolve_timeout': 5,
        'page_size': 2,
    }


@pytest.fixture
def http():
    return FakeHTTPSession({
        ALBUM: lambda request: album_response(),
        constants.COLLECTION_SUMMARY_URL: FakeResponse(body={
            'fan_id': 99, 'collection_summary': {'fan_id': 99, 'username': "neonfan"},
        }),
    })


@pytest.fixture
async def app(config, http):
    camper = CamperApp(config, backend=FakeBackend(), http_session=http)
    async with camper:
        yield camper


@pytest.mark.asyncio
async def test_play_album_skips_unplayable_first_track(app):
    album = await app.play_album(ALBUM, origin=OriginKind.SEARCH, label="night")
    await settle(app.player)

    state = app.player.state
    assert album.title == "Night Drive"
    assert state.status is PlayerStatus.PLAYING
    assert state.entry.track.position == 2
    assert state.entry.origin.label == "night"
    assert len(app.player.queue) == 2
    assert ('open', "https://t4.bcbits.com/stream/2") in app.backend.calls


@pytest.mark.asyncio
async def test_play_album_from_later_track(app):
    await app.play_album(ALBUM, start_index=2)
    await settle(app.player)

    assert app.player.state.entry.track.position == 3
    assert app.player.queue.cursor == 1


@pytest.mark.asyncio
async def test_play_album_rejects_bad_index(app):
    with pytest.raises(QueueError):
        await app.play_album(ALBUM, start_index=5)
    assert app.player.state.status is PlayerStatus.IDLE


@pytest.mark.asyncio
async def test_play_album_without_streams(app, http):
    http.routes[ALBUM] = lambda request: album_response(streamable=(False, False))

    with pytest.raises(StreamUnavailable):
        await app.play_album(ALBUM)


@pytest.mark.asyncio
async def test_submit_forwards_commands(app):
    await app.play_album(ALBUM)
    await settle(app.player)

    app.submit(StopCommand())
    await settle(app.player)

    assert app.player.state.status is PlayerStatus.IDLE


@pytest.mark.asyncio
async def test_mpris_follows_the_player(app):
    await app.play_album(ALBUM)
    await settle(app.player)

    properties = app.mpris.properties()

    assert properties['PlaybackStatus'] == "Playing"
    assert properties['Metadata']['xesam:title'] == "Track 2"


@pytest.mark.asyncio
async def test_login_and_logout(app):
    fan = await app.login("identity=abc")

    assert fan.fan_id == 99
    assert app.session_store.is_valid()

    await app.logout()

    assert not app.session_store.is_valid()


@pytest.mark.asyncio
async def test_session_survives_restart(config, http):
    async with CamperApp(config, backend=FakeBackend(), http_session=http) as first:
        await first.login("identity=abc")

    async with CamperApp(config, backend=FakeBackend(), http_session=http) as second:
        assert second.session_store.current().blob == "identity=abc"


@pytest.mark.asyncio
async def test_shutdown_closes_backend_but_not_injected_session(config, http):
    camper = CamperApp(config, backend=FakeBackend(), http_session=http)
    await camper.start()

    await camper.shutdown()
    await camper.shutdown()

    assert camper.backend.calls.count(('close',)) == 1
    assert not camper.player.running
    assert http.closed is False
