import asyncio

import pytest

from camper.core.interfaces import (
    BufferingProgress, EndOfStream, EngineError, EngineReady, ErrorKind, PositionTick,
)
from camper.core.player import PlaybackEngine
from camper.utils.exceptions import NotReady
from conftest import FakeBackend


async def drain():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def events():
    return []


@pytest.fixture
def held_backend():
    return FakeBackend(hold=True)


@pytest.fixture
def engine(held_backend, events):
    return PlaybackEngine(held_backend, emit=events.append)


@pytest.mark.asyncio
async def test_load_returns_before_ready_and_reports_readiness(engine, held_backend, events):
    token = engine.load("uri-a")
    assert not engine.ready
    await drain()
    assert events == []

    held_backend.ready("uri-a")
    await drain()

    assert engine.ready
    assert events == [EngineReady(token)]


@pytest.mark.asyncio
async def test_second_load_discards_first(engine, held_backend, events):
    engine.load("uri-a")
    await drain()
    token_b = engine.load("uri-b")
    await drain()

    held_backend.ready("uri-b")
    await drain()

    assert events == [EngineReady(token_b)]
    # The first open was cancelled, so its waiter is gone for good
    assert held_backend.waiters["uri-a"].cancelled()


@pytest.mark.asyncio
async def test_pending_toggle_last_write_wins(engine, held_backend, events):
    engine.load("uri-a")
    await engine.play()
    await engine.pause()
    await engine.play()
    assert engine.pending_play is True
    assert held_backend.transport_calls() == []

    await drain()
    held_backend.ready("uri-a")
    await drain()

    assert held_backend.transport_calls() == [('start',)]
    assert engine.pending_play is None


@pytest.mark.asyncio
async def test_seek_before_ready_is_rejected(engine):
    engine.load("uri-a")
    with pytest.raises(NotReady):
        await engine.seek(30)


@pytest.mark.asyncio
async def test_seek_when_ready_goes_to_backend(engine, held_backend):
    engine.load("uri-a")
    await drain()
    held_backend.ready("uri-a")
    await drain()

    await engine.seek(90)

    assert held_backend.transport_calls()[-1] == ('seek', 90)


@pytest.mark.asyncio
async def test_open_failure_reports_error_and_engine_stays_usable(engine, held_backend, events):
    token = engine.load("uri-bad")
    await drain()
    held_backend.fail("uri-bad")
    await drain()

    assert len(events) == 1
    assert isinstance(events[0], EngineError)
    assert events[0].token == token
    assert events[0].cause.kind is ErrorKind.DECODE

    next_token = engine.load("uri-good")
    await drain()
    held_backend.ready("uri-good")
    await drain()
    assert events[-1] == EngineReady(next_token)


@pytest.mark.asyncio
async def test_stream_events_carry_current_token(engine, held_backend, events):
    token = engine.load("uri-a")
    await drain()
    held_backend.ready("uri-a")
    await drain()
    events.clear()

    held_backend.buffer(40)
    held_backend.tick(12.5)
    held_backend.finish()

    assert events == [BufferingProgress(token, 40), PositionTick(token, 12.5), EndOfStream(token)]


@pytest.mark.asyncio
async def test_stream_events_dropped_after_stop(engine, held_backend, events):
    engine.load("uri-a")
    await drain()
    held_backend.ready("uri-a")
    await drain()
    events.clear()

    await engine.stop()
    held_backend.tick(3)
    held_backend.finish()
    held_backend.break_stream()

    assert events == []
    assert ('stop',) in held_backend.calls


@pytest.mark.asyncio
async def test_volume_is_clamped(engine, held_backend):
    await engine.set_volume(1.7)
    await engine.set_volume(-1)
    assert held_backend.calls == [('volume', 1.0), ('volume', 0.0)]
