import pytest

from camper.utils.session_store import SessionStore


@pytest.fixture
async def store(tmp_path):
    session_store = SessionStore(str(tmp_path / "data" / "session.db"))
    await session_store.initialize()
    return session_store


@pytest.mark.asyncio
async def test_empty_store(store):
    assert await store.load() is None
    assert store.current() is None
    assert not store.is_valid()


@pytest.mark.asyncio
async def test_saved_credential_survives_restart(store):
    assert await store.save("identity=abc") is True

    restarted = SessionStore(str(store.db_path))
    credential = await restarted.load()

    assert credential.blob == "identity=abc"
    assert restarted.is_valid()


@pytest.mark.asyncio
async def test_save_replaces_reference(store):
    await store.save("identity=old")
    old = store.current()
    await store.save("identity=new")

    assert store.current() is not old
    assert old.blob == "identity=old"
    assert store.current().blob == "identity=new"


@pytest.mark.asyncio
async def test_empty_blob_rejected(store):
    with pytest.raises(ValueError):
        await store.save("")


@pytest.mark.asyncio
async def test_clear_forgets_everywhere(store):
    await store.save("identity=abc")
    await store.clear()

    assert store.current() is None
    assert await SessionStore(str(store.db_path)).load() is None


@pytest.mark.asyncio
async def test_mark_expired_invalidates_and_drops_persisted_copy(store):
    await store.save("identity=abc")
    used = store.current()

    assert await store.mark_expired(used) is True

    assert store.current().valid is False
    assert not store.is_valid()
    assert used.valid is True
    assert await SessionStore(str(store.db_path)).load() is None
    # Second report is a no-op
    assert await store.mark_expired(used) is False


@pytest.mark.asyncio
async def test_expiry_of_superseded_credential_is_ignored(store):
    await store.save("identity=old")
    stale = store.current()
    await store.save("identity=new")

    assert await store.mark_expired(stale) is False
    assert store.is_valid()
    assert store.current().blob == "identity=new"


def test_repr_hides_blob():
    from camper.utils.session_store import SessionCredential
    assert "secret" not in repr(SessionCredential(blob="secret"))
