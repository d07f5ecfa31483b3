"""
Unit tests for the in-memory session store.
"""
from datetime import timedelta

import pytest

from cityguard.auth.models import SessionMetadata
from cityguard.auth.session_management import InMemorySessionStore
from cityguard.core.security import hash_token


@pytest.fixture
def store(clock):
    return InMemorySessionStore(max_active_sessions=5, retention=timedelta(days=30), clock=clock, timeout=1)


async def open_session(store, clock, n, user_id="u1"):
    return await store.create(
        user_id,
        f"access-{user_id}-{n}",
        f"refresh-{user_id}-{n}",
        expires_at=clock() + timedelta(days=7),
        metadata=SessionMetadata(client_ip="10.0.0.1", user_agent="pytest"),
    )


@pytest.mark.asyncio
async def test_tokens_stored_as_digests(store, clock):
    session = await open_session(store, clock, 1)

    assert session.access_token_hash == hash_token("access-u1-1")
    assert session.refresh_token_hash == hash_token("refresh-u1-1")
    assert session.client_ip == "10.0.0.1"
    assert session.expires_at > session.issued_at


@pytest.mark.asyncio
async def test_find_active_by_either_token(store, clock):
    session = await open_session(store, clock, 1)

    assert (await store.find_active_by_refresh_token("refresh-u1-1")).id == session.id
    assert (await store.find_active_by_access_token("access-u1-1")).id == session.id
    assert await store.find_active_by_access_token("refresh-u1-1") is None


@pytest.mark.asyncio
async def test_sixth_session_evicts_oldest(store, clock):
    sessions = []
    for n in range(6):
        sessions.append(await open_session(store, clock, n))
        clock.advance(seconds=1)

    active = await store.list_active("u1")
    assert len(active) == 5
    assert sessions[0].id not in {s.id for s in active}
    assert await store.get(sessions[0].id) is None
    assert await store.find_active_by_refresh_token("refresh-u1-0") is None


@pytest.mark.asyncio
async def test_cap_is_per_user(store, clock):
    for n in range(5):
        await open_session(store, clock, n, user_id="u1")
    await open_session(store, clock, 0, user_id="u2")

    assert len(await store.list_active("u1")) == 5
    assert len(await store.list_active("u2")) == 1


@pytest.mark.asyncio
async def test_invalidate_is_final(store, clock):
    session = await open_session(store, clock, 1)

    assert await store.invalidate(session.id)
    assert not await store.invalidate(session.id)
    assert await store.find_active_by_refresh_token("refresh-u1-1") is None
    assert not await store.rotate_access_token(session.id, "access-new")

    stored = await store.get(session.id)
    assert not stored.is_active
    assert stored.invalidated_at == clock()


@pytest.mark.asyncio
async def test_invalidate_all(store, clock):
    for n in range(3):
        await open_session(store, clock, n)
    other = await open_session(store, clock, 0, user_id="u2")

    assert await store.invalidate_all("u1") == 3
    assert await store.list_active("u1") == []
    assert (await store.get(other.id)).is_active


@pytest.mark.asyncio
async def test_rotate_access_token(store, clock):
    session = await open_session(store, clock, 1)
    clock.advance(minutes=5)

    assert await store.rotate_access_token(session.id, "access-rotated")
    assert await store.find_active_by_access_token("access-u1-1") is None
    rotated = await store.find_active_by_access_token("access-rotated")
    assert rotated.id == session.id
    assert rotated.last_activity == clock()


@pytest.mark.asyncio
async def test_touch_updates_last_activity(store, clock):
    session = await open_session(store, clock, 1)
    clock.advance(minutes=3)

    await store.touch(session.id)
    assert (await store.get(session.id)).last_activity == clock()


@pytest.mark.asyncio
async def test_expired_sessions_are_not_found(store, clock):
    await open_session(store, clock, 1)
    clock.advance(days=7)

    assert await store.find_active_by_refresh_token("refresh-u1-1") is None
    assert await store.list_active("u1") == []


@pytest.mark.asyncio
async def test_sweep_expired(store, clock):
    expired = await open_session(store, clock, 1)
    retired = await open_session(store, clock, 2)
    await store.invalidate(retired.id)

    clock.advance(days=6)
    live = await open_session(store, clock, 3)
    recently_retired = await open_session(store, clock, 4)
    await store.invalidate(recently_retired.id)

    clock.advance(days=1)
    # `expired` and `retired` are past expiry; the recent ones are kept
    assert await store.sweep_expired() == 2
    assert await store.get(expired.id) is None
    assert await store.get(live.id) is not None
    assert await store.get(recently_retired.id) is not None


@pytest.mark.asyncio
async def test_sweep_drops_long_retired_sessions(clock):
    store = InMemorySessionStore(retention=timedelta(days=30), clock=clock)
    session = await store.create("u1", "a", "r", expires_at=clock() + timedelta(days=60))
    await store.invalidate(session.id)

    clock.advance(days=29)
    assert await store.sweep_expired() == 0
    clock.advance(days=2)
    assert await store.sweep_expired() == 1


@pytest.mark.asyncio
async def test_expiry_must_follow_issue(store, clock):
    with pytest.raises(ValueError):
        await store.create("u1", "a", "r", expires_at=clock())
