"""
Seat lock stores: exclusivity, all-or-nothing batches, TTL and release
"""
import asyncio

import fakeredis
import pytest
import pytest_asyncio

from sorykpass.services import (
    InMemorySeatLockStore,
    RedisSeatLockStore,
    SeatStoreUnavailableError,
)


@pytest_asyncio.fixture(params=["memory", "redis"])
async def store(request, clock):
    """Every behavioural test runs against both implementations"""
    if request.param == "memory":
        yield InMemorySeatLockStore(clock=clock)
        return

    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield RedisSeatLockStore(client, key_prefix="test-seatlock")
    await client.aclose()


@pytest.mark.asyncio
async def test_second_session_cannot_take_held_seat(store):
    assert await store.acquire("s1", ["A1"], 600) == []
    assert await store.acquire("s2", ["A1"], 600) == ["A1"]
    assert await store.holders(["A1"]) == {"A1": "s1"}


@pytest.mark.asyncio
async def test_batch_is_all_or_nothing(store):
    """A conflict on one seat leaves every other seat of the batch untouched"""
    await store.acquire("s1", ["A2"], 600)

    conflicts = await store.acquire("s2", ["A2", "B1"], 600)

    assert conflicts == ["A2"]
    assert await store.holders(["B1"]) == {}
    assert await store.acquire("s3", ["B1"], 600) == []


@pytest.mark.asyncio
async def test_same_session_refreshes_its_hold(store):
    assert await store.acquire("s1", ["A1", "A2"], 600) == []
    assert await store.acquire("s1", ["A1", "A2", "B1"], 600) == []
    assert await store.session_seats("s1") == ["A1", "A2", "B1"]


@pytest.mark.asyncio
async def test_release_only_drops_own_locks(store):
    await store.acquire("s1", ["A1"], 600)
    await store.acquire("s2", ["A2"], 600)

    released = await store.release("s1", ["A1", "A2"])

    assert released == 1
    assert await store.holders(["A1", "A2"]) == {"A2": "s2"}


@pytest.mark.asyncio
async def test_release_is_idempotent(store):
    await store.acquire("s1", ["A1", "A2"], 600)

    assert await store.release("s1") == 2
    assert await store.release("s1") == 0
    assert await store.release("s1", ["A1"]) == 0
    assert await store.session_seats("s1") == []


@pytest.mark.asyncio
async def test_concurrent_acquisitions_have_one_winner(store):
    sessions = [f"s{i}" for i in range(20)]

    results = await asyncio.gather(*[
        store.acquire(session_id, ["A1", "A2"], 600) for session_id in sessions
    ])

    winners = [s for s, conflicts in zip(sessions, results) if not conflicts]
    assert len(winners) == 1
    assert await store.holders(["A1", "A2"]) == {"A1": winners[0], "A2": winners[0]}


@pytest.mark.asyncio
async def test_memory_lock_expires_after_ttl(clock):
    store = InMemorySeatLockStore(clock=clock)
    await store.acquire("s1", ["A1"], 300)

    clock.advance(299)
    assert await store.acquire("s2", ["A1"], 300) == ["A1"]

    clock.advance(2)
    assert await store.holders(["A1"]) == {}
    assert await store.session_seats("s1") == []
    assert await store.acquire("s2", ["A1"], 300) == []


@pytest.mark.asyncio
async def test_memory_purge_drops_expired_entries(clock):
    store = InMemorySeatLockStore(clock=clock)
    await store.acquire("s1", ["A1", "A2"], 10)
    await store.acquire("s2", ["B1"], 100)

    clock.advance(50)

    assert await store.purge_expired() == 2
    assert await store.holders(["A1", "A2", "B1"]) == {"B1": "s2"}


@pytest.mark.asyncio
async def test_redis_lock_expires_after_ttl():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    store = RedisSeatLockStore(client)

    await store.acquire("s1", ["A1"], 0.05)
    await asyncio.sleep(0.15)

    assert await store.acquire("s2", ["A1"], 600) == []
    assert await store.session_seats("s1") == []
    await client.aclose()


@pytest.mark.asyncio
async def test_redis_session_index_ignores_seats_taken_over():
    """After s1's lock expired and s2 took the seat, s1 no longer owns it"""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    store = RedisSeatLockStore(client)

    await store.acquire("s1", ["A1", "A2"], 600)
    await client.delete(store.seat_key("A1"))
    await store.acquire("s2", ["A1"], 600)

    assert await store.session_seats("s1") == ["A2"]
    assert await store.release("s1") == 1
    assert await store.holders(["A1"]) == {"A1": "s2"}
    await client.aclose()


@pytest.mark.asyncio
async def test_redis_outage_raises_store_unavailable():
    server = fakeredis.FakeServer()
    server.connected = False
    client = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
    store = RedisSeatLockStore(client)

    with pytest.raises(SeatStoreUnavailableError):
        await store.acquire("s1", ["A1"], 600)
    with pytest.raises(SeatStoreUnavailableError):
        await store.holders(["A1"])
    with pytest.raises(SeatStoreUnavailableError):
        await store.release("s1")
