"""
SeatReservationManager: holds combined with the seat map's sold state
"""
import pytest
from sqlalchemy import update

from sorykpass.models import EventSeat, SeatStatus
from sorykpass.services import SeatLockStore, SeatReservationManager


@pytest.mark.asyncio
async def test_reserve_conflict_release_retry(reservations, catalog):
    """
    s1 holds A1+A2, s2 cannot take A2+B1 (and B1 stays free), after s1
    releases, s2 gets A2.
    """
    assert await reservations.reserve_seats("s1", [catalog.a1, catalog.a2]) is True

    assert await reservations.reserve_seats("s2", [catalog.a2, catalog.b1]) is False
    assert await reservations.get_reserved_seats([catalog.b1]) == {}
    assert await reservations.are_seats_available([catalog.b1], session_id="s3") is True

    await reservations.release_reservation("s1")

    assert await reservations.reserve_seats("s2", [catalog.a2]) is True
    assert await reservations.get_session_reservations("s2") == [catalog.a2]


@pytest.mark.asyncio
async def test_availability_is_per_session(reservations, catalog):
    await reservations.reserve_seats("s1", [catalog.a1])

    assert await reservations.are_seats_available([catalog.a1], session_id="s1") is True
    assert await reservations.are_seats_available([catalog.a1], session_id="s2") is False
    assert await reservations.are_seats_available([catalog.a1]) is False
    assert await reservations.are_seats_available([]) is True


@pytest.mark.asyncio
async def test_sold_seat_cannot_be_reserved(reservations, catalog):
    assert await reservations.are_seats_available([catalog.c1]) is False
    assert await reservations.try_reserve("s1", [catalog.a1, catalog.c1]) == [catalog.c1]
    assert await reservations.get_session_reservations("s1") is None


@pytest.mark.asyncio
async def test_unknown_seat_cannot_be_reserved(reservations, catalog):
    assert await reservations.reserve_seats("s1", ["no-such-seat"]) is False


@pytest.mark.asyncio
async def test_empty_reservation_is_rejected(reservations):
    assert await reservations.reserve_seats("s1", []) is False


@pytest.mark.asyncio
async def test_hold_expires_after_ttl(reservations, clock, catalog):
    await reservations.reserve_seats("s1", [catalog.a1])

    clock.advance(reservations.ttl_seconds + 1)

    assert await reservations.get_session_reservations("s1") is None
    assert await reservations.reserve_seats("s2", [catalog.a1]) is True


@pytest.mark.asyncio
async def test_repeat_reservation_extends_hold(reservations, clock, catalog):
    await reservations.reserve_seats("s1", [catalog.a1])
    clock.advance(500)
    await reservations.reserve_seats("s1", [catalog.a1])
    clock.advance(500)

    assert await reservations.get_session_reservations("s1") == [catalog.a1]


@pytest.mark.asyncio
async def test_release_is_idempotent(reservations, catalog):
    await reservations.reserve_seats("s1", [catalog.a1, catalog.a2])

    assert await reservations.release_seats("s1", [catalog.a1]) == 1
    assert await reservations.release_seats("s1", [catalog.a1]) == 0
    assert await reservations.release_reservation("s1") == 1
    assert await reservations.release_reservation("s1") == 0
    assert await reservations.release_reservation("never-existed") == 0


class SellDuringAcquireStore(SeatLockStore):
    """Marks a seat SOLD in the database right after the lock is granted"""

    def __init__(self, inner, session_factory, seat_id):
        self.inner = inner
        self.session_factory = session_factory
        self.seat_id = seat_id

    async def acquire(self, session_id, seat_ids, ttl_seconds):
        conflicts = await self.inner.acquire(session_id, seat_ids, ttl_seconds)
        async with self.session_factory() as db, db.begin():
            await db.execute(
                update(EventSeat).where(EventSeat.id == self.seat_id).values(status=SeatStatus.SOLD)
            )
        return conflicts

    async def holders(self, seat_ids):
        return await self.inner.holders(seat_ids)

    async def session_seats(self, session_id):
        return await self.inner.session_seats(session_id)

    async def release(self, session_id, seat_ids=None):
        return await self.inner.release(session_id, seat_ids)


@pytest.mark.asyncio
async def test_seat_sold_while_acquiring_drops_the_hold(seat_store, session_factory, catalog):
    store = SellDuringAcquireStore(seat_store, session_factory, catalog.a2)
    manager = SeatReservationManager(store, session_factory, ttl_seconds=600)

    unavailable = await manager.try_reserve("s1", [catalog.a1, catalog.a2])

    assert unavailable == [catalog.a2]
    assert await seat_store.holders([catalog.a1, catalog.a2]) == {}
