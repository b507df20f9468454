"""
Seat Reservation Manager

Session-scoped, TTL-bounded seat holds. The lock store is the only arbiter
of who may buy a seat; the database seat status is consulted so that seats
already sold (or blocked) can never be held again.
"""
from typing import Dict, List, Optional, Set
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from sorykpass.core.config import settings
from sorykpass.core.metrics import seat_reservations_total
from sorykpass.models import EventSeat, SeatStatus
from sorykpass.services.seat_lock_store import SeatLockStore

logger = logging.getLogger(__name__)


def _unique(seat_ids: List[str]) -> List[str]:
    return list(dict.fromkeys(seat_ids))


class SeatReservationManager:
    """Acquire, refresh, inspect and release seat holds for checkout sessions"""

    def __init__(
        self,
        store: SeatLockStore,
        session_factory: async_sessionmaker,
        ttl_seconds: Optional[int] = None,
    ):
        self.store = store
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds or settings.SEAT_LOCK_TTL_SECONDS

    async def _unsellable(self, seat_ids: List[str]) -> Set[str]:
        """Seats that are unknown, sold or blocked in the database"""
        async with self.session_factory() as db:
            result = await db.execute(
                select(EventSeat.id).where(
                    EventSeat.id.in_(seat_ids),
                    EventSeat.status == SeatStatus.AVAILABLE,
                )
            )
            sellable = set(result.scalars().all())
        return set(seat_ids) - sellable

    async def are_seats_available(self, seat_ids: List[str], session_id: Optional[str] = None) -> bool:
        """
        True iff no seat is sold and none has a live lock from another session.

        Without a session id every live lock counts as "another session".
        Read-only.
        """
        seat_ids = _unique(seat_ids)
        if not seat_ids:
            return True

        if await self._unsellable(seat_ids):
            return False

        holders = await self.store.holders(seat_ids)
        return all(holder == session_id for holder in holders.values())

    async def try_reserve(self, session_id: str, seat_ids: List[str]) -> List[str]:
        """
        Acquire or refresh holds on every seat for the session.

        Returns the seats that blocked the reservation. An empty list means
        every seat is now held by the session until now + TTL; otherwise
        nothing was acquired or refreshed.
        """
        seat_ids = _unique(seat_ids)
        if not seat_ids:
            return []

        # 1. Sold seats never get a lock
        unsellable = await self._unsellable(seat_ids)
        if unsellable:
            seat_reservations_total.labels(result="sold").inc()
            logger.info(
                f"❌ Seats not sellable: {sorted(unsellable)}",
                extra={"session_id": session_id},
            )
            return sorted(unsellable)

        # 2. Atomic all-or-nothing acquisition
        conflicts = await self.store.acquire(session_id, seat_ids, self.ttl_seconds)
        if conflicts:
            seat_reservations_total.labels(result="conflict").inc()
            logger.info(
                f"❌ Seats held by another session: {conflicts}",
                extra={"session_id": session_id},
            )
            return conflicts

        # 3. A concurrent purchase may have committed between steps 1 and 2
        sold_meanwhile = await self._unsellable(seat_ids)
        if sold_meanwhile:
            await self.store.release(session_id, seat_ids)
            seat_reservations_total.labels(result="sold").inc()
            logger.warning(
                f"⚠️ Seats sold while reserving, hold dropped: {sorted(sold_meanwhile)}",
                extra={"session_id": session_id},
            )
            return sorted(sold_meanwhile)

        seat_reservations_total.labels(result="acquired").inc()
        logger.info(
            f"🔒 Reserved {len(seat_ids)} seats for {self.ttl_seconds}s",
            extra={"session_id": session_id},
        )
        return []

    async def reserve_seats(self, session_id: str, seat_ids: List[str]) -> bool:
        """All-or-nothing reservation. False means "seat no longer available"."""
        if not _unique(seat_ids):
            return False
        return not await self.try_reserve(session_id, seat_ids)

    async def get_session_reservations(self, session_id: str) -> Optional[List[str]]:
        """Live seat ids held by the session, or None when it holds nothing"""
        seats = await self.store.session_seats(session_id)
        return seats or None

    async def get_reserved_seats(self, seat_ids: List[str]) -> Dict[str, str]:
        """Which of the given seats are held right now, and by which session"""
        return await self.store.holders(_unique(seat_ids))

    async def release_reservation(self, session_id: str) -> int:
        released = await self.store.release(session_id)
        if released:
            logger.info(f"🔓 Released {released} seats", extra={"session_id": session_id})
        return released

    async def release_seats(self, session_id: str, seat_ids: List[str]) -> int:
        seat_ids = _unique(seat_ids)
        if not seat_ids:
            return 0
        released = await self.store.release(session_id, seat_ids)
        if released:
            logger.info(f"🔓 Released {released} seats", extra={"session_id": session_id})
        return released

    async def purge_expired(self) -> int:
        return await self.store.purge_expired()
