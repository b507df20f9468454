"""
Seat lock stores

A seat lock is a short-lived claim of one seat by one checkout session.
Stores must make multi-seat acquisition all-or-nothing: either every seat
in the batch ends up held by the session, or nothing is written.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional
import logging
import time

import redis.asyncio as redis
from redis.exceptions import RedisError

from sorykpass.services.errors import SeatStoreUnavailableError

logger = logging.getLogger(__name__)


class SeatLockStore(ABC):
    """Interface for seat lock persistence"""

    @abstractmethod
    async def acquire(self, session_id: str, seat_ids: List[str], ttl_seconds: int) -> List[str]:
        """
        Lock (or refresh) every seat for the session.

        Returns the seats held by other sessions. A non-empty result means
        nothing was written.
        """
        ...

    @abstractmethod
    async def holders(self, seat_ids: List[str]) -> Dict[str, str]:
        """Return {seat_id: session_id} for the seats that have a live lock."""
        ...

    @abstractmethod
    async def session_seats(self, session_id: str) -> List[str]:
        """Return the seats the session currently holds."""
        ...

    @abstractmethod
    async def release(self, session_id: str, seat_ids: Optional[List[str]] = None) -> int:
        """
        Drop the session's locks on the given seats (all of them if None).

        Locks owned by other sessions are left alone. Returns how many locks
        were removed.
        """
        ...

    async def purge_expired(self) -> int:
        """Drop expired entries. Only needed by stores without native TTL."""
        return 0


# KEYS[1] = session index, KEYS[2..] = seat lock keys
# ARGV[1] = session id, ARGV[2] = ttl in ms, ARGV[3..] = seat ids (aligned with KEYS[2..])
ACQUIRE_SCRIPT = """
local conflicts = {}
for i = 2, #KEYS do
    local holder = redis.call('GET', KEYS[i])
    if holder and holder ~= ARGV[1] then
        table.insert(conflicts, ARGV[i + 1])
    end
end
if #conflicts > 0 then
    return conflicts
end
for i = 2, #KEYS do
    redis.call('SET', KEYS[i], ARGV[1], 'PX', ARGV[2])
    redis.call('SADD', KEYS[1], ARGV[i + 1])
end
redis.call('PEXPIRE', KEYS[1], ARGV[2])
return {}
"""

# KEYS[1] = session index, KEYS[2..] = seat lock keys
# ARGV[1] = session id, ARGV[2..] = seat ids (aligned with KEYS[2..])
RELEASE_SCRIPT = """
local released = 0
for i = 2, #KEYS do
    if redis.call('GET', KEYS[i]) == ARGV[1] then
        redis.call('DEL', KEYS[i])
        released = released + 1
    end
    redis.call('SREM', KEYS[1], ARGV[i])
end
if redis.call('SCARD', KEYS[1]) == 0 then
    redis.call('DEL', KEYS[1])
end
return released
"""


def _text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisSeatLockStore(SeatLockStore):
    """
    Redis-backed seat locks

    Layout:
        {prefix}:{seat_id}             -> session id, with PX expiry
        {prefix}:session:{session_id}  -> SET of seat ids the session has claimed

    The session index may list seats whose lock already expired or was taken
    over after expiry, so reads always confirm ownership against the seat key.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "seatlock"):
        self.redis = client
        self.key_prefix = key_prefix
        self._acquire = client.register_script(ACQUIRE_SCRIPT)
        self._release = client.register_script(RELEASE_SCRIPT)

    def seat_key(self, seat_id: str) -> str:
        return f"{self.key_prefix}:{seat_id}"

    def session_key(self, session_id: str) -> str:
        return f"{self.key_prefix}:session:{session_id}"

    async def acquire(self, session_id: str, seat_ids: List[str], ttl_seconds: int) -> List[str]:
        if not seat_ids:
            return []
        keys = [self.session_key(session_id)] + [self.seat_key(s) for s in seat_ids]
        args = [session_id, int(ttl_seconds * 1000)] + list(seat_ids)
        try:
            conflicts = await self._acquire(keys=keys, args=args)
        except RedisError as e:
            raise SeatStoreUnavailableError(f"Seat lock store unavailable: {e}") from e
        return [_text(c) for c in conflicts or []]

    async def holders(self, seat_ids: List[str]) -> Dict[str, str]:
        if not seat_ids:
            return {}
        try:
            values = await self.redis.mget([self.seat_key(s) for s in seat_ids])
        except RedisError as e:
            raise SeatStoreUnavailableError(f"Seat lock store unavailable: {e}") from e
        return {
            seat_id: _text(holder)
            for seat_id, holder in zip(seat_ids, values)
            if holder is not None
        }

    async def session_seats(self, session_id: str) -> List[str]:
        try:
            members = await self.redis.smembers(self.session_key(session_id))
        except RedisError as e:
            raise SeatStoreUnavailableError(f"Seat lock store unavailable: {e}") from e
        seat_ids = sorted(_text(m) for m in members)
        held = await self.holders(seat_ids)
        return [s for s in seat_ids if held.get(s) == session_id]

    async def release(self, session_id: str, seat_ids: Optional[List[str]] = None) -> int:
        try:
            if seat_ids is None:
                members = await self.redis.smembers(self.session_key(session_id))
                seat_ids = sorted(_text(m) for m in members)
            if not seat_ids:
                return 0
            keys = [self.session_key(session_id)] + [self.seat_key(s) for s in seat_ids]
            args = [session_id] + list(seat_ids)
            released = await self._release(keys=keys, args=args)
        except RedisError as e:
            raise SeatStoreUnavailableError(f"Seat lock store unavailable: {e}") from e
        return int(released)


@dataclass
class _HeldSeat:
    session_id: str
    expires_at: float


class InMemorySeatLockStore(SeatLockStore):
    """
    Process-local seat locks for development and tests

    Expired entries are evicted lazily on access. None of the methods await
    between reading and writing, so each call is atomic on the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._seats: Dict[str, _HeldSeat] = {}

    def _live(self, seat_id: str) -> Optional[_HeldSeat]:
        held = self._seats.get(seat_id)
        if held is None:
            return None
        if held.expires_at <= self._clock():
            del self._seats[seat_id]
            return None
        return held

    async def acquire(self, session_id: str, seat_ids: List[str], ttl_seconds: int) -> List[str]:
        conflicts = []
        for seat_id in seat_ids:
            held = self._live(seat_id)
            if held is not None and held.session_id != session_id:
                conflicts.append(seat_id)
        if conflicts:
            return conflicts

        expires_at = self._clock() + ttl_seconds
        for seat_id in seat_ids:
            self._seats[seat_id] = _HeldSeat(session_id=session_id, expires_at=expires_at)
        return []

    async def holders(self, seat_ids: List[str]) -> Dict[str, str]:
        result = {}
        for seat_id in seat_ids:
            held = self._live(seat_id)
            if held is not None:
                result[seat_id] = held.session_id
        return result

    async def session_seats(self, session_id: str) -> List[str]:
        return sorted(
            seat_id for seat_id in list(self._seats)
            if (held := self._live(seat_id)) is not None and held.session_id == session_id
        )

    async def release(self, session_id: str, seat_ids: Optional[Iterable[str]] = None) -> int:
        if seat_ids is None:
            seat_ids = [s for s, held in self._seats.items() if held.session_id == session_id]
        released = 0
        for seat_id in list(seat_ids):
            held = self._live(seat_id)
            if held is not None and held.session_id == session_id:
                del self._seats[seat_id]
                released += 1
        return released

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [s for s, held in self._seats.items() if held.expires_at <= now]
        for seat_id in expired:
            del self._seats[seat_id]
        if expired:
            logger.info(f"🧹 Purged {len(expired)} expired seat locks")
        return len(expired)
