"""Dependency providers wiring the checkout services together"""
from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import async_sessionmaker

from sorykpass.core.config import settings
from sorykpass.core.database import get_session_factory
from sorykpass.core.redis import redis_client
from sorykpass.services import (
    LoggingTicketNotifier,
    PaymentGateway,
    PaymentOrchestrator,
    RedisSeatLockStore,
    SeatLockStore,
    SeatReservationManager,
    SeatStoreUnavailableError,
    TicketNotifier,
    WebpayPlusGateway,
)

_gateway: Optional[PaymentGateway] = None
_notifier: TicketNotifier = LoggingTicketNotifier()


def get_seat_lock_store() -> SeatLockStore:
    if redis_client.redis is None:
        raise SeatStoreUnavailableError("Redis client is not initialised")
    return RedisSeatLockStore(redis_client.redis, key_prefix=settings.SEAT_LOCK_KEY_PREFIX)


def get_reservation_manager(
    store: SeatLockStore = Depends(get_seat_lock_store),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> SeatReservationManager:
    return SeatReservationManager(store, session_factory)


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = WebpayPlusGateway()
    return _gateway


async def close_payment_gateway():
    global _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None


def get_ticket_notifier() -> TicketNotifier:
    return _notifier


def get_orchestrator(
    reservations: SeatReservationManager = Depends(get_reservation_manager),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: TicketNotifier = Depends(get_ticket_notifier),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> PaymentOrchestrator:
    return PaymentOrchestrator(session_factory, reservations, gateway, notifier)


async def get_current_user_id(
    user_id: Optional[str] = Header(None, alias="X-User-Id", description="Authenticated buyer id"),
) -> Optional[str]:
    return user_id
