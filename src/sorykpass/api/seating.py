"""Seat hold API endpoints"""
from datetime import datetime, timedelta
from typing import List
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import async_sessionmaker

from sorykpass.api.deps import get_reservation_manager
from sorykpass.core.database import get_session_factory
from sorykpass.middleware.rate_limiter import RESERVE_LIMIT, limiter
from sorykpass.models import EventSeat, Section
from sorykpass.schemas import (
    SeatReleaseRequest,
    SeatReleaseResponse,
    SeatReserveRequest,
    SeatReserveResponse,
    SeatUnavailableResponse,
    SessionReservationsResponse,
)
from sorykpass.services import SeatReservationManager

router = APIRouter()


async def _belong_to_event(session_factory: async_sessionmaker, event_id: str, seat_ids: List[str]) -> bool:
    async with session_factory() as db:
        found = await db.scalar(
            select(func.count(EventSeat.id))
            .join(Section, EventSeat.section_id == Section.id)
            .where(Section.event_id == event_id, EventSeat.id.in_(seat_ids))
        )
    return found == len(seat_ids)


@router.post(
    "/events/{event_id}/seating/reserve",
    response_model=SeatReserveResponse,
    responses={409: {"model": SeatUnavailableResponse}},
)
@limiter.limit(RESERVE_LIMIT)
async def reserve_seats(
    request: Request,
    event_id: str,
    payload: SeatReserveRequest,
    manager: SeatReservationManager = Depends(get_reservation_manager),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Hold seats for a checkout session (all or nothing).

    Calling again with the same session refreshes the hold. 409 lists the
    seats that are sold or held by someone else.
    """
    seat_ids = list(dict.fromkeys(payload.seat_ids))
    if not await _belong_to_event(session_factory, event_id, seat_ids):
        raise HTTPException(status_code=404, detail="One or more seats do not exist for this event")

    session_id = payload.session_id or str(uuid.uuid4())
    unavailable = await manager.try_reserve(session_id, seat_ids)
    if unavailable:
        body = SeatUnavailableResponse(
            error="One or more seats are no longer available",
            unavailable_seats=unavailable,
        )
        return JSONResponse(status_code=409, content=body.model_dump(by_alias=True))

    return SeatReserveResponse(
        session_id=session_id,
        seat_ids=seat_ids,
        expires_at=datetime.utcnow() + timedelta(seconds=manager.ttl_seconds),
        ttl_seconds=manager.ttl_seconds,
    )


@router.post("/events/{event_id}/seating/release", response_model=SeatReleaseResponse)
async def release_seats(
    event_id: str,
    payload: SeatReleaseRequest,
    manager: SeatReservationManager = Depends(get_reservation_manager),
):
    """Drop a session's holds. Releasing seats that are no longer held is a no-op."""
    if payload.seat_ids is None:
        released = await manager.release_reservation(payload.session_id)
    else:
        released = await manager.release_seats(payload.session_id, payload.seat_ids)
    return SeatReleaseResponse(released=released)


@router.get(
    "/events/{event_id}/seating/reservations/{session_id}",
    response_model=SessionReservationsResponse,
)
async def get_session_reservations(
    event_id: str,
    session_id: str,
    manager: SeatReservationManager = Depends(get_reservation_manager),
):
    seat_ids = await manager.get_session_reservations(session_id)
    return SessionReservationsResponse(
        session_id=session_id,
        seat_ids=seat_ids or [],
        active=bool(seat_ids),
    )
