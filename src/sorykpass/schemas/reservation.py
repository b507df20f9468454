"""Pydantic schemas for seat holds"""
from datetime import datetime
from typing import List, Optional
from pydantic import Field

from sorykpass.schemas.checkout import CamelModel


class SeatReserveRequest(CamelModel):
    session_id: Optional[str] = Field(None, max_length=100)  # a new session is started when omitted
    seat_ids: List[str] = Field(..., min_length=1, max_length=10)


class SeatReserveResponse(CamelModel):
    success: bool = True
    session_id: str
    seat_ids: List[str]
    expires_at: datetime
    ttl_seconds: int


class SeatUnavailableResponse(CamelModel):
    success: bool = False
    error: str
    unavailable_seats: List[str]


class SeatReleaseRequest(CamelModel):
    session_id: str = Field(..., max_length=100)
    seat_ids: Optional[List[str]] = None  # None releases everything the session holds


class SeatReleaseResponse(CamelModel):
    success: bool = True
    released: int


class SessionReservationsResponse(CamelModel):
    session_id: str
    seat_ids: List[str] = Field(default_factory=list)
    active: bool = False
