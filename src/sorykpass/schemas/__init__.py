"""
Pydantic schemas for API request/response validation
"""
from sorykpass.schemas.checkout import (
    BuyerInfoSchema,
    CamelModel,
    CheckoutCreate,
    CheckoutResponse,
    ErrorResponse,
    PriceBreakdownResponse,
    SelectedSeat,
)
from sorykpass.schemas.reservation import (
    SeatReleaseRequest,
    SeatReleaseResponse,
    SeatReserveRequest,
    SeatReserveResponse,
    SeatUnavailableResponse,
    SessionReservationsResponse,
)
from sorykpass.schemas.ticket import TicketVerifyResponse

__all__ = [
    # Checkout
    "CamelModel",
    "BuyerInfoSchema",
    "SelectedSeat",
    "CheckoutCreate",
    "CheckoutResponse",
    "PriceBreakdownResponse",
    "ErrorResponse",
    # Seat holds
    "SeatReserveRequest",
    "SeatReserveResponse",
    "SeatUnavailableResponse",
    "SeatReleaseRequest",
    "SeatReleaseResponse",
    "SessionReservationsResponse",
    # Tickets
    "TicketVerifyResponse",
]
