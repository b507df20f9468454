"""Pydantic schemas for ticket verification"""
from datetime import datetime
from typing import Optional

from sorykpass.models import TicketStatus
from sorykpass.schemas.checkout import CamelModel


class TicketVerifyResponse(CamelModel):
    qr_code: str
    valid: bool
    status: TicketStatus
    is_used: bool
    used_at: Optional[datetime] = None
    event_id: str
    order_id: str
    seat_id: Optional[str] = None
    ticket_type_id: Optional[str] = None

    @classmethod
    def from_ticket(cls, ticket):
        """Convert Ticket ORM model to response"""
        return cls(
            qr_code=ticket.qr_code,
            valid=ticket.is_valid,
            status=ticket.status,
            is_used=ticket.is_used,
            used_at=ticket.used_at,
            event_id=ticket.event_id,
            order_id=ticket.order_id,
            seat_id=ticket.seat_id,
            ticket_type_id=ticket.ticket_type_id,
        )
