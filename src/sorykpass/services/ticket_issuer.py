"""
Ticket Issuer

Expands a paid order into ticket records. Pure: it neither reads nor writes
the database; the orchestrator applies the plan inside its transaction.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import time

from sorykpass.models import Order, Ticket, TicketStatus
from sorykpass.services.identifiers import generate_qr_code


@dataclass(frozen=True)
class IssuableOrder:
    order_id: str
    event_id: str
    user_id: str
    quantity: int
    ticket_type_id: Optional[str] = None
    tickets_per_unit: int = 1
    seat_ids: Tuple[str, ...] = ()

    @property
    def is_seat_order(self) -> bool:
        return bool(self.seat_ids)

    @classmethod
    def from_order(cls, order: Order, tickets_per_unit: int = 1) -> "IssuableOrder":
        return cls(
            order_id=order.id,
            event_id=order.event_id,
            user_id=order.user_id,
            quantity=order.quantity,
            ticket_type_id=order.ticket_type_id,
            tickets_per_unit=tickets_per_unit,
            seat_ids=tuple(order.reserved_seat_ids),
        )


@dataclass(frozen=True)
class TicketDraft:
    qr_code: str
    order_id: str
    event_id: str
    user_id: str
    seat_id: Optional[str] = None
    ticket_type_id: Optional[str] = None

    def to_model(self) -> Ticket:
        return Ticket(
            qr_code=self.qr_code,
            status=TicketStatus.ACTIVE,
            is_used=False,
            order_id=self.order_id,
            event_id=self.event_id,
            user_id=self.user_id,
            seat_id=self.seat_id,
            ticket_type_id=self.ticket_type_id,
        )


@dataclass(frozen=True)
class IssuancePlan:
    tickets: List[TicketDraft] = field(default_factory=list)
    seats_to_mark_sold: List[str] = field(default_factory=list)
    capacity_consumed: int = 0


def plan_issuance(order: IssuableOrder, timestamp_ns: Optional[int] = None) -> IssuancePlan:
    """
    Seat orders get one ticket per seat, linked to it, and those seats must
    be marked SOLD. Ticket-type orders get quantity x tickets_per_unit
    unlinked tickets, which is also the capacity they consume.
    """
    if timestamp_ns is None:
        timestamp_ns = time.time_ns()

    if order.is_seat_order:
        tickets = [
            TicketDraft(
                qr_code=generate_qr_code(order.event_id, order.user_id, index, timestamp_ns),
                order_id=order.order_id,
                event_id=order.event_id,
                user_id=order.user_id,
                seat_id=seat_id,
                ticket_type_id=order.ticket_type_id,
            )
            for index, seat_id in enumerate(order.seat_ids)
        ]
        return IssuancePlan(
            tickets=tickets,
            seats_to_mark_sold=list(order.seat_ids),
            capacity_consumed=len(tickets),
        )

    count = order.quantity * max(order.tickets_per_unit, 1)
    tickets = [
        TicketDraft(
            qr_code=generate_qr_code(order.event_id, order.user_id, index, timestamp_ns),
            order_id=order.order_id,
            event_id=order.event_id,
            user_id=order.user_id,
            ticket_type_id=order.ticket_type_id,
        )
        for index in range(count)
    ]
    return IssuancePlan(tickets=tickets, capacity_consumed=count)
