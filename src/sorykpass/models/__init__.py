"""
SQLAlchemy models for the SorykPass checkout service

Import all models here for easy access and to ensure proper relationship setup.
"""
from sorykpass.core.database import Base

from sorykpass.models.user import User
from sorykpass.models.event import Event
from sorykpass.models.section import Section
from sorykpass.models.event_seat import EventSeat, SeatStatus
from sorykpass.models.ticket_type import TicketType
from sorykpass.models.promo_code import PromoCode, PromoCodeStatus, PromoCodeType, PromoCodeUsage
from sorykpass.models.order import Order, OrderStatus
from sorykpass.models.payment import Payment, PaymentStatus
from sorykpass.models.ticket import Ticket, TicketStatus

__all__ = [
    "Base",
    "User",
    "Event",
    "Section",
    "EventSeat",
    "SeatStatus",
    "TicketType",
    "PromoCode",
    "PromoCodeStatus",
    "PromoCodeType",
    "PromoCodeUsage",
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "Ticket",
    "TicketStatus",
]
