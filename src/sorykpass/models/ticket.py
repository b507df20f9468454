"""
Ticket model - proof of entitlement to attend
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Enum
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class TicketStatus(PyEnum):
    """Enum for ticket status"""
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    qr_code = Column(String(120), nullable=False, unique=True, index=True)
    status = Column(Enum(TicketStatus), nullable=False, default=TicketStatus.ACTIVE)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime, nullable=True)
    seat_id = Column(String(36), ForeignKey("event_seats.id"), nullable=True, index=True)
    ticket_type_id = Column(String(36), ForeignKey("ticket_types.id"), nullable=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    order = relationship("Order", back_populates="tickets")
    user = relationship("User", back_populates="tickets")
    seat = relationship("EventSeat")

    def __repr__(self):
        return f"<Ticket(id={self.id}, qr='{self.qr_code}', status='{self.status.value}')>"

    @property
    def is_valid(self) -> bool:
        return self.status == TicketStatus.ACTIVE and not self.is_used
