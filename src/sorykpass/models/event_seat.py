"""
EventSeat model

The seat lock store decides who may buy a seat; `status` here is the
durable projection written when a purchase commits.
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class SeatStatus(PyEnum):
    """Enum for seat status"""
    AVAILABLE = "AVAILABLE"
    SOLD = "SOLD"
    BLOCKED = "BLOCKED"


class EventSeat(Base):
    __tablename__ = "event_seats"
    __table_args__ = (
        UniqueConstraint('section_id', 'row', 'number', name='uq_event_seat_location'),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    section_id = Column(String(36), ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True)
    row = Column(String(10), nullable=False)
    number = Column(String(10), nullable=False)
    price = Column(Integer, nullable=True)  # NULL means the section price applies
    status = Column(Enum(SeatStatus), nullable=False, default=SeatStatus.AVAILABLE, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    section = relationship("Section", back_populates="seats")

    def __repr__(self):
        return (f"<EventSeat(id={self.id}, section_id={self.section_id}, "
                f"row='{self.row}', number='{self.number}', status='{self.status.value}')>")

    @property
    def effective_price(self) -> int:
        """Seat price, falling back to its section's price"""
        if self.price is not None:
            return self.price
        return self.section.price
