"""
TicketType model - general admission categories
"""
import uuid
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class TicketType(Base):
    __tablename__ = "ticket_types"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=False)  # Counted in tickets, not purchased units
    tickets_generated = Column(Integer, nullable=False, default=1)  # Tickets per purchased unit

    # Relationships
    event = relationship("Event", back_populates="ticket_types")

    def __repr__(self):
        return f"<TicketType(id={self.id}, name='{self.name}', price={self.price})>"
