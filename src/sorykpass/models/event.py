"""
Event model for ticketed events
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(500), nullable=False)
    location = Column(String(500))
    start_date = Column(DateTime)
    currency = Column(String(3), nullable=False, default="CLP")
    price = Column(Integer, nullable=False, default=0)  # General admission price
    capacity = Column(Integer, nullable=False, default=0)  # General admission capacity
    is_free = Column(Boolean, nullable=False, default=False)
    is_published = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    sections = relationship("Section", back_populates="event", cascade="all, delete-orphan")
    ticket_types = relationship("TicketType", back_populates="event", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="event")

    def __repr__(self):
        return f"<Event(id={self.id}, title='{self.title}', published={self.is_published})>"
