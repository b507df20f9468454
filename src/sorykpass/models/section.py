"""
Section model - a priced area of a venue seating map
"""
import uuid
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class Section(Base):
    __tablename__ = "sections"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Integer, nullable=False, default=0)
    color = Column(String(20))

    # Relationships
    event = relationship("Event", back_populates="sections")
    seats = relationship("EventSeat", back_populates="section", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Section(id={self.id}, name='{self.name}', price={self.price})>"
