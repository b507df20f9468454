"""
Order model - a purchase intent, settled by the payment callback
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum
from typing import List
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class OrderStatus(PyEnum):
    """Enum for order status"""
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(26), nullable=False, unique=True, index=True)  # Webpay buy_order
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)
    base_amount = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    commission_amount = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="CLP")
    quantity = Column(Integer, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    ticket_type_id = Column(String(36), ForeignKey("ticket_types.id"), nullable=True)
    promo_code_id = Column(String(36), ForeignKey("promo_codes.id"), nullable=True)
    # {"session_id": ..., "seat_ids": [...]} for seat checkouts, read back by the payment return
    reservation = Column(JSON, nullable=True)
    payment_intent_id = Column(String(255), nullable=True)  # Gateway buy_order once paid
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="orders")
    event = relationship("Event", back_populates="orders")
    ticket_type = relationship("TicketType")
    payments = relationship("Payment", back_populates="order")
    tickets = relationship("Ticket", back_populates="order")

    def __repr__(self):
        return (f"<Order(id={self.id}, number='{self.order_number}', "
                f"status='{self.status.value}', total={self.total_amount})>")

    @property
    def reserved_seat_ids(self) -> List[str]:
        if not self.reservation:
            return []
        return list(self.reservation.get("seat_ids") or [])
