"""
Payment model - one gateway transaction attempt for an order
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class PaymentStatus(PyEnum):
    """Enum for payment status"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    token = Column(String(255), nullable=False, unique=True, index=True)
    transaction_id = Column(String(61), nullable=False)  # Gateway session_id
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="CLP")
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    authorization_code = Column(String(50))
    response_code = Column(Integer)
    payment_type_code = Column(String(10))
    transaction_date = Column(DateTime)
    failure_reason = Column(String(50))  # set when a PENDING payment is failed locally
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    order = relationship("Order", back_populates="payments")

    def __repr__(self):
        return f"<Payment(id={self.id}, order_id={self.order_id}, status='{self.status.value}')>"
