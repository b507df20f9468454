"""
Promo code models - discounts applied at checkout
"""
import uuid
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Float
from sqlalchemy.orm import relationship

from sorykpass.core.database import Base


class PromoCodeType(PyEnum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    FREE = "FREE"


class PromoCodeStatus(PyEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = Column(String(50), nullable=False, unique=True, index=True)  # Stored upper-case
    name = Column(String(200))
    type = Column(Enum(PromoCodeType), nullable=False)
    value = Column(Float, nullable=False, default=0)  # Percent or amount, depending on type
    max_discount_amount = Column(Integer, nullable=True)
    min_order_amount = Column(Integer, nullable=True)
    status = Column(Enum(PromoCodeStatus), nullable=False, default=PromoCodeStatus.ACTIVE)
    valid_from = Column(DateTime, default=datetime.utcnow, nullable=False)
    valid_until = Column(DateTime, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_limit_per_user = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True)
    ticket_type_id = Column(String(36), ForeignKey("ticket_types.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    usages = relationship("PromoCodeUsage", back_populates="promo_code")

    def __repr__(self):
        return f"<PromoCode(code='{self.code}', type='{self.type.value}', value={self.value})>"


class PromoCodeUsage(Base):
    __tablename__ = "promo_code_usages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    promo_code_id = Column(String(36), ForeignKey("promo_codes.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, unique=True)
    discount_amount = Column(Integer, nullable=False)
    original_amount = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    promo_code = relationship("PromoCode", back_populates="usages")
