"""Pydantic schemas for checkout resources"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from sorykpass.services.orchestrator import BuyerInfo, CheckoutOutcome, CheckoutRequest

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BuyerInfoSchema(CamelModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class SelectedSeat(CamelModel):
    """Seat as the seat map shows it. Any price sent here is ignored."""
    id: str
    price: Optional[int] = None


class CheckoutCreate(CamelModel):
    session_id: Optional[str] = Field(None, max_length=100)
    seat_ids: List[str] = Field(default_factory=list, max_length=50)
    selected_seats: List[SelectedSeat] = Field(default_factory=list, max_length=50)
    event_id: Optional[str] = None
    ticket_type_id: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1, le=10)
    buyer_info: Optional[BuyerInfoSchema] = None
    promo_code: Optional[str] = Field(None, max_length=50)

    @model_validator(mode="after")
    def seats_from_selection(self):
        if not self.seat_ids and self.selected_seats:
            self.seat_ids = [seat.id for seat in self.selected_seats]
        return self

    def to_request(self, user_id: Optional[str] = None) -> CheckoutRequest:
        buyer = None
        if self.buyer_info:
            buyer = BuyerInfo(
                email=self.buyer_info.email,
                first_name=self.buyer_info.first_name,
                last_name=self.buyer_info.last_name,
                phone=self.buyer_info.phone,
            )
        return CheckoutRequest(
            session_id=self.session_id,
            seat_ids=tuple(self.seat_ids),
            event_id=self.event_id,
            ticket_type_id=self.ticket_type_id,
            quantity=self.quantity,
            buyer=buyer,
            user_id=None if buyer else user_id,
            promo_code=self.promo_code,
        )


class PriceBreakdownResponse(CamelModel):
    original_amount: int
    discount_amount: int
    base_amount: int
    commission_amount: int
    total_amount: int
    currency: str


class CheckoutResponse(CamelModel):
    success: bool = True
    order_id: str
    order_number: str
    payment_url: Optional[str] = None
    token: Optional[str] = None
    is_free: bool = False
    tickets_generated: Optional[int] = None
    breakdown: PriceBreakdownResponse

    @classmethod
    def from_outcome(cls, outcome: CheckoutOutcome):
        price = outcome.price
        return cls(
            order_id=outcome.order_id,
            order_number=outcome.order_number,
            payment_url=outcome.payment_url,
            token=outcome.token,
            is_free=outcome.is_free,
            tickets_generated=outcome.tickets_generated if outcome.is_free else None,
            breakdown=PriceBreakdownResponse(
                original_amount=price.original_amount,
                discount_amount=price.discount_amount,
                base_amount=price.base_amount,
                commission_amount=price.commission_amount,
                total_amount=price.total_amount,
                currency=price.currency,
            ),
        )


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    reason: Optional[str] = None
