"""
Price computation

Order of operations: base amount -> promo discount (clamped to the base)
-> service commission on the discounted base. Amounts are whole CLP.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sorykpass.core.config import settings
from sorykpass.models import PromoCodeType


@dataclass(frozen=True)
class PriceBreakdown:
    original_amount: int  # before discount
    discount_amount: int
    base_amount: int  # after discount, before commission
    commission_amount: int
    total_amount: int
    currency: str

    @property
    def is_free(self) -> bool:
        return self.total_amount == 0


def round_amount(value) -> int:
    """Round half-up to a whole currency unit"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_commission(base_amount: int, rate: Optional[float] = None) -> int:
    if base_amount <= 0:
        return 0
    if rate is None:
        rate = settings.COMMISSION_RATE
    return round_amount(Decimal(base_amount) * Decimal(str(rate)))


def calculate_discount(
    amount: int,
    promo_type: PromoCodeType,
    value: float,
    max_discount_amount: Optional[int] = None,
) -> int:
    """Discount for `amount`, never negative and never more than `amount`"""
    if amount <= 0:
        return 0

    if promo_type == PromoCodeType.PERCENTAGE:
        discount = Decimal(amount) * Decimal(str(value)) / Decimal(100)
        if max_discount_amount:
            discount = min(discount, Decimal(max_discount_amount))
    elif promo_type == PromoCodeType.FIXED_AMOUNT:
        discount = Decimal(str(value))
    elif promo_type == PromoCodeType.FREE:
        discount = Decimal(amount)
    else:
        discount = Decimal(0)

    return max(0, min(round_amount(discount), amount))


def calculate_price_breakdown(
    original_amount: int,
    discount_amount: int = 0,
    currency: Optional[str] = None,
    rate: Optional[float] = None,
) -> PriceBreakdown:
    discount_amount = max(0, min(discount_amount, original_amount))
    base_amount = original_amount - discount_amount
    commission = calculate_commission(base_amount, rate)
    return PriceBreakdown(
        original_amount=original_amount,
        discount_amount=discount_amount,
        base_amount=base_amount,
        commission_amount=commission,
        total_amount=base_amount + commission,
        currency=currency or settings.DEFAULT_CURRENCY,
    )
