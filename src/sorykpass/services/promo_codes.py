"""
Promo code validation and usage accounting
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from sorykpass.models import PromoCode, PromoCodeStatus, PromoCodeUsage
from sorykpass.services.pricing import calculate_discount
from sorykpass.services.result import FailureReason, Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromoDiscount:
    promo_code_id: str
    code: str
    discount_amount: int


def _invalid(message: str) -> Result[PromoDiscount]:
    return Result.fail(FailureReason.INVALID_PROMO_CODE, message)


class PromoCodeService:
    """Promo code rules, evaluated inside the caller's session"""

    @staticmethod
    async def validate(
        db: AsyncSession,
        code: str,
        user_id: Optional[str],
        event_id: str,
        base_amount: int,
        quantity: int = 1,
        ticket_type_id: Optional[str] = None,
        unit_price: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Result[PromoDiscount]:
        """
        Check a code against an order and compute its discount.

        With `unit_price` (ticket-type flow) the discount is computed per unit
        and multiplied by `quantity`, so fixed amounts and percentage caps
        apply to each ticket. Without it the discount applies to the whole
        base amount (seat flow). The result is always clamped to the base.
        """
        now = now or datetime.utcnow()
        normalized = (code or "").strip().upper()
        if not normalized:
            return _invalid("Promo code is empty")

        result = await db.execute(select(PromoCode).where(PromoCode.code == normalized))
        promo = result.scalar_one_or_none()

        if not promo:
            return _invalid("Promo code not found")

        if promo.status != PromoCodeStatus.ACTIVE:
            return _invalid("Promo code is not active")

        if promo.valid_from and promo.valid_from > now:
            return _invalid("Promo code is not valid yet")

        if promo.valid_until and promo.valid_until < now:
            return _invalid("Promo code has expired")

        if promo.usage_limit and promo.used_count >= promo.usage_limit:
            return _invalid("Promo code usage limit reached")

        if promo.usage_limit_per_user and user_id:
            used_by_user = await db.scalar(
                select(func.count(PromoCodeUsage.id)).where(
                    PromoCodeUsage.promo_code_id == promo.id,
                    PromoCodeUsage.user_id == user_id,
                )
            )
            if used_by_user >= promo.usage_limit_per_user:
                return _invalid("You have reached the usage limit for this promo code")

        if promo.event_id and promo.event_id != event_id:
            return _invalid("Promo code is not valid for this event")

        if promo.ticket_type_id and promo.ticket_type_id != ticket_type_id:
            return _invalid("Promo code is not valid for this ticket type")

        if promo.min_order_amount and base_amount < promo.min_order_amount:
            return _invalid(f"Minimum order amount is {promo.min_order_amount}")

        if unit_price is not None:
            per_unit = calculate_discount(unit_price, promo.type, promo.value, promo.max_discount_amount)
            discount = per_unit * quantity
        else:
            discount = calculate_discount(base_amount, promo.type, promo.value, promo.max_discount_amount)

        discount = max(0, min(discount, base_amount))
        logger.info(f"🏷️ Promo code {promo.code} accepted: -{discount}", extra={"event_id": event_id})
        return Result.ok(PromoDiscount(promo_code_id=promo.id, code=promo.code, discount_amount=discount))

    @staticmethod
    async def record_usage(
        db: AsyncSession,
        promo_code_id: str,
        user_id: str,
        order_id: str,
        discount_amount: int,
        original_amount: int,
        final_amount: int,
    ) -> PromoCodeUsage:
        """Record one use of a code. Runs inside the caller's transaction."""
        usage = PromoCodeUsage(
            promo_code_id=promo_code_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
            original_amount=original_amount,
            final_amount=final_amount,
        )
        db.add(usage)
        await db.execute(
            update(PromoCode)
            .where(PromoCode.id == promo_code_id)
            .values(used_count=PromoCode.used_count + 1)
        )
        return usage
