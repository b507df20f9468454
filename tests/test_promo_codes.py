"""
Promo code validation rules and usage accounting
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, update

from sorykpass.models import Order, PromoCode, PromoCodeStatus, PromoCodeUsage
from sorykpass.services import FailureReason
from sorykpass.services.promo_codes import PromoCodeService


async def _validate(session_factory, catalog, code, **overrides):
    params = dict(
        user_id=catalog.buyer_id,
        event_id=catalog.event_id,
        base_amount=10000,
        quantity=1,
    )
    params.update(overrides)
    async with session_factory() as db:
        return await PromoCodeService.validate(db, code, **params)


@pytest.mark.asyncio
async def test_codes_are_case_insensitive(session_factory, catalog):
    result = await _validate(session_factory, catalog, " fixed1000 ")

    assert result.is_ok
    assert result.value.code == "FIXED1000"
    assert result.value.discount_amount == 1000


@pytest.mark.asyncio
async def test_unknown_code_is_rejected(session_factory, catalog):
    result = await _validate(session_factory, catalog, "NOPE")

    assert not result.is_ok
    assert result.failure == FailureReason.INVALID_PROMO_CODE


@pytest.mark.asyncio
async def test_expired_code_is_rejected(session_factory, catalog):
    result = await _validate(session_factory, catalog, "EXPIRED")
    assert result.failure == FailureReason.INVALID_PROMO_CODE
    assert "expired" in result.message


@pytest.mark.asyncio
async def test_inactive_code_is_rejected(session_factory, catalog):
    async with session_factory() as db, db.begin():
        await db.execute(
            update(PromoCode).where(PromoCode.code == "HALF").values(status=PromoCodeStatus.INACTIVE)
        )

    result = await _validate(session_factory, catalog, "HALF")
    assert result.failure == FailureReason.INVALID_PROMO_CODE


@pytest.mark.asyncio
async def test_not_yet_valid_code_is_rejected(session_factory, catalog):
    async with session_factory() as db, db.begin():
        await db.execute(
            update(PromoCode)
            .where(PromoCode.code == "HALF")
            .values(valid_from=datetime.utcnow() + timedelta(days=1))
        )

    result = await _validate(session_factory, catalog, "HALF")
    assert result.failure == FailureReason.INVALID_PROMO_CODE


@pytest.mark.asyncio
async def test_code_scoped_to_other_event_is_rejected(session_factory, catalog):
    result = await _validate(session_factory, catalog, "FESTIVAL")
    assert result.failure == FailureReason.INVALID_PROMO_CODE

    result = await _validate(session_factory, catalog, "FESTIVAL", event_id=catalog.other_event_id)
    assert result.is_ok


@pytest.mark.asyncio
async def test_minimum_order_amount(session_factory, catalog):
    async with session_factory() as db, db.begin():
        await db.execute(
            update(PromoCode).where(PromoCode.code == "FIXED1000").values(min_order_amount=20000)
        )

    assert not (await _validate(session_factory, catalog, "FIXED1000")).is_ok
    assert (await _validate(session_factory, catalog, "FIXED1000", base_amount=20000)).is_ok


@pytest.mark.asyncio
async def test_fixed_amount_applies_per_unit_with_unit_price(session_factory, catalog):
    per_unit = await _validate(
        session_factory, catalog, "FIXED1000", base_amount=15000, quantity=3, unit_price=5000
    )
    whole_order = await _validate(session_factory, catalog, "FIXED1000", base_amount=15000, quantity=3)

    assert per_unit.value.discount_amount == 3000
    assert whole_order.value.discount_amount == 1000


@pytest.mark.asyncio
async def test_global_usage_limit(session_factory, catalog):
    async with session_factory() as db, db.begin():
        await db.execute(
            update(PromoCode).where(PromoCode.code == "HALF").values(usage_limit=2, used_count=2)
        )

    result = await _validate(session_factory, catalog, "HALF")
    assert result.failure == FailureReason.INVALID_PROMO_CODE


@pytest.mark.asyncio
async def test_per_user_limit_counts_recorded_usage(session_factory, catalog):
    first = await _validate(session_factory, catalog, "ONCE")
    assert first.is_ok

    # 1. Record one paid use for this buyer
    async with session_factory() as db, db.begin():
        order = Order(
            order_number="SP-ONCE-1",
            total_amount=9500,
            quantity=1,
            user_id=catalog.buyer_id,
            event_id=catalog.event_id,
        )
        db.add(order)
        await db.flush()
        await PromoCodeService.record_usage(
            db,
            promo_code_id=first.value.promo_code_id,
            user_id=catalog.buyer_id,
            order_id=order.id,
            discount_amount=500,
            original_amount=10000,
            final_amount=9500,
        )

    # 2. Second use by the same buyer is refused
    second = await _validate(session_factory, catalog, "ONCE")
    assert second.failure == FailureReason.INVALID_PROMO_CODE

    async with session_factory() as db:
        promo = (await db.execute(select(PromoCode).where(PromoCode.code == "ONCE"))).scalar_one()
        usages = (await db.execute(select(PromoCodeUsage))).scalars().all()
    assert promo.used_count == 1
    assert len(usages) == 1
