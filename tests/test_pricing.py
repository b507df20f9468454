"""
Price computation: discount first, commission on the discounted base
"""
import pytest

from sorykpass.models import PromoCodeType
from sorykpass.services.pricing import (
    calculate_commission,
    calculate_discount,
    calculate_price_breakdown,
    round_amount,
)


def test_commission_is_charged_on_discounted_base():
    price = calculate_price_breakdown(5000, discount_amount=1000, rate=0.06)

    assert price.base_amount == 4000
    assert price.commission_amount == 240
    assert price.total_amount == 4240
    assert price.original_amount == 5000
    assert price.discount_amount == 1000


def test_default_rate_is_six_percent():
    price = calculate_price_breakdown(20000)

    assert price.commission_amount == 1200
    assert price.total_amount == 21200
    assert price.currency == "CLP"


def test_zero_base_has_no_commission():
    price = calculate_price_breakdown(0)
    assert price.total_amount == 0
    assert price.is_free

    assert calculate_commission(0) == 0


def test_discount_is_clamped_to_base():
    price = calculate_price_breakdown(3000, discount_amount=5000)

    assert price.discount_amount == 3000
    assert price.total_amount == 0
    assert price.is_free


@pytest.mark.parametrize("amount,expected", [(2.5, 3), (2.4999, 2), (1450.5, 1451), (0, 0)])
def test_rounding_is_half_up(amount, expected):
    assert round_amount(amount) == expected


def test_commission_rounds_half_up():
    # 25 * 0.06 = 1.5
    assert calculate_commission(25, rate=0.06) == 2


def test_percentage_discount_respects_cap():
    assert calculate_discount(10000, PromoCodeType.PERCENTAGE, 50) == 5000
    assert calculate_discount(10000, PromoCodeType.PERCENTAGE, 50, max_discount_amount=3000) == 3000


def test_fixed_discount_never_exceeds_amount():
    assert calculate_discount(5000, PromoCodeType.FIXED_AMOUNT, 1000) == 1000
    assert calculate_discount(800, PromoCodeType.FIXED_AMOUNT, 1000) == 800


def test_free_discount_covers_everything():
    assert calculate_discount(12345, PromoCodeType.FREE, 0) == 12345
