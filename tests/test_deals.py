import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from storefront.deals import (
    applies_to_cart,
    applies_to_product,
    apply_discount,
    by_uses_left,
    calculate_discount,
    deal_status,
    eligible_deals,
    is_eligible,
    uses_left,
)
from storefront.domain import Deal, DealStatus, DiscountType

START = datetime(2025, 9, 1)
END = datetime(2025, 9, 30, 23, 59, 59)


def make_deal(**overrides) -> Deal:
    data = dict(
        id="d1",
        title="Autumn Sale",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("25"),
        start_date=START,
        end_date=END,
        min_order_amount=Decimal("50"),
    )
    data.update(overrides)
    return Deal(**data)


# ============ Статус ============


@pytest.mark.parametrize(
    "now,expected",
    [
        (START - timedelta(seconds=1), DealStatus.SCHEDULED),
        (START, DealStatus.ACTIVE),
        (datetime(2025, 9, 15), DealStatus.ACTIVE),
        (END, DealStatus.ACTIVE),
        (END + timedelta(seconds=1), DealStatus.EXPIRED),
    ],
)
def test_status_follows_date_window(now, expected):
    """Границы окна действия включительные"""
    assert deal_status(make_deal(), now) == expected


def test_inactive_deal_is_always_inactive():
    deal = make_deal(is_active=False)
    for now in (START - timedelta(days=1), START, END + timedelta(days=1)):
        assert deal_status(deal, now) == DealStatus.INACTIVE


def test_used_up_inside_window():
    deal = make_deal(max_uses=2, current_uses=2)
    assert deal_status(deal, datetime(2025, 9, 10)) == DealStatus.USED_UP
    assert uses_left(deal) == 0
    assert not by_uses_left()(deal)


def test_expired_wins_over_used_up():
    deal = make_deal(max_uses=1, current_uses=1)
    assert deal_status(deal, END + timedelta(days=1)) == DealStatus.EXPIRED


def test_unlimited_deal_never_used_up():
    deal = make_deal(max_uses=None, current_uses=10_000)
    assert uses_left(deal) is None
    assert deal_status(deal, START) == DealStatus.ACTIVE


# ============ Инварианты ============


@pytest.mark.parametrize(
    "overrides",
    [
        {"start_date": END, "end_date": START},
        {"discount_value": Decimal("-1")},
        {"current_uses": -1},
        {"max_uses": 3, "current_uses": 4},
    ],
)
def test_invalid_deal_is_rejected(overrides):
    with pytest.raises(ValueError):
        make_deal(**overrides)


# ============ Применимость ============


def test_min_order_amount_is_inclusive():
    now = datetime(2025, 9, 10)
    deal = make_deal()
    assert is_eligible(deal, "50.00", now)
    assert not is_eligible(deal, "49.99", now)


def test_eligible_deals_filters_status_and_minimum():
    now = datetime(2025, 9, 10)
    deals = (
        make_deal(id="ok"),
        make_deal(id="small", min_order_amount=Decimal("500")),
        make_deal(id="off", is_active=False),
        make_deal(id="spent", max_uses=1, current_uses=1),
        make_deal(
            id="future",
            start_date=datetime(2025, 10, 1),
            end_date=datetime(2025, 10, 31),
        ),
    )
    assert [d.id for d in eligible_deals(deals, 100, now)] == ["ok"]


def test_applies_to_product_lists():
    everything = make_deal(excluded_products=frozenset({"p3"}))
    assert applies_to_product(everything, "p1")
    assert not applies_to_product(everything, "p3")

    selected = make_deal(apply_to_all=False, applicable_products=frozenset({"p1", "p6"}))
    assert applies_to_product(selected, "p6")
    assert not applies_to_product(selected, "p2")
    assert applies_to_cart(selected, ["p2", "p6"])
    assert not applies_to_cart(selected, ["p2", "p3"])


# ============ Размер скидки ============


def test_percentage_discount():
    deal = make_deal()
    assert calculate_discount(deal, "100.00") == Decimal("25.00")
    assert apply_discount(deal, "100.00") == Decimal("75.00")


def test_percentage_discount_rounds_half_up():
    deal = make_deal(discount_value=Decimal("10"))
    # 10% от 0.25 = 0.025
    assert calculate_discount(deal, "0.25") == Decimal("0.03")


def test_fixed_discount_is_capped_by_subtotal():
    deal = make_deal(discount_type=DiscountType.FIXED, discount_value=Decimal("20"))
    assert calculate_discount(deal, "100") == Decimal("20.00")
    assert calculate_discount(deal, "15") == Decimal("15.00")
    assert apply_discount(deal, "15") == Decimal("0.00")


def test_no_deal_keeps_subtotal():
    assert apply_discount(None, "42.5") == Decimal("42.50")


@pytest.mark.parametrize("subtotal", ["4.00", "40.00", "100.00", "1234.56", "80000.00"])
def test_percentage_discount_scales_with_subtotal(subtotal):
    deal = make_deal()
    amount = Decimal(subtotal)

    assert calculate_discount(deal, amount) == amount / 4
    assert calculate_discount(deal, amount * 3) == calculate_discount(deal, amount) * 3


@pytest.mark.parametrize("subtotal", ["20", "20.01", "75", "999.99", "100000"])
def test_fixed_discount_is_constant(subtotal):
    deal = make_deal(discount_type=DiscountType.FIXED, discount_value=Decimal("20"))
    assert calculate_discount(deal, subtotal) == Decimal("20.00")
    assert apply_discount(deal, subtotal) == Decimal(subtotal) - 20
