"""
Оформление заказа: котировка доставки и налога, применение акции,
итоговые суммы и снимок заказа.

Доставка и налог считаются от subtotal корзины до скидки;
итог = subtotal после скидки + доставка + налог.
"""

import uuid
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

from loguru import logger

from .deals import apply_discount, calculate_discount, is_eligible
from .domain import (
    Cart,
    Customer,
    Deal,
    Order,
    OrderItem,
    Product,
    ShippingMethod,
    ShippingRate,
)
from .ftypes import Either
from .money import ZERO, round_money, to_money
from .shipping import calculate_shipping_rates, find_rate, zone_for_region
from .tax import calculate_tax, tax_rate_for
from .transforms import cart_item_count, validate_stock

REQUIRED_MESSAGE = "Region, subtotal, and item count are required"
CUSTOMER_REQUIRED = ("name", "email", "address", "city", "region", "zip_code")


@dataclass(frozen=True)
class QuoteRequest:
    region: str
    subtotal: Decimal
    item_count: int


@dataclass(frozen=True)
class ShippingQuote:
    region: str
    zone: str
    rates: Tuple[ShippingRate, ...]
    tax: Decimal
    tax_rate: Decimal


@dataclass(frozen=True)
class CheckoutTotals:
    subtotal: Decimal
    discount: Decimal
    discounted_subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal


# ============ Проверка входных данных ============


def validate_quote_request(region, subtotal, item_count) -> Either[dict, QuoteRequest]:
    """Калькулятор доверяет входу, поэтому всё отсекается здесь"""
    if not region or not str(region).strip() or subtotal in (None, "") or not item_count:
        return Either.left({"error": REQUIRED_MESSAGE})

    try:
        amount = to_money(subtotal)
    except ValueError:
        return Either.left({"error": f"Invalid subtotal: {subtotal!r}"})
    if amount <= 0:
        return Either.left({"error": "Subtotal must be positive"})

    if isinstance(item_count, bool):
        return Either.left({"error": f"Invalid item count: {item_count!r}"})
    try:
        count = int(item_count)
    except (TypeError, ValueError):
        return Either.left({"error": f"Invalid item count: {item_count!r}"})
    if count < 1 or str(count) != str(item_count).strip():
        return Either.left({"error": f"Invalid item count: {item_count!r}"})

    return Either.right(
        QuoteRequest(region=str(region).strip().upper(), subtotal=amount, item_count=count)
    )


def validate_customer(customer: Customer) -> Either[dict, Customer]:
    missing = [
        f.name
        for f in fields(customer)
        if f.name in CUSTOMER_REQUIRED and not str(getattr(customer, f.name)).strip()
    ]
    if missing:
        return Either.left(
            {
                "error": "Please fill in all required shipping address fields",
                "fields": missing,
            }
        )
    return Either.right(customer)


# ============ Котировка и итоги ============


def quote(request: QuoteRequest) -> ShippingQuote:
    """Варианты доставки и налог для уже проверенного запроса"""
    return ShippingQuote(
        region=request.region,
        zone=zone_for_region(request.region).name,
        rates=calculate_shipping_rates(
            request.region, request.subtotal, request.item_count
        ),
        tax=calculate_tax(request.subtotal, request.region),
        tax_rate=tax_rate_for(request.region),
    )


def compute_totals(
    subtotal, rate: Optional[ShippingRate], tax, deal: Optional[Deal] = None
) -> CheckoutTotals:
    """Одна акция на заказ; без выбранной доставки она считается нулевой"""
    amount = round_money(subtotal)
    discount = calculate_discount(deal, amount) if deal is not None else ZERO
    discounted = apply_discount(deal, amount)
    shipping = rate.cost if rate is not None else ZERO
    tax_amount = round_money(tax)

    return CheckoutTotals(
        subtotal=amount,
        discount=discount,
        discounted_subtotal=discounted,
        shipping=shipping,
        tax=tax_amount,
        total=round_money(discounted + shipping + tax_amount),
    )


# ============ Снимок заказа ============


def _price_lines(cart: Cart, products: Tuple[Product, ...]) -> Tuple[OrderItem, ...]:
    prices = {p.id: p.price for p in products}
    return tuple(
        OrderItem(product_id=pid, quantity=qty, price=prices[pid])
        for pid, qty in cart.items
    )


def build_order(
    cart: Cart,
    products: Tuple[Product, ...],
    customer: Customer,
    method: ShippingMethod,
    now: datetime,
    deal: Optional[Deal] = None,
    order_id: Optional[str] = None,
) -> Either[dict, Order]:
    """
    Оформляет корзину -> Either[error, Order].
    Доставка перекотируется по текущей корзине: выбранный метод должен быть
    доступен (например, free_shipping только выше порога зоны).
    Акция должна быть применима в момент now.
    """
    try:
        method = ShippingMethod(method)
    except ValueError:
        return Either.left({"error": f"Unknown shipping method: {method!r}"})

    def with_totals(valid_cart: Cart) -> Either[dict, Order]:
        items = _price_lines(valid_cart, products)
        subtotal = round_money(sum((i.price * i.quantity for i in items), ZERO))

        rates = calculate_shipping_rates(
            customer.region, subtotal, cart_item_count(valid_cart)
        )
        rate = find_rate(rates, method)
        if rate is None:
            return Either.left(
                {"error": f"Shipping method '{method.value}' is not available"}
            )

        if deal is not None and not is_eligible(deal, subtotal, now):
            return Either.left({"error": f"Deal '{deal.id}' is not available"})

        totals = compute_totals(
            subtotal, rate, calculate_tax(subtotal, customer.region), deal
        )
        order = Order(
            id=order_id or f"ord_{uuid.uuid4().hex[:12]}",
            customer=customer,
            items=items,
            subtotal=totals.discounted_subtotal,
            discount=totals.discount,
            shipping=totals.shipping,
            tax=totals.tax,
            total=totals.total,
            shipping_method=rate.method,
            created_at=now,
            deal_id=deal.id if deal is not None else None,
        )
        logger.bind(order_id=order.id, total=str(order.total)).debug(
            "Order snapshot built"
        )
        return Either.right(order)

    return (
        validate_customer(customer)
        .bind(lambda _: validate_stock(cart, products))
        .bind(with_totals)
    )
