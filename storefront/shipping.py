from decimal import Decimal
from typing import Optional, Tuple

from loguru import logger

from .config import settings
from .domain import ShippingMethod, ShippingRate, ShippingZone
from .money import MoneyLike, ZERO, round_money, to_money

# ============ Таблица зон (загружается один раз, неизменяемая) ============

SHIPPING_ZONES: Tuple[ShippingZone, ...] = (
    ShippingZone(
        name="Local",
        region_codes=frozenset({"CA", "NV", "OR", "WA"}),
        base_rate=Decimal("5.99"),
        per_item_rate=Decimal("1.50"),
        free_shipping_threshold=Decimal("75.00"),
    ),
    ShippingZone(
        name="Regional",
        region_codes=frozenset({"AZ", "CO", "ID", "MT", "NM", "UT", "WY"}),
        base_rate=Decimal("8.99"),
        per_item_rate=Decimal("2.00"),
        free_shipping_threshold=Decimal("100.00"),
    ),
    ShippingZone(
        name="National",
        region_codes=frozenset(
            {
                "AL", "AR", "CT", "DE", "FL", "GA", "IL", "IN", "IA", "KS",
                "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MS", "MO", "NE",
                "NH", "NJ", "NY", "NC", "ND", "OH", "OK", "PA", "RI", "SC",
                "SD", "TN", "TX", "VT", "VA", "WV", "WI",
            }
        ),
        base_rate=Decimal("12.99"),
        per_item_rate=Decimal("2.50"),
        free_shipping_threshold=Decimal("125.00"),
    ),
    ShippingZone(
        name="Remote",
        region_codes=frozenset({"AK", "HI"}),
        base_rate=Decimal("19.99"),
        per_item_rate=Decimal("4.00"),
        free_shipping_threshold=Decimal("200.00"),
    ),
)

STANDARD_DAYS = "5-7"
EXPRESS_DAYS = "2-3"
OVERNIGHT_DAYS = "1"


def _normalize_region(region_code: Optional[str]) -> str:
    return (region_code or "").strip().upper()


def zone_by_name(name: str) -> ShippingZone:
    zone = next((z for z in SHIPPING_ZONES if z.name == name), None)
    if zone is None:
        raise LookupError(f"Unknown shipping zone: {name}")
    return zone


def zone_for_region(region_code: Optional[str]) -> ShippingZone:
    """
    Зона, в которую входит регион.
    Неизвестный регион не ошибка: котируем по запасной зоне (National).
    """
    code = _normalize_region(region_code)
    zone = next((z for z in SHIPPING_ZONES if code in z.region_codes), None)
    if zone is not None:
        return zone

    fallback = zone_by_name(settings.fallback_zone)
    logger.bind(region=code, zone=fallback.name).debug(
        "Unknown region {!r}, quoting with {} zone", code, fallback.name
    )
    return fallback


def rates_for_zone(
    zone: ShippingZone, subtotal: MoneyLike, item_count: int
) -> Tuple[ShippingRate, ...]:
    """
    Варианты доставки для зоны:
    [free_shipping если subtotal >= порога], standard, express (x2), overnight (x3).
    Express и overnight считаются от неокруглённого standard и округляются отдельно.
    """
    standard_raw = zone.base_rate + zone.per_item_rate * item_count

    free = ()
    if to_money(subtotal) >= zone.free_shipping_threshold:
        free = (
            ShippingRate(
                method=ShippingMethod.FREE_SHIPPING,
                cost=ZERO,
                estimated_days=STANDARD_DAYS,
                description=(
                    "Free Standard Shipping "
                    f"(orders over ${zone.free_shipping_threshold.normalize():f})"
                ),
            ),
        )

    paid = (
        ShippingRate(
            method=ShippingMethod.STANDARD,
            cost=round_money(standard_raw),
            estimated_days=STANDARD_DAYS,
            description="Standard Shipping",
        ),
        ShippingRate(
            method=ShippingMethod.EXPRESS,
            cost=round_money(standard_raw * 2),
            estimated_days=EXPRESS_DAYS,
            description="Express Shipping",
        ),
        ShippingRate(
            method=ShippingMethod.OVERNIGHT,
            cost=round_money(standard_raw * 3),
            estimated_days=OVERNIGHT_DAYS,
            description="Overnight Shipping",
        ),
    )
    return free + paid


def calculate_shipping_rates(
    region_code: str, subtotal: MoneyLike, item_count: int
) -> Tuple[ShippingRate, ...]:
    """Входные данные проверяет вызывающий код (см. checkout.validate_quote_request)"""
    return rates_for_zone(zone_for_region(region_code), subtotal, item_count)


def cheapest_rate(rates: Tuple[ShippingRate, ...]) -> Optional[ShippingRate]:
    """Самый дешёвый вариант; при равной цене - первый по порядку"""
    if not rates:
        return None
    return min(rates, key=lambda r: r.cost)


def find_rate(
    rates: Tuple[ShippingRate, ...], method: ShippingMethod
) -> Optional[ShippingRate]:
    return next((r for r in rates if r.method == method), None)
