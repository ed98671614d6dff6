from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional, Tuple

from .domain import Deal, DealStatus, DiscountType
from .money import MoneyLike, ZERO, round_money, to_money


# ============ Статус акции (всегда вычисляется заново) ============


def uses_left(deal: Deal) -> Optional[int]:
    """Сколько применений осталось; None - без лимита"""
    if deal.max_uses is None:
        return None
    return max(0, deal.max_uses - deal.current_uses)


def is_used_up(deal: Deal) -> bool:
    return deal.max_uses is not None and deal.current_uses >= deal.max_uses


def deal_status(deal: Deal, now: datetime) -> DealStatus:
    """
    inactive -> терминальный;
    scheduled (now < start) -> active -> expired (now > end);
    used_up, если лимит исчерпан внутри окна действия.
    """
    if not deal.is_active:
        return DealStatus.INACTIVE
    if now < deal.start_date:
        return DealStatus.SCHEDULED
    if now > deal.end_date:
        return DealStatus.EXPIRED
    if is_used_up(deal):
        return DealStatus.USED_UP
    return DealStatus.ACTIVE


# ============ Фильтры-замыкания ============


def by_active_at(now: datetime) -> Callable[[Deal], bool]:
    """Активна, в окне дат и с неисчерпанным лимитом"""
    return lambda d: deal_status(d, now) == DealStatus.ACTIVE


def by_min_order(subtotal: MoneyLike) -> Callable[[Deal], bool]:
    amount = to_money(subtotal)
    return lambda d: amount >= d.min_order_amount


def by_uses_left() -> Callable[[Deal], bool]:
    return lambda d: not is_used_up(d)


def is_eligible(deal: Deal, subtotal: MoneyLike, now: datetime) -> bool:
    return by_active_at(now)(deal) and by_min_order(subtotal)(deal)


def eligible_deals(
    deals: Iterable[Deal], subtotal: MoneyLike, now: datetime
) -> Tuple[Deal, ...]:
    """Акции, которые можно применить к заказу с таким subtotal прямо сейчас"""
    active, min_order = by_active_at(now), by_min_order(subtotal)
    return tuple(d for d in deals if active(d) and min_order(d))


# ============ Применимость к товарам ============


def applies_to_product(deal: Deal, product_id: str) -> bool:
    if deal.apply_to_all:
        return product_id not in deal.excluded_products
    return product_id in deal.applicable_products


def applies_to_cart(deal: Deal, product_ids: Iterable[str]) -> bool:
    """Хотя бы один товар корзины подпадает под акцию"""
    return any(applies_to_product(deal, pid) for pid in product_ids)


# ============ Размер скидки ============


def calculate_discount(deal: Deal, subtotal: MoneyLike) -> Decimal:
    """
    percentage: subtotal * value / 100; fixed: value.
    Скидка не больше самого subtotal.
    """
    amount = to_money(subtotal)
    if deal.discount_type == DiscountType.PERCENTAGE:
        discount = amount * deal.discount_value / 100
    else:
        discount = deal.discount_value

    return round_money(max(ZERO, min(discount, amount)))


def apply_discount(deal: Optional[Deal], subtotal: MoneyLike) -> Decimal:
    """Subtotal после скидки, не меньше нуля. Без акции - исходная сумма"""
    amount = to_money(subtotal)
    if deal is None:
        return round_money(amount)
    return round_money(max(ZERO, amount - calculate_discount(deal, amount)))
