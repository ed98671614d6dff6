from datetime import date, timedelta
from decimal import Decimal
from functools import reduce
from typing import Dict, List, Tuple

from storefront.domain import ORDER_STATUSES, Order, Product
from storefront.money import round_money

ZERO = Decimal("0")


def _counted(order: Order) -> bool:
    return order.status != "cancelled"


# ============ Дашборд админки ============


def dashboard_stats(orders: Tuple[Order, ...], products: Tuple[Product, ...]) -> dict:
    """
    Выручка - только по доставленным заказам,
    активные покупатели - уникальные email.
    """
    delivered = tuple(filter(lambda o: o.status == "delivered", orders))
    revenue = reduce(lambda acc, o: acc + o.total, delivered, ZERO)

    return {
        "total_revenue": round_money(revenue),
        "total_orders": len(orders),
        "total_products": len(products),
        "active_customers": len({o.customer.email for o in orders}),
    }


def sales_summary(orders: Tuple[Order, ...]) -> dict:
    """Количество и сумма заказов по каждому статусу"""

    def accumulate(acc: dict, order: Order) -> dict:
        count, total = acc[order.status]
        return {**acc, order.status: (count + 1, total + order.total)}

    by_status = reduce(accumulate, orders, {s: (0, ZERO) for s in ORDER_STATUSES})
    counted = tuple(filter(_counted, orders))
    gross = reduce(lambda acc, o: acc + o.total, counted, ZERO)

    return {
        "total_orders": len(orders),
        "by_status": {
            status: {"orders": count, "total": round_money(total)}
            for status, (count, total) in by_status.items()
        },
        "gross_revenue": round_money(gross),
        "total_discounts": round_money(
            reduce(lambda acc, o: acc + o.discount, counted, ZERO)
        ),
        "average_order_value": (
            round_money(gross / len(counted)) if counted else round_money(ZERO)
        ),
    }


# ============ Продажи по времени ============


def sales_by_period(
    orders: Tuple[Order, ...], days: int, today: date
) -> List[dict]:
    """
    Продажи за последние days дней, включая сегодняшний.
    Дни без заказов присутствуют с нулями.
    """
    window = [(today - timedelta(days=offset)).isoformat() for offset in range(days)][::-1]

    def accumulate(acc: dict, order: Order) -> dict:
        day = order.created_at.date().isoformat()
        if day not in acc or not _counted(order):
            return acc
        count, total = acc[day]
        return {**acc, day: (count + 1, total + order.total)}

    totals = reduce(accumulate, orders, {day: (0, ZERO) for day in window})
    return [
        {"date": day, "orders": totals[day][0], "revenue": round_money(totals[day][1])}
        for day in window
    ]


def sales_by_hour(orders: Tuple[Order, ...]) -> Dict[int, Decimal]:
    def accumulate_hourly(acc: dict, order: Order) -> dict:
        if not _counted(order):
            return acc
        hour = order.created_at.hour
        return {**acc, hour: acc.get(hour, ZERO) + order.total}

    return dict(sorted(reduce(accumulate_hourly, orders, {}).items()))


# ============ Товары ============


def top_products_report(
    orders: Tuple[Order, ...], products: Tuple[Product, ...], limit: int = 10
) -> List[dict]:
    """
    Топ товаров по проданному количеству.
    Выручка считается по ценам из снимка заказа, а не по текущему каталогу.
    """

    def accumulate(acc: dict, order: Order) -> dict:
        if not _counted(order):
            return acc

        def add_item(inner: dict, item) -> dict:
            qty, revenue = inner.get(item.product_id, (0, ZERO))
            return {
                **inner,
                item.product_id: (qty + item.quantity, revenue + item.price * item.quantity),
            }

        return reduce(add_item, order.items, acc)

    sold = reduce(accumulate, orders, {})
    names = {p.id: p.name for p in products}
    ranked = sorted(sold.items(), key=lambda x: (x[1][0], x[1][1]), reverse=True)[:limit]

    return [
        {
            "product_id": pid,
            "name": names.get(pid, "Unknown"),
            "quantity_sold": qty,
            "revenue": round_money(revenue),
        }
        for pid, (qty, revenue) in ranked
    ]
