from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Iterator

from .domain import Order


## лениво отдаёт заказы, созданные в указанный день (ГГГГ-ММ-ДД)
def iter_orders_by_day(orders: Iterable[Order], day: str) -> Iterator[Order]:
    for order in orders:
        if order.created_at.date().isoformat() == day:
            yield order


## топ-k покупателей (по email) по сумме неотменённых заказов
## сортировка только в конце, промежуточных списков нет
def lazy_top_customers(orders: Iterable[Order], k: int) -> Iterator[tuple[str, Decimal]]:
    totals = defaultdict(Decimal)
    for order in orders:
        if order.status != "cancelled":
            totals[order.customer.email] += order.total

    for email, total in sorted(totals.items(), key=lambda x: x[1], reverse=True)[:k]:
        yield (email, total)
