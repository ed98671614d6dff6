"""
Асинхронное хранилище в памяти.

Чтения отдают снимки (кортежи иммутабельных сущностей), все изменения
идут под одним threading.Lock: хранилище общее для потоков
Streamlit, у каждого из которых свой цикл событий (run_sync). Внутри
захваченного лока нет await. Создание заказа списывает остатки и
засчитывает применение акции за одну операцию read-modify-write:
либо меняется всё, либо ничего.
"""

import threading
import uuid
from dataclasses import fields, replace
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from loguru import logger

from .deals import is_used_up
from .domain import (
    ORDER_STATUSES,
    PRODUCT_STATUSES,
    USER_STATUSES,
    Category,
    Deal,
    Order,
    Product,
    User,
)
from .money import to_money
from .transforms import load_seed, to_category, to_deal, to_product, to_user


class StorageError(Exception):
    """Отклонённая запись: не хватает остатка, акция исчерпана, неверный статус"""


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class MemStorage:
    def __init__(
        self,
        categories: Tuple[Category, ...] = (),
        products: Tuple[Product, ...] = (),
        users: Tuple[User, ...] = (),
        deals: Tuple[Deal, ...] = (),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._categories: Dict[str, Category] = {c.id: c for c in categories}
        self._products: Dict[str, Product] = {p.id: p for p in products}
        self._users: Dict[str, User] = {u.id: u for u in users}
        self._deals: Dict[str, Deal] = {d.id: d for d in deals}
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _snapshot(self, table: dict) -> tuple:
        with self._lock:
            return tuple(table.values())

    @classmethod
    def from_seed(cls, path: str, **kwargs) -> "MemStorage":
        categories, products, users, deals = load_seed(path)
        logger.bind(path=path).info(
            "Seed loaded: {} categories, {} products, {} users, {} deals",
            len(categories),
            len(products),
            len(users),
            len(deals),
        )
        return cls(categories, products, users, deals, **kwargs)

    # ============ Категории ============

    async def get_categories(self) -> Tuple[Category, ...]:
        return self._snapshot(self._categories)

    async def get_category_by_id(self, category_id: str) -> Optional[Category]:
        return self._categories.get(category_id)

    async def create_category(self, data: dict) -> Category:
        with self._lock:
            category = to_category({**data, "id": _new_id("cat")})
            self._categories[category.id] = category
            return category

    # ============ Товары ============

    async def get_products(self) -> Tuple[Product, ...]:
        return self._snapshot(self._products)

    async def get_product_by_id(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    async def get_products_by_category(self, category_id: str) -> Tuple[Product, ...]:
        return tuple(
            p for p in self._snapshot(self._products) if p.category_id == category_id
        )

    async def create_product(self, data: dict) -> Product:
        with self._lock:
            product = to_product({**data, "id": _new_id("prod")})
            if product.status not in PRODUCT_STATUSES:
                raise StorageError(f"Invalid product status: {product.status}")
            self._products[product.id] = product
            return product

    async def update_product(self, product_id: str, changes: dict) -> Optional[Product]:
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return None
            updates = dict(changes)
            for key in ("price", "original_price", "rating"):
                if updates.get(key) is not None:
                    updates[key] = to_money(updates[key])
            if "features" in updates:
                updates["features"] = tuple(updates["features"])
            if updates.get("status", product.status) not in PRODUCT_STATUSES:
                raise StorageError(f"Invalid product status: {updates['status']}")
            updated = replace(product, **updates)
            self._products[product_id] = updated
            return updated

    async def delete_product(self, product_id: str) -> bool:
        with self._lock:
            return self._products.pop(product_id, None) is not None

    async def update_product_stock(self, product_id: str, stock: int) -> Optional[Product]:
        return await self.update_product(product_id, {"stock": stock})

    # ============ Пользователи ============

    async def get_users(self) -> Tuple[User, ...]:
        return self._snapshot(self._users)

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def create_user(self, data: dict) -> User:
        with self._lock:
            user = to_user({**data, "id": _new_id("user")})
            user = replace(user, created_at=user.created_at or self._clock())
            self._users[user.id] = user
            return user

    async def update_user(self, user_id: str, changes: dict) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = replace(user, **changes)
            self._users[user_id] = updated
            return updated

    async def update_user_status(self, user_id: str, status: str) -> Optional[User]:
        if status not in USER_STATUSES:
            raise StorageError(f"Invalid user status: {status}")
        return await self.update_user(user_id, {"status": status})

    # ============ Акции ============

    async def get_deals(self) -> Tuple[Deal, ...]:
        return self._snapshot(self._deals)

    async def get_deal_by_id(self, deal_id: str) -> Optional[Deal]:
        return self._deals.get(deal_id)

    async def create_deal(self, data: dict) -> Deal:
        """Инварианты Deal проверяются в конструкторе (ValueError)"""
        with self._lock:
            now = self._clock()
            deal = to_deal({**data, "id": _new_id("deal")})
            deal = replace(deal, created_at=now, updated_at=now)
            self._deals[deal.id] = deal
            return deal

    async def update_deal(self, deal_id: str, changes: dict) -> Optional[Deal]:
        with self._lock:
            deal = self._deals.get(deal_id)
            if deal is None:
                return None
            merged = {
                **{f.name: getattr(deal, f.name) for f in fields(deal)},
                **changes,
                "id": deal.id,
                "updated_at": self._clock(),
            }
            updated = to_deal(merged)
            self._deals[deal_id] = updated
            return updated

    async def delete_deal(self, deal_id: str) -> bool:
        with self._lock:
            return self._deals.pop(deal_id, None) is not None

    # ============ Заказы ============

    async def get_orders(self) -> Tuple[Order, ...]:
        return self._snapshot(self._orders)

    async def get_order_by_id(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    async def create_order(self, order: Order) -> Order:
        """
        Сохраняет заказ, списывает остатки и засчитывает акцию.
        Все проверки выполняются до первой записи.
        """
        with self._lock:
            if order.id in self._orders:
                raise StorageError(f"Order {order.id} already exists")

            new_products = {}
            for item in order.items:
                product = new_products.get(item.product_id) or self._products.get(
                    item.product_id
                )
                if product is None:
                    raise StorageError(f"Product {item.product_id} not found")
                if product.stock < item.quantity:
                    logger.bind(product_id=product.id, stock=product.stock).warning(
                        "Insufficient stock for order {}", order.id
                    )
                    raise StorageError(f"Insufficient stock for {product.id}")
                new_products[product.id] = replace(
                    product, stock=product.stock - item.quantity
                )

            redeemed = None
            if order.deal_id is not None:
                deal = self._deals.get(order.deal_id)
                if deal is None:
                    raise StorageError(f"Deal {order.deal_id} not found")
                if is_used_up(deal):
                    logger.bind(deal_id=deal.id).warning(
                        "Deal used up, rejecting order {}", order.id
                    )
                    raise StorageError(f"Deal {deal.id} is used up")
                redeemed = replace(deal, current_uses=deal.current_uses + 1)

            self._products.update(new_products)
            if redeemed is not None:
                self._deals[redeemed.id] = redeemed
            self._orders[order.id] = order

            logger.bind(
                order_id=order.id, total=str(order.total), deal_id=order.deal_id
            ).info("Order created")
            return order

    async def update_order_status(self, order_id: str, status: str) -> Optional[Order]:
        if status not in ORDER_STATUSES:
            raise StorageError(f"Invalid order status: {status}")
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            updated = replace(order, status=status)
            self._orders[order_id] = updated
            return updated
