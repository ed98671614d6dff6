import asyncio
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

from loguru import logger

from .checkout import ShippingQuote, build_order, quote, validate_quote_request
from .compose import pipe, tap
from .deals import applies_to_cart, deal_status, eligible_deals
from .domain import (
    Cart,
    Category,
    Customer,
    Deal,
    DealStatus,
    Order,
    Product,
    ShippingMethod,
    User,
)
from .ftypes import Either
from .lazy import iter_orders_by_day, lazy_top_customers
from .storage import MemStorage, StorageError
from .transforms import apply_filters


class CatalogService:
    """Фасад для работы с каталогом"""

    def __init__(self, storage: MemStorage):
        self.storage = storage

    async def categories(self) -> Tuple[Category, ...]:
        return await self.storage.get_categories()

    async def products(self, *predicates: Callable[[Product], bool]) -> Tuple[Product, ...]:
        """Товары, прошедшие все фильтры (by_category, by_search, ...)"""
        return apply_filters(await self.storage.get_products(), *predicates)

    async def product(self, product_id: str) -> Optional[Product]:
        return await self.storage.get_product_by_id(product_id)

    async def create_category(self, data: dict) -> Category:
        return await self.storage.create_category(data)

    async def create_product(self, data: dict) -> Product:
        return await self.storage.create_product(data)

    async def update_product(self, product_id: str, changes: dict) -> Optional[Product]:
        return await self.storage.update_product(product_id, changes)

    async def set_stock(self, product_id: str, stock: int) -> Optional[Product]:
        """Остаток не может быть отрицательным"""
        if stock < 0:
            raise StorageError(f"Negative stock for {product_id}")
        return await self.storage.update_product_stock(product_id, stock)

    async def delete_product(self, product_id: str) -> bool:
        return await self.storage.delete_product(product_id)


class UserService:
    """Фасад для управления пользователями"""

    def __init__(self, storage: MemStorage):
        self.storage = storage

    async def users(self) -> Tuple[User, ...]:
        return await self.storage.get_users()

    async def user(self, user_id: str) -> Optional[User]:
        return await self.storage.get_user_by_id(user_id)

    async def create(self, data: dict) -> User:
        return await self.storage.create_user(data)

    async def update(self, user_id: str, changes: dict) -> Optional[User]:
        return await self.storage.update_user(user_id, changes)

    async def set_status(self, user_id: str, status: str) -> Optional[User]:
        return await self.storage.update_user_status(user_id, status)


class DealService:
    """Фасад для акций"""

    def __init__(self, storage: MemStorage, clock: Callable[[], datetime] = datetime.now):
        self.storage = storage
        self.clock = clock

    async def deals(self) -> Tuple[Deal, ...]:
        return await self.storage.get_deals()

    async def create(self, data: dict) -> Deal:
        return await self.storage.create_deal(data)

    async def update(self, deal_id: str, changes: dict) -> Optional[Deal]:
        return await self.storage.update_deal(deal_id, changes)

    async def delete(self, deal_id: str) -> bool:
        return await self.storage.delete_deal(deal_id)

    def status_of(self, deal: Deal) -> DealStatus:
        return deal_status(deal, self.clock())

    async def available_for(
        self, subtotal, product_ids: Optional[Iterable[str]] = None
    ) -> Tuple[Deal, ...]:
        """
        Акции для выбора на чекауте.
        Если переданы товары корзины - только те, что к ним применимы.
        """
        deals = eligible_deals(await self.storage.get_deals(), subtotal, self.clock())
        if product_ids is None:
            return deals
        ids = tuple(product_ids)
        return tuple(d for d in deals if applies_to_cart(d, ids))


class OrderService:
    """Фасад для работы с заказами"""

    def __init__(self, storage: MemStorage):
        self.storage = storage

    async def orders(self) -> Tuple[Order, ...]:
        return await self.storage.get_orders()

    async def update_status(self, order_id: str, status: str) -> Optional[Order]:
        return await self.storage.update_order_status(order_id, status)

    async def orders_by_day(self, day: str) -> Tuple[Order, ...]:
        """Заказы за день (материализация ленивого генератора)"""
        return tuple(iter_orders_by_day(await self.storage.get_orders(), day))

    async def top_customers(self, k: int = 5) -> Tuple[Tuple[str, object], ...]:
        return tuple(lazy_top_customers(await self.storage.get_orders(), k))


class CheckoutService:
    """Котировка доставки и оформление заказа поверх хранилища"""

    def __init__(self, storage: MemStorage, clock: Callable[[], datetime] = datetime.now):
        self.storage = storage
        self.clock = clock

    def quote(self, region, subtotal, item_count) -> Either[dict, ShippingQuote]:
        return validate_quote_request(region, subtotal, item_count).map(
            pipe(quote, tap(_log_quote))
        )

    async def place_order(
        self,
        cart: Cart,
        customer: Customer,
        method: ShippingMethod,
        deal_id: Optional[str] = None,
    ) -> Either[dict, Order]:
        deal = None
        if deal_id:
            deal = await self.storage.get_deal_by_id(deal_id)
            if deal is None:
                return Either.left({"error": f"Deal '{deal_id}' not found"})

        products = await self.storage.get_products()
        built = build_order(cart, products, customer, method, self.clock(), deal)
        if built.is_left:
            logger.bind(cart_id=cart.id).info(
                "Checkout rejected: {}", built.value.get("error")
            )
            return built

        try:
            order = await self.storage.create_order(built.value)
        except StorageError as exc:
            return Either.left({"error": str(exc)})
        return Either.right(order)


def _log_quote(q: ShippingQuote) -> None:
    logger.bind(region=q.region, zone=q.zone, tax=str(q.tax)).debug(
        "Quoted {} shipping options", len(q.rates)
    )


def run_sync(coro):
    """Синхронная обёртка для использования в UI"""
    return asyncio.run(coro)
