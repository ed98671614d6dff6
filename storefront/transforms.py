import json
from datetime import datetime
from decimal import Decimal
from functools import reduce
from typing import Callable, Optional, Tuple

from .domain import Cart, Category, Deal, DiscountType, Product, User
from .ftypes import Either, Maybe
from .money import ZERO, round_money, to_money


def to_category(c: dict) -> Category:
    return Category(
        id=str(c["id"]),
        name=c["name"],
        description=c.get("description", ""),
        image=c.get("image", ""),
    )


def to_product(p: dict) -> Product:
    original = p.get("original_price")
    return Product(
        id=str(p["id"]),
        name=p["name"],
        price=to_money(p["price"]),
        category_id=p.get("category_id"),
        description=p.get("description", ""),
        stock=int(p.get("stock", 0)),
        sku=p.get("sku", ""),
        status=p.get("status", "active"),
        rating=to_money(p.get("rating", "0")),
        review_count=int(p.get("review_count", 0)),
        original_price=to_money(original) if original is not None else None,
        image=p.get("image", ""),
        features=tuple(p.get("features", [])),
    )


def to_user(u: dict) -> User:
    created = u.get("created_at")
    return User(
        id=str(u["id"]),
        name=u["name"],
        email=u["email"],
        role=u.get("role", "customer"),
        status=u.get("status", "active"),
        created_at=datetime.fromisoformat(created) if created else None,
    )


def to_deal(d: dict) -> Deal:
    """Собирает Deal из словаря (seed.json или форма админки)"""
    max_uses = d.get("max_uses")

    def _ts(key: str) -> Optional[datetime]:
        value = d.get(key)
        if value is None or isinstance(value, datetime):
            return value
        return datetime.fromisoformat(value)

    return Deal(
        id=str(d["id"]),
        title=d["title"],
        description=d.get("description", ""),
        discount_type=DiscountType(d["discount_type"]),
        discount_value=to_money(d["discount_value"]),
        start_date=_ts("start_date"),
        end_date=_ts("end_date"),
        is_active=bool(d.get("is_active", True)),
        min_order_amount=to_money(d.get("min_order_amount", 0)),
        max_uses=int(max_uses) if max_uses is not None else None,
        current_uses=int(d.get("current_uses", 0)),
        applicable_products=frozenset(map(str, d.get("applicable_products", []))),
        excluded_products=frozenset(map(str, d.get("excluded_products", []))),
        apply_to_all=bool(d.get("apply_to_all", True)),
        created_at=_ts("created_at"),
        updated_at=_ts("updated_at"),
    )


def load_seed(
    path: str,
) -> Tuple[
    Tuple[Category, ...], Tuple[Product, ...], Tuple[User, ...], Tuple[Deal, ...]
]:
    """Загружает seed.json и возвращает кортежи иммутабельных данных"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    categories = tuple(map(to_category, data.get("categories", [])))
    products = tuple(map(to_product, data.get("products", [])))
    users = tuple(map(to_user, data.get("users", [])))
    deals = tuple(map(to_deal, data.get("deals", [])))
    return categories, products, users, deals


# ============ Корзина (чистые функции) ============


def add_to_cart(cart: Cart, product_id: str, qty: int) -> Cart:
    """Новый Cart с добавленным товаром; qty <= 0 ничего не меняет"""
    if qty <= 0:
        return cart

    if any(pid == product_id for pid, _ in cart.items):
        updated_items = tuple(
            (pid, q + qty) if pid == product_id else (pid, q) for pid, q in cart.items
        )
    else:
        updated_items = cart.items + ((product_id, qty),)

    return Cart(id=cart.id, user_id=cart.user_id, items=updated_items)


def remove_from_cart(cart: Cart, product_id: str) -> Cart:
    filtered_items = tuple(filter(lambda item: item[0] != product_id, cart.items))
    return Cart(id=cart.id, user_id=cart.user_id, items=filtered_items)


def update_quantity(cart: Cart, product_id: str, qty: int) -> Cart:
    """Задаёт количество; qty <= 0 убирает товар из корзины"""
    if qty <= 0:
        return remove_from_cart(cart, product_id)
    updated_items = tuple(
        (pid, qty) if pid == product_id else (pid, q) for pid, q in cart.items
    )
    return Cart(id=cart.id, user_id=cart.user_id, items=updated_items)


def clear_cart(cart: Cart) -> Cart:
    return Cart(id=cart.id, user_id=cart.user_id, items=())


def cart_item_count(cart: Cart) -> int:
    return reduce(lambda acc, item: acc + item[1], cart.items, 0)


def cart_subtotal(cart: Cart, products: Tuple[Product, ...]) -> Decimal:
    """Сумма позиций по текущим ценам каталога; неизвестные товары не учитываются"""
    prices = {p.id: p.price for p in products}
    total = reduce(
        lambda acc, item: acc + prices.get(item[0], ZERO) * item[1], cart.items, ZERO
    )
    return round_money(total)


# ============ Фильтры каталога (замыкания) ============


def by_category(cat_id: str) -> Callable[[Product], bool]:
    return lambda p: p.category_id == cat_id


def by_price_range(min_price, max_price) -> Callable[[Product], bool]:
    low, high = to_money(min_price), to_money(max_price)
    return lambda p: low <= p.price <= high


def by_status(status: str) -> Callable[[Product], bool]:
    return lambda p: p.status == status


def by_search(text: str) -> Callable[[Product], bool]:
    """Подстрока в названии или описании, без учёта регистра"""
    needle = (text or "").strip().lower()
    return lambda p: needle in p.name.lower() or needle in p.description.lower()


def by_min_rating(min_rating) -> Callable[[Product], bool]:
    """Фильтр по сохранённому рейтингу товара"""
    threshold = to_money(min_rating)
    return lambda p: p.rating >= threshold


def apply_filters(
    products: Tuple[Product, ...], *predicates: Callable[[Product], bool]
) -> Tuple[Product, ...]:
    return tuple(p for p in products if all(f(p) for f in predicates))


# ============ Maybe/Either ============


def safe_product(products: Tuple[Product, ...], pid: str) -> Maybe[Product]:
    """Безопасный поиск товара по ID"""
    return Maybe.of(next((p for p in products if p.id == pid), None))


def validate_stock(cart: Cart, products: Tuple[Product, ...]) -> Either[dict, Cart]:
    """
    Проверяет корзину перед оформлением:
    - товары существуют и продаются
    - на складе хватает количества
    Возвращает первую найденную ошибку.
    """
    if not cart.items:
        return Either.left({"error": "Cart is empty"})

    def validate_item(item: Tuple[str, int]) -> Either[dict, Tuple[str, int]]:
        pid, qty = item

        def check(product: Product) -> Either[dict, Tuple[str, int]]:
            if product.status != "active":
                return Either.left({"error": f"Product '{pid}' is not available"})
            if product.stock < qty:
                return Either.left({"error": f"Insufficient stock for '{pid}'"})
            return Either.right(item)

        return (
            safe_product(products, pid)
            .to_either({"error": f"Product '{pid}' not found"})
            .bind(check)
        )

    errors = [e for e in (r.error_or(None) for r in map(validate_item, cart.items)) if e]
    return Either.left(errors[0]) if errors else Either.right(cart)
