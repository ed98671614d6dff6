from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class ShippingMethod(str, Enum):
    FREE_SHIPPING = "free_shipping"
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DealStatus(str, Enum):
    """Вычисляемый статус акции, в хранилище не пишется"""

    INACTIVE = "inactive"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    EXPIRED = "expired"
    USED_UP = "used_up"


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PRODUCT_STATUSES = ("active", "inactive", "out_of_stock")
USER_STATUSES = ("active", "suspended", "inactive")


# ============ Доставка ============


@dataclass(frozen=True)
class ShippingZone:
    name: str
    region_codes: FrozenSet[str]
    base_rate: Decimal
    per_item_rate: Decimal
    free_shipping_threshold: Decimal


@dataclass(frozen=True)
class ShippingRate:
    method: ShippingMethod
    cost: Decimal
    estimated_days: str
    description: str


# ============ Акции ============


@dataclass(frozen=True)
class Deal:
    """
    Скидочное правило администратора.
    Инварианты проверяются при создании: start_date <= end_date,
    current_uses <= max_uses (если лимит задан).
    """

    id: str
    title: str
    discount_type: DiscountType
    discount_value: Decimal
    start_date: datetime
    end_date: datetime
    description: str = ""
    is_active: bool = True
    min_order_amount: Decimal = Decimal("0")
    max_uses: Optional[int] = None
    current_uses: int = 0
    applicable_products: FrozenSet[str] = frozenset()
    excluded_products: FrozenSet[str] = frozenset()
    apply_to_all: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValueError(f"Deal {self.id}: start_date after end_date")
        if self.discount_value < 0:
            raise ValueError(f"Deal {self.id}: negative discount_value")
        if self.current_uses < 0:
            raise ValueError(f"Deal {self.id}: negative current_uses")
        if self.max_uses is not None and self.current_uses > self.max_uses:
            raise ValueError(f"Deal {self.id}: current_uses exceeds max_uses")


# ============ Каталог ============


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    description: str = ""
    image: str = ""


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    category_id: Optional[str]
    description: str = ""
    stock: int = 0
    sku: str = ""
    status: str = "active"  # active | inactive | out_of_stock
    rating: Decimal = Decimal("0")
    review_count: int = 0
    original_price: Optional[Decimal] = None
    image: str = ""
    features: Tuple[str, ...] = ()


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    role: str = "customer"  # customer | admin
    status: str = "active"
    created_at: Optional[datetime] = None


# ============ Корзина и заказы ============


@dataclass(frozen=True)
class Cart:
    id: str
    user_id: str
    items: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class Customer:
    name: str
    email: str
    address: str
    city: str
    region: str
    zip_code: str
    country: str = "US"
    phone: str = ""


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    quantity: int
    price: Decimal  # цена за единицу на момент заказа


@dataclass(frozen=True)
class Order:
    """Суммы заказа - снимок на момент оформления, пересчёт их не меняет"""

    id: str
    customer: Customer
    items: Tuple[OrderItem, ...]
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    shipping_method: ShippingMethod
    created_at: datetime
    deal_id: Optional[str] = None
    status: str = "pending"


# ============ Аналитика ============


@dataclass(frozen=True)
class Event:
    id: str
    ts: str
    name: str
    payload: Dict = field(default_factory=dict)
