import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import datetime
from decimal import Decimal

import pytest

from storefront.domain import Cart, Customer, DealStatus, ShippingMethod
from storefront.service import (
    CatalogService,
    CheckoutService,
    DealService,
    OrderService,
    UserService,
    run_sync,
)
from storefront.storage import MemStorage, StorageError
from storefront.transforms import by_category, by_search

NOW = datetime(2025, 10, 1, 12, 0)
SEED_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "seed.json")


def clock():
    return NOW


@pytest.fixture
def storage():
    return MemStorage.from_seed(SEED_PATH, clock=clock)


@pytest.fixture
def customer():
    return Customer(
        name="Ann Lee",
        email="ann@example.com",
        address="1 Main St",
        city="Fresno",
        region="CA",
        zip_code="93650",
    )


@pytest.mark.asyncio
async def test_catalog_filters(storage):
    catalog = CatalogService(storage)

    assert len(await catalog.categories()) == 4
    electronics = await catalog.products(by_category("c1"))
    assert len(electronics) == 5
    assert [p.id for p in await catalog.products(by_search("earbuds"))] == ["p6"]
    assert (await catalog.product("p3")).original_price == Decimal("1499.99")


@pytest.mark.asyncio
async def test_deal_statuses_and_availability(storage):
    deals = DealService(storage, clock=clock)

    statuses = {d.id: deals.status_of(d) for d in await deals.deals()}
    assert statuses == {
        "d1": DealStatus.ACTIVE,
        "d2": DealStatus.ACTIVE,
        "d3": DealStatus.EXPIRED,
    }

    assert [d.id for d in await deals.available_for("199.99")] == ["d1", "d2"]
    assert [d.id for d in await deals.available_for("199.99", ["p4"])] == ["d1"]
    assert [d.id for d in await deals.available_for("60", ["p1"])] == ["d1"]
    assert await deals.available_for("10") == ()


@pytest.mark.asyncio
async def test_place_order_with_deal(storage, customer):
    checkout = CheckoutService(storage, clock=clock)
    cart = Cart(id="cart1", user_id="u1", items=(("p1", 1),))

    result = await checkout.place_order(cart, customer, ShippingMethod.STANDARD, "d1")

    assert result.is_right
    order = result.value
    # 25% от 199.99 = 49.9975 -> 50.00
    assert order.discount == Decimal("50.00")
    assert order.subtotal == Decimal("149.99")
    assert order.shipping == Decimal("7.49")
    assert order.tax == Decimal("14.50")
    assert order.total == Decimal("171.98")

    assert (await storage.get_product_by_id("p1")).stock == 49
    assert (await storage.get_deal_by_id("d1")).current_uses == 1
    assert (await OrderService(storage).orders()) == (order,)


@pytest.mark.asyncio
async def test_place_order_rejections(storage, customer):
    checkout = CheckoutService(storage, clock=clock)
    cart = Cart(id="cart1", user_id="u1", items=(("p1", 1),))

    missing = await checkout.place_order(cart, customer, "standard", "d404")
    assert missing.value == {"error": "Deal 'd404' not found"}

    expired = await checkout.place_order(cart, customer, "standard", "d3")
    assert expired.value == {"error": "Deal 'd3' is not available"}

    too_many = Cart(id="cart2", user_id="u1", items=(("p3", 16),))
    oversold = await checkout.place_order(too_many, customer, "standard")
    assert oversold.is_left

    assert await storage.get_orders() == ()
    assert (await storage.get_product_by_id("p3")).stock == 15


def test_quote_and_run_sync(storage):
    checkout = CheckoutService(storage, clock=clock)

    q = checkout.quote("ak", "50", 2)
    assert q.is_right
    assert q.value.zone == "Remote"
    assert q.value.tax == Decimal("0.00")
    assert checkout.quote("CA", "0", 1).is_left

    assert len(run_sync(storage.get_deals())) == 3


@pytest.mark.asyncio
async def test_catalog_admin(storage):
    catalog = CatalogService(storage)

    category = await catalog.create_category({"name": "Books", "description": "Paper"})
    assert category.id.startswith("cat_")
    assert len(await catalog.categories()) == 5

    product = await catalog.create_product(
        {"name": "Novel", "price": "12.50", "category_id": category.id, "stock": 3}
    )
    assert [p.id for p in await catalog.products(by_category(category.id))] == [product.id]

    updated = await catalog.update_product(product.id, {"price": "10", "status": "inactive"})
    assert updated.price == Decimal("10")
    assert updated.status == "inactive"
    assert (await catalog.set_stock(product.id, 0)).stock == 0
    with pytest.raises(StorageError):
        await catalog.set_stock(product.id, -1)
    with pytest.raises(StorageError):
        await catalog.update_product(product.id, {"status": "archived"})

    assert await catalog.delete_product(product.id) is True
    assert await catalog.product(product.id) is None
    assert await catalog.update_product(product.id, {"price": "1"}) is None


@pytest.mark.asyncio
async def test_user_admin(storage):
    users = UserService(storage)

    created = await users.create({"name": "Bob", "email": "bob@example.com"})
    assert created.created_at == NOW
    assert created.role == "customer"
    assert len(await users.users()) == 3

    assert (await users.update(created.id, {"role": "admin"})).role == "admin"
    assert (await users.set_status(created.id, "suspended")).status == "suspended"
    assert (await users.user(created.id)).status == "suspended"
    with pytest.raises(StorageError):
        await users.set_status(created.id, "banned")
    assert await users.set_status("missing", "inactive") is None


@pytest.mark.asyncio
async def test_deal_edit_revalidates(storage):
    deals = DealService(storage, clock=clock)

    edited = await deals.update("d1", {"discount_value": "30", "is_active": False})
    assert edited.discount_value == Decimal("30")
    assert deals.status_of(edited) == DealStatus.INACTIVE
    with pytest.raises(ValueError):
        await deals.update("d1", {"end_date": "2020-01-01T00:00:00"})
