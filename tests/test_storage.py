import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import asyncio
import threading
from datetime import datetime
from decimal import Decimal

import pytest

from storefront.domain import (
    Customer,
    Deal,
    DiscountType,
    Order,
    OrderItem,
    Product,
    ShippingMethod,
)
from storefront.service import run_sync
from storefront.storage import MemStorage, StorageError

NOW = datetime(2025, 10, 1, 12, 0)
SEED_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "seed.json")

CUSTOMER = Customer(
    name="Ann Lee",
    email="ann@example.com",
    address="1 Main St",
    city="Fresno",
    region="CA",
    zip_code="93650",
)


def make_order(order_id, items, deal_id=None, total="100.00"):
    return Order(
        id=order_id,
        customer=CUSTOMER,
        items=tuple(
            OrderItem(product_id=pid, quantity=qty, price=Decimal("10.00"))
            for pid, qty in items
        ),
        subtotal=Decimal(total),
        discount=Decimal("0"),
        shipping=Decimal("0"),
        tax=Decimal("0"),
        total=Decimal(total),
        shipping_method=ShippingMethod.STANDARD,
        created_at=NOW,
        deal_id=deal_id,
    )


@pytest.fixture
def storage():
    products = (
        Product(id="p1", name="Mug", price=Decimal("10.00"), category_id="c1", stock=3),
        Product(id="p2", name="Tea", price=Decimal("5.00"), category_id="c1", stock=10),
    )
    deals = (
        Deal(
            id="d1",
            title="Last one",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("5"),
            start_date=datetime(2025, 1, 1),
            end_date=datetime(2030, 1, 1),
            max_uses=1,
        ),
    )
    return MemStorage(products=products, deals=deals, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_create_order_decrements_stock_and_redeems_deal(storage):
    await storage.create_order(make_order("o1", [("p1", 2), ("p2", 1)], deal_id="d1"))

    assert (await storage.get_product_by_id("p1")).stock == 1
    assert (await storage.get_product_by_id("p2")).stock == 9
    assert (await storage.get_deal_by_id("d1")).current_uses == 1
    assert [o.id for o in await storage.get_orders()] == ["o1"]


@pytest.mark.asyncio
async def test_rejected_order_changes_nothing(storage):
    """Вторая позиция не проходит - первая тоже не списывается"""
    with pytest.raises(StorageError):
        await storage.create_order(make_order("o1", [("p2", 1), ("p1", 4)]))

    assert (await storage.get_product_by_id("p2")).stock == 10
    assert await storage.get_orders() == ()


@pytest.mark.asyncio
async def test_used_up_deal_rejects_order(storage):
    await storage.create_order(make_order("o1", [("p2", 1)], deal_id="d1"))

    with pytest.raises(StorageError, match="used up"):
        await storage.create_order(make_order("o2", [("p2", 1)], deal_id="d1"))

    assert (await storage.get_product_by_id("p2")).stock == 9
    assert (await storage.get_deal_by_id("d1")).current_uses == 1


@pytest.mark.asyncio
async def test_duplicate_and_unknown(storage):
    await storage.create_order(make_order("o1", [("p2", 1)]))
    with pytest.raises(StorageError):
        await storage.create_order(make_order("o1", [("p2", 1)]))
    with pytest.raises(StorageError):
        await storage.create_order(make_order("o2", [("p404", 1)]))
    with pytest.raises(StorageError):
        await storage.create_order(make_order("o3", [("p2", 1)], deal_id="d404"))


@pytest.mark.asyncio
async def test_concurrent_orders_never_oversell(storage):
    results = await asyncio.gather(
        storage.create_order(make_order("o1", [("p1", 2)])),
        storage.create_order(make_order("o2", [("p1", 2)])),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, StorageError)]
    assert len(failures) == 1
    assert (await storage.get_product_by_id("p1")).stock == 1
    assert len(await storage.get_orders()) == 1


@pytest.mark.asyncio
async def test_order_snapshot_survives_price_change(storage):
    await storage.create_order(make_order("o1", [("p1", 1)]))
    await storage.update_product("p1", {"price": "99.99"})

    order = await storage.get_order_by_id("o1")
    assert order.items[0].price == Decimal("10.00")
    assert (await storage.get_product_by_id("p1")).price == Decimal("99.99")


@pytest.mark.asyncio
async def test_order_status(storage):
    await storage.create_order(make_order("o1", [("p2", 1)]))

    assert (await storage.update_order_status("o1", "shipped")).status == "shipped"
    assert await storage.update_order_status("missing", "shipped") is None
    with pytest.raises(StorageError):
        await storage.update_order_status("o1", "lost")


@pytest.mark.asyncio
async def test_deal_crud_keeps_invariants(storage):
    deal = await storage.create_deal(
        {
            "title": "Weekend",
            "discount_type": "percentage",
            "discount_value": "10",
            "start_date": "2025-10-04T00:00:00",
            "end_date": "2025-10-05T23:59:59",
        }
    )
    assert deal.id.startswith("deal_")
    assert deal.created_at == NOW

    updated = await storage.update_deal(deal.id, {"discount_value": "15"})
    assert updated.discount_value == Decimal("15")
    assert updated.start_date == datetime(2025, 10, 4)

    with pytest.raises(ValueError):
        await storage.update_deal(deal.id, {"end_date": "2025-10-01T00:00:00"})
    assert (await storage.get_deal_by_id(deal.id)).discount_value == Decimal("15")

    assert await storage.update_deal("missing", {"title": "x"}) is None
    assert await storage.delete_deal(deal.id) is True
    assert await storage.delete_deal(deal.id) is False


@pytest.mark.asyncio
async def test_product_and_user_statuses(storage):
    with pytest.raises(StorageError):
        await storage.update_product("p1", {"status": "deleted"})
    assert (await storage.update_product_stock("p1", 0)).stock == 0

    user = await storage.create_user({"name": "Bob", "email": "bob@example.com"})
    assert user.created_at == NOW
    assert (await storage.update_user_status(user.id, "suspended")).status == "suspended"
    with pytest.raises(StorageError):
        await storage.update_user_status(user.id, "banned")


@pytest.mark.asyncio
async def test_from_seed():
    storage = MemStorage.from_seed(SEED_PATH)

    assert len(await storage.get_products()) == 6
    assert len(await storage.get_products_by_category("c2")) == 1
    assert (await storage.get_category_by_id("c1")).name == "Electronics"
    assert (await storage.get_user_by_id("u2")).role == "admin"


def test_orders_from_parallel_ui_threads(storage):
    """Каждый поток Streamlit гоняет run_sync со своим циклом событий"""
    results = {}

    def checkout(i):
        try:
            run_sync(storage.create_order(make_order(f"o{i}", [("p1", 1)])))
            results[i] = "ok"
        except StorageError:
            results[i] = "rejected"

    threads = [threading.Thread(target=checkout, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert not any(t.is_alive() for t in threads)
    assert sorted(results.values()) == ["ok"] * 3 + ["rejected"] * 5
    assert run_sync(storage.get_product_by_id("p1")).stock == 0
    assert len(run_sync(storage.get_orders())) == 3
