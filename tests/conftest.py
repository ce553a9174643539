import asyncio
import os
import tempfile
from pathlib import Path

# Settings are read at import time, so the environment must be ready first
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["REDIS_ENABLED"] = "false"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "s3cret"

import pytest
import sqlalchemy as sa

from storefront.cart.store import MemoryCartStore
from storefront.common.database import AsyncSessionLocal, drop_db, init_db
from storefront.inventory.model import Product
from storefront.orders.model import Order, OrderItem

ADMIN_CREDENTIALS = {"email": "admin@example.com", "password": "s3cret"}


class Factory:
    """Writes rows directly, bypassing the services under test."""

    def __init__(self):
        self._seq = 0

    async def product(self, name=None, stock=100, price=10.0, is_active=True, **fields) -> int:
        self._seq += 1
        name = name or f"Product {self._seq}"
        async with AsyncSessionLocal() as session:
            async with session.begin():
                prod = Product(
                    name=name,
                    slug=f"product-{self._seq}",
                    stock=stock,
                    price=price,
                    is_active=is_active,
                    **fields,
                )
                session.add(prod)
                await session.flush()
                return prod.id

    async def order(self, lines, status="PENDING", notes=None) -> int:
        """``lines`` is a list of ``(product_id, quantity, unit_price)``."""
        self._seq += 1
        items = [
            OrderItem(
                product_id=pid,
                product_name=f"Product {pid}",
                quantity=qty,
                unit_price=price,
                attributes={},
                subtotal=qty * price,
            )
            for pid, qty, price in lines
        ]
        async with AsyncSessionLocal() as session:
            async with session.begin():
                order = Order(
                    order_number=f"TEST-{self._seq:04d}",
                    buyer_name="Ada Buyer",
                    buyer_email="ada@example.com",
                    buyer_phone="555-0100",
                    total_amount=sum(i.subtotal for i in items),
                    currency="INR",
                    status=status,
                    notes=notes,
                    items=items,
                )
                session.add(order)
                await session.flush()
                return order.id

    async def stock(self, product_id):
        async with AsyncSessionLocal() as session:
            row = (await session.execute(sa.select(Product.stock).where(Product.id == product_id))).first()
            return int(row[0]) if row else None

    async def order_row(self, order_id) -> Order:
        async with AsyncSessionLocal() as session:
            return await session.get(Order, order_id)

    async def delete_product(self, product_id) -> None:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                await session.execute(sa.delete(Product).where(Product.id == product_id))

    async def set_price(self, product_id, price) -> None:
        async with AsyncSessionLocal() as session:
            async with session.begin():
                await session.execute(sa.update(Product).where(Product.id == product_id).values(price=price))


@pytest.fixture(autouse=True)
def database():
    asyncio.run(init_db())
    yield
    asyncio.run(drop_db())


@pytest.fixture
def run():
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture
def factory():
    return Factory()


@pytest.fixture
def app():
    from storefront.app import create_app

    return create_app(cart_store=MemoryCartStore())


async def _admin_client(app):
    client = app.test_client()
    resp = await client.post("/admin/login", json=ADMIN_CREDENTIALS)
    assert resp.status_code == 200
    return client


@pytest.fixture
def login():
    """Return a coroutine function that yields a logged-in admin test client."""
    return _admin_client
