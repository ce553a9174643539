from typing import Any, Dict, Iterable, List, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from .config import settings
from .db import Base
from ..admin.model import ShopSettings
from ..inventory.model import Product, product_to_dict
from ..orders.model import Order, OrderItem  # noqa: F401  registers tables on Base.metadata


def _engine_kwargs(url: str) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"future": True, "echo": False}
    # aiosqlite connections run on their own thread; don't pool them across event loops
    if url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    return kwargs


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, **_engine_kwargs(settings.DB_URL))
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def get_or_create_shop_settings(session: AsyncSession) -> ShopSettings:
    row = await session.get(ShopSettings, "default")
    if row is None:
        row = ShopSettings(
            id="default",
            company_name=settings.DEFAULT_COMPANY_NAME,
            currency=settings.DEFAULT_CURRENCY,
            currency_symbol=settings.DEFAULT_CURRENCY_SYMBOL,
        )
        session.add(row)
        await session.flush()
    return row


async def fetch_product(product_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        prod = await session.get(Product, product_id)
        if not prod:
            return None
        return product_to_dict(prod)


async def fetch_products(active_only: bool = True, category_id: Optional[int] = None) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product).order_by(Product.name)
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)
        res = await session.execute(stmt)
        return [product_to_dict(prod) for prod in res.scalars().all()]


async def fetch_products_by_ids(product_ids: Iterable[int], active_only: bool = True) -> Dict[int, Dict[str, Any]]:
    ids = list(set(product_ids))
    if not ids:
        return {}
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product).where(Product.id.in_(ids))
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        res = await session.execute(stmt)
        return {prod.id: product_to_dict(prod) for prod in res.scalars().all()}

