import asyncio
import logging

import sqlalchemy as sa

from .common.database import init_db, AsyncSessionLocal, get_or_create_shop_settings
from .inventory.model import Category, Product
from .inventory.service import slugify

_logger = logging.getLogger(__name__)


SAMPLE_CATEGORIES = [
    {"name": "electronics", "display_name": "Electronics", "sort_order": 1},
    {"name": "apparel", "display_name": "Apparel", "sort_order": 2},
]

SAMPLE_PRODUCTS = [
    {"name": "Laptop Pro 14", "category": "electronics", "stock": 20, "price": 1499.00},
    {"name": "Wireless Mouse", "category": "electronics", "stock": 150, "price": 24.99},
    {"name": "Mechanical Keyboard", "category": "electronics", "stock": 80, "price": 89.99},
    {"name": "USB-C Hub", "category": "electronics", "stock": 120, "price": 39.99},
    {"name": "Noise-cancelling Headphones", "category": "electronics", "stock": 35, "price": 199.99},
    {"name": "Portable SSD 1TB", "category": "electronics", "stock": 60, "price": 99.99},
    {"name": "Cotton T-Shirt", "category": "apparel", "stock": 200, "price": 14.99},
    {"name": "Hoodie", "category": "apparel", "stock": 8, "price": 49.99},
]


async def seed_catalog() -> int:
    """Insert sample categories and products that are not there yet."""
    await init_db()
    added = 0
    async with AsyncSessionLocal() as session:
        async with session.begin():
            await get_or_create_shop_settings(session)
            categories = {}
            for c in SAMPLE_CATEGORIES:
                cat = (await session.execute(sa.select(Category).where(Category.name == c["name"]))).scalar_one_or_none()
                if cat is None:
                    cat = Category(**c)
                    session.add(cat)
                    await session.flush()
                categories[c["name"]] = cat.id
            for p in SAMPLE_PRODUCTS:
                slug = slugify(p["name"])
                # avoid duplicates by slug
                res = await session.execute(sa.select(Product.id).where(Product.slug == slug))
                if res.first():
                    continue
                session.add(
                    Product(
                        name=p["name"],
                        slug=slug,
                        category_id=categories[p["category"]],
                        stock=p["stock"],
                        price=p["price"],
                    )
                )
                added += 1
    _logger.info("Seed complete | added_products=%s", added)
    return added


async def amain():
    logging.basicConfig(level=logging.INFO)
    await seed_catalog()


if __name__ == "__main__":
    asyncio.run(amain())
