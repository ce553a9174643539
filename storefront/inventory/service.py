import logging
import re
from typing import Any, Dict, List, Optional

import sqlalchemy as sa

from ..common.database import AsyncSessionLocal, fetch_product, fetch_products
from ..common.errors import InvalidQuantity, NotFound, ValidationError
from ..common.validation import (
    optional_bool,
    optional_int,
    optional_number,
    optional_str,
    require_body,
    require_str,
)
from ..orders.model import OrderItem
from ..realtime.publisher import publish_stock_updates
from .ledger import InventoryUpdate, apply_update
from .model import Category, Product, category_to_dict, product_to_dict

_logger = logging.getLogger(__name__)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "item"


async def _unique_slug(session, base: str) -> str:
    slug, n = base, 1
    while (await session.execute(sa.select(Product.id).where(Product.slug == slug))).first():
        n += 1
        slug = f"{base}-{n}"
    return slug


async def get_products(category_id: Optional[int] = None) -> List[Dict[str, Any]]:
    return await fetch_products(active_only=True, category_id=category_id)


async def get_product(product_id: int) -> Dict[str, Any]:
    prod = await fetch_product(product_id)
    if prod is None:
        raise NotFound("Product not found")
    return prod


async def create_product(data: Any) -> Dict[str, Any]:
    body = require_body(data)
    name = require_str(body, "name")
    price = optional_number(body, "price", minimum=0)
    if price is None:
        raise ValidationError("price is required")
    stock = optional_int(body, "stockQty")
    if stock is None:
        stock = 0
    if stock < 0:
        raise InvalidQuantity("stockQty cannot be negative")
    min_qty = optional_int(body, "minOrderQty")
    if min_qty is None:
        min_qty = 1
    if min_qty < 1:
        raise ValidationError("minOrderQty must be at least 1")
    low_stock = optional_int(body, "lowStockAlert")
    if low_stock is not None and low_stock < 0:
        raise ValidationError("lowStockAlert cannot be negative")
    category_id = optional_int(body, "categoryId")
    is_active = optional_bool(body, "isActive")

    async with AsyncSessionLocal() as session:
        async with session.begin():
            if category_id is not None and await session.get(Category, category_id) is None:
                raise NotFound(f"Category not found: {category_id}")
            prod = Product(
                name=name,
                slug=await _unique_slug(session, slugify(optional_str(body, "slug") or name)),
                description=optional_str(body, "description"),
                category_id=category_id,
                price=price,
                unit_type=(optional_str(body, "unitType") or "PIECE").upper(),
                min_order_qty=min_qty,
                stock=stock,
                low_stock_alert=low_stock if low_stock is not None else 10,
                image_url=optional_str(body, "imageUrl"),
                is_active=True if is_active is None else is_active,
            )
            session.add(prod)
            await session.flush()
            result = product_to_dict(prod)
    _logger.info("Product created | product_id=%s slug=%s stock=%s", result["id"], result["slug"], stock)
    return result


async def get_categories() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            sa.select(Category).where(Category.is_active.is_(True)).order_by(Category.sort_order, Category.display_name)
        )
        return [category_to_dict(cat) for cat in res.scalars().all()]


async def create_category(data: Any) -> Dict[str, Any]:
    body = require_body(data)
    display_name = require_str(body, "displayName")
    name = slugify(optional_str(body, "name") or display_name)
    async with AsyncSessionLocal() as session:
        async with session.begin():
            if (await session.execute(sa.select(Category.id).where(Category.name == name))).first():
                raise ValidationError(f"Category {name} already exists")
            cat = Category(
                name=name,
                display_name=display_name,
                description=optional_str(body, "description"),
                sort_order=optional_int(body, "sortOrder") or 0,
            )
            session.add(cat)
            await session.flush()
            result = category_to_dict(cat)
    _logger.info("Category created | category_id=%s name=%s", result["id"], name)
    return result


_PRODUCT_TEXT_FIELDS = {"description": "description", "imageUrl": "image_url"}


async def _reload_product(session, product_id: int) -> Product:
    # stock writes go through UPDATE statements, so refresh what the session holds
    stmt = sa.select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    return (await session.execute(stmt)).scalar_one()


def _price_field(body: Dict[str, Any]) -> Optional[float]:
    price = optional_number(body, "price", minimum=0)
    if price is None:
        price = optional_number(body, "pricePerUnit", minimum=0)
    return price


def _inventory_fields(product_id: int, body: Dict[str, Any]) -> InventoryUpdate:
    return InventoryUpdate.from_payload(
        {"productId": product_id, "stockQty": body.get("stockQty"), "isActive": body.get("isActive")}
    )


async def update_product(product_id: int, data: Any) -> Dict[str, Any]:
    """Update any subset of a product's fields; stock goes through the ledger."""
    body = require_body(data)
    changes: Dict[str, Any] = {}
    if "name" in body:
        changes["name"] = require_str(body, "name")
    price = _price_field(body)
    if price is not None:
        changes["price"] = price
    unit_type = optional_str(body, "unitType")
    if unit_type:
        changes["unit_type"] = unit_type.upper()
    min_qty = optional_int(body, "minOrderQty")
    if min_qty is not None:
        if min_qty < 1:
            raise ValidationError("minOrderQty must be at least 1")
        changes["min_order_qty"] = min_qty
    low_stock = optional_int(body, "lowStockAlert")
    if low_stock is not None:
        if low_stock < 0:
            raise ValidationError("lowStockAlert cannot be negative")
        changes["low_stock_alert"] = low_stock
    for field, column in _PRODUCT_TEXT_FIELDS.items():
        if field in body:
            changes[column] = optional_str(body, field)
    slug = optional_str(body, "slug")
    category_id = optional_int(body, "categoryId")
    inventory = _inventory_fields(product_id, body)

    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = await session.get(Product, product_id)
            if prod is None:
                raise NotFound("Product not found")
            if slug and slugify(slug) != prod.slug:
                slug = slugify(slug)
                if (await session.execute(sa.select(Product.id).where(Product.slug == slug))).first():
                    raise ValidationError("A product with this slug already exists")
                changes["slug"] = slug
            if category_id is not None:
                if await session.get(Category, category_id) is None:
                    raise NotFound(f"Category not found: {category_id}")
                changes["category_id"] = category_id
            for column, value in changes.items():
                setattr(prod, column, value)
            await session.flush()
            await apply_update(session, inventory)
            result = product_to_dict(await _reload_product(session, product_id))

    _logger.info("Product updated | product_id=%s fields=%s", product_id, sorted(changes) + sorted(inventory.values()))
    if inventory.stock_qty is not None:
        await publish_stock_updates({product_id: result["stockQty"]})
    return result


async def patch_product(product_id: int, data: Any) -> Dict[str, Any]:
    """Quick admin edit of stock, active flag and price."""
    body = require_body(data)
    price = _price_field(body)
    inventory = _inventory_fields(product_id, body)
    if price is None and not inventory.values():
        raise ValidationError("No valid fields to update")

    async with AsyncSessionLocal() as session:
        async with session.begin():
            await apply_update(session, inventory)
            if price is not None:
                res = await session.execute(
                    sa.update(Product)
                    .where(Product.id == product_id)
                    .values(price=price)
                    .execution_options(synchronize_session=False)
                )
                if (res.rowcount or 0) == 0:
                    raise NotFound(f"Product not found: {product_id}")
            result = product_to_dict(await _reload_product(session, product_id))

    _logger.info("Product patched | product_id=%s stock=%s price=%s", product_id, inventory.stock_qty, price)
    if inventory.stock_qty is not None:
        await publish_stock_updates({product_id: result["stockQty"]})
    return result


async def delete_product(product_id: int) -> Dict[str, Any]:
    """Delete a product, or only deactivate it while order lines still point at it."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = await session.get(Product, product_id)
            if prod is None:
                raise NotFound("Product not found")
            referenced = (
                await session.execute(
                    sa.select(sa.func.count()).select_from(OrderItem).where(OrderItem.product_id == product_id)
                )
            ).scalar() or 0
            if referenced:
                prod.is_active = False
            else:
                await session.delete(prod)
    _logger.info("Product removed | product_id=%s deactivated_only=%s", product_id, bool(referenced))
    return {"id": product_id, "deleted": not referenced, "deactivated": bool(referenced)}


async def _find_category(session, ref: str) -> Optional[Category]:
    cat = None
    if str(ref).isdigit():
        cat = await session.get(Category, int(ref))
    if cat is None:
        cat = (await session.execute(sa.select(Category).where(Category.name == str(ref)))).scalar_one_or_none()
    return cat


async def _product_count(session, category_id: int) -> int:
    stmt = sa.select(sa.func.count()).select_from(Product).where(Product.category_id == category_id)
    return int((await session.execute(stmt)).scalar() or 0)


async def get_category(ref: str, include_products: bool = False) -> Dict[str, Any]:
    """Look a category up by id, then by name."""
    async with AsyncSessionLocal() as session:
        cat = await _find_category(session, ref)
        if cat is None:
            raise NotFound("Category not found")
        result = category_to_dict(cat)
        result["productCount"] = await _product_count(session, cat.id)
        if include_products:
            res = await session.execute(
                sa.select(Product)
                .where(Product.category_id == cat.id, Product.is_active.is_(True))
                .order_by(Product.created_at.desc(), Product.id.desc())
            )
            result["products"] = [product_to_dict(p) for p in res.scalars().all()]
    return result


async def update_category(category_id: int, data: Any) -> Dict[str, Any]:
    body = require_body(data)
    changes: Dict[str, Any] = {}
    if "name" in body:
        changes["name"] = slugify(require_str(body, "name"))
    if "displayName" in body:
        changes["display_name"] = require_str(body, "displayName")
    if "description" in body:
        changes["description"] = optional_str(body, "description")
    sort_order = optional_int(body, "sortOrder")
    if sort_order is not None:
        changes["sort_order"] = sort_order
    is_active = optional_bool(body, "isActive")
    if is_active is not None:
        changes["is_active"] = is_active

    async with AsyncSessionLocal() as session:
        async with session.begin():
            cat = await session.get(Category, category_id)
            if cat is None:
                raise NotFound("Category not found")
            name = changes.get("name")
            if name and name != cat.name:
                if (await session.execute(sa.select(Category.id).where(Category.name == name))).first():
                    raise ValidationError("A category with this name already exists")
            for column, value in changes.items():
                setattr(cat, column, value)
            await session.flush()
            result = category_to_dict(cat)
            result["productCount"] = await _product_count(session, category_id)
    _logger.info("Category updated | category_id=%s fields=%s", category_id, sorted(changes))
    return result


async def delete_category(category_id: int) -> Dict[str, Any]:
    """Delete a category, or only deactivate it while it still has products."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            cat = await session.get(Category, category_id)
            if cat is None:
                raise NotFound("Category not found")
            products = await _product_count(session, category_id)
            if products:
                cat.is_active = False
            else:
                await session.delete(cat)
    _logger.info("Category removed | category_id=%s deactivated_only=%s", category_id, bool(products))
    return {"id": category_id, "deleted": not products, "deactivated": bool(products)}
