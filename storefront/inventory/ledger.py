"""Inventory ledger: every write to a product's stock goes through here.

Stock only moves through single ``UPDATE`` statements (``stock = stock + n``)
so concurrent writers serialize in the database instead of racing on a
read-modify-write in Python. Functions that take a ``session`` join the
caller's unit of work; raising from them rolls back everything the caller
did in that transaction.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.database import AsyncSessionLocal
from ..common.db import utcnow
from ..common.errors import InsufficientStock, InvalidQuantity, NotFound, ValidationError
from ..common.validation import optional_bool, optional_int
from ..realtime.publisher import publish_stock_updates
from .model import Product, product_to_dict

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryUpdate:
    product_id: int
    stock_qty: Optional[int] = None
    is_active: Optional[bool] = None

    @classmethod
    def from_payload(cls, raw: Any, index: Optional[int] = None) -> "InventoryUpdate":
        where = f"updates[{index}]" if index is not None else "Update"
        if not isinstance(raw, dict):
            raise ValidationError(f"{where} must be an object")
        try:
            product_id = optional_int(raw, "productId")
            stock_qty = optional_int(raw, "stockQty")
            is_active = optional_bool(raw, "isActive")
        except ValidationError as e:
            raise ValidationError(f"{where}: {e.message}") from e
        if product_id is None:
            raise ValidationError(f"{where}: productId is required")
        if stock_qty is not None and stock_qty < 0:
            raise InvalidQuantity(f"Stock for product {product_id} cannot be negative ({stock_qty})")
        return cls(product_id=product_id, stock_qty=stock_qty, is_active=is_active)

    def values(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if self.stock_qty is not None:
            values["stock"] = self.stock_qty
        if self.is_active is not None:
            values["is_active"] = self.is_active
        return values


async def stock_levels(session: AsyncSession, product_ids: Iterable[int]) -> Dict[int, int]:
    ids = list(set(product_ids))
    if not ids:
        return {}
    res = await session.execute(sa.select(Product.id, Product.stock).where(Product.id.in_(ids)))
    return {int(pid): int(stock) for pid, stock in res.all()}


async def _apply_increment(session: AsyncSession, product_id: int, amount: int) -> None:
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    if (res.rowcount or 0) == 0:
        raise NotFound(f"Product not found: {product_id}")


async def increment(product_id: int, amount: int, session: Optional[AsyncSession] = None) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidQuantity(f"Increment amount must be a positive integer, got {amount!r}")
    if session is not None:
        await _apply_increment(session, product_id, amount)
        return
    async with AsyncSessionLocal() as own:
        async with own.begin():
            await _apply_increment(own, product_id, amount)
            levels = await stock_levels(own, [product_id])
    _logger.info("Stock incremented | product_id=%s amount=%s", product_id, amount)
    await publish_stock_updates(levels)


async def restock(session: AsyncSession, items: Iterable[Tuple[int, int]]) -> List[int]:
    """Return each line's quantity to stock inside ``session``.

    The first missing product raises ``NotFound``; the caller's transaction
    then discards the increments already issued.
    """
    touched: List[int] = []
    for product_id, quantity in items:
        await increment(product_id, quantity, session=session)
        touched.append(product_id)
    return touched


async def reserve(session: AsyncSession, product_id: int, quantity: int) -> None:
    if quantity <= 0:
        raise InvalidQuantity(f"Reserved quantity must be positive, got {quantity}")
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    if (res.rowcount or 0) > 0:
        return
    current = (await session.execute(sa.select(Product.stock).where(Product.id == product_id))).first()
    if current is None:
        raise NotFound(f"Product not found: {product_id}")
    raise InsufficientStock(f"Insufficient stock for product {product_id}. Available: {current[0]}")


async def apply_update(session: AsyncSession, update: InventoryUpdate) -> None:
    """Write one validated update inside ``session``; a missing product raises ``NotFound``."""
    values = update.values()
    if not values:
        if await session.get(Product, update.product_id) is None:
            raise NotFound(f"Product not found: {update.product_id}")
        return
    values["updated_at"] = utcnow()
    stmt = (
        sa.update(Product)
        .where(Product.id == update.product_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    if (res.rowcount or 0) == 0:
        raise NotFound(f"Product not found: {update.product_id}")


async def bulk_set(raw_updates: Any) -> Dict[str, int]:
    """Apply partial stock/active updates to many products, all or nothing."""
    if not isinstance(raw_updates, list):
        raise ValidationError("Updates array is required")
    updates = [InventoryUpdate.from_payload(raw, i) for i, raw in enumerate(raw_updates)]

    async with AsyncSessionLocal() as session:
        async with session.begin():
            for update in updates:
                await apply_update(session, update)
            levels = await stock_levels(session, [u.product_id for u in updates if u.stock_qty is not None])

    _logger.info("Bulk inventory update applied | count=%s", len(updates))
    await publish_stock_updates(levels)
    return {"updatedCount": len(updates)}


async def inventory_report(
    low_stock_only: bool = False,
    category_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    page = max(page, 1)
    limit = min(max(limit, 1), 200)
    stmt = sa.select(Product).where(Product.is_active.is_(True))
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    if search:
        stmt = stmt.where(Product.name.ilike(f"%{search}%"))
    if low_stock_only:
        stmt = stmt.where(Product.stock <= Product.low_stock_alert)

    async with AsyncSessionLocal() as session:
        total = (await session.execute(sa.select(sa.func.count()).select_from(stmt.subquery()))).scalar() or 0
        res = await session.execute(
            stmt.order_by(Product.stock.asc(), Product.name.asc()).offset((page - 1) * limit).limit(limit)
        )
        products = res.scalars().all()

    items = [
        {
            "product": product_to_dict(prod),
            "stockQty": prod.stock,
            "lowStockAlert": prod.low_stock_alert,
            "isLowStock": prod.stock <= prod.low_stock_alert,
        }
        for prod in products
    ]
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "totalPages": (int(total) + limit - 1) // limit,
        },
    }
