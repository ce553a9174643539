import logging
import secrets
import string
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import selectinload

from ..common.config import settings
from ..common.database import AsyncSessionLocal, get_or_create_shop_settings
from ..common.db import utcnow
from ..common.errors import InsufficientStock, NotFound, ProductUnavailable, ValidationError
from ..common.validation import (
    optional_attributes,
    optional_str,
    require_body,
    require_int,
    require_list,
    require_str,
)
from ..inventory.ledger import reserve, stock_levels
from ..inventory.model import Product
from ..realtime.publisher import publish_stock_updates
from .events import ORDER_CREATED, publish_order_event
from .model import Order, OrderItem, OrderStatus, order_to_dict

_logger = logging.getLogger(__name__)

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"{settings.ORDER_NUMBER_PREFIX}-{utcnow():%y%m%d}-{suffix}"


def parse_order_request(data: Any) -> Dict[str, Any]:
    body = require_body(data)
    email = require_str(body, "buyerEmail")
    if "@" not in email:
        raise ValidationError("Valid email is required")
    raw_items = require_list(body, "items", min_items=1)
    items = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        items.append(
            {
                "productId": require_int(raw, "productId"),
                "quantity": require_int(raw, "quantity", minimum=1),
                "selectedAttributes": optional_attributes(raw),
            }
        )
    return {
        "buyerName": require_str(body, "buyerName"),
        "buyerEmail": email,
        "buyerPhone": require_str(body, "buyerPhone"),
        "buyerCompany": optional_str(body, "buyerCompany"),
        "buyerAddress": optional_str(body, "buyerAddress"),
        "notes": optional_str(body, "notes"),
        "items": items,
    }


async def place_order(data: Any) -> Dict[str, Any]:
    """Turn a checkout request into a PENDING order.

    Prices come from the catalog at placement time, not from the client.
    With RESERVE_STOCK_ON_ORDER the stock is taken in the same transaction
    that writes the order.
    """
    request = parse_order_request(data)

    async with AsyncSessionLocal() as session:
        async with session.begin():
            shop = await get_or_create_shop_settings(session)
            lines: List[OrderItem] = []
            total = 0.0
            for item in request["items"]:
                product = await session.get(Product, item["productId"])
                if product is None:
                    raise NotFound(f"Product not found: {item['productId']}")
                if not product.is_active:
                    raise ProductUnavailable(f"Product {product.name} is no longer available")
                if item["quantity"] < product.min_order_qty:
                    raise ValidationError(f"Minimum order quantity for {product.name} is {product.min_order_qty}")
                if item["quantity"] > product.stock:
                    raise InsufficientStock(f"Insufficient stock for {product.name}. Available: {product.stock}")
                subtotal = item["quantity"] * product.price
                total += subtotal
                lines.append(
                    OrderItem(
                        product_id=product.id,
                        product_name=product.name,
                        quantity=item["quantity"],
                        unit_price=product.price,
                        attributes=item["selectedAttributes"],
                        subtotal=subtotal,
                    )
                )

            order = Order(
                order_number=generate_order_number(),
                buyer_name=request["buyerName"],
                buyer_email=request["buyerEmail"],
                buyer_phone=request["buyerPhone"],
                buyer_company=request["buyerCompany"],
                buyer_address=request["buyerAddress"],
                notes=request["notes"],
                total_amount=round(total, 2),
                currency=shop.currency,
                status=OrderStatus.PENDING.value,
                items=lines,
            )
            session.add(order)
            await session.flush()

            levels: Dict[int, int] = {}
            if settings.RESERVE_STOCK_ON_ORDER:
                for line in lines:
                    await reserve(session, line.product_id, line.quantity)
                levels = await stock_levels(session, [line.product_id for line in lines])

    result = order_to_dict(order)
    _logger.info(
        "Order placed | order_id=%s number=%s items=%s total=%s",
        order.id,
        order.order_number,
        len(lines),
        order.total_amount,
    )
    await publish_stock_updates(levels)
    await publish_order_event(ORDER_CREATED, result)
    return result


async def get_order(ref: str) -> Dict[str, Any]:
    """Look an order up by numeric id, then by order number."""
    async with AsyncSessionLocal() as session:
        order: Optional[Order] = None
        if str(ref).isdigit():
            stmt = sa.select(Order).where(Order.id == int(ref)).options(selectinload(Order.items))
            order = (await session.execute(stmt)).scalar_one_or_none()
        if order is None:
            stmt = sa.select(Order).where(Order.order_number == str(ref)).options(selectinload(Order.items))
            order = (await session.execute(stmt)).scalar_one_or_none()
        if order is None:
            raise NotFound("Order not found")
        return order_to_dict(order)


async def list_orders(
    status: Optional[str] = None,
    buyer_email: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    stmt = sa.select(Order)
    if status:
        stmt = stmt.where(Order.status == status.strip().upper())
    if buyer_email:
        stmt = stmt.where(Order.buyer_email == buyer_email)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            sa.or_(
                Order.order_number.ilike(pattern),
                Order.buyer_name.ilike(pattern),
                Order.buyer_email.ilike(pattern),
                Order.buyer_company.ilike(pattern),
            )
        )

    async with AsyncSessionLocal() as session:
        total = (await session.execute(sa.select(sa.func.count()).select_from(stmt.subquery()))).scalar() or 0
        res = await session.execute(
            stmt.options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        orders = [order_to_dict(o) for o in res.scalars().all()]

    return {
        "items": orders,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "totalPages": (int(total) + limit - 1) // limit,
        },
    }
