import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import sqlalchemy as sa
from sqlalchemy.orm import selectinload

from ..common.database import AsyncSessionLocal, get_or_create_shop_settings
from ..common.db import utcnow
from ..common.errors import ValidationError
from ..common.validation import optional_str, require_body
from ..inventory.model import Product
from ..orders.model import Order, OrderStatus, order_to_dict
from .model import shop_settings_to_dict

_logger = logging.getLogger(__name__)

_EDITABLE_SETTINGS = {
    "companyName": "company_name",
    "companyEmail": "company_email",
    "companyPhone": "company_phone",
    "companyAddress": "company_address",
    "currency": "currency",
    "currencySymbol": "currency_symbol",
}
_REQUIRED_SETTINGS = {"companyName", "currency", "currencySymbol"}


async def get_shop_settings() -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        async with session.begin():
            row = await get_or_create_shop_settings(session)
            return shop_settings_to_dict(row)


async def get_currencies() -> List[Dict[str, str]]:
    """The shop trades in one currency, taken from its settings."""
    shop = await get_shop_settings()
    return [{"label": shop["currency"], "symbol": shop["currencySymbol"]}]


async def update_shop_settings(data: Any) -> Dict[str, Any]:
    body = require_body(data)
    unknown = set(body) - set(_EDITABLE_SETTINGS)
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")
    changes = {}
    for field, column in _EDITABLE_SETTINGS.items():
        if field not in body:
            continue
        value = optional_str(body, field)
        if value is None and field in _REQUIRED_SETTINGS:
            raise ValidationError(f"{field} cannot be empty")
        if field in ("companyEmail",) and value is not None and "@" not in value:
            raise ValidationError("Valid email is required")
        changes[column] = value

    async with AsyncSessionLocal() as session:
        async with session.begin():
            row = await get_or_create_shop_settings(session)
            for column, value in changes.items():
                setattr(row, column, value)
            await session.flush()
            result = shop_settings_to_dict(row)
    _logger.info("Shop settings updated | fields=%s", sorted(changes))
    return result


def _month_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


async def dashboard_stats() -> Dict[str, Any]:
    now = utcnow()
    async with AsyncSessionLocal() as session:
        count = sa.func.count()
        total_orders = (await session.execute(sa.select(count).select_from(Order))).scalar() or 0
        pending_orders = (
            await session.execute(
                sa.select(count).select_from(Order).where(Order.status == OrderStatus.PENDING.value)
            )
        ).scalar() or 0
        total_products = (await session.execute(sa.select(count).select_from(Product))).scalar() or 0
        active_products = (
            await session.execute(sa.select(count).select_from(Product).where(Product.is_active.is_(True)))
        ).scalar() or 0
        low_stock = (
            await session.execute(
                sa.select(count)
                .select_from(Product)
                .where(Product.is_active.is_(True), Product.stock <= Product.low_stock_alert)
            )
        ).scalar() or 0
        revenue = (
            await session.execute(
                sa.select(sa.func.coalesce(sa.func.sum(Order.total_amount), 0.0)).where(
                    Order.status == OrderStatus.DELIVERED.value,
                    Order.created_at >= _month_start(now),
                )
            )
        ).scalar() or 0.0
        recent = await session.execute(
            sa.select(Order)
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(10)
        )
        recent_orders = [order_to_dict(o) for o in recent.scalars().all()]

    return {
        "totalOrders": int(total_orders),
        "pendingOrders": int(pending_orders),
        "totalProducts": int(total_products),
        "activeProducts": int(active_products),
        "lowStockProducts": int(low_stock),
        "monthlyRevenue": round(float(revenue), 2),
        "recentOrders": recent_orders,
    }
