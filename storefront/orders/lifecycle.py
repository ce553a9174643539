"""Order status state machine and its inventory side effects.

Allowed moves::

    PENDING    -> CONFIRMED | CANCELLED
    CONFIRMED  -> PROCESSING | CANCELLED
    PROCESSING -> DELIVERED | CANCELLED
    DELIVERED, CANCELLED: terminal

Moving to CANCELLED returns every line item's quantity to stock. The
restock and the status/notes update share one database transaction: if any
increment fails (for example the product was deleted) neither the order
nor any product changes.

The status write is a compare-and-set on the status the order was read
with, and it runs before any restock. Of two overlapping cancellations of
the same order only one updates the row; the other is rejected, so stock
is returned once.

``cancel`` is stricter than the table above and only accepts PENDING or
CONFIRMED orders, while ``transition`` may also cancel a PROCESSING order.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Union

import sqlalchemy as sa
from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from ..common.database import AsyncSessionLocal
from ..common.db import utcnow
from ..common.errors import InvalidStatus, InvalidTransition, NotFound, ValidationError
from ..inventory.ledger import restock, stock_levels
from ..realtime.publisher import publish_stock_updates
from .events import ORDER_STATUS_CHANGED, publish_order_event
from .model import Order, OrderStatus, order_to_dict

_logger = logging.getLogger(__name__)

STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(s for s, nxt in STATUS_TRANSITIONS.items() if not nxt)
CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

CANCEL_NOTE = "Order cancelled"

ORDER_TRANSITIONS = Counter(
    "order_status_transitions_total",
    "Order status transitions committed",
    ["from_status", "to_status"],
)
STOCK_RESTORED_UNITS = Counter(
    "stock_restored_units_total",
    "Units returned to stock by order cancellations",
)


def parse_status(value: Union[OrderStatus, str]) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid status: {value!r}. Expected one of {allowed}") from None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in STATUS_TRANSITIONS[current]


def append_note(existing: Optional[str], note: str, now: Optional[datetime] = None) -> str:
    entry = f"[{(now or utcnow()).isoformat()}] {note}"
    if not existing:
        return entry
    return f"{existing}\n{entry}"


async def _load_order(session: AsyncSession, order_id: int) -> Order:
    stmt = (
        sa.select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
        .with_for_update()
    )
    order = (await session.execute(stmt)).scalar_one_or_none()
    if order is None:
        raise NotFound("Order not found")
    return order


async def _current_status(session: AsyncSession, order_id: int) -> str:
    status = (await session.execute(sa.select(Order.status).where(Order.id == order_id))).scalar_one_or_none()
    if status is None:
        raise NotFound("Order not found")
    return status


async def _claim(
    session: AsyncSession, order: Order, previous: OrderStatus, target: OrderStatus, note: Optional[str]
) -> bool:
    """Write the new status only while the row still holds ``previous``.

    SQLite ignores ``FOR UPDATE``; the status guard in the ``WHERE`` clause
    makes a second concurrent writer update zero rows instead.
    """
    now = utcnow()
    notes = append_note(order.notes, note, now) if note else order.notes
    res = await session.execute(
        sa.update(Order)
        .where(Order.id == order.id, Order.status == previous.value)
        .values(status=target.value, updated_at=now, notes=notes)
        .execution_options(synchronize_session=False)
    )
    if (res.rowcount or 0) == 0:
        return False
    set_committed_value(order, "status", target.value)
    set_committed_value(order, "updated_at", now)
    set_committed_value(order, "notes", notes)
    return True


async def _restock_cancelled(session: AsyncSession, order: Order) -> Dict[int, int]:
    touched = await restock(session, [(item.product_id, item.quantity) for item in order.items])
    return await stock_levels(session, touched)


async def _after_commit(order: Order, previous: OrderStatus, levels: Dict[int, int]) -> Dict:
    result = order_to_dict(order)
    ORDER_TRANSITIONS.labels(from_status=previous.value, to_status=order.status).inc()
    if order.status == OrderStatus.CANCELLED.value:
        STOCK_RESTORED_UNITS.inc(sum(item.quantity for item in order.items))
    _logger.info(
        "Order status changed | order_id=%s from=%s to=%s restocked=%s",
        order.id,
        previous.value,
        order.status,
        sorted(levels),
    )
    await publish_stock_updates(levels)
    await publish_order_event(ORDER_STATUS_CHANGED, {**result, "previousStatus": previous.value})
    return result


async def transition(order_id: int, target: Union[OrderStatus, str], notes: Optional[str] = None) -> Dict:
    """Move an order along the status graph, restocking on cancellation."""
    target_status = parse_status(target)
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = await _load_order(session, order_id)
            previous = OrderStatus(order.status)
            if not can_transition(previous, target_status):
                raise InvalidTransition(f"Cannot transition from {previous.value} to {target_status.value}")
            if not await _claim(session, order, previous, target_status, notes):
                current = await _current_status(session, order_id)
                raise InvalidTransition(f"Cannot transition from {current} to {target_status.value}")
            levels: Dict[int, int] = {}
            if target_status is OrderStatus.CANCELLED:
                levels = await _restock_cancelled(session, order)
    return await _after_commit(order, previous, levels)


async def cancel(order_id: int) -> Dict:
    """Cancel a PENDING or CONFIRMED order and restore its stock."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = await _load_order(session, order_id)
            previous = OrderStatus(order.status)
            if previous not in CANCELLABLE_STATUSES:
                raise InvalidStatus(f"Cannot cancel order with status {previous.value}")
            if not await _claim(session, order, previous, OrderStatus.CANCELLED, CANCEL_NOTE):
                current = await _current_status(session, order_id)
                raise InvalidStatus(f"Cannot cancel order with status {current}")
            levels = await _restock_cancelled(session, order)
    return await _after_commit(order, previous, levels)
