import enum
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..common.db import Base, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    buyer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    buyer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    buyer_phone: Mapped[str] = mapped_column(String(64), nullable=False)
    buyer_company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    buyer_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Set once at creation from the line items; never recomputed
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=OrderStatus.PENDING.value, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    attributes: Mapped[Dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def order_item_to_dict(item: OrderItem) -> dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "productName": item.product_name,
        "quantity": item.quantity,
        "unitPrice": item.unit_price,
        "selectedAttributes": dict(item.attributes or {}),
        "subtotal": item.subtotal,
    }


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "buyerName": order.buyer_name,
        "buyerEmail": order.buyer_email,
        "buyerPhone": order.buyer_phone,
        "buyerCompany": order.buyer_company,
        "buyerAddress": order.buyer_address,
        "totalAmount": order.total_amount,
        "currency": order.currency,
        "status": order.status,
        "notes": order.notes,
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
        "items": [order_item_to_dict(item) for item in order.items],
    }
