from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..common.db import Base, utcnow


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    products: Mapped[List["Product"]] = relationship(back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"), nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    unit_type: Mapped[str] = mapped_column(String(16), nullable=False, default="PIECE")
    min_order_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_alert: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category: Mapped[Optional[Category]] = relationship(back_populates="products")


def product_to_dict(prod: Product) -> dict:
    return {
        "id": prod.id,
        "name": prod.name,
        "slug": prod.slug,
        "description": prod.description,
        "categoryId": prod.category_id,
        "price": prod.price,
        "unitType": prod.unit_type,
        "minOrderQty": prod.min_order_qty,
        "stockQty": prod.stock,
        "lowStockAlert": prod.low_stock_alert,
        "imageUrl": prod.image_url,
        "isActive": prod.is_active,
    }


def category_to_dict(cat: Category) -> dict:
    return {
        "id": cat.id,
        "name": cat.name,
        "displayName": cat.display_name,
        "description": cat.description,
        "sortOrder": cat.sort_order,
        "isActive": cat.is_active,
    }
