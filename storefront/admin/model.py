from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..common.db import Base, utcnow


class ShopSettings(Base):
    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default="default")
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    company_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    currency_symbol: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


def shop_settings_to_dict(row: ShopSettings) -> dict:
    return {
        "companyName": row.company_name,
        "companyEmail": row.company_email,
        "companyPhone": row.company_phone,
        "companyAddress": row.company_address,
        "currency": row.currency,
        "currencySymbol": row.currency_symbol,
    }
