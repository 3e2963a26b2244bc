"""Preorder model — a pre-launch reservation that may later convert into an order."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fitflow.utils import now_utc
from .base import Base


class Preorder(Base):
    __tablename__ = "preorders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    # Contact
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id"), nullable=True, index=True)

    box_type: Mapped[str] = mapped_column(String(64), nullable=False)

    # Personalization
    wants_personalization: Mapped[bool] = mapped_column(Boolean, default=False)
    sports: Mapped[list | None] = mapped_column(JSON, nullable=True)
    sport_other: Mapped[str | None] = mapped_column(Text, nullable=True)
    colors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    flavors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    flavor_other: Mapped[str | None] = mapped_column(Text, nullable=True)
    dietary: Mapped[list | None] = mapped_column(JSON, nullable=True)
    dietary_other: Mapped[str | None] = mapped_column(Text, nullable=True)
    size_upper: Mapped[str | None] = mapped_column(String(8), nullable=True)
    size_lower: Mapped[str | None] = mapped_column(String(8), nullable=True)
    additional_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Pricing snapshot at signup
    promo_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    original_price_eur: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    final_price_eur: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Conversion tracking
    conversion_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    conversion_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    conversion_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    converted_to_order_id: Mapped[int | None] = mapped_column(ForeignKey("orders.id"), nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)
