"""Order model — a concrete box shipment, from a subscription cycle or a converted preorder."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fitflow.utils import now_utc
from .base import Base


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id"), nullable=True, index=True)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    shipping_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    address_id: Mapped[int | None] = mapped_column(ForeignKey("addresses.id"), nullable=True)

    box_type: Mapped[str] = mapped_column(String(64), nullable=False)
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

    promo_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    original_price_eur: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    final_price_eur: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    subscription_id: Mapped[int | None] = mapped_column(ForeignKey("subscriptions.id"), nullable=True, index=True)
    delivery_cycle_id: Mapped[int | None] = mapped_column(ForeignKey("delivery_cycles.id"), nullable=True)
    order_type: Mapped[str] = mapped_column(String(32), nullable=False, default="one-time")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    __table_args__ = (
        UniqueConstraint("subscription_id", "delivery_cycle_id", name="uq_order_subscription_cycle"),
    )
