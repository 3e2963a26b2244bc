"""Subscription model — a recurring commitment to receive a box — and its audit trail."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fitflow.constants import SUBSCRIPTION_FREQUENCIES, SUBSCRIPTION_STATUSES
from fitflow.utils import now_utc
from .base import Base


def _one_of(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    box_type: Mapped[str] = mapped_column(String(64), nullable=False)
    frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", index=True)

    # Personalization; updates affect future orders only
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

    # Pricing snapshot at creation
    promo_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    base_price_eur: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    current_price_eur: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    default_address_id: Mapped[int | None] = mapped_column(ForeignKey("addresses.id"), nullable=True)

    # Cycle tracking
    first_cycle_id: Mapped[int | None] = mapped_column(ForeignKey("delivery_cycles.id"), nullable=True)
    last_delivered_cycle_id: Mapped[int | None] = mapped_column(ForeignKey("delivery_cycles.id"), nullable=True)

    # Lifecycle timestamps
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    __table_args__ = (
        CheckConstraint(_one_of("frequency", SUBSCRIPTION_FREQUENCIES), name="ck_subscription_frequency"),
        CheckConstraint(_one_of("status", SUBSCRIPTION_STATUSES), name="ck_subscription_status"),
    )

    customer: Mapped["Customer"] = relationship(back_populates="subscriptions")
    history: Mapped[list["SubscriptionHistory"]] = relationship(back_populates="subscription")


class SubscriptionHistory(Base):
    __tablename__ = "subscription_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(ForeignKey("subscriptions.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    performed_by: Mapped[int | None] = mapped_column(ForeignKey("customers.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    subscription: Mapped["Subscription"] = relationship(back_populates="history")
