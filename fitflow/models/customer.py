"""Customer and address models — the people and places boxes ship to."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fitflow.utils import now_utc
from .base import Base


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_subscriber: Mapped[bool] = mapped_column(Boolean, default=False)
    is_staff: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    # Relationships
    addresses: Mapped[list["Address"]] = relationship(back_populates="customer")
    subscriptions: Mapped[list["Subscription"]] = relationship(back_populates="customer")


class Address(Base):
    __tablename__ = "addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(16), nullable=False)
    street_address: Mapped[str] = mapped_column(String(255), nullable=False)
    building_entrance: Mapped[str | None] = mapped_column(String(32), nullable=True)
    floor: Mapped[str | None] = mapped_column(String(16), nullable=True)
    apartment: Mapped[str | None] = mapped_column(String(16), nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)

    customer: Mapped["Customer"] = relationship(back_populates="addresses")

    def to_snapshot(self) -> dict:
        """Frozen copy stored on orders so later edits don't rewrite history."""
        return {
            "full_name": self.full_name,
            "phone": self.phone,
            "city": self.city,
            "postal_code": self.postal_code,
            "street_address": self.street_address,
            "building_entrance": self.building_entrance,
            "floor": self.floor,
            "apartment": self.apartment,
            "delivery_notes": self.delivery_notes,
        }
