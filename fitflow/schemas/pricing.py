"""Pricing and promo-code Pydantic schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator


class PriceInfo(BaseModel):
    """Prices for one box, EUR as source of truth and BGN derived at a fixed rate."""

    box_type: str | None = None
    original_price_eur: Decimal
    original_price_bgn: Decimal
    discount_percent: Decimal = Decimal("0")
    discount_amount_eur: Decimal = Decimal("0.00")
    discount_amount_bgn: Decimal = Decimal("0.00")
    final_price_eur: Decimal
    final_price_bgn: Decimal
    promo_code: str | None = None


class PromoCodeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    discount_percent: Decimal
    description: str | None = None
    is_enabled: bool = True
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    max_uses: int | None = Field(None, ge=1)
    max_uses_per_user: int | None = Field(None, ge=1)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Promo code must not be blank")
        return v

    @field_validator("discount_percent")
    @classmethod
    def validate_discount(cls, v: Decimal) -> Decimal:
        if v <= 0 or v > 100:
            raise ValueError("Discount percent must be greater than 0 and at most 100")
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "PromoCodeCreate":
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self
