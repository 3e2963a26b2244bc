"""Preorder signup, self-service edit and conversion Pydantic schemas."""

import re
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fitflow.schemas.subscription import Preferences

_POSTAL_CODE_RE = re.compile(r"^\d{4}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    phone: str | None = Field(None, max_length=32)
    city: str = Field(..., min_length=2, max_length=128)
    postal_code: str
    street_address: str = Field(..., min_length=3, max_length=255)
    building_entrance: str | None = None
    floor: str | None = None
    apartment: str | None = None
    delivery_notes: str | None = Field(None, max_length=500)

    @field_validator("postal_code")
    @classmethod
    def validate_postal_code(cls, v: str) -> str:
        v = v.strip()
        if not _POSTAL_CODE_RE.match(v):
            raise ValueError("Postal code must be 4 digits")
        return v


class PreorderCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., max_length=255)
    phone: str | None = Field(None, max_length=32)
    box_type: str
    promo_code: str | None = None
    preferences: Preferences = Field(default_factory=Preferences)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v


class PreorderUpdate(BaseModel):
    """Self-service edit, authorized by the conversion token. Omitted fields stay as they are."""

    token: str = Field(..., min_length=1, max_length=64)
    full_name: str | None = Field(None, min_length=2, max_length=255)
    phone: str | None = Field(None, max_length=32)
    preferences: Preferences | None = None


class PreorderResponse(BaseModel):
    order_number: str
    full_name: str
    email: str
    phone: str | None = None
    box_type: str
    wants_personalization: bool
    sports: list[str] | None = None
    sport_other: str | None = None
    colors: list[str] | None = None
    flavors: list[str] | None = None
    flavor_other: str | None = None
    dietary: list[str] | None = None
    dietary_other: str | None = None
    size_upper: str | None = None
    size_lower: str | None = None
    additional_notes: str | None = None
    promo_code: str | None = None
    discount_percent: Decimal | None = None
    original_price_eur: Decimal | None = None
    final_price_eur: Decimal | None = None
    conversion_status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PreorderCreated(PreorderResponse):
    """Returned once at signup; the token is the customer's edit and conversion credential."""

    conversion_token: str
    conversion_token_expires_at: datetime


class PreorderConvertRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=64)
    shipping: ShippingAddress


class ConversionLinkStatus(BaseModel):
    order_number: str
    box_type: str
    full_name: str
    email: str
    conversion_status: str
    expires_at: datetime | None = None
    final_price_eur: Decimal | None = None


class ConversionResult(BaseModel):
    preorder_order_number: str
    order_id: int
    order_number: str
    final_price_eur: Decimal
