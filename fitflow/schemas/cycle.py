"""Delivery-cycle and order-generation Pydantic schemas."""

from datetime import date

from pydantic import BaseModel, Field


class BatchResult(BaseModel):
    """Outcome of one order-generation run over a cycle."""

    cycle_id: int | None = None
    cycle_date: date | None = None
    generated: int = 0
    skipped: int = 0
    excluded: int = 0
    errors: int = 0
    error_details: list[str] = Field(default_factory=list)
    message: str | None = None


class GenerateOrdersRequest(BaseModel):
    cycle_id: int | None = None


class CycleState(BaseModel):
    is_past: bool
    is_upcoming: bool
    is_revealed: bool
    can_reveal: bool
    can_mark_delivered: bool
    days_until_delivery: int | None = None


class DeliveryConfig(BaseModel):
    delivery_day: int = Field(5, ge=1, le=28)
    first_delivery_date: date | None = None
