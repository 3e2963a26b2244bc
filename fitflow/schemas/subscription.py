"""Subscription-related Pydantic schemas, including the lifecycle action union."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

Frequency = Literal["monthly", "seasonal"]


class Preferences(BaseModel):
    wants_personalization: bool = False
    sports: list[str] = Field(default_factory=list)
    sport_other: str | None = None
    colors: list[str] = Field(default_factory=list)
    flavors: list[str] = Field(default_factory=list)
    flavor_other: str | None = None
    dietary: list[str] = Field(default_factory=list)
    dietary_other: str | None = None
    size_upper: str | None = Field(None, max_length=8)
    size_lower: str | None = Field(None, max_length=8)
    additional_notes: str | None = Field(None, max_length=2000)


# --- Lifecycle actions (closed set, tagged on "action") ---


class PauseAction(BaseModel):
    action: Literal["pause"]


class ResumeAction(BaseModel):
    action: Literal["resume"]


class CancelAction(BaseModel):
    action: Literal["cancel"]
    reason: str


class ExpireAction(BaseModel):
    action: Literal["expire"]


class UpdatePreferencesAction(BaseModel):
    action: Literal["update_preferences"]
    preferences: Preferences


class ChangeFrequencyAction(BaseModel):
    action: Literal["change_frequency"]
    frequency: Frequency


class ChangeAddressAction(BaseModel):
    action: Literal["change_address"]
    address_id: int


CustomerAction = Annotated[
    PauseAction
    | ResumeAction
    | CancelAction
    | UpdatePreferencesAction
    | ChangeFrequencyAction
    | ChangeAddressAction,
    Field(discriminator="action"),
]

StaffAction = Annotated[
    PauseAction
    | ResumeAction
    | CancelAction
    | ExpireAction
    | UpdatePreferencesAction
    | ChangeFrequencyAction
    | ChangeAddressAction,
    Field(discriminator="action"),
]

customer_action_adapter = TypeAdapter(CustomerAction)
staff_action_adapter = TypeAdapter(StaffAction)


class SubscriptionCreate(BaseModel):
    box_type: str
    frequency: Frequency = "monthly"
    promo_code: str | None = None
    address_id: int
    preferences: Preferences = Field(default_factory=Preferences)


class SubscriptionDerivedState(BaseModel):
    can_pause: bool
    can_resume: bool
    can_cancel: bool
    can_edit_preferences: bool
    can_edit_address: bool
    can_change_frequency: bool
    is_active: bool
    is_paused: bool
    is_cancelled: bool


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    box_type: str
    frequency: str
    status: str
    base_price_eur: Decimal
    current_price_eur: Decimal
    promo_code: str | None = None
    discount_percent: Decimal | None = None
    default_address_id: int | None = None
    first_cycle_id: int | None = None
    last_delivered_cycle_id: int | None = None
    wants_personalization: bool
    sports: list[str] | None = None
    colors: list[str] | None = None
    flavors: list[str] | None = None
    dietary: list[str] | None = None
    size_upper: str | None = None
    size_lower: str | None = None
    started_at: datetime
    paused_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


class SubscriptionHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    details: dict | None = None
    performed_by: int | None = None
    created_at: datetime


class SubscriptionView(BaseModel):
    subscription: SubscriptionResponse
    state: SubscriptionDerivedState
    history: list[SubscriptionHistoryEntry] | None = None
