"""Customer subscription routes — list, create, detail, and lifecycle actions."""

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.exceptions import RequestValidationError
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache, get_catalog_cache
from fitflow.constants import CUSTOMER_ACTION_LIMIT
from fitflow.db.session import get_db
from fitflow.models.customer import Customer
from fitflow.models.subscription import Subscription
from fitflow.rate_limit import RateLimiter, get_rate_limiter
from fitflow.schemas.subscription import (
    SubscriptionCreate,
    SubscriptionHistoryEntry,
    SubscriptionResponse,
    SubscriptionView,
    customer_action_adapter,
)
from fitflow.services.auth_service import get_current_customer
from fitflow.services.subscription_service import (
    apply_action,
    compute_derived_state,
    create_subscription,
    get_subscription,
    get_subscription_history,
    list_subscriptions,
)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


def parse_action(adapter: TypeAdapter, payload: Any):
    """Validate a raw action body against a tagged union; unknown actions become a 422."""
    try:
        return adapter.validate_python(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))


def to_view(sub: Subscription, history=None) -> SubscriptionView:
    return SubscriptionView(
        subscription=SubscriptionResponse.model_validate(sub),
        state=compute_derived_state(sub),
        history=[SubscriptionHistoryEntry.model_validate(h) for h in history] if history is not None else None,
    )


@router.get("", response_model=list[SubscriptionView])
async def list_my_subscriptions(
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    subs = await list_subscriptions(db, customer.id)
    return [to_view(sub) for sub in subs]


@router.post("", response_model=SubscriptionView, status_code=201)
async def create_my_subscription(
    data: SubscriptionCreate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_catalog_cache),
):
    sub = await create_subscription(db, customer.id, data, cache=cache)
    return to_view(sub)


@router.get("/{subscription_id}", response_model=SubscriptionView)
async def get_my_subscription(
    subscription_id: int,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    sub = await get_subscription(db, subscription_id, customer.id)
    history = await get_subscription_history(db, sub.id)
    return to_view(sub, history)


@router.patch("/{subscription_id}", response_model=SubscriptionView)
async def act_on_my_subscription(
    subscription_id: int,
    payload: dict = Body(...),
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Apply pause / resume / cancel / update_preferences / change_frequency / change_address."""
    await limiter.check("subscription_action", str(customer.id), CUSTOMER_ACTION_LIMIT)
    action = parse_action(customer_action_adapter, payload)
    sub = await get_subscription(db, subscription_id, customer.id)
    sub = await apply_action(db, sub, action, performed_by=customer.id)
    return to_view(sub)
