"""Staff routes — subscription overrides, order generation, and cycle transitions."""

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache, get_catalog_cache
from fitflow.constants import STAFF_ACTION_LIMIT
from fitflow.db.session import get_db
from fitflow.models.customer import Customer
from fitflow.rate_limit import RateLimiter, get_rate_limiter
from fitflow.routers.subscriptions import parse_action, to_view
from fitflow.schemas.cycle import BatchResult, CycleState, GenerateOrdersRequest
from fitflow.schemas.subscription import SubscriptionView, staff_action_adapter
from fitflow.services.auth_service import get_staff_user
from fitflow.services.cycle_service import (
    archive_cycle,
    compute_cycle_state,
    generate_orders_for_active_cycle,
    generate_orders_for_cycle,
    mark_cycle_delivered,
    reveal_cycle,
)
from fitflow.services.subscription_service import apply_action, get_subscription

router = APIRouter(prefix="/api/staff", tags=["staff"])


@router.patch("/subscriptions/{subscription_id}", response_model=SubscriptionView)
async def staff_act_on_subscription(
    subscription_id: int,
    payload: dict = Body(...),
    staff: Customer = Depends(get_staff_user),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Any customer action plus ``expire``, on any customer's subscription."""
    await limiter.check("staff_subscription_action", str(staff.id), STAFF_ACTION_LIMIT)
    action = parse_action(staff_action_adapter, payload)
    sub = await get_subscription(db, subscription_id)
    sub = await apply_action(db, sub, action, performed_by=staff.id)
    return to_view(sub)


@router.post("/delivery/generate", response_model=BatchResult)
async def staff_generate_orders(
    data: GenerateOrdersRequest | None = None,
    staff: Customer = Depends(get_staff_user),
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_catalog_cache),
):
    if data and data.cycle_id is not None:
        return await generate_orders_for_cycle(db, data.cycle_id, performed_by=staff.id, cache=cache)
    return await generate_orders_for_active_cycle(db, performed_by=staff.id, cache=cache)


@router.post("/cycles/{cycle_id}/deliver", response_model=CycleState)
async def staff_mark_delivered(
    cycle_id: int,
    staff: Customer = Depends(get_staff_user),
    db: AsyncSession = Depends(get_db),
):
    cycle = await mark_cycle_delivered(db, cycle_id)
    return compute_cycle_state(cycle)


@router.post("/cycles/{cycle_id}/reveal", response_model=CycleState)
async def staff_reveal(
    cycle_id: int,
    staff: Customer = Depends(get_staff_user),
    db: AsyncSession = Depends(get_db),
):
    cycle = await reveal_cycle(db, cycle_id)
    return compute_cycle_state(cycle)


@router.post("/cycles/{cycle_id}/archive", response_model=CycleState)
async def staff_archive(
    cycle_id: int,
    staff: Customer = Depends(get_staff_user),
    db: AsyncSession = Depends(get_db),
):
    cycle = await archive_cycle(db, cycle_id)
    return compute_cycle_state(cycle)
