"""Delivery cycles — inclusion rule, batch order generation, and cycle transitions."""

import calendar
import logging
from collections.abc import Sequence
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache
from fitflow.config import get_settings
from fitflow.constants import (
    DEFAULT_DELIVERY_DAY,
    MAX_DELIVERY_DAY,
    SEASONAL_CYCLE_GAP,
    SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY,
)
from fitflow.exceptions import CycleNotFoundError, CycleStateError, StateConflictError
from fitflow.models.catalog import SiteConfig
from fitflow.models.customer import Address, Customer
from fitflow.models.delivery_cycle import DeliveryCycle
from fitflow.models.order import Order
from fitflow.models.subscription import Subscription
from fitflow.schemas.cycle import BatchResult, CycleState, DeliveryConfig
from fitflow.services.pricing_service import compute_price, get_box_prices, get_eur_to_bgn_rate
from fitflow.services.subscription_service import record_history
from fitflow.utils import generate_order_number, now_utc, today_utc

logger = logging.getLogger(__name__)

PERSONALIZATION_FIELDS = (
    "wants_personalization",
    "sports",
    "sport_other",
    "colors",
    "flavors",
    "flavor_other",
    "dietary",
    "dietary_other",
    "size_upper",
    "size_lower",
    "additional_notes",
)


# --- Inclusion ---


def _include_missing_reference(sub: Subscription, cycle_id: int, role: str) -> bool:
    """Referenced cycle is gone from the reference set: include rather than starve the subscriber."""
    logger.warning(
        f"Subscription {sub.id}: {role} cycle {cycle_id} not found among cycles, including by default"
    )
    return True


def should_include_in_cycle(
    sub: Subscription,
    target_cycle: DeliveryCycle,
    cycles: Sequence[DeliveryCycle],
) -> bool:
    """Decide whether sub gets an order in target_cycle.

    ``cycles`` is every known cycle sorted by delivery date. Seasonal
    subscribers are spaced by counting cycles between dates, not list
    positions, so removing a cycle does not shift anyone's cadence.
    """
    if sub.status != "active":
        return False

    if sub.frequency == "monthly":
        return True

    if sub.frequency != "seasonal":
        return False

    by_id = {c.id: c for c in cycles}

    if sub.last_delivered_cycle_id is None:
        if sub.first_cycle_id is None:
            return True
        first = by_id.get(sub.first_cycle_id)
        if first is None:
            return _include_missing_reference(sub, sub.first_cycle_id, "first")
        return target_cycle.delivery_date >= first.delivery_date

    last = by_id.get(sub.last_delivered_cycle_id)
    if last is None:
        return _include_missing_reference(sub, sub.last_delivered_cycle_id, "last delivered")

    elapsed = sum(
        1 for c in cycles if last.delivery_date < c.delivery_date <= target_cycle.delivery_date
    )
    return elapsed >= SEASONAL_CYCLE_GAP


# --- Cycle queries ---


async def get_cycle(db: AsyncSession, cycle_id: int) -> DeliveryCycle:
    cycle = await db.get(DeliveryCycle, cycle_id)
    if not cycle:
        raise CycleNotFoundError("Delivery cycle not found")
    return cycle


async def get_cycles_sorted(db: AsyncSession) -> list[DeliveryCycle]:
    result = await db.execute(select(DeliveryCycle).order_by(DeliveryCycle.delivery_date))
    return list(result.scalars().all())


async def get_earliest_eligible_cycle(db: AsyncSession, today: date | None = None) -> DeliveryCycle | None:
    """Earliest upcoming cycle whose delivery date has arrived."""
    today = today or today_utc()
    result = await db.execute(
        select(DeliveryCycle)
        .where(DeliveryCycle.status == "upcoming", DeliveryCycle.delivery_date <= today)
        .order_by(DeliveryCycle.delivery_date)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def determine_first_cycle(db: AsyncSession) -> tuple[DeliveryCycle, bool]:
    """Pick the first cycle for a new subscription.

    Returns (cycle, late_addition). Prefers the earliest upcoming cycle; falls
    back to the most recent delivered one, which then needs an immediate order.
    """
    result = await db.execute(
        select(DeliveryCycle)
        .where(DeliveryCycle.status == "upcoming")
        .order_by(DeliveryCycle.delivery_date)
        .limit(1)
    )
    upcoming = result.scalar_one_or_none()
    if upcoming:
        return upcoming, False

    result = await db.execute(
        select(DeliveryCycle)
        .where(DeliveryCycle.status == "delivered")
        .order_by(DeliveryCycle.delivery_date.desc())
        .limit(1)
    )
    delivered = result.scalar_one_or_none()
    if delivered:
        return delivered, True

    raise StateConflictError("No delivery cycle is available for new subscriptions", code="no_cycle_available")


# --- Order creation ---


async def _order_exists(db: AsyncSession, subscription_id: int, cycle_id: int) -> bool:
    result = await db.execute(
        select(Order.id)
        .where(Order.subscription_id == subscription_id, Order.delivery_cycle_id == cycle_id)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _build_subscription_order(
    db: AsyncSession,
    sub: Subscription,
    cycle: DeliveryCycle,
    cache: TTLCache | None = None,
) -> Order:
    """Order for sub in cycle: address snapshot plus the subscription's locked discount."""
    if not sub.default_address_id:
        raise ValueError("No default address configured on subscription")
    address = await db.get(Address, sub.default_address_id)
    if not address or address.customer_id != sub.customer_id:
        raise ValueError("Default address not found")
    customer = await db.get(Customer, sub.customer_id)
    if not customer:
        raise ValueError("Customer not found")

    prices = await get_box_prices(db, cache)
    rate = await get_eur_to_bgn_rate(db, cache)
    original = prices.get(sub.box_type, sub.base_price_eur)
    price = compute_price(original, sub.discount_percent or 0, rate, sub.promo_code, sub.box_type)

    return Order(
        order_number=generate_order_number(),
        customer_id=customer.id,
        customer_email=customer.email,
        customer_full_name=customer.full_name,
        customer_phone=customer.phone or address.phone,
        shipping_address=address.to_snapshot(),
        address_id=address.id,
        box_type=sub.box_type,
        **{field: getattr(sub, field) for field in PERSONALIZATION_FIELDS},
        promo_code=price.promo_code,
        discount_percent=price.discount_percent if price.promo_code else None,
        original_price_eur=price.original_price_eur,
        final_price_eur=price.final_price_eur,
        subscription_id=sub.id,
        delivery_cycle_id=cycle.id,
        order_type="subscription",
        status="pending",
    )


async def _advance_last_delivered(db: AsyncSession, sub: Subscription, cycle: DeliveryCycle) -> None:
    """Move last_delivered_cycle_id forward; never back to an earlier cycle."""
    if sub.last_delivered_cycle_id is not None:
        previous = await db.get(DeliveryCycle, sub.last_delivered_cycle_id)
        if previous and previous.delivery_date > cycle.delivery_date:
            return
    sub.last_delivered_cycle_id = cycle.id


async def generate_single_order(
    db: AsyncSession,
    sub: Subscription,
    cycle: DeliveryCycle,
    performed_by: int | None = None,
    cache: TTLCache | None = None,
) -> Order | None:
    """Idempotent late-addition order for one subscription. Returns None if one exists."""
    if await _order_exists(db, sub.id, cycle.id):
        return None

    order = await _build_subscription_order(db, sub, cycle, cache)
    db.add(order)
    await _advance_last_delivered(db, sub, cycle)
    record_history(
        db, sub.id, "order_generated", {"cycle_id": cycle.id, "late_addition": True}, performed_by
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(f"Order for subscription {sub.id} in cycle {cycle.id} created concurrently")
        return None

    logger.info(f"Late-addition order {order.order_number} for subscription {sub.id} in cycle {cycle.id}")
    return order


async def _load_cycle_context(db: AsyncSession, cycle_id: int) -> tuple[DeliveryCycle, list[DeliveryCycle]]:
    """(Re)load the target cycle and the sorted reference list; a rollback expires both."""
    cycle = await get_cycle(db, cycle_id)
    return cycle, await get_cycles_sorted(db)


async def generate_orders_for_cycle(
    db: AsyncSession,
    cycle_id: int,
    performed_by: int | None = None,
    cache: TTLCache | None = None,
) -> BatchResult:
    """Create one order per eligible active subscription for a cycle.

    Safe to rerun: existing (subscription, cycle) orders are skipped. Each
    subscription commits on its own; one failure does not stop the batch.
    """
    cycle, cycles = await _load_cycle_context(db, cycle_id)
    if cycle.status not in ("upcoming", "delivered"):
        raise CycleStateError(f"Cannot generate orders for a {cycle.status} cycle")

    result = await db.execute(
        select(Subscription.id).where(Subscription.status == "active").order_by(Subscription.id)
    )
    subscription_ids = list(result.scalars().all())

    batch = BatchResult(cycle_id=cycle.id, cycle_date=cycle.delivery_date)
    for sub_id in subscription_ids:
        sub = await db.get(Subscription, sub_id)
        if sub is None or not should_include_in_cycle(sub, cycle, cycles):
            batch.excluded += 1
            continue

        try:
            if await _order_exists(db, sub_id, cycle_id):
                batch.skipped += 1
                continue

            order = await _build_subscription_order(db, sub, cycle, cache)
            db.add(order)
            await _advance_last_delivered(db, sub, cycle)
            record_history(db, sub_id, "order_generated", {"cycle_id": cycle_id}, performed_by)
            await db.commit()
            batch.generated += 1
        except IntegrityError:
            await db.rollback()
            cycle, cycles = await _load_cycle_context(db, cycle_id)
            batch.skipped += 1
            logger.info(f"Order for subscription {sub_id} in cycle {cycle_id} already exists")
        except Exception as e:
            await db.rollback()
            cycle, cycles = await _load_cycle_context(db, cycle_id)
            batch.errors += 1
            batch.error_details.append(f"subscription {sub_id}: {e}")
            logger.error(f"Order generation failed for subscription {sub_id} in cycle {cycle_id}: {e}")

    logger.info(
        f"Cycle {cycle_id} ({batch.cycle_date}): generated={batch.generated} "
        f"skipped={batch.skipped} excluded={batch.excluded} errors={batch.errors}"
    )
    return batch


async def generate_orders_for_active_cycle(
    db: AsyncSession,
    performed_by: int | None = None,
    today: date | None = None,
    cache: TTLCache | None = None,
) -> BatchResult:
    """Generate for the earliest eligible upcoming cycle (cron path)."""
    cycle = await get_earliest_eligible_cycle(db, today)
    if not cycle:
        logger.info("No upcoming cycle is due for order generation")
        return BatchResult(message="No upcoming cycle is due for order generation")
    return await generate_orders_for_cycle(db, cycle.id, performed_by, cache)


# --- Cycle state and transitions ---


def compute_cycle_state(cycle: DeliveryCycle, today: date | None = None) -> CycleState:
    today = today or today_utc()
    is_past = cycle.delivery_date < today
    return CycleState(
        is_past=is_past,
        is_upcoming=not is_past and cycle.status == "upcoming",
        is_revealed=bool(cycle.is_revealed),
        can_reveal=cycle.status in ("upcoming", "delivered") and not cycle.is_revealed,
        can_mark_delivered=cycle.status == "upcoming",
        days_until_delivery=None if is_past else (cycle.delivery_date - today).days,
    )


def _clamped_date(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def calculate_next_delivery_date(config: DeliveryConfig, from_date: date | None = None) -> date:
    """Next delivery date strictly after from_date, honoring a future first-delivery override."""
    today = from_date or today_utc()
    if config.first_delivery_date and config.first_delivery_date >= today:
        return config.first_delivery_date

    day = config.delivery_day
    if not 1 <= day <= MAX_DELIVERY_DAY:
        day = DEFAULT_DELIVERY_DAY

    this_month = _clamped_date(today.year, today.month, day)
    if this_month > today:
        return this_month
    if today.month == 12:
        return _clamped_date(today.year + 1, 1, day)
    return _clamped_date(today.year, today.month + 1, day)


async def get_delivery_config(db: AsyncSession) -> DeliveryConfig:
    """Delivery day from site_config, falling back to the configured default."""
    default = get_settings().subscription_delivery_day
    result = await db.execute(
        select(SiteConfig.value).where(SiteConfig.key == SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY)
    )
    raw = result.scalar_one_or_none()
    if not raw:
        return DeliveryConfig(delivery_day=default)
    try:
        day = int(raw.strip())
    except ValueError:
        logger.warning(f"Invalid {SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY} '{raw}', using default {default}")
        return DeliveryConfig(delivery_day=default)
    if not 1 <= day <= MAX_DELIVERY_DAY:
        logger.warning(f"Out-of-range {SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY} '{raw}', using default {default}")
        return DeliveryConfig(delivery_day=default)
    return DeliveryConfig(delivery_day=day)


async def mark_cycle_delivered(db: AsyncSession, cycle_id: int) -> DeliveryCycle:
    cycle = await get_cycle(db, cycle_id)
    if cycle.status != "upcoming":
        raise CycleStateError(f"Cannot mark a {cycle.status} cycle as delivered")
    cycle.status = "delivered"
    await db.commit()
    await db.refresh(cycle)
    logger.info(f"Cycle {cycle.id} marked delivered")
    return cycle


async def archive_cycle(db: AsyncSession, cycle_id: int) -> DeliveryCycle:
    cycle = await get_cycle(db, cycle_id)
    if cycle.status != "delivered":
        raise CycleStateError(f"Cannot archive a {cycle.status} cycle")
    cycle.status = "archived"
    await db.commit()
    await db.refresh(cycle)
    logger.info(f"Cycle {cycle.id} archived")
    return cycle


async def reveal_cycle(db: AsyncSession, cycle_id: int) -> DeliveryCycle:
    """Publish the box contents. Revealing marks the cycle delivered in the same step."""
    cycle = await get_cycle(db, cycle_id)
    if not compute_cycle_state(cycle).can_reveal:
        raise CycleStateError(f"Cannot reveal a {'revealed' if cycle.is_revealed else cycle.status} cycle")
    cycle.status = "delivered"
    cycle.is_revealed = True
    cycle.revealed_at = now_utc()
    await db.commit()
    await db.refresh(cycle)
    logger.info(f"Cycle {cycle.id} revealed")
    return cycle
