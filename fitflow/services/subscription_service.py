"""Subscription lifecycle — guards, derived state, and the pause/resume/cancel/expire actions."""

import logging
from datetime import datetime
from typing import assert_never

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache
from fitflow.constants import (
    CANCELLATION_REASON_MAX_LENGTH,
    OTHER_OPTION,
    PREMIUM_BOX_TYPES,
    SUBSCRIPTION_FREQUENCIES,
)
from fitflow.exceptions import (
    SubscriptionNotFoundError,
    SubscriptionStateError,
    ValidationFailedError,
)
from fitflow.models.catalog import BoxType
from fitflow.models.customer import Address, Customer
from fitflow.models.subscription import Subscription, SubscriptionHistory
from fitflow.schemas.subscription import (
    CancelAction,
    ChangeAddressAction,
    ChangeFrequencyAction,
    ExpireAction,
    PauseAction,
    Preferences,
    ResumeAction,
    SubscriptionCreate,
    SubscriptionDerivedState,
    UpdatePreferencesAction,
)
from fitflow.utils import now_utc

logger = logging.getLogger(__name__)


# --- Guards ---


def can_pause(sub: Subscription) -> bool:
    return sub.status == "active"


def can_resume(sub: Subscription) -> bool:
    return sub.status == "paused"


def can_cancel(sub: Subscription) -> bool:
    return sub.status in ("active", "paused")


def can_expire(sub: Subscription) -> bool:
    """Operator force-expire; allowed from any non-expired status."""
    return sub.status != "expired"


def compute_derived_state(sub: Subscription) -> SubscriptionDerivedState:
    """All guards plus status flags. Unknown statuses yield all False."""
    editable = sub.status in ("active", "paused")
    return SubscriptionDerivedState(
        can_pause=can_pause(sub),
        can_resume=can_resume(sub),
        can_cancel=can_cancel(sub),
        can_edit_preferences=editable,
        can_edit_address=editable,
        can_change_frequency=sub.status == "active",
        is_active=sub.status == "active",
        is_paused=sub.status == "paused",
        is_cancelled=sub.status == "cancelled",
    )


# --- Validation ---


def validate_preferences(prefs: Preferences, box_type: str, is_premium: bool | None = None) -> list[str]:
    """Return human-readable problems with a personalization update (empty when valid)."""
    if is_premium is None:
        is_premium = box_type in PREMIUM_BOX_TYPES

    errors: list[str] = []
    if not prefs.wants_personalization:
        return errors

    if not prefs.sports:
        errors.append("Select at least one sport")
    if OTHER_OPTION in prefs.sports and not (prefs.sport_other or "").strip():
        errors.append("Specify the other sport")

    if is_premium:
        if not prefs.size_upper:
            errors.append("Select an upper-body size")
        if not prefs.size_lower:
            errors.append("Select a lower-body size")
        if not prefs.colors:
            errors.append("Select at least one color")

    if not prefs.flavors:
        errors.append("Select at least one flavor")
    if OTHER_OPTION in prefs.flavors and not (prefs.flavor_other or "").strip():
        errors.append("Specify the other flavor")

    if not prefs.dietary:
        errors.append("Select dietary restrictions")
    if OTHER_OPTION in prefs.dietary and not (prefs.dietary_other or "").strip():
        errors.append("Specify the other dietary restriction")

    return errors


def validate_cancellation_reason(reason: str | None) -> str:
    """Return the trimmed reason or raise ValidationFailedError."""
    trimmed = (reason or "").strip()
    if not trimmed:
        raise ValidationFailedError("A cancellation reason is required", code="invalid_reason")
    if len(trimmed) > CANCELLATION_REASON_MAX_LENGTH:
        raise ValidationFailedError(
            f"Cancellation reason must be at most {CANCELLATION_REASON_MAX_LENGTH} characters",
            code="invalid_reason",
        )
    return trimmed


# --- Loading ---


async def get_subscription(
    db: AsyncSession, subscription_id: int, customer_id: int | None = None
) -> Subscription:
    """Load a subscription; with customer_id, foreign rows read as missing."""
    query = select(Subscription).where(Subscription.id == subscription_id)
    if customer_id is not None:
        query = query.where(Subscription.customer_id == customer_id)
    result = await db.execute(query)
    sub = result.scalar_one_or_none()
    if not sub:
        raise SubscriptionNotFoundError("Subscription not found")
    return sub


async def list_subscriptions(db: AsyncSession, customer_id: int) -> list[Subscription]:
    result = await db.execute(
        select(Subscription)
        .where(Subscription.customer_id == customer_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    )
    return list(result.scalars().all())


async def get_subscription_history(db: AsyncSession, subscription_id: int) -> list[SubscriptionHistory]:
    result = await db.execute(
        select(SubscriptionHistory)
        .where(SubscriptionHistory.subscription_id == subscription_id)
        .order_by(SubscriptionHistory.created_at, SubscriptionHistory.id)
    )
    return list(result.scalars().all())


def record_history(
    db: AsyncSession,
    subscription_id: int,
    action: str,
    details: dict | None = None,
    performed_by: int | None = None,
) -> None:
    """Stage an audit row in the caller's transaction."""
    db.add(
        SubscriptionHistory(
            subscription_id=subscription_id,
            action=action,
            details=details,
            performed_by=performed_by,
        )
    )


async def _refresh_subscriber_flag(db: AsyncSession, customer_id: int) -> None:
    """Clear is_subscriber once the customer has no active or paused subscription left."""
    result = await db.execute(
        select(func.count(Subscription.id)).where(
            Subscription.customer_id == customer_id,
            Subscription.status.in_(["active", "paused"]),
        )
    )
    if result.scalar_one() == 0:
        customer = await db.get(Customer, customer_id)
        if customer:
            customer.is_subscriber = False


# --- Lifecycle operations ---


async def pause_subscription(
    db: AsyncSession, sub: Subscription, performed_by: int | None = None, now: datetime | None = None
) -> Subscription:
    if not can_pause(sub):
        raise SubscriptionStateError(f"Cannot pause a {sub.status} subscription")
    sub.status = "paused"
    sub.paused_at = now or now_utc()
    record_history(db, sub.id, "paused", performed_by=performed_by)
    await db.commit()
    await db.refresh(sub)
    logger.info(f"Subscription {sub.id} paused")
    return sub


async def resume_subscription(
    db: AsyncSession, sub: Subscription, performed_by: int | None = None
) -> Subscription:
    """Resume a paused subscription. Cycles missed while paused are not backfilled."""
    if not can_resume(sub):
        raise SubscriptionStateError(f"Cannot resume a {sub.status} subscription")
    sub.status = "active"
    sub.paused_at = None
    record_history(db, sub.id, "resumed", performed_by=performed_by)
    await db.commit()
    await db.refresh(sub)
    logger.info(f"Subscription {sub.id} resumed")
    return sub


async def cancel_subscription(
    db: AsyncSession,
    sub: Subscription,
    reason: str,
    performed_by: int | None = None,
    now: datetime | None = None,
) -> Subscription:
    if not can_cancel(sub):
        raise SubscriptionStateError(f"Cannot cancel a {sub.status} subscription")
    reason = validate_cancellation_reason(reason)

    sub.status = "cancelled"
    sub.cancelled_at = now or now_utc()
    sub.cancellation_reason = reason
    record_history(db, sub.id, "cancelled", {"reason": reason}, performed_by)
    await db.flush()
    await _refresh_subscriber_flag(db, sub.customer_id)
    await db.commit()
    await db.refresh(sub)
    logger.info(f"Subscription {sub.id} cancelled")
    return sub


async def expire_subscription(
    db: AsyncSession, sub: Subscription, performed_by: int | None = None
) -> Subscription:
    if not can_expire(sub):
        raise SubscriptionStateError("Subscription is already expired")
    previous = sub.status
    sub.status = "expired"
    record_history(db, sub.id, "expired", {"previous_status": previous}, performed_by)
    await db.flush()
    await _refresh_subscriber_flag(db, sub.customer_id)
    await db.commit()
    await db.refresh(sub)
    logger.info(f"Subscription {sub.id} expired (was {previous})")
    return sub


async def update_preferences(
    db: AsyncSession, sub: Subscription, prefs: Preferences, performed_by: int | None = None
) -> Subscription:
    """Replace personalization. Applies to orders generated from now on."""
    if not compute_derived_state(sub).can_edit_preferences:
        raise SubscriptionStateError(f"Cannot edit preferences of a {sub.status} subscription")

    box = await db.get(BoxType, sub.box_type)
    errors = validate_preferences(prefs, sub.box_type, box.is_premium if box else None)
    if errors:
        raise ValidationFailedError("Invalid preferences", errors=errors)

    changed = []
    for key, value in prefs.model_dump().items():
        if getattr(sub, key) != value:
            setattr(sub, key, value)
            changed.append(key)

    record_history(db, sub.id, "preferences_updated", {"fields": changed}, performed_by)
    await db.commit()
    await db.refresh(sub)
    return sub


async def change_frequency(
    db: AsyncSession, sub: Subscription, frequency: str, performed_by: int | None = None
) -> Subscription:
    if not compute_derived_state(sub).can_change_frequency:
        raise SubscriptionStateError(f"Cannot change frequency of a {sub.status} subscription")
    if frequency not in SUBSCRIPTION_FREQUENCIES:
        raise ValidationFailedError("Invalid delivery frequency", code="invalid_frequency")
    if frequency == sub.frequency:
        raise ValidationFailedError("New frequency is the same as the current one", code="invalid_frequency")

    previous = sub.frequency
    sub.frequency = frequency
    record_history(db, sub.id, "frequency_changed", {"from": previous, "to": frequency}, performed_by)
    await db.commit()
    await db.refresh(sub)
    logger.info(f"Subscription {sub.id} frequency {previous} -> {frequency}")
    return sub


async def change_address(
    db: AsyncSession, sub: Subscription, address_id: int, performed_by: int | None = None
) -> Subscription:
    if not compute_derived_state(sub).can_edit_address:
        raise SubscriptionStateError(f"Cannot change the address of a {sub.status} subscription")

    address = await db.get(Address, address_id)
    if not address or address.customer_id != sub.customer_id:
        raise ValidationFailedError("Address not found", code="invalid_address")

    previous = sub.default_address_id
    sub.default_address_id = address_id
    record_history(db, sub.id, "address_changed", {"from": previous, "to": address_id}, performed_by)
    await db.commit()
    await db.refresh(sub)
    return sub


async def apply_action(
    db: AsyncSession,
    sub: Subscription,
    action: PauseAction
    | ResumeAction
    | CancelAction
    | ExpireAction
    | UpdatePreferencesAction
    | ChangeFrequencyAction
    | ChangeAddressAction,
    performed_by: int | None = None,
) -> Subscription:
    """Dispatch a validated lifecycle action to its operation."""
    if isinstance(action, PauseAction):
        return await pause_subscription(db, sub, performed_by)
    elif isinstance(action, ResumeAction):
        return await resume_subscription(db, sub, performed_by)
    elif isinstance(action, CancelAction):
        return await cancel_subscription(db, sub, action.reason, performed_by)
    elif isinstance(action, ExpireAction):
        return await expire_subscription(db, sub, performed_by)
    elif isinstance(action, UpdatePreferencesAction):
        return await update_preferences(db, sub, action.preferences, performed_by)
    elif isinstance(action, ChangeFrequencyAction):
        return await change_frequency(db, sub, action.frequency, performed_by)
    elif isinstance(action, ChangeAddressAction):
        return await change_address(db, sub, action.address_id, performed_by)
    else:
        assert_never(action)


# --- Creation ---


async def create_subscription(
    db: AsyncSession,
    customer_id: int,
    data: SubscriptionCreate,
    cache: TTLCache | None = None,
) -> Subscription:
    """Create a subscription at the server-computed price and assign its first cycle.

    When no upcoming cycle exists but one is already delivered, the subscriber
    joins that cycle as a late addition and gets an order immediately.
    """
    from fitflow.services.cycle_service import determine_first_cycle, generate_single_order
    from fitflow.services.pricing_service import calculate_price, record_promo_usage

    customer = await db.get(Customer, customer_id)
    if not customer:
        raise ValidationFailedError("Customer not found", code="invalid_customer")

    box = await db.get(BoxType, data.box_type)
    if not box or not box.is_enabled or not box.is_subscription:
        raise ValidationFailedError(f"Unknown subscription box type '{data.box_type}'", code="invalid_box_type")

    address = await db.get(Address, data.address_id)
    if not address or address.customer_id != customer_id:
        raise ValidationFailedError("Address not found", code="invalid_address")

    errors = validate_preferences(data.preferences, box.id, box.is_premium)
    if errors:
        raise ValidationFailedError("Invalid preferences", errors=errors)

    price = await calculate_price(db, box.id, data.promo_code, customer_id, cache)
    first_cycle, late_addition = await determine_first_cycle(db)

    sub = Subscription(
        customer_id=customer_id,
        box_type=box.id,
        frequency=data.frequency,
        status="active",
        **data.preferences.model_dump(),
        promo_code=price.promo_code,
        discount_percent=price.discount_percent if price.promo_code else None,
        base_price_eur=price.original_price_eur,
        current_price_eur=price.final_price_eur,
        default_address_id=address.id,
        first_cycle_id=first_cycle.id,
    )
    db.add(sub)
    await db.flush()

    if price.promo_code and not await record_promo_usage(db, price.promo_code, customer_id):
        # Code ran out between quote and write; charge the base price
        logger.warning(f"Promo {price.promo_code} exhausted during checkout; subscription {sub.id} at base price")
        sub.promo_code = None
        sub.discount_percent = None
        sub.current_price_eur = sub.base_price_eur

    record_history(
        db,
        sub.id,
        "created",
        {"box_type": box.id, "frequency": data.frequency, "first_cycle_id": first_cycle.id},
        customer_id,
    )
    customer.is_subscriber = True
    await db.commit()
    await db.refresh(sub)
    logger.info(f"Subscription {sub.id} created for customer {customer_id} (first cycle {first_cycle.id})")

    if late_addition:
        await generate_single_order(db, sub, first_cycle, performed_by=customer_id, cache=cache)
        await db.refresh(sub)

    return sub
