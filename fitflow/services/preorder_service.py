"""Preorders: signup, token-gated edits, conversion into an order, and the expiry sweep."""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache
from fitflow.config import get_settings
from fitflow.exceptions import (
    PreorderAlreadyConvertedError,
    PreorderExpiredError,
    PreorderNotFoundError,
    ValidationFailedError,
)
from fitflow.models.catalog import BoxType
from fitflow.models.customer import Customer
from fitflow.models.order import Order
from fitflow.models.preorder import Preorder
from fitflow.schemas.preorder import ConversionResult, PreorderCreate, PreorderUpdate, ShippingAddress
from fitflow.services.cycle_service import PERSONALIZATION_FIELDS
from fitflow.services.pricing_service import calculate_price, record_promo_usage
from fitflow.services.subscription_service import validate_preferences
from fitflow.utils import ensure_utc, generate_order_number, now_utc

logger = logging.getLogger(__name__)


def new_conversion_token(now: datetime | None = None) -> tuple[str, datetime]:
    """Fresh token and its expiry (creation + configured TTL)."""
    now = now or now_utc()
    ttl = timedelta(days=get_settings().preorder_token_ttl_days)
    return uuid.uuid4().hex, now + ttl


def _token_lapsed(preorder: Preorder, now: datetime) -> bool:
    expires_at = ensure_utc(preorder.conversion_token_expires_at)
    return expires_at is not None and now >= expires_at


def effective_conversion_status(preorder: Preorder, now: datetime | None = None) -> str:
    """Stored status, except pending records past their expiry read as expired."""
    if preorder.conversion_status == "pending" and _token_lapsed(preorder, now or now_utc()):
        return "expired"
    return preorder.conversion_status


def check_conversion_token(preorder: Preorder, now: datetime | None = None) -> None:
    """Raise the named error that explains why this preorder cannot convert."""
    status = effective_conversion_status(preorder, now)
    if status == "converted":
        raise PreorderAlreadyConvertedError("This preorder has already been converted to an order")
    if status == "expired":
        raise PreorderExpiredError("This conversion link has expired")
    if status != "pending":
        raise PreorderNotFoundError("Invalid conversion link")


async def get_preorder_by_token(db: AsyncSession, token: str) -> Preorder:
    result = await db.execute(select(Preorder).where(Preorder.conversion_token == token))
    preorder = result.scalar_one_or_none()
    if not preorder:
        raise PreorderNotFoundError("Invalid conversion link")
    return preorder


async def get_preorder_for_conversion(
    db: AsyncSession, token: str, now: datetime | None = None
) -> Preorder:
    preorder = await get_preorder_by_token(db, token)
    check_conversion_token(preorder, now)
    return preorder


# --- Signup and self-service edit ---


async def create_preorder(
    db: AsyncSession,
    data: PreorderCreate,
    customer_id: int | None = None,
    now: datetime | None = None,
    cache: TTLCache | None = None,
) -> Preorder:
    """Reserve a box at a server-computed price snapshot.

    The conversion token issued here is also the credential for
    self-service edits until the preorder converts or lapses.
    """
    now = now or now_utc()
    box = await db.get(BoxType, data.box_type)
    if not box or not box.is_enabled:
        raise ValidationFailedError(f"Unknown box type '{data.box_type}'", code="invalid_box_type")

    errors = validate_preferences(data.preferences, box.id, box.is_premium)
    if errors:
        raise ValidationFailedError("Invalid preferences", errors=errors)

    price = await calculate_price(db, box.id, data.promo_code, customer_id, cache, now)
    if price.promo_code and not await record_promo_usage(db, price.promo_code, customer_id):
        logger.warning(f"Promo {price.promo_code} exhausted during preorder signup; quoting base price")
        price = await calculate_price(db, box.id, None, customer_id, cache, now)

    token, expires_at = new_conversion_token(now)
    preorder = Preorder(
        order_number=generate_order_number(),
        full_name=data.full_name.strip(),
        email=data.email,
        phone=data.phone,
        customer_id=customer_id,
        box_type=box.id,
        **data.preferences.model_dump(),
        promo_code=price.promo_code,
        discount_percent=price.discount_percent if price.promo_code else None,
        original_price_eur=price.original_price_eur,
        final_price_eur=price.final_price_eur,
        conversion_status="pending",
        conversion_token=token,
        conversion_token_expires_at=expires_at,
    )
    db.add(preorder)
    await db.commit()
    await db.refresh(preorder)
    logger.info(f"Preorder {preorder.order_number} created for {box.id}")
    return preorder


async def update_preorder(db: AsyncSession, data: PreorderUpdate, now: datetime | None = None) -> Preorder:
    """Apply a self-service edit to a pending preorder.

    Box type and price snapshot are fixed at signup; only contact details and
    personalization change.
    """
    now = now or now_utc()
    preorder = await get_preorder_for_conversion(db, data.token, now)
    preorder_id = preorder.id

    values: dict = {}
    if data.full_name is not None:
        values["full_name"] = data.full_name.strip()
    if data.phone is not None:
        values["phone"] = data.phone.strip() or None
    if data.preferences is not None:
        box = await db.get(BoxType, preorder.box_type)
        errors = validate_preferences(data.preferences, preorder.box_type, box.is_premium if box else None)
        if errors:
            raise ValidationFailedError("Invalid preferences", errors=errors)
        values.update(data.preferences.model_dump())
    if not values:
        return preorder

    result = await db.execute(
        update(Preorder)
        .where(
            Preorder.id == preorder_id,
            Preorder.conversion_status == "pending",
            or_(Preorder.conversion_token_expires_at.is_(None), Preorder.conversion_token_expires_at > now),
        )
        .values(**values, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Converted or swept while the edit was in flight
        await db.rollback()
        check_conversion_token(await get_preorder_by_token(db, data.token), now)
        raise PreorderNotFoundError("Invalid conversion link")

    await db.commit()
    await db.refresh(preorder)
    logger.info(f"Preorder {preorder.order_number} edited ({', '.join(sorted(values))})")
    return preorder


async def list_customer_preorders(db: AsyncSession, customer: Customer) -> list[Preorder]:
    """Preorders linked to the customer, plus unclaimed ones placed with their email."""
    result = await db.execute(
        select(Preorder)
        .where(
            or_(
                Preorder.customer_id == customer.id,
                and_(Preorder.customer_id.is_(None), func.lower(Preorder.email) == customer.email.lower()),
            )
        )
        .order_by(Preorder.created_at.desc(), Preorder.id.desc())
    )
    return list(result.scalars().all())


async def convert_preorder(
    db: AsyncSession,
    token: str,
    shipping: ShippingAddress,
    now: datetime | None = None,
    cache: TTLCache | None = None,
) -> ConversionResult:
    """Turn a pending preorder into a real order.

    The order insert and the pending -> converted flip share one transaction;
    the flip is conditional on the row still being pending, so two concurrent
    conversions cannot both succeed.
    """
    now = now or now_utc()
    preorder = await get_preorder_for_conversion(db, token, now)
    preorder_id = preorder.id

    if preorder.original_price_eur is not None and preorder.final_price_eur is not None:
        original_price = preorder.original_price_eur
        final_price = preorder.final_price_eur
        promo_code = preorder.promo_code
        discount_percent = preorder.discount_percent
    else:
        price = await calculate_price(db, preorder.box_type, preorder.promo_code, cache=cache, now=now)
        original_price = price.original_price_eur
        final_price = price.final_price_eur
        promo_code = price.promo_code
        discount_percent = price.discount_percent if price.promo_code else None

    order = Order(
        order_number=generate_order_number(),
        customer_id=preorder.customer_id,
        customer_email=preorder.email,
        customer_full_name=preorder.full_name,
        customer_phone=shipping.phone or preorder.phone,
        shipping_address=shipping.model_dump(),
        box_type=preorder.box_type,
        **{field: getattr(preorder, field) for field in PERSONALIZATION_FIELDS},
        promo_code=promo_code,
        discount_percent=discount_percent,
        original_price_eur=original_price,
        final_price_eur=final_price,
        order_type="preorder-conversion",
        status="pending",
    )
    db.add(order)
    await db.flush()

    flipped = await db.execute(
        update(Preorder)
        .where(Preorder.id == preorder_id, Preorder.conversion_status == "pending")
        .values(
            conversion_status="converted",
            converted_to_order_id=order.id,
            converted_at=now,
            conversion_token_expires_at=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        await db.rollback()
        logger.warning(f"Preorder {preorder_id} was converted concurrently")
        raise PreorderAlreadyConvertedError("This preorder has already been converted to an order")

    await db.commit()
    logger.info(f"Preorder {preorder.order_number} converted to order {order.order_number}")
    return ConversionResult(
        preorder_order_number=preorder.order_number,
        order_id=order.id,
        order_number=order.order_number,
        final_price_eur=order.final_price_eur,
    )


async def expire_stale_preorders(db: AsyncSession, now: datetime | None = None) -> int:
    """Flip pending preorders whose token has lapsed to expired. Returns how many flipped."""
    now = now or now_utc()
    result = await db.execute(
        update(Preorder)
        .where(
            Preorder.conversion_status == "pending",
            Preorder.conversion_token_expires_at.is_not(None),
            Preorder.conversion_token_expires_at <= now,
        )
        .values(conversion_status="expired", updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    count = result.rowcount or 0
    if count:
        logger.info(f"Expired {count} stale preorders")
    return count
