"""Box pricing in EUR/BGN and promo-code validation against the live table."""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from pydantic import ValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache
from fitflow.config import get_settings
from fitflow.constants import (
    CATALOG_CACHE_KEY_BGN_RATE,
    CATALOG_CACHE_KEY_BOX_PRICES,
    SITE_CONFIG_EUR_TO_BGN_RATE,
)
from fitflow.exceptions import ValidationFailedError
from fitflow.models.catalog import BoxType, SiteConfig
from fitflow.models.promo_code import PromoCode, PromoCodeUsage
from fitflow.schemas.pricing import PriceInfo, PromoCodeCreate
from fitflow.utils import ensure_utc, now_utc, round_money, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def normalize_promo_code(code: str | None) -> str | None:
    if not code:
        return None
    return code.strip().upper() or None


def compute_price(
    original_price_eur,
    discount_percent,
    rate: Decimal,
    promo_code: str | None = None,
    box_type: str | None = None,
) -> PriceInfo:
    """Pure price calculation.

    Discount amount and final price are rounded independently in EUR
    (half-up, 2 places); each BGN figure is the rounded EUR figure times the
    rate, rounded again. A discount outside (0, 100] is ignored.
    """
    original = round_money(original_price_eur)
    discount = to_decimal(discount_percent)
    if discount <= 0 or discount > HUNDRED:
        discount = Decimal("0")
        promo_code = None

    ratio = discount / HUNDRED
    discount_amount = round_money(original * ratio)
    final = round_money(original * (1 - ratio))

    return PriceInfo(
        box_type=box_type,
        original_price_eur=original,
        original_price_bgn=round_money(original * rate),
        discount_percent=discount,
        discount_amount_eur=discount_amount,
        discount_amount_bgn=round_money(discount_amount * rate),
        final_price_eur=final,
        final_price_bgn=round_money(final * rate),
        promo_code=promo_code,
    )


def is_promo_applicable(promo: PromoCode, now: datetime, user_usage_count: int = 0) -> bool:
    """Whether a promo row grants its discount right now. Never raises."""
    if not promo.is_enabled:
        return False

    discount = to_decimal(promo.discount_percent)
    if discount <= 0 or discount > HUNDRED:
        return False

    starts_at = ensure_utc(promo.starts_at)
    if starts_at and starts_at > now:
        return False

    ends_at = ensure_utc(promo.ends_at)
    if ends_at and now >= ends_at:
        return False

    if promo.max_uses is not None and (promo.current_uses or 0) >= promo.max_uses:
        return False

    if promo.max_uses_per_user is not None and user_usage_count >= promo.max_uses_per_user:
        return False

    return True


async def _count_user_usages(db: AsyncSession, promo_id: int, customer_id: int) -> int:
    result = await db.execute(
        select(func.count(PromoCodeUsage.id)).where(
            PromoCodeUsage.promo_code_id == promo_id,
            PromoCodeUsage.customer_id == customer_id,
        )
    )
    return result.scalar_one()


async def validate_promo_code(
    db: AsyncSession,
    code: str | None,
    customer_id: int | None = None,
    now: datetime | None = None,
) -> PromoCode | None:
    """Look up a code and return it only if it currently applies; otherwise None."""
    normalized = normalize_promo_code(code)
    if not normalized:
        return None

    result = await db.execute(select(PromoCode).where(PromoCode.code == normalized))
    promo = result.scalar_one_or_none()
    if not promo:
        logger.debug(f"Promo code '{normalized}' not found")
        return None

    usage_count = 0
    if customer_id is not None and promo.max_uses_per_user is not None:
        usage_count = await _count_user_usages(db, promo.id, customer_id)

    if not is_promo_applicable(promo, now or now_utc(), usage_count):
        logger.debug(f"Promo code '{normalized}' is not applicable")
        return None
    return promo


async def get_box_prices(db: AsyncSession, cache: TTLCache | None = None) -> dict[str, Decimal]:
    """Enabled box types mapped to their EUR price, in display order."""

    async def _load() -> dict[str, Decimal]:
        result = await db.execute(
            select(BoxType.id, BoxType.price_eur)
            .where(BoxType.is_enabled == True)
            .order_by(BoxType.sort_order, BoxType.id)
        )
        return {box_id: to_decimal(price) for box_id, price in result.all()}

    if cache is None:
        return await _load()
    return await cache.get_or_load(CATALOG_CACHE_KEY_BOX_PRICES, _load)


async def get_eur_to_bgn_rate(db: AsyncSession, cache: TTLCache | None = None) -> Decimal:
    """Rate from site_config, falling back to the configured default."""

    async def _load() -> Decimal:
        default = get_settings().eur_to_bgn_rate
        result = await db.execute(
            select(SiteConfig.value).where(SiteConfig.key == SITE_CONFIG_EUR_TO_BGN_RATE)
        )
        raw = result.scalar_one_or_none()
        if not raw:
            return default
        try:
            rate = Decimal(raw.strip())
        except InvalidOperation:
            logger.warning(f"Invalid {SITE_CONFIG_EUR_TO_BGN_RATE} '{raw}', using default {default}")
            return default
        if rate <= 0:
            logger.warning(f"Non-positive {SITE_CONFIG_EUR_TO_BGN_RATE} '{raw}', using default {default}")
            return default
        return rate

    if cache is None:
        return await _load()
    return await cache.get_or_load(CATALOG_CACHE_KEY_BGN_RATE, _load)


async def calculate_price(
    db: AsyncSession,
    box_type: str,
    promo_code: str | None = None,
    customer_id: int | None = None,
    cache: TTLCache | None = None,
    now: datetime | None = None,
) -> PriceInfo:
    """Quote a box with an optional promo code.

    Unknown box types quote at 0; invalid codes quote without discount.
    """
    prices = await get_box_prices(db, cache)
    rate = await get_eur_to_bgn_rate(db, cache)

    original = prices.get(box_type)
    if original is None:
        logger.warning(f"Price requested for unknown box type '{box_type}'")
        original = Decimal("0")

    promo = await validate_promo_code(db, promo_code, customer_id, now)
    if not promo:
        return compute_price(original, 0, rate, box_type=box_type)
    return compute_price(original, promo.discount_percent, rate, promo.code, box_type=box_type)


async def list_prices(
    db: AsyncSession,
    promo_code: str | None = None,
    customer_id: int | None = None,
    cache: TTLCache | None = None,
    now: datetime | None = None,
) -> list[PriceInfo]:
    """Quote every enabled box with the same promo code."""
    prices = await get_box_prices(db, cache)
    rate = await get_eur_to_bgn_rate(db, cache)
    promo = await validate_promo_code(db, promo_code, customer_id, now)

    quotes = []
    for box_type, original in prices.items():
        if promo:
            quotes.append(compute_price(original, promo.discount_percent, rate, promo.code, box_type))
        else:
            quotes.append(compute_price(original, 0, rate, box_type=box_type))
    return quotes


async def record_promo_usage(
    db: AsyncSession,
    code: str | None,
    customer_id: int | None,
    order_id: int | None = None,
) -> bool:
    """Consume one use of a code inside the caller's transaction.

    The increment is a single conditional UPDATE so concurrent redemptions
    cannot push current_uses past max_uses. Returns False when nothing was
    consumed. Anonymous redemptions bump the counter without a usage row.
    """
    normalized = normalize_promo_code(code)
    if not normalized:
        return False

    result = await db.execute(select(PromoCode.id).where(PromoCode.code == normalized))
    promo_id = result.scalar_one_or_none()
    if promo_id is None:
        return False

    updated = await db.execute(
        update(PromoCode)
        .where(
            PromoCode.id == promo_id,
            or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses),
        )
        .values(current_uses=PromoCode.current_uses + 1)
        .execution_options(synchronize_session=False)
    )
    if updated.rowcount == 0:
        logger.warning(f"Promo code '{normalized}' exhausted before usage could be recorded")
        return False

    if customer_id is not None:
        db.add(PromoCodeUsage(promo_code_id=promo_id, customer_id=customer_id, order_id=order_id))
    return True


async def create_promo_code(db: AsyncSession, data: PromoCodeCreate | dict) -> PromoCode:
    """Create a promo code; duplicate or out-of-range codes are validation errors."""
    if isinstance(data, dict):
        try:
            data = PromoCodeCreate.model_validate(data)
        except ValidationError as e:
            messages = [err["msg"] for err in e.errors()]
            raise ValidationFailedError("Invalid promo code", errors=messages)

    existing = await db.execute(select(PromoCode.id).where(PromoCode.code == data.code))
    if existing.scalar_one_or_none() is not None:
        raise ValidationFailedError(f"Promo code '{data.code}' already exists", code="duplicate_promo_code")

    promo = PromoCode(**data.model_dump(), current_uses=0)
    db.add(promo)
    await db.commit()
    await db.refresh(promo)
    logger.info(f"Created promo code {promo.code} ({promo.discount_percent}%)")
    return promo
