"""Seed script — box catalog, launch promo codes, BGN rate and the next delivery cycle.

Idempotent: rows that already exist are left untouched.

Usage:
    python -m fitflow.seed
"""

import asyncio
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.constants import SITE_CONFIG_EUR_TO_BGN_RATE, SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY

logger = logging.getLogger(__name__)

BOX_TYPES = [
    # id, name, price_eur, is_subscription, is_premium
    ("monthly-standard", "Monthly Standard Box", Decimal("24.90"), True, False),
    ("monthly-premium", "Monthly Premium Box", Decimal("34.90"), True, True),
    ("one-time-standard", "One-time Standard Box", Decimal("29.90"), False, False),
    ("one-time-premium", "One-time Premium Box", Decimal("39.90"), False, True),
]

PROMO_CODES = [
    {"code": "FITFLOW10", "discount_percent": Decimal("10"), "description": "10% launch discount"},
    {"code": "FITFLOW25", "discount_percent": Decimal("25"), "description": "25% early-bird discount"},
]


async def seed_catalog(db: AsyncSession, with_cycle: bool = True) -> dict[str, int]:
    """Insert missing catalog rows. Returns how many rows of each kind were created."""
    from fitflow.config import get_settings
    from fitflow.models.catalog import BoxType, SiteConfig
    from fitflow.models.delivery_cycle import DeliveryCycle
    from fitflow.models.promo_code import PromoCode
    from fitflow.services.cycle_service import calculate_next_delivery_date, get_delivery_config
    from fitflow.services.pricing_service import create_promo_code

    settings = get_settings()
    created = {"box_types": 0, "promo_codes": 0, "site_config": 0, "delivery_cycles": 0}

    for sort_order, (box_id, name, price, is_subscription, is_premium) in enumerate(BOX_TYPES):
        if await db.get(BoxType, box_id) is None:
            db.add(
                BoxType(
                    id=box_id,
                    name=name,
                    price_eur=price,
                    is_subscription=is_subscription,
                    is_premium=is_premium,
                    is_enabled=True,
                    sort_order=sort_order,
                )
            )
            created["box_types"] += 1

    if await db.get(SiteConfig, SITE_CONFIG_EUR_TO_BGN_RATE) is None:
        db.add(SiteConfig(key=SITE_CONFIG_EUR_TO_BGN_RATE, value=str(settings.eur_to_bgn_rate)))
        created["site_config"] += 1

    if await db.get(SiteConfig, SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY) is None:
        db.add(SiteConfig(key=SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY, value=str(settings.subscription_delivery_day)))
        created["site_config"] += 1

    result = await db.execute(select(DeliveryCycle.id).where(DeliveryCycle.status == "upcoming").limit(1))
    if with_cycle and result.scalar_one_or_none() is None:
        config = await get_delivery_config(db)
        db.add(DeliveryCycle(delivery_date=calculate_next_delivery_date(config), status="upcoming"))
        created["delivery_cycles"] += 1

    await db.commit()

    for promo in PROMO_CODES:
        existing = await db.execute(select(PromoCode.id).where(PromoCode.code == promo["code"]))
        if existing.scalar_one_or_none() is None:
            await create_promo_code(db, promo)
            created["promo_codes"] += 1

    logger.info(f"Seed complete: {created}")
    return created


async def main():
    # Ensure .env is loaded before importing settings
    from dotenv import load_dotenv
    load_dotenv()

    from fitflow.db.session import async_session_factory, engine
    from fitflow.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        created = await seed_catalog(db)

    await engine.dispose()

    print("Seed complete")
    for kind, count in created.items():
        print(f"  {kind:<16} {count} created")


if __name__ == "__main__":
    asyncio.run(main())
