"""Scheduler tasks — the cycle order run and the preorder expiry sweep."""

import logging

from fitflow.cache import TTLCache
from fitflow.config import get_settings
from fitflow.db.session import async_session_factory
from fitflow.schemas.cycle import BatchResult
from fitflow.services.cycle_service import generate_orders_for_active_cycle
from fitflow.services.preorder_service import expire_stale_preorders

logger = logging.getLogger(__name__)


async def run_order_generation(ctx: dict) -> BatchResult:
    """Generate orders for the earliest due upcoming cycle.

    Runs daily via ARQ cron; rerunning is harmless because existing
    (subscription, cycle) orders are skipped.
    """
    cache = ctx.get("catalog_cache") or TTLCache(ttl_seconds=get_settings().catalog_cache_ttl)

    async with async_session_factory() as db:
        result = await generate_orders_for_active_cycle(db, cache=cache)

    if result.cycle_id is None:
        logger.info(f"Scheduler: {result.message}")
    else:
        logger.info(
            f"Scheduler: cycle {result.cycle_id} generated {result.generated}, "
            f"skipped {result.skipped}, excluded {result.excluded}, errors {result.errors}"
        )
        for detail in result.error_details:
            logger.warning(f"Scheduler: {detail}")
    return result


async def run_preorder_expiry(ctx: dict) -> int:
    """Flip lapsed pending preorders to expired. Runs daily via ARQ cron."""
    async with async_session_factory() as db:
        expired = await expire_stale_preorders(db)
    logger.info(f"Scheduler: expired {expired} preorders")
    return expired
