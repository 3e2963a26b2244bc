"""ARQ worker — background job processing."""

import logging

from arq import cron
from arq.connections import RedisSettings

from fitflow.config import get_settings
from fitflow.constants import (
    ARQ_JOB_TIMEOUT,
    ARQ_MAX_JOBS,
    EXPIRE_PREORDERS_HOUR,
    GENERATE_ORDERS_HOUR,
)

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    from fitflow.cache import TTLCache
    from fitflow.utils import setup_logging

    setup_logging()
    ctx["catalog_cache"] = TTLCache(ttl_seconds=get_settings().catalog_cache_ttl)
    logger.info("Worker started")


async def generate_orders_job(ctx: dict) -> dict:
    """Cron job: generate orders for the cycle that is due today."""
    from fitflow.scheduler_tasks import run_order_generation

    result = await run_order_generation(ctx)
    return result.model_dump(mode="json")


async def expire_preorders_job(ctx: dict) -> int:
    """Cron job: expire preorders whose conversion link has lapsed."""
    from fitflow.scheduler_tasks import run_preorder_expiry

    return await run_preorder_expiry(ctx)


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [generate_orders_job, expire_preorders_job]
    cron_jobs = [
        cron(generate_orders_job, hour=GENERATE_ORDERS_HOUR, minute=0),
        cron(expire_preorders_job, hour=EXPIRE_PREORDERS_HOUR, minute=0),
    ]
    on_startup = startup

    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)

    max_jobs = ARQ_MAX_JOBS
    job_timeout = ARQ_JOB_TIMEOUT
