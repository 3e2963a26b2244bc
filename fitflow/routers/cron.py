"""Cron endpoints — external schedulers call these with the shared cron secret."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache, get_catalog_cache
from fitflow.db.session import get_db
from fitflow.schemas.cycle import BatchResult
from fitflow.services.auth_service import verify_cron_secret
from fitflow.services.cycle_service import generate_orders_for_active_cycle
from fitflow.services.preorder_service import expire_stale_preorders

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/generate-orders", response_model=BatchResult)
async def cron_generate_orders(
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_catalog_cache),
):
    logger.info("Cron: generating orders for the active cycle")
    return await generate_orders_for_active_cycle(db, cache=cache)


@router.post("/expire-preorders")
async def cron_expire_preorders(db: AsyncSession = Depends(get_db)):
    expired = await expire_stale_preorders(db)
    return {"expired": expired}
