"""Price quote routes — public, no session required."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache, get_catalog_cache
from fitflow.db.session import get_db
from fitflow.schemas.pricing import PriceInfo
from fitflow.services.pricing_service import calculate_price, list_prices

router = APIRouter(prefix="/api/prices", tags=["pricing"])


@router.get("", response_model=list[PriceInfo])
async def get_all_prices(
    promo_code: str | None = Query(None, max_length=64),
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_catalog_cache),
):
    return await list_prices(db, promo_code, cache=cache)


@router.get("/{box_type}", response_model=PriceInfo)
async def get_box_price(
    box_type: str,
    promo_code: str | None = Query(None, max_length=64),
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_catalog_cache),
):
    return await calculate_price(db, box_type, promo_code, cache=cache)
