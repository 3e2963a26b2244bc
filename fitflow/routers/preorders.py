"""Preorder routes: signup, token-based edit and conversion, and the customer's own list."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.cache import TTLCache, get_catalog_cache
from fitflow.constants import CUSTOMER_ACTION_LIMIT
from fitflow.db.session import get_db
from fitflow.models.customer import Customer
from fitflow.models.preorder import Preorder
from fitflow.rate_limit import RateLimiter, get_rate_limiter
from fitflow.schemas.preorder import (
    ConversionLinkStatus,
    ConversionResult,
    PreorderConvertRequest,
    PreorderCreate,
    PreorderCreated,
    PreorderResponse,
    PreorderUpdate,
)
from fitflow.services.auth_service import get_current_customer, get_optional_customer
from fitflow.services.preorder_service import (
    convert_preorder,
    create_preorder,
    effective_conversion_status,
    get_preorder_for_conversion,
    list_customer_preorders,
    update_preorder,
)

router = APIRouter(prefix="/api/preorders", tags=["preorders"])


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def to_response(preorder: Preorder) -> PreorderResponse:
    response = PreorderResponse.model_validate(preorder)
    return response.model_copy(update={"conversion_status": effective_conversion_status(preorder)})


@router.post("", response_model=PreorderCreated, status_code=201)
async def signup(
    request: Request,
    data: PreorderCreate,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_catalog_cache),
    limiter: RateLimiter = Depends(get_rate_limiter),
    customer: Customer | None = Depends(get_optional_customer),
):
    """Reserve a box. Signed-in customers get the preorder linked to their account."""
    await limiter.check("preorder_create", _client_ip(request), CUSTOMER_ACTION_LIMIT)
    preorder = await create_preorder(db, data, customer.id if customer else None, cache=cache)
    return PreorderCreated(
        **to_response(preorder).model_dump(),
        conversion_token=preorder.conversion_token,
        conversion_token_expires_at=preorder.conversion_token_expires_at,
    )


@router.get("/mine", response_model=list[PreorderResponse])
async def my_preorders(
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return [to_response(p) for p in await list_customer_preorders(db, customer)]


@router.put("/edit", response_model=PreorderResponse)
async def edit(
    request: Request,
    data: PreorderUpdate,
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    await limiter.check("preorder_edit", _client_ip(request), CUSTOMER_ACTION_LIMIT)
    return to_response(await update_preorder(db, data))


@router.get("/convert/{token}", response_model=ConversionLinkStatus)
async def get_conversion_link(token: str, db: AsyncSession = Depends(get_db)):
    """Describe a usable conversion link; unusable links return their named error."""
    preorder = await get_preorder_for_conversion(db, token)
    return ConversionLinkStatus(
        order_number=preorder.order_number,
        box_type=preorder.box_type,
        full_name=preorder.full_name,
        email=preorder.email,
        conversion_status=effective_conversion_status(preorder),
        expires_at=preorder.conversion_token_expires_at,
        final_price_eur=preorder.final_price_eur,
    )


@router.post("/convert", response_model=ConversionResult, status_code=201)
async def convert(
    request: Request,
    data: PreorderConvertRequest,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_catalog_cache),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    await limiter.check("preorder_convert", _client_ip(request), CUSTOMER_ACTION_LIMIT)
    return await convert_preorder(db, data.token, data.shipping, cache=cache)
