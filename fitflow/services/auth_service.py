"""Session verification for tokens issued by the identity provider, plus the staff and cron gates."""

import hmac
from datetime import datetime, timedelta, UTC

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitflow.config import get_settings
from fitflow.constants import COOKIE_NAME, STAFF_ROLE
from fitflow.db.session import get_db
from fitflow.models.customer import Customer


def create_jwt(customer_id: int, role: str | None = None, expires_in: timedelta = timedelta(days=7)) -> str:
    """Sign a session token. The identity provider does this in production; tests and the CLI use it locally."""
    settings = get_settings()
    payload = {
        "sub": str(customer_id),
        "exp": datetime.now(UTC) + expires_in,
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode_jwt(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(
        token, settings.jwt_secret, algorithms=[settings.jwt_algorithm],
        options={"require": ["exp", "sub"]},
    )


def _extract_token(request: Request) -> str | None:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(COOKIE_NAME)


async def get_current_customer(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Customer:
    """FastAPI dependency: decode the session token and return the Customer, or raise 401."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = _decode_jwt(token)
        customer_id = int(payload["sub"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    result = await db.execute(select(Customer).where(Customer.id == customer_id))
    customer = result.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=401, detail="Customer not found")

    request.state.session_role = payload.get("role")
    return customer


async def get_optional_customer(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Customer | None:
    """Like get_current_customer but returns None instead of raising 401."""
    token = _extract_token(request)
    if not token:
        return None
    try:
        payload = _decode_jwt(token)
        customer_id = int(payload["sub"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, ValueError):
        return None

    result = await db.execute(select(Customer).where(Customer.id == customer_id))
    return result.scalar_one_or_none()


async def get_staff_user(
    request: Request,
    customer: Customer = Depends(get_current_customer),
) -> Customer:
    """Like get_current_customer but requires a staff role claim or staff flag (403 otherwise)."""
    role = getattr(request.state, "session_role", None)
    if role != STAFF_ROLE and not customer.is_staff:
        raise HTTPException(status_code=403, detail="Staff access required")
    return customer


async def verify_cron_secret(request: Request) -> None:
    """FastAPI dependency: require 'Authorization: Bearer <CRON_SECRET>'."""
    expected = f"Bearer {get_settings().cron_secret}"
    provided = request.headers.get("authorization", "")
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")
