"""Shared fixtures: a throwaway SQLite database per test, factories, and an API client."""

import itertools
import os
from datetime import timedelta
from decimal import Decimal

# Settings are cached on first use, so the environment must be in place first
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fitflow.cache import TTLCache
from fitflow.db.session import get_db
from fitflow.models import Address, Base, Customer, DeliveryCycle, Preorder, Subscription
from fitflow.rate_limit import RateLimiter
from fitflow.seed import seed_catalog
from fitflow.services.auth_service import create_jwt
from fitflow.utils import now_utc


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fitflow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def catalog(db):
    """Box types, the BGN rate and the launch promo codes, without any delivery cycle."""
    return await seed_catalog(db, with_cycle=False)


@pytest.fixture
def cache():
    return TTLCache(ttl_seconds=60)


@pytest.fixture
def make_customer(db):
    counter = itertools.count(1)

    async def _make(**overrides) -> Customer:
        n = next(counter)
        fields = {
            "email": f"customer{n}@example.com",
            "full_name": f"Customer {n}",
            "phone": "+359888000000",
        }
        fields.update(overrides)
        customer = Customer(**fields)
        db.add(customer)
        await db.commit()
        await db.refresh(customer)
        return customer

    return _make


@pytest.fixture
def make_address(db):
    async def _make(customer: Customer, **overrides) -> Address:
        fields = {
            "customer_id": customer.id,
            "full_name": customer.full_name,
            "phone": customer.phone,
            "city": "Sofia",
            "postal_code": "1000",
            "street_address": "1 Vitosha Blvd",
        }
        fields.update(overrides)
        address = Address(**fields)
        db.add(address)
        await db.commit()
        await db.refresh(address)
        return address

    return _make


@pytest.fixture
def make_cycle(db):
    async def _make(delivery_date, status: str = "upcoming", **overrides) -> DeliveryCycle:
        cycle = DeliveryCycle(delivery_date=delivery_date, status=status, **overrides)
        db.add(cycle)
        await db.commit()
        await db.refresh(cycle)
        return cycle

    return _make


@pytest.fixture
def make_subscription(db, make_customer, make_address):
    async def _make(customer: Customer | None = None, **overrides) -> Subscription:
        if customer is None:
            customer = await make_customer(is_subscriber=True)
        fields = {
            "customer_id": customer.id,
            "box_type": "monthly-standard",
            "frequency": "monthly",
            "status": "active",
            "base_price_eur": Decimal("24.90"),
            "current_price_eur": Decimal("24.90"),
        }
        fields.update(overrides)
        if "default_address_id" not in fields:
            address = await make_address(customer)
            fields["default_address_id"] = address.id
        sub = Subscription(**fields)
        db.add(sub)
        await db.commit()
        await db.refresh(sub)
        return sub

    return _make


@pytest.fixture
def make_preorder(db):
    counter = itertools.count(1)

    async def _make(**overrides) -> Preorder:
        n = next(counter)
        fields = {
            "order_number": f"PRE-{n:04d}",
            "full_name": f"Preorder Customer {n}",
            "email": f"preorder{n}@example.com",
            "box_type": "monthly-standard",
            "promo_code": "FITFLOW10",
            "discount_percent": Decimal("10"),
            "original_price_eur": Decimal("24.90"),
            "final_price_eur": Decimal("22.41"),
            "conversion_status": "pending",
            "conversion_token": f"token-{n}",
            "conversion_token_expires_at": now_utc() + timedelta(days=30),
        }
        fields.update(overrides)
        preorder = Preorder(**fields)
        db.add(preorder)
        await db.commit()
        await db.refresh(preorder)
        return preorder

    return _make


@pytest.fixture
def auth_headers():
    def _headers(customer_id: int, role: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_jwt(customer_id, role)}"}

    return _headers


@pytest.fixture
def app(session_factory):
    from fitflow.app import create_app

    app = create_app()

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.state.rate_limiter = RateLimiter(None)
    app.state.catalog_cache = TTLCache(ttl_seconds=60)
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
