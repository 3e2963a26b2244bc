"""Preorder signup and edits, conversion into orders, and the expiry sweep."""

from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from fitflow.config import get_settings
from fitflow.exceptions import (
    PreorderAlreadyConvertedError,
    PreorderExpiredError,
    PreorderNotFoundError,
    ValidationFailedError,
)
from fitflow.models import Order, Preorder, PromoCode, PromoCodeUsage
from fitflow.schemas.preorder import PreorderCreate, PreorderUpdate, ShippingAddress
from fitflow.schemas.subscription import Preferences
from fitflow.services import preorder_service
from fitflow.services.preorder_service import (
    check_conversion_token,
    convert_preorder,
    create_preorder,
    effective_conversion_status,
    expire_stale_preorders,
    list_customer_preorders,
    new_conversion_token,
    update_preorder,
)
from fitflow.services.pricing_service import create_promo_code, record_promo_usage
from fitflow.utils import ensure_utc, now_utc


@pytest.fixture
def shipping():
    return ShippingAddress(
        full_name="Maria Ivanova",
        phone="+359888123456",
        city="Sofia",
        postal_code="1000",
        street_address="12 Rakovski St",
    )


class TestTokenStatus:
    def test_new_token_expiry(self):
        now = now_utc()
        token, expires_at = new_conversion_token(now)
        assert len(token) == 32
        assert expires_at == now + timedelta(days=90)

    def test_pending_past_expiry_reads_expired(self):
        now = now_utc()
        preorder = SimpleNamespace(conversion_status="pending", conversion_token_expires_at=now - timedelta(seconds=1))
        assert effective_conversion_status(preorder, now) == "expired"

    def test_converted_wins_over_lapsed_expiry(self):
        now = now_utc()
        preorder = SimpleNamespace(conversion_status="converted", conversion_token_expires_at=now - timedelta(days=1))
        with pytest.raises(PreorderAlreadyConvertedError):
            check_conversion_token(preorder, now)

    def test_no_expiry_never_lapses(self):
        preorder = SimpleNamespace(conversion_status="pending", conversion_token_expires_at=None)
        check_conversion_token(preorder)


class TestConvertPreorder:
    async def test_converts_at_snapshot_price(self, db, catalog, make_preorder, shipping):
        preorder = await make_preorder()

        result = await convert_preorder(db, preorder.conversion_token, shipping)

        assert result.preorder_order_number == preorder.order_number
        assert result.final_price_eur == Decimal("22.41")

        order = await db.get(Order, result.order_id)
        assert order.order_type == "preorder-conversion"
        assert order.shipping_address["postal_code"] == "1000"
        assert order.customer_email == preorder.email

        stored = (await db.execute(select(Preorder).where(Preorder.id == preorder.id))).scalar_one()
        await db.refresh(stored)
        assert stored.conversion_status == "converted"
        assert stored.converted_to_order_id == result.order_id
        assert stored.converted_at is not None

    async def test_replay_reports_already_converted(self, db, catalog, make_preorder, shipping):
        preorder = await make_preorder()
        await convert_preorder(db, preorder.conversion_token, shipping)

        with pytest.raises(PreorderAlreadyConvertedError):
            await convert_preorder(db, preorder.conversion_token, shipping)

        orders = (await db.execute(select(Order))).scalars().all()
        assert len(orders) == 1

    async def test_expired_link_fails_every_time(self, db, catalog, make_preorder, shipping):
        preorder = await make_preorder(conversion_token_expires_at=now_utc() - timedelta(days=1))

        for _ in range(2):
            with pytest.raises(PreorderExpiredError):
                await convert_preorder(db, preorder.conversion_token, shipping)

    async def test_unknown_token(self, db, catalog, shipping):
        with pytest.raises(PreorderNotFoundError):
            await convert_preorder(db, "no-such-token", shipping)

    async def test_prices_from_catalog_without_snapshot(self, db, catalog, make_preorder, shipping):
        preorder = await make_preorder(
            box_type="monthly-premium",
            promo_code=None,
            discount_percent=None,
            original_price_eur=None,
            final_price_eur=None,
        )
        result = await convert_preorder(db, preorder.conversion_token, shipping)
        assert result.final_price_eur == Decimal("34.90")


class TestExpirySweep:
    async def test_expires_only_lapsed_pending(self, db, make_preorder):
        past = now_utc() - timedelta(days=1)
        await make_preorder(conversion_token_expires_at=past)
        await make_preorder(conversion_token_expires_at=past, conversion_status="converted")
        await make_preorder()

        assert await expire_stale_preorders(db) == 1
        assert await expire_stale_preorders(db) == 0

        statuses = (await db.execute(select(Preorder.conversion_status).order_by(Preorder.id))).scalars().all()
        assert statuses == ["expired", "converted", "pending"]


def _signup(**overrides) -> PreorderCreate:
    fields = {
        "full_name": "Maria Ivanova",
        "email": "Maria@Example.com",
        "phone": "+359888123456",
        "box_type": "monthly-standard",
        "promo_code": "fitflow10",
    }
    fields.update(overrides)
    return PreorderCreate(**fields)


class TestCreatePreorder:
    async def test_prices_server_side_and_issues_token(self, db, catalog):
        now = now_utc()
        preorder = await create_preorder(db, _signup(), now=now)

        assert preorder.email == "maria@example.com"
        assert preorder.customer_id is None
        assert preorder.promo_code == "FITFLOW10"
        assert preorder.original_price_eur == Decimal("24.90")
        assert preorder.final_price_eur == Decimal("22.41")
        assert preorder.conversion_status == "pending"
        assert preorder.conversion_token
        ttl = timedelta(days=get_settings().preorder_token_ttl_days)
        assert ensure_utc(preorder.conversion_token_expires_at) == now + ttl

        result = await db.execute(select(PromoCode.current_uses).where(PromoCode.code == "FITFLOW10"))
        assert result.scalar_one() == 1
        usages = await db.execute(select(PromoCodeUsage.id))
        assert usages.scalars().all() == []

    async def test_links_signed_in_customer(self, db, catalog, make_customer):
        customer = await make_customer()
        preorder = await create_preorder(db, _signup(), customer_id=customer.id)

        assert preorder.customer_id == customer.id
        usages = await db.execute(select(PromoCodeUsage.customer_id))
        assert usages.scalars().all() == [customer.id]

    async def test_invalid_promo_quotes_base_price(self, db, catalog):
        preorder = await create_preorder(db, _signup(promo_code="nope"))
        assert preorder.promo_code is None
        assert preorder.discount_percent is None
        assert preorder.final_price_eur == Decimal("24.90")

    async def test_unknown_box_rejected(self, db, catalog):
        with pytest.raises(ValidationFailedError) as exc_info:
            await create_preorder(db, _signup(box_type="mystery-box"))
        assert exc_info.value.code == "invalid_box_type"

    async def test_premium_preferences_validated(self, db, catalog):
        prefs = Preferences(wants_personalization=True, sports=["running"], flavors=["vanilla"], dietary=["none"])
        with pytest.raises(ValidationFailedError) as exc_info:
            await create_preorder(db, _signup(box_type="one-time-premium", preferences=prefs))
        assert len(exc_info.value.errors) == 3

    async def test_promo_exhausted_after_quote_uses_base_price(
        self, db, catalog, session_factory, make_customer, monkeypatch
    ):
        await create_promo_code(db, {"code": "ONCE", "discount_percent": Decimal("50"), "max_uses": 1})
        rival = await make_customer()
        quote = preorder_service.calculate_price
        raced = False

        async def quote_then_lose_race(*args, **kwargs):
            nonlocal raced
            price = await quote(*args, **kwargs)
            if not raced:
                raced = True
                async with session_factory() as other:
                    assert await record_promo_usage(other, "ONCE", rival.id)
                    await other.commit()
            return price

        monkeypatch.setattr(preorder_service, "calculate_price", quote_then_lose_race)

        preorder = await create_preorder(db, _signup(promo_code="once"))

        assert preorder.promo_code is None
        assert preorder.final_price_eur == Decimal("24.90")

    async def test_signup_token_converts(self, db, catalog, shipping):
        preorder = await create_preorder(db, _signup())
        result = await convert_preorder(db, preorder.conversion_token, shipping)
        assert result.preorder_order_number == preorder.order_number
        assert result.final_price_eur == Decimal("22.41")


class TestUpdatePreorder:
    async def test_edits_contact_and_personalization(self, db, catalog, make_preorder):
        preorder = await make_preorder()
        prefs = Preferences(wants_personalization=True, sports=["yoga"], flavors=["vanilla"], dietary=["vegan"])

        updated = await update_preorder(
            db, PreorderUpdate(token=preorder.conversion_token, full_name=" Maria Petrova ", preferences=prefs)
        )

        assert updated.full_name == "Maria Petrova"
        assert updated.sports == ["yoga"]
        assert updated.wants_personalization is True
        assert updated.box_type == "monthly-standard"
        assert updated.final_price_eur == Decimal("22.41")

    async def test_omitted_fields_untouched(self, db, catalog, make_preorder):
        preorder = await make_preorder(sports=["running"], wants_personalization=True)
        updated = await update_preorder(db, PreorderUpdate(token=preorder.conversion_token, phone="+359888999999"))
        assert updated.phone == "+359888999999"
        assert updated.sports == ["running"]
        assert updated.full_name == preorder.full_name

    async def test_invalid_preferences_rejected(self, db, catalog, make_preorder):
        preorder = await make_preorder()
        with pytest.raises(ValidationFailedError):
            await update_preorder(
                db,
                PreorderUpdate(
                    token=preorder.conversion_token, preferences=Preferences(wants_personalization=True)
                ),
            )

    async def test_converted_preorder_is_locked(self, db, make_preorder):
        preorder = await make_preorder(conversion_status="converted")
        with pytest.raises(PreorderAlreadyConvertedError):
            await update_preorder(db, PreorderUpdate(token=preorder.conversion_token, full_name="Someone Else"))

    async def test_lapsed_token_rejected(self, db, make_preorder):
        preorder = await make_preorder(conversion_token_expires_at=now_utc() - timedelta(minutes=1))
        with pytest.raises(PreorderExpiredError):
            await update_preorder(db, PreorderUpdate(token=preorder.conversion_token, full_name="Someone Else"))

    async def test_unknown_token(self, db):
        with pytest.raises(PreorderNotFoundError):
            await update_preorder(db, PreorderUpdate(token="missing", full_name="Someone Else"))


class TestCustomerPreorders:
    async def test_linked_and_unclaimed_by_email(self, db, make_customer, make_preorder):
        customer = await make_customer(email="maria@example.com")
        other = await make_customer()
        linked = await make_preorder(customer_id=customer.id, email="old-address@example.com")
        unclaimed = await make_preorder(email="Maria@Example.com")
        await make_preorder(email="maria@example.com", customer_id=other.id)
        await make_preorder(email="someone@example.com")

        preorders = await list_customer_preorders(db, customer)

        assert {p.id for p in preorders} == {linked.id, unclaimed.id}
