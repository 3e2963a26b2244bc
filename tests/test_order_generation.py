"""Batch order generation per cycle, cycle transitions and delivery-date math."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from fitflow.config import get_settings
from fitflow.exceptions import CycleNotFoundError, CycleStateError
from fitflow.models import DeliveryCycle, Order, SiteConfig, Subscription
from fitflow.schemas.cycle import DeliveryConfig
from fitflow.seed import seed_catalog
from fitflow.services.cycle_service import (
    archive_cycle,
    calculate_next_delivery_date,
    compute_cycle_state,
    generate_orders_for_active_cycle,
    generate_orders_for_cycle,
    get_delivery_config,
    get_earliest_eligible_cycle,
    mark_cycle_delivered,
    reveal_cycle,
)


async def _order_count(db, **filters) -> int:
    query = select(func.count(Order.id))
    for column, value in filters.items():
        query = query.where(getattr(Order, column) == value)
    return (await db.execute(query)).scalar_one()


class TestGenerateOrdersForCycle:
    async def test_generates_for_eligible_subscriptions(self, db, catalog, make_cycle, make_subscription):
        cycle = await make_cycle(date(2026, 1, 5))
        monthly = await make_subscription()
        await make_subscription(status="paused")
        await make_subscription(status="cancelled")

        result = await generate_orders_for_cycle(db, cycle.id)

        assert result.generated == 1
        assert result.errors == 0
        assert result.cycle_date == date(2026, 1, 5)
        assert await _order_count(db, subscription_id=monthly.id, delivery_cycle_id=cycle.id) == 1

        sub = await db.get(Subscription, monthly.id)
        assert sub.last_delivered_cycle_id == cycle.id

    async def test_rerun_is_idempotent(self, db, catalog, make_cycle, make_subscription):
        cycle = await make_cycle(date(2026, 1, 5))
        await make_subscription()
        await make_subscription()

        first = await generate_orders_for_cycle(db, cycle.id)
        second = await generate_orders_for_cycle(db, cycle.id)

        assert first.generated == 2
        assert second.generated == 0
        assert second.skipped == 2
        assert await _order_count(db) == 2

    async def test_order_snapshots_address_and_locked_discount(
        self, db, catalog, make_cycle, make_subscription
    ):
        cycle = await make_cycle(date(2026, 1, 5))
        sub = await make_subscription(promo_code="FITFLOW10", discount_percent=Decimal("10"))

        await generate_orders_for_cycle(db, cycle.id)

        order = (await db.execute(select(Order).where(Order.subscription_id == sub.id))).scalar_one()
        assert order.order_type == "subscription"
        assert order.final_price_eur == Decimal("22.41")
        assert order.promo_code == "FITFLOW10"
        assert order.shipping_address["city"] == "Sofia"
        assert order.order_number.startswith("FF-")

    async def test_one_failure_does_not_stop_batch(self, db, catalog, make_cycle, make_subscription):
        cycle = await make_cycle(date(2026, 1, 5))
        broken_id = (await make_subscription(default_address_id=None)).id
        healthy_id = (await make_subscription()).id

        result = await generate_orders_for_cycle(db, cycle.id)

        assert result.generated == 1
        assert result.errors == 1
        assert f"subscription {broken_id}" in result.error_details[0]
        assert await _order_count(db, subscription_id=healthy_id) == 1
        assert await _order_count(db, subscription_id=broken_id) == 0

    async def test_seasonal_spacing(self, db, catalog, make_cycle, make_subscription):
        january = await make_cycle(date(2026, 1, 5), status="delivered")
        await make_cycle(date(2026, 2, 5), status="delivered")
        march = await make_cycle(date(2026, 3, 5))
        april = await make_cycle(date(2026, 4, 5))
        await make_subscription(frequency="seasonal", first_cycle_id=january.id, last_delivered_cycle_id=january.id)

        march_result = await generate_orders_for_cycle(db, march.id)
        april_result = await generate_orders_for_cycle(db, april.id)

        assert march_result.excluded == 1
        assert april_result.generated == 1

    async def test_last_delivered_never_moves_backwards(self, db, catalog, make_cycle, make_subscription):
        march = await make_cycle(date(2026, 3, 5))
        april = await make_cycle(date(2026, 4, 5))
        sub = await make_subscription()

        await generate_orders_for_cycle(db, april.id)
        await generate_orders_for_cycle(db, march.id)

        refreshed = await db.get(Subscription, sub.id)
        await db.refresh(refreshed)
        assert refreshed.last_delivered_cycle_id == april.id

    async def test_unknown_cycle(self, db, catalog):
        with pytest.raises(CycleNotFoundError):
            await generate_orders_for_cycle(db, 999)

    async def test_archived_cycle_rejected(self, db, catalog, make_cycle):
        cycle = await make_cycle(date(2026, 1, 5), status="archived")
        with pytest.raises(CycleStateError):
            await generate_orders_for_cycle(db, cycle.id)


class TestActiveCycle:
    async def test_picks_earliest_due_upcoming_cycle(self, db, make_cycle):
        await make_cycle(date(2026, 1, 5), status="delivered")
        due = await make_cycle(date(2026, 2, 5))
        await make_cycle(date(2026, 3, 5))

        cycle = await get_earliest_eligible_cycle(db, today=date(2026, 3, 1))
        assert cycle.id == due.id

    async def test_nothing_due(self, db, catalog, make_cycle):
        await make_cycle(date(2026, 3, 5))
        result = await generate_orders_for_active_cycle(db, today=date(2026, 3, 1))
        assert result.cycle_id is None
        assert result.generated == 0
        assert result.message


class TestCycleTransitions:
    async def test_deliver_reveal_archive(self, db, make_cycle):
        cycle = await make_cycle(date(2026, 1, 5))

        cycle = await mark_cycle_delivered(db, cycle.id)
        assert cycle.status == "delivered"

        cycle = await reveal_cycle(db, cycle.id)
        assert cycle.is_revealed
        with pytest.raises(CycleStateError):
            await reveal_cycle(db, cycle.id)

        cycle = await archive_cycle(db, cycle.id)
        assert cycle.status == "archived"

    async def test_reveal_upcoming_marks_delivered(self, db, make_cycle):
        cycle = await make_cycle(date(2026, 1, 5))

        cycle = await reveal_cycle(db, cycle.id)

        assert cycle.status == "delivered"
        assert cycle.is_revealed
        assert cycle.revealed_at is not None
        assert not compute_cycle_state(cycle).can_mark_delivered

    async def test_cannot_reveal_archived(self, db, make_cycle):
        cycle = await make_cycle(date(2026, 1, 5), status="archived")
        with pytest.raises(CycleStateError):
            await reveal_cycle(db, cycle.id)

    async def test_cannot_archive_upcoming(self, db, make_cycle):
        cycle = await make_cycle(date(2026, 1, 5))
        with pytest.raises(CycleStateError):
            await archive_cycle(db, cycle.id)

    async def test_cycle_state(self, db, make_cycle):
        cycle = await make_cycle(date(2026, 1, 15))
        state = compute_cycle_state(cycle, today=date(2026, 1, 10))
        assert state.is_upcoming
        assert state.can_mark_delivered
        assert state.can_reveal
        assert state.days_until_delivery == 5

        past = compute_cycle_state(cycle, today=date(2026, 1, 20))
        assert past.is_past
        assert past.days_until_delivery is None


class TestNextDeliveryDate:
    def test_later_this_month(self):
        assert calculate_next_delivery_date(DeliveryConfig(delivery_day=5), date(2026, 1, 3)) == date(2026, 1, 5)

    def test_delivery_day_itself_rolls_over(self):
        assert calculate_next_delivery_date(DeliveryConfig(delivery_day=5), date(2026, 1, 5)) == date(2026, 2, 5)

    def test_year_rollover(self):
        assert calculate_next_delivery_date(DeliveryConfig(delivery_day=5), date(2026, 12, 20)) == date(2027, 1, 5)

    def test_future_first_delivery_override(self):
        config = DeliveryConfig(delivery_day=5, first_delivery_date=date(2026, 2, 14))
        assert calculate_next_delivery_date(config, date(2026, 1, 3)) == date(2026, 2, 14)

    def test_past_first_delivery_ignored(self):
        config = DeliveryConfig(delivery_day=5, first_delivery_date=date(2025, 12, 1))
        assert calculate_next_delivery_date(config, date(2026, 1, 3)) == date(2026, 1, 5)


class TestDeliveryConfig:
    async def test_reads_site_config(self, db):
        db.add(SiteConfig(key="SUBSCRIPTION_DELIVERY_DAY", value="12"))
        await db.commit()
        assert (await get_delivery_config(db)).delivery_day == 12

    async def test_missing_row_uses_setting(self, db):
        assert (await get_delivery_config(db)).delivery_day == get_settings().subscription_delivery_day

    @pytest.mark.parametrize("value", ["friday", "31", "0"])
    async def test_bad_value_uses_setting(self, db, value):
        db.add(SiteConfig(key="SUBSCRIPTION_DELIVERY_DAY", value=value))
        await db.commit()
        assert (await get_delivery_config(db)).delivery_day == get_settings().subscription_delivery_day

    async def test_seed_schedules_cycle_on_configured_day(self, db):
        db.add(SiteConfig(key="SUBSCRIPTION_DELIVERY_DAY", value="20"))
        await db.commit()

        await seed_catalog(db)

        cycle = (await db.execute(select(DeliveryCycle))).scalar_one()
        assert cycle.delivery_date.day == 20
