"""Which subscriptions get an order in which cycle."""

from datetime import date
from types import SimpleNamespace

import pytest

from fitflow.services.cycle_service import should_include_in_cycle


def _cycle(cycle_id: int, delivery_date: date):
    return SimpleNamespace(id=cycle_id, delivery_date=delivery_date)


def _sub(**overrides):
    fields = {
        "id": 1,
        "status": "active",
        "frequency": "seasonal",
        "first_cycle_id": None,
        "last_delivered_cycle_id": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def cycles():
    """Monthly cycles, January to June 2026."""
    return [_cycle(month, date(2026, month, 1)) for month in range(1, 7)]


class TestMonthlyAndStatus:
    def test_active_monthly_always_included(self, cycles):
        sub = _sub(frequency="monthly", last_delivered_cycle_id=5)
        assert all(should_include_in_cycle(sub, c, cycles) for c in cycles)

    @pytest.mark.parametrize("status", ["paused", "cancelled", "expired"])
    def test_non_active_never_included(self, cycles, status):
        sub = _sub(status=status, frequency="monthly")
        assert not any(should_include_in_cycle(sub, c, cycles) for c in cycles)

    def test_unknown_frequency_excluded(self, cycles):
        sub = _sub(frequency="weekly")
        assert not should_include_in_cycle(sub, cycles[0], cycles)


class TestSeasonal:
    def test_never_delivered_without_first_cycle_is_included(self, cycles):
        assert should_include_in_cycle(_sub(), cycles[0], cycles)

    def test_not_before_first_cycle(self, cycles):
        sub = _sub(first_cycle_id=3)  # March
        assert not should_include_in_cycle(sub, cycles[0], cycles)
        assert should_include_in_cycle(sub, cycles[2], cycles)
        assert should_include_in_cycle(sub, cycles[3], cycles)

    def test_three_cycle_gap_after_last_delivery(self, cycles):
        sub = _sub(last_delivered_cycle_id=1)  # January
        assert not should_include_in_cycle(sub, cycles[1], cycles)  # February
        assert not should_include_in_cycle(sub, cycles[2], cycles)  # March
        assert should_include_in_cycle(sub, cycles[3], cycles)  # April

    def test_gap_counts_existing_cycles_by_date(self, cycles):
        # February removed: January -> April is only two cycles apart now
        remaining = [c for c in cycles if c.id != 2]
        sub = _sub(last_delivered_cycle_id=1)
        assert not should_include_in_cycle(sub, cycles[3], remaining)
        assert should_include_in_cycle(sub, cycles[4], remaining)

    def test_missing_first_cycle_includes(self, cycles):
        sub = _sub(first_cycle_id=99)
        assert should_include_in_cycle(sub, cycles[0], cycles)

    def test_missing_last_delivered_cycle_includes(self, cycles):
        sub = _sub(last_delivered_cycle_id=99)
        assert should_include_in_cycle(sub, cycles[0], cycles)
