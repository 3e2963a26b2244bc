"""Subscription guards and derived state."""

from types import SimpleNamespace

import pytest

from fitflow.exceptions import ValidationFailedError
from fitflow.schemas.subscription import Preferences
from fitflow.services.subscription_service import (
    can_cancel,
    can_expire,
    can_pause,
    can_resume,
    compute_derived_state,
    validate_cancellation_reason,
    validate_preferences,
)


def _sub(status: str):
    return SimpleNamespace(status=status)


class TestGuards:
    @pytest.mark.parametrize(
        "status, pause, resume, cancel",
        [
            ("active", True, False, True),
            ("paused", False, True, True),
            ("cancelled", False, False, False),
            ("expired", False, False, False),
        ],
    )
    def test_guard_table(self, status, pause, resume, cancel):
        sub = _sub(status)
        assert can_pause(sub) is pause
        assert can_resume(sub) is resume
        assert can_cancel(sub) is cancel

    def test_pause_and_resume_are_exclusive(self):
        for status in ("active", "paused", "cancelled", "expired", "bogus"):
            sub = _sub(status)
            assert not (can_pause(sub) and can_resume(sub))

    def test_expire_allowed_until_expired(self):
        assert can_expire(_sub("active"))
        assert can_expire(_sub("cancelled"))
        assert not can_expire(_sub("expired"))


class TestDerivedState:
    def test_active(self):
        state = compute_derived_state(_sub("active"))
        assert state.is_active and not state.is_paused and not state.is_cancelled
        assert state.can_change_frequency
        assert state.can_edit_preferences and state.can_edit_address

    def test_paused_can_edit_but_not_change_frequency(self):
        state = compute_derived_state(_sub("paused"))
        assert state.is_paused
        assert state.can_edit_preferences
        assert not state.can_change_frequency

    def test_unknown_status_yields_all_false(self):
        state = compute_derived_state(_sub("archived"))
        assert not any(state.model_dump().values())


class TestCancellationReason:
    def test_trims_reason(self):
        assert validate_cancellation_reason("  moving abroad  ") == "moving abroad"

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_blank_reason_rejected(self, reason):
        with pytest.raises(ValidationFailedError):
            validate_cancellation_reason(reason)

    def test_overlong_reason_rejected(self):
        with pytest.raises(ValidationFailedError):
            validate_cancellation_reason("x" * 1001)


class TestPreferenceValidation:
    def test_no_personalization_needs_nothing(self):
        assert validate_preferences(Preferences(), "monthly-premium") == []

    def test_standard_box_requirements(self):
        prefs = Preferences(
            wants_personalization=True,
            sports=["running"],
            flavors=["chocolate"],
            dietary=["none"],
        )
        assert validate_preferences(prefs, "monthly-standard") == []

    def test_premium_box_needs_sizes_and_colors(self):
        prefs = Preferences(
            wants_personalization=True,
            sports=["running"],
            flavors=["chocolate"],
            dietary=["none"],
        )
        errors = validate_preferences(prefs, "monthly-premium")
        assert len(errors) == 3

    def test_other_option_needs_text(self):
        prefs = Preferences(
            wants_personalization=True,
            sports=["other"],
            flavors=["chocolate"],
            dietary=["none"],
        )
        assert validate_preferences(prefs, "monthly-standard") == ["Specify the other sport"]
