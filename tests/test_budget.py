"""
Tests for the budget calculator and setup validator.
"""

import pytest

from trade_risk_guardian.budget import (
    build_locked_setup,
    calculate_derived_values,
    estimate_tradeable_days,
    validate_setup,
    validate_setup_mutability,
)
from trade_risk_guardian.config import SetupRulesConfig
from trade_risk_guardian.presets import (
    get_all_challenge_presets,
    get_challenge_preset,
    get_presets_by_provider,
)
from trade_risk_guardian.types import InvalidEnumError, SetupInput, SetupValidationError


def make_setup(**overrides) -> SetupInput:
    values = dict(
        account_size=10000.0,
        over_roll_max_percent=10.0,
        daily_max_percent=5.0,
        user_risk_per_trade_percent=1.0,
        user_risk_per_asset_percent=3.0,
        max_orders_per_asset=3,
    )
    values.update(overrides)
    return SetupInput(**values)


# =============================================================
# TEST: Derived values
# =============================================================

class TestDerivedValues:
    """Dollar budgets from percentage rules."""

    def test_standard_budgets(self):
        budgets = calculate_derived_values(make_setup())

        assert budgets.daily_budget_dollars == 500.0
        assert budgets.over_roll_budget_dollars == 1000.0
        assert budgets.max_trade_risk_dollars == 100.0
        assert budgets.max_asset_allocation_dollars == 300.0

    def test_rounded_to_cents(self):
        budgets = calculate_derived_values(
            make_setup(account_size=12345.67, user_risk_per_trade_percent=1.5)
        )
        assert budgets.max_trade_risk_dollars == 185.19

    def test_idempotent(self):
        setup = make_setup(account_size=25000.0, daily_max_percent=4.0)
        assert calculate_derived_values(setup) == calculate_derived_values(setup)

    def test_tradeable_days(self):
        assert estimate_tradeable_days(calculate_derived_values(make_setup())) == 2

    def test_tradeable_days_without_daily_budget(self):
        budgets = calculate_derived_values(make_setup(daily_max_percent=0.0))
        assert estimate_tradeable_days(budgets) is None


# =============================================================
# TEST: Setup validation
# =============================================================

class TestSetupValidation:
    """Every rule is checked and reported."""

    def test_valid_setup_has_no_errors_or_warnings(self):
        result = validate_setup(make_setup())

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_risk_above_ceiling_is_error(self):
        result = validate_setup(make_setup(
            user_risk_per_trade_percent=6.0,
            user_risk_per_asset_percent=20.0,
        ))

        assert not result.is_valid
        assert any("Risk per trade (6.0%)" in e and "5%" in e for e in result.errors)

    def test_asset_below_trade_is_error(self):
        result = validate_setup(make_setup(
            user_risk_per_trade_percent=2.0,
            user_risk_per_asset_percent=1.0,
            max_orders_per_asset=1,
        ))
        assert any("Risk per asset (1.0%)" in e for e in result.errors)

    def test_daily_above_over_roll_is_error(self):
        result = validate_setup(make_setup(daily_max_percent=12.0))
        assert any("cannot exceed the over-roll" in e for e in result.errors)

    def test_zero_orders_per_asset_is_error(self):
        result = validate_setup(make_setup(max_orders_per_asset=0))
        assert any("cannot be 0" in e for e in result.errors)

    def test_worst_case_asset_conflict(self):
        result = validate_setup(make_setup(
            user_risk_per_trade_percent=2.0,
            user_risk_per_asset_percent=3.0,
            max_orders_per_asset=2,
        ))
        assert any("Configuration conflict" in e and "$400.00" in e for e in result.errors)

    def test_all_errors_reported_together(self):
        result = validate_setup(make_setup(
            daily_max_percent=12.0,
            user_risk_per_trade_percent=6.0,
            user_risk_per_asset_percent=3.0,
        ))
        assert len(result.errors) >= 3

    def test_large_trade_share_of_daily_is_warning(self):
        result = validate_setup(make_setup(
            daily_max_percent=2.0,
            user_risk_per_trade_percent=1.0,
            user_risk_per_asset_percent=3.0,
        ))
        assert result.is_valid
        assert any("more than 33% of the daily budget" in w for w in result.warnings)

    def test_small_daily_budget_is_warning(self):
        result = validate_setup(make_setup(
            daily_max_percent=2.0,
            user_risk_per_trade_percent=0.5,
            user_risk_per_asset_percent=1.5,
        ))
        assert any("Estimated tradeable days: ~5 days" in w for w in result.warnings)
        assert any("is below 30% of the over-roll" in w for w in result.warnings)

    def test_warning_thresholds_follow_config(self):
        rules = SetupRulesConfig(trade_to_daily_warning_ratio=0.5, min_daily_to_over_roll_ratio=0.5)

        result = validate_setup(make_setup(
            daily_max_percent=4.0,
            user_risk_per_trade_percent=2.5,
            user_risk_per_asset_percent=3.0,
            max_orders_per_asset=1,
        ), rules)

        assert result.is_valid
        assert any("more than 50% of the daily budget" in w for w in result.warnings)
        assert any("is below 50% of the over-roll" in w for w in result.warnings)

    def test_small_account_is_warning(self):
        result = validate_setup(make_setup(account_size=500.0))
        assert any("very small" in w for w in result.warnings)

    def test_non_positive_account_short_circuits(self):
        result = validate_setup(make_setup(account_size=0))
        assert not result.is_valid
        assert len(result.errors) == 1


# =============================================================
# TEST: Locking
# =============================================================

class TestLocking:
    """Setups are locked at creation and never unlocked."""

    def test_build_locked_setup(self):
        values = build_locked_setup(make_setup())

        assert values["status"] == "LOCKED"
        assert values["is_locked"] is True
        assert values["daily_budget_dollars"] == 500.0
        assert values["locked_at"] is not None

    def test_build_locked_setup_rejects_invalid(self):
        with pytest.raises(SetupValidationError) as exc_info:
            build_locked_setup(make_setup(user_risk_per_trade_percent=6.0,
                                          user_risk_per_asset_percent=20.0))
        assert exc_info.value.errors

    def test_locked_setup_cannot_be_modified(self):
        check = validate_setup_mutability("LOCKED", True)
        assert not check.can_modify
        assert "end the current challenge" in check.reason

    def test_active_setup_cannot_be_modified(self):
        assert not validate_setup_mutability("ACTIVE", False).can_modify

    def test_draft_setup_can_be_modified(self):
        assert validate_setup_mutability("DRAFT", False).can_modify

    def test_unknown_status_rejected(self):
        with pytest.raises(InvalidEnumError):
            validate_setup_mutability("PAUSED", False)


# =============================================================
# TEST: Presets
# =============================================================

class TestPresets:

    def test_lookup_is_case_insensitive(self):
        preset = get_challenge_preset("ftmo_phase1")

        assert preset.provider == "FTMO"
        assert preset.daily_max_percent == 5.0
        assert preset.over_roll_max_percent == 10.0

    def test_unknown_preset(self):
        assert get_challenge_preset("NOPE") is None

    def test_presets_by_provider(self):
        presets = get_presets_by_provider("ftmo")

        assert len(presets) >= 2
        assert all(p.provider == "FTMO" for p in presets)

    def test_presets_are_valid_setups(self):
        for preset in get_all_challenge_presets():
            assert preset.daily_max_percent <= preset.over_roll_max_percent
