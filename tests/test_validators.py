"""
Tests for the trade validators.

Tests cover:
- Per-trade risk, stop and target sides, sizing
- Challenge budgets, per-asset limits and order spacing
- Directional currency exposure
- Prop-firm loss limits and challenge health
"""

from datetime import datetime, timedelta

import pytest

from trade_risk_guardian.config import GuardianConfig
from trade_risk_guardian.types import (
    ChallengeBudget,
    Direction,
    HealthStatus,
    PropFirmRules,
    TradeExposure,
    TradeProposal,
    TradeValidationInput,
)
from trade_risk_guardian.validators import (
    ChallengeBudgetValidator,
    CorrelationValidator,
    PropFirmValidator,
    RiskValidator,
    analyze_exposure,
    assess_challenge_health,
    calculate_lot_size,
    calculate_remaining_trades,
    get_correlation,
    get_pip_info,
    parse_currency_pair,
    suggest_max_risk,
    validate_prop_firm_trade,
)


def proposal(**overrides) -> TradeProposal:
    values = dict(
        symbol="EURUSD",
        direction=Direction.BUY,
        entry_price=1.1000,
        stop_loss=1.0950,
        risk_percent=1.0,
    )
    values.update(overrides)
    return TradeProposal(**values)


def budget(**overrides) -> ChallengeBudget:
    values = dict(
        daily_budget_dollars=500.0,
        over_roll_budget_dollars=1000.0,
        max_trade_risk_dollars=100.0,
        max_asset_allocation_dollars=300.0,
        max_orders_per_asset=3,
    )
    values.update(overrides)
    return ChallengeBudget(**values)


def codes(outcome):
    return [v.code for v in outcome.violations]


@pytest.fixture
def config():
    return GuardianConfig()


# =============================================================
# TEST: RiskValidator
# =============================================================

class TestRiskValidator:

    def test_clean_trade(self, config):
        outcome = RiskValidator(config).validate(
            TradeValidationInput(trade=proposal(take_profit_1=1.1100), account_balance=10000)
        )

        assert outcome.passed
        assert outcome.metrics["risk_amount"] == 100.0
        assert outcome.metrics["pip_distance"] == 50.0
        assert outcome.metrics["suggested_lot_size"] == 0.2
        assert outcome.metrics["reward_risk_ratio"] == 2.0

    def test_risk_above_ceiling(self, config):
        outcome = RiskValidator(config).validate(
            TradeValidationInput(trade=proposal(risk_percent=6.0), account_balance=10000)
        )
        assert "RISK_ABOVE_ABSOLUTE_CEILING" in codes(outcome)

    def test_risk_above_setup_max(self, config):
        outcome = RiskValidator(config).validate(TradeValidationInput(
            trade=proposal(risk_percent=1.5),
            account_balance=10000,
            challenge_budget=budget(),
        ))
        assert codes(outcome) == ["RISK_ABOVE_SETUP_MAX"]

    def test_oversized_lot_flagged(self, config):
        outcome = RiskValidator(config).validate(
            TradeValidationInput(trade=proposal(lot_size=10.0), account_balance=10000)
        )

        assert codes(outcome) == ["RISK_LOT_EXCEEDS_AUTHORIZED"]
        assert outcome.metrics["lot_risk_amount"] == 5000.0
        assert outcome.metrics["risk_amount"] == 5000.0
        assert "Use at most 0.2 lots" in outcome.violations[0].message

    def test_oversized_lot_hits_setup_max(self, config):
        outcome = RiskValidator(config).validate(TradeValidationInput(
            trade=proposal(lot_size=0.5),
            account_balance=10000,
            challenge_budget=budget(),
        ))
        assert codes(outcome) == ["RISK_ABOVE_SETUP_MAX", "RISK_LOT_EXCEEDS_AUTHORIZED"]

    def test_lot_within_authorized_risk(self, config):
        outcome = RiskValidator(config).validate(
            TradeValidationInput(trade=proposal(lot_size=0.2), account_balance=10000)
        )
        assert outcome.passed
        assert outcome.metrics["risk_amount"] == 100.0

    def test_stop_wrong_side_for_sell(self, config):
        outcome = RiskValidator(config).validate(TradeValidationInput(
            trade=proposal(direction=Direction.SELL, take_profit_1=1.1200),
            account_balance=10000,
        ))
        assert codes(outcome) == ["RISK_STOP_WRONG_SIDE", "RISK_TARGET_WRONG_SIDE"]

    def test_zero_stop_distance(self, config):
        outcome = RiskValidator(config).validate(
            TradeValidationInput(trade=proposal(stop_loss=1.1000), account_balance=10000)
        )
        assert codes(outcome) == ["RISK_ZERO_STOP_DISTANCE"]

    def test_low_reward_risk_warning(self, config):
        outcome = RiskValidator(config).validate(TradeValidationInput(
            trade=proposal(take_profit_1=1.1020), account_balance=10000
        ))
        assert outcome.passed
        assert any("Low reward:risk" in w for w in outcome.warnings)

    def test_pip_table(self):
        assert get_pip_info("USDJPY").pip_size == 0.01
        assert get_pip_info("XAUUSD").pip_size == 0.1
        assert get_pip_info("UNKNOWN").pip_value == 10.0

    def test_lot_size_is_floored(self):
        assert calculate_lot_size(100.0, 30.0, 10.0) == 0.33
        assert calculate_lot_size(100.0, 0, 10.0) == 0.0


# =============================================================
# TEST: ChallengeBudgetValidator
# =============================================================

class TestChallengeBudgetValidator:

    def test_skipped_without_budget(self, config):
        outcome = ChallengeBudgetValidator(config).validate(
            TradeValidationInput(trade=proposal(), account_balance=10000)
        )
        assert outcome.skipped

    def test_within_budget(self, config):
        outcome = ChallengeBudgetValidator(config).validate(TradeValidationInput(
            trade=proposal(), account_balance=10000, challenge_budget=budget()
        ))
        assert outcome.passed
        assert outcome.metrics["remaining_daily_budget"] == 500.0

    def test_daily_budget_exceeded(self, config):
        outcome = ChallengeBudgetValidator(config).validate(TradeValidationInput(
            trade=proposal(),
            account_balance=10000,
            challenge_budget=budget(current_daily_loss=-450.0),
        ))
        assert codes(outcome) == ["CB_DAILY_BUDGET_EXCEEDED"]
        assert "$50.00" in outcome.violations[0].message

    def test_explicit_lot_counts_its_real_risk(self, config):
        outcome = ChallengeBudgetValidator(config).validate(TradeValidationInput(
            trade=proposal(lot_size=10.0),
            account_balance=10000,
            challenge_budget=budget(),
        ))
        assert "CB_DAILY_BUDGET_EXCEEDED" in codes(outcome)

    def test_over_roll_budget_exceeded(self, config):
        outcome = ChallengeBudgetValidator(config).validate(TradeValidationInput(
            trade=proposal(),
            account_balance=10000,
            challenge_budget=budget(current_total_drawdown=950.0),
        ))
        assert "CB_OVER_ROLL_BUDGET_EXCEEDED" in codes(outcome)

    def test_asset_allocation_and_order_count(self, config):
        existing = [TradeExposure("EURUSD", Direction.BUY, 1.0) for _ in range(3)]
        outcome = ChallengeBudgetValidator(config).validate(TradeValidationInput(
            trade=proposal(),
            account_balance=10000,
            existing_trades=existing,
            challenge_budget=budget(),
        ))
        assert codes(outcome) == ["CB_ASSET_ALLOCATION_EXCEEDED", "CB_MAX_ORDERS_PER_ASSET"]

    def test_order_cooldown(self, config):
        now = datetime(2024, 3, 4, 10, 0, 0)
        outcome = ChallengeBudgetValidator(config).validate(TradeValidationInput(
            trade=proposal(),
            account_balance=10000,
            challenge_budget=budget(min_time_between_orders_sec=300),
            last_order_time=now - timedelta(seconds=60),
            now=now,
        ))
        assert codes(outcome) == ["CB_ORDER_COOLDOWN"]
        assert "wait 241s" in outcome.violations[0].message


# =============================================================
# TEST: Correlation
# =============================================================

class TestCorrelation:

    def test_parse_currency_pair(self):
        assert parse_currency_pair("EURUSD") == ("EUR", "USD")
        assert parse_currency_pair("XAUUSD.m") == ("GOLD", "USD")
        assert parse_currency_pair("NAS100") == ("INDEX", "USD")

    def test_get_correlation_symmetric(self):
        assert get_correlation("EURUSD", "GBPUSD") == 0.89
        assert get_correlation("GBPUSD", "EURUSD") == 0.89
        assert get_correlation("EURUSD", "XAUUSD") == 0.0

    def test_stacked_usd_exposure_violates(self, config):
        outcome = CorrelationValidator(config).validate(TradeValidationInput(
            trade=proposal(symbol="GBPUSD", entry_price=1.2700, stop_loss=1.2650),
            account_balance=10000,
            existing_trades=[TradeExposure("EURUSD", Direction.BUY, 1.5)],
        ))
        assert codes(outcome) == ["CORR_CURRENCY_EXPOSURE"]
        assert outcome.violations[0].message.startswith(
            "USD: 2.50% directional exposure exceeds limit of 2%"
        )

    def test_opposite_directions_net_out(self, config):
        outcome = CorrelationValidator(config).validate(TradeValidationInput(
            trade=proposal(symbol="GBPUSD", direction=Direction.SELL,
                           entry_price=1.2700, stop_loss=1.2750),
            account_balance=10000,
            existing_trades=[TradeExposure("EURUSD", Direction.BUY, 1.5)],
        ))
        assert outcome.passed

    def test_account_limit_overrides_default(self, config):
        outcome = CorrelationValidator(config).validate(TradeValidationInput(
            trade=proposal(symbol="GBPUSD", entry_price=1.2700, stop_loss=1.2650),
            account_balance=10000,
            existing_trades=[TradeExposure("EURUSD", Direction.BUY, 1.5)],
            max_currency_exposure=3.0,
        ))
        assert outcome.passed

    def test_untouched_excess_is_warning_only(self):
        analysis = analyze_exposure(
            [TradeExposure("EURJPY", Direction.BUY, 3.0)],
            TradeExposure("GBPUSD", Direction.BUY, 0.5),
            2.0,
        )
        assert analysis.violations == []
        assert any(w.startswith("EUR: 3.00%") for w in analysis.warnings)
        assert analysis.total_risk == 3.5


# =============================================================
# TEST: Prop firm
# =============================================================

def ftmo_rules(**overrides) -> PropFirmRules:
    values = dict(
        provider="FTMO",
        phase="Phase 1",
        max_daily_loss_percent=5.0,
        max_total_loss_percent=10.0,
        start_balance=100000.0,
        current_balance=100000.0,
    )
    values.update(overrides)
    return PropFirmRules(**values)


class TestPropFirm:

    def test_daily_limit_violation(self):
        result = validate_prop_firm_trade(ftmo_rules(current_daily_loss=4000.0), 1.5)

        assert not result.is_valid
        assert result.violations == ["Daily loss would exceed limit: 5.50% > 5%"]

    def test_approaching_limit_warning(self):
        result = validate_prop_firm_trade(ftmo_rules(current_daily_loss=4000.0), 0.5)

        assert result.is_valid
        assert any("Daily loss approaching limit" in w for w in result.warnings)

    def test_min_trading_days_informational(self):
        result = validate_prop_firm_trade(
            ftmo_rules(min_trading_days=4, trading_days_completed=1), 1.0
        )
        assert result.is_valid
        assert "3 more trading day(s) required to complete the challenge" in result.warnings

    def test_health_and_suggestions(self):
        rules = ftmo_rules(current_daily_loss=4600.0)

        assert assess_challenge_health(rules).status == HealthStatus.CRITICAL
        assert suggest_max_risk(ftmo_rules(current_daily_loss=4000.0)) == 0.5
        assert calculate_remaining_trades(ftmo_rules(current_daily_loss=4000.0)) == 1

    def test_healthy_challenge(self):
        assert assess_challenge_health(ftmo_rules()).status == HealthStatus.HEALTHY

    def test_validator_lot_and_open_trade_limits(self, config):
        outcome = PropFirmValidator(config).validate(TradeValidationInput(
            trade=proposal(lot_size=5.0),
            account_balance=100000,
            existing_trades=[TradeExposure("GBPUSD", Direction.SELL, 0.5)],
            prop_firm_rules=ftmo_rules(max_lot_size=2.0, max_open_trades=1),
        ))
        assert codes(outcome) == ["PF_MAX_LOT_SIZE", "PF_MAX_OPEN_TRADES"]
        assert outcome.metrics["prop_firm"]["provider"] == "FTMO"

    def test_validator_skipped_without_rules(self, config):
        outcome = PropFirmValidator(config).validate(
            TradeValidationInput(trade=proposal(), account_balance=10000)
        )
        assert outcome.skipped
