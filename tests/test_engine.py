"""
Tests for the TradeRiskGuardian engine and lock-mode policy.

Tests cover:
- Every validator runs and every violation is reported
- Fail-safe behavior on internal errors
- HARD / MEDIUM / SOFT enforcement
"""

from unittest.mock import patch

import pytest

from trade_risk_guardian.engine import (
    TradeRiskGuardian,
    format_validation_report,
    is_trade_allowed,
)
from trade_risk_guardian.lock_mode import (
    apply_lock_mode,
    describe_lock_mode,
    warn_if_soft_with_active_setup,
)
from trade_risk_guardian.types import (
    ChallengeBudget,
    Direction,
    InvalidEnumError,
    LockMode,
    TradeExposure,
    TradeProposal,
    TradeValidationInput,
    VerdictSeverity,
    ViolationCategory,
)
from trade_risk_guardian.validators import RiskValidator


def make_input(daily_loss: float = 0.0, **trade_overrides) -> TradeValidationInput:
    trade = dict(
        symbol="EURUSD",
        direction=Direction.BUY,
        entry_price=1.1000,
        stop_loss=1.0950,
        take_profit_1=1.1100,
        risk_percent=1.0,
    )
    trade.update(trade_overrides)
    return TradeValidationInput(
        trade=TradeProposal(**trade),
        account_balance=10000.0,
        challenge_budget=ChallengeBudget(
            daily_budget_dollars=500.0,
            over_roll_budget_dollars=1000.0,
            max_trade_risk_dollars=100.0,
            max_asset_allocation_dollars=300.0,
            max_orders_per_asset=3,
            current_daily_loss=daily_loss,
        ),
    )


@pytest.fixture
def guardian():
    return TradeRiskGuardian()


# =============================================================
# TEST: Raw evaluation
# =============================================================

class TestEvaluate:

    def test_clean_trade_is_ok(self, guardian):
        result = guardian.evaluate(make_input())

        assert result.can_execute
        assert result.severity == VerdictSeverity.OK
        assert result.risk_metrics.risk_amount == 100.0
        assert result.risk_metrics.suggested_lot_size == 0.2
        assert result.risk_metrics.remaining_daily_budget == 500.0
        assert result.evaluation_id.startswith("GUARDIAN-")

    def test_all_violations_reported(self, guardian):
        result = guardian.evaluate(make_input(daily_loss=-450.0, risk_percent=1.5))

        codes = [v.code for v in result.violations]
        assert "RISK_ABOVE_SETUP_MAX" in codes
        assert "CB_DAILY_BUDGET_EXCEEDED" in codes
        assert result.severity == VerdictSeverity.BLOCKED

    def test_correlation_runs_with_existing_trades(self, guardian):
        validation_input = make_input(symbol="GBPUSD", entry_price=1.2700,
                                      stop_loss=1.2650, take_profit_1=1.2800)
        validation_input.existing_trades = [TradeExposure("EURUSD", Direction.BUY, 1.5)]

        result = guardian.evaluate(validation_input)

        assert [v.code for v in result.violations] == ["CORR_CURRENCY_EXPOSURE"]
        assert result.exposure["max_exposure_currency"] == "USD"

    def test_validator_exception_blocks(self, guardian):
        with patch.object(RiskValidator, "_validate", side_effect=RuntimeError("boom")):
            result = guardian.evaluate(make_input())

        assert not result.can_execute
        assert result.violations[0].code == "IE_VALIDATOR_EXCEPTION"
        assert result.has_internal_error

    def test_validator_info(self, guardian):
        names = [v["name"] for v in guardian.get_validator_info()]
        assert names == [
            "RiskValidator",
            "ChallengeBudgetValidator",
            "CorrelationValidator",
            "PropFirmValidator",
        ]

    def test_report_lists_violations(self, guardian):
        result = guardian.evaluate(make_input(daily_loss=-450.0))
        report = format_validation_report(result)

        assert "Can Execute: NO" in report
        assert "--- VIOLATIONS ---" in report


# =============================================================
# TEST: Lock modes
# =============================================================

class TestLockModes:

    def test_hard_blocks(self, guardian):
        result = guardian.validate_trade(make_input(daily_loss=-450.0), LockMode.HARD)

        assert not result.can_execute
        assert result.lock_mode == LockMode.HARD
        assert not result.policy_overridden

    def test_medium_blocks(self, guardian):
        result = guardian.validate_trade(make_input(daily_loss=-450.0), "medium")
        assert not result.can_execute
        assert result.lock_mode == LockMode.MEDIUM

    def test_default_mode_is_medium(self, guardian):
        result = guardian.validate_trade(make_input(daily_loss=-450.0))
        assert result.lock_mode == LockMode.MEDIUM

    def test_soft_overrides_rule_violations(self, guardian):
        result = guardian.validate_trade(make_input(daily_loss=-450.0), LockMode.SOFT)

        assert result.can_execute
        assert result.policy_overridden
        assert result.violations == []
        assert result.severity == VerdictSeverity.WARNING
        assert [v.code for v in result.overridden_violations] == ["CB_DAILY_BUDGET_EXCEEDED"]
        assert any(
            w.startswith("Overridden by SOFT mode: Trade risk $100.00 exceeds")
            for w in result.warnings
        )

    def test_soft_does_not_override_internal_errors(self, guardian):
        with patch.object(RiskValidator, "_validate", side_effect=RuntimeError("boom")):
            result = guardian.validate_trade(make_input(daily_loss=-450.0), LockMode.SOFT)

        assert not result.can_execute
        assert all(v.category == ViolationCategory.INTERNAL_ERROR for v in result.violations)
        assert result.policy_overridden

    def test_soft_clean_trade_not_flagged(self, guardian):
        result = guardian.validate_trade(make_input(), LockMode.SOFT)
        assert result.can_execute
        assert not result.policy_overridden

    def test_apply_does_not_mutate_raw_verdict(self, guardian):
        raw = guardian.evaluate(make_input(daily_loss=-450.0))
        apply_lock_mode(raw, LockMode.SOFT)

        assert not raw.can_execute
        assert len(raw.violations) == 1

    def test_unknown_mode_rejected(self, guardian):
        with pytest.raises(InvalidEnumError):
            guardian.validate_trade(make_input(), "LOOSE")

    def test_is_trade_allowed(self, guardian):
        assert is_trade_allowed(guardian, make_input(), LockMode.HARD)
        assert not is_trade_allowed(guardian, make_input(daily_loss=-450.0), LockMode.HARD)

    def test_describe_and_soft_warning(self):
        assert "No override" in describe_lock_mode("HARD")
        assert warn_if_soft_with_active_setup(LockMode.SOFT, True, "acc-1")
        assert not warn_if_soft_with_active_setup(LockMode.HARD, True, "acc-1")
