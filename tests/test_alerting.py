"""
Tests for Guardian alerting.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from trade_risk_guardian.alerting import (
    AlertRateLimiter,
    GuardianAlertFormatter,
    GuardianAlerter,
)
from trade_risk_guardian.config import GuardianAlertingConfig
from trade_risk_guardian.types import (
    LockMode,
    RuleViolation,
    TradeValidationResult,
    VerdictSeverity,
    ViolationCategory,
)


def blocked_result() -> TradeValidationResult:
    return TradeValidationResult(
        can_execute=False,
        severity=VerdictSeverity.BLOCKED,
        violations=[RuleViolation(
            ViolationCategory.CHALLENGE_BUDGET,
            "CB_DAILY_BUDGET_EXCEEDED",
            "Trade risk $100.00 exceeds the remaining daily budget $50.00",
        )],
        lock_mode=LockMode.HARD,
        evaluation_id="GUARDIAN-TEST-1",
    )


def overridden_result() -> TradeValidationResult:
    violation = RuleViolation(
        ViolationCategory.CORRELATION, "CORR_CURRENCY_EXPOSURE", "USD: 2.50% ..."
    )
    return TradeValidationResult(
        can_execute=True,
        severity=VerdictSeverity.WARNING,
        lock_mode=LockMode.SOFT,
        policy_overridden=True,
        overridden_violations=[violation],
        evaluation_id="GUARDIAN-TEST-2",
    )


@pytest.fixture
def sender():
    sender = MagicMock()
    sender.send_alert_sync.return_value = True
    return sender


class TestFormatter:

    def test_block_alert(self):
        alert = GuardianAlertFormatter().format_verdict(
            blocked_result(), "EURUSD", "BUY", "123456"
        )

        assert alert.kind == "BLOCK"
        assert "TRADE BLOCKED" in alert.title
        assert "CB_DAILY_BUDGET_EXCEEDED" in alert.message
        assert alert.reason_code == "BLOCK:CB_DAILY_BUDGET_EXCEEDED"

    def test_soft_override_alert(self):
        alert = GuardianAlertFormatter().format_verdict(
            overridden_result(), "GBPUSD", "BUY", "123456"
        )

        assert alert.kind == "SOFT_OVERRIDE"
        assert "CORR_CURRENCY_EXPOSURE" in alert.message
        assert "**Lock Mode:** SOFT" in alert.message

    def test_violation_alert(self):
        alert = GuardianAlertFormatter().format_violation(
            "123456", "DAILY_LIMIT_BREACH", "Daily loss hit", "BLOCKED"
        )
        assert alert.kind == "VIOLATION"
        assert alert.reason_code == "VIOLATION:DAILY_LIMIT_BREACH"


class TestRateLimiter:

    def test_same_reason_rate_limited(self):
        limiter = AlertRateLimiter(min_interval_seconds=60, max_per_hour=10)
        now = datetime(2024, 1, 10, 12, 0)

        assert limiter.should_send("A", now)
        limiter.record_sent("A", now)

        assert not limiter.should_send("A", now + timedelta(seconds=30))
        assert limiter.should_send("B", now + timedelta(seconds=30))
        assert limiter.should_send("A", now + timedelta(seconds=61))

    def test_hourly_cap(self):
        limiter = AlertRateLimiter(min_interval_seconds=0, max_per_hour=2)
        now = datetime(2024, 1, 10, 12, 0)
        limiter.record_sent("A", now)
        limiter.record_sent("B", now)

        assert not limiter.should_send("C", now)
        assert limiter.should_send("C", now + timedelta(hours=1, seconds=1))


class TestAlerter:

    def test_disabled_sends_nothing(self, sender):
        alerter = GuardianAlerter(GuardianAlertingConfig(enabled=False), sender=sender)

        assert alerter.alert_on_verdict(blocked_result(), "EURUSD", "BUY", "123456")
        sender.send_alert_sync.assert_not_called()

    def test_block_sent_once_then_rate_limited(self, sender):
        alerter = GuardianAlerter(GuardianAlertingConfig(enabled=True), sender=sender)

        assert alerter.alert_on_verdict(blocked_result(), "EURUSD", "BUY", "123456")
        assert alerter.alert_on_verdict(blocked_result(), "EURUSD", "BUY", "123456")
        assert sender.send_alert_sync.call_count == 1

    def test_soft_override_respects_flag(self, sender):
        config = GuardianAlertingConfig(enabled=True, alert_on_soft_override=False)
        alerter = GuardianAlerter(config, sender=sender)

        alerter.alert_on_verdict(overridden_result(), "GBPUSD", "BUY", "123456")
        sender.send_alert_sync.assert_not_called()

    def test_delivery_failure_reported(self, sender):
        sender.send_alert_sync.return_value = False
        alerter = GuardianAlerter(GuardianAlertingConfig(enabled=True), sender=sender)

        assert not alerter.alert_on_violation("123456", "X", "desc", "BLOCKED")

    def test_no_sender_configured_logs_only(self):
        alerter = GuardianAlerter(GuardianAlertingConfig(enabled=True))
        assert alerter.alert_on_violation("123456", "X", "desc", "BLOCKED")
