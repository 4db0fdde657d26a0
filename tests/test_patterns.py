"""
Tests for the behavioral pattern and cooldown detector.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from trade_risk_guardian.config import PatternConfig
from trade_risk_guardian.patterns import PatternDetector
from trade_risk_guardian.types import Direction, PatternSeverity, PatternType, TradeRecord


NOW = datetime(2024, 1, 10, 12, 0)


def at(hour: int, minute: int) -> datetime:
    return datetime(2024, 1, 10, hour, minute)


def trade(opened, closed=None, profit=None, symbol="EURUSD") -> TradeRecord:
    return TradeRecord(
        symbol=symbol,
        direction=Direction.BUY,
        open_time=opened,
        close_time=closed,
        profit=profit,
        volume=0.1,
    )


def types_of(result):
    return [p.pattern_type for p in result.patterns]


@pytest.fixture
def detector():
    return PatternDetector()


# =============================================================
# TEST: Patterns
# =============================================================

class TestPatternDetection:

    def test_no_trades_in_hours_is_clean(self, detector):
        result = detector.detect([], now=NOW)

        assert not result.detected
        assert result.severity == PatternSeverity.OK
        assert result.cooldown.recommended == 0

    def test_revenge_after_recent_loss(self, detector):
        result = detector.detect(
            [trade(at(11, 30), at(11, 55), profit=-80.0)], now=NOW
        )

        assert types_of(result) == [PatternType.REVENGE_TRADING]
        assert result.severity == PatternSeverity.DANGER
        assert result.cooldown.recommended == 30
        assert result.cooldown.active
        assert result.cooldown.remaining_minutes == 25
        assert "closed 5 minutes ago (-$80.00)" in result.warnings[0]

    def test_revenge_by_reentry(self, detector):
        trades = [
            trade(at(11, 0), at(11, 20), profit=-50.0),
            trade(at(11, 25)),
        ]
        result = detector.detect(trades, now=NOW)

        assert PatternType.REVENGE_TRADING in types_of(result)
        assert result.cooldown.recommended == 30
        assert not result.cooldown.active

    def test_profit_is_not_revenge(self, detector):
        result = detector.detect(
            [trade(at(11, 30), at(11, 55), profit=40.0)], now=NOW
        )
        assert not result.detected

    def test_overtrading(self, detector):
        trades = [trade(at(11, 40)), trade(at(11, 45)), trade(at(11, 50))]
        result = detector.detect(trades, now=NOW)

        assert types_of(result) == [PatternType.OVERTRADING]
        assert result.severity == PatternSeverity.DANGER
        assert result.cooldown.recommended == 45
        assert result.cooldown.remaining_minutes == 35
        assert result.statistics["trades_last_30_min"] == 3

    def test_overtrading_with_revenge_is_critical(self, detector):
        trades = [
            trade(at(11, 35), at(11, 55), profit=-20.0),
            trade(at(11, 40)),
            trade(at(11, 45)),
        ]
        result = detector.detect(trades, now=NOW)

        overtrading = [p for p in result.patterns if p.pattern_type == PatternType.OVERTRADING]
        assert overtrading[0].severity == PatternSeverity.CRITICAL
        assert result.cooldown.recommended == 45

    def test_consecutive_losses(self, detector):
        trades = [
            trade(at(11, 0), at(11, 20), profit=-40.0),
            trade(at(11, 25), at(11, 30), profit=-60.0),
        ]
        result = detector.detect(trades, now=NOW)

        assert types_of(result) == [PatternType.CONSECUTIVE_LOSSES]
        assert result.severity == PatternSeverity.CRITICAL
        assert result.cooldown.recommended == 60
        assert result.cooldown.remaining_minutes == 30
        assert "(total: -$100.00)" in result.warnings[0]

    def test_old_losses_ignored(self, detector):
        trades = [
            trade(at(10, 0), at(10, 30), profit=-40.0),
            trade(at(10, 40), at(10, 45), profit=-60.0),
        ]
        result = detector.detect(trades, now=NOW)

        assert not result.detected
        assert result.last_trade is None

    def test_high_frequency(self, detector):
        trades = [trade(at(8, minute)) for minute in (0, 10, 20, 30, 40)]
        result = detector.detect(trades, now=NOW)

        assert types_of(result) == [PatternType.HIGH_FREQUENCY]
        assert result.severity == PatternSeverity.WARNING
        assert result.cooldown.recommended == 0

    def test_off_hours(self, detector):
        result = detector.detect([], now=at(22, 0))

        assert types_of(result) == [PatternType.OFF_HOURS_TRADING]
        assert not result.cooldown.active

    def test_hours_read_in_configured_zone(self, detector):
        singapore = PatternDetector(PatternConfig(timezone="Asia/Singapore"))
        new_york = PatternDetector(PatternConfig(timezone="America/New_York"))
        early_utc = datetime(2024, 1, 10, 2, 0)

        assert types_of(detector.detect([], now=early_utc)) == [PatternType.OFF_HOURS_TRADING]
        assert types_of(singapore.detect([], now=early_utc)) == []

        result = new_york.detect([], now=NOW)
        assert types_of(result) == [PatternType.OFF_HOURS_TRADING]
        assert result.warnings == ["Trading outside normal hours (7:00 America/New_York)"]

    def test_trading_day_starts_at_local_midnight(self, detector):
        singapore = PatternDetector(PatternConfig(timezone="Asia/Singapore"))
        early_utc = datetime(2024, 1, 10, 2, 0)
        trades = [trade(datetime(2024, 1, 9, 17, minute)) for minute in (0, 10, 20, 30, 40)]

        assert types_of(singapore.detect(trades, now=early_utc)) == [PatternType.HIGH_FREQUENCY]
        assert types_of(detector.detect(trades, now=early_utc)) == [PatternType.OFF_HOURS_TRADING]

    def test_aware_now_accepted(self, detector):
        aware = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
        result = detector.detect([trade(at(11, 30), at(11, 55), profit=-80.0)], now=aware)
        assert types_of(result) == [PatternType.REVENGE_TRADING]

        singapore_evening = datetime(2024, 1, 10, 20, 0, tzinfo=ZoneInfo("Asia/Singapore"))
        assert types_of(detector.detect([], now=singapore_evening)) == []

    def test_custom_thresholds(self):
        detector = PatternDetector(PatternConfig(overtrading_threshold=2))
        result = detector.detect([trade(at(11, 40)), trade(at(11, 50))], now=NOW)

        assert PatternType.OVERTRADING in types_of(result)

    def test_to_dict(self, detector):
        result = detector.detect(
            [trade(at(11, 30), at(11, 55), profit=-80.0)], now=NOW
        )
        data = result.to_dict()

        assert data["patterns"] == ["REVENGE_TRADING"]
        assert data["severity"] == "DANGER"
        assert data["last_trade"]["profit"] == -80.0
