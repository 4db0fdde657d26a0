"""
Trade Risk Guardian - Behavioral Pattern & Cooldown Detector.

============================================================
PURPOSE
============================================================
Scans recent trade history for emotionally driven trading
and recommends a cooldown before the next entry.

============================================================
PATTERNS
============================================================
    REVENGE_TRADING     Loss, then a new entry within 15 min  -> 30 min, DANGER
    OVERTRADING         >= 3 entries in 30 min                -> 45 min, DANGER
                        (CRITICAL together with revenge)
    CONSECUTIVE_LOSSES  >= 2 losses in the last 3 closes      -> 60 min, CRITICAL
    HIGH_FREQUENCY      >= 5 entries since start of day       -> WARNING
    OFF_HOURS_TRADING   Hour outside 08:00-18:00              -> WARNING

Hours and the start of day are read in PatternConfig.timezone.

The recommended cooldown is the longest triggered one. It is
active while now < last close + recommended.

============================================================
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from .config import PatternConfig
from .types import (
    CooldownState,
    DetectedPattern,
    PatternDetectionResult,
    PatternSeverity,
    PatternType,
    TradeRecord,
)


logger = logging.getLogger(__name__)


def _as_naive_utc(value: datetime) -> datetime:
    """Naive datetimes are already UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class PatternDetector:
    """
    Pure pattern detector over a list of trades.

    Usage:
        detector = PatternDetector()
        result = detector.detect(trades, now=datetime.utcnow())
    """

    def __init__(self, config: Optional[PatternConfig] = None):
        self._config = config or PatternConfig()
        self._tz = ZoneInfo(self._config.timezone)

    def detect(
        self,
        trades: Sequence[TradeRecord],
        now: Optional[datetime] = None,
    ) -> PatternDetectionResult:
        """
        Detect behavioral patterns.

        Args:
            trades: Recent trades, any order
            now: Reference time, naive UTC or timezone-aware. Its hour in
                the configured zone drives the off-hours check

        Returns:
            PatternDetectionResult
        """
        cfg = self._config
        now = _as_naive_utc(now) if now is not None else datetime.utcnow()
        local_now = now.replace(tzinfo=timezone.utc).astimezone(self._tz)

        recent_close_cutoff = now - timedelta(minutes=cfg.recent_close_window_minutes)
        closed = sorted(
            (t for t in trades if t.is_closed and t.close_time >= recent_close_cutoff),
            key=lambda t: t.close_time,
            reverse=True,
        )
        last_closed = closed[0] if closed else None

        patterns: List[DetectedPattern] = []
        severity = PatternSeverity.OK

        # Revenge trading
        if last_closed is not None and last_closed.is_loss:
            window = timedelta(minutes=cfg.revenge_window_minutes)
            close_time = last_closed.close_time
            reentered = any(
                t is not last_closed and close_time <= t.open_time <= close_time + window
                for t in trades
            )
            since_close = now - close_time
            if reentered or timedelta(0) <= since_close < window:
                minutes = int(since_close.total_seconds() // 60)
                patterns.append(DetectedPattern(
                    pattern_type=PatternType.REVENGE_TRADING,
                    severity=PatternSeverity.DANGER,
                    message=(
                        f"Losing trade on {last_closed.symbol} closed {minutes} minutes ago "
                        f"(-${abs(last_closed.profit):.2f})"
                    ),
                    cooldown_minutes=cfg.revenge_cooldown_minutes,
                ))
                severity = max(severity, PatternSeverity.DANGER)

        # Overtrading
        window_start = now - timedelta(minutes=cfg.overtrading_window_minutes)
        recent_openings = [t for t in trades if t.open_time >= window_start]
        if len(recent_openings) >= cfg.overtrading_threshold:
            escalated = (
                PatternSeverity.CRITICAL
                if severity >= PatternSeverity.DANGER
                else PatternSeverity.DANGER
            )
            patterns.append(DetectedPattern(
                pattern_type=PatternType.OVERTRADING,
                severity=escalated,
                message=(
                    f"{len(recent_openings)} trades opened in the last "
                    f"{cfg.overtrading_window_minutes} minutes"
                ),
                cooldown_minutes=cfg.overtrading_cooldown_minutes,
            ))
            severity = max(severity, escalated)

        # Consecutive losses
        last_closes = closed[:cfg.consecutive_loss_lookback]
        recent_losses = [t for t in last_closes if t.is_loss]
        if len(recent_losses) >= cfg.consecutive_loss_threshold:
            total_loss = sum(t.profit for t in recent_losses)
            patterns.append(DetectedPattern(
                pattern_type=PatternType.CONSECUTIVE_LOSSES,
                severity=PatternSeverity.CRITICAL,
                message=(
                    f"{len(recent_losses)} losses in the last {len(last_closes)} closed "
                    f"trades (total: -${abs(total_loss):.2f})"
                ),
                cooldown_minutes=cfg.consecutive_loss_cooldown_minutes,
            ))
            severity = PatternSeverity.CRITICAL

        # High frequency
        local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_day = _as_naive_utc(local_midnight)
        today = [t for t in trades if t.open_time >= start_of_day]
        if len(today) >= cfg.high_frequency_threshold:
            patterns.append(DetectedPattern(
                pattern_type=PatternType.HIGH_FREQUENCY,
                severity=PatternSeverity.WARNING,
                message=f"{len(today)} trades opened today",
            ))
            severity = max(severity, PatternSeverity.WARNING)

        # Off hours
        if local_now.hour < cfg.trading_hours_start or local_now.hour > cfg.trading_hours_end:
            patterns.append(DetectedPattern(
                pattern_type=PatternType.OFF_HOURS_TRADING,
                severity=PatternSeverity.WARNING,
                message=f"Trading outside normal hours ({local_now.hour}:00 {cfg.timezone})",
            ))
            severity = max(severity, PatternSeverity.WARNING)

        cooldown = self._cooldown(patterns, last_closed, trades, now)

        if patterns:
            logger.info(
                f"Detected patterns {[p.pattern_type.value for p in patterns]} "
                f"(severity {severity.name}, cooldown {cooldown.recommended} min)"
            )

        return PatternDetectionResult(
            detected=bool(patterns),
            patterns=patterns,
            warnings=[p.message for p in patterns],
            severity=severity,
            cooldown=cooldown,
            statistics={
                "trades_last_30_min": len(recent_openings),
                "trades_today": len(today),
                "recent_losses": len(recent_losses),
            },
            last_trade=last_closed,
        )

    @staticmethod
    def _cooldown(
        patterns: List[DetectedPattern],
        last_closed: Optional[TradeRecord],
        trades: Sequence[TradeRecord],
        now: datetime,
    ) -> CooldownState:
        recommended = max((p.cooldown_minutes for p in patterns), default=0)
        if recommended <= 0:
            return CooldownState()

        # Anchor on the last close; fall back to the latest entry
        if last_closed is not None:
            anchor = last_closed.close_time
        elif trades:
            anchor = max(t.open_time for t in trades)
        else:
            return CooldownState(recommended=recommended)

        ends_at = anchor + timedelta(minutes=recommended)
        if now < ends_at:
            remaining = math.ceil((ends_at - now).total_seconds() / 60)
            return CooldownState(recommended=recommended, active=True, remaining_minutes=remaining)
        return CooldownState(recommended=recommended)
