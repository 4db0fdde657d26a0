"""
Trade Risk Guardian - Alerting.

============================================================
PURPOSE
============================================================
Telegram alerting for blocked authorizations, SOFT-mode
overrides and critical agent-reported violations.

Alerts are rate-limited to prevent spam. Alerting is off
unless enabled in GuardianAlertingConfig. Delivery failures
are logged and never affect a verdict.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import aiohttp

from .config import GuardianAlertingConfig
from .types import TradeValidationResult


logger = logging.getLogger(__name__)


# ============================================================
# ALERT MESSAGE TYPES
# ============================================================

@dataclass
class GuardianAlert:
    """
    Alert message structure.
    """
    reference_id: str
    """Evaluation or violation reference."""

    kind: str
    """BLOCK, SOFT_OVERRIDE or VIOLATION."""

    title: str
    message: str
    symbol: str

    reason_code: str
    """Rate-limit key."""

    timestamp: datetime


# ============================================================
# ALERT FORMATTER
# ============================================================

class GuardianAlertFormatter:
    """
    Formats Guardian verdicts into alert messages.
    """

    KIND_EMOJI = {
        "BLOCK": "🔴",
        "SOFT_OVERRIDE": "🟠",
        "VIOLATION": "🚨",
    }

    def format_verdict(
        self,
        result: TradeValidationResult,
        symbol: str,
        direction: str,
        account_label: str,
    ) -> GuardianAlert:
        """
        Format a blocked or overridden verdict.
        """
        kind = "SOFT_OVERRIDE" if result.policy_overridden and result.can_execute else "BLOCK"
        emoji = self.KIND_EMOJI[kind]
        listed = result.overridden_violations if kind == "SOFT_OVERRIDE" else result.violations

        title = (
            f"{emoji} TRADE ALLOWED BY SOFT MODE" if kind == "SOFT_OVERRIDE"
            else f"{emoji} TRADE BLOCKED"
        )

        lines = [
            "**🛡️ TRADE RISK GUARDIAN**",
            "",
            f"**{title}**",
            f"**Account:** {account_label}",
            f"**Symbol:** {symbol} {direction}",
        ]
        if result.lock_mode is not None:
            lines.append(f"**Lock Mode:** {result.lock_mode.value}")
        if result.risk_metrics is not None:
            lines.append(
                f"**Risk:** ${result.risk_metrics.risk_amount:.2f} "
                f"({result.risk_metrics.risk_percent}%)"
            )
        lines.append("")
        for violation in listed:
            lines.append(f"- `{violation.code}` {violation.message}")
        lines.append("")
        lines.append(f"**Time:** {result.timestamp.strftime('%Y-%m-%d %H:%M:%S')} UTC")
        lines.append(f"ID: `{result.evaluation_id}`")

        reason_code = listed[0].code if listed else kind
        return GuardianAlert(
            reference_id=result.evaluation_id,
            kind=kind,
            title=title,
            message="\n".join(lines),
            symbol=symbol,
            reason_code=f"{kind}:{reason_code}",
            timestamp=result.timestamp,
        )

    def format_violation(
        self,
        account_label: str,
        violation_type: str,
        description: str,
        action_taken: str,
    ) -> GuardianAlert:
        """
        Format a critical agent-reported violation.
        """
        now = datetime.utcnow()
        title = f"{self.KIND_EMOJI['VIOLATION']} CRITICAL VIOLATION"
        lines = [
            "**🛡️ TRADE RISK GUARDIAN**",
            "",
            f"**{title}**",
            f"**Account:** {account_label}",
            f"**Type:** `{violation_type}`",
            f"**Action:** {action_taken}",
            f"**Description:** {description}",
            "",
            f"**Time:** {now.strftime('%Y-%m-%d %H:%M:%S')} UTC",
        ]
        return GuardianAlert(
            reference_id=f"{account_label}:{violation_type}",
            kind="VIOLATION",
            title=title,
            message="\n".join(lines),
            symbol="",
            reason_code=f"VIOLATION:{violation_type}",
            timestamp=now,
        )


# ============================================================
# RATE LIMITER
# ============================================================

class AlertRateLimiter:
    """
    Rate limits alerts to prevent spam.
    """

    def __init__(
        self,
        min_interval_seconds: int = 60,
        max_per_hour: int = 30,
    ):
        """
        Initialize rate limiter.

        Args:
            min_interval_seconds: Minimum time between alerts with the same reason
            max_per_hour: Maximum alerts per hour
        """
        self._min_interval = timedelta(seconds=min_interval_seconds)
        self._max_per_hour = max_per_hour
        self._last_alert_by_reason: Dict[str, datetime] = {}
        self._alert_timestamps: List[datetime] = []

    def should_send(self, reason_code: str, now: Optional[datetime] = None) -> bool:
        """
        Check if an alert should be sent.
        """
        now = now or datetime.utcnow()

        self._cleanup_old_timestamps(now)
        if len(self._alert_timestamps) >= self._max_per_hour:
            logger.warning("Alert rate limit exceeded")
            return False

        last_alert = self._last_alert_by_reason.get(reason_code)
        if last_alert and now - last_alert < self._min_interval:
            logger.debug(f"Rate limiting alert for {reason_code}")
            return False

        return True

    def record_sent(self, reason_code: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.utcnow()
        self._last_alert_by_reason[reason_code] = now
        self._alert_timestamps.append(now)

    def _cleanup_old_timestamps(self, now: datetime) -> None:
        cutoff = now - timedelta(hours=1)
        self._alert_timestamps = [ts for ts in self._alert_timestamps if ts > cutoff]


# ============================================================
# TELEGRAM SENDER
# ============================================================

class TelegramAlertSender:
    """
    Sends alerts via the Telegram Bot API.
    """

    def __init__(self, bot_token: str, chat_id: str, timeout_seconds: float = 10.0):
        self._chat_id = chat_id
        self._api_url = f"https://api.telegram.org/bot{bot_token}"
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def send_alert_async(self, alert: GuardianAlert) -> bool:
        """
        Send alert asynchronously.

        Returns:
            True if Telegram accepted the message
        """
        url = f"{self._api_url}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": alert.message,
            "parse_mode": "Markdown",
        }

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(url, json=payload) as response:
                    if response.status == 200:
                        logger.info(f"Sent guardian alert: {alert.reference_id}")
                        return True
                    text = await response.text()
                    logger.error(f"Telegram API error: {response.status} - {text}")
                    return False

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to send Telegram alert: {e}")
            return False

    def send_alert_sync(self, alert: GuardianAlert) -> bool:
        """
        Send alert from synchronous code.

        Must not be called from inside a running event loop.
        """
        return asyncio.run(self.send_alert_async(alert))


# ============================================================
# GUARDIAN ALERTER
# ============================================================

class GuardianAlerter:
    """
    Main alerting class for the Trade Risk Guardian.

    Combines formatting, rate limiting, and sending.
    """

    def __init__(
        self,
        config: Optional[GuardianAlertingConfig] = None,
        sender: Optional[TelegramAlertSender] = None,
    ):
        """
        Initialize alerter.

        Args:
            config: Alerting configuration
            sender: Explicit sender (built from config if None)
        """
        self._config = config or GuardianAlertingConfig()
        self._formatter = GuardianAlertFormatter()
        self._rate_limiter = AlertRateLimiter(
            min_interval_seconds=self._config.min_alert_interval_seconds,
            max_per_hour=self._config.max_alerts_per_hour,
        )

        self._telegram_sender = sender
        if (
            sender is None
            and self._config.enabled
            and self._config.telegram_bot_token
            and self._config.telegram_chat_id
        ):
            self._telegram_sender = TelegramAlertSender(
                bot_token=self._config.telegram_bot_token,
                chat_id=self._config.telegram_chat_id,
            )

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def _wants(self, result: TradeValidationResult) -> bool:
        if not self._config.enabled:
            return False
        if not result.can_execute:
            return self._config.alert_on_block
        if result.policy_overridden:
            return self._config.alert_on_soft_override
        return False

    def _dispatch(self, alert: GuardianAlert) -> bool:
        if not self._rate_limiter.should_send(alert.reason_code):
            return True  # Rate limited is not an error

        if self._telegram_sender is None:
            logger.warning(f"Guardian {alert.kind} (no sender configured): {alert.message}")
            return True

        sent = self._telegram_sender.send_alert_sync(alert)
        if sent:
            self._rate_limiter.record_sent(alert.reason_code)
        return sent

    def alert_on_verdict(
        self,
        result: TradeValidationResult,
        symbol: str,
        direction: str,
        account_label: str,
    ) -> bool:
        """
        Alert on a blocked or SOFT-overridden verdict.

        Returns:
            True if alert was sent, skipped or rate limited; False on delivery error
        """
        if not self._wants(result):
            return True
        alert = self._formatter.format_verdict(result, symbol, direction, account_label)
        return self._dispatch(alert)

    async def alert_on_verdict_async(
        self,
        result: TradeValidationResult,
        symbol: str,
        direction: str,
        account_label: str,
    ) -> bool:
        """
        Send verdict alert asynchronously.
        """
        if not self._wants(result):
            return True
        alert = self._formatter.format_verdict(result, symbol, direction, account_label)
        if not self._rate_limiter.should_send(alert.reason_code):
            return True
        if self._telegram_sender is None:
            logger.warning(f"Guardian {alert.kind} (no sender): {alert.message}")
            return True
        sent = await self._telegram_sender.send_alert_async(alert)
        if sent:
            self._rate_limiter.record_sent(alert.reason_code)
        return sent

    def alert_on_violation(
        self,
        account_label: str,
        violation_type: str,
        description: str,
        action_taken: str,
    ) -> bool:
        """
        Alert on a CRITICAL agent-reported violation.
        """
        if not self._config.enabled:
            return True
        alert = self._formatter.format_violation(
            account_label, violation_type, description, action_taken
        )
        return self._dispatch(alert)
