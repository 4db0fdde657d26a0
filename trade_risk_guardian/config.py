"""
Trade Risk Guardian - Configuration.

============================================================
PURPOSE
============================================================
Thresholds for every Guardian component.

Defaults reproduce the rules traders see in the dashboard:
5% absolute per-trade ceiling, 2.0% directional currency
exposure, 80% prop-firm early warning, 30/45/60 minute
cooldowns.

============================================================
CONFIGURATION SOURCES
============================================================
1. Dataclass defaults (get_default_config)
2. Dictionary overrides (load_config_from_dict)
3. Environment variables, GUARDIAN_* (load_config_from_env)

============================================================
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .types import ConfigurationError, InvalidEnumError, LockMode, parse_enum


logger = logging.getLogger(__name__)


# ============================================================
# RESOLVER
# ============================================================

@dataclass
class ResolverConfig:
    """
    Symbol and lot resolution settings.
    """

    allow_auto_mappings: bool = False
    """
    Whether unconfirmed (source=auto) mappings may be used for execution.
    Default: False (only curated mappings route orders)
    """

    material_rounding_fraction: float = 0.10
    """
    Rounding down by more than this fraction of the request
    produces an extra warning.
    """

    stop_level_warning_multiplier: float = 1.5
    """Warn when the stop distance is within this multiple of stop_level."""

    max_suggestions: int = 5
    min_suggestion_confidence: float = 0.5


# ============================================================
# SETUP RULES
# ============================================================

@dataclass
class SetupRulesConfig:
    """
    Challenge setup validation thresholds.
    """

    max_risk_per_trade_percent: float = 5.0
    """Absolute per-trade ceiling. Exceeding it is an error."""

    trade_to_daily_warning_ratio: float = 1.0 / 3.0
    """Warn when per-trade risk exceeds this share of the daily budget."""

    min_daily_to_over_roll_ratio: float = 0.3
    """Warn when the daily budget is below this share of over-roll."""

    max_orders_per_asset_warning: int = 10
    min_account_size_warning: float = 1000.0
    max_account_size_warning: float = 10_000_000.0
    max_min_time_between_orders_sec: int = 3600


# ============================================================
# TRADE RISK
# ============================================================

@dataclass
class RiskConfig:
    """
    Per-trade risk thresholds.
    """

    max_risk_per_trade_percent: float = 5.0
    """Absolute per-trade ceiling, independent of any setup."""

    min_reward_risk_ratio: float = 1.0
    """Below this ratio a warning is raised."""

    recommended_max_risk_percent: float = 2.0
    wide_stop_pips: float = 100.0
    min_suggested_lot: float = 0.01
    max_suggested_lot: float = 100.0


@dataclass
class CorrelationConfig:
    """
    Currency exposure thresholds.
    """

    default_max_currency_exposure: float = 2.0
    """
    Maximum directional (net) exposure per currency, in percent
    of balance. Overridable per account.
    """

    warning_fraction: float = 0.7
    """Warn when net exposure passes this fraction of the limit."""

    max_positions_per_currency: int = 4
    max_total_risk_percent: float = 5.0
    """Warn when combined risk of all positions exceeds this."""

    total_risk_recommendation_percent: float = 3.0


@dataclass
class PropFirmConfig:
    """
    Prop-firm limit thresholds.
    """

    approaching_limit_fraction: float = 0.8
    """Warn when a loss limit would be this full after the trade."""

    profit_target_close_percent: float = 2.0
    """Warn when the profit target is within this many percent."""

    daily_remaining_recommendation_percent: float = 2.0
    total_remaining_recommendation_percent: float = 3.0


# ============================================================
# BEHAVIORAL PATTERNS
# ============================================================

@dataclass
class PatternConfig:
    """
    Behavioral pattern thresholds and cooldowns.
    """

    recent_close_window_minutes: int = 60
    """Closed trades older than this are ignored by loss-based patterns."""

    revenge_window_minutes: int = 15
    revenge_cooldown_minutes: int = 30

    overtrading_window_minutes: int = 30
    overtrading_threshold: int = 3
    overtrading_cooldown_minutes: int = 45

    consecutive_loss_lookback: int = 3
    consecutive_loss_threshold: int = 2
    consecutive_loss_cooldown_minutes: int = 60

    high_frequency_threshold: int = 5
    """Trades opened since start of day that trigger a warning."""

    trading_hours_start: int = 8
    trading_hours_end: int = 18
    """Hours strictly after this are off-hours."""

    timezone: str = "UTC"
    """
    IANA zone the trader works in. Trading hours and the start of
    day are judged in this zone; stored times are naive UTC.
    """

    history_lookback_hours: int = 24


# ============================================================
# ALERTING
# ============================================================

@dataclass
class GuardianAlertingConfig:
    """
    Telegram alerting for blocks and SOFT overrides.
    """

    enabled: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    alert_on_block: bool = True
    alert_on_soft_override: bool = True

    min_alert_interval_seconds: int = 60
    max_alerts_per_hour: int = 30


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class GuardianConfig:
    """
    Master configuration for the Trade Risk Guardian.
    """

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    setup_rules: SetupRulesConfig = field(default_factory=SetupRulesConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    prop_firm: PropFirmConfig = field(default_factory=PropFirmConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    alerting: GuardianAlertingConfig = field(default_factory=GuardianAlertingConfig)

    default_lock_mode: LockMode = LockMode.MEDIUM
    """
    Lock mode for accounts that do not set one.
    Never SOFT.
    """

    agent_api_key_prefix: str = "sk_aegis_"

    def validate(self) -> None:
        """
        Check configuration invariants.

        Raises:
            ConfigurationError: On any invalid value
        """
        if self.default_lock_mode == LockMode.SOFT:
            raise ConfigurationError("default_lock_mode cannot be SOFT")
        if self.risk.max_risk_per_trade_percent <= 0:
            raise ConfigurationError("risk.max_risk_per_trade_percent must be positive")
        if self.correlation.default_max_currency_exposure <= 0:
            raise ConfigurationError(
                "correlation.default_max_currency_exposure must be positive"
            )
        if not 0 < self.prop_firm.approaching_limit_fraction <= 1:
            raise ConfigurationError(
                "prop_firm.approaching_limit_fraction must be in (0, 1]"
            )
        if not 0 <= self.patterns.trading_hours_start <= self.patterns.trading_hours_end <= 23:
            raise ConfigurationError("patterns trading hours must satisfy 0 <= start <= end <= 23")
        try:
            ZoneInfo(self.patterns.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(
                f"patterns.timezone is not a known time zone: {self.patterns.timezone}"
            ) from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization. Secrets omitted."""
        return {
            "resolver": {
                "allow_auto_mappings": self.resolver.allow_auto_mappings,
                "material_rounding_fraction": self.resolver.material_rounding_fraction,
            },
            "risk": {
                "max_risk_per_trade_percent": self.risk.max_risk_per_trade_percent,
                "min_reward_risk_ratio": self.risk.min_reward_risk_ratio,
            },
            "correlation": {
                "default_max_currency_exposure": self.correlation.default_max_currency_exposure,
                "max_total_risk_percent": self.correlation.max_total_risk_percent,
            },
            "prop_firm": {
                "approaching_limit_fraction": self.prop_firm.approaching_limit_fraction,
            },
            "patterns": {
                "revenge_cooldown_minutes": self.patterns.revenge_cooldown_minutes,
                "overtrading_cooldown_minutes": self.patterns.overtrading_cooldown_minutes,
                "consecutive_loss_cooldown_minutes": self.patterns.consecutive_loss_cooldown_minutes,
                "timezone": self.patterns.timezone,
            },
            "alerting": {
                "enabled": self.alerting.enabled,
            },
            "default_lock_mode": self.default_lock_mode.value,
        }


# ============================================================
# PRESET FACTORIES
# ============================================================

def get_default_config() -> GuardianConfig:
    """
    Get default configuration.
    """
    return GuardianConfig()


def get_strict_config() -> GuardianConfig:
    """
    Get strict configuration.

    Tighter exposure, earlier prop-firm warnings, longer cooldowns.
    """
    config = GuardianConfig()

    config.default_lock_mode = LockMode.HARD

    config.risk.max_risk_per_trade_percent = 2.0
    config.risk.min_reward_risk_ratio = 1.5

    config.correlation.default_max_currency_exposure = 1.5
    config.correlation.max_total_risk_percent = 4.0

    config.prop_firm.approaching_limit_fraction = 0.7

    config.resolver.material_rounding_fraction = 0.05

    config.patterns.revenge_cooldown_minutes = 60
    config.patterns.overtrading_cooldown_minutes = 90
    config.patterns.consecutive_loss_cooldown_minutes = 120

    return config


_SECTIONS = (
    "resolver",
    "setup_rules",
    "risk",
    "correlation",
    "prop_firm",
    "patterns",
    "alerting",
)


def _apply_section(target: Any, values: Dict[str, Any], section: str) -> None:
    known = {f.name for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key {section}.{key}")
            continue
        setattr(target, key, value)


def load_config_from_dict(data: Dict[str, Any]) -> GuardianConfig:
    """
    Load configuration from dictionary.

    Unknown keys are ignored with a warning.

    Args:
        data: Configuration dictionary, one nested dict per section

    Returns:
        GuardianConfig instance

    Raises:
        ConfigurationError: If the resulting configuration is invalid
    """
    config = get_default_config()

    for section in _SECTIONS:
        if section in data:
            values = data[section]
            if not isinstance(values, dict):
                raise ConfigurationError(f"Config section {section} must be a mapping")
            _apply_section(getattr(config, section), values, section)

    if "default_lock_mode" in data:
        try:
            config.default_lock_mode = parse_enum(
                LockMode, data["default_lock_mode"], "default_lock_mode"
            )
        except InvalidEnumError as e:
            raise ConfigurationError(str(e)) from e

    config.agent_api_key_prefix = data.get(
        "agent_api_key_prefix",
        config.agent_api_key_prefix,
    )

    config.validate()
    return config


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> GuardianConfig:
    """
    Load configuration from environment variables (.env supported).

    Recognized variables:
        GUARDIAN_DEFAULT_LOCK_MODE
        GUARDIAN_MAX_RISK_PER_TRADE_PERCENT
        GUARDIAN_MAX_CURRENCY_EXPOSURE
        GUARDIAN_ALLOW_AUTO_MAPPINGS
        GUARDIAN_TIMEZONE
        GUARDIAN_ALERTS_ENABLED
        TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID

    Returns:
        GuardianConfig instance
    """
    load_dotenv()

    config = get_default_config()

    lock_mode = os.getenv("GUARDIAN_DEFAULT_LOCK_MODE")
    if lock_mode:
        try:
            config.default_lock_mode = parse_enum(
                LockMode, lock_mode, "GUARDIAN_DEFAULT_LOCK_MODE"
            )
        except InvalidEnumError as e:
            raise ConfigurationError(str(e)) from e

    config.risk.max_risk_per_trade_percent = _env_float(
        "GUARDIAN_MAX_RISK_PER_TRADE_PERCENT",
        config.risk.max_risk_per_trade_percent,
    )
    config.correlation.default_max_currency_exposure = _env_float(
        "GUARDIAN_MAX_CURRENCY_EXPOSURE",
        config.correlation.default_max_currency_exposure,
    )
    config.resolver.allow_auto_mappings = _env_bool(
        "GUARDIAN_ALLOW_AUTO_MAPPINGS",
        config.resolver.allow_auto_mappings,
    )

    config.patterns.timezone = os.getenv("GUARDIAN_TIMEZONE") or config.patterns.timezone

    config.alerting.enabled = _env_bool("GUARDIAN_ALERTS_ENABLED", config.alerting.enabled)
    config.alerting.telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    config.alerting.telegram_chat_id = os.getenv("TELEGRAM_CHAT_ID")

    config.validate()
    return config
