"""
Trade Risk Guardian - Prop-Firm Validator.

============================================================
PURPOSE
============================================================
Keeps a funded-challenge account inside its firm's limits.

All percentages are relative to the challenge start balance:

    daily used  = |current_daily_loss| / start_balance
    total used  = |current_total_drawdown| / start_balance

A trade is a violation when used + candidate risk would pass
the limit, and a warning past 80% of it. Profit target and
minimum trading days are informational.

============================================================
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import PropFirmConfig
from ..types import (
    HealthStatus,
    PropFirmRules,
    TradeValidationInput,
    ValidatorOutcome,
    ViolationCategory,
)
from .base import BaseValidator, ValidatorMeta
from .risk import effective_risk_for


logger = logging.getLogger(__name__)


@dataclass
class PropFirmLimits:
    """Limit usage, in percent of start balance."""

    daily_loss_used: float
    daily_loss_remaining: float
    total_drawdown_used: float
    total_drawdown_remaining: float
    profit_progress: float
    days_progress: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "daily_loss_used": round(self.daily_loss_used, 4),
            "daily_loss_remaining": round(self.daily_loss_remaining, 4),
            "total_drawdown_used": round(self.total_drawdown_used, 4),
            "total_drawdown_remaining": round(self.total_drawdown_remaining, 4),
            "profit_progress": round(self.profit_progress, 4),
            "days_progress": round(self.days_progress, 4),
        }


@dataclass
class PropFirmValidationResult:
    is_valid: bool
    violations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    limits: Optional[PropFirmLimits] = None


@dataclass
class ChallengeHealth:
    status: HealthStatus
    message: str
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "recommendations": list(self.recommendations),
        }


# ============================================================
# LIMIT ARITHMETIC
# ============================================================

def calculate_limits(rules: PropFirmRules) -> PropFirmLimits:
    """Current usage of each prop-firm limit."""
    start = rules.start_balance
    daily_used = abs(rules.current_daily_loss) / start * 100
    total_used = abs(rules.current_total_drawdown) / start * 100
    profit = rules.current_profit / start * 100

    if rules.min_trading_days:
        days = rules.trading_days_completed / rules.min_trading_days * 100
    else:
        days = 100.0

    return PropFirmLimits(
        daily_loss_used=daily_used,
        daily_loss_remaining=rules.max_daily_loss_percent - daily_used,
        total_drawdown_used=total_used,
        total_drawdown_remaining=rules.max_total_loss_percent - total_used,
        profit_progress=profit,
        days_progress=days,
    )


def validate_prop_firm_trade(
    rules: PropFirmRules,
    new_trade_risk_percent: float,
    config: Optional[PropFirmConfig] = None,
) -> PropFirmValidationResult:
    """
    Check a trade's risk against the firm's loss limits.

    Args:
        rules: Firm limits and current usage
        new_trade_risk_percent: Candidate risk, percent of start balance
        config: Thresholds

    Returns:
        PropFirmValidationResult
    """
    config = config or PropFirmConfig()

    if rules.start_balance <= 0:
        return PropFirmValidationResult(
            is_valid=False,
            violations=[f"Start balance must be positive, got {rules.start_balance}"],
        )

    limits = calculate_limits(rules)
    violations = []
    warnings = []
    near = config.approaching_limit_fraction

    # Daily loss
    potential_daily = limits.daily_loss_used + new_trade_risk_percent
    if potential_daily > rules.max_daily_loss_percent + 1e-9:
        violations.append(
            f"Daily loss would exceed limit: {potential_daily:.2f}% > "
            f"{rules.max_daily_loss_percent:g}%"
        )
    elif potential_daily > rules.max_daily_loss_percent * near:
        warnings.append(
            f"Daily loss approaching limit: {potential_daily:.2f}% of "
            f"{rules.max_daily_loss_percent:g}%"
        )

    # Total drawdown
    potential_total = limits.total_drawdown_used + new_trade_risk_percent
    if potential_total > rules.max_total_loss_percent + 1e-9:
        violations.append(
            f"Total drawdown would exceed limit: {potential_total:.2f}% > "
            f"{rules.max_total_loss_percent:g}%"
        )
    elif potential_total > rules.max_total_loss_percent * near:
        warnings.append(
            f"Total drawdown approaching limit: {potential_total:.2f}% of "
            f"{rules.max_total_loss_percent:g}%"
        )

    # Profit target
    target = rules.profit_target_percent
    if target:
        remaining = target - limits.profit_progress
        if limits.profit_progress >= target:
            warnings.append(
                f"Profit target reached ({limits.profit_progress:.2f}% of {target:g}%) - "
                f"consider slowing down"
            )
        elif 0 < remaining < config.profit_target_close_percent:
            warnings.append(f"Close to profit target: {remaining:.2f}% remaining")

    # Trading days
    if rules.min_trading_days and rules.trading_days_completed < rules.min_trading_days:
        days_left = rules.min_trading_days - rules.trading_days_completed
        warnings.append(f"{days_left} more trading day(s) required to complete the challenge")

    return PropFirmValidationResult(
        is_valid=not violations,
        violations=violations,
        warnings=warnings,
        limits=limits,
    )


def calculate_remaining_trades(rules: PropFirmRules, average_trade_risk: float = 1.0) -> int:
    """Full trades of average_trade_risk the daily limit still allows."""
    if average_trade_risk <= 0 or rules.start_balance <= 0:
        return 0
    remaining = calculate_limits(rules).daily_loss_remaining
    if remaining <= 0:
        return 0
    return math.floor(remaining / average_trade_risk)


def suggest_max_risk(rules: PropFirmRules) -> float:
    """
    Largest per-trade risk that leaves a 20% buffer on both limits,
    floored to 0.5%.
    """
    limits = calculate_limits(rules)
    max_risk = min(limits.daily_loss_remaining, limits.total_drawdown_remaining)
    if max_risk <= 0:
        return 0.0
    return math.floor(max_risk * 0.8 * 2) / 2


def assess_challenge_health(rules: PropFirmRules) -> ChallengeHealth:
    """Overall challenge health from limit usage and profit progress."""
    limits = calculate_limits(rules)
    daily_max = rules.max_daily_loss_percent
    total_max = rules.max_total_loss_percent
    target = rules.profit_target_percent or 0
    target_reached = target > 0 and limits.profit_progress >= target

    if limits.daily_loss_used > daily_max * 0.9 or limits.total_drawdown_used > total_max * 0.9:
        return ChallengeHealth(
            status=HealthStatus.CRITICAL,
            message="Stop trading. The challenge is close to failing",
            recommendations=[
                "Do not take any more trades today",
                "Review what went wrong",
            ],
        )

    if limits.daily_loss_used > daily_max * 0.7 or limits.total_drawdown_used > total_max * 0.7:
        return ChallengeHealth(
            status=HealthStatus.DANGER,
            message="High risk of failing the challenge - trade carefully",
            recommendations=[
                "Reduce risk to 0.5% per trade maximum",
                "Avoid trading during high volatility",
                "Take a break and review your strategy",
            ],
        )

    if (
        limits.daily_loss_used > daily_max * 0.5
        or limits.total_drawdown_used > total_max * 0.5
        or target_reached
    ):
        if target_reached:
            return ChallengeHealth(
                status=HealthStatus.WARNING,
                message="Target reached - protect your progress",
                recommendations=[
                    "Slow down and protect gains",
                    "Risk max 0.5% per trade",
                    "Consider completing the minimum trading days only",
                ],
            )
        return ChallengeHealth(
            status=HealthStatus.WARNING,
            message="Moderate risk level - trade cautiously",
            recommendations=[
                "Risk max 1% per trade",
                "Focus on high-probability setups only",
            ],
        )

    return ChallengeHealth(
        status=HealthStatus.HEALTHY,
        message="Challenge progressing well",
        recommendations=[
            "Stick to your trading plan",
            "Risk 1-2% per trade maximum",
        ],
    )


# ============================================================
# VALIDATOR
# ============================================================

class PropFirmValidator(BaseValidator):
    """
    Validates a trade against prop-firm rules, when supplied.
    """

    @property
    def meta(self) -> ValidatorMeta:
        return ValidatorMeta(
            name="PropFirmValidator",
            category=ViolationCategory.PROP_FIRM,
            description="Daily loss, total drawdown, lot size and open trade limits",
        )

    def applies(self, validation_input: TradeValidationInput) -> bool:
        return validation_input.prop_firm_rules is not None

    def _validate(self, validation_input: TradeValidationInput) -> ValidatorOutcome:
        cfg = self._config.prop_firm
        rules = validation_input.prop_firm_rules
        trade = validation_input.trade
        outcome = ValidatorOutcome(validator_name=self.meta.name)

        # Candidate risk in dollars, expressed against the start balance
        risk_amount = effective_risk_for(validation_input)
        risk_percent_of_start = (
            risk_amount / rules.start_balance * 100 if rules.start_balance > 0 else 0.0
        )

        result = validate_prop_firm_trade(rules, risk_percent_of_start, cfg)

        for message in result.violations:
            outcome.violations.append(self._violation("PF_LOSS_LIMIT", message))
        outcome.warnings.extend(result.warnings)

        # Lot size
        if rules.max_lot_size is not None and trade.lot_size is not None:
            if trade.lot_size > rules.max_lot_size:
                outcome.violations.append(self._violation(
                    "PF_MAX_LOT_SIZE",
                    f"Lot size {trade.lot_size} exceeds the firm's maximum "
                    f"{rules.max_lot_size}",
                ))

        # Open trades
        if rules.max_open_trades is not None:
            open_count = len(validation_input.existing_trades)
            if open_count >= rules.max_open_trades:
                outcome.violations.append(self._violation(
                    "PF_MAX_OPEN_TRADES",
                    f"{open_count} position(s) already open; the firm allows "
                    f"{rules.max_open_trades}",
                ))

        if result.limits is not None:
            limits = result.limits
            if limits.daily_loss_remaining < cfg.daily_remaining_recommendation_percent:
                outcome.recommendations.append(
                    f"Only {max(limits.daily_loss_remaining, 0):.1f}% daily loss remaining - "
                    f"consider stopping for today"
                )
            if limits.total_drawdown_remaining < cfg.total_remaining_recommendation_percent:
                outcome.recommendations.append(
                    f"Only {max(limits.total_drawdown_remaining, 0):.1f}% total drawdown "
                    f"remaining - trade carefully"
                )

            health = assess_challenge_health(rules)
            outcome.metrics["prop_firm"] = {
                "provider": rules.provider,
                "phase": rules.phase,
                "limits": limits.to_dict(),
                "health": health.to_dict(),
                "suggested_max_risk": suggest_max_risk(rules),
                "remaining_trades": calculate_remaining_trades(rules),
            }

        return outcome
