"""
Trade Risk Guardian - Per-Trade Risk Validator.

============================================================
PURPOSE
============================================================
Checks a single trade in isolation:

- Risk percent is positive and under the absolute ceiling
- Dollar risk is within the locked setup's max trade risk
- Stop loss and take profits sit on the correct side of entry
- Reward:risk is not below the configured minimum
- A requested lot never risks more than the authorized dollars

Also computes pip distance, pip value and a suggested lot size
from a pip table or, when known, the broker spec.

============================================================
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Optional

from ..types import (
    Direction,
    SymbolSpec,
    TradeValidationInput,
    ValidatorOutcome,
    ViolationCategory,
)
from .base import BaseValidator, ValidatorMeta, exceeds, risk_amount_for


logger = logging.getLogger(__name__)


# ============================================================
# PIP TABLE
# ============================================================

@dataclass(frozen=True)
class PipInfo:
    pip_size: float
    """Price move of one pip."""

    pip_value: float
    """Value of one pip for one standard lot, in USD."""


FOREX_PIP_VALUES: Dict[str, PipInfo] = {
    # XXX/USD
    "EURUSD": PipInfo(0.0001, 10.0),
    "GBPUSD": PipInfo(0.0001, 10.0),
    "AUDUSD": PipInfo(0.0001, 10.0),
    "NZDUSD": PipInfo(0.0001, 10.0),

    # USD/XXX (approximate, varies with the rate)
    "USDCAD": PipInfo(0.0001, 7.5),
    "USDCHF": PipInfo(0.0001, 11.0),
    "USDJPY": PipInfo(0.01, 9.0),

    # Crosses
    "EURGBP": PipInfo(0.0001, 13.0),
    "EURJPY": PipInfo(0.01, 9.0),
    "GBPJPY": PipInfo(0.01, 9.0),

    # Metals
    "XAUUSD": PipInfo(0.1, 10.0),
    "XAGUSD": PipInfo(0.01, 50.0),

    # Indices (one contract per lot)
    "US30": PipInfo(1.0, 1.0),
    "NAS100": PipInfo(1.0, 1.0),
    "SPX500": PipInfo(1.0, 1.0),
}

DEFAULT_PIP_INFO = PipInfo(0.0001, 10.0)


def get_pip_info(symbol: str, spec: Optional[SymbolSpec] = None) -> PipInfo:
    """
    Pip size and value for a symbol.

    Derived from the broker spec when one is supplied, otherwise
    looked up in FOREX_PIP_VALUES.
    """
    if spec is not None and spec.point > 0:
        pip_size = spec.point * 10 if spec.digits in (3, 5) else spec.point
        if spec.tick_value and spec.tick_size:
            pip_value = spec.tick_value * pip_size / spec.tick_size
        else:
            pip_value = pip_size * spec.contract_size
        if pip_value > 0:
            return PipInfo(pip_size, pip_value)

    clean = re.sub(r"[^A-Z0-9]", "", (symbol or "").upper())
    return FOREX_PIP_VALUES.get(clean, DEFAULT_PIP_INFO)


def calculate_pip_distance(entry_price: float, stop_loss: float, pip_size: float) -> float:
    return abs(entry_price - stop_loss) / pip_size


def calculate_lot_size(risk_amount: float, pip_distance: float, pip_value: float) -> float:
    """
    Lot size that risks risk_amount over pip_distance.

    Floored to 0.01 so the suggestion never risks more than asked.
    """
    if pip_distance <= 0 or pip_value <= 0:
        return 0.0
    raw = risk_amount / (pip_distance * pip_value)
    return math.floor(round(raw * 100, 6)) / 100


def lot_risk_for(validation_input: TradeValidationInput) -> Optional[float]:
    """Dollar loss of the requested lot at the stop, or None without a lot."""
    trade = validation_input.trade
    if trade.lot_size is None or trade.lot_size <= 0:
        return None
    pip_info = get_pip_info(trade.symbol, validation_input.symbol_spec)
    pip_distance = calculate_pip_distance(trade.entry_price, trade.stop_loss, pip_info.pip_size)
    return trade.lot_size * pip_distance * pip_info.pip_value


def effective_risk_for(validation_input: TradeValidationInput) -> float:
    """
    Dollar risk the budgets are charged with.

    The authorized risk, or the requested lot's risk at the stop
    when that is larger.
    """
    risk_amount = risk_amount_for(validation_input)
    lot_risk = lot_risk_for(validation_input)
    if lot_risk is not None and exceeds(lot_risk, risk_amount):
        return lot_risk
    return risk_amount


def effective_risk_percent_for(validation_input: TradeValidationInput) -> float:
    """effective_risk_for as a percent of the account balance."""
    trade = validation_input.trade
    balance = validation_input.account_balance
    effective = effective_risk_for(validation_input)
    if balance <= 0 or not exceeds(effective, risk_amount_for(validation_input)):
        return trade.risk_percent
    return round(effective / balance * 100, 4)


def calculate_risk_reward_ratio(
    entry_price: float,
    stop_loss: float,
    take_profit: float,
) -> Optional[float]:
    risk = abs(entry_price - stop_loss)
    if risk == 0:
        return None
    return abs(take_profit - entry_price) / risk


def suggest_take_profit(
    entry_price: float,
    stop_loss: float,
    direction: Direction,
    ratio: float = 2.0,
) -> float:
    """Take profit at the given reward:risk ratio."""
    distance = abs(entry_price - stop_loss) * ratio
    if direction == Direction.BUY:
        return entry_price + distance
    return entry_price - distance


# ============================================================
# VALIDATOR
# ============================================================

class RiskValidator(BaseValidator):
    """
    Validates per-trade risk.
    """

    @property
    def meta(self) -> ValidatorMeta:
        return ValidatorMeta(
            name="RiskValidator",
            category=ViolationCategory.RISK,
            description="Risk percent, setup max trade risk, stop/target sides, R:R",
        )

    def _validate(self, validation_input: TradeValidationInput) -> ValidatorOutcome:
        cfg = self._config.risk
        trade = validation_input.trade
        outcome = ValidatorOutcome(validator_name=self.meta.name)

        # Inputs
        if validation_input.account_balance <= 0:
            outcome.violations.append(self._violation(
                "RISK_INVALID_BALANCE",
                f"Account balance must be positive, got {validation_input.account_balance}",
            ))

        if trade.risk_percent <= 0:
            outcome.violations.append(self._violation(
                "RISK_NON_POSITIVE",
                f"Risk per trade must be positive, got {trade.risk_percent}%",
            ))
        elif trade.risk_percent > cfg.max_risk_per_trade_percent:
            outcome.violations.append(self._violation(
                "RISK_ABOVE_ABSOLUTE_CEILING",
                f"Risk per trade ({trade.risk_percent}%) exceeds the absolute "
                f"ceiling of {cfg.max_risk_per_trade_percent:g}%",
            ))

        if trade.entry_price <= 0 or trade.stop_loss <= 0:
            outcome.violations.append(self._violation(
                "RISK_INVALID_PRICES",
                "Entry price and stop loss must be positive",
            ))
            return outcome

        if trade.entry_price == trade.stop_loss:
            outcome.violations.append(self._violation(
                "RISK_ZERO_STOP_DISTANCE",
                "Entry price and stop loss cannot be the same",
            ))
            return outcome

        risk_amount = risk_amount_for(validation_input)
        effective_risk = effective_risk_for(validation_input)
        outcome.metrics["risk_amount"] = round(effective_risk, 2)

        # Locked setup ceiling
        budget = validation_input.challenge_budget
        if budget is not None and exceeds(effective_risk, budget.max_trade_risk_dollars):
            outcome.violations.append(self._violation(
                "RISK_ABOVE_SETUP_MAX",
                f"Trade risk ${effective_risk:.2f} exceeds the setup's max trade risk "
                f"${budget.max_trade_risk_dollars:.2f}",
            ))

        # Sides
        self._check_sides(validation_input, outcome)

        # Reward:risk
        if trade.take_profit_1 is not None:
            ratio = calculate_risk_reward_ratio(
                trade.entry_price, trade.stop_loss, trade.take_profit_1
            )
            if ratio is not None:
                outcome.metrics["reward_risk_ratio"] = round(ratio, 2)
                if ratio < cfg.min_reward_risk_ratio:
                    outcome.warnings.append(
                        f"Low reward:risk ratio ({ratio:.2f}:1). Consider 2:1 minimum"
                    )

        # Sizing
        pip_info = get_pip_info(trade.symbol, validation_input.symbol_spec)
        pip_distance = calculate_pip_distance(
            trade.entry_price, trade.stop_loss, pip_info.pip_size
        )
        suggested_lot = calculate_lot_size(risk_amount, pip_distance, pip_info.pip_value)

        outcome.metrics["pip_distance"] = round(pip_distance, 1)
        outcome.metrics["pip_value"] = round(pip_info.pip_value, 4)
        outcome.metrics["suggested_lot_size"] = suggested_lot

        if suggested_lot < cfg.min_suggested_lot:
            outcome.warnings.append(
                f"Calculated lot size is below {cfg.min_suggested_lot} for this stop distance"
            )
        elif suggested_lot > cfg.max_suggested_lot:
            outcome.warnings.append(
                f"Calculated lot size {suggested_lot} is above {cfg.max_suggested_lot}"
            )

        lot_risk = lot_risk_for(validation_input)
        if lot_risk is not None:
            outcome.metrics["lot_risk_amount"] = round(lot_risk, 2)
            if exceeds(lot_risk, risk_amount):
                outcome.violations.append(self._violation(
                    "RISK_LOT_EXCEEDS_AUTHORIZED",
                    f"Requested lot size {trade.lot_size} risks ${lot_risk:.2f} at the stop, "
                    f"more than the authorized ${risk_amount:.2f}. "
                    f"Use at most {suggested_lot} lots",
                ))

        # Recommendations
        if trade.risk_percent > cfg.recommended_max_risk_percent:
            outcome.recommendations.append("Consider reducing risk to 1-2% per trade")
        if pip_distance > cfg.wide_stop_pips:
            outcome.recommendations.append(
                f"Wide stop loss ({pip_distance:.0f} pips) - consider a tighter stop"
            )

        return outcome

    def _check_sides(
        self,
        validation_input: TradeValidationInput,
        outcome: ValidatorOutcome,
    ) -> None:
        trade = validation_input.trade
        entry = trade.entry_price

        if trade.direction == Direction.BUY:
            if trade.stop_loss >= entry:
                outcome.violations.append(self._violation(
                    "RISK_STOP_WRONG_SIDE",
                    "Stop loss must be below entry for BUY orders",
                ))
            for tp in trade.take_profits:
                if tp <= entry:
                    outcome.violations.append(self._violation(
                        "RISK_TARGET_WRONG_SIDE",
                        f"Take profit {tp} must be above entry for BUY orders",
                    ))
        else:
            if trade.stop_loss <= entry:
                outcome.violations.append(self._violation(
                    "RISK_STOP_WRONG_SIDE",
                    "Stop loss must be above entry for SELL orders",
                ))
            for tp in trade.take_profits:
                if tp >= entry:
                    outcome.violations.append(self._violation(
                        "RISK_TARGET_WRONG_SIDE",
                        f"Take profit {tp} must be below entry for SELL orders",
                    ))
