"""
Trade Risk Guardian - Correlation Validator.

============================================================
PURPOSE
============================================================
Prevents stacking the same currency bet through different
symbols (EURUSD long + GBPUSD long = double USD short).

============================================================
EXPOSURE MODEL
============================================================
Each position contributes its risk percent to two legs:

    BUY  -> long base, short quote
    SELL -> short base, long quote

Per currency: long, short, net = long - short, gross, count.
Metals map to GOLD/SILVER, indices to INDEX, all against USD.

A violation is raised when |net| on a currency the candidate
trades exceeds the per-account limit (default 2.0%).

============================================================
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import CorrelationConfig
from ..types import (
    Direction,
    TradeExposure,
    TradeValidationInput,
    ValidatorOutcome,
    ViolationCategory,
)
from .base import BaseValidator, ValidatorMeta
from .risk import effective_risk_percent_for


logger = logging.getLogger(__name__)


# ============================================================
# CORRELATION MATRIX
# ============================================================

CORRELATION_MATRIX: Dict[str, Dict[str, float]] = {
    "EURUSD": {
        "GBPUSD": 0.89, "AUDUSD": 0.76, "NZDUSD": 0.72, "USDCAD": -0.85,
        "USDCHF": -0.91, "USDJPY": -0.68, "EURGBP": 0.45, "EURJPY": 0.82,
    },
    "GBPUSD": {
        "AUDUSD": 0.71, "NZDUSD": 0.68, "USDCAD": -0.80, "USDCHF": -0.85,
        "USDJPY": -0.61, "EURGBP": 0.52, "GBPJPY": 0.79,
    },
    "AUDUSD": {
        "NZDUSD": 0.94, "USDCAD": -0.88, "USDCHF": -0.74, "USDJPY": -0.55,
    },
    "NZDUSD": {
        "USDCAD": -0.84, "USDCHF": -0.70, "USDJPY": -0.52,
    },
    "USDCAD": {
        "USDCHF": 0.78, "USDJPY": 0.61,
    },
    "USDCHF": {
        "USDJPY": 0.71,
    },
    "USDJPY": {
        "EURJPY": 0.84, "GBPJPY": 0.86,
    },
}


def _clean_pair(symbol: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", (symbol or "").upper())


def parse_currency_pair(symbol: str) -> Tuple[str, str]:
    """
    Split a symbol into (base, quote) exposure legs.

    Examples:
        EURUSD   -> ("EUR", "USD")
        XAUUSD.m -> ("GOLD", "USD")
        NAS100   -> ("INDEX", "USD")
    """
    clean = _clean_pair(symbol)
    letters = re.sub(r"[^A-Z]", "", clean)

    if clean.startswith("XAU") or clean.startswith("GOLD"):
        return "GOLD", "USD"
    if clean.startswith("XAG") or clean.startswith("SILVER"):
        return "SILVER", "USD"
    if any(tag in clean for tag in ("US30", "NAS", "SPX", "US500", "USTEC", "GER40", "UK100")):
        return "INDEX", "USD"

    if len(letters) >= 6:
        return letters[:3], letters[3:6]

    return letters or clean, "USD"


def get_correlation(symbol1: str, symbol2: str) -> float:
    """Correlation between two symbols; 0 when unknown."""
    a = _clean_pair(symbol1)[:6]
    b = _clean_pair(symbol2)[:6]
    if a == b:
        return 1.0
    value = CORRELATION_MATRIX.get(a, {}).get(b)
    if value is None:
        value = CORRELATION_MATRIX.get(b, {}).get(a)
    return value if value is not None else 0.0


# ============================================================
# EXPOSURE
# ============================================================

@dataclass
class CurrencyExposure:
    """Aggregated exposure on one currency, in percent of balance."""

    currency: str
    long_exposure: float = 0.0
    short_exposure: float = 0.0
    open_positions: int = 0

    @property
    def net_exposure(self) -> float:
        return self.long_exposure - self.short_exposure

    @property
    def gross_exposure(self) -> float:
        return self.long_exposure + self.short_exposure

    def to_dict(self) -> Dict[str, float]:
        return {
            "currency": self.currency,
            "long_exposure": round(self.long_exposure, 4),
            "short_exposure": round(self.short_exposure, 4),
            "net_exposure": round(self.net_exposure, 4),
            "gross_exposure": round(self.gross_exposure, 4),
            "open_positions": self.open_positions,
        }


@dataclass
class ExposureAnalysis:
    exposures: Dict[str, CurrencyExposure] = field(default_factory=dict)
    violations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    max_exposure_currency: Optional[str] = None
    max_exposure_value: float = 0.0
    total_risk: float = 0.0
    limit: float = 0.0

    def to_dict(self):
        return {
            "exposures": {c: e.to_dict() for c, e in self.exposures.items()},
            "violations": list(self.violations),
            "warnings": list(self.warnings),
            "max_exposure_currency": self.max_exposure_currency,
            "max_exposure_value": round(self.max_exposure_value, 4),
            "total_risk": round(self.total_risk, 4),
            "limit": self.limit,
        }


def calculate_currency_exposure(
    trades: Sequence[TradeExposure],
) -> Dict[str, CurrencyExposure]:
    """Aggregate long/short exposure per currency."""
    exposures: Dict[str, CurrencyExposure] = {}

    for trade in trades:
        base = exposures.setdefault(trade.base_currency, CurrencyExposure(trade.base_currency))
        quote = exposures.setdefault(
            trade.quote_currency, CurrencyExposure(trade.quote_currency)
        )

        if trade.direction == Direction.BUY:
            base.long_exposure += trade.risk_percent
            quote.short_exposure += trade.risk_percent
        else:
            base.short_exposure += trade.risk_percent
            quote.long_exposure += trade.risk_percent

        base.open_positions += 1
        quote.open_positions += 1

    return exposures


def analyze_exposure(
    existing_trades: Sequence[TradeExposure],
    new_trade: Optional[TradeExposure],
    max_currency_exposure: float,
    config: Optional[CorrelationConfig] = None,
) -> ExposureAnalysis:
    """
    Analyze currency exposure with an optional candidate trade.

    With a candidate, only currencies it trades can produce
    violations; pre-existing excess elsewhere is a warning.

    Args:
        existing_trades: Open exposure set
        new_trade: Candidate trade, if any
        max_currency_exposure: Net exposure limit, percent of balance
        config: Thresholds

    Returns:
        ExposureAnalysis
    """
    config = config or CorrelationConfig()
    all_trades = list(existing_trades) + ([new_trade] if new_trade else [])
    exposures = calculate_currency_exposure(all_trades)

    touched = None
    if new_trade is not None:
        touched = {new_trade.base_currency, new_trade.quote_currency}

    analysis = ExposureAnalysis(exposures=exposures, limit=max_currency_exposure)
    analysis.total_risk = sum(t.risk_percent for t in all_trades)

    for currency in sorted(exposures):
        exposure = exposures[currency]
        net = abs(exposure.net_exposure)

        if net > analysis.max_exposure_value:
            analysis.max_exposure_value = net
            analysis.max_exposure_currency = currency

        if net > max_currency_exposure + 1e-9:
            message = (
                f"{currency}: {net:.2f}% directional exposure exceeds limit of "
                f"{max_currency_exposure:g}%"
            )
            if touched is None or currency in touched:
                analysis.violations.append(message)
            else:
                analysis.warnings.append(message)
        elif net > max_currency_exposure * config.warning_fraction:
            analysis.warnings.append(
                f"{currency}: {net:.2f}% exposure is approaching the limit "
                f"({max_currency_exposure:g}%)"
            )

        if exposure.open_positions >= config.max_positions_per_currency:
            analysis.warnings.append(
                f"{currency}: {exposure.open_positions} open positions (consider reducing)"
            )

    if analysis.total_risk > config.max_total_risk_percent:
        analysis.warnings.append(
            f"Total combined risk is {analysis.total_risk:.2f}% (consider reducing)"
        )

    return analysis


def calculate_effective_risk(trades: Sequence[TradeExposure]) -> float:
    """
    Correlation-weighted portfolio risk.

    sqrt(|sum_ij sqrt(ri * rj) * corr_ij * dir_ij|), where dir_ij
    is -1 for opposite directions.
    """
    if not trades:
        return 0.0
    if len(trades) == 1:
        return trades[0].risk_percent

    total = 0.0
    for a in trades:
        for b in trades:
            direction = 1 if a.direction == b.direction else -1
            total += (
                math.sqrt(a.risk_percent * b.risk_percent)
                * get_correlation(a.symbol, b.symbol)
                * direction
            )
    return math.sqrt(abs(total))


def suggest_reduced_risk(
    existing_trades: Sequence[TradeExposure],
    new_trade: TradeExposure,
    max_currency_exposure: float,
    minimum: float = 0.5,
) -> float:
    """
    Largest risk (0.1% steps, at least `minimum`) that keeps the
    candidate's currencies within the limit.
    """
    exposures = calculate_currency_exposure(list(existing_trades) + [new_trade])
    excess = 0.0
    for currency in (new_trade.base_currency, new_trade.quote_currency):
        exposure = exposures.get(currency)
        if exposure is not None:
            excess = max(excess, abs(exposure.net_exposure) - max_currency_exposure)

    if excess <= 0:
        return new_trade.risk_percent

    reduced = max(minimum, new_trade.risk_percent - excess)
    return math.floor(round(reduced * 10, 6)) / 10


# ============================================================
# VALIDATOR
# ============================================================

class CorrelationValidator(BaseValidator):
    """
    Validates cross-position currency exposure.
    """

    @property
    def meta(self) -> ValidatorMeta:
        return ValidatorMeta(
            name="CorrelationValidator",
            category=ViolationCategory.CORRELATION,
            description="Directional currency exposure across open positions",
        )

    def applies(self, validation_input: TradeValidationInput) -> bool:
        return bool(validation_input.existing_trades)

    def _validate(self, validation_input: TradeValidationInput) -> ValidatorOutcome:
        cfg = self._config.correlation
        trade = validation_input.trade
        outcome = ValidatorOutcome(validator_name=self.meta.name)

        limit = validation_input.max_currency_exposure or cfg.default_max_currency_exposure

        candidate = TradeExposure(
            symbol=trade.symbol,
            direction=trade.direction,
            risk_percent=effective_risk_percent_for(validation_input),
        )
        existing = validation_input.existing_trades

        analysis = analyze_exposure(existing, candidate, limit, cfg)

        for message in analysis.violations:
            outcome.violations.append(self._violation("CORR_CURRENCY_EXPOSURE", message))
        outcome.warnings.extend(analysis.warnings)

        if analysis.violations:
            outcome.recommendations.append(
                "Reduce position size or close correlated positions first"
            )
            reduced = suggest_reduced_risk(existing, candidate, limit)
            if reduced < candidate.risk_percent:
                outcome.recommendations.append(
                    f"A risk of {reduced:g}% or less would keep currency exposure "
                    f"closer to the {limit:g}% limit"
                )

        if analysis.total_risk > cfg.total_risk_recommendation_percent:
            outcome.recommendations.append(
                f"Total portfolio risk is {analysis.total_risk:.1f}% - consider reducing"
            )

        outcome.metrics["exposure"] = analysis.to_dict()
        outcome.metrics["effective_risk"] = round(
            calculate_effective_risk(list(existing) + [candidate]), 4
        )
        return outcome
