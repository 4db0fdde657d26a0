"""
Trade Risk Guardian - Validators Package.

============================================================
VALIDATORS
============================================================
Each validator covers one family of trade rules:

- RiskValidator: Per-trade risk, stop/target sides, R:R, sizing
- ChallengeBudgetValidator: Locked setup budgets and spacing
- CorrelationValidator: Directional currency exposure
- PropFirmValidator: Firm loss limits, lot size, open trades

============================================================
"""

from .base import (
    BaseValidator,
    ValidatorMeta,
    exceeds,
    risk_amount_for,
)
from .risk import (
    RiskValidator,
    PipInfo,
    FOREX_PIP_VALUES,
    get_pip_info,
    calculate_pip_distance,
    calculate_lot_size,
    lot_risk_for,
    effective_risk_for,
    effective_risk_percent_for,
    calculate_risk_reward_ratio,
    suggest_take_profit,
)
from .challenge_budget import ChallengeBudgetValidator
from .correlation import (
    CorrelationValidator,
    CurrencyExposure,
    ExposureAnalysis,
    CORRELATION_MATRIX,
    parse_currency_pair,
    get_correlation,
    calculate_currency_exposure,
    analyze_exposure,
    calculate_effective_risk,
    suggest_reduced_risk,
)
from .prop_firm import (
    PropFirmValidator,
    PropFirmLimits,
    PropFirmValidationResult,
    ChallengeHealth,
    calculate_limits,
    validate_prop_firm_trade,
    calculate_remaining_trades,
    suggest_max_risk,
    assess_challenge_health,
)

__all__ = [
    # Base
    "BaseValidator",
    "ValidatorMeta",
    "exceeds",
    "risk_amount_for",
    # Risk
    "RiskValidator",
    "PipInfo",
    "FOREX_PIP_VALUES",
    "get_pip_info",
    "calculate_pip_distance",
    "calculate_lot_size",
    "lot_risk_for",
    "effective_risk_for",
    "effective_risk_percent_for",
    "calculate_risk_reward_ratio",
    "suggest_take_profit",
    # Challenge budget
    "ChallengeBudgetValidator",
    # Correlation
    "CorrelationValidator",
    "CurrencyExposure",
    "ExposureAnalysis",
    "CORRELATION_MATRIX",
    "parse_currency_pair",
    "get_correlation",
    "calculate_currency_exposure",
    "analyze_exposure",
    "calculate_effective_risk",
    "suggest_reduced_risk",
    # Prop firm
    "PropFirmValidator",
    "PropFirmLimits",
    "PropFirmValidationResult",
    "ChallengeHealth",
    "calculate_limits",
    "validate_prop_firm_trade",
    "calculate_remaining_trades",
    "suggest_max_risk",
    "assess_challenge_health",
]
