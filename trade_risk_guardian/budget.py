"""
Trade Risk Guardian - Budget Calculator & Setup Validator.

============================================================
PURPOSE
============================================================
Turns a trader's percentage rules into dollar budgets and
rejects contradictory configurations before they are locked.

============================================================
SETUP RULES
============================================================
1. Risk per trade above the absolute ceiling     -> error
2. Risk per trade above 1/3 of the daily budget  -> warning
3. Risk per asset below risk per trade           -> error
4. Daily limit above over-roll limit             -> error
5. Daily budget below 30% of over-roll           -> warning
6. Zero orders per asset -> error, more than 10  -> warning
7. Worst-case asset risk above asset allocation  -> error
8. Unusual account size                          -> warning
9. Order cooldown above one hour                 -> warning

============================================================
LIFECYCLE
============================================================
DRAFT -> LOCKED at creation. There is no unlock. Changing the
rules means ending the challenge and creating a new setup.

============================================================
"""

import logging
import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from .config import SetupRulesConfig
from .types import (
    DerivedBudgets,
    MutabilityCheck,
    SetupInput,
    SetupStatus,
    SetupValidationError,
    SetupValidationResult,
    parse_enum,
)


logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def _percent_of(amount: float, percent: float) -> Decimal:
    value = Decimal(str(amount)) * Decimal(str(percent)) / Decimal(100)
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


# ============================================================
# DERIVED VALUES
# ============================================================

def calculate_derived_values(setup: SetupInput) -> DerivedBudgets:
    """
    Derive dollar budgets from percentage rules.

    Pure and idempotent. Each budget is a percentage of the
    account size rounded to cents.

    Args:
        setup: Percentage rules

    Returns:
        DerivedBudgets
    """
    return DerivedBudgets(
        daily_budget_dollars=float(_percent_of(setup.account_size, setup.daily_max_percent)),
        over_roll_budget_dollars=float(
            _percent_of(setup.account_size, setup.over_roll_max_percent)
        ),
        max_trade_risk_dollars=float(
            _percent_of(setup.account_size, setup.user_risk_per_trade_percent)
        ),
        max_asset_allocation_dollars=float(
            _percent_of(setup.account_size, setup.user_risk_per_asset_percent)
        ),
    )


def estimate_tradeable_days(budgets: DerivedBudgets) -> Optional[int]:
    """Full losing days the over-roll budget allows. None without a daily budget."""
    if budgets.daily_budget_dollars <= 0:
        return None
    return math.floor(budgets.over_roll_budget_dollars / budgets.daily_budget_dollars)


# ============================================================
# VALIDATION
# ============================================================

def validate_setup(
    setup: SetupInput,
    config: Optional[SetupRulesConfig] = None,
) -> SetupValidationResult:
    """
    Validate a challenge setup.

    Every rule is checked; all errors and warnings are returned.

    Args:
        setup: Percentage rules
        config: Thresholds (defaults if omitted)

    Returns:
        SetupValidationResult (is_valid iff no errors)
    """
    config = config or SetupRulesConfig()
    errors = []
    warnings = []

    # Basic sanity
    if setup.account_size is None or setup.account_size <= 0:
        errors.append(f"Account size must be positive, got {setup.account_size}")
        return SetupValidationResult(is_valid=False, errors=errors, warnings=warnings)

    percentages = {
        "Over-roll limit": setup.over_roll_max_percent,
        "Daily limit": setup.daily_max_percent,
        "Risk per trade": setup.user_risk_per_trade_percent,
        "Risk per asset": setup.user_risk_per_asset_percent,
    }
    for label, value in percentages.items():
        if value is None or value < 0:
            errors.append(f"{label} cannot be negative, got {value}")
    if setup.max_orders_per_asset is None or setup.max_orders_per_asset < 0:
        errors.append(
            f"Max orders per asset cannot be negative, got {setup.max_orders_per_asset}"
        )
    if setup.min_time_between_orders_sec is not None and setup.min_time_between_orders_sec < 0:
        errors.append(
            f"Min time between orders cannot be negative, "
            f"got {setup.min_time_between_orders_sec}"
        )
    if errors:
        return SetupValidationResult(is_valid=False, errors=errors, warnings=warnings)

    budgets = calculate_derived_values(setup)
    daily = Decimal(str(budgets.daily_budget_dollars))
    over_roll = Decimal(str(budgets.over_roll_budget_dollars))
    trade = Decimal(str(budgets.max_trade_risk_dollars))
    asset = Decimal(str(budgets.max_asset_allocation_dollars))

    # Rule 1: absolute per-trade ceiling
    ceiling = config.max_risk_per_trade_percent
    if setup.user_risk_per_trade_percent > ceiling:
        errors.append(
            f"Risk per trade ({setup.user_risk_per_trade_percent}%) cannot exceed "
            f"{ceiling:g}%. This limit protects the account from ruin."
        )

    # Rule 2: one trade should not eat most of the day
    if trade > daily * Decimal(str(config.trade_to_daily_warning_ratio)):
        warnings.append(
            f"Risk per trade (${trade:.2f}) is more than "
            f"{config.trade_to_daily_warning_ratio * 100:.0f}% of the daily budget "
            f"(${daily:.2f}). A single loss will consume much of the day's allowance."
        )

    # Rule 3
    if setup.user_risk_per_asset_percent < setup.user_risk_per_trade_percent:
        errors.append(
            f"Risk per asset ({setup.user_risk_per_asset_percent}%) must be at least "
            f"risk per trade ({setup.user_risk_per_trade_percent}%), otherwise no "
            f"trade can be placed."
        )

    # Rule 4
    if setup.daily_max_percent > setup.over_roll_max_percent:
        errors.append(
            f"Daily limit ({setup.daily_max_percent}%) cannot exceed the over-roll "
            f"limit ({setup.over_roll_max_percent}%)."
        )

    # Rule 5
    if (
        setup.daily_max_percent
        < setup.over_roll_max_percent * config.min_daily_to_over_roll_ratio
    ):
        days = estimate_tradeable_days(budgets)
        estimate = f"~{days} days" if days is not None else "unlimited days"
        warnings.append(
            f"Daily limit ({setup.daily_max_percent}%) is below "
            f"{config.min_daily_to_over_roll_ratio * 100:.0f}% of the over-roll "
            f"limit ({setup.over_roll_max_percent}%). Estimated tradeable days: "
            f"{estimate} before the over-roll limit."
        )

    # Rule 6
    if setup.max_orders_per_asset == 0:
        errors.append("Max orders per asset cannot be 0. Allow at least 1 order per asset.")
    elif setup.max_orders_per_asset > config.max_orders_per_asset_warning:
        warnings.append(
            f"Max orders per asset ({setup.max_orders_per_asset}) is high. Managing more "
            f"than {config.max_orders_per_asset_warning} orders on one asset is difficult."
        )

    # Rule 7: worst case on one asset
    worst_case = trade * setup.max_orders_per_asset
    if worst_case > asset:
        errors.append(
            f"Configuration conflict: {setup.max_orders_per_asset} orders x "
            f"{setup.user_risk_per_trade_percent}% risk = ${worst_case:.2f}, but the max "
            f"asset allocation is ${asset:.2f}. Reduce orders per asset or raise risk "
            f"per asset."
        )

    # Rule 8
    if setup.account_size < config.min_account_size_warning:
        warnings.append(
            f"Account size (${setup.account_size:,.2f}) is very small. Calculated lot "
            f"sizes may fall below broker minimums."
        )
    elif setup.account_size > config.max_account_size_warning:
        warnings.append(
            f"Account size (${setup.account_size:,.2f}) is unusually large. "
            f"Please verify it."
        )

    # Rule 9
    if (setup.min_time_between_orders_sec or 0) > config.max_min_time_between_orders_sec:
        warnings.append(
            f"Cooldown between orders ({setup.min_time_between_orders_sec / 60:g} minutes) "
            f"is long and may prevent timely entries."
        )

    return SetupValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# ============================================================
# IMMUTABILITY
# ============================================================

def validate_setup_mutability(status, is_locked: bool) -> MutabilityCheck:
    """
    Check whether a setup may still be modified.

    Args:
        status: SetupStatus (or its string value)
        is_locked: Lock flag

    Returns:
        MutabilityCheck
    """
    status = parse_enum(SetupStatus, status, "status")

    if is_locked:
        return MutabilityCheck(
            can_modify=False,
            reason=(
                "Setup is locked and cannot be modified. To change settings, end the "
                "current challenge and create a new setup."
            ),
        )

    if status == SetupStatus.ACTIVE:
        return MutabilityCheck(
            can_modify=False,
            reason="Setup is active and cannot be modified during the challenge.",
        )

    return MutabilityCheck(can_modify=True)


def build_locked_setup(
    setup: SetupInput,
    config: Optional[SetupRulesConfig] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Validate a setup and produce its locked field set.

    All-or-nothing: nothing is returned unless every rule passes.

    Returns:
        Field values ready to persist (rules, budgets, lock state)

    Raises:
        SetupValidationError: With every error found
    """
    result = validate_setup(setup, config)
    if not result.is_valid:
        logger.info(f"Setup rejected with {len(result.errors)} error(s)")
        raise SetupValidationError(result.errors, result.warnings)

    budgets = calculate_derived_values(setup)

    values = {
        "account_size": setup.account_size,
        "over_roll_max_percent": setup.over_roll_max_percent,
        "daily_max_percent": setup.daily_max_percent,
        "user_risk_per_trade_percent": setup.user_risk_per_trade_percent,
        "user_risk_per_asset_percent": setup.user_risk_per_asset_percent,
        "max_orders_per_asset": setup.max_orders_per_asset,
        "min_time_between_orders_sec": setup.min_time_between_orders_sec or 0,
        "status": SetupStatus.LOCKED.value,
        "is_locked": True,
        "locked_at": now or datetime.utcnow(),
        "warnings": list(result.warnings),
    }
    values.update(budgets.to_dict())
    return values
