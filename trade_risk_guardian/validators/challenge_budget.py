"""
Trade Risk Guardian - Challenge Budget Validator.

Checks a trade against the locked challenge setup: remaining
daily and over-roll budgets, per-asset allocation, orders per
asset and the minimum time between orders.
"""

import logging
from datetime import datetime

from ..resolver import normalize_symbol
from ..types import TradeValidationInput, ValidatorOutcome, ViolationCategory
from .base import BaseValidator, ValidatorMeta, exceeds
from .risk import effective_risk_for


logger = logging.getLogger(__name__)


class ChallengeBudgetValidator(BaseValidator):
    """
    Validates a trade against the locked setup's dollar budgets.
    """

    @property
    def meta(self) -> ValidatorMeta:
        return ValidatorMeta(
            name="ChallengeBudgetValidator",
            category=ViolationCategory.CHALLENGE_BUDGET,
            description="Daily, over-roll and per-asset budgets; order count and spacing",
        )

    def applies(self, validation_input: TradeValidationInput) -> bool:
        return validation_input.challenge_budget is not None

    def _validate(self, validation_input: TradeValidationInput) -> ValidatorOutcome:
        budget = validation_input.challenge_budget
        trade = validation_input.trade
        outcome = ValidatorOutcome(validator_name=self.meta.name)

        risk_amount = effective_risk_for(validation_input)
        remaining_daily = budget.remaining_daily_dollars
        remaining_over_roll = budget.remaining_over_roll_dollars

        outcome.metrics["remaining_daily_budget"] = round(remaining_daily, 2)
        outcome.metrics["remaining_overall_budget"] = round(remaining_over_roll, 2)

        # Daily budget
        if exceeds(risk_amount, remaining_daily):
            outcome.violations.append(self._violation(
                "CB_DAILY_BUDGET_EXCEEDED",
                f"Trade risk ${risk_amount:.2f} exceeds the remaining daily budget "
                f"${max(remaining_daily, 0):.2f} (daily budget "
                f"${budget.daily_budget_dollars:.2f})",
            ))
        elif remaining_daily - risk_amount < budget.max_trade_risk_dollars:
            outcome.warnings.append(
                f"After this trade ${remaining_daily - risk_amount:.2f} of the daily budget "
                f"remains, less than one full-size trade"
            )

        # Over-roll budget
        if exceeds(risk_amount, remaining_over_roll):
            outcome.violations.append(self._violation(
                "CB_OVER_ROLL_BUDGET_EXCEEDED",
                f"Trade risk ${risk_amount:.2f} exceeds the remaining over-roll budget "
                f"${max(remaining_over_roll, 0):.2f} (over-roll budget "
                f"${budget.over_roll_budget_dollars:.2f})",
            ))

        # Per asset
        symbol = normalize_symbol(trade.symbol)
        on_symbol = [
            e for e in validation_input.existing_trades
            if normalize_symbol(e.symbol) == symbol
        ]
        existing_asset_risk = (
            sum(e.risk_percent for e in on_symbol)
            * validation_input.account_balance / 100
        )
        asset_total = existing_asset_risk + risk_amount
        if exceeds(asset_total, budget.max_asset_allocation_dollars):
            outcome.violations.append(self._violation(
                "CB_ASSET_ALLOCATION_EXCEEDED",
                f"Risk on {symbol} would be ${asset_total:.2f}, above the max asset "
                f"allocation ${budget.max_asset_allocation_dollars:.2f}",
            ))

        if len(on_symbol) >= budget.max_orders_per_asset:
            outcome.violations.append(self._violation(
                "CB_MAX_ORDERS_PER_ASSET",
                f"{len(on_symbol)} order(s) already open on {symbol}; the setup allows "
                f"{budget.max_orders_per_asset} per asset",
            ))

        # Spacing
        last = validation_input.last_order_time
        if last is not None and budget.min_time_between_orders_sec > 0:
            now = validation_input.now or datetime.utcnow()
            elapsed = (now - last).total_seconds()
            if elapsed < budget.min_time_between_orders_sec:
                wait = int(budget.min_time_between_orders_sec - elapsed) + 1
                outcome.violations.append(self._violation(
                    "CB_ORDER_COOLDOWN",
                    f"Last order on {symbol} was {int(elapsed)}s ago; the setup requires "
                    f"{budget.min_time_between_orders_sec}s between orders "
                    f"(wait {wait}s)",
                ))

        return outcome
