"""
Trade Risk Guardian - Main Engine.

============================================================
PURPOSE
============================================================
The TradeRiskGuardian combines per-trade risk, challenge
budgets, currency correlation and prop-firm limits into one
verdict, then applies the account's lock mode.

============================================================
CRITICAL BEHAVIOR
============================================================
1. EVERY RULE RUNS
   - All validators run on every trade
   - Every violation is reported individually

2. PURE
   - All data arrives in TradeValidationInput
   - No database, no network, no clock unless supplied

3. FAIL-SAFE DEFAULT
   - Any internal error = blocking violation
   - Internal errors block even under SOFT lock mode

============================================================
"""

import logging
import time
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from .config import GuardianConfig
from .lock_mode import apply_lock_mode
from .types import (
    RiskMetrics,
    RuleViolation,
    TradeValidationInput,
    TradeValidationResult,
    ValidatorOutcome,
    VerdictSeverity,
    ViolationCategory,
)
from .validators import (
    BaseValidator,
    ChallengeBudgetValidator,
    CorrelationValidator,
    PropFirmValidator,
    RiskValidator,
    effective_risk_for,
    effective_risk_percent_for,
)


logger = logging.getLogger(__name__)


class TradeRiskGuardian:
    """
    The trade decision engine.

    Usage:
        guardian = TradeRiskGuardian(config)
        result = guardian.validate_trade(validation_input, LockMode.MEDIUM)

        if result.can_execute:
            # Create the order
            pass
    """

    def __init__(
        self,
        config: Optional[GuardianConfig] = None,
    ):
        """
        Initialize the Guardian.

        Args:
            config: Guardian configuration (uses defaults if None)
        """
        self._config = config or GuardianConfig()
        self._config.validate()
        self._validators: List[BaseValidator] = []

        self._init_validators()

        logger.info("TradeRiskGuardian initialized")

    def _init_validators(self) -> None:
        """Initialize all validators. Order fixes the order of reported violations."""
        self._validators = [
            RiskValidator(self._config),
            ChallengeBudgetValidator(self._config),
            CorrelationValidator(self._config),
            PropFirmValidator(self._config),
        ]

    @property
    def config(self) -> GuardianConfig:
        """Get current configuration."""
        return self._config

    def validate_trade(
        self,
        validation_input: TradeValidationInput,
        lock_mode=None,
        account_id: Optional[str] = None,
    ) -> TradeValidationResult:
        """
        Validate a trade and apply the lock-mode policy.

        Args:
            validation_input: Trade, account and exposure data
            lock_mode: Account lock mode (config default if None)
            account_id: For logging

        Returns:
            TradeValidationResult
        """
        raw = self.evaluate(validation_input)
        mode = lock_mode or self._config.default_lock_mode
        result = apply_lock_mode(raw, mode, account_id=account_id)

        if not result.can_execute:
            logger.info(
                f"Trade blocked: {validation_input.trade.symbol} "
                f"{validation_input.trade.direction.value} "
                f"({len(result.violations)} violation(s), {result.evaluation_id})"
            )
        return result

    def evaluate(
        self,
        validation_input: TradeValidationInput,
    ) -> TradeValidationResult:
        """
        Produce the raw verdict, before any lock-mode policy.

        CRITICAL: This method NEVER throws exceptions.

        Args:
            validation_input: Trade, account and exposure data

        Returns:
            TradeValidationResult
        """
        start_time = time.perf_counter()
        evaluation_id = self._generate_evaluation_id()

        try:
            return self._evaluate_internal(validation_input, evaluation_id, start_time)

        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"TradeRiskGuardian internal error: {e}", exc_info=True)
            return self._create_internal_error_result(evaluation_id, e, elapsed_ms)

    def _evaluate_internal(
        self,
        validation_input: TradeValidationInput,
        evaluation_id: str,
        start_time: float,
    ) -> TradeValidationResult:
        outcomes: List[ValidatorOutcome] = [
            validator.validate(validation_input) for validator in self._validators
        ]

        violations: List[RuleViolation] = []
        warnings: List[str] = []
        recommendations: List[str] = []
        metrics: Dict[str, object] = {}

        for outcome in outcomes:
            violations.extend(outcome.violations)
            warnings.extend(outcome.warnings)
            for recommendation in outcome.recommendations:
                if recommendation not in recommendations:
                    recommendations.append(recommendation)
            metrics.update(outcome.metrics)

        if violations:
            severity = VerdictSeverity.BLOCKED
        elif warnings:
            severity = VerdictSeverity.WARNING
        else:
            severity = VerdictSeverity.OK

        risk_metrics = RiskMetrics(
            risk_amount=round(effective_risk_for(validation_input), 2),
            risk_percent=effective_risk_percent_for(validation_input),
            remaining_daily_budget=metrics.get("remaining_daily_budget"),
            remaining_overall_budget=metrics.get("remaining_overall_budget"),
            reward_risk_ratio=metrics.get("reward_risk_ratio"),
            pip_distance=metrics.get("pip_distance"),
            pip_value=metrics.get("pip_value"),
            suggested_lot_size=metrics.get("suggested_lot_size"),
        )

        return TradeValidationResult(
            can_execute=not violations,
            severity=severity,
            violations=violations,
            warnings=warnings,
            recommendations=recommendations,
            risk_metrics=risk_metrics,
            exposure=metrics.get("exposure"),
            prop_firm=metrics.get("prop_firm"),
            validator_outcomes=outcomes,
            evaluation_id=evaluation_id,
            timestamp=datetime.utcnow(),
            evaluation_time_ms=(time.perf_counter() - start_time) * 1000,
        )

    def _create_internal_error_result(
        self,
        evaluation_id: str,
        error: Exception,
        elapsed_ms: float,
    ) -> TradeValidationResult:
        """
        Blocking result for an internal error.

        This is the fail-safe path.
        """
        return TradeValidationResult(
            can_execute=False,
            severity=VerdictSeverity.BLOCKED,
            violations=[
                RuleViolation(
                    category=ViolationCategory.INTERNAL_ERROR,
                    code="IE_GUARDIAN_INTERNAL_ERROR",
                    message=(
                        f"Internal error in Trade Risk Guardian "
                        f"({error.__class__.__name__}); trade blocked"
                    ),
                )
            ],
            evaluation_id=evaluation_id,
            timestamp=datetime.utcnow(),
            evaluation_time_ms=elapsed_ms,
        )

    def _generate_evaluation_id(self) -> str:
        """Generate unique evaluation ID."""
        timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")
        return f"GUARDIAN-{timestamp}-{uuid4().hex[:8]}"

    def get_validator_info(self) -> List[dict]:
        """
        Get information about registered validators.
        """
        return [
            {
                "name": v.meta.name,
                "category": v.meta.category.value,
                "description": v.meta.description,
            }
            for v in self._validators
        ]

    def health_check(self) -> dict:
        """
        Perform health check on the Guardian.
        """
        return {
            "status": "OK",
            "timestamp": datetime.utcnow().isoformat(),
            "validator_count": len(self._validators),
            "validators": [v.meta.name for v in self._validators],
            "config": self._config.to_dict(),
        }


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def create_guardian(
    config: Optional[GuardianConfig] = None,
) -> TradeRiskGuardian:
    """
    Create a new TradeRiskGuardian instance.
    """
    return TradeRiskGuardian(config=config)


def is_trade_allowed(
    guardian: TradeRiskGuardian,
    validation_input: TradeValidationInput,
    lock_mode=None,
) -> bool:
    """
    Quick check if a trade may execute under the given lock mode.
    """
    return guardian.validate_trade(validation_input, lock_mode).can_execute


def format_validation_report(result: TradeValidationResult) -> str:
    """
    Plain-text report of a verdict, for logs and alerts.
    """
    lines = [
        "=== TRADE VALIDATION REPORT ===",
        f"Status: {result.severity.value}",
        f"Can Execute: {'YES' if result.can_execute else 'NO'}",
    ]
    if result.lock_mode is not None:
        lines.append(f"Lock Mode: {result.lock_mode.value}")

    if result.risk_metrics is not None:
        m = result.risk_metrics
        lines.append("")
        lines.append("--- Calculated Values ---")
        lines.append(f"Risk Amount: ${m.risk_amount:.2f} ({m.risk_percent}%)")
        if m.suggested_lot_size is not None:
            lines.append(f"Suggested Lot Size: {m.suggested_lot_size}")
        if m.pip_distance is not None:
            lines.append(f"Pip Distance: {m.pip_distance:.1f} pips")

    sections = (
        ("VIOLATIONS", [v.message for v in result.violations]),
        ("WARNINGS", result.warnings),
        ("RECOMMENDATIONS", result.recommendations),
    )
    for title, items in sections:
        if items:
            lines.append("")
            lines.append(f"--- {title} ---")
            lines.extend(f"- {item}" for item in items)

    return "\n".join(lines)
