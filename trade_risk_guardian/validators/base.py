"""
Trade Risk Guardian - Base Validator.

============================================================
PURPOSE
============================================================
Abstract base class for all trade validators.

Each validator is responsible for one family of rules.
Validators are:
- Stateless (no side effects, no I/O)
- Deterministic (same input = same output)
- Exhaustive (every broken rule is reported individually)
- Fail-safe (an exception becomes a blocking violation)

============================================================
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..config import GuardianConfig
from ..types import (
    RuleViolation,
    TradeValidationInput,
    ValidatorOutcome,
    ViolationCategory,
)


logger = logging.getLogger(__name__)


# Guards against float noise when comparing dollar amounts
DOLLAR_EPSILON = 0.005


# ============================================================
# VALIDATOR INTERFACE
# ============================================================

@dataclass
class ValidatorMeta:
    """
    Metadata about a validator.
    """
    name: str
    """Validator name."""

    category: ViolationCategory
    """Category of the violations this validator produces."""

    description: str
    """What this validator checks."""


class BaseValidator(ABC):
    """
    Abstract base class for trade validators.

    Each validator:
    1. Receives TradeValidationInput
    2. Checks its rule family, if it applies
    3. Returns ValidatorOutcome
    """

    def __init__(self, config: GuardianConfig):
        self._config = config

    @property
    @abstractmethod
    def meta(self) -> ValidatorMeta:
        """Get validator metadata."""
        pass

    def applies(self, validation_input: TradeValidationInput) -> bool:
        """Whether this validator has anything to check for the input."""
        return True

    @abstractmethod
    def _validate(self, validation_input: TradeValidationInput) -> ValidatorOutcome:
        """
        Internal validation logic.

        Subclasses implement this method.
        """
        pass

    def validate(self, validation_input: TradeValidationInput) -> ValidatorOutcome:
        """
        Run the validator.

        Wraps _validate with timing and exception handling.

        Returns:
            ValidatorOutcome (always returns, never throws)
        """
        start_time = time.perf_counter()

        if not self.applies(validation_input):
            return ValidatorOutcome(validator_name=self.meta.name, skipped=True)

        try:
            outcome = self._validate(validation_input)
            outcome.validator_name = self.meta.name
            outcome.validation_time_ms = (time.perf_counter() - start_time) * 1000
            return outcome

        except Exception as e:
            # Any unexpected exception = blocking violation
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Validator {self.meta.name} raised {e.__class__.__name__}: {e}",
                exc_info=True,
            )
            return ValidatorOutcome(
                validator_name=self.meta.name,
                violations=[
                    RuleViolation(
                        category=ViolationCategory.INTERNAL_ERROR,
                        code="IE_VALIDATOR_EXCEPTION",
                        message=(
                            f"Internal error in {self.meta.name} validator "
                            f"({e.__class__.__name__}); trade blocked"
                        ),
                    )
                ],
                validation_time_ms=elapsed_ms,
            )

    def _violation(self, code: str, message: str) -> RuleViolation:
        return RuleViolation(category=self.meta.category, code=code, message=message)


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def risk_amount_for(validation_input: TradeValidationInput) -> float:
    """Dollar risk of the candidate: risk percent of the account balance."""
    return validation_input.account_balance * validation_input.trade.risk_percent / 100


def exceeds(amount: float, limit: Optional[float]) -> bool:
    """True if a dollar amount is above a limit, beyond float noise."""
    if limit is None:
        return False
    return amount > limit + DOLLAR_EPSILON
