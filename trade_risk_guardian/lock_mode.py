"""
Trade Risk Guardian - Lock-Mode Policy.

============================================================
PURPOSE
============================================================
Decides how strictly a raw verdict is enforced for an account.

    HARD    Verdict stands. Any violation blocks.
    MEDIUM  Verdict stands. The UI presents the block as
            advisory-with-friction.
    SOFT    Rule violations become warnings; the trade may
            proceed. The override is flagged and logged.

Internal errors block under every mode.

============================================================
"""

import logging
from dataclasses import replace
from typing import Optional

from .types import (
    LockMode,
    TradeValidationResult,
    VerdictSeverity,
    ViolationCategory,
    parse_enum,
)


logger = logging.getLogger(__name__)


LOCK_MODE_DESCRIPTIONS = {
    LockMode.HARD: "Violations block the trade. No override.",
    LockMode.MEDIUM: "Violations block the trade. Review the warnings and adjust the order.",
    LockMode.SOFT: "Violations are reported as warnings. The trade is allowed.",
}


def describe_lock_mode(lock_mode) -> str:
    """Human-readable description for UI messaging."""
    return LOCK_MODE_DESCRIPTIONS[parse_enum(LockMode, lock_mode, "lock_mode")]


def apply_lock_mode(
    result: TradeValidationResult,
    lock_mode,
    account_id: Optional[str] = None,
) -> TradeValidationResult:
    """
    Apply an account's lock mode to a raw verdict.

    Args:
        result: Raw verdict from the Guardian
        lock_mode: LockMode (or its string value)
        account_id: For logging

    Returns:
        A new TradeValidationResult; the input is not modified
    """
    mode = parse_enum(LockMode, lock_mode, "lock_mode")

    if mode != LockMode.SOFT:
        return replace(result, lock_mode=mode, can_execute=not result.violations)

    internal = [
        v for v in result.violations if v.category == ViolationCategory.INTERNAL_ERROR
    ]
    overridable = [
        v for v in result.violations if v.category != ViolationCategory.INTERNAL_ERROR
    ]

    if not overridable:
        return replace(result, lock_mode=mode, can_execute=not internal)

    logger.warning(
        f"SOFT lock mode override on account {account_id or 'unknown'}: "
        f"{len(overridable)} violation(s) allowed through "
        f"({', '.join(v.code for v in overridable)})"
    )

    warnings = list(result.warnings) + [
        f"Overridden by SOFT mode: {v.message}" for v in overridable
    ]

    return replace(
        result,
        lock_mode=mode,
        can_execute=not internal,
        severity=VerdictSeverity.BLOCKED if internal else VerdictSeverity.WARNING,
        violations=internal,
        warnings=warnings,
        overridden_violations=overridable,
        policy_overridden=True,
    )


def warn_if_soft_with_active_setup(
    lock_mode,
    has_active_setup: bool,
    account_id: Optional[str] = None,
) -> bool:
    """
    Log a warning when a SOFT account runs a locked challenge.

    Returns:
        True if the warning was emitted
    """
    mode = parse_enum(LockMode, lock_mode, "lock_mode")
    if mode == LockMode.SOFT and has_active_setup:
        logger.warning(
            f"Account {account_id or 'unknown'} uses SOFT lock mode with an active "
            f"challenge setup; budget violations will not block trades"
        )
        return True
    return False
