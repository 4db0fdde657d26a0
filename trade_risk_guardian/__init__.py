"""
Trade Risk Guardian.

============================================================
PRE-TRADE RISK GATE
============================================================

Sits between a trader's proposed trade and the execution
agent that places it on an MT4/MT5 terminal.

============================================================
DECISION FLOW
============================================================

Proposed trade → Symbol Resolver → TRADE RISK GUARDIAN → Lock-Mode Policy → TradeOrder
                                          ↑
                                Locked ChallengeSetup
                                Open exposure set

The Behavioral Pattern Detector runs alongside and proposes
cooldowns before new entries.

============================================================
FAIL-SAFE BEHAVIOR
============================================================

- Any validator error → blocking internal-error violation
- Internal errors block under every lock mode
- Unmapped or spec-less symbols never produce orders

============================================================
USAGE
============================================================

```python
from trade_risk_guardian import TradeRiskGuardian, TradeValidationInput
from trade_risk_guardian import TradeProposal, Direction, LockMode

guardian = TradeRiskGuardian()

result = guardian.validate_trade(
    TradeValidationInput(
        trade=TradeProposal(
            symbol="EURUSD",
            direction=Direction.BUY,
            entry_price=1.1000,
            stop_loss=1.0950,
            risk_percent=1.0,
        ),
        account_balance=10000.0,
    ),
    LockMode.MEDIUM,
)

if result.can_execute:
    ...
else:
    for violation in result.violations:
        print(violation.message)
```

============================================================
"""

from .types import (
    # Enums
    LockMode,
    Direction,
    AssetCategory,
    SetupStatus,
    OrderStatus,
    MappingSource,
    TradeMode,
    SubscriptionPlan,
    ResolutionStatus,
    LotStatus,
    ViolationCategory,
    VerdictSeverity,
    PatternType,
    PatternSeverity,
    HealthStatus,
    parse_enum,

    # Setup
    SetupInput,
    SetupValidationResult,
    DerivedBudgets,
    MutabilityCheck,
    ChallengeBudget,

    # Symbols
    SymbolSpec,
    SymbolMappingRecord,
    SymbolResolution,
    LotNormalization,
    MappingSuggestion,
    OrderValidationResult,

    # Trade validation
    TradeExposure,
    PropFirmRules,
    TradeProposal,
    TradeValidationInput,
    RuleViolation,
    ValidatorOutcome,
    RiskMetrics,
    TradeValidationResult,

    # Patterns
    TradeRecord,
    DetectedPattern,
    CooldownState,
    PatternDetectionResult,

    # Exceptions
    GuardianError,
    ConfigurationError,
    InvalidEnumError,
    SetupValidationError,
    SetupAlreadyExistsError,
    SetupLockedError,
    SetupNotFoundError,
    SymbolResolutionError,
    SymbolNotFoundError,
    AccountNotFoundError,
    OrderNotFoundError,
    OrderStateError,
    AuthenticationError,
    AccessDeniedError,
)

from .config import (
    GuardianConfig,
    ResolverConfig,
    SetupRulesConfig,
    RiskConfig,
    CorrelationConfig,
    PropFirmConfig,
    PatternConfig,
    GuardianAlertingConfig,
    get_default_config,
    get_strict_config,
    load_config_from_dict,
    load_config_from_env,
)

from .resolver import (
    SymbolResolver,
    SymbolStore,
    InMemorySymbolStore,
    normalize_lot_size,
    normalize_symbol,
)

from .budget import (
    calculate_derived_values,
    estimate_tradeable_days,
    validate_setup,
    validate_setup_mutability,
    build_locked_setup,
)

from .presets import (
    ChallengePreset,
    CHALLENGE_PRESETS,
    get_challenge_preset,
    get_all_challenge_presets,
    get_presets_by_provider,
)

from .engine import (
    TradeRiskGuardian,
    create_guardian,
    is_trade_allowed,
    format_validation_report,
)

from .lock_mode import (
    apply_lock_mode,
    describe_lock_mode,
)

from .patterns import PatternDetector

from .alerting import (
    GuardianAlerter,
    GuardianAlertFormatter,
    AlertRateLimiter,
    TelegramAlertSender,
)


__all__ = [
    # Enums
    "LockMode",
    "Direction",
    "AssetCategory",
    "SetupStatus",
    "OrderStatus",
    "MappingSource",
    "TradeMode",
    "SubscriptionPlan",
    "ResolutionStatus",
    "LotStatus",
    "ViolationCategory",
    "VerdictSeverity",
    "PatternType",
    "PatternSeverity",
    "HealthStatus",
    "parse_enum",

    # Setup
    "SetupInput",
    "SetupValidationResult",
    "DerivedBudgets",
    "MutabilityCheck",
    "ChallengeBudget",

    # Symbols
    "SymbolSpec",
    "SymbolMappingRecord",
    "SymbolResolution",
    "LotNormalization",
    "MappingSuggestion",
    "OrderValidationResult",

    # Trade validation
    "TradeExposure",
    "PropFirmRules",
    "TradeProposal",
    "TradeValidationInput",
    "RuleViolation",
    "ValidatorOutcome",
    "RiskMetrics",
    "TradeValidationResult",

    # Patterns
    "TradeRecord",
    "DetectedPattern",
    "CooldownState",
    "PatternDetectionResult",

    # Exceptions
    "GuardianError",
    "ConfigurationError",
    "InvalidEnumError",
    "SetupValidationError",
    "SetupAlreadyExistsError",
    "SetupLockedError",
    "SetupNotFoundError",
    "SymbolResolutionError",
    "SymbolNotFoundError",
    "AccountNotFoundError",
    "OrderNotFoundError",
    "OrderStateError",
    "AuthenticationError",
    "AccessDeniedError",

    # Config
    "GuardianConfig",
    "ResolverConfig",
    "SetupRulesConfig",
    "RiskConfig",
    "CorrelationConfig",
    "PropFirmConfig",
    "PatternConfig",
    "GuardianAlertingConfig",
    "get_default_config",
    "get_strict_config",
    "load_config_from_dict",
    "load_config_from_env",

    # Resolver
    "SymbolResolver",
    "SymbolStore",
    "InMemorySymbolStore",
    "normalize_lot_size",
    "normalize_symbol",

    # Budget
    "calculate_derived_values",
    "estimate_tradeable_days",
    "validate_setup",
    "validate_setup_mutability",
    "build_locked_setup",

    # Presets
    "ChallengePreset",
    "CHALLENGE_PRESETS",
    "get_challenge_preset",
    "get_all_challenge_presets",
    "get_presets_by_provider",

    # Engine
    "TradeRiskGuardian",
    "create_guardian",
    "is_trade_allowed",
    "format_validation_report",

    # Lock mode
    "apply_lock_mode",
    "describe_lock_mode",

    # Patterns
    "PatternDetector",

    # Alerting
    "GuardianAlerter",
    "GuardianAlertFormatter",
    "AlertRateLimiter",
    "TelegramAlertSender",
]

__version__ = "1.0.0"
