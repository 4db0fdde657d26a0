"""
Trade Risk Guardian - Type Definitions.

============================================================
PURPOSE
============================================================
Type definitions shared by every Guardian component:

- Closed enums (lock modes, directions, statuses, ...)
- Setup inputs and derived dollar budgets
- Broker symbol specs, mappings and resolution results
- Trade validation input and verdict
- Behavioral pattern detection results
- The GuardianError exception hierarchy

============================================================
DESIGN PRINCIPLES
============================================================
1. Enums are closed and parsed once at the boundary
2. Results enumerate every problem individually
3. Pure data, no I/O

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Type, TypeVar


# ============================================================
# ENUMS
# ============================================================

class LockMode(str, Enum):
    """
    How strictly a Guardian verdict is enforced for an account.
    """

    HARD = "HARD"
    """Any violation blocks the trade."""

    MEDIUM = "MEDIUM"
    """Violations block; the UI treats the block as advisory-with-friction."""

    SOFT = "SOFT"
    """Violations become warnings. The trade may always proceed."""


class Direction(str, Enum):
    """Trade direction."""

    BUY = "BUY"
    SELL = "SELL"


class AssetCategory(str, Enum):
    """Instrument category."""

    FOREX = "FOREX"
    METALS = "METALS"
    INDICES = "INDICES"
    COMMODITIES = "COMMODITIES"
    CRYPTO = "CRYPTO"
    STOCKS = "STOCKS"
    OTHER = "OTHER"


class SetupStatus(str, Enum):
    """
    Challenge setup lifecycle.

    DRAFT -> LOCKED at creation. ENDED closes a challenge so that
    a new setup may be created.
    """

    DRAFT = "DRAFT"
    LOCKED = "LOCKED"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class OrderStatus(str, Enum):
    """
    Trade order lifecycle.

    PENDING -> APPROVED -> ACTIVE/EXECUTED -> CLOSED.
    FAILED and CANCELED are absorbing.
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    EXECUTED = "EXECUTED"
    CLOSED = "CLOSED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class MappingSource(str, Enum):
    """Where a symbol mapping came from."""

    MANUAL = "manual"
    """Curated by an operator. Usable for execution."""

    AUTO = "auto"
    """Proposed automatically. Unconfirmed."""


class TradeMode(str, Enum):
    """Broker-side trade permission for an instrument."""

    FULL = "FULL"
    LONG_ONLY = "LONG_ONLY"
    SHORT_ONLY = "SHORT_ONLY"
    CLOSE_ONLY = "CLOSE_ONLY"
    DISABLED = "DISABLED"


class SubscriptionPlan(str, Enum):
    """Account subscription plan."""

    FREE = "FREE"
    STARTER = "STARTER"
    PRO = "PRO"
    ELITE = "ELITE"


class ResolutionStatus(str, Enum):
    """Outcome of resolving a standard symbol."""

    RESOLVED = "RESOLVED"
    NOT_FOUND = "NOT_FOUND"


class LotStatus(str, Enum):
    """Outcome of lot normalization."""

    OK = "OK"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    SPEC_NOT_FOUND = "SPEC_NOT_FOUND"
    INVALID_SPEC = "INVALID_SPEC"


class ViolationCategory(str, Enum):
    """Which validator produced a violation."""

    RISK = "RISK"
    CHALLENGE_BUDGET = "CHALLENGE_BUDGET"
    CORRELATION = "CORRELATION"
    PROP_FIRM = "PROP_FIRM"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class VerdictSeverity(str, Enum):
    """Overall verdict severity."""

    OK = "OK"
    WARNING = "WARNING"
    BLOCKED = "BLOCKED"


class PatternType(str, Enum):
    """Behavioral trading patterns."""

    REVENGE_TRADING = "REVENGE_TRADING"
    OVERTRADING = "OVERTRADING"
    CONSECUTIVE_LOSSES = "CONSECUTIVE_LOSSES"
    HIGH_FREQUENCY = "HIGH_FREQUENCY"
    OFF_HOURS_TRADING = "OFF_HOURS_TRADING"


class PatternSeverity(IntEnum):
    """
    Pattern severity.

    Ordered: OK < WARNING < DANGER < CRITICAL.
    """

    OK = 0
    WARNING = 1
    DANGER = 2
    CRITICAL = 3


class HealthStatus(str, Enum):
    """Prop-firm challenge health."""

    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    DANGER = "DANGER"
    CRITICAL = "CRITICAL"


# ============================================================
# EXCEPTIONS
# ============================================================

class GuardianError(Exception):
    """Base exception for the Trade Risk Guardian."""
    pass


class ConfigurationError(GuardianError):
    """Invalid Guardian configuration."""
    pass


class InvalidEnumError(GuardianError, ValueError):
    """A value outside a closed enum reached the boundary."""

    def __init__(self, field_name: str, value: Any, allowed: List[str]):
        self.field_name = field_name
        self.value = value
        self.allowed = allowed
        super().__init__(
            f"Invalid {field_name}: {value!r}. Allowed: {', '.join(allowed)}"
        )


class SetupValidationError(GuardianError):
    """A challenge setup failed validation. Carries every error."""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors) or "Setup validation failed")


class SetupAlreadyExistsError(GuardianError):
    """An account already has a challenge setup that has not ended."""
    pass


class SetupLockedError(GuardianError):
    """Attempt to modify a locked or active challenge setup."""
    pass


class SymbolResolutionError(GuardianError):
    """Base class for symbol resolution failures."""
    pass


class SymbolNotFoundError(SymbolResolutionError):
    """No usable mapping for a standard symbol."""

    def __init__(self, standard_symbol: str, hint: str):
        self.standard_symbol = standard_symbol
        self.hint = hint
        super().__init__(f"Symbol {standard_symbol} not found. {hint}")


class AccountNotFoundError(GuardianError):
    """Trading account does not exist or was deleted."""
    pass


class OrderNotFoundError(GuardianError):
    """Trade order does not exist."""
    pass


class OrderStateError(GuardianError):
    """Order is in a state that does not allow the transition."""
    pass


class SetupNotFoundError(GuardianError):
    """Account has no challenge setup that has not ended."""
    pass


class AuthenticationError(GuardianError):
    """Missing or invalid agent credential."""
    pass


class AccessDeniedError(GuardianError):
    """Valid credential, but not for this account or order."""
    pass


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: Any, field_name: Optional[str] = None) -> E:
    """
    Parse a raw value into a closed enum member.

    Accepts a member, its value or its name (case-insensitive).

    Args:
        enum_cls: Target enum class
        value: Raw value
        field_name: Name used in the error message

    Returns:
        Enum member

    Raises:
        InvalidEnumError: If the value is not a member
    """
    if isinstance(value, enum_cls):
        return value

    allowed = [str(m.value) if not isinstance(m, IntEnum) else m.name for m in enum_cls]
    name = field_name or enum_cls.__name__

    if isinstance(value, str):
        raw = value.strip()
        for member in enum_cls:
            if isinstance(member.value, str) and member.value.lower() == raw.lower():
                return member
            if member.name.lower() == raw.lower():
                return member
    elif isinstance(value, int) and issubclass(enum_cls, IntEnum):
        try:
            return enum_cls(value)
        except ValueError:
            pass

    raise InvalidEnumError(name, value, allowed)


# ============================================================
# CHALLENGE SETUP
# ============================================================

@dataclass
class SetupInput:
    """
    Percentage rules a trader submits when creating a challenge setup.
    """

    account_size: float
    """Starting account size in account currency."""

    over_roll_max_percent: float
    """Maximum total drawdown over the challenge (%)."""

    daily_max_percent: float
    """Maximum loss per day (%)."""

    user_risk_per_trade_percent: float
    """Risk per single trade (%)."""

    user_risk_per_asset_percent: float
    """Maximum combined risk on one asset (%)."""

    max_orders_per_asset: int
    """Maximum simultaneous orders on one asset."""

    min_time_between_orders_sec: int = 0
    """Minimum seconds between two orders on the same asset."""


@dataclass
class SetupValidationResult:
    """Outcome of validating a setup."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return self.is_valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class DerivedBudgets:
    """Dollar budgets derived from the percentage rules. Rounded to cents."""

    daily_budget_dollars: float
    over_roll_budget_dollars: float
    max_trade_risk_dollars: float
    max_asset_allocation_dollars: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "daily_budget_dollars": self.daily_budget_dollars,
            "over_roll_budget_dollars": self.over_roll_budget_dollars,
            "max_trade_risk_dollars": self.max_trade_risk_dollars,
            "max_asset_allocation_dollars": self.max_asset_allocation_dollars,
        }


@dataclass
class MutabilityCheck:
    """Whether a setup may still be modified."""

    can_modify: bool
    reason: Optional[str] = None


@dataclass
class ChallengeBudget:
    """
    A locked setup's dollar budgets and running counters.

    This is what the trade validator sees of a ChallengeSetup.
    """

    daily_budget_dollars: float
    over_roll_budget_dollars: float
    max_trade_risk_dollars: float
    max_asset_allocation_dollars: float
    max_orders_per_asset: int
    min_time_between_orders_sec: int = 0

    current_daily_loss: float = 0.0
    """Loss realized today (positive or negative sign accepted)."""

    current_total_drawdown: float = 0.0
    """Drawdown since challenge start (positive or negative sign accepted)."""

    @property
    def remaining_daily_dollars(self) -> float:
        return self.daily_budget_dollars - abs(self.current_daily_loss)

    @property
    def remaining_over_roll_dollars(self) -> float:
        return self.over_roll_budget_dollars - abs(self.current_total_drawdown)


# ============================================================
# SYMBOLS
# ============================================================

@dataclass
class SymbolSpec:
    """Broker instrument specification, as synced from the terminal."""

    symbol: str
    digits: int = 5
    point: float = 0.00001
    contract_size: float = 100000.0
    min_lot: float = 0.01
    max_lot: float = 100.0
    lot_step: float = 0.01
    stop_level: int = 0
    """Minimum stop distance in points."""

    freeze_level: int = 0
    trade_mode: TradeMode = TradeMode.FULL
    tick_size: Optional[float] = None
    tick_value: Optional[float] = None
    description: Optional[str] = None
    category: Optional[AssetCategory] = None


@dataclass
class SymbolMappingRecord:
    """A standard symbol to broker symbol mapping for one account."""

    account_id: str
    standard_symbol: str
    broker_symbol: str
    confidence: float = 1.0
    source: MappingSource = MappingSource.MANUAL
    category: Optional[AssetCategory] = None


@dataclass
class SymbolResolution:
    """Result of resolving a standard symbol for an account."""

    status: ResolutionStatus
    standard_symbol: str
    broker_symbol: Optional[str] = None
    spec: Optional[SymbolSpec] = None
    source: Optional[MappingSource] = None
    confidence: float = 0.0
    hint: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED


@dataclass
class LotNormalization:
    """Result of normalizing a requested lot size."""

    status: LotStatus
    requested_lot: float
    normalized_lot: float = 0.0
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == LotStatus.OK

    @property
    def adjusted(self) -> bool:
        return self.ok and self.normalized_lot != self.requested_lot


@dataclass
class MappingSuggestion:
    """A fuzzy mapping candidate. Never applied automatically."""

    broker_symbol: str
    confidence: float
    reason: str


@dataclass
class OrderValidationResult:
    """Result of preparing an order for broker execution."""

    valid: bool
    broker_symbol: Optional[str] = None
    normalized_lot_size: Optional[float] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    resolution: Optional[SymbolResolution] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "broker_symbol": self.broker_symbol,
            "normalized_lot_size": self.normalized_lot_size,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


# ============================================================
# TRADE VALIDATION INPUT
# ============================================================

@dataclass
class TradeExposure:
    """
    One open (or reserved) position in the exposure set.
    """

    symbol: str
    direction: Direction
    risk_percent: float
    base_currency: str = ""
    quote_currency: str = ""

    def __post_init__(self):
        if not self.base_currency or not self.quote_currency:
            # Deferred import: validators import this module
            from .validators.correlation import parse_currency_pair
            base, quote = parse_currency_pair(self.symbol)
            self.base_currency = self.base_currency or base
            self.quote_currency = self.quote_currency or quote


@dataclass
class PropFirmRules:
    """Prop-firm limits and the account's progress against them."""

    provider: str
    phase: str
    max_daily_loss_percent: float
    max_total_loss_percent: float
    start_balance: float
    current_balance: float
    profit_target_percent: Optional[float] = None
    current_daily_loss: float = 0.0
    current_total_drawdown: float = 0.0
    current_profit: float = 0.0
    trading_days_completed: int = 0
    min_trading_days: Optional[int] = None
    max_lot_size: Optional[float] = None
    max_open_trades: Optional[int] = None


@dataclass
class TradeProposal:
    """A proposed trade, before any order exists."""

    symbol: str
    direction: Direction
    entry_price: float
    stop_loss: float
    risk_percent: float
    take_profit_1: Optional[float] = None
    take_profit_2: Optional[float] = None
    take_profit_3: Optional[float] = None
    lot_size: Optional[float] = None

    @property
    def take_profits(self) -> List[float]:
        return [
            tp for tp in (self.take_profit_1, self.take_profit_2, self.take_profit_3)
            if tp is not None
        ]


@dataclass
class TradeValidationInput:
    """
    Everything the Guardian needs to judge one trade.

    Gathered by the caller; the Guardian performs no I/O.
    """

    trade: TradeProposal
    account_balance: float
    account_currency: str = "USD"

    existing_trades: List[TradeExposure] = field(default_factory=list)
    """Open exposure set (open positions plus authorized-but-unfilled orders)."""

    max_currency_exposure: Optional[float] = None
    challenge_budget: Optional[ChallengeBudget] = None
    prop_firm_rules: Optional[PropFirmRules] = None

    last_order_time: Optional[datetime] = None
    """Time of the last order on this symbol."""

    symbol_spec: Optional[SymbolSpec] = None
    """Broker spec for the resolved symbol, when known."""

    now: Optional[datetime] = None


# ============================================================
# TRADE VALIDATION OUTPUT
# ============================================================

@dataclass
class RuleViolation:
    """A single violated rule."""

    category: ViolationCategory
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class ValidatorOutcome:
    """What one validator found."""

    validator_name: str
    violations: List[RuleViolation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    skipped: bool = False
    validation_time_ms: float = 0.0

    @property
    def passed(self) -> bool:
        return not self.violations


@dataclass
class RiskMetrics:
    """Numbers computed while validating a trade."""

    risk_amount: float
    risk_percent: float
    remaining_daily_budget: Optional[float] = None
    remaining_overall_budget: Optional[float] = None
    reward_risk_ratio: Optional[float] = None
    pip_distance: Optional[float] = None
    pip_value: Optional[float] = None
    suggested_lot_size: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_amount": self.risk_amount,
            "risk_percent": self.risk_percent,
            "remaining_daily_budget": self.remaining_daily_budget,
            "remaining_overall_budget": self.remaining_overall_budget,
            "reward_risk_ratio": self.reward_risk_ratio,
            "pip_distance": self.pip_distance,
            "pip_value": self.pip_value,
            "suggested_lot_size": self.suggested_lot_size,
        }


@dataclass
class TradeValidationResult:
    """
    The Guardian verdict for one proposed trade.
    """

    can_execute: bool
    severity: VerdictSeverity
    violations: List[RuleViolation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    risk_metrics: Optional[RiskMetrics] = None

    lock_mode: Optional[LockMode] = None
    """Policy applied to the raw verdict, if any."""

    policy_overridden: bool = False
    """True when SOFT mode let a violating trade through."""

    overridden_violations: List[RuleViolation] = field(default_factory=list)

    exposure: Optional[Dict[str, Any]] = None
    prop_firm: Optional[Dict[str, Any]] = None
    validator_outcomes: List[ValidatorOutcome] = field(default_factory=list)

    evaluation_id: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    evaluation_time_ms: float = 0.0

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @property
    def has_internal_error(self) -> bool:
        return any(
            v.category == ViolationCategory.INTERNAL_ERROR for v in self.violations
        )

    @property
    def violation_messages(self) -> List[str]:
        return [v.message for v in self.violations]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluation_id": self.evaluation_id,
            "can_execute": self.can_execute,
            "is_valid": self.is_valid,
            "severity": self.severity.value,
            "violations": [v.to_dict() for v in self.violations],
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
            "risk_metrics": self.risk_metrics.to_dict() if self.risk_metrics else None,
            "lock_mode": self.lock_mode.value if self.lock_mode else None,
            "policy_overridden": self.policy_overridden,
            "overridden_violations": [v.to_dict() for v in self.overridden_violations],
            "exposure": self.exposure,
            "prop_firm": self.prop_firm,
            "timestamp": self.timestamp.isoformat(),
            "evaluation_time_ms": self.evaluation_time_ms,
        }


# ============================================================
# BEHAVIORAL PATTERNS
# ============================================================

@dataclass
class TradeRecord:
    """A broker-reported position, as seen by the pattern detector."""

    symbol: str
    direction: Direction
    open_time: datetime
    close_time: Optional[datetime] = None
    profit: Optional[float] = None
    volume: float = 0.0

    @property
    def is_closed(self) -> bool:
        return self.close_time is not None

    @property
    def is_loss(self) -> bool:
        return self.profit is not None and self.profit < 0


@dataclass
class DetectedPattern:
    pattern_type: PatternType
    severity: PatternSeverity
    message: str
    cooldown_minutes: int = 0


@dataclass
class CooldownState:
    recommended: int = 0
    """Recommended cooldown in minutes."""

    active: bool = False
    remaining_minutes: int = 0


@dataclass
class PatternDetectionResult:
    """Outcome of scanning recent trade history."""

    detected: bool
    patterns: List[DetectedPattern] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    severity: PatternSeverity = PatternSeverity.OK
    cooldown: CooldownState = field(default_factory=CooldownState)
    statistics: Dict[str, int] = field(default_factory=dict)
    last_trade: Optional[TradeRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        last = None
        if self.last_trade is not None:
            last = {
                "symbol": self.last_trade.symbol,
                "direction": self.last_trade.direction.value,
                "profit": self.last_trade.profit,
                "close_time": (
                    self.last_trade.close_time.isoformat()
                    if self.last_trade.close_time else None
                ),
            }
        return {
            "detected": self.detected,
            "patterns": [p.pattern_type.value for p in self.patterns],
            "warnings": list(self.warnings),
            "severity": self.severity.name,
            "cooldown": {
                "recommended": self.cooldown.recommended,
                "active": self.cooldown.active,
                "remaining_minutes": self.cooldown.remaining_minutes,
            },
            "statistics": dict(self.statistics),
            "last_trade": last,
        }
