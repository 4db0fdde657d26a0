"""
Pydantic schemas for the Guardian API.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =======================
# COMMON
# =======================

class BaseResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class AgentRequest(BaseModel):
    """Agent payloads arrive in camelCase; snake_case is accepted too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _ticket_to_str(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    return value


# =======================
# 1. ACCOUNTS
# =======================

class AccountCreate(BaseModel):
    user_id: str
    login: str
    start_balance: float = Field(gt=0)
    broker: Optional[str] = None
    server: Optional[str] = None
    currency: str = "USD"
    lock_mode: Optional[str] = None


class AccountRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    login: str
    broker: Optional[str] = None
    server: Optional[str] = None
    start_balance: float
    current_balance: float
    equity: float
    currency: str
    lock_mode: str
    created_at: datetime


class AccountResponse(BaseResponse):
    data: AccountRecord
    api_key: Optional[str] = None
    """Only returned when a key is issued."""


class LockModeUpdate(BaseModel):
    lock_mode: str


# =======================
# 2. CHALLENGE SETUP
# =======================

class ChallengeSetupCreate(BaseModel):
    account_id: str
    account_size: float
    over_roll_max_percent: float
    daily_max_percent: float
    user_risk_per_trade_percent: float
    user_risk_per_asset_percent: float
    max_orders_per_asset: int
    min_time_between_orders_sec: int = 0

    provider: Optional[str] = None
    phase: Optional[str] = None
    preset_id: Optional[str] = None

    profit_target_percent: Optional[float] = None
    min_trading_days: Optional[int] = None
    max_lot_size: Optional[float] = None
    max_open_trades: Optional[int] = None
    max_currency_exposure: Optional[float] = None


class ChallengeSetupRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    provider: Optional[str] = None
    phase: Optional[str] = None
    preset_id: Optional[str] = None

    account_size: float
    over_roll_max_percent: float
    daily_max_percent: float
    user_risk_per_trade_percent: float
    user_risk_per_asset_percent: float
    max_orders_per_asset: int
    min_time_between_orders_sec: int

    daily_budget_dollars: float
    over_roll_budget_dollars: float
    max_trade_risk_dollars: float
    max_asset_allocation_dollars: float

    profit_target_percent: Optional[float] = None
    min_trading_days: Optional[int] = None
    max_lot_size: Optional[float] = None
    max_open_trades: Optional[int] = None
    max_currency_exposure: Optional[float] = None

    status: str
    is_locked: bool
    locked_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    current_daily_loss: float
    current_total_drawdown: float
    current_profit: float
    trading_days_completed: int

    warnings: Optional[List[str]] = None


class ChallengeSetupResponse(BaseResponse):
    data: ChallengeSetupRecord
    estimated_tradeable_days: Optional[int] = None


class ChallengeEndRequest(BaseModel):
    account_id: str


class PresetListResponse(BaseResponse):
    data: List[Dict[str, Any]]


# =======================
# 3. TRADES
# =======================

class TradeProposalRequest(BaseModel):
    account_id: str
    symbol: str
    direction: str
    entry_price: float
    stop_loss: float
    risk_percent: float
    take_profit_1: Optional[float] = None
    take_profit_2: Optional[float] = None
    take_profit_3: Optional[float] = None
    lot_size: Optional[float] = None
    current_price: Optional[float] = None


class ValidationResponse(BaseResponse):
    data: Dict[str, Any]
    """TradeValidationResult.to_dict()."""


class OrderRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    symbol: str
    standard_symbol: str
    direction: str
    order_type: str
    lot_size: float
    entry_price: Optional[float] = None
    stop_loss: float
    take_profit_1: Optional[float] = None
    take_profit_2: Optional[float] = None
    take_profit_3: Optional[float] = None
    risk_percent: float
    risk_amount: float
    status: str
    evaluation_id: Optional[str] = None
    policy_overridden: bool
    ticket: Optional[str] = None
    mt5_status: Optional[str] = None
    execution_price: Optional[float] = None
    executed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    close_reason: Optional[str] = None
    close_price: Optional[float] = None
    final_pnl: Optional[float] = None
    closed_at: Optional[datetime] = None
    created_at: datetime


class AuthorizationResponse(BaseResponse):
    authorized: bool
    order: Optional[OrderRecord] = None
    verdict: Optional[Dict[str, Any]] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class OrderListResponse(BaseResponse):
    data: List[OrderRecord]


class PatternRequest(BaseModel):
    account_id: str
    now: Optional[datetime] = None


class PatternResponse(BaseResponse):
    data: Dict[str, Any]


# =======================
# 4. SYMBOLS
# =======================

class MappingCreate(BaseModel):
    account_id: str
    standard_symbol: str
    broker_symbol: str
    category: Optional[str] = None


class MappingRecord(BaseModel):
    account_id: str
    standard_symbol: str
    broker_symbol: str
    confidence: float
    source: str
    category: Optional[str] = None


class MappingResponse(BaseResponse):
    data: MappingRecord


class MappingListResponse(BaseResponse):
    data: List[MappingRecord]


class SuggestionRecord(BaseModel):
    broker_symbol: str
    confidence: float
    reason: str


class SuggestionResponse(BaseResponse):
    symbol: str
    data: List[SuggestionRecord]


# =======================
# 5. EXECUTION AGENT
# =======================

class OrderExecutedRequest(AgentRequest):
    order_id: str
    ticket: str = Field(alias="mt5Ticket")
    execution_price: Optional[float] = None
    execution_time: Optional[datetime] = None

    @field_validator("ticket", mode="before")
    @classmethod
    def coerce_ticket(cls, value):
        return _ticket_to_str(value)


class ExecutionFeedbackRequest(AgentRequest):
    order_id: str
    status: str
    ticket: Optional[str] = Field(default=None, alias="mt5Ticket")
    execution_price: Optional[float] = None
    executed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @field_validator("ticket", mode="before")
    @classmethod
    def coerce_ticket(cls, value):
        return _ticket_to_str(value)


class OrderClosedRequest(AgentRequest):
    ticket: str = Field(alias="mt5Ticket")
    close_reason: str
    close_price: Optional[float] = None
    final_pnl: Optional[float] = Field(default=None, alias="finalPnL")
    close_time: Optional[datetime] = None

    @field_validator("ticket", mode="before")
    @classmethod
    def coerce_ticket(cls, value):
        return _ticket_to_str(value)


class ViolationLogRequest(AgentRequest):
    account_login: str
    violation_type: str
    description: Optional[str] = None
    severity: str = "WARNING"
    ticket: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("ticket", "account_login", mode="before")
    @classmethod
    def coerce_identifiers(cls, value):
        return _ticket_to_str(value)


class SymbolSyncRequest(AgentRequest):
    account_login: str
    symbols: List[Dict[str, Any]]

    @field_validator("account_login", mode="before")
    @classmethod
    def coerce_login(cls, value):
        return _ticket_to_str(value)


class AgentOrderResponse(BaseResponse):
    order_id: str
    status: str
    ticket: Optional[str] = None


class PendingOrdersResponse(BaseResponse):
    orders_count: int
    orders: List[Dict[str, Any]]
    account: Dict[str, Any]


class ViolationLogResponse(BaseResponse):
    violation_id: int
    action_taken: str
    severity: str


class SymbolSyncResponse(BaseResponse):
    total: int
    valid: int
    created: int
    updated: int
    skipped: int
    skipped_symbols: List[str]
