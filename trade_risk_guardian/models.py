"""
Trade Risk Guardian - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy models for accounts, locked challenge setups,
broker symbol data, trade orders, broker-reported trades,
agent-reported violations and the Guardian decision log.

Enum columns store the enum's string value.

============================================================
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types import LockMode, MappingSource, OrderStatus, SetupStatus, TradeMode


def _new_id() -> str:
    return str(uuid4())


# ============================================================
# BASE CLASS
# ============================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ============================================================
# TRADING ACCOUNT
# ============================================================

class TradingAccount(Base):
    """
    A linked MT4/MT5 account.

    Balances are written by the external sync pipeline.
    Soft-deleted via deleted_at.
    """

    __tablename__ = "trading_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Broker identity
    login: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    broker: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    server: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Balances
    start_balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    equity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")

    lock_mode: Mapped[str] = mapped_column(
        String(16), nullable=False, default=LockMode.MEDIUM.value
    )
    """HARD, MEDIUM or SOFT."""

    subscription_plan: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    api_key: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True, unique=True, index=True
    )
    """Agent credential, sent as X-API-Key."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# ============================================================
# CHALLENGE SETUP
# ============================================================

class ChallengeSetup(Base):
    """
    Locked challenge configuration, one per account.

    Immutable once locked, except the running counters.
    """

    __tablename__ = "challenge_setups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trading_accounts.id"), nullable=False, index=True
    )

    # Labels
    provider: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    phase: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    preset_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Percentage rules
    account_size: Mapped[float] = mapped_column(Float, nullable=False)
    over_roll_max_percent: Mapped[float] = mapped_column(Float, nullable=False)
    daily_max_percent: Mapped[float] = mapped_column(Float, nullable=False)
    user_risk_per_trade_percent: Mapped[float] = mapped_column(Float, nullable=False)
    user_risk_per_asset_percent: Mapped[float] = mapped_column(Float, nullable=False)
    max_orders_per_asset: Mapped[int] = mapped_column(Integer, nullable=False)
    min_time_between_orders_sec: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Derived budgets
    daily_budget_dollars: Mapped[float] = mapped_column(Float, nullable=False)
    over_roll_budget_dollars: Mapped[float] = mapped_column(Float, nullable=False)
    max_trade_risk_dollars: Mapped[float] = mapped_column(Float, nullable=False)
    max_asset_allocation_dollars: Mapped[float] = mapped_column(Float, nullable=False)

    # Optional prop-firm limits
    profit_target_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    min_trading_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_lot_size: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_open_trades: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_currency_exposure: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SetupStatus.DRAFT.value, index=True
    )
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Running counters (written by execution feedback)
    current_daily_loss: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_total_drawdown: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    trading_days_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    warnings: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    """Setup warnings accepted at creation."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


# ============================================================
# SYMBOLS
# ============================================================

class BrokerSymbolSpec(Base):
    """
    Broker instrument spec, overwritten by symbol sync.
    """

    __tablename__ = "broker_symbol_specs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trading_accounts.id"), nullable=False
    )
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    digits: Mapped[int] = mapped_column(Integer, nullable=False)
    point: Mapped[float] = mapped_column(Float, nullable=False)
    tick_size: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tick_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    contract_size: Mapped[float] = mapped_column(Float, nullable=False)

    min_lot: Mapped[float] = mapped_column(Float, nullable=False)
    max_lot: Mapped[float] = mapped_column(Float, nullable=False)
    lot_step: Mapped[float] = mapped_column(Float, nullable=False)

    stop_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    freeze_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trade_mode: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TradeMode.FULL.value
    )

    spread: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    leverage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    margin_initial: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    margin_maintenance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("account_id", "symbol", name="uq_symbol_spec_account_symbol"),
    )


class SymbolMapping(Base):
    """
    Standard symbol -> broker symbol for one account.
    """

    __tablename__ = "symbol_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trading_accounts.id"), nullable=False
    )
    standard_symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    broker_symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    source: Mapped[str] = mapped_column(
        String(16), nullable=False, default=MappingSource.MANUAL.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "account_id", "standard_symbol", name="uq_symbol_mapping_account_standard"
        ),
    )


# ============================================================
# ORDERS AND TRADES
# ============================================================

class TradeOrder(Base):
    """
    An order authorized by the Guardian, picked up by the agent.
    """

    __tablename__ = "trade_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trading_accounts.id"), nullable=False, index=True
    )

    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    """Broker symbol."""

    standard_symbol: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    order_type: Mapped[str] = mapped_column(String(16), nullable=False)
    lot_size: Mapped[float] = mapped_column(Float, nullable=False)

    entry_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    stop_loss: Mapped[float] = mapped_column(Float, nullable=False)
    take_profit_1: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    take_profit_2: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    take_profit_3: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    risk_percent: Mapped[float] = mapped_column(Float, nullable=False)
    risk_amount: Mapped[float] = mapped_column(Float, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OrderStatus.PENDING.value, index=True
    )
    evaluation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    policy_overridden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Agent fields
    ticket: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    mt5_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    execution_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    close_reason: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    close_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    final_pnl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_trade_orders_account_status", "account_id", "status"),
    )


class Trade(Base):
    """
    A broker-reported position.
    """

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trading_accounts.id"), nullable=False, index=True
    )
    ticket: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    volume: Mapped[float] = mapped_column(Float, nullable=False)
    open_price: Mapped[float] = mapped_column(Float, nullable=False)
    stop_loss: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    take_profit: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    open_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    close_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    close_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    profit: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_trades_account_open_time", "account_id", "open_time"),
        Index("ix_trades_account_close_time", "account_id", "close_time"),
    )


# ============================================================
# AUDIT
# ============================================================

class ViolationLog(Base):
    """
    A violation reported by the execution agent.
    """

    __tablename__ = "violation_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trading_accounts.id"), nullable=False, index=True
    )
    order_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    violation_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_taken: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="WARNING")
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class GuardianDecisionLog(Base):
    """
    Record of every order authorization verdict.
    """

    __tablename__ = "guardian_decision_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    evaluation_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    risk_percent: Mapped[float] = mapped_column(Float, nullable=False)

    can_execute: Mapped[bool] = mapped_column(Boolean, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    lock_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    policy_overridden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    violations: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    warnings: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_guardian_decision_account_timestamp", "account_id", "timestamp"),
    )
