"""
Trade Risk Guardian - Order Authorization Service.

============================================================
PURPOSE
============================================================
Composes the Guardian components over the database:

    resolve symbol -> normalize lot -> validate trade
        -> lock-mode policy -> create TradeOrder

plus challenge setup lifecycle, behavioral pattern checks
and the execution-agent feedback loop.

============================================================
CONCURRENCY
============================================================
authorize_order holds a per-account lock from the exposure
snapshot until the order row is committed. The snapshot
includes every live order (PENDING through EXECUTED), so a
second authorization on the same account sees the risk held
by the first, before and after the agent fills it.

============================================================
"""

import logging
import re
import secrets
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .alerting import GuardianAlerter
from .budget import build_locked_setup, validate_setup_mutability
from .config import GuardianConfig
from .engine import TradeRiskGuardian
from .lock_mode import warn_if_soft_with_active_setup
from .models import ChallengeSetup, TradeOrder, TradingAccount
from .patterns import PatternDetector
from .presets import PROP_FIRM_LIMITS, get_challenge_preset
from .repository import GuardianRepository
from .resolver import SymbolResolver, normalize_symbol
from .types import (
    AccessDeniedError,
    AccountNotFoundError,
    AssetCategory,
    AuthenticationError,
    ChallengeBudget,
    Direction,
    InvalidEnumError,
    LockMode,
    MappingSource,
    MappingSuggestion,
    OrderNotFoundError,
    OrderStateError,
    OrderStatus,
    OrderValidationResult,
    PatternDetectionResult,
    PropFirmRules,
    SetupAlreadyExistsError,
    SetupInput,
    SetupLockedError,
    SetupNotFoundError,
    SymbolMappingRecord,
    SymbolNotFoundError,
    SymbolSpec,
    TradeExposure,
    TradeMode,
    TradeProposal,
    TradeRecord,
    TradeValidationInput,
    TradeValidationResult,
    parse_enum,
)
from .validators.risk import (
    calculate_lot_size,
    calculate_pip_distance,
    effective_risk_for,
    effective_risk_percent_for,
    get_pip_info,
)


logger = logging.getLogger(__name__)


# ============================================================
# PER-ACCOUNT LOCKS
# ============================================================

class AccountLockRegistry:
    """
    One threading.Lock per account id.

    Serializes check-then-act sequences for a single account
    inside one process.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, account_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        lock = self.lock_for(account_id)
        with lock:
            yield


DEFAULT_LOCK_REGISTRY = AccountLockRegistry()


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass
class AuthorizationResult:
    """Outcome of authorize_order."""

    authorized: bool
    order: Optional[TradeOrder] = None
    verdict: Optional[TradeValidationResult] = None
    order_validation: Optional[OrderValidationResult] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def violation_messages(self) -> List[str]:
        messages = list(self.errors)
        if self.verdict is not None:
            messages.extend(self.verdict.violation_messages)
        return messages


@dataclass
class SymbolSyncStats:
    """Outcome of a broker symbol sync."""

    total: int
    valid: int
    created: int
    updated: int
    skipped_symbols: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.total - self.valid


# ============================================================
# AGENT PROTOCOL TABLES
# ============================================================

VIOLATION_ACTIONS = {
    "MANUAL_SLTP_MODIFICATION_ATTEMPT": "BLOCKED_AND_RESTORED",
    "FOMO_ORDER_ATTEMPT": "BLOCKED",
    "DRAWDOWN_LIMIT_CRITICAL": "BLOCK_NEW_ORDERS",
}
"""Action the agent takes for each violation type. Anything else is LOGGED."""

VIOLATION_SEVERITIES = ("INFO", "WARNING", "CRITICAL")

_SPEC_REQUIRED_NUMBERS = (
    "digits", "point", "contract_size", "min_lot", "max_lot", "lot_step",
    "stop_level", "freeze_level",
)
_SPEC_OPTIONAL_NUMBERS = (
    "tick_size", "tick_value", "spread", "leverage", "margin_initial", "margin_maintenance",
)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _direction_of(raw: str) -> Direction:
    """Broker position types come as BUY, SELL, SELL_LIMIT, ..."""
    return Direction.SELL if "SELL" in (raw or "").upper() else Direction.BUY


def generate_api_key(prefix: str = "sk_aegis_") -> str:
    """New agent credential."""
    return f"{prefix}{secrets.token_hex(24)}"


# ============================================================
# SERVICE
# ============================================================

class OrderAuthorizationService:
    """
    Database-backed Guardian workflows.

    Usage:
        service = OrderAuthorizationService(session)
        result = service.authorize_order(account_id, proposal)

        if result.authorized:
            order_id = result.order.id
    """

    def __init__(
        self,
        session,
        config: Optional[GuardianConfig] = None,
        alerter: Optional[GuardianAlerter] = None,
        lock_registry: Optional[AccountLockRegistry] = None,
        guardian: Optional[TradeRiskGuardian] = None,
    ):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session
            config: Guardian configuration (uses defaults if None)
            alerter: Alert sink (built from config if None)
            lock_registry: Per-account locks (process-wide default if None)
            guardian: Decision engine (built from config if None)
        """
        self._config = config or GuardianConfig()
        self._repo = GuardianRepository(session)
        self._resolver = SymbolResolver(self._repo, self._config.resolver)
        self._guardian = guardian or TradeRiskGuardian(self._config)
        self._detector = PatternDetector(self._config.patterns)
        self._alerter = alerter or GuardianAlerter(self._config.alerting)
        self._locks = lock_registry or DEFAULT_LOCK_REGISTRY

    @property
    def repository(self) -> GuardianRepository:
        return self._repo

    @property
    def resolver(self) -> SymbolResolver:
        return self._resolver

    # ============================================================
    # ACCOUNTS
    # ============================================================

    def require_account(self, account_id: str) -> TradingAccount:
        account = self._repo.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Trading account {account_id} not found")
        return account

    def register_account(
        self,
        user_id: str,
        login: str,
        start_balance: float,
        broker: Optional[str] = None,
        server: Optional[str] = None,
        currency: str = "USD",
        lock_mode=None,
    ) -> TradingAccount:
        """
        Link a trading account and issue its agent API key.
        """
        mode = parse_enum(LockMode, lock_mode or self._config.default_lock_mode, "lock_mode")
        return self._repo.create_account(
            user_id=user_id,
            login=str(login),
            broker=broker,
            server=server,
            start_balance=start_balance,
            current_balance=start_balance,
            equity=start_balance,
            currency=currency,
            lock_mode=mode.value,
            api_key=generate_api_key(self._config.agent_api_key_prefix),
        )

    def set_lock_mode(self, account_id: str, lock_mode) -> TradingAccount:
        """Change an account's lock mode."""
        account = self.require_account(account_id)
        mode = parse_enum(LockMode, lock_mode, "lock_mode")
        self._repo.update_account(account, lock_mode=mode.value)
        logger.info(f"Account {account_id} lock mode set to {mode.value}")
        warn_if_soft_with_active_setup(
            mode, self._repo.get_current_setup(account_id) is not None, account_id
        )
        return account

    def rotate_api_key(self, account_id: str) -> str:
        account = self.require_account(account_id)
        key = generate_api_key(self._config.agent_api_key_prefix)
        self._repo.update_account(account, api_key=key)
        logger.info(f"Rotated agent API key for account {account_id}")
        return key

    def delete_account(self, account_id: str) -> None:
        """
        Unlink an account. Its history stays for audit; its agent
        key stops authenticating.
        """
        with self._locks.hold(account_id):
            account = self.require_account(account_id)
            self._repo.soft_delete_account(account)

    # ============================================================
    # CHALLENGE SETUP
    # ============================================================

    def create_challenge_setup(
        self,
        account_id: str,
        setup: SetupInput,
        provider: Optional[str] = None,
        phase: Optional[str] = None,
        preset_id: Optional[str] = None,
        prop_firm: Optional[Dict[str, Any]] = None,
    ) -> ChallengeSetup:
        """
        Validate, lock and persist a challenge setup.

        All-or-nothing. The setup is LOCKED on creation.

        Raises:
            AccountNotFoundError: Unknown account
            SetupAlreadyExistsError: A setup that has not ended exists
            SetupValidationError: With every rule error
        """
        account = self.require_account(account_id)

        with self._locks.hold(account_id):
            if self._repo.get_current_setup(account_id) is not None:
                raise SetupAlreadyExistsError(
                    f"Account {account_id} already has a challenge setup. End the current "
                    f"challenge before creating a new one."
                )

            values = build_locked_setup(setup, self._config.setup_rules)

            extras: Dict[str, Any] = {}
            preset = get_challenge_preset(preset_id) if preset_id else None
            if preset is not None:
                extras.update({
                    "provider": preset.provider,
                    "phase": preset.name,
                    "profit_target_percent": preset.profit_target_percent,
                    "min_trading_days": preset.min_trading_days,
                    "max_lot_size": preset.max_lot_size,
                    "max_open_trades": preset.max_open_trades,
                })
            for key, value in (prop_firm or {}).items():
                if value is not None:
                    extras[key] = value
            if provider:
                extras["provider"] = provider
            if phase:
                extras["phase"] = phase

            values.update(extras)
            values["preset_id"] = preset.id if preset is not None else None
            created = self._repo.create_setup(account_id, values)

        warn_if_soft_with_active_setup(account.lock_mode, True, account_id)
        return created

    def get_challenge_setup(self, account_id: str) -> Optional[ChallengeSetup]:
        self.require_account(account_id)
        return self._repo.get_current_setup(account_id)

    def update_challenge_setup(self, account_id: str, setup: SetupInput) -> ChallengeSetup:
        """
        Replace the rules of an unlocked setup.

        Raises:
            SetupLockedError: The setup is locked or active
        """
        self.require_account(account_id)
        current = self._repo.get_current_setup(account_id)
        if current is None:
            raise SetupNotFoundError(f"Account {account_id} has no challenge setup")

        check = validate_setup_mutability(current.status, current.is_locked)
        if not check.can_modify:
            raise SetupLockedError(check.reason)

        values = build_locked_setup(setup, self._config.setup_rules)
        for key, value in values.items():
            setattr(current, key, value)
        self._repo.session.commit()
        return current

    def end_challenge(self, account_id: str) -> ChallengeSetup:
        """End the current challenge so a new setup may be created."""
        self.require_account(account_id)
        with self._locks.hold(account_id):
            current = self._repo.get_current_setup(account_id, for_update=True)
            if current is None:
                raise SetupNotFoundError(f"Account {account_id} has no challenge setup")
            return self._repo.end_setup(current)

    def start_new_trading_day(self, account_id: str, traded_yesterday: bool) -> Optional[ChallengeSetup]:
        """
        Roll the daily counter over.

        Resets the daily loss and counts the finished day when
        it had trades.
        """
        with self._locks.hold(account_id):
            current = self._repo.get_current_setup(account_id, for_update=True)
            if current is None:
                return None
            current.current_daily_loss = 0.0
            if traded_yesterday:
                current.trading_days_completed += 1
            self._repo.session.commit()
            return current

    # ============================================================
    # VALIDATION INPUT
    # ============================================================

    @staticmethod
    def _position_risk_dollars(
        open_price: float,
        stop_loss: float,
        volume: float,
        spec: SymbolSpec,
    ) -> float:
        distance = abs(open_price - stop_loss)
        if spec.tick_size and spec.tick_value:
            return distance / spec.tick_size * spec.tick_value * volume
        return distance * volume * spec.contract_size

    def build_exposures(
        self,
        account: TradingAccount,
        setup: Optional[ChallengeSetup] = None,
    ) -> List[TradeExposure]:
        """
        Open exposure set: open positions plus live orders.

        Position risk is the stop distance valued with the broker
        spec, as a percent of the current balance. A position with
        no stop or no synced spec is counted at the setup's per-trade
        risk (0 without a setup).

        Live orders cover PENDING through EXECUTED. An order is skipped
        only when an open position with its ticket is already counted.
        """
        balance = account.current_balance or account.start_balance
        standard_by_broker = {
            m.broker_symbol: m.standard_symbol for m in self._repo.list_mappings(account.id)
        }
        fallback = setup.user_risk_per_trade_percent if setup is not None else 0.0

        exposures: List[TradeExposure] = []
        open_trades = self._repo.list_open_trades(account.id)
        open_tickets = {t.ticket for t in open_trades if t.ticket}
        for trade in open_trades:
            spec = self._repo.get_spec(account.id, trade.symbol)
            if trade.stop_loss and spec is not None and balance > 0:
                risk = self._position_risk_dollars(
                    trade.open_price, trade.stop_loss, trade.volume, spec
                )
                risk_percent = risk / balance * 100
            else:
                logger.warning(
                    f"Open position {trade.symbol} on account {account.id} has no stop loss "
                    f"or spec; counting {fallback}% risk"
                )
                risk_percent = fallback
            exposures.append(TradeExposure(
                symbol=standard_by_broker.get(trade.symbol, trade.symbol),
                direction=_direction_of(trade.direction),
                risk_percent=round(risk_percent, 4),
            ))

        for order in self._repo.list_live_orders(account.id):
            if order.ticket and order.ticket in open_tickets:
                continue
            exposures.append(TradeExposure(
                symbol=order.standard_symbol,
                direction=_direction_of(order.direction),
                risk_percent=order.risk_percent,
            ))

        return exposures

    @staticmethod
    def _challenge_budget(setup: ChallengeSetup) -> ChallengeBudget:
        return ChallengeBudget(
            daily_budget_dollars=setup.daily_budget_dollars,
            over_roll_budget_dollars=setup.over_roll_budget_dollars,
            max_trade_risk_dollars=setup.max_trade_risk_dollars,
            max_asset_allocation_dollars=setup.max_asset_allocation_dollars,
            max_orders_per_asset=setup.max_orders_per_asset,
            min_time_between_orders_sec=setup.min_time_between_orders_sec or 0,
            current_daily_loss=setup.current_daily_loss,
            current_total_drawdown=setup.current_total_drawdown,
        )

    @staticmethod
    def _prop_firm_rules(
        account: TradingAccount,
        setup: ChallengeSetup,
    ) -> Optional[PropFirmRules]:
        """
        Firm rules for setups from a known firm or with firm limits set.
        """
        firm_key = re.sub(r"[^A-Z0-9]", "", (setup.provider or "").upper())
        firm_limits = PROP_FIRM_LIMITS.get(firm_key)
        has_limits = any(
            value is not None for value in (
                setup.profit_target_percent,
                setup.min_trading_days,
                setup.max_lot_size,
                setup.max_open_trades,
            )
        )
        if firm_limits is None and not has_limits:
            return None

        limits = firm_limits or {
            "max_daily_loss_percent": setup.daily_max_percent,
            "max_total_loss_percent": setup.over_roll_max_percent,
        }
        return PropFirmRules(
            provider=setup.provider or "CUSTOM",
            phase=setup.phase or "",
            max_daily_loss_percent=limits["max_daily_loss_percent"],
            max_total_loss_percent=limits["max_total_loss_percent"],
            start_balance=setup.account_size,
            current_balance=account.current_balance,
            profit_target_percent=setup.profit_target_percent,
            current_daily_loss=setup.current_daily_loss,
            current_total_drawdown=setup.current_total_drawdown,
            current_profit=setup.current_profit,
            trading_days_completed=setup.trading_days_completed,
            min_trading_days=setup.min_trading_days,
            max_lot_size=setup.max_lot_size,
            max_open_trades=setup.max_open_trades,
        )

    def build_validation_input(
        self,
        account: TradingAccount,
        setup: Optional[ChallengeSetup],
        proposal: TradeProposal,
        spec: Optional[SymbolSpec] = None,
        now: Optional[datetime] = None,
    ) -> TradeValidationInput:
        """Gather everything the Guardian needs for one trade."""
        return TradeValidationInput(
            trade=proposal,
            account_balance=account.current_balance or account.start_balance,
            account_currency=account.currency,
            existing_trades=self.build_exposures(account, setup),
            max_currency_exposure=setup.max_currency_exposure if setup is not None else None,
            challenge_budget=self._challenge_budget(setup) if setup is not None else None,
            prop_firm_rules=(
                self._prop_firm_rules(account, setup) if setup is not None else None
            ),
            last_order_time=self._repo.get_last_order_time(account.id, proposal.symbol),
            symbol_spec=spec,
            now=now or datetime.utcnow(),
        )

    # ============================================================
    # TRADE VALIDATION
    # ============================================================

    def validate_trade(
        self,
        account_id: str,
        proposal: TradeProposal,
        now: Optional[datetime] = None,
    ) -> TradeValidationResult:
        """
        Full Guardian verdict under the account's lock mode. No order is created.
        """
        account = self.require_account(account_id)
        setup = self._repo.get_current_setup(account_id)
        resolution = self._resolver.resolve(account_id, proposal.symbol)
        validation_input = self.build_validation_input(
            account, setup, proposal, resolution.spec, now
        )
        return self._guardian.validate_trade(validation_input, account.lock_mode, account_id)

    @staticmethod
    def order_type_for(
        direction: Direction,
        entry_price: float,
        current_price: Optional[float],
    ) -> str:
        """BUY_LIMIT / BUY_STOP / SELL_LIMIT / SELL_STOP."""
        if current_price is None:
            return f"{direction.value}_LIMIT"
        below_market = entry_price < current_price
        if direction == Direction.BUY:
            return "BUY_LIMIT" if below_market else "BUY_STOP"
        return "SELL_STOP" if below_market else "SELL_LIMIT"

    def _requested_lot(
        self,
        account: TradingAccount,
        proposal: TradeProposal,
        spec: SymbolSpec,
    ) -> float:
        if proposal.lot_size is not None:
            return proposal.lot_size
        pip = get_pip_info(proposal.symbol, spec)
        distance = calculate_pip_distance(proposal.entry_price, proposal.stop_loss, pip.pip_size)
        balance = account.current_balance or account.start_balance
        return calculate_lot_size(balance * proposal.risk_percent / 100, distance, pip.pip_value)

    def authorize_order(
        self,
        account_id: str,
        proposal: TradeProposal,
        current_price: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> AuthorizationResult:
        """
        Authorize a trade and create its TradeOrder.

        Resolution, lot normalization, the Guardian verdict and the
        insert happen under the account's lock.

        Args:
            account_id: Trading account ID
            proposal: Proposed trade (standard symbol)
            current_price: Market price, picks LIMIT vs STOP
            now: Reference time

        Returns:
            AuthorizationResult (order set only when authorized)
        """
        direction = parse_enum(Direction, proposal.direction, "direction")
        proposal = replace(proposal, symbol=normalize_symbol(proposal.symbol), direction=direction)

        with self._locks.hold(account_id):
            account = self.require_account(account_id)
            setup = self._repo.get_current_setup(account_id, for_update=True)

            resolution = self._resolver.resolve(account_id, proposal.symbol)
            if not resolution.found:
                logger.info(f"Order rejected on {account_id}: {resolution.hint}")
                return AuthorizationResult(
                    authorized=False,
                    errors=[f"Symbol {proposal.symbol} cannot be traded: {resolution.hint}"],
                )

            requested_lot = self._requested_lot(account, proposal, resolution.spec)
            order_check = self._resolver.validate_order_for_execution(
                standard_symbol=proposal.symbol,
                account_id=account_id,
                lot_size=requested_lot,
                entry_price=proposal.entry_price,
                stop_loss=proposal.stop_loss,
                direction=direction,
                current_price=current_price,
            )
            if not order_check.valid:
                return AuthorizationResult(
                    authorized=False,
                    order_validation=order_check,
                    errors=list(order_check.errors),
                    warnings=list(order_check.warnings),
                )

            sized = replace(proposal, lot_size=order_check.normalized_lot_size)
            validation_input = self.build_validation_input(
                account, setup, sized, resolution.spec, now
            )
            verdict = self._guardian.validate_trade(
                validation_input, account.lock_mode, account_id
            )
            decision = self._repo.log_decision(
                account_id, proposal.symbol, direction.value, proposal.risk_percent,
                verdict, commit=False,
            )
            label = f"{account.login} ({account.broker or 'unknown broker'})"

            if not verdict.can_execute:
                self._repo.session.add(decision)
                self._repo.session.commit()
                self._alerter.alert_on_verdict(verdict, proposal.symbol, direction.value, label)
                return AuthorizationResult(
                    authorized=False,
                    verdict=verdict,
                    order_validation=order_check,
                    warnings=list(order_check.warnings) + list(verdict.warnings),
                )

            # SOFT may pass an oversized lot; the order holds its real risk
            risk_amount = effective_risk_for(validation_input)
            order = TradeOrder(
                account_id=account_id,
                symbol=order_check.broker_symbol,
                standard_symbol=proposal.symbol,
                direction=direction.value,
                order_type=self.order_type_for(direction, proposal.entry_price, current_price),
                lot_size=order_check.normalized_lot_size,
                entry_price=proposal.entry_price,
                stop_loss=proposal.stop_loss,
                take_profit_1=proposal.take_profit_1,
                take_profit_2=proposal.take_profit_2,
                take_profit_3=proposal.take_profit_3,
                risk_percent=effective_risk_percent_for(validation_input),
                risk_amount=round(risk_amount, 2),
                status=OrderStatus.PENDING.value,
                evaluation_id=verdict.evaluation_id,
                policy_overridden=verdict.policy_overridden,
                created_at=now or datetime.utcnow(),
            )
            self._repo.create_order(order, decision)

        if verdict.policy_overridden:
            self._alerter.alert_on_verdict(verdict, proposal.symbol, direction.value, label)

        return AuthorizationResult(
            authorized=True,
            order=order,
            verdict=verdict,
            order_validation=order_check,
            warnings=list(order_check.warnings) + list(verdict.warnings),
        )

    def list_orders(self, account_id: str, status=None) -> List[TradeOrder]:
        self.require_account(account_id)
        statuses = None
        if status:
            statuses = [parse_enum(OrderStatus, status, "status").value]
        return self._repo.list_orders(account_id, statuses)

    def cancel_order(self, account_id: str, order_id: str) -> TradeOrder:
        """Cancel an order the agent has not picked up yet."""
        order = self._order_for(account_id, order_id)
        if order.status not in (OrderStatus.PENDING.value, OrderStatus.APPROVED.value) \
                or order.mt5_status is not None:
            raise OrderStateError(f"Order {order_id} is {order.status} and cannot be canceled")
        order.status = OrderStatus.CANCELED.value
        return self._repo.save_order(order)

    # ============================================================
    # BEHAVIORAL PATTERNS
    # ============================================================

    def detect_patterns(
        self,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> PatternDetectionResult:
        """Scan the account's recent trade history."""
        self.require_account(account_id)
        trades = self._repo.list_recent_trades(
            account_id, hours=self._config.patterns.history_lookback_hours
        )
        records = [
            TradeRecord(
                symbol=t.symbol,
                direction=_direction_of(t.direction),
                open_time=t.open_time,
                close_time=t.close_time,
                profit=t.profit,
                volume=t.volume,
            )
            for t in trades
        ]
        return self._detector.detect(records, now=now)

    # ============================================================
    # SYMBOL MAPPINGS
    # ============================================================

    def create_manual_mapping(
        self,
        account_id: str,
        standard_symbol: str,
        broker_symbol: str,
        category=None,
    ) -> SymbolMappingRecord:
        """
        Map a standard symbol to a synced broker symbol.

        Raises:
            SymbolNotFoundError: The broker symbol has no synced spec
        """
        self.require_account(account_id)
        if self._repo.get_spec(account_id, broker_symbol) is None:
            raise SymbolNotFoundError(
                broker_symbol,
                "Broker symbol has no synced specification. Sync symbols from the "
                "terminal first.",
            )
        return self._repo.upsert_mapping(SymbolMappingRecord(
            account_id=account_id,
            standard_symbol=normalize_symbol(standard_symbol),
            broker_symbol=broker_symbol,
            confidence=1.0,
            source=MappingSource.MANUAL,
            category=parse_enum(AssetCategory, category, "category") if category else None,
        ))

    def delete_mapping(self, account_id: str, standard_symbol: str) -> bool:
        self.require_account(account_id)
        return self._repo.delete_mapping(account_id, standard_symbol)

    def suggest_mappings(self, account_id: str, standard_symbol: str) -> List[MappingSuggestion]:
        self.require_account(account_id)
        return self._resolver.suggest_mappings(account_id, standard_symbol)

    # ============================================================
    # EXECUTION AGENT
    # ============================================================

    def authenticate_agent(
        self,
        api_key: Optional[str],
        account_login: Optional[str] = None,
    ) -> TradingAccount:
        """
        Resolve an agent API key to its account.

        Raises:
            AuthenticationError: Missing or unknown key
            AccessDeniedError: Key does not belong to account_login
        """
        if not api_key:
            raise AuthenticationError("Missing API key")
        if not api_key.startswith(self._config.agent_api_key_prefix):
            raise AuthenticationError("Invalid API key format")

        account = self._repo.get_account_by_api_key(api_key)
        if account is None:
            raise AuthenticationError("Invalid API key")
        if account_login is not None and account.login != str(account_login):
            raise AccessDeniedError("API key does not belong to this account")
        return account

    def _order_for(self, account_id: str, order_id: str) -> TradeOrder:
        order = self._repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        if order.account_id != account_id:
            raise AccessDeniedError("Order does not belong to this account")
        return order

    def pending_orders_for_agent(self, account: TradingAccount) -> List[Dict[str, Any]]:
        """Orders the agent should place, oldest first."""
        return [
            {
                "order_id": o.id,
                "symbol": o.symbol,
                "direction": o.direction,
                "order_type": o.order_type,
                "entry_price": o.entry_price,
                "stop_loss": o.stop_loss,
                "take_profit": o.take_profit_1 or 0,
                "lot_size": o.lot_size,
                "created_at": o.created_at.isoformat(),
            }
            for o in self._repo.list_orders_for_agent(account.id)
        ]

    def record_order_executed(
        self,
        account: TradingAccount,
        order_id: str,
        ticket: str,
        execution_price: Optional[float] = None,
        execution_time: Optional[datetime] = None,
    ) -> TradeOrder:
        """The agent placed the order; it is now ACTIVE."""
        order = self._order_for(account.id, order_id)
        if order.status not in (OrderStatus.PENDING.value, OrderStatus.APPROVED.value):
            raise OrderStateError(f"Order {order_id} is {order.status}; cannot mark executed")

        order.ticket = str(ticket)
        order.mt5_status = "FILLED"
        order.status = OrderStatus.ACTIVE.value
        order.execution_price = execution_price or order.entry_price
        order.executed_at = execution_time or datetime.utcnow()
        self._repo.save_order(order)
        logger.info(f"Order {order_id} placed by agent (ticket {ticket})")
        return order

    def record_execution_feedback(
        self,
        account: TradingAccount,
        order_id: str,
        status,
        ticket: Optional[str] = None,
        execution_price: Optional[float] = None,
        executed_at: Optional[datetime] = None,
        failure_reason: Optional[str] = None,
    ) -> TradeOrder:
        """EXECUTED or FAILED report for an order."""
        outcome = parse_enum(OrderStatus, status, "status")
        if outcome not in (OrderStatus.EXECUTED, OrderStatus.FAILED):
            raise InvalidEnumError("status", status, [
                OrderStatus.EXECUTED.value, OrderStatus.FAILED.value,
            ])

        order = self._order_for(account.id, order_id)
        if order.status in (
            OrderStatus.FAILED.value, OrderStatus.CANCELED.value, OrderStatus.CLOSED.value,
        ):
            raise OrderStateError(f"Order {order_id} is {order.status}; feedback rejected")

        if outcome == OrderStatus.EXECUTED:
            order.status = OrderStatus.EXECUTED.value
            order.mt5_status = "FILLED"
            if ticket:
                order.ticket = str(ticket)
            order.execution_price = execution_price or order.execution_price or order.entry_price
            order.executed_at = executed_at or datetime.utcnow()
            logger.info(f"Order {order_id} executed (ticket {order.ticket})")
        else:
            order.status = OrderStatus.FAILED.value
            order.mt5_status = "REJECTED"
            order.failure_reason = failure_reason or "Unknown error"
            logger.warning(f"Order {order_id} failed: {order.failure_reason}")

        return self._repo.save_order(order)

    def record_order_closed(
        self,
        account: TradingAccount,
        ticket: str,
        close_reason: str,
        close_price: Optional[float] = None,
        final_pnl: Optional[float] = None,
        close_time: Optional[datetime] = None,
    ) -> TradeOrder:
        """
        A position closed. Updates the challenge counters.
        """
        order = self._repo.get_order_by_ticket(ticket)
        if order is None:
            raise OrderNotFoundError(f"Order with ticket {ticket} not found")
        if order.account_id != account.id:
            raise AccessDeniedError("Order does not belong to this account")
        if order.status == OrderStatus.CLOSED.value:
            raise OrderStateError(f"Order with ticket {ticket} is already closed")

        pnl = final_pnl or 0.0
        order.status = OrderStatus.CLOSED.value
        order.mt5_status = "CLOSED"
        order.close_reason = close_reason
        order.close_price = close_price or 0.0
        order.final_pnl = pnl
        order.closed_at = close_time or datetime.utcnow()
        self._repo.save_order(order)

        with self._locks.hold(account.id):
            setup = self._repo.get_current_setup(account.id, for_update=True)
            if setup is not None:
                self._repo.apply_closed_pnl(setup, pnl)

        if close_reason == "INVALIDATION_TRIGGERED":
            self._repo.log_violation(
                account_id=account.id,
                order_id=order.id,
                violation_type="INVALIDATION_TRIGGERED",
                description=f"Position {order.symbol} closed on invalidation at {close_price}",
                action_taken="POSITION_CLOSED",
                severity="INFO",
                metadata_json={"ticket": str(ticket), "close_price": close_price, "final_pnl": pnl},
            )

        logger.info(f"Order {order.id} closed ({close_reason}, P&L {pnl:.2f})")
        return order

    def log_agent_violation(
        self,
        account: TradingAccount,
        violation_type: str,
        description: Optional[str] = None,
        severity: str = "WARNING",
        ticket: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Persist an agent-reported violation; CRITICAL ones alert."""
        severity = (severity or "WARNING").upper()
        if severity not in VIOLATION_SEVERITIES:
            raise InvalidEnumError("severity", severity, list(VIOLATION_SEVERITIES))

        action = VIOLATION_ACTIONS.get(violation_type, "LOGGED")
        description = description or f"Violation: {violation_type}"
        record = self._repo.log_violation(
            account_id=account.id,
            violation_type=violation_type,
            description=description,
            action_taken=action,
            severity=severity,
            metadata_json=metadata or {
                "ticket": str(ticket) if ticket is not None else None,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )
        logger.info(f"Violation logged for {account.login}: {violation_type} ({severity})")

        if severity == "CRITICAL":
            self._alerter.alert_on_violation(account.login, violation_type, description, action)
        return record

    @staticmethod
    def _spec_row(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Validated BrokerSymbolSpec values, or None to skip the row."""
        data = {_snake(k): v for k, v in raw.items()}
        symbol = data.get("symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            return None
        if not all(_is_number(data.get(name)) for name in _SPEC_REQUIRED_NUMBERS):
            return None
        try:
            trade_mode = parse_enum(TradeMode, data.get("trade_mode"), "trade_mode")
        except InvalidEnumError:
            return None
        if data["lot_step"] <= 0 or data["min_lot"] <= 0 or data["max_lot"] < data["min_lot"]:
            return None

        row = {
            "symbol": symbol.strip(),
            "description": data.get("description"),
            "trade_mode": trade_mode.value,
            "category": data.get("category"),
        }
        for name in _SPEC_REQUIRED_NUMBERS:
            row[name] = data[name]
        row["digits"] = int(row["digits"])
        row["stop_level"] = int(row["stop_level"])
        row["freeze_level"] = int(row["freeze_level"])
        for name in _SPEC_OPTIONAL_NUMBERS:
            value = data.get(name)
            row[name] = value if _is_number(value) else None
        return row

    def sync_symbols(
        self,
        account: TradingAccount,
        symbols: Sequence[Dict[str, Any]],
    ) -> SymbolSyncStats:
        """
        Upsert the terminal's full instrument list.

        Invalid rows are skipped and counted.
        """
        rows = []
        skipped = []
        for raw in symbols:
            row = self._spec_row(raw)
            if row is None:
                skipped.append(str(raw.get("symbol", "?")))
            else:
                rows.append(row)

        if skipped:
            logger.warning(f"Symbol sync for {account.login}: {len(skipped)} symbol(s) skipped")

        created, updated = self._repo.upsert_symbol_specs(account.id, rows)
        logger.info(
            f"Symbol sync for {account.login}: {created} created, {updated} updated"
        )
        return SymbolSyncStats(
            total=len(symbols),
            valid=len(rows),
            created=created,
            updated=updated,
            skipped_symbols=skipped,
        )
