"""
Trade Risk Guardian - Repository.

============================================================
PURPOSE
============================================================
Database operations for the Guardian.

Provides:
- Account lookup (by id and agent API key) and soft delete
- Challenge setup persistence and running counters
- SymbolStore implementation over synced broker specs
- Trade order, trade history and violation log access
- Guardian decision logging

Every write commits. On SQLAlchemyError the session is
rolled back and the error re-raised.

============================================================
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from sqlalchemy import select, func, and_, desc
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from .models import (
    BrokerSymbolSpec,
    ChallengeSetup,
    GuardianDecisionLog,
    SymbolMapping,
    Trade,
    TradeOrder,
    TradingAccount,
    ViolationLog,
)
from .resolver import normalize_symbol
from .types import (
    AssetCategory,
    InvalidEnumError,
    MappingSource,
    OrderStatus,
    SetupStatus,
    SymbolMappingRecord,
    SymbolSpec,
    TradeMode,
    TradeValidationResult,
    parse_enum,
)


logger = logging.getLogger(__name__)


RESERVED_ORDER_STATUSES = (OrderStatus.PENDING.value, OrderStatus.APPROVED.value)
"""Orders that hold risk before the broker reports a position."""

LIVE_ORDER_STATUSES = RESERVED_ORDER_STATUSES + (
    OrderStatus.ACTIVE.value,
    OrderStatus.EXECUTED.value,
)


def _category(value: Optional[str]) -> Optional[AssetCategory]:
    if not value:
        return None
    try:
        return parse_enum(AssetCategory, value, "category")
    except InvalidEnumError:
        return AssetCategory.OTHER


def spec_to_domain(row: BrokerSymbolSpec) -> SymbolSpec:
    """Convert a BrokerSymbolSpec row to a SymbolSpec."""
    return SymbolSpec(
        symbol=row.symbol,
        digits=row.digits,
        point=row.point,
        contract_size=row.contract_size,
        min_lot=row.min_lot,
        max_lot=row.max_lot,
        lot_step=row.lot_step,
        stop_level=row.stop_level or 0,
        freeze_level=row.freeze_level or 0,
        trade_mode=parse_enum(TradeMode, row.trade_mode, "trade_mode"),
        tick_size=row.tick_size,
        tick_value=row.tick_value,
        description=row.description,
        category=_category(row.category),
    )


def mapping_to_domain(row: SymbolMapping) -> SymbolMappingRecord:
    """Convert a SymbolMapping row to a SymbolMappingRecord."""
    return SymbolMappingRecord(
        account_id=row.account_id,
        standard_symbol=row.standard_symbol,
        broker_symbol=row.broker_symbol,
        confidence=row.confidence,
        source=parse_enum(MappingSource, row.source, "source"),
        category=_category(row.category),
    )


class GuardianRepository:
    """
    Repository for Guardian persistence.

    All database operations go through this class.
    """

    def __init__(self, session: Session):
        """
        Initialize repository.

        Args:
            session: SQLAlchemy database session
        """
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def _commit(self, operation: str) -> None:
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error(f"Failed to {operation}: {e}")
            raise

    # ============================================================
    # ACCOUNTS
    # ============================================================

    def create_account(self, **fields: Any) -> TradingAccount:
        """Create a trading account."""
        account = TradingAccount(**fields)
        self._session.add(account)
        self._commit("create trading account")
        logger.info(f"Created trading account {account.id} (login {account.login})")
        return account

    def get_account(self, account_id: str) -> Optional[TradingAccount]:
        """Get a live (not deleted) account by id."""
        stmt = select(TradingAccount).where(
            TradingAccount.id == account_id,
            TradingAccount.deleted_at.is_(None),
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def get_account_by_api_key(self, api_key: str) -> Optional[TradingAccount]:
        stmt = select(TradingAccount).where(
            TradingAccount.api_key == api_key,
            TradingAccount.deleted_at.is_(None),
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def update_account(self, account: TradingAccount, **fields: Any) -> TradingAccount:
        """Update account fields (balances, lock mode, API key)."""
        for name, value in fields.items():
            setattr(account, name, value)
        self._commit("update trading account")
        return account

    def soft_delete_account(self, account: TradingAccount) -> None:
        account.deleted_at = datetime.utcnow()
        self._commit("delete trading account")
        logger.info(f"Soft-deleted trading account {account.id}")

    # ============================================================
    # CHALLENGE SETUPS
    # ============================================================

    def get_current_setup(
        self,
        account_id: str,
        for_update: bool = False,
    ) -> Optional[ChallengeSetup]:
        """
        Get the account's setup that has not ended.

        Args:
            account_id: Trading account ID
            for_update: Lock the row until the transaction ends
        """
        stmt = (
            select(ChallengeSetup)
            .where(
                ChallengeSetup.account_id == account_id,
                ChallengeSetup.status != SetupStatus.ENDED.value,
            )
            .order_by(desc(ChallengeSetup.created_at))
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.execute(stmt).scalars().first()

    def create_setup(self, account_id: str, values: Dict[str, Any]) -> ChallengeSetup:
        """
        Insert a locked setup in one transaction.
        """
        setup = ChallengeSetup(account_id=account_id, **values)
        self._session.add(setup)
        self._commit("create challenge setup")
        logger.info(f"Locked challenge setup {setup.id} for account {account_id}")
        return setup

    def end_setup(self, setup: ChallengeSetup) -> ChallengeSetup:
        setup.status = SetupStatus.ENDED.value
        setup.ended_at = datetime.utcnow()
        self._commit("end challenge setup")
        logger.info(f"Ended challenge setup {setup.id} for account {setup.account_id}")
        return setup

    def apply_closed_pnl(self, setup: ChallengeSetup, pnl: float) -> ChallengeSetup:
        """
        Fold a realized P&L into the running counters.

        Losses grow daily loss and total drawdown. Profits grow
        current profit and recover both, each down to zero.
        """
        if pnl < 0:
            setup.current_daily_loss = abs(setup.current_daily_loss) + abs(pnl)
            setup.current_total_drawdown = abs(setup.current_total_drawdown) + abs(pnl)
        else:
            setup.current_profit = setup.current_profit + pnl
            setup.current_daily_loss = max(abs(setup.current_daily_loss) - pnl, 0.0)
            setup.current_total_drawdown = max(abs(setup.current_total_drawdown) - pnl, 0.0)
        self._commit("update challenge counters")
        return setup

    # ============================================================
    # SYMBOLS (SymbolStore)
    # ============================================================

    def _mapping_row(self, account_id: str, standard_symbol: str) -> Optional[SymbolMapping]:
        stmt = select(SymbolMapping).where(
            SymbolMapping.account_id == account_id,
            SymbolMapping.standard_symbol == normalize_symbol(standard_symbol),
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def _spec_row(self, account_id: str, broker_symbol: str) -> Optional[BrokerSymbolSpec]:
        stmt = select(BrokerSymbolSpec).where(
            BrokerSymbolSpec.account_id == account_id,
            BrokerSymbolSpec.symbol == broker_symbol,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def get_mapping(
        self, account_id: str, standard_symbol: str
    ) -> Optional[SymbolMappingRecord]:
        row = self._mapping_row(account_id, standard_symbol)
        return mapping_to_domain(row) if row is not None else None

    def get_spec(self, account_id: str, broker_symbol: str) -> Optional[SymbolSpec]:
        row = self._spec_row(account_id, broker_symbol)
        return spec_to_domain(row) if row is not None else None

    def list_specs(self, account_id: str) -> List[SymbolSpec]:
        stmt = (
            select(BrokerSymbolSpec)
            .where(BrokerSymbolSpec.account_id == account_id)
            .order_by(BrokerSymbolSpec.symbol)
        )
        return [spec_to_domain(r) for r in self._session.execute(stmt).scalars().all()]

    def list_mappings(self, account_id: str) -> List[SymbolMappingRecord]:
        stmt = (
            select(SymbolMapping)
            .where(SymbolMapping.account_id == account_id)
            .order_by(SymbolMapping.standard_symbol)
        )
        return [mapping_to_domain(r) for r in self._session.execute(stmt).scalars().all()]

    def upsert_mapping(self, record: SymbolMappingRecord) -> SymbolMappingRecord:
        """Create or replace the mapping for (account, standard symbol)."""
        row = self._mapping_row(record.account_id, record.standard_symbol)
        if row is None:
            row = SymbolMapping(
                account_id=record.account_id,
                standard_symbol=normalize_symbol(record.standard_symbol),
            )
            self._session.add(row)
        row.broker_symbol = record.broker_symbol
        row.confidence = record.confidence
        row.source = record.source.value
        row.category = record.category.value if record.category else None
        self._commit("save symbol mapping")
        logger.info(
            f"Mapped {row.standard_symbol} -> {row.broker_symbol} "
            f"({row.source}) for account {row.account_id}"
        )
        return mapping_to_domain(row)

    def delete_mapping(self, account_id: str, standard_symbol: str) -> bool:
        row = self._mapping_row(account_id, standard_symbol)
        if row is None:
            return False
        self._session.delete(row)
        self._commit("delete symbol mapping")
        return True

    def upsert_symbol_specs(
        self,
        account_id: str,
        rows: Iterable[Dict[str, Any]],
    ) -> Tuple[int, int]:
        """
        Upsert broker specs for an account in one transaction.

        Args:
            account_id: Trading account ID
            rows: Validated column values, keyed by BrokerSymbolSpec field

        Returns:
            (created, updated)
        """
        created = updated = 0
        now = datetime.utcnow()
        for values in rows:
            row = self._spec_row(account_id, values["symbol"])
            if row is None:
                row = BrokerSymbolSpec(account_id=account_id, symbol=values["symbol"])
                self._session.add(row)
                created += 1
            else:
                updated += 1
            for name, value in values.items():
                setattr(row, name, value)
            row.last_updated = now
        self._commit("sync broker symbols")
        return created, updated

    # ============================================================
    # ORDERS
    # ============================================================

    def create_order(
        self,
        order: TradeOrder,
        decision: Optional[GuardianDecisionLog] = None,
    ) -> TradeOrder:
        """
        Insert an authorized order and its decision record together.
        """
        self._session.add(order)
        if decision is not None:
            self._session.flush()
            decision.order_id = order.id
            self._session.add(decision)
        self._commit("create trade order")
        logger.info(
            f"Created order {order.id}: {order.direction} {order.lot_size} {order.symbol} "
            f"({order.risk_percent}% risk)"
        )
        return order

    def get_order(self, order_id: str) -> Optional[TradeOrder]:
        return self._session.get(TradeOrder, order_id)

    def get_order_by_ticket(self, ticket: str) -> Optional[TradeOrder]:
        stmt = select(TradeOrder).where(TradeOrder.ticket == str(ticket))
        return self._session.execute(stmt).scalars().first()

    def list_orders(
        self,
        account_id: str,
        statuses: Optional[Sequence[str]] = None,
        limit: int = 100,
    ) -> List[TradeOrder]:
        conditions = [TradeOrder.account_id == account_id]
        if statuses:
            conditions.append(TradeOrder.status.in_(list(statuses)))
        stmt = (
            select(TradeOrder)
            .where(and_(*conditions))
            .order_by(desc(TradeOrder.created_at))
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars().all())

    def list_live_orders(self, account_id: str) -> List[TradeOrder]:
        """Orders holding risk: reserved, placed or filled, not yet closed."""
        return self.list_orders(account_id, LIVE_ORDER_STATUSES, limit=1000)

    def list_orders_for_agent(self, account_id: str) -> List[TradeOrder]:
        """PENDING/APPROVED orders not yet picked up by the agent, oldest first."""
        stmt = (
            select(TradeOrder)
            .where(
                TradeOrder.account_id == account_id,
                TradeOrder.status.in_(RESERVED_ORDER_STATUSES),
                TradeOrder.mt5_status.is_(None),
            )
            .order_by(TradeOrder.created_at)
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_last_order_time(self, account_id: str, standard_symbol: str) -> Optional[datetime]:
        stmt = select(func.max(TradeOrder.created_at)).where(
            TradeOrder.account_id == account_id,
            TradeOrder.standard_symbol == normalize_symbol(standard_symbol),
            TradeOrder.status.in_(LIVE_ORDER_STATUSES + (OrderStatus.CLOSED.value,)),
        )
        return self._session.execute(stmt).scalar()

    def save_order(self, order: TradeOrder) -> TradeOrder:
        """Commit changes made to an order."""
        self._commit("update trade order")
        return order

    # ============================================================
    # TRADE HISTORY
    # ============================================================

    def add_trade(self, **fields: Any) -> Trade:
        trade = Trade(**fields)
        self._session.add(trade)
        self._commit("record trade")
        return trade

    def list_open_trades(self, account_id: str) -> List[Trade]:
        stmt = select(Trade).where(
            Trade.account_id == account_id,
            Trade.close_time.is_(None),
        )
        return list(self._session.execute(stmt).scalars().all())

    def list_recent_trades(self, account_id: str, hours: int = 24) -> List[Trade]:
        """Trades opened or closed within the last `hours`."""
        since = datetime.utcnow() - timedelta(hours=hours)
        stmt = (
            select(Trade)
            .where(
                Trade.account_id == account_id,
                (Trade.open_time >= since) | (Trade.close_time >= since),
            )
            .order_by(desc(Trade.open_time))
        )
        return list(self._session.execute(stmt).scalars().all())

    # ============================================================
    # AUDIT
    # ============================================================

    def log_violation(self, **fields: Any) -> ViolationLog:
        """Persist an agent-reported violation."""
        record = ViolationLog(**fields)
        self._session.add(record)
        self._commit("log violation")
        return record

    def list_violations(self, account_id: str, limit: int = 100) -> List[ViolationLog]:
        stmt = (
            select(ViolationLog)
            .where(ViolationLog.account_id == account_id)
            .order_by(desc(ViolationLog.created_at))
            .limit(limit)
        )
        return list(self._session.execute(stmt).scalars().all())

    def log_decision(
        self,
        account_id: str,
        symbol: str,
        direction: str,
        risk_percent: float,
        result: TradeValidationResult,
        commit: bool = True,
    ) -> GuardianDecisionLog:
        """
        Log a Guardian verdict.

        Args:
            commit: False to leave the record for a later commit
        """
        record = GuardianDecisionLog(
            evaluation_id=result.evaluation_id,
            account_id=account_id,
            symbol=symbol,
            direction=direction,
            risk_percent=risk_percent,
            can_execute=result.can_execute,
            severity=result.severity.value,
            lock_mode=result.lock_mode.value if result.lock_mode else None,
            policy_overridden=result.policy_overridden,
            violations=[v.to_dict() for v in result.violations],
            warnings=list(result.warnings),
            timestamp=result.timestamp,
        )
        if commit:
            self._session.add(record)
            self._commit("log guardian decision")
            logger.debug(f"Logged guardian decision: {result.evaluation_id}")
        return record
