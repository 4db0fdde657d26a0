"""
Execution agent endpoints.

The terminal-side agent polls for pending orders, reports fills,
failures and closes, logs violations it detects locally, and pushes the
broker's instrument list. Every call carries the account's X-API-Key.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from guardian_api.deps import get_agent_account, get_service
from guardian_api.schemas import (
    AgentOrderResponse,
    ExecutionFeedbackRequest,
    OrderClosedRequest,
    OrderExecutedRequest,
    PendingOrdersResponse,
    SymbolSyncRequest,
    SymbolSyncResponse,
    ViolationLogRequest,
    ViolationLogResponse,
)
from trade_risk_guardian.models import TradingAccount
from trade_risk_guardian.service import OrderAuthorizationService

router = APIRouter(prefix="/api/mt5", tags=["Execution Agent"])


@router.get("/pending-orders", response_model=PendingOrdersResponse)
def get_pending_orders(
    account_login: str = Query(...),
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    service: OrderAuthorizationService = Depends(get_service),
):
    """Orders the agent should place, oldest first."""
    account = service.authenticate_agent(x_api_key, account_login)
    orders = service.pending_orders_for_agent(account)
    return PendingOrdersResponse(
        orders_count=len(orders),
        orders=orders,
        account={
            "login": account.login,
            "balance": account.current_balance,
            "equity": account.equity,
            "lock_mode": account.lock_mode,
        },
    )


@router.post("/order-executed", response_model=AgentOrderResponse)
def order_executed(
    body: OrderExecutedRequest,
    account: TradingAccount = Depends(get_agent_account),
    service: OrderAuthorizationService = Depends(get_service),
):
    order = service.record_order_executed(
        account,
        body.order_id,
        body.ticket,
        execution_price=body.execution_price,
        execution_time=body.execution_time,
    )
    return AgentOrderResponse(
        order_id=order.id, status=order.status, ticket=order.ticket,
        message="Order marked as executed",
    )


@router.post("/execution-feedback", response_model=AgentOrderResponse)
def execution_feedback(
    body: ExecutionFeedbackRequest,
    account: TradingAccount = Depends(get_agent_account),
    service: OrderAuthorizationService = Depends(get_service),
):
    """EXECUTED or FAILED outcome for an order."""
    order = service.record_execution_feedback(
        account,
        body.order_id,
        body.status,
        ticket=body.ticket,
        execution_price=body.execution_price,
        executed_at=body.executed_at,
        failure_reason=body.failure_reason,
    )
    return AgentOrderResponse(order_id=order.id, status=order.status, ticket=order.ticket)


@router.post("/order-closed", response_model=AgentOrderResponse)
def order_closed(
    body: OrderClosedRequest,
    account: TradingAccount = Depends(get_agent_account),
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    A position closed (TP, SL, manual or invalidation).

    The realized P&L is applied to the challenge counters.
    """
    order = service.record_order_closed(
        account,
        body.ticket,
        body.close_reason,
        close_price=body.close_price,
        final_pnl=body.final_pnl,
        close_time=body.close_time,
    )
    return AgentOrderResponse(
        order_id=order.id, status=order.status, ticket=order.ticket,
        message=f"Order closed: {body.close_reason}",
    )


@router.post("/violation-log", response_model=ViolationLogResponse)
def violation_log(
    body: ViolationLogRequest,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    service: OrderAuthorizationService = Depends(get_service),
):
    account = service.authenticate_agent(x_api_key, body.account_login)
    record = service.log_agent_violation(
        account,
        body.violation_type,
        description=body.description,
        severity=body.severity,
        ticket=body.ticket,
        metadata=body.metadata,
    )
    return ViolationLogResponse(
        violation_id=record.id,
        action_taken=record.action_taken,
        severity=record.severity,
        message="Violation logged",
    )


@router.post("/symbols/sync", response_model=SymbolSyncResponse)
def sync_symbols(
    body: SymbolSyncRequest,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    service: OrderAuthorizationService = Depends(get_service),
):
    """Upsert the broker's instrument specifications."""
    account = service.authenticate_agent(x_api_key, body.account_login)
    stats = service.sync_symbols(account, body.symbols)
    return SymbolSyncResponse(
        total=stats.total,
        valid=stats.valid,
        created=stats.created,
        updated=stats.updated,
        skipped=stats.skipped,
        skipped_symbols=stats.skipped_symbols,
        message=f"Synced {stats.valid} symbol(s)",
    )
