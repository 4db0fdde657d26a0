from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from guardian_api.deps import get_service
from guardian_api.schemas import (
    AuthorizationResponse,
    OrderListResponse,
    OrderRecord,
    PatternRequest,
    PatternResponse,
    TradeProposalRequest,
    ValidationResponse,
)
from trade_risk_guardian.service import OrderAuthorizationService
from trade_risk_guardian.types import Direction, TradeProposal, parse_enum

router = APIRouter(prefix="/api/trades", tags=["Trades"])


def _proposal(body: TradeProposalRequest) -> TradeProposal:
    return TradeProposal(
        symbol=body.symbol,
        direction=parse_enum(Direction, body.direction, "direction"),
        entry_price=body.entry_price,
        stop_loss=body.stop_loss,
        risk_percent=body.risk_percent,
        take_profit_1=body.take_profit_1,
        take_profit_2=body.take_profit_2,
        take_profit_3=body.take_profit_3,
        lot_size=body.lot_size,
    )


@router.post("/validate", response_model=ValidationResponse)
def validate_trade(
    body: TradeProposalRequest,
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    Full Guardian verdict under the account's lock mode. No order is created.
    """
    result = service.validate_trade(body.account_id, _proposal(body))
    return ValidationResponse(data=result.to_dict())


@router.post(
    "/orders",
    response_model=AuthorizationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": AuthorizationResponse}},
)
def create_order(
    body: TradeProposalRequest,
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    Authorize a trade and create its order.

    201 with the order, or 422 with every violation and error.
    """
    result = service.authorize_order(
        body.account_id, _proposal(body), current_price=body.current_price
    )
    response = AuthorizationResponse(
        success=result.authorized,
        authorized=result.authorized,
        order=OrderRecord.model_validate(result.order) if result.order is not None else None,
        verdict=result.verdict.to_dict() if result.verdict is not None else None,
        errors=result.violation_messages,
        warnings=result.warnings,
        message="Order created" if result.authorized else "Trade rejected by Guardian",
    )
    if not result.authorized:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode="json"),
        )
    return response


@router.get("/orders", response_model=OrderListResponse)
def list_orders(
    account_id: str = Query(...),
    status_filter: Optional[str] = Query(None, alias="status"),
    service: OrderAuthorizationService = Depends(get_service),
):
    orders = service.list_orders(account_id, status_filter)
    return OrderListResponse(data=[OrderRecord.model_validate(o) for o in orders])


@router.post("/orders/{order_id}/cancel", response_model=OrderListResponse)
def cancel_order(
    order_id: str,
    account_id: str = Query(...),
    service: OrderAuthorizationService = Depends(get_service),
):
    order = service.cancel_order(account_id, order_id)
    return OrderListResponse(data=[OrderRecord.model_validate(order)], message="Order canceled")


@router.post("/patterns", response_model=PatternResponse)
def detect_patterns(
    body: PatternRequest,
    service: OrderAuthorizationService = Depends(get_service),
):
    """Behavioral pattern and cooldown check on recent trade history."""
    result = service.detect_patterns(body.account_id, now=body.now)
    return PatternResponse(data=result.to_dict())
