from fastapi import APIRouter, Depends, HTTPException, Query, status

from guardian_api.deps import get_service
from guardian_api.schemas import (
    ChallengeEndRequest,
    ChallengeSetupCreate,
    ChallengeSetupRecord,
    ChallengeSetupResponse,
    PresetListResponse,
)
from trade_risk_guardian.budget import calculate_derived_values, estimate_tradeable_days
from trade_risk_guardian.presets import get_all_challenge_presets
from trade_risk_guardian.service import OrderAuthorizationService
from trade_risk_guardian.types import SetupInput

router = APIRouter(prefix="/api/challenge-setup", tags=["Challenge Setup"])


def _setup_input(body: ChallengeSetupCreate) -> SetupInput:
    return SetupInput(
        account_size=body.account_size,
        over_roll_max_percent=body.over_roll_max_percent,
        daily_max_percent=body.daily_max_percent,
        user_risk_per_trade_percent=body.user_risk_per_trade_percent,
        user_risk_per_asset_percent=body.user_risk_per_asset_percent,
        max_orders_per_asset=body.max_orders_per_asset,
        min_time_between_orders_sec=body.min_time_between_orders_sec,
    )


def _response(setup, message=None) -> ChallengeSetupResponse:
    budgets = calculate_derived_values(SetupInput(
        account_size=setup.account_size,
        over_roll_max_percent=setup.over_roll_max_percent,
        daily_max_percent=setup.daily_max_percent,
        user_risk_per_trade_percent=setup.user_risk_per_trade_percent,
        user_risk_per_asset_percent=setup.user_risk_per_asset_percent,
        max_orders_per_asset=setup.max_orders_per_asset,
    ))
    return ChallengeSetupResponse(
        data=ChallengeSetupRecord.model_validate(setup),
        estimated_tradeable_days=estimate_tradeable_days(budgets),
        message=message,
    )


@router.get("/presets", response_model=PresetListResponse)
def list_presets():
    """Named prop-firm presets for the setup wizard."""
    return PresetListResponse(data=[p.to_dict() for p in get_all_challenge_presets()])


@router.post("", response_model=ChallengeSetupResponse, status_code=status.HTTP_201_CREATED)
def create_challenge_setup(
    body: ChallengeSetupCreate,
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    Validate and lock a challenge setup.

    422 with every rule error when invalid; 409 when the account
    already has a setup that has not ended.
    """
    setup = service.create_challenge_setup(
        body.account_id,
        _setup_input(body),
        provider=body.provider,
        phase=body.phase,
        preset_id=body.preset_id,
        prop_firm={
            "profit_target_percent": body.profit_target_percent,
            "min_trading_days": body.min_trading_days,
            "max_lot_size": body.max_lot_size,
            "max_open_trades": body.max_open_trades,
            "max_currency_exposure": body.max_currency_exposure,
        },
    )
    return _response(setup, message="Challenge setup locked")


@router.get("", response_model=ChallengeSetupResponse)
def get_challenge_setup(
    account_id: str = Query(...),
    service: OrderAuthorizationService = Depends(get_service),
):
    setup = service.get_challenge_setup(account_id)
    if setup is None:
        raise HTTPException(status_code=404, detail="No challenge setup for this account")
    return _response(setup)


@router.put("", response_model=ChallengeSetupResponse)
def update_challenge_setup(
    body: ChallengeSetupCreate,
    service: OrderAuthorizationService = Depends(get_service),
):
    """Locked setups are immutable; this always answers 409 once locked."""
    setup = service.update_challenge_setup(body.account_id, _setup_input(body))
    return _response(setup, message="Challenge setup updated")


@router.post("/end", response_model=ChallengeSetupResponse)
def end_challenge(
    body: ChallengeEndRequest,
    service: OrderAuthorizationService = Depends(get_service),
):
    """End the current challenge so a new setup may be created."""
    setup = service.end_challenge(body.account_id)
    return _response(setup, message="Challenge ended")
