from fastapi import APIRouter, Depends, status

from guardian_api.deps import get_service
from guardian_api.schemas import (
    AccountCreate,
    AccountRecord,
    AccountResponse,
    BaseResponse,
    LockModeUpdate,
)
from trade_risk_guardian.service import OrderAuthorizationService

router = APIRouter(prefix="/api/accounts", tags=["Accounts"])


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    body: AccountCreate,
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    Link a trading account. The agent API key is returned once.
    """
    account = service.register_account(
        user_id=body.user_id,
        login=body.login,
        start_balance=body.start_balance,
        broker=body.broker,
        server=body.server,
        currency=body.currency,
        lock_mode=body.lock_mode,
    )
    return AccountResponse(
        data=AccountRecord.model_validate(account),
        api_key=account.api_key,
        message="Account linked",
    )


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    service: OrderAuthorizationService = Depends(get_service),
):
    account = service.require_account(account_id)
    return AccountResponse(data=AccountRecord.model_validate(account))


@router.patch("/{account_id}/lock-mode", response_model=AccountResponse)
def update_lock_mode(
    account_id: str,
    body: LockModeUpdate,
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    Change how strictly Guardian verdicts are enforced (HARD, MEDIUM, SOFT).
    """
    account = service.set_lock_mode(account_id, body.lock_mode)
    return AccountResponse(data=AccountRecord.model_validate(account))


@router.post("/{account_id}/api-key", response_model=AccountResponse)
def rotate_api_key(
    account_id: str,
    service: OrderAuthorizationService = Depends(get_service),
):
    key = service.rotate_api_key(account_id)
    account = service.require_account(account_id)
    return AccountResponse(data=AccountRecord.model_validate(account), api_key=key)


@router.delete("/{account_id}", response_model=BaseResponse)
def delete_account(
    account_id: str,
    service: OrderAuthorizationService = Depends(get_service),
):
    service.delete_account(account_id)
    return BaseResponse(message="Account unlinked")
