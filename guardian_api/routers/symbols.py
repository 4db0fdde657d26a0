from fastapi import APIRouter, Depends, HTTPException, Query, status

from guardian_api.deps import get_service
from guardian_api.schemas import (
    BaseResponse,
    MappingCreate,
    MappingListResponse,
    MappingRecord,
    MappingResponse,
    SuggestionRecord,
    SuggestionResponse,
)
from trade_risk_guardian.service import OrderAuthorizationService
from trade_risk_guardian.types import SymbolMappingRecord

router = APIRouter(prefix="/api/symbols", tags=["Symbols"])


def _record(mapping: SymbolMappingRecord) -> MappingRecord:
    return MappingRecord(
        account_id=mapping.account_id,
        standard_symbol=mapping.standard_symbol,
        broker_symbol=mapping.broker_symbol,
        confidence=mapping.confidence,
        source=mapping.source.value,
        category=mapping.category.value if mapping.category else None,
    )


@router.post("/mapping", response_model=MappingResponse, status_code=status.HTTP_201_CREATED)
def create_mapping(
    body: MappingCreate,
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    Manual mapping. The broker symbol must have a synced spec.
    """
    mapping = service.create_manual_mapping(
        body.account_id, body.standard_symbol, body.broker_symbol, body.category
    )
    return MappingResponse(data=_record(mapping), message="Mapping saved")


@router.delete("/mapping", response_model=BaseResponse)
def delete_mapping(
    account_id: str = Query(...),
    standard_symbol: str = Query(...),
    service: OrderAuthorizationService = Depends(get_service),
):
    if not service.delete_mapping(account_id, standard_symbol):
        raise HTTPException(status_code=404, detail=f"No mapping for {standard_symbol}")
    return BaseResponse(message="Mapping deleted")


@router.get("/{account_id}/mappings", response_model=MappingListResponse)
def list_mappings(
    account_id: str,
    service: OrderAuthorizationService = Depends(get_service),
):
    service.require_account(account_id)
    mappings = service.repository.list_mappings(account_id)
    return MappingListResponse(data=[_record(m) for m in mappings])


@router.get("/{account_id}/suggestions", response_model=SuggestionResponse)
def suggest_mappings(
    account_id: str,
    symbol: str = Query(...),
    service: OrderAuthorizationService = Depends(get_service),
):
    """
    Fuzzy candidates for an unmapped symbol. Nothing is written.
    """
    suggestions = service.suggest_mappings(account_id, symbol)
    return SuggestionResponse(
        symbol=symbol.upper(),
        data=[
            SuggestionRecord(
                broker_symbol=s.broker_symbol, confidence=s.confidence, reason=s.reason
            )
            for s in suggestions
        ],
    )
