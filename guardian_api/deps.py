"""
FastAPI dependencies for the Guardian API.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from database.engine import get_session
from trade_risk_guardian.alerting import GuardianAlerter
from trade_risk_guardian.config import GuardianConfig, load_config_from_env
from trade_risk_guardian.engine import TradeRiskGuardian
from trade_risk_guardian.models import TradingAccount
from trade_risk_guardian.service import OrderAuthorizationService


# =============================================================
# HELPER: Database dependency
# =============================================================

def get_db():
    db = get_session()
    try:
        yield db
    finally:
        db.close()


# =============================================================
# HELPER: Process-wide Guardian components
# =============================================================

@lru_cache()
def get_guardian_config() -> GuardianConfig:
    return load_config_from_env()


@lru_cache()
def get_guardian() -> TradeRiskGuardian:
    return TradeRiskGuardian(get_guardian_config())


@lru_cache()
def get_alerter() -> GuardianAlerter:
    return GuardianAlerter(get_guardian_config().alerting)


# =============================================================
# HELPER: Get service instance
# =============================================================

def get_service(db: Session = Depends(get_db)) -> OrderAuthorizationService:
    return OrderAuthorizationService(
        db,
        config=get_guardian_config(),
        alerter=get_alerter(),
        guardian=get_guardian(),
    )


def get_agent_account(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    service: OrderAuthorizationService = Depends(get_service),
) -> TradingAccount:
    """Account owning the agent's X-API-Key. 401 when missing or unknown."""
    return service.authenticate_agent(x_api_key)
