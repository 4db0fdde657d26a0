"""
Shared fixtures: in-memory SQLite database, service, linked account.
"""

import pytest
from sqlalchemy.orm import sessionmaker

from database.engine import create_database_engine
from trade_risk_guardian.models import Base
from trade_risk_guardian.service import AccountLockRegistry, OrderAuthorizationService
from trade_risk_guardian.types import SetupInput


EURUSD_SPEC = {
    "symbol": "EURUSD.m",
    "description": "Euro vs US Dollar",
    "digits": 5,
    "point": 0.00001,
    "contractSize": 100000,
    "minLot": 0.01,
    "maxLot": 50.0,
    "lotStep": 0.01,
    "stopLevel": 0,
    "freezeLevel": 0,
    "tradeMode": "FULL",
    "tickSize": 0.00001,
    "tickValue": 1.0,
}


def standard_setup(**overrides) -> SetupInput:
    """$10,000 account: $500 daily, $1,000 over-roll, $100 per trade, $300 per asset."""
    values = dict(
        account_size=10000.0,
        over_roll_max_percent=10.0,
        daily_max_percent=5.0,
        user_risk_per_trade_percent=1.0,
        user_risk_per_asset_percent=3.0,
        max_orders_per_asset=3,
        min_time_between_orders_sec=0,
    )
    values.update(overrides)
    return SetupInput(**values)


@pytest.fixture
def db_engine():
    engine = create_database_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = factory()
    yield session
    session.close()


@pytest.fixture
def service(db_session):
    return OrderAuthorizationService(db_session, lock_registry=AccountLockRegistry())


@pytest.fixture
def account(service):
    return service.register_account(
        user_id="user-1",
        login="123456",
        start_balance=10000.0,
        broker="ICMarkets",
        server="ICMarkets-Demo",
    )


@pytest.fixture
def tradeable_account(service, account):
    """Account with a locked setup and EURUSD mapped to a synced EURUSD.m spec."""
    service.create_challenge_setup(account.id, standard_setup())
    service.sync_symbols(account, [dict(EURUSD_SPEC)])
    service.create_manual_mapping(account.id, "EURUSD", "EURUSD.m")
    return account
