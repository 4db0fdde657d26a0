"""
Trade Risk Guardian - Challenge Presets.

Standard prop-firm challenge rules offered in the setup wizard,
plus the loss limits used when validating against a firm's rules.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ChallengePreset:
    """
    Named prop-firm challenge rules.
    """

    id: str
    name: str
    provider: str
    over_roll_max_percent: float
    daily_max_percent: float
    description: str
    prohibited_strategies: List[str] = field(default_factory=list)
    profit_target_percent: Optional[float] = None
    min_trading_days: Optional[int] = None
    max_trading_days: Optional[int] = None
    max_lot_size: Optional[float] = None
    max_open_trades: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


CHALLENGE_PRESETS: Dict[str, ChallengePreset] = {
    # FundedNext
    "FUNDEDNEXT_STANDARD": ChallengePreset(
        id="FUNDEDNEXT_STANDARD",
        name="FundedNext Standard",
        provider="FundedNext",
        over_roll_max_percent=5.0,
        daily_max_percent=2.5,
        description="5% over-roll, 2.5% daily",
        prohibited_strategies=["martingale", "grid_trading"],
        profit_target_percent=10.0,
        min_trading_days=4,
        max_trading_days=30,
    ),
    "FUNDEDNEXT_EXPRESS": ChallengePreset(
        id="FUNDEDNEXT_EXPRESS",
        name="FundedNext Express",
        provider="FundedNext",
        over_roll_max_percent=4.0,
        daily_max_percent=2.0,
        description="4% over-roll, 2% daily, faster evaluation",
        prohibited_strategies=["martingale", "grid_trading", "news_trading"],
        profit_target_percent=8.0,
        min_trading_days=3,
        max_trading_days=14,
    ),

    # FTMO
    "FTMO_PHASE1": ChallengePreset(
        id="FTMO_PHASE1",
        name="FTMO Phase 1",
        provider="FTMO",
        over_roll_max_percent=10.0,
        daily_max_percent=5.0,
        description="10% max drawdown, 5% daily, 10% profit target",
        prohibited_strategies=["martingale", "grid_trading"],
        profit_target_percent=10.0,
        min_trading_days=4,
        max_trading_days=30,
    ),
    "FTMO_PHASE2": ChallengePreset(
        id="FTMO_PHASE2",
        name="FTMO Phase 2 (Verification)",
        provider="FTMO",
        over_roll_max_percent=10.0,
        daily_max_percent=5.0,
        description="10% max drawdown, 5% daily, 5% profit target",
        prohibited_strategies=["martingale", "grid_trading"],
        profit_target_percent=5.0,
        min_trading_days=4,
        max_trading_days=60,
    ),
    "FTMO_FUNDED": ChallengePreset(
        id="FTMO_FUNDED",
        name="FTMO Funded Account",
        provider="FTMO",
        over_roll_max_percent=10.0,
        daily_max_percent=5.0,
        description="10% max drawdown, 5% daily, live funded account",
        prohibited_strategies=["martingale", "grid_trading"],
    ),

    # ThinCap
    "THINCAP_TRADER": ChallengePreset(
        id="THINCAP_TRADER",
        name="ThinCap Trader",
        provider="ThinCap",
        over_roll_max_percent=7.0,
        daily_max_percent=3.0,
        description="7% over-roll, 3% daily",
        prohibited_strategies=["martingale", "grid_trading"],
        profit_target_percent=8.0,
        min_trading_days=3,
    ),

    # MyFundedFX
    "MYFUNDEDFX_STANDARD": ChallengePreset(
        id="MYFUNDEDFX_STANDARD",
        name="MyFundedFX Standard",
        provider="MyFundedFX",
        over_roll_max_percent=4.0,
        daily_max_percent=2.0,
        description="4% over-roll, 2% daily",
        prohibited_strategies=["martingale", "grid_trading", "news_trading"],
        profit_target_percent=10.0,
        min_trading_days=5,
    ),

    # The 5%ers
    "FIVE_PERCENTERS_STANDARD": ChallengePreset(
        id="FIVE_PERCENTERS_STANDARD",
        name="The 5%ers Hyper Growth",
        provider="The5%ers",
        over_roll_max_percent=6.0,
        daily_max_percent=4.0,
        description="6% max drawdown, 4% daily",
        prohibited_strategies=["martingale", "grid_trading"],
        profit_target_percent=6.0,
    ),

    # The Funded Trader
    "FUNDED_TRADER_STANDARD": ChallengePreset(
        id="FUNDED_TRADER_STANDARD",
        name="The Funded Trader Standard",
        provider="TheFundedTrader",
        over_roll_max_percent=8.0,
        daily_max_percent=4.0,
        description="8% max drawdown, 4% daily",
        prohibited_strategies=["martingale", "grid_trading"],
        profit_target_percent=10.0,
        min_trading_days=5,
    ),
}


# Loss limits keyed by firm, used for prop-firm trade validation.
PROP_FIRM_LIMITS: Dict[str, Dict[str, float]] = {
    "FTMO": {"max_daily_loss_percent": 5.0, "max_total_loss_percent": 10.0},
    "MYFXFUNDS": {"max_daily_loss_percent": 4.0, "max_total_loss_percent": 8.0},
    "FIVEPERCENTERS": {"max_daily_loss_percent": 5.0, "max_total_loss_percent": 6.0},
    "FUNDEDNEXT": {"max_daily_loss_percent": 5.0, "max_total_loss_percent": 10.0},
}


def get_challenge_preset(preset_id: str) -> Optional[ChallengePreset]:
    return CHALLENGE_PRESETS.get((preset_id or "").upper())


def get_all_challenge_presets() -> List[ChallengePreset]:
    return list(CHALLENGE_PRESETS.values())


def get_presets_by_provider(provider: str) -> List[ChallengePreset]:
    """Presets for one provider, case-insensitive."""
    wanted = (provider or "").lower()
    return [p for p in CHALLENGE_PRESETS.values() if p.provider.lower() == wanted]
