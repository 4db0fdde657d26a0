"""
Tests for the symbol and lot resolver.
"""

import pytest

from trade_risk_guardian.config import ResolverConfig
from trade_risk_guardian.resolver import (
    InMemorySymbolStore,
    SymbolResolver,
    normalize_lot_size,
)
from trade_risk_guardian.types import (
    Direction,
    LotStatus,
    MappingSource,
    ResolutionStatus,
    SymbolMappingRecord,
    SymbolSpec,
    TradeMode,
)


ACCOUNT = "acc-1"


def eurusd_spec(**overrides) -> SymbolSpec:
    values = dict(symbol="EURUSD.m", min_lot=0.01, max_lot=50.0, lot_step=0.01)
    values.update(overrides)
    return SymbolSpec(**values)


@pytest.fixture
def store():
    store = InMemorySymbolStore()
    store.add_spec(ACCOUNT, eurusd_spec())
    store.add_mapping(SymbolMappingRecord(ACCOUNT, "EURUSD", "EURUSD.m"))
    return store


@pytest.fixture
def resolver(store):
    return SymbolResolver(store)


# =============================================================
# TEST: Lot normalization
# =============================================================

class TestLotNormalization:
    """Lots are floored to the step, never rounded up."""

    def test_floors_to_step(self):
        result = normalize_lot_size(0.137, eurusd_spec())

        assert result.status == LotStatus.OK
        assert result.normalized_lot == 0.13
        assert result.adjusted

    def test_exact_step_unchanged(self):
        result = normalize_lot_size(0.25, eurusd_spec())
        assert result.normalized_lot == 0.25
        assert not result.adjusted

    def test_clamped_to_max(self):
        assert normalize_lot_size(75.0, eurusd_spec()).normalized_lot == 50.0

    def test_below_minimum_not_raised(self):
        result = normalize_lot_size(0.005, eurusd_spec())
        assert result.status == LotStatus.BELOW_MINIMUM

    def test_non_positive(self):
        assert normalize_lot_size(0, eurusd_spec()).status == LotStatus.BELOW_MINIMUM

    def test_invalid_spec(self):
        result = normalize_lot_size(1.0, eurusd_spec(lot_step=0))
        assert result.status == LotStatus.INVALID_SPEC

    def test_spec_not_synced(self, resolver):
        result = resolver.normalize_lot(ACCOUNT, "GBPUSD.m", 1.0)
        assert result.status == LotStatus.SPEC_NOT_FOUND


# =============================================================
# TEST: Symbol resolution
# =============================================================

class TestResolve:
    """No silent guessing."""

    def test_manual_mapping_resolves(self, resolver):
        result = resolver.resolve(ACCOUNT, " eurusd ")

        assert result.found
        assert result.broker_symbol == "EURUSD.m"
        assert result.spec.symbol == "EURUSD.m"

    def test_unmapped_symbol_not_found(self, resolver):
        result = resolver.resolve(ACCOUNT, "GBPUSD")

        assert result.status == ResolutionStatus.NOT_FOUND
        assert "manual symbol mapping" in result.hint

    def test_auto_mapping_not_used_by_default(self, store, resolver):
        store.add_spec(ACCOUNT, eurusd_spec(symbol="XAUUSD.m"))
        store.add_mapping(SymbolMappingRecord(
            ACCOUNT, "XAUUSD", "XAUUSD.m", confidence=0.9, source=MappingSource.AUTO
        ))

        result = resolver.resolve(ACCOUNT, "XAUUSD")
        assert not result.found
        assert "unconfirmed" in result.hint

    def test_auto_mapping_allowed_by_config(self, store):
        store.add_spec(ACCOUNT, eurusd_spec(symbol="XAUUSD.m"))
        store.add_mapping(SymbolMappingRecord(
            ACCOUNT, "XAUUSD", "XAUUSD.m", confidence=0.9, source=MappingSource.AUTO
        ))
        resolver = SymbolResolver(store, ResolverConfig(allow_auto_mappings=True))

        assert resolver.resolve(ACCOUNT, "XAUUSD").found

    def test_mapping_without_spec_not_found(self, store, resolver):
        store.add_mapping(SymbolMappingRecord(ACCOUNT, "GBPUSD", "GBPUSD.m"))

        result = resolver.resolve(ACCOUNT, "GBPUSD")
        assert not result.found
        assert "no synced specification" in result.hint

    def test_other_account_not_visible(self, resolver):
        assert not resolver.resolve("acc-2", "EURUSD").found


# =============================================================
# TEST: Order validation
# =============================================================

class TestValidateOrderForExecution:

    def test_valid_order(self, resolver):
        result = resolver.validate_order_for_execution(
            "EURUSD", ACCOUNT, 0.137, 1.1000, 1.0950, Direction.BUY
        )

        assert result.valid
        assert result.broker_symbol == "EURUSD.m"
        assert result.normalized_lot_size == 0.13
        assert any("rounded down" in w for w in result.warnings)

    def test_stop_on_wrong_side(self, resolver):
        result = resolver.validate_order_for_execution(
            "EURUSD", ACCOUNT, 0.1, 1.1000, 1.1050, "BUY"
        )
        assert not result.valid
        assert any("must be below entry price" in e for e in result.errors)

    def test_missing_stop_loss(self, resolver):
        result = resolver.validate_order_for_execution(
            "EURUSD", ACCOUNT, 0.1, 1.1000, None, "SELL"
        )
        assert "Stop loss is required" in result.errors

    def test_stop_too_close(self, store):
        store.add_spec(ACCOUNT, eurusd_spec(stop_level=50))
        resolver = SymbolResolver(store)

        result = resolver.validate_order_for_execution(
            "EURUSD", ACCOUNT, 0.1, 1.1000, 1.0998, "BUY"
        )
        assert any("too close" in e for e in result.errors)

    def test_trade_mode_restrictions(self, store):
        store.add_spec(ACCOUNT, eurusd_spec(trade_mode=TradeMode.LONG_ONLY))
        resolver = SymbolResolver(store)

        result = resolver.validate_order_for_execution(
            "EURUSD", ACCOUNT, 0.1, 1.1000, 1.1050, "SELL"
        )
        assert any("long positions only" in e for e in result.errors)

    def test_unmapped_symbol(self, resolver):
        result = resolver.validate_order_for_execution(
            "US30", ACCOUNT, 1.0, 39000, 38900, "BUY"
        )
        assert not result.valid
        assert result.errors[0].startswith("Symbol US30 cannot be traded")

    def test_all_errors_reported(self, store):
        store.add_spec(ACCOUNT, eurusd_spec(trade_mode=TradeMode.DISABLED))
        resolver = SymbolResolver(store)

        result = resolver.validate_order_for_execution(
            "EURUSD", ACCOUNT, 0.001, 1.1000, 1.1050, "BUY"
        )
        assert len(result.errors) == 3


# =============================================================
# TEST: Mapping suggestions
# =============================================================

class TestSuggestions:
    """Candidates only, sorted best first."""

    def test_known_variation_suggested(self, store, resolver):
        store.add_spec(ACCOUNT, eurusd_spec(symbol="EURGBP"))
        store.add_spec(ACCOUNT, eurusd_spec(symbol="XAUUSD"))

        suggestions = resolver.suggest_mappings(ACCOUNT, "EURUSD")

        assert [s.broker_symbol for s in suggestions] == ["EURUSD.m"]
        assert suggestions[0].confidence == 0.9

    def test_exact_match_first(self, store, resolver):
        store.add_spec(ACCOUNT, eurusd_spec(symbol="GOLD"))
        store.add_spec(ACCOUNT, eurusd_spec(symbol="XAUUSD"))

        suggestions = resolver.suggest_mappings(ACCOUNT, "XAUUSD")

        assert suggestions[0].broker_symbol == "XAUUSD"
        assert suggestions[0].confidence == 1.0
        assert suggestions[1].broker_symbol == "GOLD"

    def test_suggestions_do_not_create_mappings(self, store, resolver):
        store.add_spec(ACCOUNT, eurusd_spec(symbol="GBPUSD"))
        resolver.suggest_mappings(ACCOUNT, "GBPUSD")

        assert store.get_mapping(ACCOUNT, "GBPUSD") is None
