"""
Trade Risk Guardian - Symbol & Lot Resolver.

============================================================
PURPOSE
============================================================
Turns a broker-agnostic symbol and a requested size into a
broker-safe order:

1. Standard symbol -> broker symbol (curated mapping only)
2. Requested lot -> lot compliant with the broker spec
3. Trade mode, stop side and stop distance checks

============================================================
RULES
============================================================
- No silent guessing. An unmapped symbol is NOT_FOUND.
- Unconfirmed (auto) mappings do not route orders unless
  ResolverConfig.allow_auto_mappings is set.
- A mapping without a synced broker spec is NOT_FOUND.
- Lots are clamped to max_lot and floored to lot_step with
  Decimal arithmetic. They are never rounded up.

============================================================
"""

import logging
import re
from decimal import Decimal, ROUND_FLOOR, InvalidOperation
from typing import Dict, List, Optional, Protocol, Tuple

from .config import ResolverConfig
from .types import (
    Direction,
    LotNormalization,
    LotStatus,
    MappingSource,
    MappingSuggestion,
    OrderValidationResult,
    ResolutionStatus,
    SymbolMappingRecord,
    SymbolResolution,
    SymbolSpec,
    TradeMode,
    parse_enum,
)


logger = logging.getLogger(__name__)


# ============================================================
# KNOWN BROKER NAMING VARIATIONS
# ============================================================

SYMBOL_VARIATIONS: Dict[str, List[str]] = {
    # Metals
    "GOLD": ["XAUUSD", "GOLD", "GOLDm", "#GOLD"],
    "SILVER": ["XAGUSD", "SILVER", "SILVERm", "#SILVER"],
    "XAUUSD": ["XAUUSD", "GOLD", "GOLDm", "#GOLD"],
    "XAGUSD": ["XAGUSD", "SILVER", "SILVERm", "#SILVER"],

    # Oil
    "WTI": ["XTIUSD", "USOIL", "CL", "WTI", "#USOIL"],
    "BRENT": ["XBRUSD", "UKOIL", "BRENT", "#UKOIL"],
    "USOIL": ["XTIUSD", "USOIL", "CL", "WTI", "#USOIL"],
    "UKOIL": ["XBRUSD", "UKOIL", "BRENT", "#UKOIL"],

    # Indices
    "US30": ["US30", "DJ30", "DOWJONES", "US30.cash", "#US30"],
    "NAS100": ["NAS100", "USTEC", "NASDAQ", "NAS100.cash", "#NAS100"],
    "SPX500": ["SPX500", "US500", "SP500", "SPX500.cash", "#SPX500"],
    "DAX": ["GER40", "DAX", "DE40", "GER40.cash", "#DAX"],
    "FTSE": ["UK100", "FTSE", "FTSE100", "UK100.cash", "#FTSE"],

    # Forex majors
    "EURUSD": ["EURUSD", "EURUSDm", "EURUSD.", "EURUSD.."],
    "GBPUSD": ["GBPUSD", "GBPUSDm", "GBPUSD.", "GBPUSD.."],
    "USDJPY": ["USDJPY", "USDJPYm", "USDJPY.", "USDJPY.."],
    "USDCHF": ["USDCHF", "USDCHFm", "USDCHF.", "USDCHF.."],
    "AUDUSD": ["AUDUSD", "AUDUSDm", "AUDUSD.", "AUDUSD.."],
    "USDCAD": ["USDCAD", "USDCADm", "USDCAD.", "USDCAD.."],
    "NZDUSD": ["NZDUSD", "NZDUSDm", "NZDUSD.", "NZDUSD.."],

    # Crypto
    "BTC": ["BTCUSD", "XBTUSD", "BTC", "#BTCUSD"],
    "ETH": ["ETHUSD", "XETUSD", "ETH", "#ETHUSD"],
}


def normalize_symbol(symbol: str) -> str:
    """Upper-case and trim a symbol."""
    return (symbol or "").strip().upper()


def _clean(symbol: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", symbol.upper())


# ============================================================
# STORAGE PROTOCOL
# ============================================================

class SymbolStore(Protocol):
    """
    Read access to mappings and broker specs.

    Implemented by GuardianRepository and InMemorySymbolStore.
    """

    def get_mapping(
        self, account_id: str, standard_symbol: str
    ) -> Optional[SymbolMappingRecord]:
        ...

    def get_spec(self, account_id: str, broker_symbol: str) -> Optional[SymbolSpec]:
        ...

    def list_specs(self, account_id: str) -> List[SymbolSpec]:
        ...


class InMemorySymbolStore:
    """Dictionary-backed SymbolStore."""

    def __init__(self):
        self._mappings: Dict[Tuple[str, str], SymbolMappingRecord] = {}
        self._specs: Dict[Tuple[str, str], SymbolSpec] = {}

    def add_mapping(self, mapping: SymbolMappingRecord) -> None:
        key = (mapping.account_id, normalize_symbol(mapping.standard_symbol))
        self._mappings[key] = mapping

    def add_spec(self, account_id: str, spec: SymbolSpec) -> None:
        self._specs[(account_id, spec.symbol)] = spec

    def get_mapping(
        self, account_id: str, standard_symbol: str
    ) -> Optional[SymbolMappingRecord]:
        return self._mappings.get((account_id, normalize_symbol(standard_symbol)))

    def get_spec(self, account_id: str, broker_symbol: str) -> Optional[SymbolSpec]:
        return self._specs.get((account_id, broker_symbol))

    def list_specs(self, account_id: str) -> List[SymbolSpec]:
        return [s for (acc, _), s in self._specs.items() if acc == account_id]


# ============================================================
# LOT NORMALIZATION
# ============================================================

def normalize_lot_size(requested_lot: float, spec: SymbolSpec) -> LotNormalization:
    """
    Normalize a requested lot against a broker spec.

    Clamps down to max_lot, then floors to a multiple of lot_step.
    A result of 0 or below min_lot fails with BELOW_MINIMUM; the
    request is never raised to min_lot.

    Args:
        requested_lot: Lot size the caller asked for
        spec: Broker symbol spec

    Returns:
        LotNormalization
    """
    try:
        requested = Decimal(str(requested_lot))
        step = Decimal(str(spec.lot_step))
        min_lot = Decimal(str(spec.min_lot))
        max_lot = Decimal(str(spec.max_lot))
    except (InvalidOperation, ValueError) as e:
        return LotNormalization(
            status=LotStatus.INVALID_SPEC,
            requested_lot=requested_lot,
            message=f"Cannot normalize lot size {requested_lot!r}: {e}",
        )

    if step <= 0 or min_lot <= 0 or max_lot < min_lot:
        return LotNormalization(
            status=LotStatus.INVALID_SPEC,
            requested_lot=requested_lot,
            message=(
                f"Broker spec for {spec.symbol} is invalid "
                f"(min {spec.min_lot}, max {spec.max_lot}, step {spec.lot_step})"
            ),
        )

    if requested <= 0:
        return LotNormalization(
            status=LotStatus.BELOW_MINIMUM,
            requested_lot=requested_lot,
            message=f"Lot size must be positive, got {requested_lot}",
        )

    clamped = min(requested, max_lot)
    steps = (clamped / step).to_integral_value(rounding=ROUND_FLOOR)
    normalized = steps * step

    if normalized <= 0 or normalized < min_lot:
        return LotNormalization(
            status=LotStatus.BELOW_MINIMUM,
            requested_lot=requested_lot,
            normalized_lot=float(normalized),
            message=(
                f"Lot size {requested_lot} is below the broker minimum "
                f"{spec.min_lot} for {spec.symbol}"
            ),
        )

    return LotNormalization(
        status=LotStatus.OK,
        requested_lot=requested_lot,
        normalized_lot=float(normalized),
    )


# ============================================================
# RESOLVER
# ============================================================

class SymbolResolver:
    """
    Resolves symbols and prepares orders for broker execution.
    """

    def __init__(self, store: SymbolStore, config: Optional[ResolverConfig] = None):
        self._store = store
        self._config = config or ResolverConfig()

    @property
    def config(self) -> ResolverConfig:
        return self._config

    def resolve(self, account_id: str, standard_symbol: str) -> SymbolResolution:
        """
        Resolve a standard symbol to a broker symbol for an account.

        Args:
            account_id: Trading account ID
            standard_symbol: Broker-agnostic symbol (e.g. XAUUSD)

        Returns:
            SymbolResolution (RESOLVED or NOT_FOUND with a hint)
        """
        symbol = normalize_symbol(standard_symbol)

        if not symbol:
            return SymbolResolution(
                status=ResolutionStatus.NOT_FOUND,
                standard_symbol=symbol,
                hint="Symbol is empty.",
            )

        mapping = self._store.get_mapping(account_id, symbol)
        if mapping is None:
            logger.info(f"No mapping for {symbol} on account {account_id}")
            return SymbolResolution(
                status=ResolutionStatus.NOT_FOUND,
                standard_symbol=symbol,
                hint=(
                    f"No broker mapping exists for {symbol} on this account. "
                    f"Create a manual symbol mapping before trading it."
                ),
            )

        if mapping.source == MappingSource.AUTO and not self._config.allow_auto_mappings:
            return SymbolResolution(
                status=ResolutionStatus.NOT_FOUND,
                standard_symbol=symbol,
                broker_symbol=mapping.broker_symbol,
                source=mapping.source,
                confidence=mapping.confidence,
                hint=(
                    f"Mapping {symbol} -> {mapping.broker_symbol} is unconfirmed. "
                    f"Confirm it as a manual mapping before trading."
                ),
            )

        spec = self._store.get_spec(account_id, mapping.broker_symbol)
        if spec is None:
            return SymbolResolution(
                status=ResolutionStatus.NOT_FOUND,
                standard_symbol=symbol,
                broker_symbol=mapping.broker_symbol,
                source=mapping.source,
                confidence=mapping.confidence,
                hint=(
                    f"Broker symbol {mapping.broker_symbol} has no synced specification. "
                    f"Sync symbols from the terminal or fix the mapping."
                ),
            )

        return SymbolResolution(
            status=ResolutionStatus.RESOLVED,
            standard_symbol=symbol,
            broker_symbol=mapping.broker_symbol,
            spec=spec,
            source=mapping.source,
            confidence=mapping.confidence,
        )

    def normalize_lot(
        self,
        account_id: str,
        broker_symbol: str,
        requested_lot: float,
    ) -> LotNormalization:
        """
        Normalize a lot size against the account's synced spec.

        Returns:
            LotNormalization (SPEC_NOT_FOUND when no spec is synced)
        """
        spec = self._store.get_spec(account_id, broker_symbol)
        if spec is None:
            return LotNormalization(
                status=LotStatus.SPEC_NOT_FOUND,
                requested_lot=requested_lot,
                message=f"No broker specification synced for {broker_symbol}",
            )
        return normalize_lot_size(requested_lot, spec)

    def validate_order_for_execution(
        self,
        standard_symbol: str,
        account_id: str,
        lot_size: float,
        entry_price: Optional[float],
        stop_loss: Optional[float],
        direction,
        current_price: Optional[float] = None,
    ) -> OrderValidationResult:
        """
        Resolve, normalize and sanity-check an order.

        Args:
            standard_symbol: Broker-agnostic symbol
            account_id: Trading account ID
            lot_size: Requested lot size
            entry_price: Entry for pending orders, None for market
            stop_loss: Stop loss price
            direction: BUY or SELL
            current_price: Market price for market orders

        Returns:
            OrderValidationResult (valid only if nothing failed)
        """
        direction = parse_enum(Direction, direction, "direction")
        errors: List[str] = []
        warnings: List[str] = []

        resolution = self.resolve(account_id, standard_symbol)
        if not resolution.found:
            errors.append(
                f"Symbol {resolution.standard_symbol or standard_symbol} "
                f"cannot be traded: {resolution.hint}"
            )
            return OrderValidationResult(
                valid=False,
                broker_symbol=resolution.broker_symbol,
                errors=errors,
                resolution=resolution,
            )

        spec = resolution.spec
        normalized_lot: Optional[float] = None

        # Lot size
        lot = normalize_lot_size(lot_size, spec)
        if lot.ok:
            normalized_lot = lot.normalized_lot
            warnings.extend(self._lot_warnings(lot, spec))
        else:
            errors.append(lot.message)

        # Trade mode
        errors.extend(self._trade_mode_errors(spec, direction))

        # Prices
        price_errors, price_warnings = self._price_checks(
            spec, direction, entry_price, stop_loss, current_price
        )
        errors.extend(price_errors)
        warnings.extend(price_warnings)

        if errors:
            logger.info(
                f"Order for {resolution.standard_symbol} on {account_id} rejected: "
                f"{len(errors)} error(s)"
            )

        return OrderValidationResult(
            valid=not errors,
            broker_symbol=resolution.broker_symbol,
            normalized_lot_size=normalized_lot,
            errors=errors,
            warnings=warnings,
            resolution=resolution,
        )

    def suggest_mappings(
        self,
        account_id: str,
        standard_symbol: str,
        limit: Optional[int] = None,
    ) -> List[MappingSuggestion]:
        """
        Propose broker symbols for an unmapped standard symbol.

        Candidates only. Nothing is written.

        Returns:
            Suggestions sorted by confidence, best first
        """
        symbol = normalize_symbol(standard_symbol)
        if not symbol:
            return []

        limit = limit or self._config.max_suggestions
        variants = {_clean(v) for v in SYMBOL_VARIATIONS.get(symbol, [])}
        clean_standard = _clean(symbol)

        suggestions = []
        for spec in self._store.list_specs(account_id):
            confidence, reason = _match_confidence(
                clean_standard, _clean(spec.symbol), variants
            )
            if confidence > self._config.min_suggestion_confidence:
                suggestions.append(
                    MappingSuggestion(
                        broker_symbol=spec.symbol,
                        confidence=round(confidence, 2),
                        reason=reason,
                    )
                )

        suggestions.sort(key=lambda s: (-s.confidence, s.broker_symbol))
        return suggestions[:limit]

    # --------------------------------------------------------

    def _lot_warnings(self, lot: LotNormalization, spec: SymbolSpec) -> List[str]:
        warnings = []
        if lot.requested_lot > spec.max_lot:
            warnings.append(
                f"Lot size capped at broker maximum {spec.max_lot} "
                f"(requested {lot.requested_lot})"
            )
        elif lot.normalized_lot < lot.requested_lot:
            warnings.append(
                f"Lot size rounded down from {lot.requested_lot} to "
                f"{lot.normalized_lot} (lot step {spec.lot_step})"
            )

        reduction = (lot.requested_lot - lot.normalized_lot) / lot.requested_lot
        if reduction > self._config.material_rounding_fraction:
            warnings.append(
                f"Lot size reduced by {reduction * 100:.1f}% of the requested size"
            )
        return warnings

    @staticmethod
    def _trade_mode_errors(spec: SymbolSpec, direction: Direction) -> List[str]:
        mode = spec.trade_mode
        if mode == TradeMode.DISABLED:
            return [f"Trading is disabled for {spec.symbol}"]
        if mode == TradeMode.CLOSE_ONLY:
            return [f"{spec.symbol} is close-only; new positions are not allowed"]
        if mode == TradeMode.LONG_ONLY and direction == Direction.SELL:
            return [f"{spec.symbol} allows long positions only"]
        if mode == TradeMode.SHORT_ONLY and direction == Direction.BUY:
            return [f"{spec.symbol} allows short positions only"]
        return []

    def _price_checks(
        self,
        spec: SymbolSpec,
        direction: Direction,
        entry_price: Optional[float],
        stop_loss: Optional[float],
        current_price: Optional[float],
    ) -> Tuple[List[str], List[str]]:
        errors: List[str] = []
        warnings: List[str] = []

        if stop_loss is None or stop_loss <= 0:
            errors.append("Stop loss is required")
            return errors, warnings

        reference = entry_price if entry_price else current_price
        if not reference:
            return errors, warnings

        label = "entry price" if entry_price else "current price"
        if direction == Direction.BUY and stop_loss >= reference:
            errors.append(
                f"Stop loss ({stop_loss}) must be below {label} ({reference}) for BUY orders"
            )
        elif direction == Direction.SELL and stop_loss <= reference:
            errors.append(
                f"Stop loss ({stop_loss}) must be above {label} ({reference}) for SELL orders"
            )

        if spec.stop_level > 0 and spec.point > 0:
            distance_points = round(abs(reference - stop_loss) / spec.point)
            if distance_points < spec.stop_level:
                errors.append(
                    f"Stop loss too close: {distance_points} points, "
                    f"broker minimum is {spec.stop_level} points"
                )
            elif distance_points < spec.stop_level * self._config.stop_level_warning_multiplier:
                warnings.append(
                    f"Stop loss is close to the broker minimum distance "
                    f"({distance_points} of {spec.stop_level} points)"
                )

        return errors, warnings


def _match_confidence(
    clean_standard: str,
    clean_broker: str,
    variants: set,
) -> Tuple[float, str]:
    if not clean_broker:
        return 0.0, "empty"
    if clean_broker == clean_standard:
        return 1.0, "exact"
    if clean_broker in variants:
        return 0.9, "known variation"
    if clean_standard in clean_broker:
        return 0.7, "broker symbol contains standard symbol"
    if clean_broker in clean_standard:
        return 0.6, "standard symbol contains broker symbol"

    matches = sum(1 for a, b in zip(clean_standard, clean_broker) if a == b)
    return matches / max(len(clean_standard), len(clean_broker)), "character similarity"
