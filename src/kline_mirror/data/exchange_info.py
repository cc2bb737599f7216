"""Projection of the Binance exchangeInfo payload into SymbolInfo records."""
from __future__ import annotations

from decimal import Decimal

from ..errors import MissingFilterError
from ..types import SymbolInfo


def _find_filter(symbol_raw: dict, filter_type: str) -> dict | None:
    for flt in symbol_raw.get("filters") or []:
        if flt.get("filterType") == filter_type:
            return flt
    return None


def _min_price(symbol_raw: dict) -> Decimal | None:
    flt = _find_filter(symbol_raw, "PRICE_FILTER")
    if flt is None or not flt.get("minPrice"):
        return None
    return Decimal(flt["minPrice"])


def extract_symbols(info: dict) -> list[SymbolInfo]:
    """Keep the subset of exchangeInfo the mirror serves (PRICE_FILTER.minPrice only)."""
    symbols: list[SymbolInfo] = []
    for raw in info.get("symbols") or []:
        symbols.append(
            SymbolInfo(
                symbol=raw["symbol"],
                status=raw.get("status", ""),
                base_asset=raw.get("baseAsset", ""),
                base_asset_precision=int(raw.get("baseAssetPrecision", 0)),
                quote_asset=raw.get("quoteAsset", ""),
                min_price=_min_price(raw),
                order_types=frozenset(raw.get("orderTypes") or ()),
                permissions=frozenset(raw.get("permissions") or ()),
            )
        )
    return symbols


def find_step_size(info: dict, symbol: str) -> Decimal:
    """Return MARKET_LOT_SIZE.stepSize for symbol.

    Raises MissingFilterError when the symbol or its lot-size filter is absent.
    """
    for raw in info.get("symbols") or []:
        if raw.get("symbol") != symbol.upper():
            continue
        flt = _find_filter(raw, "MARKET_LOT_SIZE")
        if flt is None or not flt.get("stepSize"):
            raise MissingFilterError(f"{symbol} has no MARKET_LOT_SIZE filter")
        return Decimal(flt["stepSize"])
    raise MissingFilterError(f"{symbol} not found in exchange info")
