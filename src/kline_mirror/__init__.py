from .data.bar_repository import DuckDBBarRepository
from .data.binance_client import BinanceClient
from .engine.quantity import compute_quantity
from .engine.reconciler import KlineReconciler, ReconcilePath, ReconcileResult
from .engine.staleness import RefreshPolicy, StalenessGate
from .errors import (
    DuplicateKeyError,
    MirrorError,
    MissingFilterError,
    NoPriceError,
    TransportError,
    UnknownIntervalError,
)
from .service import ExchangeService, open_service
from .types import Bar, MarketDataSource, RefreshStateStore, SymbolInfo, Ticker, TimeSeriesRepository

__all__ = [
    # Engine
    "KlineReconciler",
    "ReconcilePath",
    "ReconcileResult",
    "StalenessGate",
    "RefreshPolicy",
    "compute_quantity",
    # Service
    "ExchangeService",
    "open_service",
    # Data
    "BinanceClient",
    "DuckDBBarRepository",
    # Types
    "Bar",
    "Ticker",
    "SymbolInfo",
    # Protocols
    "MarketDataSource",
    "TimeSeriesRepository",
    "RefreshStateStore",
    # Errors
    "MirrorError",
    "TransportError",
    "UnknownIntervalError",
    "DuplicateKeyError",
    "NoPriceError",
    "MissingFilterError",
]
