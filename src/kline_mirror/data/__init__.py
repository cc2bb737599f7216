"""Data layer: Binance REST source, DuckDB-backed repositories, and validation."""
from .bar_repository import DuckDBBarRepository
from .binance_client import BinanceClient
from .refresh_state import DuckDBRefreshState
from .validator import ValidationReport, validate

__all__ = ["BinanceClient", "DuckDBBarRepository", "DuckDBRefreshState", "ValidationReport", "validate"]
