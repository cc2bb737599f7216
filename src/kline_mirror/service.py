"""Read API served to the presentation layer.

Klines go through the reconciler; tickers and symbols are always answered
from the local cache after a staleness-gated refresh.
"""
from __future__ import annotations

import logging
from decimal import Decimal

import duckdb

from . import db
from .config import Settings
from .data.bar_repository import DuckDBBarRepository
from .data.binance_client import BinanceClient
from .data.exchange_info import extract_symbols, find_step_size
from .data.refresh_state import DuckDBRefreshState
from .engine.quantity import compute_quantity
from .engine.reconciler import KlineReconciler
from .engine.staleness import EXCHANGE_INFO, TICKER_24H, RefreshPolicy, StalenessGate
from .intervals import SUPPORTED_INTERVALS
from .types import Bar, MarketDataSource, SymbolInfo, Ticker

log = logging.getLogger(__name__)


class ExchangeService:
    def __init__(
        self,
        source: MarketDataSource,
        con: duckdb.DuckDBPyConnection,
        ticker_policy: RefreshPolicy = TICKER_24H,
        exchange_info_policy: RefreshPolicy = EXCHANGE_INFO,
        gate: StalenessGate | None = None,
        page_limit: int = 1000,
        max_backfill_pages: int = 10,
    ) -> None:
        self.source = source
        self._con = con
        self.repository = DuckDBBarRepository(con)
        self.reconciler = KlineReconciler(
            source, self.repository, page_limit=page_limit, max_backfill_pages=max_backfill_pages
        )
        self.gate = gate or StalenessGate(DuckDBRefreshState(con))
        self.ticker_policy = ticker_policy
        self.exchange_info_policy = exchange_info_policy

    def close(self) -> None:
        self._con.close()

    # ── Klines ────────────────────────────────────────────────────────────────

    def get_klines(self, symbol: str, interval: str) -> list[Bar]:
        return self.reconciler.get_klines(symbol, interval)

    def update_and_get_last_bar(self, symbol: str, interval: str) -> Bar:
        """Fetch the remote tail bar, store it and return it."""
        bar = self.source.get_tail_bar(symbol, interval)
        self.repository.upsert_tail(bar)
        return bar

    def get_timeframes(self) -> list[str]:
        return list(SUPPORTED_INTERVALS)

    # ── Tickers ───────────────────────────────────────────────────────────────

    def refresh_tickers(self) -> bool:
        return self.gate.refresh_if_stale(self.ticker_policy, self._store_tickers)

    def _store_tickers(self) -> None:
        written = db.upsert_tickers(self._con, self.source.get_ticker_24h())
        log.info("Stored %d tickers", written)

    def get_tickers(
        self,
        quote_asset: str | None = None,
        sort_by: str | None = None,
        sort_dir: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Ticker]:
        self.refresh_tickers()
        return db.read_tickers(self._con, quote_asset, sort_by, sort_dir, limit, offset)

    # ── Symbols ───────────────────────────────────────────────────────────────

    def update_exchange_info(self) -> bool:
        return self.gate.refresh_if_stale(self.exchange_info_policy, self._store_exchange_info)

    def _store_exchange_info(self) -> None:
        written = db.upsert_symbols(self._con, extract_symbols(self.source.get_exchange_info()))
        log.info("Stored %d symbols", written)

    def get_symbols(
        self,
        quote_asset: str | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[SymbolInfo]:
        self.update_exchange_info()
        return db.read_symbols(self._con, quote_asset, search, limit=limit, offset=offset)

    def get_symbol_min_price(self, symbol: str) -> Decimal | None:
        return db.read_symbol_min_price(self._con, symbol)

    # ── Prices / order sizing ─────────────────────────────────────────────────

    def get_last_price(self, symbol: str) -> Decimal:
        price = self.source.get_price(symbol)
        return price if price is not None else Decimal(0)

    def calculate_order_quantity(
        self, symbol: str, balance: Decimal, percent_to_spend: Decimal
    ) -> Decimal:
        """Quantity to order for `percent_to_spend` % of `balance`; 0 when no price."""
        step_size = find_step_size(self.source.get_exchange_info(), symbol)
        return compute_quantity(
            symbol, balance, percent_to_spend, self.get_last_price(symbol), step_size
        )


def open_service(settings: Settings, source: MarketDataSource | None = None) -> ExchangeService:
    """Connect the DuckDB file from settings and wire a service around it."""
    con = db.connect(settings.db_path)
    db.init_db(con)
    if source is None:
        source = BinanceClient(base_url=settings.base_url, futures=settings.futures, timeout=settings.timeout)
    return ExchangeService(
        source,
        con,
        ticker_policy=RefreshPolicy(TICKER_24H.key, settings.ticker_refresh_ms),
        exchange_info_policy=RefreshPolicy(EXCHANGE_INFO.key, settings.exchange_info_refresh_ms),
        page_limit=settings.page_limit,
        max_backfill_pages=settings.max_backfill_pages,
    )
