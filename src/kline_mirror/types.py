from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Protocol


@dataclass(frozen=True)
class Bar:
    symbol: str
    interval: str
    open_time: int  # ms epoch
    close_time: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal

    @property
    def key(self) -> tuple[str, str, int]:
        """Identity of the bar: (symbol, interval, open_time)."""
        return (self.symbol, self.interval, self.open_time)


@dataclass(frozen=True)
class Ticker:
    symbol: str
    price_change: Decimal
    price_change_percent: Decimal
    last_price: Decimal
    open: Decimal
    high: Decimal
    low: Decimal
    volume: Decimal
    quote_volume: Decimal
    open_time: int
    close_time: int


@dataclass(frozen=True)
class SymbolInfo:
    symbol: str
    status: str
    base_asset: str
    base_asset_precision: int
    quote_asset: str
    min_price: Decimal | None
    order_types: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)


# ── Structural Protocols (collaborators of the engine) ──────────────────────


class MarketDataSource(Protocol):
    """Remote exchange capability. Bars are returned ascending by open_time."""

    def get_tail_bar(self, symbol: str, interval: str) -> Bar: ...

    def get_range(
        self,
        symbol: str,
        interval: str,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int | None = None,
    ) -> list[Bar]: ...

    def get_ticker_24h(self) -> list[Ticker]: ...

    def get_exchange_info(self) -> dict: ...

    def get_price(self, symbol: str) -> Decimal | None: ...


class TimeSeriesRepository(Protocol):
    """Persistence facade over bars keyed by (symbol, interval, open_time)."""

    def query(self, symbol: str, interval: str) -> list[Bar]: ...

    def append(self, bars: Iterable[Bar]) -> int: ...

    def upsert_tail(self, bar: Bar) -> None: ...

    def upsert_many(self, bars: Iterable[Bar]) -> int: ...


class RefreshStateStore(Protocol):
    """Key → last-refreshed timestamp (ms), 0 when never refreshed."""

    def get(self, key: str) -> int: ...

    def advance(self, key: str, now_ms: int) -> None: ...

    def compare_and_advance(self, key: str, now_ms: int, interval_ms: int) -> bool: ...
