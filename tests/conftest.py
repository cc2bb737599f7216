"""Root conftest: add src/ to sys.path and provide shared fakes for all test modules."""
import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kline_mirror.db import connect, init_db  # noqa: E402
from kline_mirror.types import Bar, Ticker  # noqa: E402

START_MS = 1_700_000_040_000  # aligned to a 1m boundary
MINUTE_MS = 60_000


def make_bar(
    open_time_ms: int,
    price: str = "30000.5",
    symbol: str = "BTCUSDT",
    interval: str = "1m",
    step_ms: int = MINUTE_MS,
    volume: str = "10.5",
) -> Bar:
    p = Decimal(price)
    return Bar(
        symbol=symbol,
        interval=interval,
        open_time=open_time_ms,
        close_time=open_time_ms + step_ms - 1,
        open=p,
        high=p + 100,
        low=p - 100,
        close=p + 50,
        volume=Decimal(volume),
    )


def make_bars(count: int, start_ms: int = START_MS, **kw) -> list[Bar]:
    step = kw.get("step_ms", MINUTE_MS)
    return [make_bar(start_ms + i * step, **kw) for i in range(count)]


def make_ticker(symbol: str, last_price: str = "100", quote_volume: str = "1000", change_pct: str = "1.5") -> Ticker:
    return Ticker(
        symbol=symbol,
        price_change=Decimal("1"),
        price_change_percent=Decimal(change_pct),
        last_price=Decimal(last_price),
        open=Decimal("99"),
        high=Decimal("101"),
        low=Decimal("98"),
        volume=Decimal("10"),
        quote_volume=Decimal(quote_volume),
        open_time=START_MS,
        close_time=START_MS + 86_400_000 - 1,
    )


class FakeMarketSource:
    """In-memory MarketDataSource recording every remote call."""

    def __init__(self, bars: list[Bar] | None = None, default_page: int = 500) -> None:
        self.bars: dict[tuple[str, str, int], Bar] = {b.key: b for b in (bars or [])}
        self.default_page = default_page
        self.tail: Bar | None = None
        self.fail_with: Exception | None = None
        self.tickers: list[Ticker] = []
        self.exchange_info: dict = {"symbols": []}
        self.prices: dict[str, Decimal] = {}
        self.range_calls: list[tuple] = []
        self.ticker_calls = 0
        self.exchange_info_calls = 0

    def set_bars(self, bars: list[Bar]) -> None:
        for b in bars:
            self.bars[b.key] = b

    def _series(self, symbol: str, interval: str) -> list[Bar]:
        return sorted(
            (b for b in self.bars.values() if b.symbol == symbol and b.interval == interval),
            key=lambda b: b.open_time,
        )

    def get_tail_bar(self, symbol: str, interval: str) -> Bar:
        if self.fail_with is not None:
            raise self.fail_with
        if self.tail is not None:
            return self.tail
        return self._series(symbol, interval)[-1]

    def get_range(self, symbol, interval, start_time=None, end_time=None, limit=None):
        self.range_calls.append((symbol, interval, start_time, end_time, limit))
        if self.fail_with is not None:
            raise self.fail_with
        series = self._series(symbol, interval)
        if start_time is None and end_time is None:
            return series[-(limit or self.default_page):]
        series = [
            b for b in series
            if (start_time is None or b.open_time >= start_time)
            and (end_time is None or b.open_time <= end_time)
        ]
        return series[: limit or self.default_page]

    def get_ticker_24h(self) -> list[Ticker]:
        self.ticker_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.tickers)

    def get_exchange_info(self) -> dict:
        self.exchange_info_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return self.exchange_info

    def get_price(self, symbol: str) -> Decimal | None:
        return self.prices.get(symbol)


class FakeClock:
    def __init__(self, now: int = START_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def con(tmp_path):
    con = connect(tmp_path / "test.duckdb")
    init_db(con)
    yield con
    con.close()


@pytest.fixture
def source() -> FakeMarketSource:
    return FakeMarketSource()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
