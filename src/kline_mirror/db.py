"""DuckDB database layer: connection, schema init, insert/upsert and read operations.

Source of truth for the local mirror: bars, 24h tickers, symbol metadata and
the refresh timestamps that gate the auxiliary caches.
File: data/mirror.duckdb (default)
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import duckdb

from .types import Bar, SymbolInfo, Ticker

log = logging.getLogger(__name__)

_DEFAULT_DB = "data/mirror.duckdb"

# ── DDL ───────────────────────────────────────────────────────────────────────
_DDL = """
CREATE TABLE IF NOT EXISTS bars (
    symbol      TEXT           NOT NULL,
    interval    TEXT           NOT NULL,
    open_time   BIGINT         NOT NULL,
    close_time  BIGINT         NOT NULL,
    open        DECIMAL(38,18) NOT NULL,
    high        DECIMAL(38,18) NOT NULL,
    low         DECIMAL(38,18) NOT NULL,
    close       DECIMAL(38,18) NOT NULL,
    volume      DECIMAL(38,18) NOT NULL,
    PRIMARY KEY (symbol, interval, open_time)
);

CREATE TABLE IF NOT EXISTS tickers (
    symbol               TEXT           PRIMARY KEY,
    price_change         DECIMAL(38,18) NOT NULL,
    price_change_percent DECIMAL(38,18) NOT NULL,
    last_price           DECIMAL(38,18) NOT NULL,
    open                 DECIMAL(38,18) NOT NULL,
    high                 DECIMAL(38,18) NOT NULL,
    low                  DECIMAL(38,18) NOT NULL,
    volume               DECIMAL(38,18) NOT NULL,
    quote_volume         DECIMAL(38,18) NOT NULL,
    open_time            BIGINT         NOT NULL,
    close_time           BIGINT         NOT NULL
);

CREATE TABLE IF NOT EXISTS symbols (
    symbol               TEXT           PRIMARY KEY,
    status               TEXT           NOT NULL,
    base_asset           TEXT           NOT NULL,
    base_asset_precision INTEGER        NOT NULL,
    quote_asset          TEXT           NOT NULL,
    min_price            DECIMAL(38,18),
    order_types          TEXT           NOT NULL,
    permissions          TEXT           NOT NULL
);

CREATE TABLE IF NOT EXISTS refresh_state (
    key          TEXT   PRIMARY KEY,
    refreshed_at BIGINT NOT NULL
);
"""

_BAR_COLUMNS = (
    "symbol, interval, open_time, close_time, open, high, low, close, volume"
)

TICKER_COLUMNS = (
    "price_change", "price_change_percent", "last_price", "open", "high", "low",
    "volume", "quote_volume", "open_time", "close_time",
)

_SYMBOL_COLUMNS = (
    "symbol, status, base_asset, base_asset_precision, quote_asset, "
    "min_price, order_types, permissions"
)


def connect(db_path: str | Path = _DEFAULT_DB) -> duckdb.DuckDBPyConnection:
    """Open (or create) a DuckDB database file and return a connection."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    con = duckdb.connect(str(path))
    return con


def init_db(con: duckdb.DuckDBPyConnection) -> None:
    """Create all tables and indexes if they don't exist."""
    con.execute(_DDL)
    log.debug("DB schema initialised")


@contextmanager
def transaction(con: duckdb.DuckDBPyConnection) -> Iterator[duckdb.DuckDBPyConnection]:
    """Run the block in one transaction; roll back on any exception."""
    con.begin()
    try:
        yield con
    except BaseException:
        con.rollback()
        raise
    con.commit()


# ── Bars ──────────────────────────────────────────────────────────────────────

def _bar_row(bar: Bar) -> tuple:
    return (
        bar.symbol.upper(), bar.interval, bar.open_time, bar.close_time,
        bar.open, bar.high, bar.low, bar.close, bar.volume,
    )


def insert_bars(con: duckdb.DuckDBPyConnection, bars: Sequence[Bar]) -> int:
    """Plain INSERT of bars in one transaction.

    Raises duckdb.ConstraintException if any key is already stored.
    """
    if not bars:
        return 0
    with transaction(con):
        con.executemany(
            f"INSERT INTO bars ({_BAR_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [_bar_row(b) for b in bars],
        )
    return len(bars)


def upsert_bars(con: duckdb.DuckDBPyConnection, bars: Sequence[Bar]) -> int:
    """INSERT OR REPLACE bars keyed on (symbol, interval, open_time).

    The caller must pass at most one bar per key.
    Returns the count of rows upserted.
    """
    if not bars:
        return 0
    with transaction(con):
        con.executemany(
            f"INSERT OR REPLACE INTO bars ({_BAR_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [_bar_row(b) for b in bars],
        )
    return len(bars)


def read_bars(con: duckdb.DuckDBPyConnection, symbol: str, interval: str) -> list[Bar]:
    """Load all bars of symbol/interval ordered by open_time ascending."""
    rows = con.execute(
        f"""
        SELECT {_BAR_COLUMNS} FROM bars
        WHERE symbol = ? AND interval = ?
        ORDER BY open_time ASC
        """,
        [symbol.upper(), interval],
    ).fetchall()
    return [
        Bar(
            symbol=r[0], interval=r[1], open_time=int(r[2]), close_time=int(r[3]),
            open=r[4], high=r[5], low=r[6], close=r[7], volume=r[8],
        )
        for r in rows
    ]


# ── Tickers ───────────────────────────────────────────────────────────────────

def upsert_tickers(con: duckdb.DuckDBPyConnection, tickers: Iterable[Ticker]) -> int:
    """Replace tickers wholesale by symbol."""
    latest = {t.symbol.upper(): t for t in tickers}
    if not latest:
        return 0
    cols = ", ".join(("symbol",) + TICKER_COLUMNS)
    marks = ", ".join("?" * (len(TICKER_COLUMNS) + 1))
    with transaction(con):
        con.executemany(
            f"INSERT OR REPLACE INTO tickers ({cols}) VALUES ({marks})",
            [
                (sym,) + tuple(getattr(t, c) for c in TICKER_COLUMNS)
                for sym, t in latest.items()
            ],
        )
    return len(latest)


def read_tickers(
    con: duckdb.DuckDBPyConnection,
    quote_asset: str | None = None,
    sort_by: str | None = None,
    sort_dir: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[Ticker]:
    """Read stored tickers.

    With quote_asset, only symbols ending in it and with a positive last price.
    sort_by must be 'symbol' or one of TICKER_COLUMNS; sort_dir 'asc' or 'desc'.
    """
    conditions: list[str] = []
    params: list = []
    if quote_asset:
        conditions.append("ends_with(symbol, ?)")
        params.append(quote_asset.upper())
        conditions.append("last_price > 0")

    order = "symbol ASC"
    if sort_by:
        if sort_by != "symbol" and sort_by not in TICKER_COLUMNS:
            raise ValueError(f"Cannot sort tickers by {sort_by!r}")
        direction = (sort_dir or "asc").lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"Sort direction must be 'asc' or 'desc', got {sort_dir!r}")
        order = f"{sort_by} {direction.upper()}, symbol ASC"

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    cols = ", ".join(("symbol",) + TICKER_COLUMNS)
    rows = con.execute(
        f"SELECT {cols} FROM tickers {where} ORDER BY {order}{_page(limit, offset)}",
        params,
    ).fetchall()
    return [
        Ticker(
            symbol=r[0], price_change=r[1], price_change_percent=r[2], last_price=r[3],
            open=r[4], high=r[5], low=r[6], volume=r[7], quote_volume=r[8],
            open_time=int(r[9]), close_time=int(r[10]),
        )
        for r in rows
    ]


# ── Symbols ───────────────────────────────────────────────────────────────────

def upsert_symbols(con: duckdb.DuckDBPyConnection, symbols: Iterable[SymbolInfo]) -> int:
    """Replace symbol metadata by symbol. Sets are stored comma-joined."""
    latest = {s.symbol.upper(): s for s in symbols}
    if not latest:
        return 0
    with transaction(con):
        con.executemany(
            f"INSERT OR REPLACE INTO symbols ({_SYMBOL_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    sym, s.status, s.base_asset, s.base_asset_precision, s.quote_asset,
                    s.min_price, ",".join(sorted(s.order_types)), ",".join(sorted(s.permissions)),
                )
                for sym, s in latest.items()
            ],
        )
    return len(latest)


def read_symbols(
    con: duckdb.DuckDBPyConnection,
    quote_asset: str | None = None,
    search: str | None = None,
    status: str | None = "TRADING",
    limit: int | None = None,
    offset: int = 0,
) -> list[SymbolInfo]:
    """Read stored symbol metadata ordered by symbol."""
    conditions: list[str] = []
    params: list = []
    if status:
        conditions.append("status = ?")
        params.append(status)
    if quote_asset:
        conditions.append("quote_asset = ?")
        params.append(quote_asset.upper())
    if search:
        conditions.append("contains(symbol, ?)")
        params.append(search.upper())

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    rows = con.execute(
        f"SELECT {_SYMBOL_COLUMNS} FROM symbols {where} ORDER BY symbol ASC{_page(limit, offset)}",
        params,
    ).fetchall()
    return [
        SymbolInfo(
            symbol=r[0], status=r[1], base_asset=r[2], base_asset_precision=int(r[3]),
            quote_asset=r[4], min_price=r[5],
            order_types=_split_set(r[6]), permissions=_split_set(r[7]),
        )
        for r in rows
    ]


def read_symbol_min_price(con: duckdb.DuckDBPyConnection, symbol: str) -> Decimal | None:
    row = con.execute(
        "SELECT min_price FROM symbols WHERE symbol = ?", [symbol.upper()]
    ).fetchone()
    return row[0] if row else None


# ── Refresh state ─────────────────────────────────────────────────────────────

def read_refresh_time(con: duckdb.DuckDBPyConnection, key: str) -> int:
    """Return last refreshed timestamp (ms) for key, 0 when never refreshed."""
    row = con.execute(
        "SELECT refreshed_at FROM refresh_state WHERE key = ?", [key]
    ).fetchone()
    return int(row[0]) if row else 0


def advance_refresh_time(con: duckdb.DuckDBPyConnection, key: str, now_ms: int) -> None:
    """Move key's timestamp forward to now_ms. Never moves it backwards."""
    with transaction(con):
        con.execute("INSERT OR IGNORE INTO refresh_state (key, refreshed_at) VALUES (?, 0)", [key])
        con.execute(
            "UPDATE refresh_state SET refreshed_at = ? WHERE key = ? AND refreshed_at < ?",
            [now_ms, key, now_ms],
        )


def compare_and_advance_refresh_time(
    con: duckdb.DuckDBPyConnection, key: str, now_ms: int, interval_ms: int
) -> bool:
    """Set key's timestamp to now_ms only if it is older than interval_ms.

    Check and write are one conditional UPDATE. Returns True if this call won.
    """
    with transaction(con):
        con.execute("INSERT OR IGNORE INTO refresh_state (key, refreshed_at) VALUES (?, 0)", [key])
        row = con.execute(
            "UPDATE refresh_state SET refreshed_at = ? "
            "WHERE key = ? AND refreshed_at < CAST(? AS BIGINT) - CAST(? AS BIGINT)",
            [now_ms, key, now_ms, interval_ms],
        ).fetchone()
    return bool(row and row[0])


# ── Helpers ───────────────────────────────────────────────────────────────────

def _page(limit: int | None, offset: int) -> str:
    if limit is None:
        return f" OFFSET {int(offset)}" if offset else ""
    return f" LIMIT {int(limit)} OFFSET {int(offset)}"


def _split_set(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(part for part in raw.split(",") if part)
