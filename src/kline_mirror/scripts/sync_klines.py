"""CLI: reconcile local klines with Binance for one symbol across intervals.

Usage:
    sync-klines --symbol BTCUSDT
    sync-klines --symbol ETHUSDT --intervals 1m,1h --futures
    python -m kline_mirror.scripts.sync_klines --symbol BTCUSDT -v
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from datetime import datetime, timezone

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from kline_mirror.config import load_settings
from kline_mirror.errors import MirrorError
from kline_mirror.intervals import SUPPORTED_INTERVALS
from kline_mirror.service import open_service

console = Console()
logging.basicConfig(
    level=logging.WARNING,
    handlers=[RichHandler(console=console, show_path=False)],
)
log = logging.getLogger(__name__)

_DEFAULT_SYMBOL = "BTCUSDT"
_DEFAULT_INTERVALS = "1m,5m,1h,1d"


def _fmt_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    p = argparse.ArgumentParser(
        description="Reconcile local klines with Binance → DuckDB",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Supported intervals: {', '.join(SUPPORTED_INTERVALS)}",
    )
    p.add_argument("--db", default=settings.db_path, help=f"DuckDB file path (default: {settings.db_path})")
    p.add_argument("--symbol", default=_DEFAULT_SYMBOL)
    p.add_argument(
        "--intervals",
        default=_DEFAULT_INTERVALS,
        help=f"Comma-separated intervals (default: {_DEFAULT_INTERVALS})",
    )
    p.add_argument("--futures", action="store_true", default=settings.futures,
                   help="Use USD-M futures endpoints")
    p.add_argument("--max-pages", type=int, default=settings.max_backfill_pages,
                   help="Upper bound on backfill pages per interval")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def main() -> None:
    args = build_parser().parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    requested = [iv.strip() for iv in args.intervals.split(",") if iv.strip()]
    invalid = [iv for iv in requested if iv not in SUPPORTED_INTERVALS]
    if invalid:
        console.print(f"[red]Unknown interval(s): {invalid}[/]")
        raise SystemExit(1)

    settings = replace(
        load_settings(), db_path=args.db, futures=args.futures, max_backfill_pages=args.max_pages
    )
    service = open_service(settings)
    symbol = args.symbol.upper()

    console.print(
        f"[bold cyan]Syncing {symbol}[/]  "
        f"intervals: {requested}  "
        f"market: {'futures' if settings.futures else 'spot'}  "
        f"db: {settings.db_path}"
    )

    summary_rows: list[tuple] = []
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[cyan]{task.description:<6}[/]"),
            BarColumn(bar_width=25),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("", total=len(requested))
            for interval in requested:
                progress.update(task, description=interval)
                result = service.reconciler.reconcile(symbol, interval)
                bars = result.bars
                first = _fmt_ms(bars[0].open_time) if bars else "-"
                last = _fmt_ms(bars[-1].open_time) if bars else "-"
                summary_rows.append(
                    (interval, result.path.value, str(result.fetched), str(len(bars)), first, last)
                )
                progress.advance(task)
    except MirrorError as exc:
        console.print(f"[red]ERROR: {exc}[/]")
        raise SystemExit(1)
    finally:
        service.close()

    tbl = Table(title=f"Sync Summary — {symbol}", show_header=True)
    for col in ("Interval", "Path", "Fetched", "Total stored", "First", "Last"):
        tbl.add_column(col, style="cyan" if col == "Interval" else "white")
    for row in summary_rows:
        tbl.add_row(*row)
    console.print(tbl)


if __name__ == "__main__":
    main()
