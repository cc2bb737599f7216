"""CLI: validate stored klines coverage and contiguity.

Usage:
    validate-klines --symbol BTCUSDT --interval 1m
    python -m kline_mirror.scripts.validate_klines --symbol BTCUSDT
"""
from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.table import Table

from kline_mirror import db
from kline_mirror.config import load_settings
from kline_mirror.data.bar_repository import DuckDBBarRepository
from kline_mirror.data.validator import validate
from kline_mirror.errors import MirrorError
from kline_mirror.intervals import interval_ms

console = Console()


def build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    p = argparse.ArgumentParser(description="Validate stored klines quality")
    p.add_argument("--symbol",        default="BTCUSDT", help="Symbol, e.g. BTCUSDT")
    p.add_argument("--interval",      default="1m",       help="Interval, e.g. 1m")
    p.add_argument("--db",            default=settings.db_path)
    p.add_argument("--min-score",     type=float, default=0.95, help="Fail if quality_score below this")
    p.add_argument("--gap-threshold", type=int,   default=0,    help="Report gaps with > N missing bars")
    return p


def main() -> None:
    args = build_parser().parse_args()
    symbol = args.symbol.upper()

    con = db.connect(args.db)
    try:
        interval_ms(args.interval)
        db.init_db(con)
        bars = DuckDBBarRepository(con).query(symbol, args.interval)
    except MirrorError as exc:
        console.print(f"[red]ERROR: {exc}[/]")
        sys.exit(1)
    finally:
        con.close()

    if not bars:
        console.print(f"[red]No data found for {symbol} {args.interval}[/]")
        console.print(f"Run: sync-klines --symbol {symbol} --intervals {args.interval}")
        sys.exit(1)

    report = validate(bars, symbol, args.interval, gap_threshold=args.gap_threshold)

    # ── Summary table ─────────────────────────────────────────────────────────
    tbl = Table(title=f"Data Quality — {symbol} {args.interval}", show_header=False)
    tbl.add_column("Key",   style="bold cyan", width=18)
    tbl.add_column("Value", style="white")
    tbl.add_row("Period",     f"{report.start.isoformat()} → {report.end.isoformat()}")
    tbl.add_row("Bars",       f"{report.total_bars:,} / {report.expected_bars:,} expected")
    tbl.add_row("Gaps",       str(len(report.missing_gaps)))
    tbl.add_row("Duplicates", str(report.duplicate_count))
    score_color = "green" if report.is_ok(args.min_score) else "red"
    tbl.add_row("Quality",    f"[{score_color}]{report.quality_score:.4f}[/]")
    console.print(tbl)

    if report.schema_errors:
        console.print("[red]Schema errors:[/] " + "; ".join(report.schema_errors))

    if report.missing_gaps:
        gap_tbl = Table(title="Gaps", show_header=True)
        for col in ("From", "To", "Missing"):
            gap_tbl.add_column(col)
        for g in report.missing_gaps[:20]:
            gap_tbl.add_row(g.gap_start.isoformat(), g.gap_end.isoformat(), str(g.missing_bars))
        console.print(gap_tbl)
        if len(report.missing_gaps) > 20:
            console.print(f"… and {len(report.missing_gaps) - 20} more gaps")

    if not report.is_ok(args.min_score):
        sys.exit(1)


if __name__ == "__main__":
    main()
