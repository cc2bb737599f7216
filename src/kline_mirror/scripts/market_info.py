"""CLI: cached 24h tickers, symbol metadata and order sizing.

Usage:
    market-info tickers --quote USDT --sort-by quote_volume --sort-dir desc --limit 20
    market-info symbols --quote USDT --search BTC
    market-info qty --symbol BTCUSDT --balance 1000 --percent 10
    market-info tickers --json | jq '.[0]'
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, replace
from decimal import Decimal, InvalidOperation

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from kline_mirror.config import load_settings
from kline_mirror.errors import MirrorError
from kline_mirror.service import ExchangeService, open_service

console = Console()
logging.basicConfig(
    level=logging.WARNING,
    handlers=[RichHandler(console=console, show_path=False)],
)


def _decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {raw!r}") from None


def _to_json(obj: object) -> object:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, frozenset):
        return sorted(obj)
    raise TypeError(f"Cannot serialise {type(obj).__name__}")


def build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    p = argparse.ArgumentParser(description="Cached market info from the local mirror")
    p.add_argument("--db",      default=settings.db_path)
    p.add_argument("--futures", action="store_true", default=settings.futures)
    p.add_argument("--json",    action="store_true", dest="json_mode",
                   help="Output raw JSON to stdout (for piping)")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="command", required=True)

    t = sub.add_parser("tickers", help="24h tickers (refreshed at most once per minute)")
    t.add_argument("--quote",    default=None, help="Quote asset filter, e.g. USDT")
    t.add_argument("--sort-by",  default=None, help="e.g. quote_volume, price_change_percent")
    t.add_argument("--sort-dir", default="desc", choices=("asc", "desc"))
    t.add_argument("--limit",    type=int, default=None)
    t.add_argument("--offset",   type=int, default=0)

    s = sub.add_parser("symbols", help="Trading symbols (refreshed at most every two minutes)")
    s.add_argument("--quote",  default=None)
    s.add_argument("--search", default=None, help="Substring of the symbol")
    s.add_argument("--limit",  type=int, default=None)
    s.add_argument("--offset", type=int, default=0)

    q = sub.add_parser("qty", help="Order quantity snapped to the lot-size step")
    q.add_argument("--symbol",  required=True)
    q.add_argument("--balance", type=_decimal, required=True)
    q.add_argument("--percent", type=_decimal, required=True)
    return p


def _show_tickers(service: ExchangeService, args: argparse.Namespace) -> None:
    tickers = service.get_tickers(args.quote, args.sort_by, args.sort_dir, args.limit, args.offset)
    if args.json_mode:
        json.dump([asdict(t) for t in tickers], sys.stdout, default=_to_json, indent=2)
        return
    tbl = Table(title=f"24h Tickers ({len(tickers)})")
    for col in ("Symbol", "Last", "Change %", "Volume", "Quote volume"):
        tbl.add_column(col, style="bold cyan" if col == "Symbol" else "white")
    for t in tickers:
        color = "green" if t.price_change_percent >= 0 else "red"
        tbl.add_row(
            t.symbol,
            f"{t.last_price.normalize():f}",
            f"[{color}]{t.price_change_percent:+.2f}[/]",
            f"{t.volume:,.2f}",
            f"{t.quote_volume:,.2f}",
        )
    console.print(tbl)


def _show_symbols(service: ExchangeService, args: argparse.Namespace) -> None:
    symbols = service.get_symbols(args.quote, args.search, args.limit, args.offset)
    if args.json_mode:
        json.dump([asdict(s) for s in symbols], sys.stdout, default=_to_json, indent=2)
        return
    tbl = Table(title=f"Symbols ({len(symbols)})")
    for col in ("Symbol", "Base", "Quote", "Min price", "Order types"):
        tbl.add_column(col, style="bold cyan" if col == "Symbol" else "white")
    for s in symbols:
        min_price = f"{s.min_price.normalize():f}" if s.min_price is not None else "-"
        tbl.add_row(s.symbol, s.base_asset, s.quote_asset, min_price, ", ".join(sorted(s.order_types)))
    console.print(tbl)


def _show_quantity(service: ExchangeService, args: argparse.Namespace) -> None:
    qty = service.calculate_order_quantity(args.symbol.upper(), args.balance, args.percent)
    if args.json_mode:
        json.dump({"symbol": args.symbol.upper(), "quantity": str(qty)}, sys.stdout)
        return
    if qty == 0:
        console.print(f"[yellow]Cannot size an order for {args.symbol.upper()} (no price)[/]")
        return
    console.print(f"[bold cyan]{args.symbol.upper()}[/] quantity: {qty}")


def main() -> None:
    args = build_parser().parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    service = open_service(replace(load_settings(), db_path=args.db, futures=args.futures))
    handlers = {"tickers": _show_tickers, "symbols": _show_symbols, "qty": _show_quantity}
    try:
        handlers[args.command](service, args)
    except (MirrorError, ValueError) as exc:
        console.print(f"[red]ERROR: {exc}[/]")
        sys.exit(1)
    finally:
        service.close()


if __name__ == "__main__":
    main()
