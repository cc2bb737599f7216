"""Binance REST client (spot or USD-M futures).

Handles klines, 24h tickers, exchange info and price lookups with retry and
rate-limit awareness. No API key required (public endpoints only).
"""
from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any

import requests

from ..errors import TransportError
from ..types import Bar, Ticker

log = logging.getLogger(__name__)

_SPOT_BASE = "https://api.binance.com"
_FUTURES_BASE = "https://fapi.binance.com"

_ENDPOINTS: dict[bool, dict[str, str]] = {
    False: {
        "klines":        "/api/v3/klines",
        "ticker_24h":    "/api/v3/ticker/24hr",
        "exchange_info": "/api/v3/exchangeInfo",
        "price":         "/api/v3/ticker/price",
    },
    True: {
        "klines":        "/fapi/v1/klines",
        "ticker_24h":    "/fapi/v1/ticker/24hr",
        "exchange_info": "/fapi/v1/exchangeInfo",
        "price":         "/fapi/v1/ticker/price",
    },
}
_MAX_LIMIT = {False: 1000, True: 1500}  # Binance max klines per request
_RETRY_DELAYS = [1, 3, 10]  # seconds between retries


def _parse_kline(symbol: str, interval: str, raw: list) -> Bar:
    """Convert Binance raw kline list to a Bar."""
    return Bar(
        symbol=symbol.upper(),
        interval=interval,
        open_time=int(raw[0]),
        open=Decimal(raw[1]),
        high=Decimal(raw[2]),
        low=Decimal(raw[3]),
        close=Decimal(raw[4]),
        volume=Decimal(raw[5]),
        close_time=int(raw[6]),
    )


def _parse_ticker(raw: dict) -> Ticker:
    return Ticker(
        symbol=raw["symbol"],
        price_change=Decimal(raw["priceChange"]),
        price_change_percent=Decimal(raw["priceChangePercent"]),
        last_price=Decimal(raw["lastPrice"]),
        open=Decimal(raw["openPrice"]),
        high=Decimal(raw["highPrice"]),
        low=Decimal(raw["lowPrice"]),
        volume=Decimal(raw["volume"]),
        quote_volume=Decimal(raw["quoteVolume"]),
        open_time=int(raw["openTime"]),
        close_time=int(raw["closeTime"]),
    )


class BinanceClient:
    """Thin wrapper around the Binance public market-data API."""

    def __init__(
        self,
        base_url: str | None = None,
        futures: bool = False,
        timeout: int = 30,
    ) -> None:
        self.futures = futures
        self._base = (base_url or (_FUTURES_BASE if futures else _SPOT_BASE)).rstrip("/")
        self._endpoints = _ENDPOINTS[futures]
        self.max_limit = _MAX_LIMIT[futures]
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "kline-mirror/0.1"})

    # ── Transport ─────────────────────────────────────────────────────────────

    def _get(self, endpoint: str, params: dict | None = None) -> Any:
        """GET an endpoint with retry. Raises TransportError once retries are exhausted."""
        url = f"{self._base}{self._endpoints[endpoint]}"
        last_exc: Exception | None = None
        for attempt, delay in enumerate([0] + _RETRY_DELAYS, start=1):
            if delay:
                log.debug("Retry %d/%d — sleeping %ds", attempt, len(_RETRY_DELAYS) + 1, delay)
                time.sleep(delay)
            try:
                resp = self._session.get(url, params=params, timeout=self._timeout)
                if resp.status_code == 429:
                    retry_after = int(resp.headers.get("Retry-After", delay or 10))
                    log.warning("Rate-limited — sleeping %ds", retry_after)
                    time.sleep(retry_after)
                    continue
                resp.raise_for_status()
                return resp.json()
            except requests.RequestException as exc:
                log.warning("Request to %s failed (attempt %d): %s", endpoint, attempt, exc)
                last_exc = exc

        raise TransportError(f"All retries exhausted for {endpoint} {params or ''}") from last_exc

    # ── Klines ────────────────────────────────────────────────────────────────

    def get_tail_bar(self, symbol: str, interval: str) -> Bar:
        """Return the most recent (possibly still forming) bar."""
        raw = self._get("klines", {"symbol": symbol.upper(), "interval": interval, "limit": 1})
        if not raw:
            raise TransportError(f"Empty klines response for {symbol} {interval}")
        return _parse_kline(symbol, interval, raw[-1])

    def get_range(
        self,
        symbol: str,
        interval: str,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int | None = None,
    ) -> list[Bar]:
        """Fetch up to `limit` bars in [start_time, end_time], ascending.

        Without start/end the exchange returns its latest page.
        """
        params: dict = {"symbol": symbol.upper(), "interval": interval}
        if start_time is not None:
            params["startTime"] = start_time
        if end_time is not None:
            params["endTime"] = end_time
        if limit is not None:
            params["limit"] = min(limit, self.max_limit)
        return [_parse_kline(symbol, interval, k) for k in self._get("klines", params)]

    # ── Auxiliary market data ────────────────────────────────────────────────

    def get_ticker_24h(self) -> list[Ticker]:
        return [_parse_ticker(t) for t in self._get("ticker_24h")]

    def get_exchange_info(self) -> dict:
        return self._get("exchange_info")

    def get_price(self, symbol: str) -> Decimal | None:
        """Last traded price of symbol, None if the exchange returns nothing."""
        raw = self._get("price", {"symbol": symbol.upper()})
        if not raw or "price" not in raw:
            return None
        return Decimal(raw["price"])
