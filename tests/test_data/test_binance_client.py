"""Unit tests for BinanceClient: parsing, request params, retry logic."""
from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from kline_mirror.data.binance_client import BinanceClient, _parse_kline, _parse_ticker
from kline_mirror.errors import TransportError


def _make_raw_kline(open_time_ms: int = 1_700_000_040_000) -> list:
    """Return a minimal raw kline list as Binance returns it."""
    return [
        open_time_ms,          # 0 open_time
        "30000.5",             # 1 open
        "30100.0",             # 2 high
        "29900.0",             # 3 low
        "30050.0",             # 4 close
        "10.5",                # 5 volume
        open_time_ms + 59999,  # 6 close_time
        "315525.0",            # 7 quote_volume
        123,                   # 8 trades
        "5.2", "156000.0", "0" # 9-11 (ignored)
    ]


def _raw_ticker(symbol: str = "BTCUSDT") -> dict:
    return {
        "symbol": symbol,
        "priceChange": "-94.99999800",
        "priceChangePercent": "-95.960",
        "lastPrice": "4.00000200",
        "openPrice": "99.00000000",
        "highPrice": "100.00000000",
        "lowPrice": "0.10000000",
        "volume": "8913.30000000",
        "quoteVolume": "15.30000000",
        "openTime": 1_499_783_499_040,
        "closeTime": 1_499_869_899_040,
    }


def _mock_response(data, status: int = 200, headers: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = data
    resp.raise_for_status = MagicMock()
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}")
    return resp


# ── parse ─────────────────────────────────────────────────────────────────────

def test_parse_kline_types():
    bar = _parse_kline("btcusdt", "1m", _make_raw_kline())
    assert bar.symbol == "BTCUSDT"
    assert bar.interval == "1m"
    assert isinstance(bar.open_time, int)
    assert isinstance(bar.open, Decimal)
    assert bar.open == Decimal("30000.5")
    assert bar.close_time == 1_700_000_040_000 + 59999


def test_parse_ticker():
    t = _parse_ticker(_raw_ticker())
    assert t.symbol == "BTCUSDT"
    assert t.price_change_percent == Decimal("-95.96")
    assert t.last_price == Decimal("4.000002")
    assert t.close_time == 1_499_869_899_040


# ── klines ────────────────────────────────────────────────────────────────────

def test_get_range_passes_window_and_caps_limit():
    raw = [_make_raw_kline(1_700_000_040_000 + i * 60_000) for i in range(3)]
    client = BinanceClient()

    with patch.object(client._session, "get", return_value=_mock_response(raw)) as get:
        result = client.get_range("BTCUSDT", "1m", 1, 2, limit=5000)

    assert len(result) == 3
    assert [b.open_time for b in result] == sorted(b.open_time for b in result)
    params = get.call_args.kwargs["params"]
    assert params["startTime"] == 1
    assert params["endTime"] == 2
    assert params["limit"] == 1000
    assert get.call_args.args[0] == "https://api.binance.com/api/v3/klines"


def test_get_range_without_window_omits_params():
    client = BinanceClient()
    with patch.object(client._session, "get", return_value=_mock_response([])) as get:
        assert client.get_range("BTCUSDT", "1m") == []
    params = get.call_args.kwargs["params"]
    assert "startTime" not in params
    assert "endTime" not in params
    assert "limit" not in params


def test_get_tail_bar_requests_single_bar():
    client = BinanceClient()
    with patch.object(client._session, "get", return_value=_mock_response([_make_raw_kline()])) as get:
        bar = client.get_tail_bar("BTCUSDT", "1m")
    assert bar.open_time == 1_700_000_040_000
    assert get.call_args.kwargs["params"]["limit"] == 1


def test_get_tail_bar_empty_response_raises():
    client = BinanceClient()
    with patch.object(client._session, "get", return_value=_mock_response([])):
        with pytest.raises(TransportError):
            client.get_tail_bar("BTCUSDT", "1m")


def test_futures_endpoints():
    client = BinanceClient(futures=True)
    assert client.max_limit == 1500
    with patch.object(client._session, "get", return_value=_mock_response([])) as get:
        client.get_range("BTCUSDT", "1h", limit=1500)
    assert get.call_args.args[0] == "https://fapi.binance.com/fapi/v1/klines"
    assert get.call_args.kwargs["params"]["limit"] == 1500


# ── auxiliary endpoints ───────────────────────────────────────────────────────

def test_get_ticker_24h():
    client = BinanceClient()
    with patch.object(client._session, "get", return_value=_mock_response([_raw_ticker(), _raw_ticker("ETHUSDT")])):
        tickers = client.get_ticker_24h()
    assert [t.symbol for t in tickers] == ["BTCUSDT", "ETHUSDT"]


def test_get_price():
    client = BinanceClient()
    with patch.object(client._session, "get", return_value=_mock_response({"symbol": "BTCUSDT", "price": "42000.10"})):
        assert client.get_price("BTCUSDT") == Decimal("42000.10")
    with patch.object(client._session, "get", return_value=_mock_response({})):
        assert client.get_price("BTCUSDT") is None


# ── retry ─────────────────────────────────────────────────────────────────────

def test_retries_exhausted_raise_transport_error():
    client = BinanceClient()
    with patch("kline_mirror.data.binance_client.time.sleep") as sleep, \
         patch.object(client._session, "get", side_effect=requests.ConnectionError("down")) as get:
        with pytest.raises(TransportError) as info:
            client.get_range("BTCUSDT", "1m")

    assert get.call_count == 4
    assert sleep.call_count == 3
    assert isinstance(info.value.__cause__, requests.ConnectionError)


def test_retry_recovers_after_http_error():
    client = BinanceClient()
    responses = [_mock_response([], status=500), _mock_response([_make_raw_kline()])]
    with patch("kline_mirror.data.binance_client.time.sleep"), \
         patch.object(client._session, "get", side_effect=responses):
        result = client.get_range("BTCUSDT", "1m")
    assert len(result) == 1


def test_rate_limit_honours_retry_after():
    client = BinanceClient()
    responses = [
        _mock_response([], status=429, headers={"Retry-After": "7"}),
        _mock_response([_make_raw_kline()]),
    ]
    with patch("kline_mirror.data.binance_client.time.sleep") as sleep, \
         patch.object(client._session, "get", side_effect=responses):
        result = client.get_range("BTCUSDT", "1m")

    assert len(result) == 1
    sleep.assert_any_call(7)
