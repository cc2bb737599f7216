"""Unit tests for DuckDBBarRepository: append, upsert, ordering, key uniqueness."""
from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from conftest import MINUTE_MS, START_MS, make_bar, make_bars
from kline_mirror.data.bar_repository import DuckDBBarRepository
from kline_mirror.errors import DuplicateKeyError


def _count(con) -> int:
    return con.execute("SELECT COUNT(*) FROM bars").fetchone()[0]


# ── append ────────────────────────────────────────────────────────────────────

def test_query_empty(con):
    assert DuckDBBarRepository(con).query("BTCUSDT", "1m") == []


def test_append_then_query_ascending(con):
    repo = DuckDBBarRepository(con)
    bars = make_bars(10)
    written = repo.append(set(bars))  # unordered input
    assert written == 10

    stored = repo.query("BTCUSDT", "1m")
    assert stored == bars
    assert [b.open_time for b in stored] == sorted(b.open_time for b in stored)


def test_append_existing_key_raises_and_writes_nothing(con):
    repo = DuckDBBarRepository(con)
    repo.append(make_bars(5))

    overlapping = make_bars(3, start_ms=START_MS + 4 * MINUTE_MS)  # first one already stored
    with pytest.raises(DuplicateKeyError):
        repo.append(overlapping)

    assert _count(con) == 5


def test_append_same_key_twice_in_batch_raises(con):
    repo = DuckDBBarRepository(con)
    bar = make_bar(START_MS)
    with pytest.raises(DuplicateKeyError):
        repo.append([bar, replace(bar, close=Decimal("1"))])
    assert _count(con) == 0


def test_decimal_values_survive_round_trip(con):
    repo = DuckDBBarRepository(con)
    bar = make_bar(START_MS, price="0.00001234", volume="123456789.12345678")
    repo.append([bar])
    stored = repo.query("BTCUSDT", "1m")[0]
    assert stored.open == Decimal("0.00001234")
    assert stored.volume == Decimal("123456789.12345678")


def test_series_are_isolated_by_symbol_and_interval(con):
    repo = DuckDBBarRepository(con)
    repo.append(make_bars(3))
    repo.append(make_bars(2, symbol="ETHUSDT"))
    repo.append(make_bars(4, interval="5m", step_ms=5 * MINUTE_MS))

    assert len(repo.query("BTCUSDT", "1m")) == 3
    assert len(repo.query("ETHUSDT", "1m")) == 2
    assert len(repo.query("BTCUSDT", "5m")) == 4


# ── upsert ────────────────────────────────────────────────────────────────────

def test_upsert_tail_replaces_values(con):
    repo = DuckDBBarRepository(con)
    repo.append(make_bars(3))

    revised = make_bar(START_MS + 2 * MINUTE_MS, price="31000", volume="99")
    repo.upsert_tail(revised)

    stored = repo.query("BTCUSDT", "1m")
    assert len(stored) == 3
    assert stored[-1] == revised


def test_upsert_tail_inserts_new_key(con):
    repo = DuckDBBarRepository(con)
    repo.upsert_tail(make_bar(START_MS))
    assert _count(con) == 1


def test_upsert_many_idempotent(con):
    repo = DuckDBBarRepository(con)
    bars = make_bars(10)
    repo.upsert_many(bars)
    first = repo.query("BTCUSDT", "1m")
    repo.upsert_many(bars)
    assert repo.query("BTCUSDT", "1m") == first
    assert _count(con) == 10


def test_upsert_many_partial_overlap(con):
    repo = DuckDBBarRepository(con)
    repo.append(make_bars(10))
    second = make_bars(10, start_ms=START_MS + 5 * MINUTE_MS, price="31000")  # rows 5-14
    repo.upsert_many(second)

    stored = repo.query("BTCUSDT", "1m")
    assert len(stored) == 15
    assert stored[4].open == Decimal("30000.5")
    assert stored[5].open == Decimal("31000")


def test_upsert_many_keeps_last_of_repeated_key(con):
    repo = DuckDBBarRepository(con)
    old = make_bar(START_MS, price="1")
    new = make_bar(START_MS, price="2")
    repo.upsert_many([old, new])
    assert repo.query("BTCUSDT", "1m") == [new]


def test_key_uniqueness_across_mixed_operations(con):
    repo = DuckDBBarRepository(con)
    repo.append(make_bars(5))
    repo.upsert_tail(make_bar(START_MS + 4 * MINUTE_MS, price="1"))
    repo.upsert_many(make_bars(5, start_ms=START_MS + 3 * MINUTE_MS, price="2"))
    repo.upsert_tail(make_bar(START_MS + 7 * MINUTE_MS, price="3"))

    keys = con.execute(
        "SELECT symbol, interval, open_time, COUNT(*) FROM bars GROUP BY ALL HAVING COUNT(*) > 1"
    ).fetchall()
    assert keys == []
    assert _count(con) == 8
