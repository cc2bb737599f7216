"""DuckDB-backed bar repository.

Every call goes to the database; nothing from a previous query is kept on the
instance, so `query` always reflects the latest persisted state.
"""
from __future__ import annotations

import logging
from typing import Iterable

import duckdb

from .. import db
from ..errors import DuplicateKeyError
from ..types import Bar

log = logging.getLogger(__name__)


def _dedup_by_key(bars: Iterable[Bar]) -> list[Bar]:
    """Keep the last bar seen per (symbol, interval, open_time), ordered by open_time."""
    latest: dict[tuple[str, str, int], Bar] = {}
    for bar in bars:
        latest[bar.key] = bar
    return sorted(latest.values(), key=lambda b: (b.symbol, b.interval, b.open_time))


class DuckDBBarRepository:
    """Bars keyed by (symbol, interval, open_time) in the `bars` table."""

    def __init__(self, con: duckdb.DuckDBPyConnection) -> None:
        self._con = con

    def query(self, symbol: str, interval: str) -> list[Bar]:
        return db.read_bars(self._con, symbol, interval)

    def append(self, bars: Iterable[Bar]) -> int:
        """Insert new bars. Raises DuplicateKeyError if any key is already stored.

        Nothing is written when the batch fails.
        """
        batch = list(bars)
        if len({b.key for b in batch}) != len(batch):
            raise DuplicateKeyError("append batch contains the same bar key twice")
        try:
            written = db.insert_bars(self._con, batch)
        except duckdb.ConstraintException as exc:
            raise DuplicateKeyError(str(exc)) from exc
        log.debug("Appended %d bars", written)
        return written

    def upsert_tail(self, bar: Bar) -> None:
        db.upsert_bars(self._con, [bar])

    def upsert_many(self, bars: Iterable[Bar]) -> int:
        """Insert-or-replace bars; re-applying the same bars is a no-op."""
        written = db.upsert_bars(self._con, _dedup_by_key(bars))
        log.debug("Upserted %d bars", written)
        return written
