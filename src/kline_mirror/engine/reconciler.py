"""Kline reconciliation between the remote source and the local repository.

Each call re-derives its state from the remote tail bar and the stored bars:

  EMPTY     nothing stored          → fetch a default page, append, return it
  TAIL_OPEN same open_time as local → upsert the tail, splice it into the result
  GAP       different open_time     → re-fetch from two bars before the local
                                      tail up to the remote tail, upsert, re-read
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..errors import DuplicateKeyError
from ..intervals import interval_ms
from ..types import Bar, MarketDataSource, TimeSeriesRepository

log = logging.getLogger(__name__)

_BACKFILL_PAGE_LIMIT = 1000
_OVERLAP_BARS = 2  # already-known bars re-requested on every backfill


class ReconcilePath(str, Enum):
    EMPTY = "empty"
    TAIL_OPEN = "tail_open"
    GAP = "gap"


@dataclass(frozen=True)
class ReconcileResult:
    path: ReconcilePath
    bars: list[Bar]
    fetched: int  # bars received from the remote range endpoint


class KlineReconciler:
    """Keep the stored bars of a (symbol, interval) in step with the remote source."""

    def __init__(
        self,
        source: MarketDataSource,
        repository: TimeSeriesRepository,
        page_limit: int = _BACKFILL_PAGE_LIMIT,
        max_backfill_pages: int = 10,
    ) -> None:
        if page_limit <= 0:
            raise ValueError("page_limit must be > 0")
        if max_backfill_pages < 1:
            raise ValueError("max_backfill_pages must be >= 1")
        self.source = source
        self.repository = repository
        self.page_limit = page_limit
        self.max_backfill_pages = max_backfill_pages

    def get_klines(self, symbol: str, interval: str) -> list[Bar]:
        return self.reconcile(symbol, interval).bars

    def reconcile(self, symbol: str, interval: str) -> ReconcileResult:
        step_ms = interval_ms(interval)
        remote_tail = self.source.get_tail_bar(symbol, interval)
        local = self.repository.query(symbol, interval)

        if not local:
            return self._fill_empty(symbol, interval)

        local_tail = local[-1]
        if remote_tail.open_time == local_tail.open_time:
            log.debug("%s %s: tail %d still open", symbol, interval, local_tail.open_time)
            self.repository.upsert_tail(remote_tail)
            return ReconcileResult(ReconcilePath.TAIL_OPEN, local[:-1] + [remote_tail], 0)

        start_time = local_tail.open_time - _OVERLAP_BARS * step_ms
        end_time = remote_tail.open_time
        log.debug(
            "%s %s: tail moved %d → %d, backfilling from %d",
            symbol, interval, local_tail.open_time, end_time, start_time,
        )
        fetched = self._backfill(symbol, interval, start_time, end_time)
        return ReconcileResult(ReconcilePath.GAP, self.repository.query(symbol, interval), fetched)

    # ── Paths ─────────────────────────────────────────────────────────────────

    def _fill_empty(self, symbol: str, interval: str) -> ReconcileResult:
        bars = self.source.get_range(symbol, interval)
        try:
            self.repository.append(bars)
        except DuplicateKeyError:
            log.error("%s %s: append hit stored bars although the store looked empty", symbol, interval)
            raise
        log.debug("%s %s: seeded %d bars", symbol, interval, len(bars))
        return ReconcileResult(ReconcilePath.EMPTY, list(bars), len(bars))

    def _backfill(self, symbol: str, interval: str, start_time: int, end_time: int) -> int:
        """Upsert remote bars in [start_time, end_time], at most max_backfill_pages pages.

        A page shorter than page_limit does not end the backfill: the source may
        cap its page size below ours. Only an empty page or reaching end_time does.
        """
        cursor = start_time
        fetched = 0
        for _ in range(self.max_backfill_pages):
            batch = self.source.get_range(symbol, interval, cursor, end_time, self.page_limit)
            if not batch:
                return fetched
            self.repository.upsert_many(batch)
            fetched += len(batch)
            last_open = batch[-1].open_time
            if last_open >= end_time:
                return fetched
            if last_open < cursor:
                log.warning(
                    "%s %s: backfill made no progress at %d; [%d, %d] not fetched",
                    symbol, interval, cursor, cursor, end_time,
                )
                return fetched
            cursor = last_open + 1

        log.warning(
            "%s %s: backfill stopped after %d pages; [%d, %d] not fetched",
            symbol, interval, self.max_backfill_pages, cursor, end_time,
        )
        return fetched
