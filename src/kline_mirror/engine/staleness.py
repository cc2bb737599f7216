"""Time-gated refresh of auxiliary caches (tickers, exchange metadata).

The gate is marked *before* the remote fetch runs. A failed fetch therefore
leaves the cache looking fresh until the interval elapses again; retries
inside the interval do not hit the remote.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..types import RefreshStateStore

log = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RefreshPolicy:
    key: str
    interval_ms: int


TICKER_24H = RefreshPolicy("ticker24h", 60_000)
EXCHANGE_INFO = RefreshPolicy("exchangeInfo", 120_000)


class StalenessGate:
    """Decide whether a cached domain is due for a refresh."""

    def __init__(self, state: RefreshStateStore, clock: Callable[[], int] = now_ms) -> None:
        self.state = state
        self.clock = clock

    def should_refresh(self, key: str, now: int, interval_ms: int) -> bool:
        return now - self.state.get(key) > interval_ms

    def mark_refreshed(self, key: str, now: int) -> None:
        self.state.advance(key, now)

    def try_acquire(self, key: str, now: int, interval_ms: int) -> bool:
        """Check and mark in one step; only one of several racing callers wins."""
        return self.state.compare_and_advance(key, now, interval_ms)

    def refresh_if_stale(self, policy: RefreshPolicy, refresh: Callable[[], object]) -> bool:
        """Run `refresh` if policy's interval has elapsed. Returns True if it ran.

        Errors from `refresh` propagate; the gate stays marked.
        """
        if not self.try_acquire(policy.key, self.clock(), policy.interval_ms):
            return False
        log.debug("Refreshing %s", policy.key)
        refresh()
        return True
