from __future__ import annotations

import duckdb

from .. import db


class DuckDBRefreshState:
    """RefreshState persisted in the `refresh_state` table."""

    def __init__(self, con: duckdb.DuckDBPyConnection) -> None:
        self._con = con

    def get(self, key: str) -> int:
        return db.read_refresh_time(self._con, key)

    def advance(self, key: str, now_ms: int) -> None:
        db.advance_refresh_time(self._con, key, now_ms)

    def compare_and_advance(self, key: str, now_ms: int, interval_ms: int) -> bool:
        return db.compare_and_advance_refresh_time(self._con, key, now_ms, interval_ms)
