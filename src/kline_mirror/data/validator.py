"""Data quality validation of stored bars: gap detection, duplicates, coverage."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pandas as pd

from ..errors import UnknownIntervalError
from ..intervals import interval_ms as _interval_ms
from ..types import Bar

log = logging.getLogger(__name__)


@dataclass
class GapInfo:
    gap_start: datetime
    gap_end: datetime
    missing_bars: int


@dataclass
class ValidationReport:
    symbol: str
    interval: str
    start: datetime
    end: datetime
    total_bars: int
    expected_bars: int
    duplicate_count: int
    missing_gaps: list[GapInfo] = field(default_factory=list)
    schema_errors: list[str] = field(default_factory=list)
    quality_score: float = 1.0

    def is_ok(self, min_score: float = 0.95) -> bool:
        return self.quality_score >= min_score and not self.schema_errors

    def summary(self) -> str:
        lines = [
            f"Symbol   : {self.symbol}  Interval: {self.interval}",
            f"Period   : {self.start.isoformat()} → {self.end.isoformat()}",
            f"Bars     : {self.total_bars:,} / {self.expected_bars:,} expected",
            f"Gaps     : {len(self.missing_gaps)} ({sum(g.missing_bars for g in self.missing_gaps):,} missing bars)",
            f"Dupes    : {self.duplicate_count}",
            f"Score    : {self.quality_score:.3f}  {'OK' if self.is_ok() else 'ISSUES FOUND'}",
        ]
        if self.schema_errors:
            lines.append("Schema errors: " + "; ".join(self.schema_errors))
        for g in self.missing_gaps[:5]:
            lines.append(f"  Gap: {g.gap_start} → {g.gap_end} ({g.missing_bars} bars)")
        if len(self.missing_gaps) > 5:
            lines.append(f"  … and {len(self.missing_gaps) - 5} more gaps")
        return "\n".join(lines)


def bars_to_df(bars: list[Bar]) -> pd.DataFrame:
    """Bars → DataFrame with UTC open_time and float64 OHLCV columns."""
    if not bars:
        return pd.DataFrame()
    df = pd.DataFrame(
        {
            "open_time":  [b.open_time for b in bars],
            "close_time": [b.close_time for b in bars],
            "open":       [b.open for b in bars],
            "high":       [b.high for b in bars],
            "low":        [b.low for b in bars],
            "close":      [b.close for b in bars],
            "volume":     [b.volume for b in bars],
        }
    )
    df["open_time"]  = pd.to_datetime(df["open_time"],  unit="ms", utc=True)
    df["close_time"] = pd.to_datetime(df["close_time"], unit="ms", utc=True)
    for col in ("open", "high", "low", "close", "volume"):
        df[col] = df[col].astype("float64")
    return df


def validate(
    bars: list[Bar],
    symbol: str,
    interval: str,
    gap_threshold: int = 0,
) -> ValidationReport:
    """Validate a sequence of bars as returned by the repository.

    Args:
        bars: ascending bars of one symbol/interval
        symbol: e.g. 'BTCUSDT'
        interval: e.g. '1m'
        gap_threshold: report gap only if missing bars > this value
    """
    now = datetime.now(timezone.utc)
    df = bars_to_df(bars)
    if df.empty:
        return ValidationReport(
            symbol=symbol, interval=interval, start=now, end=now,
            total_bars=0, expected_bars=0, duplicate_count=0, quality_score=0.0,
        )

    schema_errors: list[str] = []
    try:
        step_ms: int | None = _interval_ms(interval)
    except UnknownIntervalError as exc:
        schema_errors.append(str(exc))
        step_ms = None

    if not df["open_time"].is_monotonic_increasing:
        schema_errors.append("Bars are not ordered by open_time")

    start_ts = df["open_time"].min()
    end_ts   = df["open_time"].max()
    total    = len(df)

    dup_count = int(df.duplicated(subset=["open_time"]).sum())

    expected = 0
    gaps: list[GapInfo] = []

    if step_ms:
        span_ms  = (end_ts - start_ts).total_seconds() * 1000
        expected = int(span_ms / step_ms) + 1

        # consecutive pairs with a jump > 1 interval
        sorted_times = df["open_time"].drop_duplicates().sort_values().reset_index(drop=True)
        diffs_ms = sorted_times.diff().dt.total_seconds().mul(1000).dropna()

        for idx, diff in diffs_ms.items():
            missing = int(diff / step_ms) - 1
            if missing > gap_threshold:
                gap_start = sorted_times.iloc[idx - 1].to_pydatetime()
                gap_end   = sorted_times.iloc[idx].to_pydatetime()
                gaps.append(GapInfo(gap_start, gap_end, missing))

    unique_bars = total - dup_count
    quality = min(1.0, unique_bars / expected) if expected > 0 else 0.0
    if gaps:
        log.debug("%s %s: %d gaps", symbol, interval, len(gaps))

    return ValidationReport(
        symbol=symbol,
        interval=interval,
        start=start_ts.to_pydatetime(),
        end=end_ts.to_pydatetime(),
        total_bars=total,
        expected_bars=expected,
        duplicate_count=dup_count,
        missing_gaps=gaps,
        schema_errors=schema_errors,
        quality_score=quality,
    )
