"""Runtime settings, read from KLINE_MIRROR_* environment variables (.env honoured)."""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

_PREFIX = "KLINE_MIRROR_"


@dataclass(frozen=True)
class Settings:
    db_path: str = "data/mirror.duckdb"
    base_url: str | None = None
    futures: bool = False
    timeout: int = 30
    page_limit: int = 1000
    max_backfill_pages: int = 10
    ticker_refresh_ms: int = 60_000
    exchange_info_refresh_ms: int = 120_000


def _env(name: str) -> str | None:
    value = os.getenv(_PREFIX + name)
    return value.strip() if value and value.strip() else None


def _env_bool(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got {value!r}") from None


def load_settings(env_file: str | None = None) -> Settings:
    """Build Settings from the environment after loading `.env` (or env_file)."""
    path = env_file or find_dotenv(usecwd=True)
    if path:
        load_dotenv(path)
    d = Settings()
    return Settings(
        db_path=_env("DB") or d.db_path,
        base_url=_env("BASE_URL"),
        futures=_env_bool("FUTURES", d.futures),
        timeout=_env_int("TIMEOUT", d.timeout),
        page_limit=_env_int("PAGE_LIMIT", d.page_limit),
        max_backfill_pages=_env_int("MAX_BACKFILL_PAGES", d.max_backfill_pages),
        ticker_refresh_ms=_env_int("TICKER_REFRESH_MS", d.ticker_refresh_ms),
        exchange_info_refresh_ms=_env_int("EXCHANGE_INFO_REFRESH_MS", d.exchange_info_refresh_ms),
    )
