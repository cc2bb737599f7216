"""Error taxonomy shared by the data layer, the engine and the service."""
from __future__ import annotations


class MirrorError(Exception):
    """Base class for every error raised by kline_mirror."""


class TransportError(MirrorError):
    """Remote call failed or timed out after the client's own retries."""


class UnknownIntervalError(MirrorError, ValueError):
    def __init__(self, interval: str) -> None:
        super().__init__(f"Unknown interval: {interval!r}")
        self.interval = interval


class DuplicateKeyError(MirrorError):
    """Pure insert hit an existing (symbol, interval, open_time)."""


class NoPriceError(MirrorError):
    """Quantity requested against a non-positive price."""


class MissingFilterError(MirrorError, LookupError):
    """Symbol lacks the exchange filter needed to size an order."""
