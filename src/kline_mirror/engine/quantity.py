from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Decimal

from ..errors import NoPriceError

log = logging.getLogger(__name__)


def step_precision(step_size: Decimal) -> int:
    """Decimal places implied by a lot-size step, e.g. 0.001 → 3, 1 → 0."""
    return math.floor(-step_size.log10())


def compute_quantity(
    symbol: str,
    available_balance: Decimal,
    percent_to_spend: Decimal,
    last_price: Decimal,
    step_size: Decimal,
    strict: bool = False,
) -> Decimal:
    """Order quantity for spending `percent_to_spend` % of the balance at `last_price`.

    The raw quantity is snapped down to a multiple of `step_size`, then rounded
    to the step's precision. A non-positive price yields 0, or NoPriceError
    when `strict`.
    """
    if step_size <= 0:
        raise ValueError("step_size must be > 0")
    if last_price <= 0:
        if strict:
            raise NoPriceError(f"No positive price for {symbol}: {last_price}")
        log.warning("No positive price for %s; quantity is 0", symbol)
        return Decimal(0)

    amount = Decimal(available_balance) * Decimal(percent_to_spend) / 100
    raw_quantity = amount / Decimal(last_price)
    precision = step_precision(step_size)
    snapped = raw_quantity - (raw_quantity % step_size)
    return snapped.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)
