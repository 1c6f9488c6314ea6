"""Integer trend indicators over fixed-point price windows.

This module provides Simple Moving Average (SMA), Relative Strength Index (RSI)
and Exponential Moving Average (EMA) kernels. Every function takes prices as
scaled integers (see ``fixed_point.UNIT``) and rounds by flooring, so results
are bit-for-bit reproducible.

Ordering contract:
- Windows are passed newest first, exactly as ``TimeSeriesStore.read`` returns
  them. Only the leading ``period`` (SMA) or ``period + 1`` (RSI) entries are
  consumed, so a longer window can be passed unchanged.
"""

from typing import Sequence

import fixed_point
from errors import InsufficientHistory, InvalidConfiguration

RSI_SCALE = 100


def calculate_sma(prices: Sequence[int], period: int) -> int:
    """Compute the Simple Moving Average of the newest ``period`` prices.

    Contract:
    - Input: prices newest first, ``period`` > 0
    - Output: ``floor(sum / period)``
    - Edge cases: fewer than ``period`` prices raises ``InsufficientHistory``;
      there is no neutral fallback value.
    """
    if period <= 0:
        raise InvalidConfiguration("period must be > 0")
    if len(prices) < period:
        raise InsufficientHistory(f"need {period} prices, have {len(prices)}")

    total = 0
    for i in range(period):
        total = fixed_point.add(total, prices[i])
    return fixed_point.div(total, period)


def calculate_rsi(prices: Sequence[int], period: int = 14) -> int:
    """Compute the Relative Strength Index over ``period`` successive differences.

    - Gains and losses are summed over the newest ``period + 1`` prices
      (simple averages, no Wilder smoothing).
    - ``RSI = floor(100 * gain / (gain + loss))``, which equals
      ``100 - 100 / (1 + avg_gain / avg_loss)`` without the intermediate
      fractions.
    - No losses and some gain gives 100; no gain (including a flat window)
      gives 0.
    """
    if period <= 0:
        raise InvalidConfiguration("period must be > 0")
    if len(prices) < period + 1:
        raise InsufficientHistory(f"need {period + 1} prices, have {len(prices)}")

    gain = 0
    loss = 0
    # prices[i - 1] is the newer of each pair
    for i in range(1, period + 1):
        newer, older = prices[i - 1], prices[i]
        if newer >= older:
            gain = fixed_point.add(gain, newer - older)
        else:
            loss = fixed_point.add(loss, older - newer)

    if gain == 0:
        return 0
    return fixed_point.mul_div(RSI_SCALE, gain, fixed_point.add(gain, loss))


def calculate_ema(previous_ema: int, period: int, price: int) -> int:
    """Advance an EMA by one observation.

    Weighted multiplier k = 2 / (period + 1), so
    ``EMA = price * k + prev * (1 - k)``, simplified to
    ``floor((price * 2 + prev * (period - 1)) / (period + 1))``.
    """
    if period <= 0:
        raise InvalidConfiguration("period must be > 0")
    weighted = fixed_point.add(
        fixed_point.mul(price, 2),
        fixed_point.mul(previous_ema, period - 1),
    )
    return fixed_point.div(weighted, period + 1)
