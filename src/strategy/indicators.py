"""
Moving averages and cross detection over plain float series.

Pure functions; no I/O. Output series have the same length as the input;
positions before the first full window hold NaN.
"""

from __future__ import annotations

import math
from typing import Sequence


def sma(values: Sequence[float], period: int) -> list[float]:
    """Simple moving average over ``period`` values."""
    if period <= 0:
        raise ValueError("period must be positive")
    out = [math.nan] * len(values)
    window_sum = 0.0
    for i, v in enumerate(values):
        window_sum += v
        if i >= period:
            window_sum -= values[i - period]
        if i >= period - 1:
            out[i] = window_sum / period
    return out


def ema(values: Sequence[float], period: int) -> list[float]:
    """Exponential moving average seeded with the SMA of the first ``period`` values."""
    if period <= 0:
        raise ValueError("period must be positive")
    out = [math.nan] * len(values)
    if len(values) < period:
        return out
    k = 2 / (period + 1)
    prev = sum(values[:period]) / period
    out[period - 1] = prev
    for i in range(period, len(values)):
        prev = values[i] * k + prev * (1 - k)
        out[i] = prev
    return out


def crossover(a: Sequence[float], b: Sequence[float]) -> bool:
    """True when ``a`` crossed above ``b`` on the last value."""
    if len(a) < 2 or len(b) < 2:
        return False
    if any(math.isnan(x) for x in (a[-1], a[-2], b[-1], b[-2])):
        return False
    return a[-2] <= b[-2] and a[-1] > b[-1]


def crossunder(a: Sequence[float], b: Sequence[float]) -> bool:
    """True when ``a`` crossed below ``b`` on the last value."""
    return crossover(b, a)
