"""
Maximum drawdown over an ordered series of equity samples.

Walks consecutive samples with a running "local trough" accumulator: a
non-negative accumulator restarts at the next delta (start of a new decline,
based at the previous value); a negative one keeps absorbing deltas until the
decline is recovered. The deepest accumulation divided by its base value is
the drawdown fraction.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from execution.models import AssetValue


@dataclass(frozen=True)
class Drawdown:
    """Drawdown fraction (<= 0) and the span it covers."""

    value: float
    start: datetime | None = None
    end: datetime | None = None


def max_drawdown(samples: Sequence[AssetValue]) -> Drawdown:
    """
    Compute the maximum drawdown of *samples* (oldest first).

    Returns a zero drawdown with no span for fewer than two samples or for a
    series that never declines.
    """
    if len(samples) < 2:
        return Drawdown(0.0)

    local = math.inf
    local_base = samples[0].value
    local_start = samples[0].time
    local_end = samples[0].time

    worst = math.inf
    worst_base = local_base
    worst_start = local_start
    worst_end = local_end

    for prev, cur in zip(samples, samples[1:]):
        delta = cur.value - prev.value
        if local >= 0:
            local = delta
            local_base = prev.value
            local_start = prev.time
            local_end = cur.time
        else:
            local += delta
            local_end = cur.time

        if local < worst:
            worst = local
            worst_base = local_base
            worst_start = local_start
            worst_end = local_end

    if worst >= 0 or worst_base == 0:
        return Drawdown(0.0)
    return Drawdown(worst / worst_base, worst_start, worst_end)
