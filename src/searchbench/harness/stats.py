"""Latency statistics helpers."""

from __future__ import annotations

import math
from typing import Optional, Sequence


def mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def percentile(values: Sequence[float], fraction: float) -> Optional[float]:
    """Linear-interpolated percentile; ``fraction`` is in [0, 1]."""
    if not values:
        return None
    if not 0 <= fraction <= 1:
        raise ValueError("Percentile must be between 0 and 1")
    sorted_vals = sorted(values)
    if len(sorted_vals) == 1:
        return sorted_vals[0]
    index = fraction * (len(sorted_vals) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_vals[int(index)]
    lower_val = sorted_vals[lower]
    upper_val = sorted_vals[upper]
    return lower_val + (upper_val - lower_val) * (index - lower)
