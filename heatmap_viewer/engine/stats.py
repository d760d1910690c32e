"""
Robust statistics: median and median absolute deviation.

Recomputed from scratch on every call. Sample sizes are bounded by the
heatmap bucket ceiling (prices) or the visible intensity count, so there
is no incremental/streaming variant.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np

from ..errors import EmptySampleError


def median(samples: Iterable[float]) -> float:
    """
    Median of a non-empty sample.

    Middle element for odd counts, mean of the two middle elements for even
    counts. Raises EmptySampleError on empty input; callers guard.
    """
    arr = np.asarray(list(samples), dtype=np.float64)
    if arr.size == 0:
        raise EmptySampleError("median of empty sample")
    # np.median sorts a copy, input is left untouched
    return float(np.median(arr))


def median_absolute_deviation(samples: Iterable[float], center: float) -> float:
    """Median of |x - center| over a non-empty sample."""
    arr = np.asarray(list(samples), dtype=np.float64)
    if arr.size == 0:
        raise EmptySampleError("median absolute deviation of empty sample")
    return float(np.median(np.abs(arr - center)))
