"""
Natural-breaks (Jenks) classification and the colour scale built on it.

Breakpoints are ascending class upper bounds: a value belongs to the first
class whose upper bound it does not exceed.
"""

from __future__ import annotations

from bisect import bisect_left
from typing import List, Sequence

import numpy as np

from .config import NO_DATA_COLOR, PALETTE


def _positive_sample(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(list(values), dtype=float)
    arr = arr[np.isfinite(arr)]
    # zero / negative EAI means "no risk", not a class
    return np.sort(arr[arr > 0])


def _jenks_upper_bounds(x: np.ndarray, k: int) -> List[float]:
    """Partition sorted ``x`` into ``k`` contiguous groups minimising the
    summed within-group squared deviation; return each group's maximum."""
    n = len(x)
    s1 = np.concatenate(([0.0], np.cumsum(x)))
    s2 = np.concatenate(([0.0], np.cumsum(x * x)))

    def ssd(starts: np.ndarray, end: int) -> np.ndarray:
        count = end + 1 - starts
        total = s1[end + 1] - s1[starts]
        return (s2[end + 1] - s2[starts]) - total * total / count

    cost = np.full((k, n), np.inf)
    start = np.zeros((k, n), dtype=int)
    cost[0] = s2[1:] - s1[1:] * s1[1:] / np.arange(1, n + 1)

    for j in range(1, k):
        for i in range(j, n):
            ms = np.arange(j, i + 1)
            candidates = cost[j - 1, ms - 1] + ssd(ms, i)
            best = int(np.argmin(candidates))  # first minimum, deterministic
            cost[j, i] = candidates[best]
            start[j, i] = ms[best]

    bounds = [0.0] * k
    end = n - 1
    for j in range(k - 1, -1, -1):
        bounds[j] = float(x[end])
        if j > 0:
            end = int(start[j, end]) - 1
    return bounds


def classify(values: Sequence[float], class_count: int) -> List[float]:
    """
    Compute natural-breaks class breakpoints for a sample of EAI values.

    Returns:
        [] when no positive values remain,
        the sorted sample when it is smaller than ``class_count``,
        otherwise ``class_count`` ascending upper bounds (last = sample max).

    Tied values can make two classes share an upper bound; repeats are
    dropped, so fewer than ``class_count`` breakpoints may come back.
    """
    if class_count < 1:
        raise ValueError(f"class_count must be >= 1, got {class_count}")

    sample = _positive_sample(values)
    if sample.size == 0:
        return []
    if sample.size < class_count:
        bounds = [float(v) for v in sample]
    else:
        bounds = _jenks_upper_bounds(sample, class_count)
    return sorted(set(bounds))


def class_index(value: float, breakpoints: Sequence[float]) -> int:
    """Index of the class ``value`` falls into (clamped to the top class)."""
    return min(bisect_left(list(breakpoints), value), len(breakpoints) - 1)


def palette_index(class_idx: int, n_classes: int, palette_size: int) -> int:
    """Spread class indices over the palette so the top class is darkest."""
    if n_classes <= 1:
        return palette_size - 1
    return int(round(class_idx * (palette_size - 1) / (n_classes - 1)))


def color_for(value: float, breakpoints: Sequence[float],
              palette: Sequence[str] = PALETTE) -> str:
    """Colour for one value; non-positive values and empty breakpoints get
    the reserved no-data colour."""
    if value is None or not breakpoints:
        return NO_DATA_COLOR
    try:
        v = float(value)
    except (TypeError, ValueError):
        return NO_DATA_COLOR
    if not np.isfinite(v) or v <= 0:
        return NO_DATA_COLOR
    idx = class_index(v, breakpoints)
    return palette[palette_index(idx, len(breakpoints), len(palette))]
