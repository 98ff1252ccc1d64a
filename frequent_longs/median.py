"""Approximate median of the live counters, used by the reverse purge.

The purge never sorts the whole table.  It draws a bounded uniform sample of
counter values in a single pass (reservoir sampling, Algorithm R) and runs a
randomized three-way quickselect over that sample.  Both steps draw from the
``random.Random`` instance handed in by the caller, so a fixed seed reproduces
the exact purge.
"""
from __future__ import annotations

import random
from typing import Iterable, List


def reservoir_sample(values: Iterable[int], size: int, rng: random.Random) -> List[int]:
    """Return a uniform sample of at most ``size`` elements of ``values``."""
    if size <= 0:
        raise ValueError("sample size must be > 0")
    sample: List[int] = []
    for seen, value in enumerate(values):
        if seen < size:
            sample.append(value)
            continue
        j = rng.randrange(seen + 1)
        if j < size:
            sample[j] = value
    return sample


def select(values: List[int], k: int, rng: random.Random) -> int:
    """Return the ``k``-th smallest element (0-based).  Reorders ``values``."""
    if not 0 <= k < len(values):
        raise ValueError(f"k={k} out of range for {len(values)} values")
    lo, hi = 0, len(values) - 1
    while lo < hi:
        pivot = values[rng.randint(lo, hi)]
        # [lo, lt) < pivot, [lt, i) == pivot, (gt, hi] > pivot
        lt, i, gt = lo, lo, hi
        while i <= gt:
            v = values[i]
            if v < pivot:
                values[lt], values[i] = v, values[lt]
                lt += 1
                i += 1
            elif v > pivot:
                values[gt], values[i] = v, values[gt]
                gt -= 1
            else:
                i += 1
        if k < lt:
            hi = lt - 1
        elif k > gt:
            lo = gt + 1
        else:
            return pivot
    return values[lo]


def approximate_median(values: Iterable[int], sample_size: int, rng: random.Random) -> int:
    """Median of a uniform sample of ``values`` of at most ``sample_size`` elements.

    With a few hundred samples the result is within a constant factor of the
    population median with high probability.  The returned value is always one
    of the input values, so subtracting it from every counter clears at least
    one of them.
    """
    sample = reservoir_sample(values, sample_size, rng)
    if not sample:
        raise ValueError("cannot take the median of an empty population")
    return select(sample, len(sample) // 2, rng)
