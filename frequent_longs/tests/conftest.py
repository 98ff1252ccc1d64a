"""Pytest configuration ensuring the package is importable during tests."""
from __future__ import annotations

import random
import sys
from collections import Counter
from pathlib import Path
from typing import Iterable, Tuple

import pytest

# When pytest collects tests inside the package directory, the repository root
# (which contains the ``frequent_longs`` package) might not be on ``sys.path``.
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def exact_frequencies(pairs: Iterable[Tuple[int, int]]) -> Counter:
    """Reference accumulator: the true frequency of every item."""
    truth: Counter = Counter()
    for item, count in pairs:
        truth[item] += count
    return truth


@pytest.fixture
def skewed_stream():
    """Deterministic heavy-tailed (item, count) stream."""
    rng = random.Random(2016)
    return [(min(int(rng.paretovariate(1.0)), 1_000_000), rng.randint(1, 5)) for _ in range(20_000)]
