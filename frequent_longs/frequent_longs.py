# Frequent Items Sketch for 64-bit integer items (Python)
# Implementation notes:
# - Named constants (minimum map size, median sample size)
# - Deterministic RNG salting for purges (seed + salt mixer)
# - Every grow/purge reports the mass it removed; callers fold it into the offset
# - Merge by replay + offset addition; serialize/deserialize via SketchState
# Python 3.9+

from __future__ import annotations

import enum
import logging
import operator
import random
from dataclasses import dataclass
from typing import Iterable, List, Optional

from . import serialization
from .reverse_purge_map import ReversePurgeLongHashMap, to_log2
from .serialization import SketchState

log = logging.getLogger(__name__)

INT64_MIN: int = -(1 << 63)
INT64_MAX: int = (1 << 63) - 1


class ErrorType(enum.Enum):
    """Which kind of error :meth:`FrequentLongs.get_frequent_items` may make."""

    NO_FALSE_POSITIVES = "NO_FALSE_POSITIVES"   # filter on the lower bound
    NO_FALSE_NEGATIVES = "NO_FALSE_NEGATIVES"   # filter on the upper bound


@dataclass(frozen=True)
class Row:
    """One frequent item with its estimate and guaranteed bounds."""

    item: int
    estimate: int
    upper_bound: int
    lower_bound: int

    @staticmethod
    def header() -> str:
        return f"  {'Est':>12}{'UB':>12}{'LB':>12} Item"

    def __str__(self) -> str:
        return f"  {self.estimate:>12}{self.upper_bound:>12}{self.lower_bound:>12} {self.item}"

    # Ordered by estimate only; equality still compares every field.
    def __lt__(self, other: "Row") -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return self.estimate < other.estimate

    def __gt__(self, other: "Row") -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return self.estimate > other.estimate


def _as_int64(value: object, name: str) -> int:
    try:
        v = operator.index(value)  # type: ignore[arg-type]
    except TypeError as exc:
        raise ValueError(f"{name} must be an integer: {value!r}") from exc
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer: {value!r}")
    if not INT64_MIN <= v <= INT64_MAX:
        raise ValueError(f"{name} must fit in a signed 64-bit integer: {v}")
    return v


class FrequentLongs:
    """
    Frequent items sketch over (int item, int count) pairs.

    The frequency of an item is the sum of the counts it was updated with.
    For every item the sketch answers an estimate plus bounds that hold
    deterministically::

        lower_bound(x) <= true frequency of x <= upper_bound(x)

    Strategy (high level):
      - Keep a reverse-purge hash map of (item, counter).  It starts at 8 slots
        and doubles until it reaches ``max_map_size`` slots; its capacity is
        75% of its length.
      - When a full-size map overflows, subtract an approximate median of the
        counters from every counter and drop the non-positive ones (the
        "reverse purge", a Misra-Gries variant).
      - ``offset`` accumulates every subtracted median.  An item's counter
        undercounts its true frequency by at most ``offset``, so
        ``upper_bound = counter + offset`` and ``lower_bound = counter``.
      - While fewer than ``0.75 * max_map_size`` distinct items have been
        seen nothing is purged and every estimate is exact.

    Accuracy: ``upper_bound - lower_bound <= offset``, and in the worst case
    ``offset <= 4 * stream_length / max_map_size`` (exceeded only with
    astronomically small probability).

    Merging replays the other sketch's counters through :meth:`update` and adds
    its offset, so the merged bounds are governed by the looser of the two
    inputs regardless of their sizes.

    Not thread-safe.  Shard ingestion across sketches and merge them instead.

    Public API:
      update(item, count=1), extend(items), merge(other), get_estimate(item),
      get_upper_bound(item), get_lower_bound(item), get_maximum_error(),
      get_frequent_items(error_type), reset(), export_state(), from_state(),
      to_bytes(), from_bytes(), to_string(), from_string()
    """

    # ---------------------------- Tunable constants ----------------------------
    LG_MIN_MAP_SIZE: int = 3                # the map starts with 8 slots
    LG_MAX_MAP_SIZE: int = serialization.LG_MAX_MAP_SIZE   # the map never exceeds 2**30 slots
    SAMPLE_SIZE: int = 256                  # counters sampled for the purge median
    LOAD_FACTOR: float = ReversePurgeLongHashMap.LOAD_FACTOR
    _DEFAULT_SEED: int = 0xF7E0_51A7        # deterministic default RNG seed

    # 64-bit odd constant (golden ratio scaled) for hashing the RNG salt.
    # Each purge mixes the configured seed with the current stream length.
    _SALT_MIX64: int = 0x9E3779B185EBCA87

    __slots__ = (
        "_lg_max_map_size",
        "_cur_map_cap",
        "_offset",
        "_stream_length",
        "_sample_size",
        "_hash_map",
        "_rng_seed",
    )

    def __init__(self, max_map_size: int, rng_seed: int = _DEFAULT_SEED):
        """
        Create an empty sketch.

        ``max_map_size`` is the largest physical length the internal map may
        grow to.  It must be a power of 2 and at least ``2**LG_MIN_MAP_SIZE``.
        Accuracy and memory both scale with it; the sketch keeps at most
        ``0.75 * max_map_size`` counters.
        """
        lg_max = to_log2(max_map_size, "max_map_size")
        self._init(lg_max, self.LG_MIN_MAP_SIZE, rng_seed)

    @classmethod
    def from_log2(
        cls,
        lg_max_map_size: int,
        lg_cur_map_size: int = LG_MIN_MAP_SIZE,
        rng_seed: int = _DEFAULT_SEED,
    ) -> "FrequentLongs":
        """Create an empty sketch whose map already has ``2**lg_cur_map_size`` slots."""
        self = cls.__new__(cls)
        self._init(lg_max_map_size, lg_cur_map_size, rng_seed)
        return self

    def _init(self, lg_max_map_size: int, lg_cur_map_size: int, rng_seed: int) -> None:
        if lg_max_map_size < self.LG_MIN_MAP_SIZE:
            raise ValueError(
                f"max map size must be >= {1 << self.LG_MIN_MAP_SIZE}: 2**{lg_max_map_size}"
            )
        if lg_max_map_size > self.LG_MAX_MAP_SIZE:
            raise ValueError(
                f"max map size must be <= {1 << self.LG_MAX_MAP_SIZE}: 2**{lg_max_map_size}"
            )
        lg_cur = max(lg_cur_map_size, self.LG_MIN_MAP_SIZE)
        if lg_cur > lg_max_map_size:
            raise ValueError(
                f"current map size 2**{lg_cur} exceeds maximum 2**{lg_max_map_size}"
            )
        self._lg_max_map_size = int(lg_max_map_size)
        self._hash_map = ReversePurgeLongHashMap(1 << lg_cur)
        self._cur_map_cap = self._hash_map.capacity
        self._offset = 0
        self._stream_length = 0
        self._sample_size = min(self.SAMPLE_SIZE, self.get_maximum_map_capacity())
        self._rng_seed = int(rng_seed)

    # ------------------------------- Public API --------------------------------
    def update(self, item: int, count: int = 1) -> None:
        """Add ``count`` to the frequency of ``item``.

        A zero count is a no-op; a negative count raises ``ValueError`` and
        leaves the sketch untouched.
        """
        item = _as_int64(item, "item")
        count = _as_int64(count, "count")
        if count == 0:
            return
        if count < 0:
            raise ValueError("count may not be negative")
        if self._stream_length > INT64_MAX - count:
            raise ValueError("stream length would overflow a signed 64-bit integer")
        self._stream_length += count
        self._offset += self._insert(item, count)

    def extend(self, items: Iterable[int]) -> None:
        for item in items:
            self.update(item)

    def merge(self, other: Optional["FrequentLongs"]) -> "FrequentLongs":
        """Fold ``other`` into this sketch and return ``self``.

        ``other`` may have a different maximum map size.  The result's error
        is bounded by the larger of the two sketches' errors.
        """
        if other is None:
            return self
        if not isinstance(other, FrequentLongs):
            raise TypeError("merge expects FrequentLongs")
        if other.is_empty():
            return self
        stream_length = self._stream_length + other._stream_length
        if stream_length > INT64_MAX:
            raise ValueError("merged stream length would overflow a signed 64-bit integer")
        other_offset = other._offset
        # Snapshot first so merging a sketch into itself is well defined.
        for item, count in list(other._hash_map):
            self.update(item, count)
        self._offset += other_offset
        self._stream_length = stream_length
        return self

    def get_estimate(self, item: int) -> int:
        """Counter plus offset for a tracked item, else 0."""
        count = self._hash_map.get(_as_int64(item, "item"))
        return count + self._offset if count > 0 else 0

    def get_upper_bound(self, item: int) -> int:
        """Guaranteed upper bound.  For an untracked item this is the offset, not 0."""
        return self._hash_map.get(_as_int64(item, "item")) + self._offset

    def get_lower_bound(self, item: int) -> int:
        """Guaranteed lower bound; 0 for an untracked item."""
        return self._hash_map.get(_as_int64(item, "item"))

    def get_maximum_error(self) -> int:
        """Upper bound on ``upper_bound - lower_bound`` for every item."""
        return self._offset

    def get_frequent_items(
        self, error_type: ErrorType, threshold: Optional[int] = None
    ) -> List[Row]:
        """Return the tracked items passing ``threshold``, by descending estimate.

        ``threshold`` defaults to :meth:`get_maximum_error`.
        ``NO_FALSE_NEGATIVES`` keeps items whose upper bound reaches it, so no
        item truly above the threshold is missed.  ``NO_FALSE_POSITIVES`` keeps
        items whose lower bound reaches it, so every reported item is truly
        above the threshold.
        """
        if not isinstance(error_type, ErrorType):
            raise ValueError(f"error_type must be an ErrorType: {error_type!r}")
        if threshold is None:
            threshold = self.get_maximum_error()
        offset = self._offset
        rows: List[Row] = []
        for item, count in self._hash_map:
            ub = count + offset
            bound = ub if error_type is ErrorType.NO_FALSE_NEGATIVES else count
            if bound >= threshold:
                rows.append(Row(item, ub, ub, count))
        rows.sort(key=lambda row: row.estimate, reverse=True)
        return rows

    def is_empty(self) -> bool:
        """True until the first non-zero update (and again after :meth:`reset`)."""
        return self._stream_length == 0

    def get_stream_length(self) -> int:
        return self._stream_length

    def get_num_active_items(self) -> int:
        return self._hash_map.num_active

    def get_current_map_capacity(self) -> int:
        """Counters the map supports at its current length before growing or purging."""
        return self._cur_map_cap

    def get_maximum_map_capacity(self) -> int:
        """Counters the map supports at ``max_map_size``."""
        return int((1 << self._lg_max_map_size) * self.LOAD_FACTOR)

    def get_storage_bytes(self) -> int:
        """Size of :meth:`to_bytes` output."""
        if self.is_empty():
            return 8
        return 8 * serialization.PREAMBLE_LONGS_FULL + 16 * self.get_num_active_items()

    def reset(self) -> None:
        """Return to the empty state; configuration and seed are kept."""
        self._hash_map = ReversePurgeLongHashMap(1 << self.LG_MIN_MAP_SIZE)
        self._cur_map_cap = self._hash_map.capacity
        self._offset = 0
        self._stream_length = 0

    # ------------------------------ Persistence --------------------------------
    def export_state(self) -> SketchState:
        return SketchState(
            lg_max_map_size=self._lg_max_map_size,
            lg_cur_map_size=self._hash_map.lg_length,
            stream_length=self._stream_length,
            offset=self._offset,
            entries=tuple(self._hash_map),
        )

    @classmethod
    def from_state(cls, state: SketchState, rng_seed: int = _DEFAULT_SEED) -> "FrequentLongs":
        """Rebuild a sketch from :meth:`export_state` output.

        The pairs are replayed through :meth:`update` into a map of the
        recorded current size, so no grow or purge happens for a state that
        came from a real sketch.  The recorded stream length then replaces the
        replayed one.
        """
        if state.offset < 0 or state.stream_length < 0:
            raise ValueError("offset and stream length must be non-negative")
        self = cls.from_log2(state.lg_max_map_size, state.lg_cur_map_size, rng_seed)
        self._offset = state.offset
        for item, count in state.entries:
            self.update(item, count)
        self._stream_length = state.stream_length
        return self

    def to_bytes(self) -> bytes:
        """Serialize into the binary frequency-sketch layout (see :mod:`.serialization`)."""
        return serialization.to_bytes(self.export_state())

    @classmethod
    def from_bytes(cls, b: bytes) -> "FrequentLongs":
        """Rehydrate a :class:`FrequentLongs` instance from :meth:`to_bytes` output."""
        return cls.from_state(serialization.from_bytes(b))

    def to_string(self) -> str:
        return serialization.to_string(self.export_state())

    @classmethod
    def from_string(cls, s: str) -> "FrequentLongs":
        return cls.from_state(serialization.from_string(s))

    def __repr__(self) -> str:
        return (
            f"FrequentLongs(stream_length={self._stream_length}, offset={self._offset}, "
            f"active={self.get_num_active_items()}, map_length={self._hash_map.length}, "
            f"max_map_size={1 << self._lg_max_map_size})"
        )

    # ------------------------------- Internals ---------------------------------
    def _rng(self, salt: int) -> random.Random:
        # Deterministic per-purge RNG using a 64-bit mix of seed and salt.
        mix = (self._rng_seed * self._SALT_MIX64 + (salt & 0xFFFFFFFFFFFF)) & 0xFFFFFFFFFFFFFFFF
        return random.Random(mix)

    def _insert(self, item: int, count: int) -> int:
        """Apply one counter update and return the mass it purged (0 if none)."""
        hash_map = self._hash_map
        hash_map.adjust_or_put_value(item, count)
        if hash_map.num_active <= self._cur_map_cap:
            return 0

        if hash_map.lg_length < self._lg_max_map_size:
            hash_map.resize(2 * hash_map.length)
            self._cur_map_cap = hash_map.capacity
            log.debug("grew map to %d slots (capacity %d)", hash_map.length, self._cur_map_cap)
            return 0

        before = hash_map.num_active
        removed = hash_map.purge(self._sample_size, self._rng(salt=self._stream_length))
        log.debug(
            "purged %d of %d counters by median %d", before - hash_map.num_active, before, removed
        )
        if hash_map.num_active > self.get_maximum_map_capacity():
            raise RuntimeError("purge did not reduce active items")
        return removed
