# Reverse-purge hash map of (long item -> positive long count)
# - Open addressing with linear probing over parallel key/value/state arrays
# - state[i] == 0 marks an empty slot, otherwise it is 1 + distance from home slot
# - Deletion shifts later cluster members back, so no tombstones are needed
# - Growth is caller driven (resize); the map never grows on its own
# Python 3.9+

from __future__ import annotations

import random
from typing import Iterator, List, Tuple

from .median import approximate_median

_MASK64: int = 0xFFFFFFFFFFFFFFFF


def _hash(key: int) -> int:
    # 64-bit murmur3 finalizer; spreads sequential keys across the table.
    k = key & _MASK64
    k ^= k >> 33
    k = (k * 0xFF51AFD7ED558CCD) & _MASK64
    k ^= k >> 33
    k = (k * 0xC4CEB9FE1A85EC53) & _MASK64
    k ^= k >> 33
    return k


def to_log2(value: int, name: str) -> int:
    """Return log2 of ``value``, which must be a positive power of two."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer power of 2: {value!r}")
    if value <= 0 or value & (value - 1):
        raise ValueError(f"{name} must be a power of 2: {value}")
    return value.bit_length() - 1


class ReversePurgeLongHashMap:
    """
    Fixed-length open-addressed table mapping ``int`` items to positive counts.

    The table tolerates ``capacity = floor(length * LOAD_FACTOR)`` active
    entries before its owner has to either :meth:`resize` it or :meth:`purge`
    it.  Counts never drop to zero or below while visible: a purge subtracts an
    approximate median from every counter and deletes the ones that are no
    longer positive.

    Iterating the map yields ``(item, count)`` pairs in slot order.  Every call
    to ``iter()`` starts a fresh pass.
    """

    LOAD_FACTOR: float = 0.75
    _LG_MIN_LENGTH: int = 3              # 8 slots, capacity 6

    __slots__ = ("_lg_length", "_keys", "_values", "_states", "_num_active")

    def __init__(self, map_size: int):
        lg_length = to_log2(map_size, "map_size")
        if lg_length < self._LG_MIN_LENGTH:
            raise ValueError(f"map_size must be >= {1 << self._LG_MIN_LENGTH}: {map_size}")
        self._allocate(lg_length)

    # ------------------------------- Properties --------------------------------
    @property
    def length(self) -> int:
        return len(self._keys)

    @property
    def lg_length(self) -> int:
        return self._lg_length

    @property
    def capacity(self) -> int:
        """Maximum number of active entries before a grow or purge is due."""
        return int(self.length * self.LOAD_FACTOR)

    @property
    def num_active(self) -> int:
        return self._num_active

    def __len__(self) -> int:
        return self._num_active

    # ------------------------------- Public API --------------------------------
    def get(self, key: int) -> int:
        """Return the count stored for ``key``, or 0 if it is not present."""
        probe = self._find(key)
        if self._states[probe] == 0:
            return 0
        return self._values[probe]

    def __contains__(self, key: object) -> bool:
        if isinstance(key, bool) or not isinstance(key, int):
            return False
        return self._states[self._find(key)] != 0

    def adjust_or_put_value(self, key: int, delta: int) -> None:
        """Add ``delta`` to the count of ``key``, inserting it if absent.

        ``delta`` must be positive.  Keeping counts inside the signed 64-bit
        range is the caller's responsibility.
        """
        keys, states = self._keys, self._states
        mask = len(keys) - 1
        probe = _hash(key) & mask
        drift = 1
        while states[probe] != 0 and keys[probe] != key:
            probe = (probe + 1) & mask
            drift += 1
        if states[probe] == 0:
            if self._num_active + 1 >= len(keys):
                # At least one slot stays empty so every probe run terminates.
                raise RuntimeError(f"hash map is full ({self._num_active} of {len(keys)} slots)")
            keys[probe] = key
            self._values[probe] = delta
            states[probe] = drift
            self._num_active += 1
        else:
            self._values[probe] += delta

    def resize(self, new_size: int) -> None:
        """Reallocate the table at ``new_size`` slots and reinsert every entry."""
        lg_new = to_log2(new_size, "new_size")
        if lg_new <= self._lg_length:
            raise ValueError(f"new_size must exceed the current length {self.length}: {new_size}")
        old_keys, old_values, old_states = self._keys, self._values, self._states
        self._allocate(lg_new)
        for i, state in enumerate(old_states):
            if state:
                self.adjust_or_put_value(old_keys[i], old_values[i])

    def purge(self, sample_size: int, rng: random.Random) -> int:
        """Subtract an approximate median from every counter and drop non-positive ones.

        Returns the subtracted amount, which the owning sketch must fold into its
        error offset.  An empty table is left untouched and 0 is returned.
        """
        if self._num_active == 0:
            return 0
        limit = min(sample_size, self._num_active)
        median = approximate_median(self._iter_values(), limit, rng)
        self._adjust_all_values_by(-median)
        self._keep_only_positive_counts()
        return median

    def active_keys(self) -> List[int]:
        return [k for k, s in zip(self._keys, self._states) if s]

    def active_values(self) -> List[int]:
        return list(self._iter_values())

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        keys, values = self._keys, self._values
        for i, state in enumerate(self._states):
            if state:
                yield keys[i], values[i]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(length={self.length}, capacity={self.capacity}, "
            f"active={self._num_active})"
        )

    # ------------------------------- Internals ---------------------------------
    def _allocate(self, lg_length: int) -> None:
        length = 1 << lg_length
        self._lg_length = lg_length
        self._keys: List[int] = [0] * length
        self._values: List[int] = [0] * length
        self._states: List[int] = [0] * length
        self._num_active = 0

    def _find(self, key: int) -> int:
        """Slot holding ``key``, or the empty slot that ends its probe run."""
        keys, states = self._keys, self._states
        mask = len(keys) - 1
        probe = _hash(key) & mask
        while states[probe] != 0 and keys[probe] != key:
            probe = (probe + 1) & mask
        return probe

    def _iter_values(self) -> Iterator[int]:
        values = self._values
        for i, state in enumerate(self._states):
            if state:
                yield values[i]

    def _adjust_all_values_by(self, adjust: int) -> None:
        values = self._values
        for i, state in enumerate(self._states):
            if state:
                values[i] += adjust

    def _keep_only_positive_counts(self) -> None:
        states, values = self._states, self._values
        length = len(states)
        # An empty slot splits the clusters; scanning backwards from it means a
        # backward shift only ever moves entries that were already checked.
        first_empty = length - 1
        while states[first_empty] > 0:
            first_empty -= 1
        for probe in range(first_empty - 1, -1, -1):
            if states[probe] > 0 and values[probe] <= 0:
                self._hash_delete(probe)
        for probe in range(length - 1, first_empty - 1, -1):
            if states[probe] > 0 and values[probe] <= 0:
                self._hash_delete(probe)

    def _hash_delete(self, delete_probe: int) -> None:
        keys, values, states = self._keys, self._values, self._states
        mask = len(keys) - 1
        states[delete_probe] = 0
        self._num_active -= 1
        drift = 1
        probe = (delete_probe + drift) & mask
        while states[probe] != 0:
            # An entry may fill the hole only if its home slot is at or before it.
            if states[probe] > drift:
                keys[delete_probe] = keys[probe]
                values[delete_probe] = values[probe]
                states[delete_probe] = states[probe] - drift
                states[probe] = 0
                drift = 0
                delete_probe = probe
            probe = (probe + 1) & mask
            drift += 1
