"""Binary and string encodings for :class:`~frequent_longs.FrequentLongs`.

The codecs only see a :class:`SketchState`, the flat export of a sketch:
header scalars plus the active ``(item, count)`` pairs.  Every structural
check happens here, before a state is handed back to the sketch.

Binary layout (little-endian, 8-byte words):
  word 0 (all sketches): preLongs, serVer, familyID, lgMaxMapSize,
    lgCurMapSize, flags, sketchType, unused (one byte each)
  word 1: active item count (uint32) + 4 unused bytes
  word 2: stream length, word 3: offset
  then ``active`` counts followed by ``active`` items (int64 each).
An empty sketch is the single word 0 with the empty flag set.

String layout (comma separated integers):
  serVer,familyID,lgMaxMapSize,flags,sketchType,streamLength,offset,
  numActive,curMapLength, then numActive ``item,count`` pairs.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Tuple

SER_VER = 1
FAMILY_ID = 10
FREQ_SKETCH_TYPE = 1
EMPTY_FLAG_MASK = 4
PREAMBLE_LONGS_EMPTY = 1
PREAMBLE_LONGS_FULL = 4

_LG_MIN_MAP_SIZE = 3
LG_MAX_MAP_SIZE = 30
_STR_PREAMBLE_TOKENS = 7

_PRE0 = struct.Struct("<BBBBBBBx")
_PRE_REST = struct.Struct("<I4xqq")


@dataclass(frozen=True)
class SketchState:
    """Everything needed to rebuild a sketch: header scalars and active pairs."""

    lg_max_map_size: int
    lg_cur_map_size: int
    stream_length: int
    offset: int
    entries: Tuple[Tuple[int, int], ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.stream_length == 0

    @property
    def active_items(self) -> int:
        return len(self.entries)


def _corrupt(message: str) -> ValueError:
    return ValueError(f"Possible corruption: {message}")


def _check_map_sizes(lg_max: int, lg_cur: int) -> None:
    if not _LG_MIN_MAP_SIZE <= lg_max <= LG_MAX_MAP_SIZE:
        raise _corrupt(
            f"lgMaxMapSize must be in [{_LG_MIN_MAP_SIZE}, {LG_MAX_MAP_SIZE}]: {lg_max}"
        )
    if not _LG_MIN_MAP_SIZE <= lg_cur <= lg_max:
        raise _corrupt(f"lgCurMapSize must be in [{_LG_MIN_MAP_SIZE}, {lg_max}]: {lg_cur}")


def _check_empty_consistency(empty: bool, stream_length: int, active: int) -> None:
    if empty and (stream_length != 0 or active != 0):
        raise _corrupt(
            f"empty flag set with stream length {stream_length} and {active} active items"
        )
    if not empty and stream_length == 0:
        raise _corrupt("empty flag clear but stream length is 0")


# --------------------------------- Binary ------------------------------------
def to_bytes(state: SketchState) -> bytes:
    empty = state.is_empty
    pre_longs = PREAMBLE_LONGS_EMPTY if empty else PREAMBLE_LONGS_FULL
    out = bytearray()
    out += _PRE0.pack(
        pre_longs,
        SER_VER,
        FAMILY_ID,
        state.lg_max_map_size,
        state.lg_cur_map_size,
        EMPTY_FLAG_MASK if empty else 0,
        FREQ_SKETCH_TYPE,
    )
    if empty:
        return bytes(out)
    n = state.active_items
    out += _PRE_REST.pack(n, state.stream_length, state.offset)
    if n:
        out += struct.pack(f"<{n}q", *(count for _, count in state.entries))
        out += struct.pack(f"<{n}q", *(item for item, _ in state.entries))
    return bytes(out)


def from_bytes(b: bytes) -> SketchState:
    mv = memoryview(b)
    if len(mv) < _PRE0.size:
        raise _corrupt(f"need at least {_PRE0.size} bytes, got {len(mv)}")
    pre_longs, ser_ver, family, lg_max, lg_cur, flags, sk_type = _PRE0.unpack_from(mv, 0)

    if pre_longs not in (PREAMBLE_LONGS_EMPTY, PREAMBLE_LONGS_FULL):
        raise _corrupt(f"preLongs must be {PREAMBLE_LONGS_EMPTY} or {PREAMBLE_LONGS_FULL}: {pre_longs}")
    if ser_ver != SER_VER:
        raise _corrupt(f"serVer must be {SER_VER}: {ser_ver}")
    if family != FAMILY_ID:
        raise _corrupt(f"familyID must be {FAMILY_ID}: {family}")
    empty = bool(flags & EMPTY_FLAG_MASK)
    if empty != (pre_longs == PREAMBLE_LONGS_EMPTY):
        raise _corrupt("empty flag disagrees with preLongs")
    if sk_type != FREQ_SKETCH_TYPE:
        raise _corrupt(f"sketch type must be {FREQ_SKETCH_TYPE}: {sk_type}")

    if empty:
        _check_map_sizes(lg_max, _LG_MIN_MAP_SIZE)
        if len(mv) != _PRE0.size:
            raise _corrupt(f"empty sketch must be {_PRE0.size} bytes, got {len(mv)}")
        return SketchState(lg_max, _LG_MIN_MAP_SIZE, 0, 0)

    pre_bytes = pre_longs * 8
    if len(mv) < pre_bytes:
        raise _corrupt(f"need {pre_bytes} preamble bytes, got {len(mv)}")
    active, stream_length, offset = _PRE_REST.unpack_from(mv, _PRE0.size)
    expected = pre_bytes + 16 * active
    if len(mv) != expected:
        raise _corrupt(f"{active} active items need {expected} bytes, got {len(mv)}")
    _check_map_sizes(lg_max, lg_cur)
    if offset < 0:
        raise _corrupt(f"negative offset {offset}")
    _check_empty_consistency(False, stream_length, active)

    counts = struct.unpack_from(f"<{active}q", mv, pre_bytes)
    items = struct.unpack_from(f"<{active}q", mv, pre_bytes + 8 * active)
    return SketchState(lg_max, lg_cur, stream_length, offset, tuple(zip(items, counts)))


# --------------------------------- String ------------------------------------
def to_string(state: SketchState) -> str:
    header = [
        SER_VER,
        FAMILY_ID,
        state.lg_max_map_size,
        EMPTY_FLAG_MASK if state.is_empty else 0,
        FREQ_SKETCH_TYPE,
        state.stream_length,
        state.offset,
        state.active_items,
        1 << state.lg_cur_map_size,
    ]
    tokens: List[int] = list(header)
    for item, count in state.entries:
        tokens.append(item)
        tokens.append(count)
    return ",".join(str(t) for t in tokens)


def from_string(s: str) -> SketchState:
    raw = s.strip().rstrip(",").split(",")
    if len(raw) < _STR_PREAMBLE_TOKENS + 2:
        raise _corrupt(f"string not long enough: {len(raw)} tokens")
    try:
        tokens = [int(t) for t in raw]
    except ValueError as exc:
        raise _corrupt(f"non-integer token ({exc})") from exc

    ser_ver, family, lg_max, flags, sk_type, stream_length, offset, active, cur_len = tokens[:9]
    if ser_ver != SER_VER:
        raise _corrupt(f"serVer must be {SER_VER}: {ser_ver}")
    if family != FAMILY_ID:
        raise _corrupt(f"familyID must be {FAMILY_ID}: {family}")
    if sk_type != FREQ_SKETCH_TYPE:
        raise _corrupt(f"sketch type must be {FREQ_SKETCH_TYPE}: {sk_type}")
    if active < 0 or len(tokens) != _STR_PREAMBLE_TOKENS + 2 + 2 * active:
        raise _corrupt(f"{len(tokens)} tokens do not hold {active} active items")
    if cur_len <= 0 or cur_len & (cur_len - 1):
        raise _corrupt(f"current map length must be a power of 2: {cur_len}")
    _check_map_sizes(lg_max, cur_len.bit_length() - 1)
    if offset < 0:
        raise _corrupt(f"negative offset {offset}")
    _check_empty_consistency(flags > 0, stream_length, active)

    body = tokens[9:]
    entries = tuple(zip(body[0::2], body[1::2]))
    return SketchState(lg_max, cur_len.bit_length() - 1, stream_length, offset, entries)
