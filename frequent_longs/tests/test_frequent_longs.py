"""Deterministic regression tests for :mod:`frequent_longs`."""
from __future__ import annotations

import logging

import pytest

from frequent_longs import ErrorType, FrequentLongs, FrequentLongsSketch, Row, __version__
from frequent_longs._metadata import PROJECT_METADATA
from frequent_longs.reverse_purge_map import ReversePurgeLongHashMap

from .conftest import exact_frequencies


def _assert_bounds_hold(sketch: FrequentLongs, truth) -> None:
    for item, freq in truth.items():
        assert sketch.get_lower_bound(item) <= freq <= sketch.get_upper_bound(item)


def test_version_matches_metadata() -> None:
    assert __version__ == PROJECT_METADATA["version"]


def test_exact_while_below_capacity() -> None:
    sketch = FrequentLongs(max_map_size=64)
    for item in range(10):
        sketch.update(item)

    assert not sketch.is_empty()
    assert sketch.get_maximum_error() == 0
    for item in range(10):
        assert sketch.get_estimate(item) == 1
        assert sketch.get_lower_bound(item) == 1
        assert sketch.get_upper_bound(item) == 1


def test_forced_purge_on_smallest_map() -> None:
    sketch = FrequentLongs(max_map_size=8)
    assert sketch.get_maximum_map_capacity() == 6
    for item in range(20):
        sketch.update(item, 1)

    assert sketch.get_num_active_items() <= 6
    assert sketch.get_maximum_error() > 0
    assert sketch.get_stream_length() == 20
    _assert_bounds_hold(sketch, {item: 1 for item in range(20)})


def test_purge_of_equal_counters_empties_map_but_not_sketch() -> None:
    # Seven unit counters overflow the 8-slot map; the median is 1 so all go.
    sketch = FrequentLongs(max_map_size=8)
    sketch.extend(range(7))

    assert sketch.get_num_active_items() == 0
    assert sketch.get_maximum_error() == 1
    assert sketch.get_stream_length() == 7
    assert not sketch.is_empty()


def test_upper_bound_of_untracked_item_is_offset() -> None:
    sketch = FrequentLongs(max_map_size=8)
    sketch.extend(range(20))
    offset = sketch.get_maximum_error()

    assert offset > 0
    assert sketch.get_estimate(-42) == 0
    assert sketch.get_lower_bound(-42) == 0
    assert sketch.get_upper_bound(-42) == offset


def test_threshold_selection_sorted_by_estimate() -> None:
    sketch = FrequentLongs(max_map_size=64)
    sketch.update(1000, 1000)
    for item in range(1, 10):
        sketch.update(item, 1)

    assert sketch.get_maximum_error() == 0
    rows = sketch.get_frequent_items(ErrorType.NO_FALSE_POSITIVES)
    assert len(rows) == 10
    assert rows[0] == Row(item=1000, estimate=1000, upper_bound=1000, lower_bound=1000)
    estimates = [row.estimate for row in rows]
    assert estimates == sorted(estimates, reverse=True)


def test_explicit_threshold_filters_rows() -> None:
    sketch = FrequentLongs(max_map_size=64)
    sketch.update(1, 50)
    sketch.update(2, 10)
    sketch.update(3, 1)

    rows = sketch.get_frequent_items(ErrorType.NO_FALSE_NEGATIVES, threshold=10)
    assert [row.item for row in rows] == [1, 2]


def test_error_types_bracket_true_heavy_hitters(skewed_stream) -> None:
    sketch = FrequentLongs(max_map_size=64)
    for item, count in skewed_stream:
        sketch.update(item, count)
    truth = exact_frequencies(skewed_stream)
    max_error = sketch.get_maximum_error()
    assert max_error > 0

    no_fn = {row.item for row in sketch.get_frequent_items(ErrorType.NO_FALSE_NEGATIVES)}
    no_fp = {row.item for row in sketch.get_frequent_items(ErrorType.NO_FALSE_POSITIVES)}

    assert no_fp <= no_fn
    # Anything truly above the error must be tracked and reported.
    assert {item for item, freq in truth.items() if freq > max_error} <= no_fn
    assert all(truth[item] >= max_error for item in no_fp)


def test_error_bound_on_skewed_stream(skewed_stream) -> None:
    max_map_size = 64
    sketch = FrequentLongs(max_map_size=max_map_size)
    for item, count in skewed_stream:
        sketch.update(item, count)
        assert sketch.get_num_active_items() <= sketch.get_current_map_capacity()

    truth = exact_frequencies(skewed_stream)
    _assert_bounds_hold(sketch, truth)
    assert sketch.get_stream_length() == sum(truth.values())
    assert sketch.get_maximum_error() <= 4 * sketch.get_stream_length() / max_map_size


def test_map_grows_before_purging() -> None:
    sketch = FrequentLongs(max_map_size=1024)
    assert sketch.get_current_map_capacity() == 6
    sketch.extend(range(100))

    assert sketch.get_current_map_capacity() == 192
    assert sketch.get_num_active_items() == 100
    assert sketch.get_maximum_error() == 0


def test_zero_count_is_noop() -> None:
    sketch = FrequentLongs(max_map_size=16)
    sketch.update(5, 0)
    assert sketch.is_empty()
    assert sketch.get_num_active_items() == 0


def test_negative_count_rejected_without_side_effects() -> None:
    sketch = FrequentLongs(max_map_size=16)
    sketch.update(3, 7)
    with pytest.raises(ValueError):
        sketch.update(3, -5)
    assert sketch.get_stream_length() == 7
    assert sketch.get_estimate(3) == 7


@pytest.mark.parametrize("item", [1.5, "7", None, True, 1 << 63, -(1 << 63) - 1])
def test_invalid_items_rejected(item) -> None:
    sketch = FrequentLongs(max_map_size=16)
    with pytest.raises(ValueError):
        sketch.update(item)
    assert sketch.is_empty()


def test_stream_length_overflow_rejected() -> None:
    sketch = FrequentLongs(max_map_size=16)
    sketch.update(1, (1 << 63) - 1)
    with pytest.raises(ValueError):
        sketch.update(2, 1)
    assert sketch.get_stream_length() == (1 << 63) - 1
    assert sketch.get_estimate(2) == 0


@pytest.mark.parametrize("max_map_size", [0, 1, 4, 12, 100, -8, 8.0])
def test_invalid_max_map_size(max_map_size) -> None:
    with pytest.raises(ValueError):
        FrequentLongs(max_map_size=max_map_size)


def test_max_map_size_is_capped() -> None:
    largest = FrequentLongs(max_map_size=1 << FrequentLongs.LG_MAX_MAP_SIZE)
    assert largest.get_maximum_map_capacity() == 3 << (FrequentLongs.LG_MAX_MAP_SIZE - 2)
    largest.update(1, 1)
    assert FrequentLongs.from_bytes(largest.to_bytes()).get_estimate(1) == 1

    for too_large in (1 << (FrequentLongs.LG_MAX_MAP_SIZE + 1), 1 << 300):
        with pytest.raises(ValueError, match="max map size must be <="):
            FrequentLongs(max_map_size=too_large)
    with pytest.raises(ValueError):
        FrequentLongs.from_log2(FrequentLongs.LG_MAX_MAP_SIZE + 1)


def test_from_log2_validates_sizes() -> None:
    with pytest.raises(ValueError):
        FrequentLongs.from_log2(2)
    with pytest.raises(ValueError):
        FrequentLongs.from_log2(4, 5)
    sketch = FrequentLongs.from_log2(10, 1)
    assert sketch.get_current_map_capacity() == 6
    assert sketch.get_maximum_map_capacity() == 768


def test_merge_conserves_stream_length_across_sizes(skewed_stream) -> None:
    left, right = skewed_stream[:10_000], skewed_stream[10_000:]
    a = FrequentLongs(max_map_size=32)
    b = FrequentLongs(max_map_size=256)
    for item, count in left:
        a.update(item, count)
    for item, count in right:
        b.update(item, count)
    a_len, b_len = a.get_stream_length(), b.get_stream_length()
    a_err, b_err = a.get_maximum_error(), b.get_maximum_error()

    assert a.merge(b) is a
    assert a.get_stream_length() == a_len + b_len
    assert a.get_maximum_error() >= a_err + b_err
    _assert_bounds_hold(a, exact_frequencies(skewed_stream))


def test_merge_small_into_large_keeps_bounds(skewed_stream) -> None:
    small = FrequentLongs(max_map_size=8)
    large = FrequentLongs(max_map_size=512)
    for item, count in skewed_stream[:5_000]:
        small.update(item, count)
    for item, count in skewed_stream[5_000:]:
        large.update(item, count)

    large.merge(small)
    _assert_bounds_hold(large, exact_frequencies(skewed_stream))
    assert large.get_num_active_items() <= large.get_current_map_capacity()


def test_merge_of_fully_purged_sketch_keeps_its_offset() -> None:
    purged = FrequentLongs(max_map_size=8)
    purged.extend(range(7))
    assert purged.get_num_active_items() == 0

    target = FrequentLongs(max_map_size=64)
    target.merge(purged)
    assert target.get_maximum_error() == 1
    assert target.get_stream_length() == 7
    _assert_bounds_hold(target, {item: 1 for item in range(7)})


def test_merge_empty_is_identity() -> None:
    sketch = FrequentLongs(max_map_size=8)
    sketch.extend(range(20))
    before = (sketch.get_stream_length(), sketch.get_maximum_error())
    bounds = {i: (sketch.get_estimate(i), sketch.get_lower_bound(i), sketch.get_upper_bound(i)) for i in range(20)}

    sketch.merge(FrequentLongs(max_map_size=1024))
    sketch.merge(None)

    assert (sketch.get_stream_length(), sketch.get_maximum_error()) == before
    for i, expected in bounds.items():
        assert (sketch.get_estimate(i), sketch.get_lower_bound(i), sketch.get_upper_bound(i)) == expected


def test_merge_rejects_other_types() -> None:
    with pytest.raises(TypeError):
        FrequentLongs(max_map_size=8).merge({1: 2})  # type: ignore[arg-type]


def test_self_merge_doubles_counts() -> None:
    sketch = FrequentLongs(max_map_size=64)
    sketch.update(1, 3)
    sketch.update(2, 5)
    sketch.merge(sketch)

    assert sketch.get_stream_length() == 16
    assert sketch.get_estimate(1) == 6
    assert sketch.get_estimate(2) == 10


def test_reset_returns_to_empty() -> None:
    sketch = FrequentLongs(max_map_size=8, rng_seed=9)
    sketch.extend(range(50))
    sketch.reset()

    assert sketch.is_empty()
    assert sketch.get_maximum_error() == 0
    assert sketch.get_num_active_items() == 0
    assert sketch.get_current_map_capacity() == 6
    sketch.update(4, 2)
    assert sketch.get_estimate(4) == 2


def test_storage_bytes_matches_serialized_size() -> None:
    sketch = FrequentLongs(max_map_size=32)
    assert sketch.get_storage_bytes() == len(sketch.to_bytes()) == 8
    sketch.extend(range(10))
    assert sketch.get_storage_bytes() == len(sketch.to_bytes()) == 32 + 16 * 10


def test_alias_class_behaves_like_base() -> None:
    sketch = FrequentLongsSketch(max_map_size=16)
    sketch.update(1, 2)
    restored = FrequentLongsSketch.from_bytes(sketch.to_bytes())
    assert isinstance(restored, FrequentLongsSketch)
    assert restored.get_estimate(1) == 2


def test_row_text_rendering() -> None:
    row = Row(item=7, estimate=12, upper_bound=12, lower_bound=10)
    assert str(row).split() == ["12", "12", "10", "7"]
    assert Row.header().split() == ["Est", "UB", "LB", "Item"]


def test_rows_order_by_estimate() -> None:
    low = Row(item=1, estimate=5, upper_bound=5, lower_bound=5)
    high = Row(item=2, estimate=9, upper_bound=9, lower_bound=7)
    assert sorted([high, low]) == [low, high]
    assert low < high and high > low
    assert max([low, high]) is high

    sketch = FrequentLongs(max_map_size=16)
    for item, count in [(1, 3), (2, 8), (3, 5)]:
        sketch.update(item, count)
    rows = sketch.get_frequent_items(ErrorType.NO_FALSE_POSITIVES)
    assert rows == sorted(rows, reverse=True)


def test_queries_validate_items() -> None:
    sketch = FrequentLongs(max_map_size=16)
    sketch.update(1, 5)
    for query in (sketch.get_estimate, sketch.get_upper_bound, sketch.get_lower_bound):
        with pytest.raises(ValueError):
            query(True)
        with pytest.raises(ValueError):
            query("1")
        with pytest.raises(ValueError):
            query(1 << 63)
    assert sketch.get_estimate(1) == 5


def test_purges_are_logged(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="frequent_longs.frequent_longs")
    sketch = FrequentLongs(max_map_size=16)
    sketch.extend(range(40))
    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("grew map to 16 slots") for message in messages)
    assert any(message.startswith("purged") for message in messages)


def test_failed_purge_is_fatal(monkeypatch) -> None:
    monkeypatch.setattr(ReversePurgeLongHashMap, "purge", lambda self, sample_size, rng: 0)
    sketch = FrequentLongs(max_map_size=8)
    sketch.extend(range(6))
    with pytest.raises(RuntimeError, match="purge did not reduce active items"):
        sketch.update(6)
