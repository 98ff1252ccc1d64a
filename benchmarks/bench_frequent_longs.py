#!/usr/bin/env python3
"""Benchmark runner for the local frequent_longs implementation."""

from __future__ import annotations

import argparse
import hashlib
import importlib
import math
import time
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--module", default="frequent_longs", help="Module that exports the sketch class")
    parser.add_argument("--class", dest="cls", default="FrequentLongsSketch", help="Sketch class name inside the module")
    parser.add_argument("--outdir", default="bench_out", help="Directory for benchmark CSV outputs")
    parser.add_argument("--seed", type=int, default=42, help="Base RNG seed for reproducibility")
    parser.add_argument("--Ns", nargs="+", default=["1e5", "1e6"], help="Stream lengths to benchmark")
    parser.add_argument(
        "--map-sizes", nargs="+", default=["256", "1024", "4096"], help="Maximum map sizes to benchmark"
    )
    parser.add_argument(
        "--distributions",
        nargs="+",
        default=["zipf", "uniform", "sequential", "bursty"],
        help="Synthetic item distributions to sample",
    )
    parser.add_argument("--queries", type=int, default=1_000, help="Point queries timed per configuration")
    parser.add_argument("--shards", type=int, default=8, help="Number of shards for the merge benchmark")
    return parser.parse_args()


def _to_int_list(values: Iterable[str]) -> List[int]:
    return [int(float(v)) for v in values]


def _hash_seed(seed: int, *parts: object) -> int:
    material = "::".join(str(p) for p in (seed,) + parts)
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return int(digest[:16], 16)


def _zipf(rng: np.random.Generator, size: int) -> np.ndarray:
    return rng.zipf(a=1.2, size=size).astype(np.int64)


def _uniform(rng: np.random.Generator, size: int) -> np.ndarray:
    return rng.integers(0, 1 << 20, size=size, dtype=np.int64)


def _sequential(rng: np.random.Generator, size: int) -> np.ndarray:
    # Every item distinct: the adversarial case for the purge.
    return np.arange(size, dtype=np.int64)


def _bursty(rng: np.random.Generator, size: int) -> np.ndarray:
    heavy = size // 4
    data = np.concatenate(
        [rng.integers(0, 16, size=heavy, dtype=np.int64), rng.integers(16, 1 << 30, size=size - heavy, dtype=np.int64)]
    ) if size else np.empty(0, dtype=np.int64)
    # Sorted bursts instead of a shuffled mix.
    return np.sort(data)


DATA_GENERATORS: Dict[str, Callable[[np.random.Generator, int], np.ndarray]] = {
    "zipf": _zipf,
    "uniform": _uniform,
    "sequential": _sequential,
    "bursty": _bursty,
}


def _validate_distributions(names: Sequence[str]) -> None:
    unknown = sorted(set(names) - DATA_GENERATORS.keys())
    if unknown:
        raise ValueError(f"Unknown distributions requested: {', '.join(unknown)}")


def _instantiate_sketch(sketch_cls, max_map_size: int, seed: int):
    return sketch_cls(max_map_size=max_map_size, rng_seed=seed)


def _accuracy_record(sketch, truth: Counter, error_type, dist: str, N: int, max_map_size: int, mode: str) -> Dict[str, object]:
    max_error = sketch.get_maximum_error()
    violations = 0
    for item, freq in truth.items():
        if not sketch.get_lower_bound(item) <= freq <= sketch.get_upper_bound(item):
            violations += 1
    heavy = {item for item, freq in truth.items() if freq > max_error}
    reported = {row.item for row in sketch.get_frequent_items(error_type.NO_FALSE_NEGATIVES)}
    recall = len(heavy & reported) / len(heavy) if heavy else 1.0
    return {
        "distribution": dist,
        "N": int(N),
        "max_map_size": int(max_map_size),
        "mode": mode,
        "max_error": int(max_error),
        "relative_error": max_error / N if N else 0.0,
        "error_bound": 4.0 / max_map_size,
        "bound_violations": violations,
        "heavy_hitter_recall": recall,
        "active_items": sketch.get_num_active_items(),
    }


def main() -> None:
    args = _parse_args()

    Ns = _to_int_list(args.Ns)
    map_sizes = _to_int_list(args.map_sizes)
    _validate_distributions(args.distributions)

    module = importlib.import_module(args.module)
    if not hasattr(module, args.cls):
        available = ", ".join(sorted(attr for attr in dir(module) if not attr.startswith("_")))
        raise AttributeError(f"{module.__name__!r} does not define {args.cls!r}. Available attributes: {available}")
    sketch_cls = getattr(module, args.cls)
    error_type = module.ErrorType

    outdir = Path(args.outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    accuracy_records: List[Dict[str, object]] = []
    throughput_records: List[Dict[str, object]] = []
    latency_records: List[Dict[str, object]] = []
    merge_records: List[Dict[str, object]] = []

    for dist in args.distributions:
        for N in Ns:
            combo_seed = _hash_seed(args.seed, dist, N)
            data_rng = np.random.default_rng(combo_seed)
            data = DATA_GENERATORS[dist](data_rng, N)
            items = [int(v) for v in data]
            truth = Counter(items)
            probes = [int(v) for v in data_rng.choice(data, size=min(args.queries, N), replace=True)] if N else []

            for max_map_size in map_sizes:
                sketch = _instantiate_sketch(sketch_cls, max_map_size, args.seed)
                start = time.perf_counter()
                for item in items:
                    sketch.update(item)
                update_elapsed = time.perf_counter() - start
                updates_per_sec = (N / update_elapsed) if update_elapsed > 0 else math.inf

                throughput_records.append(
                    {
                        "distribution": dist,
                        "N": int(N),
                        "max_map_size": int(max_map_size),
                        "update_time_s": update_elapsed,
                        "updates_per_sec": updates_per_sec,
                    }
                )

                for item in probes:
                    q_start = time.perf_counter()
                    sketch.get_estimate(item)
                    latency_records.append(
                        {
                            "distribution": dist,
                            "N": int(N),
                            "max_map_size": int(max_map_size),
                            "latency_us": (time.perf_counter() - q_start) * 1e6,
                        }
                    )

                accuracy_records.append(_accuracy_record(sketch, truth, error_type, dist, N, max_map_size, "single"))

                shard_sketches = []
                for shard_idx, shard in enumerate(np.array_split(data, args.shards)):
                    shard_sketch = _instantiate_sketch(sketch_cls, max_map_size, args.seed + shard_idx + 1)
                    for value in shard:
                        shard_sketch.update(int(value))
                    shard_sketches.append(shard_sketch)

                merge_target = _instantiate_sketch(sketch_cls, max_map_size, args.seed)
                merge_start = time.perf_counter()
                for shard_sketch in shard_sketches:
                    merge_target.merge(shard_sketch)
                merge_elapsed = time.perf_counter() - merge_start

                merge_records.append(
                    {
                        "distribution": dist,
                        "N": int(N),
                        "max_map_size": int(max_map_size),
                        "shards": int(args.shards),
                        "merge_time_s": merge_elapsed,
                    }
                )
                accuracy_records.append(_accuracy_record(merge_target, truth, error_type, dist, N, max_map_size, "merged"))

    accuracy_path = outdir / "accuracy.csv"
    throughput_path = outdir / "update_throughput.csv"
    latency_path = outdir / "query_latency.csv"
    merge_path = outdir / "merge.csv"

    pd.DataFrame.from_records(accuracy_records).to_csv(accuracy_path, index=False)
    pd.DataFrame.from_records(throughput_records).to_csv(throughput_path, index=False)
    pd.DataFrame.from_records(latency_records).to_csv(latency_path, index=False)
    pd.DataFrame.from_records(merge_records).to_csv(merge_path, index=False)

    print("Benchmark artifacts written to:")
    print(f"  {accuracy_path}")
    print(f"  {throughput_path}")
    print(f"  {latency_path}")
    print(f"  {merge_path}")


if __name__ == "__main__":
    main()
