#!/usr/bin/env python3
"""Validate benchmark outputs against regression thresholds.

This script is intended to run in CI after ``benchmarks/bench_frequent_longs.py``.
It reads CSV outputs from ``bench_out`` (or a supplied directory) and enforces
correctness and conservative performance targets so regressions surface early.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd


# The lower/upper bounds are deterministic: any violation is a bug.
BOUND_VIOLATIONS_MAX = 0
# offset <= 4 * N / maxMapSize except with astronomically small probability.
RELATIVE_ERROR_SLACK = 1.0
HEAVY_HITTER_RECALL_MIN = 1.0
THROUGHPUT_MIN_UPS = 20_000
LATENCY_P95_MAX_US = 100.0
MERGE_TIME_MAX_S = 5.0


def _load_csv(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Expected benchmark artifact missing: {path}")
    return pd.read_csv(path)


def _check_bounds(df: pd.DataFrame) -> Tuple[bool, int]:
    worst = int(df["bound_violations"].max()) if not df.empty else 0
    return worst <= BOUND_VIOLATIONS_MAX, worst


def _check_error(df: pd.DataFrame) -> Tuple[bool, Dict[str, float]]:
    single = df[df["mode"] == "single"]
    if single.empty:
        return True, {"worst_ratio": 0.0}
    ratio = (single["relative_error"] / single["error_bound"]).max()
    return float(ratio) <= RELATIVE_ERROR_SLACK, {"worst_ratio": float(ratio)}


def _check_recall(df: pd.DataFrame) -> Tuple[bool, float]:
    minimum = float(df["heavy_hitter_recall"].min()) if not df.empty else 1.0
    return minimum >= HEAVY_HITTER_RECALL_MIN, minimum


def _check_throughput(df: pd.DataFrame) -> Tuple[bool, float]:
    minimum = float(df["updates_per_sec"].min()) if not df.empty else float("inf")
    return minimum >= THROUGHPUT_MIN_UPS, minimum


def _check_latency(df: pd.DataFrame) -> Tuple[bool, float]:
    if df.empty:
        return True, 0.0
    p95 = float(df["latency_us"].quantile(0.95))
    return p95 <= LATENCY_P95_MAX_US, p95


def _check_merge(df: pd.DataFrame) -> Tuple[bool, float]:
    if df.empty:
        return True, 0.0
    maximum = float(df["merge_time_s"].max())
    return maximum <= MERGE_TIME_MAX_S, maximum


def _summarise(results: Dict[str, Dict[str, object]]) -> str:
    lines: List[str] = ["# Benchmark validation summary", ""]
    lines.append("| Check | Threshold | Observed | Status |")
    lines.append("| --- | --- | --- | --- |")
    for name, payload in results.items():
        status = "PASS" if payload["ok"] else "FAIL"
        lines.append(f"| {name} | {payload['threshold']} | {payload['observed']} | {status} |")
    lines.append("")
    lines.append("```json")
    lines.append(json.dumps(results, indent=2, sort_keys=True))
    lines.append("```")
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("outdir", nargs="?", default="bench_out", help="Directory containing benchmark CSVs")
    parser.add_argument("--summary", default="bench_summary.md", help="Filename for the generated markdown summary")
    args = parser.parse_args()

    outdir = Path(args.outdir)
    accuracy = _load_csv(outdir / "accuracy.csv")
    throughput = _load_csv(outdir / "update_throughput.csv")
    latency = _load_csv(outdir / "query_latency.csv")
    merge = _load_csv(outdir / "merge.csv")

    summary: Dict[str, Dict[str, object]] = {}

    bounds_ok, bounds_obs = _check_bounds(accuracy)
    summary["Bound violations"] = {"threshold": f"<= {BOUND_VIOLATIONS_MAX}", "observed": bounds_obs, "ok": bounds_ok}

    error_ok, error_obs = _check_error(accuracy)
    summary["Max error / (4N/M)"] = {
        "threshold": f"<= {RELATIVE_ERROR_SLACK}",
        "observed": {key: round(value, 6) for key, value in error_obs.items()},
        "ok": error_ok,
    }

    recall_ok, recall_obs = _check_recall(accuracy)
    summary["Heavy hitter recall"] = {
        "threshold": f">= {HEAVY_HITTER_RECALL_MIN}",
        "observed": round(recall_obs, 6),
        "ok": recall_ok,
    }

    throughput_ok, throughput_obs = _check_throughput(throughput)
    summary["Update throughput"] = {
        "threshold": f">= {THROUGHPUT_MIN_UPS} updates/sec",
        "observed": round(throughput_obs, 2),
        "ok": throughput_ok,
    }

    latency_ok, latency_obs = _check_latency(latency)
    summary["Query latency p95"] = {
        "threshold": f"<= {LATENCY_P95_MAX_US} µs",
        "observed": round(latency_obs, 2),
        "ok": latency_ok,
    }

    merge_ok, merge_obs = _check_merge(merge)
    summary["Merge time"] = {"threshold": f"<= {MERGE_TIME_MAX_S} s", "observed": round(merge_obs, 3), "ok": merge_ok}

    summary_path = outdir / args.summary
    summary_path.write_text(_summarise(summary), encoding="utf-8")

    print(summary_path.read_text(encoding="utf-8"))

    if not all(item["ok"] for item in summary.values()):
        raise SystemExit("Benchmark regression detected; see summary above.")


if __name__ == "__main__":
    main()
