#!/usr/bin/env python3
"""Render figures from a benchmark-results.json report.

Typical usage:
  python3 -m perf_harness.automation.plot_results \
    --report benchmark-results.json --out-dir figures

Writes one PNG per benchmark (box plot per implementation/version/transport)
plus the ping and iperf baselines. Result values are only interpreted when they
carry the perf output fields (timeSeconds, uploadBytes, downloadBytes);
anything else is skipped.
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from perf_harness.automation.results import load_report


def _as_float(v: Any) -> Optional[float]:
    if v is None or v == "" or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def result_metric(value: Any, unit: str) -> Optional[float]:
    if not isinstance(value, dict):
        return None
    if value.get("type", "final") != "final":
        return None
    seconds = _as_float(value.get("timeSeconds"))
    if seconds is None or seconds <= 0:
        return None
    if unit == "s":
        return seconds
    upload = _as_float(value.get("uploadBytes")) or 0.0
    download = _as_float(value.get("downloadBytes")) or 0.0
    return (upload + download) * 8 / seconds


def benchmark_series(benchmark: Dict[str, Any]) -> List[Tuple[str, List[float]]]:
    unit = str(benchmark.get("unit", ""))
    series: List[Tuple[str, List[float]]] = []
    for entry in benchmark.get("results") or []:
        label = f"{entry.get('implementation')}/{entry.get('version')}\n{entry.get('transportStack')}"
        values = [m for m in (result_metric(v, unit) for v in entry.get("result") or []) if m is not None]
        series.append((label, values))
    return series


def _slug(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]+", "_", name).strip("_").lower() or "benchmark"


def plot_report(report: Dict[str, Any], out_dir: Path) -> List[Path]:
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    for benchmark in report.get("benchmarks") or []:
        series = [(label, values) for label, values in benchmark_series(benchmark) if values]
        if not series:
            print(f"[plot_results] skip {benchmark.get('name')}: no plottable values", file=sys.stderr)
            continue
        fig, ax = plt.subplots(1, 1, figsize=(max(6.0, 1.6 * len(series)), 3.8))
        ax.boxplot([values for _, values in series])
        ax.set_xticks(range(1, len(series) + 1))
        ax.set_xticklabels([label for label, _ in series], fontsize=8)
        ax.set_ylabel(benchmark.get("unit", ""))
        ax.set_title(str(benchmark.get("name", "")))
        ax.grid(axis="y", alpha=0.3)
        fig.tight_layout()
        path = out_dir / f"{_slug(str(benchmark.get('name', '')))}.png"
        fig.savefig(path, dpi=150)
        plt.close(fig)
        written.append(path)

    pings = (report.get("pings") or {}).get("results") or []
    if pings:
        fig, ax = plt.subplots(1, 1, figsize=(6.0, 3.8))
        ax.hist([p * 1000 for p in pings], bins=min(30, max(5, len(pings) // 3)))
        ax.set_xlabel("round trip (ms)")
        ax.set_ylabel("count")
        ax.set_title("ping baseline")
        fig.tight_layout()
        path = out_dir / "baseline_ping.png"
        fig.savefig(path, dpi=150)
        plt.close(fig)
        written.append(path)

    iperf = (report.get("iperf") or {}).get("results") or []
    if iperf:
        fig, ax = plt.subplots(1, 1, figsize=(6.0, 3.8))
        ax.plot(range(1, len(iperf) + 1), [r / 1e9 for r in iperf], marker=".")
        ax.set_xlabel("sample")
        ax.set_ylabel("Gbit/s")
        ax.set_title("iperf3 baseline")
        ax.grid(alpha=0.3)
        fig.tight_layout()
        path = out_dir / "baseline_iperf.png"
        fig.savefig(path, dpi=150)
        plt.close(fig)
        written.append(path)

    return written


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Plot a benchmark report")
    ap.add_argument("--report", default="benchmark-results.json")
    ap.add_argument("--out-dir", default="figures")
    args = ap.parse_args(argv)

    report = load_report(Path(args.report))
    if report is None:
        print(f"[plot_results] report not found: {args.report}", file=sys.stderr)
        return 2
    written = plot_report(report, Path(args.out_dir))
    print(f"[plot_results] wrote {len(written)} figures to {args.out_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
