#!/usr/bin/env python3
"""Result types for a benchmark run and the recorder that persists them."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# One decoded JSON line from a client iteration; its fields belong to the perf binaries.
ResultValue = Any


@dataclass(frozen=True)
class Result:
    result: Tuple[ResultValue, ...]
    implementation: str
    version: str
    transport_stack: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": list(self.result),
            "implementation": self.implementation,
            "version": self.version,
            "transportStack": self.transport_stack,
        }


@dataclass(frozen=True)
class Benchmark:
    name: str
    unit: str
    upload_bytes: int
    download_bytes: int
    results: Tuple[Result, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "unit": self.unit,
            "results": [r.to_dict() for r in self.results],
            "parameters": {
                "uploadBytes": self.upload_bytes,
                "downloadBytes": self.download_bytes,
            },
        }


@dataclass(frozen=True)
class BaselineResults:
    unit: str
    results: Tuple[float, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"unit": self.unit, "results": list(self.results)}


PingResults = BaselineResults
IperfResults = BaselineResults


def empty_pings() -> PingResults:
    return PingResults(unit="s")


def empty_iperf() -> IperfResults:
    return IperfResults(unit="bit/s")


@dataclass(frozen=True)
class BenchmarkResults:
    benchmarks: Tuple[Benchmark, ...]
    pings: PingResults
    iperf: IperfResults

    def to_dict(self) -> Dict[str, Any]:
        return {
            "benchmarks": [b.to_dict() for b in self.benchmarks],
            "pings": self.pings.to_dict(),
            "iperf": self.iperf.to_dict(),
        }


@dataclass
class ResultRecorder:
    """Collects everything a run produces; the report is written once, at the end."""

    output_path: Path
    benchmarks: List[Benchmark] = field(default_factory=list)
    pings: PingResults = field(default_factory=empty_pings)
    iperf: IperfResults = field(default_factory=empty_iperf)
    written: bool = False

    def record_baselines(self, pings: PingResults, iperf: IperfResults) -> None:
        self.pings = pings
        self.iperf = iperf

    def add_benchmark(self, benchmark: Benchmark) -> None:
        if self.written:
            raise RuntimeError("report already written; benchmarks can no longer be added")
        self.benchmarks.append(benchmark)

    def report(self) -> BenchmarkResults:
        return BenchmarkResults(benchmarks=tuple(self.benchmarks), pings=self.pings, iperf=self.iperf)

    def finalize(self) -> Path:
        if self.written:
            raise RuntimeError(f"report already written to {self.output_path}")
        path = Path(self.output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.report().to_dict(), indent=2), encoding="utf-8")
        self.written = True
        print(f"[results] wrote {path}", file=sys.stderr)
        return path


def load_report(path: Path) -> Optional[Dict[str, Any]]:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
