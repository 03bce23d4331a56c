#!/usr/bin/env python3
"""Benchmark every selected perf implementation between a client and a server host.

Typical usage:
  # Full run against all implementations
  python3 -m perf_harness.automation.run_benchmarks \
    --client-public-ip 198.51.100.10 --server-public-ip 198.51.100.20

  # Quick pass: one iteration per benchmark, only two implementations
  python3 -m perf_harness.automation.run_benchmarks \
    --client-public-ip 198.51.100.10 --server-public-ip 198.51.100.20 \
    --testing --test-filter rust-libp2p --test-filter go-libp2p

Outputs:
  - benchmark-results.json (benchmarks + ping and iperf baselines), written only
    when every benchmark completed. Any failed remote command aborts the run
    with exit code 1 and no report.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from perf_harness.automation.baselines import collect_baselines
from perf_harness.automation.command_runner import CommandError, RemoteHost
from perf_harness.automation.config import ConfigError, RunnerConfig, load_runner_config
from perf_harness.automation.deploy import copy_and_build
from perf_harness.automation.discovery import AddressDiscoveryError, requires_discovery
from perf_harness.automation.executor import run_benchmark_across_versions
from perf_harness.automation.results import ResultRecorder
from perf_harness.automation.versions import (
    ALL_IMPLEMENTATIONS,
    IMPLEMENTATIONS,
    Version,
    implementations_of,
    load_versions,
    select_versions,
)


def _log(message: str) -> None:
    ts = datetime.now().isoformat(timespec="seconds")
    print(f"[{ts}] [run_benchmarks] {message}", file=sys.stderr, flush=True)


def build_plan(cfg: RunnerConfig, versions: Sequence[Version], client: RemoteHost, server: RemoteHost) -> Dict:
    return {
        "client": client.target,
        "server": server.target,
        "implementations": implementations_of(versions),
        "baselines": {"ping_count": cfg.ping_count, "iperf_seconds": cfg.iperf_seconds},
        "benchmarks": [
            {
                "name": spec.name,
                "unit": spec.unit,
                "iterations": spec.iterations,
                "duration_s": spec.duration_s,
                "runs": [
                    {
                        "version": v.label,
                        "transport_stacks": list(v.transport_stacks),
                        "discovery": requires_discovery(v.transport_stacks),
                    }
                    for v in versions
                ],
            }
            for spec in cfg.benchmarks
        ],
        "output": cfg.output,
    }


def run_all(
    cfg: RunnerConfig,
    versions: Sequence[Version],
    client: RemoteHost,
    server: RemoteHost,
    recorder: ResultRecorder,
) -> None:
    pings, iperf = collect_baselines(client, server, cfg.ping_count, cfg.iperf_seconds)
    recorder.record_baselines(pings, iperf)

    impls = implementations_of(versions)
    copy_and_build(server, impls, cfg.impl_dir, cfg.remote_root)
    copy_and_build(client, impls, cfg.impl_dir, cfg.remote_root)

    for spec in cfg.benchmarks:
        benchmark = run_benchmark_across_versions(
            spec,
            versions,
            client,
            server,
            port=cfg.server_port,
            bind_host=cfg.server_bind_host,
            settle_delay_s=cfg.discovery_settle_s,
        )
        recorder.add_benchmark(benchmark)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run perf benchmarks across implementations")
    parser.add_argument("--client-public-ip", required=True, help="Client public IP address")
    parser.add_argument("--server-public-ip", required=True, help="Server public IP address")
    parser.add_argument("--testing", action="store_true", help="Run in testing mode (reduced iterations)")
    parser.add_argument(
        "--test-filter",
        action="append",
        choices=[*IMPLEMENTATIONS, ALL_IMPLEMENTATIONS],
        help="Only run these implementations (repeatable). Defaults to all.",
    )
    parser.add_argument("--config", help="Override runner config path")
    parser.add_argument("--versions", help="Override versions catalog path")
    parser.add_argument("--output", help="Report path (default from runner config: benchmark-results.json)")
    parser.add_argument("--dry-run", action="store_true", help="Print the planned matrix and exit")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    test_filter: List[str] = args.test_filter or [ALL_IMPLEMENTATIONS]

    try:
        cfg = load_runner_config(args.config, testing=args.testing)
        versions = select_versions(load_versions(args.versions), test_filter)
    except ConfigError as exc:
        print(f"[run_benchmarks] error: {exc}", file=sys.stderr)
        return 2
    if args.output:
        cfg.output = args.output

    client = RemoteHost(args.client_public_ip, user=cfg.ssh_user, ssh_options=list(cfg.ssh_options))
    server = RemoteHost(args.server_public_ip, user=cfg.ssh_user, ssh_options=list(cfg.ssh_options))

    if args.dry_run:
        try:
            print(json.dumps(build_plan(cfg, versions, client, server), indent=2))
        except BrokenPipeError:
            pass
        return 0

    iterations = sorted({spec.iterations for spec in cfg.benchmarks})
    _log(f"= starting benchmark with {iterations} iterations on implementations {test_filter}")
    if not versions:
        print(f"[run_benchmarks] warning: no versions match {test_filter}", file=sys.stderr)

    recorder = ResultRecorder(Path(cfg.output))
    try:
        run_all(cfg, versions, client, server, recorder)
    except (CommandError, AddressDiscoveryError) as exc:
        print(f"[run_benchmarks] fatal: {exc}", file=sys.stderr)
        print("[run_benchmarks] no report written", file=sys.stderr)
        return 1

    recorder.finalize()
    _log("== done")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
