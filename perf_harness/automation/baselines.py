#!/usr/bin/env python3
"""Raw network baselines (ping latency, iperf3 throughput) between the two hosts.

Both probes are best-effort: if one fails the report still gets a series with
the right unit, just an empty one, and the benchmarks run regardless.
"""

from __future__ import annotations

import re
import sys
from typing import List, Tuple

from perf_harness.automation.command_runner import RemoteHost
from perf_harness.automation.process_utils import managed_remote_process
from perf_harness.automation.results import IperfResults, PingResults, empty_iperf, empty_pings

_PING_TIME_RE = re.compile(r"time=(\d+(?:\.\d+)?) ms")
_IPERF_RATE_RE = re.compile(r"(\d+(?:\.\d+)?) ([KMG])bits/sec")
BIT_MULTIPLIERS = {"K": 1e3, "M": 1e6, "G": 1e9}


def parse_ping_output(stdout: str) -> List[float]:
    """Round-trip times in seconds, one per reply line."""
    times: List[float] = []
    for line in stdout.splitlines():
        match = _PING_TIME_RE.search(line)
        if match:
            times.append(float(match.group(1)) / 1000)
    return times


def parse_iperf_output(stdout: str) -> List[float]:
    """Bitrates in bit/s from iperf3's human-readable interval and summary lines.

    Only K/M/G-prefixed rates count; bare "bits/sec" lines (idle intervals
    such as "0.00 bits/sec") are skipped.
    """
    rates: List[float] = []
    for line in stdout.splitlines():
        match = _IPERF_RATE_RE.search(line)
        if match:
            rates.append(float(match.group(1)) * BIT_MULTIPLIERS[match.group(2)])
    return rates


def run_ping(client: RemoteHost, server: RemoteHost, count: int) -> PingResults:
    print(f"[baselines] = run {count} pings from client to server", file=sys.stderr)
    stdout = client.run(f"ping -c {count} {server.address}")
    return PingResults(unit="s", results=tuple(parse_ping_output(stdout)))


def run_iperf(client: RemoteHost, server: RemoteHost, seconds: int) -> IperfResults:
    print(f"[baselines] = run {seconds}s of iperf3 TCP from client to server", file=sys.stderr)
    with managed_remote_process(server, ["iperf3", "-s"]):
        stdout = client.run(f"iperf3 -c {server.address} -t {seconds} -N")
    return IperfResults(unit="bit/s", results=tuple(parse_iperf_output(stdout)))


def collect_baselines(
    client: RemoteHost,
    server: RemoteHost,
    ping_count: int,
    iperf_seconds: int,
) -> Tuple[PingResults, IperfResults]:
    pings = empty_pings()
    iperf = empty_iperf()
    try:
        pings = run_ping(client, server, ping_count)
    except Exception as exc:
        print(f"[baselines] warning: ping test failed: {exc}", file=sys.stderr)
    try:
        iperf = run_iperf(client, server, iperf_seconds)
    except Exception as exc:
        print(f"[baselines] warning: iperf test failed: {exc}", file=sys.stderr)
    return pings, iperf
