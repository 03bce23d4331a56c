#!/usr/bin/env python3
"""Drive one benchmark across every selected version and transport stack.

Per version the server lifecycle is strictly sequential: stop any stale server,
start the new one on the fixed port, discover its address if a transport
needs it, run the client for every supported transport, stop the server.
Only one server may hold the port at a time, so nothing here runs in parallel.
"""

from __future__ import annotations

import json
import shlex
import sys
from typing import List, Optional, Sequence

from perf_harness.automation.command_runner import TIMEOUT_EXIT_CODE, RemoteHost
from perf_harness.automation.config import BenchmarkSpec
from perf_harness.automation.discovery import (
    DISCOVERY_TRANSPORTS,
    SETTLE_DELAY_S,
    discover_listen_addr,
    requires_discovery,
)
from perf_harness.automation.process_utils import SERVER_BIND_HOST, SERVER_PORT, managed_server, perf_binary
from perf_harness.automation.results import Benchmark, Result, ResultValue
from perf_harness.automation.versions import Version


def parse_result_values(stdout: str, limit: Optional[int] = None) -> List[ResultValue]:
    """Decode one JSON value per stdout line, dropping lines that are not JSON."""
    values: List[ResultValue] = []
    for line in stdout.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            values.append(json.loads(line))
        except json.JSONDecodeError:
            print(f"[executor] could not parse result value from line: {line}", file=sys.stderr)
    if limit is not None and len(values) > limit:
        print(
            f"[executor] warning: got {len(values)} result values for {limit} iterations; keeping the first {limit}",
            file=sys.stderr,
        )
        values = values[:limit]
    return values


def client_script(
    version: Version,
    transport_stack: str,
    server_address: str,
    upload_bytes: int,
    download_bytes: int,
    iterations: int,
    duration_s: int,
) -> str:
    argv = [
        perf_binary(version),
        "--server-address",
        server_address,
        "--transport",
        transport_stack,
        "--upload-bytes",
        str(upload_bytes),
        "--download-bytes",
        str(download_bytes),
    ]
    cmd = " ".join(shlex.quote(arg) for arg in argv)
    # Hitting the timeout ends a throughput iteration on purpose; it is not a failure.
    with_timeout = f"timeout {duration_s}s {cmd} || [ $? -eq {TIMEOUT_EXIT_CODE} ]"
    return f"for i in $(seq 1 {iterations}); do {with_timeout}; done"


def run_client(
    client: RemoteHost,
    version: Version,
    transport_stack: str,
    server_address: str,
    spec: BenchmarkSpec,
) -> List[ResultValue]:
    print(f"[executor] === starting client {version.label}/{transport_stack}", file=sys.stderr)
    script = client_script(
        version,
        transport_stack,
        server_address,
        spec.upload_bytes,
        spec.download_bytes,
        spec.iterations,
        spec.duration_s,
    )
    stdout = client.run(script, allowed_exit_codes=(TIMEOUT_EXIT_CODE,))
    return parse_result_values(stdout, limit=spec.iterations)


def _transport_hint(version: Version) -> Optional[str]:
    for stack in version.transport_stacks:
        if stack in DISCOVERY_TRANSPORTS:
            return stack
    return None


def run_version(
    spec: BenchmarkSpec,
    version: Version,
    client: RemoteHost,
    server: RemoteHost,
    port: int = SERVER_PORT,
    bind_host: str = SERVER_BIND_HOST,
    settle_delay_s: float = SETTLE_DELAY_S,
) -> List[Result]:
    print(f"[executor] == version {version.label}", file=sys.stderr)
    results: List[Result] = []
    with managed_server(server, version, _transport_hint(version), port=port, bind_host=bind_host):
        listen_addr: Optional[str] = None
        if requires_discovery(version.transport_stacks):
            listen_addr = discover_listen_addr(server, settle_delay_s=settle_delay_s)

        for stack in version.transport_stacks:
            if stack in DISCOVERY_TRANSPORTS:
                address = listen_addr
            else:
                address = f"{server.address}:{port}"
            values = run_client(client, version, stack, address, spec)
            results.append(
                Result(
                    result=tuple(values),
                    implementation=version.implementation,
                    version=version.id,
                    transport_stack=stack,
                )
            )
    return results


def run_benchmark_across_versions(
    spec: BenchmarkSpec,
    versions: Sequence[Version],
    client: RemoteHost,
    server: RemoteHost,
    port: int = SERVER_PORT,
    bind_host: str = SERVER_BIND_HOST,
    settle_delay_s: float = SETTLE_DELAY_S,
) -> Benchmark:
    labels = ", ".join(v.label for v in versions)
    print(f"[executor] = benchmark {spec.name} on versions {labels}", file=sys.stderr)
    results: List[Result] = []
    for version in versions:
        results.extend(
            run_version(
                spec,
                version,
                client,
                server,
                port=port,
                bind_host=bind_host,
                settle_delay_s=settle_delay_s,
            )
        )
    return Benchmark(
        name=spec.name,
        unit=spec.unit,
        upload_bytes=spec.upload_bytes,
        download_bytes=spec.download_bytes,
        results=tuple(results),
    )
