#!/usr/bin/env python3
"""Launch and tear down long-running servers on a remote host via a pidfile."""

from __future__ import annotations

import shlex
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from perf_harness.automation.command_runner import RemoteHost
from perf_harness.automation.discovery import DISCOVERY_FILE
from perf_harness.automation.versions import Version

# Paths are relative to the remote login directory unless absolute.
PIDFILE = "pidfile"
SERVER_LOG = "server.log"
STALE_ARTIFACTS = (PIDFILE, SERVER_LOG, DISCOVERY_FILE)

SERVER_PORT = 4001
SERVER_BIND_HOST = "0.0.0.0"


class ProcessLaunchError(RuntimeError):
    pass


def perf_binary(version: Version) -> str:
    return f"./impl/{version.implementation}/{version.id}/perf"


def cleanup_script(artifacts: Sequence[str] = STALE_ARTIFACTS) -> str:
    # Every step may find nothing to do; none of that is an error.
    removals = " ".join(shlex.quote(path) for path in artifacts)
    return f"kill $(cat {PIDFILE} 2>/dev/null) 2>/dev/null; rm -f {removals} || true"


def launch_script(argv: Sequence[str]) -> str:
    cmd = " ".join(shlex.quote(str(arg)) for arg in argv)
    return f"nohup {cmd} > {SERVER_LOG} 2>&1 & echo $! > {PIDFILE}"


def stop_server(host: RemoteHost, artifacts: Sequence[str] = STALE_ARTIFACTS) -> None:
    """Kill whatever the pidfile points at and clear the server artifacts."""
    print(f"[process] stopping server on {host.address}", file=sys.stderr)
    host.run(cleanup_script(artifacts))


def start_remote_process(host: RemoteHost, argv: Sequence[str], artifacts: Sequence[str] = STALE_ARTIFACTS) -> None:
    """Replace any previous server on host with argv, detached and logging to SERVER_LOG."""
    if not argv:
        raise ProcessLaunchError("cannot launch an empty command")
    stop_server(host, artifacts)
    print(f"[process] launching on {host.address}: {' '.join(argv)}", file=sys.stderr)
    host.run(launch_script(argv))


def server_argv(
    version: Version,
    transport_hint: Optional[str] = None,
    port: int = SERVER_PORT,
    bind_host: str = SERVER_BIND_HOST,
) -> List[str]:
    argv = [perf_binary(version), "--run-server", "--server-address", f"{bind_host}:{port}"]
    if transport_hint:
        argv += ["--transport", transport_hint]
    return argv


def start_server(
    host: RemoteHost,
    version: Version,
    transport_hint: Optional[str] = None,
    port: int = SERVER_PORT,
    bind_host: str = SERVER_BIND_HOST,
) -> None:
    start_remote_process(host, server_argv(version, transport_hint, port, bind_host))


@contextmanager
def managed_remote_process(host: RemoteHost, argv: Sequence[str]) -> Iterator[RemoteHost]:
    """Run argv on host for the duration of the block and make sure it is stopped."""
    start_remote_process(host, argv)
    try:
        yield host
    finally:
        stop_server(host)


@contextmanager
def managed_server(
    host: RemoteHost,
    version: Version,
    transport_hint: Optional[str] = None,
    port: int = SERVER_PORT,
    bind_host: str = SERVER_BIND_HOST,
) -> Iterator[RemoteHost]:
    with managed_remote_process(host, server_argv(version, transport_hint, port, bind_host)) as server:
        yield server
