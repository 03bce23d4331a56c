#!/usr/bin/env python3
"""Copy the implementation sources to a host and build the selected ones there."""

from __future__ import annotations

import shlex
import sys
from typing import List, Sequence

from perf_harness.automation.command_runner import RemoteHost, run_command


def rsync_argv(host: RemoteHost, impl_dir: str, remote_root: str) -> List[str]:
    return [
        "rsync",
        "-avz",
        "--progress",
        "--exclude=node_modules",
        "--filter=:- .gitignore",
        "-e",
        host.ssh_transport(),
        impl_dir,
        f"{host.target}:{remote_root}",
    ]


def build_script(implementations: Sequence[str]) -> str:
    targets = " ".join(shlex.quote(name) for name in implementations)
    return f"cd impl && make {targets}"


def copy_and_build(host: RemoteHost, implementations: Sequence[str], impl_dir: str, remote_root: str) -> None:
    if not implementations:
        print(f"[deploy] nothing to build on {host.address}", file=sys.stderr)
        return
    print(f"[deploy] = building implementations for {' '.join(implementations)} on {host.address}", file=sys.stderr)
    sys.stderr.write(run_command(rsync_argv(host, impl_dir, remote_root)))
    sys.stderr.write(host.run(build_script(implementations)))
    sys.stderr.flush()
