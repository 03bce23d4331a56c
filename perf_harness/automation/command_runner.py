#!/usr/bin/env python3
"""Run external commands locally or on a remote host over ssh."""

from __future__ import annotations

import shlex
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

# Exit status of coreutils `timeout` when the deadline is hit.
TIMEOUT_EXIT_CODE = 124

DEFAULT_SSH_OPTIONS = ["-o", "StrictHostKeyChecking=no"]


class CommandError(RuntimeError):
    def __init__(self, argv: Sequence[str], returncode: int, detail: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.detail = detail
        msg = f"command failed with code {returncode}: {_format_argv(argv)}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


def _format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(arg)) for arg in argv)


def run_command(argv: Sequence[str], allowed_exit_codes: Iterable[int] = ()) -> str:
    """Run argv to completion and return its stdout.

    stderr is passed through to our own stderr so remote build/progress output
    stays visible. Any non-zero exit not listed in allowed_exit_codes raises
    CommandError.
    """
    print(f"[command] $ {_format_argv(argv)}", file=sys.stderr, flush=True)
    try:
        # Undecodable bytes become U+FFFD so one bad line cannot sink the whole output.
        cp = subprocess.run(
            list(argv), stdout=subprocess.PIPE, encoding="utf-8", errors="replace", check=False
        )
    except FileNotFoundError as exc:
        raise CommandError(argv, 127, str(exc)) from exc
    if cp.returncode != 0 and cp.returncode not in set(allowed_exit_codes):
        raise CommandError(argv, cp.returncode)
    return cp.stdout or ""


@dataclass
class RemoteHost:
    address: str
    user: str = "root"
    ssh_options: List[str] = field(default_factory=lambda: list(DEFAULT_SSH_OPTIONS))

    @property
    def target(self) -> str:
        if not self.user or "@" in self.address:
            return self.address
        return f"{self.user}@{self.address}"

    def wrap_command(self, script: str) -> List[str]:
        # The script is handed to the remote login shell verbatim.
        return ["ssh", *self.ssh_options, self.target, script]

    def ssh_transport(self) -> str:
        """Value for rsync's -e flag so file copies use the same ssh options."""
        return " ".join(["ssh", *(shlex.quote(opt) for opt in self.ssh_options)])

    def run(self, script: str, allowed_exit_codes: Iterable[int] = ()) -> str:
        return run_command(self.wrap_command(script), allowed_exit_codes=allowed_exit_codes)
