#!/usr/bin/env python3
"""Recover listen addresses of servers that pick their own address at bind time.

Transports like WebRTC Direct embed a certificate hash in the address, so the
client cannot know it in advance. The perf server appends one line per bound
address to DISCOVERY_FILE:

    [LISTEN_ADDR] /ip4/1.2.3.4/udp/4001/webrtc-direct/certhash/.../p2p/...

We read that file back over ssh after a short settle delay. There is no
readiness handshake, so the delay is all we have.
"""

from __future__ import annotations

import re
import sys
import time
from typing import Iterable, Optional

from perf_harness.automation.command_runner import RemoteHost

DISCOVERY_FILE = "/tmp/webrtc-listen-addrs.txt"
LISTEN_MARKER = "[LISTEN_ADDR]"
DISCOVERY_TRANSPORTS = frozenset({"webrtc-direct"})
SETTLE_DELAY_S = 2.0

_LISTEN_ADDR_RE = re.compile(r"\[LISTEN_ADDR\]\s+(/ip[46]/\S+)")
_LOOPBACK_SEGMENT = "/ip4/127.0.0.1/"


class AddressDiscoveryError(RuntimeError):
    pass


def requires_discovery(transport_stacks: Iterable[str]) -> bool:
    return any(stack in DISCOVERY_TRANSPORTS for stack in transport_stacks)


def parse_listen_addr(text: str, public_address: str) -> Optional[str]:
    """Return the address on the last marker line, with loopback rewritten to public_address."""
    lines = [line for line in text.splitlines() if LISTEN_MARKER in line]
    if not lines:
        return None
    match = _LISTEN_ADDR_RE.search(lines[-1])
    if not match:
        return None
    # Some implementations bind to loopback even when asked for 0.0.0.0.
    return match.group(1).replace(_LOOPBACK_SEGMENT, f"/ip4/{public_address}/")


def discover_listen_addr(host: RemoteHost, settle_delay_s: float = SETTLE_DELAY_S) -> str:
    if settle_delay_s > 0:
        print(f"[discovery] waiting {settle_delay_s:g}s for listen address on {host.address}", file=sys.stderr)
        time.sleep(settle_delay_s)
    text = host.run(f"cat {DISCOVERY_FILE} 2>/dev/null || true")
    addr = parse_listen_addr(text, host.address)
    if not addr:
        print(f"[discovery] no listen address in {DISCOVERY_FILE}; output: {text.strip()!r}", file=sys.stderr)
        raise AddressDiscoveryError(f"could not find a listen address in {DISCOVERY_FILE} on {host.address}")
    print(f"[discovery] captured server listen address: {addr}", file=sys.stderr)
    return addr
