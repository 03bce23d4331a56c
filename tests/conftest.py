from __future__ import annotations

from typing import Callable, List, Sequence, Tuple, Union

import pytest

from perf_harness.automation.command_runner import RemoteHost
from perf_harness.automation.config import BenchmarkSpec
from perf_harness.automation.versions import Version

Response = Union[str, BaseException, Callable[[str], str]]


class FakeHost(RemoteHost):
    """Records the scripts it would have sent over ssh and replays canned output."""

    def __init__(self, address: str, responses: Sequence[Tuple[str, Response]] = ()):
        super().__init__(address)
        self.responses: List[Tuple[str, Response]] = list(responses)
        self.scripts: List[str] = []
        self.allowed: List[Tuple[int, ...]] = []

    def run(self, script: str, allowed_exit_codes=()) -> str:
        self.scripts.append(script)
        self.allowed.append(tuple(allowed_exit_codes))
        for needle, response in self.responses:
            if needle in script:
                if isinstance(response, BaseException):
                    raise response
                if callable(response):
                    return response(script)
                return response
        return ""


@pytest.fixture
def tcp_version() -> Version:
    return Version(implementation="rust-libp2p", id="v0.53", transport_stacks=("tcp",))


@pytest.fixture
def webrtc_version() -> Version:
    return Version(implementation="js-libp2p", id="webrtc-roamhq-wrtc", transport_stacks=("tcp", "webrtc-direct"))


@pytest.fixture
def upload_spec() -> BenchmarkSpec:
    return BenchmarkSpec(
        name="throughput/upload",
        upload_bytes=2**53 - 1,
        download_bytes=0,
        unit="bit/s",
        iterations=2,
        duration_s=5,
    )
