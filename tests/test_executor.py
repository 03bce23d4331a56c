import json
import shutil

import pytest

from conftest import FakeHost
from perf_harness.automation.command_runner import TIMEOUT_EXIT_CODE, CommandError, run_command
from perf_harness.automation.discovery import DISCOVERY_FILE, AddressDiscoveryError
from perf_harness.automation.executor import (
    client_script,
    parse_result_values,
    run_benchmark_across_versions,
)
from perf_harness.automation.versions import Version

FINAL = {"type": "final", "timeSeconds": 5.0, "uploadBytes": 1000, "downloadBytes": 0}


def test_parse_result_values_drops_malformed_lines():
    stdout = json.dumps(FINAL) + "\nnot json at all\n\n" + json.dumps(FINAL) + "\n{broken\n"
    assert parse_result_values(stdout) == [FINAL, FINAL]


def test_parse_result_values_caps_at_iteration_count():
    stdout = "\n".join(json.dumps({"i": i}) for i in range(4))
    assert parse_result_values(stdout, limit=2) == [{"i": 0}, {"i": 1}]


def test_client_script_guards_timeout_sentinel(tcp_version):
    script = client_script(tcp_version, "tcp", "198.51.100.20:4001", 2**53 - 1, 0, 3, 20)
    assert script.startswith("for i in $(seq 1 3); do timeout 20s ./impl/rust-libp2p/v0.53/perf ")
    assert "--server-address 198.51.100.20:4001 --transport tcp" in script
    assert "--upload-bytes 9007199254740991 --download-bytes 0" in script
    assert f"|| [ $? -eq {TIMEOUT_EXIT_CODE} ]; done" in script


def test_tcp_only_version_end_to_end(tcp_version, upload_spec):
    client_out = json.dumps(FINAL) + "\ngarbage\n" + json.dumps(FINAL) + "\n"
    client = FakeHost("198.51.100.10", [("perf --server-address", client_out)])
    server = FakeHost("198.51.100.20")

    benchmark = run_benchmark_across_versions(upload_spec, [tcp_version], client, server, settle_delay_s=0)

    assert benchmark.name == "throughput/upload"
    assert benchmark.unit == "bit/s"
    assert len(benchmark.results) == 1
    result = benchmark.results[0]
    assert (result.implementation, result.version, result.transport_stack) == ("rust-libp2p", "v0.53", "tcp")
    assert 0 <= len(result.result) <= upload_spec.iterations
    assert list(result.result) == [FINAL, FINAL]
    # start (cleanup + launch) then stop; no discovery read for TCP
    assert len(server.scripts) == 3
    assert not any(DISCOVERY_FILE in s and s.startswith("cat") for s in server.scripts)
    assert "198.51.100.20:4001" in client.scripts[0]
    assert client.allowed == [(TIMEOUT_EXIT_CODE,)]


def test_discovered_address_is_used_for_webrtc_direct(webrtc_version, upload_spec):
    listen = "[LISTEN_ADDR] /ip4/127.0.0.1/udp/4001/webrtc-direct/certhash/uEiA/p2p/12D3KooWX\n"
    client = FakeHost("198.51.100.10", [("perf --server-address", json.dumps(FINAL) + "\n")])
    server = FakeHost("198.51.100.20", [(f"cat {DISCOVERY_FILE}", listen)])

    benchmark = run_benchmark_across_versions(upload_spec, [webrtc_version], client, server, settle_delay_s=0)

    assert [r.transport_stack for r in benchmark.results] == ["tcp", "webrtc-direct"]
    for result in benchmark.results:
        assert result.transport_stack in webrtc_version.transport_stacks
    tcp_script, webrtc_script = client.scripts
    assert "--server-address 198.51.100.20:4001 --transport tcp" in tcp_script
    assert (
        "--server-address /ip4/198.51.100.20/udp/4001/webrtc-direct/certhash/uEiA/p2p/12D3KooWX"
        " --transport webrtc-direct" in webrtc_script
    )
    assert "--transport webrtc-direct" in server.scripts[1]


def test_one_server_lifecycle_per_version(upload_spec):
    versions = [
        Version("rust-libp2p", "v0.53", ("tcp", "quic-v1")),
        Version("go-libp2p", "v0.34", ("tcp",)),
    ]
    client = FakeHost("198.51.100.10")
    server = FakeHost("198.51.100.20")

    benchmark = run_benchmark_across_versions(upload_spec, versions, client, server, settle_delay_s=0)

    launches = [s for s in server.scripts if s.startswith("nohup")]
    assert len(launches) == 2
    assert "rust-libp2p/v0.53" in launches[0] and "go-libp2p/v0.34" in launches[1]
    assert [(r.implementation, r.transport_stack) for r in benchmark.results] == [
        ("rust-libp2p", "tcp"),
        ("rust-libp2p", "quic-v1"),
        ("go-libp2p", "tcp"),
    ]
    assert all(r.result == () for r in benchmark.results)


def test_discovery_failure_is_fatal_and_server_is_stopped(webrtc_version, upload_spec):
    client = FakeHost("198.51.100.10")
    server = FakeHost("198.51.100.20", [(f"cat {DISCOVERY_FILE}", "")])

    with pytest.raises(AddressDiscoveryError):
        run_benchmark_across_versions(upload_spec, [webrtc_version], client, server, settle_delay_s=0)

    assert client.scripts == []
    assert server.scripts[-1].startswith("kill $(cat pidfile")


def test_client_failure_propagates(tcp_version, upload_spec):
    client = FakeHost("198.51.100.10", [("perf --server-address", CommandError(["ssh"], 255))])
    server = FakeHost("198.51.100.20")

    with pytest.raises(CommandError):
        run_benchmark_across_versions(upload_spec, [tcp_version], client, server, settle_delay_s=0)


def _fake_perf_binary(root, body):
    binary = root / "impl" / "rust-libp2p" / "v0.53" / "perf"
    binary.parent.mkdir(parents=True)
    binary.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    binary.chmod(0o755)


needs_shell = pytest.mark.skipif(
    shutil.which("bash") is None or shutil.which("timeout") is None,
    reason="needs bash and coreutils timeout",
)


@needs_shell
def test_client_script_keeps_output_of_timed_out_runs(tmp_path, tcp_version):
    _fake_perf_binary(tmp_path, "echo '{\"type\":\"final\"}'\nexec sleep 5\n")
    script = client_script(tcp_version, "tcp", "127.0.0.1:4001", 1, 1, 2, 1)

    stdout = run_command(["bash", "-c", f"cd {tmp_path} && {script}"], allowed_exit_codes=(TIMEOUT_EXIT_CODE,))

    assert parse_result_values(stdout, limit=2) == [{"type": "final"}, {"type": "final"}]


@needs_shell
def test_client_script_surfaces_real_failures(tmp_path, tcp_version):
    _fake_perf_binary(tmp_path, "exit 3\n")
    script = client_script(tcp_version, "tcp", "127.0.0.1:4001", 1, 1, 1, 1)

    with pytest.raises(CommandError):
        run_command(["bash", "-c", f"cd {tmp_path} && {script}"], allowed_exit_codes=(TIMEOUT_EXIT_CODE,))
