#!/usr/bin/env python3
"""Load runner defaults and benchmark declarations from YAML."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

CONFIG_ROOT = Path(__file__).resolve().parents[1] / "configs"
RUNNER_CONFIG_PATH = CONFIG_ROOT / "runner.yaml"

# Largest integer a JSON consumer can represent exactly; the perf binaries read
# it as "no limit".
MAX_SAFE_INTEGER = 2**53 - 1
UNITS = ("bit/s", "s")

ALLOWED_RUNNER_KEYS = {"ssh", "server", "deploy", "output", "baselines", "benchmarks"}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class BenchmarkSpec:
    name: str
    upload_bytes: int
    download_bytes: int
    unit: str
    iterations: int
    duration_s: int


@dataclass
class RunnerConfig:
    ssh_user: str = "root"
    ssh_options: List[str] = field(default_factory=lambda: ["-o", "StrictHostKeyChecking=no"])
    server_port: int = 4001
    server_bind_host: str = "0.0.0.0"
    discovery_settle_s: float = 2.0
    impl_dir: str = "../impl"
    remote_root: str = "/root"
    output: str = "benchmark-results.json"
    ping_count: int = 100
    iperf_seconds: int = 60
    benchmarks: List[BenchmarkSpec] = field(default_factory=list)


def _warn_unknown_keys(label: str, mapping: Dict) -> None:
    unknown = sorted(set(mapping.keys()) - ALLOWED_RUNNER_KEYS)
    if unknown:
        print(
            f"[config] warning: unrecognized top-level keys {unknown} in {label}; they will be ignored",
            file=sys.stderr,
        )


def _coerce_count(value, label: str) -> int:
    if isinstance(value, str) and value.strip().lower() == "max":
        return MAX_SAFE_INTEGER
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{label} must be an integer or 'max', got {value!r}") from None
    if count < 0:
        raise ConfigError(f"{label} must not be negative, got {count}")
    return count


def _pick(mapping: Dict, key: str, testing: bool, default=None):
    if testing and mapping.get(f"testing_{key}") is not None:
        return mapping[f"testing_{key}"]
    value = mapping.get(key)
    return default if value is None else value


def parse_benchmark(entry: Dict, testing: bool) -> BenchmarkSpec:
    if not isinstance(entry, dict) or not entry.get("name"):
        raise ConfigError(f"benchmark entry needs a name: {entry!r}")
    name = str(entry["name"])
    unit = entry.get("unit")
    if unit not in UNITS:
        raise ConfigError(f"benchmark {name!r}: unit must be one of {UNITS}, got {unit!r}")
    iterations = _coerce_count(_pick(entry, "iterations", testing, 1), f"{name}.iterations")
    if iterations < 1:
        raise ConfigError(f"benchmark {name!r}: iterations must be at least 1")
    duration = _coerce_count(_pick(entry, "duration_s", testing, "max"), f"{name}.duration_s")
    if duration < 1:
        raise ConfigError(f"benchmark {name!r}: duration_s must be at least 1")
    return BenchmarkSpec(
        name=name,
        upload_bytes=_coerce_count(entry.get("upload_bytes", 0), f"{name}.upload_bytes"),
        download_bytes=_coerce_count(entry.get("download_bytes", 0), f"{name}.download_bytes"),
        unit=unit,
        iterations=iterations,
        duration_s=duration,
    )


def load_runner_config(path: Optional[Path] = None, testing: bool = False) -> RunnerConfig:
    cfg_path = Path(path) if path else RUNNER_CONFIG_PATH
    if not cfg_path.exists():
        raise ConfigError(f"runner config not found: {cfg_path}")
    try:
        raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{cfg_path}: invalid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{cfg_path}: expected a mapping at the top level")
    _warn_unknown_keys(str(cfg_path), raw)

    ssh = raw.get("ssh") or {}
    server = raw.get("server") or {}
    deploy = raw.get("deploy") or {}
    baselines = raw.get("baselines") or {}
    defaults = RunnerConfig()

    ssh_options = ssh.get("options")
    benchmarks = [parse_benchmark(entry, testing) for entry in (raw.get("benchmarks") or [])]
    if not benchmarks:
        raise ConfigError(f"{cfg_path}: no benchmarks declared")

    try:
        return RunnerConfig(
            ssh_user=str(ssh.get("user", defaults.ssh_user) or ""),
            ssh_options=list(ssh_options) if ssh_options is not None else defaults.ssh_options,
            server_port=int(server.get("port", defaults.server_port)),
            server_bind_host=str(server.get("bind_host", defaults.server_bind_host)),
            discovery_settle_s=float(server.get("discovery_settle_s", defaults.discovery_settle_s)),
            impl_dir=str(deploy.get("impl_dir", defaults.impl_dir)),
            remote_root=str(deploy.get("remote_root", defaults.remote_root)),
            output=str(raw.get("output") or defaults.output),
            ping_count=int(_pick(baselines, "ping_count", testing, defaults.ping_count)),
            iperf_seconds=int(_pick(baselines, "iperf_seconds", testing, defaults.iperf_seconds)),
            benchmarks=benchmarks,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{cfg_path}: {exc}") from exc
